"""Parallel tile scheduling for operators.

Tiles of one raster are independent and run on a thread pool. Completed
tiles are copied into full-size output arrays as they finish; the target
product is only assembled once every tile has succeeded.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import TYPE_CHECKING

import numpy as np
import structlog
import xarray as xr

from terratile.exceptions import ProcessingCancelledError
from terratile.pipeline.executor import CancellationToken
from terratile.raster.tiles import iter_tiles

if TYPE_CHECKING:
    from terratile.operators.base import TileOperator

logger = structlog.get_logger()

DEFAULT_TILE_SIZE = 512
PROGRESS_INTERVAL = 50


def run_operator(
    operator: "TileOperator",
    tile_width: int = DEFAULT_TILE_SIZE,
    tile_height: int = DEFAULT_TILE_SIZE,
    max_workers: int | None = None,
    cancel: CancellationToken | None = None,
) -> xr.Dataset:
    """Run an operator over its whole raster.

    Args:
        operator: Operator to run; initialised here if it was not already.
        tile_width: Nominal tile width in pixels.
        tile_height: Nominal tile height in pixels.
        max_workers: Thread pool size (None lets the executor decide).
        cancel: Token the caller can use to abandon the raster.

    Returns:
        The operator's target product.

    Raises:
        ProcessingCancelledError: If the raster was cancelled.
        Exception: The first tile failure, after the remaining tiles were
            cancelled.
    """
    operator.initialize()
    cancel = cancel or CancellationToken()

    tiles = list(iter_tiles(operator.width, operator.height, tile_width, tile_height))
    outputs = {
        spec.name: np.empty((operator.height, operator.width), dtype=spec.dtype)
        for spec in operator.computed_bands
    }

    logger.info(
        "Running operator",
        operator=operator.name,
        width=operator.width,
        height=operator.height,
        tiles=len(tiles),
    )

    completed = 0
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        future_to_tile = {
            executor.submit(operator.compute_tile, rect, cancel): rect
            for rect in tiles
        }

        try:
            for future in as_completed(future_to_tile):
                rect = future_to_tile[future]
                try:
                    result = future.result()
                except ProcessingCancelledError:
                    raise
                except Exception:
                    logger.exception(
                        "Tile processing failed",
                        operator=operator.name,
                        x=rect.x,
                        y=rect.y,
                        width=rect.width,
                        height=rect.height,
                    )
                    raise

                rows, cols = rect.slices
                for name, data in result.outputs.items():
                    outputs[name][rows, cols] = data

                completed += 1
                if completed % PROGRESS_INTERVAL == 0:
                    logger.debug("Tile progress", completed=completed, total=len(tiles))
        except BaseException:
            cancel.cancel()
            for pending in future_to_tile:
                pending.cancel()
            raise

    cancel.check()

    logger.info("Operator completed", operator=operator.name, tiles=completed)
    return operator.create_target(outputs)
