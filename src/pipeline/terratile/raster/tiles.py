"""Tile rectangles and raster partitioning."""

import math
from collections.abc import Iterator
from dataclasses import dataclass


@dataclass(frozen=True)
class TileRect:
    """A rectangle in raster pixel coordinates."""

    x: int
    y: int
    width: int
    height: int

    def dilate(self, halo: int) -> "TileRect":
        """Expand the rectangle by ``halo`` pixels on every side."""
        return TileRect(
            self.x - halo,
            self.y - halo,
            self.width + 2 * halo,
            self.height + 2 * halo,
        )

    @property
    def slices(self) -> tuple[slice, slice]:
        """Row and column slices addressing this rectangle in a 2-D array."""
        return slice(self.y, self.y + self.height), slice(self.x, self.x + self.width)

    @property
    def size(self) -> int:
        return self.width * self.height


def iter_tiles(
    width: int,
    height: int,
    tile_width: int,
    tile_height: int,
) -> Iterator[TileRect]:
    """Partition a raster into row-major tiles.

    Edge tiles are truncated so the tiles cover the raster exactly once.

    Args:
        width: Raster width in pixels.
        height: Raster height in pixels.
        tile_width: Nominal tile width.
        tile_height: Nominal tile height.

    Yields:
        TileRect for each tile, top-left first.
    """
    if tile_width <= 0 or tile_height <= 0:
        raise ValueError(f"Tile size must be positive, got {tile_width}x{tile_height}")

    n_tiles_x = math.ceil(width / tile_width)
    n_tiles_y = math.ceil(height / tile_height)

    for ty in range(n_tiles_y):
        for tx in range(n_tiles_x):
            x = tx * tile_width
            y = ty * tile_height
            yield TileRect(
                x,
                y,
                min(tile_width, width - x),
                min(tile_height, height - y),
            )
