"""Tile execution and scheduling."""

from terratile.pipeline.executor import CancellationToken, TileResult, run_tile
from terratile.pipeline.runner import run_operator

__all__ = [
    "CancellationToken",
    "TileResult",
    "run_tile",
    "run_operator",
]
