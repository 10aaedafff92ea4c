"""Tiled raster operators."""

from terratile.operators.base import TileOperator
from terratile.operators.classifier import ScoreClassifierOperator
from terratile.operators.slope import SlopeAspectOrientationOperator, SlopeCalculationOperator

__all__ = [
    "TileOperator",
    "SlopeCalculationOperator",
    "SlopeAspectOrientationOperator",
    "ScoreClassifierOperator",
]
