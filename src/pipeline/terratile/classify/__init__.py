"""Per-pixel multi-score classification."""

from terratile.classify.legend import ClassEntry, ClassLegend
from terratile.classify.scoring import (
    ClassificationResult,
    FunctionScoring,
    ScoringFunction,
    argmax_classes,
    classify,
    load_scoring_function,
)

__all__ = [
    "ScoringFunction",
    "FunctionScoring",
    "ClassificationResult",
    "argmax_classes",
    "classify",
    "load_scoring_function",
    "ClassEntry",
    "ClassLegend",
]
