"""Per-pixel multi-score classification.

A scoring function maps a pixel's input vector to N class scores followed
by one auxiliary aggregate score. The winning class is the arg-max over the
N class scores (first index wins ties), remapped to its external label.
The scoring function itself (e.g. a generated fuzzy decision tree) is
injected and treated as opaque.
"""

import importlib
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, ClassVar, Protocol, runtime_checkable

import numpy as np
import structlog

from terratile.exceptions import ConfigurationError

logger = structlog.get_logger()

FINAL_CLASS_BAND_NAME = "final_class"
FUZZY_MAX_VAL_BAND_NAME = "fuzzy_max_val"


@runtime_checkable
class ScoringFunction(Protocol):
    """Opaque per-pixel scorer with fixed input and output arity.

    ``apply`` takes one input vector and returns ``len(output_names)``
    values: the class scores followed by the auxiliary score. Scorers that
    set ``vectorized`` accept a block of shape (n_pixels, n_inputs) instead.
    """

    input_names: Sequence[str]
    output_names: Sequence[str]

    def apply(self, inputs: np.ndarray) -> np.ndarray:
        ...


@dataclass
class FunctionScoring:
    """Adapts a plain callable to the ScoringFunction interface."""

    func: Callable[[np.ndarray], Any]
    input_names: Sequence[str]
    output_names: Sequence[str]
    vectorized: bool = False

    def apply(self, inputs: np.ndarray) -> np.ndarray:
        return np.asarray(self.func(inputs), dtype=np.float64)


@dataclass
class ClassificationResult:
    """Classification of one pixel, or of a block of pixels."""

    scores: np.ndarray
    auxiliary: Any
    winning_class: Any
    winning_score: Any


def argmax_classes(
    scores: np.ndarray,
    class_labels: Sequence[int],
) -> tuple[np.ndarray, np.ndarray]:
    """Pick the highest-scoring class and translate it to its label.

    Scans the classes in order keeping a running maximum and replaces it
    only on a strictly greater score, so the lowest index wins ties. NaN
    scores never become the maximum; a pixel whose scores are all NaN gets
    the first class with a NaN winning score.

    Args:
        scores: Class scores with the class axis last, shape (..., N).
        class_labels: External label for each of the N class indices.

    Returns:
        Tuple of (labels, winning_scores) with the class axis removed.
    """
    scores = np.asarray(scores, dtype=np.float64)
    if scores.shape[-1] != len(class_labels):
        raise ValueError(
            f"Expected {len(class_labels)} class scores, got {scores.shape[-1]}"
        )

    best_index = np.zeros(scores.shape[:-1], dtype=np.intp)
    best_score = np.full(scores.shape[:-1], -np.inf)
    found = np.zeros(scores.shape[:-1], dtype=bool)
    for i in range(scores.shape[-1]):
        better = (scores[..., i] > best_score) | (~found & ~np.isnan(scores[..., i]))
        best_index = np.where(better, i, best_index)
        best_score = np.where(better, scores[..., i], best_score)
        found |= better

    best_score = np.where(found, best_score, scores[..., 0])

    labels = np.asarray(class_labels)[best_index]
    return labels, best_score


def _score_block(scoring_fn: ScoringFunction, inputs: np.ndarray) -> np.ndarray:
    n_outputs = len(scoring_fn.output_names)
    if getattr(scoring_fn, "vectorized", False):
        outputs = np.asarray(scoring_fn.apply(inputs), dtype=np.float64)
    else:
        outputs = np.empty((inputs.shape[0], n_outputs), dtype=np.float64)
        for i in range(inputs.shape[0]):
            outputs[i] = scoring_fn.apply(inputs[i])

    if outputs.shape != (inputs.shape[0], n_outputs):
        raise ValueError(
            f"Scoring function returned shape {outputs.shape}, "
            f"expected {(inputs.shape[0], n_outputs)}"
        )
    return outputs


def classify(
    inputs: np.ndarray,
    scoring_fn: ScoringFunction,
    class_labels: Sequence[int],
) -> ClassificationResult:
    """Score and classify one pixel or a block of pixels.

    Args:
        inputs: Input vector of shape (n_inputs,), or a block of shape
            (n_pixels, n_inputs).
        scoring_fn: Scorer producing N class scores plus one auxiliary score.
        class_labels: External label for each class index.

    Returns:
        ClassificationResult with per-class scores, the auxiliary score,
        the winning label and the winning score.
    """
    inputs = np.asarray(inputs, dtype=np.float64)
    single = inputs.ndim == 1
    block = inputs[np.newaxis, :] if single else inputs

    if block.shape[-1] != len(scoring_fn.input_names):
        raise ValueError(
            f"Scoring function expects {len(scoring_fn.input_names)} inputs, got {block.shape[-1]}"
        )

    outputs = _score_block(scoring_fn, block)
    scores = outputs[:, :-1]
    auxiliary = outputs[:, -1]
    labels, winning_score = argmax_classes(scores, class_labels)

    if single:
        return ClassificationResult(
            scores=scores[0],
            auxiliary=float(auxiliary[0]),
            winning_class=int(labels[0]),
            winning_score=float(winning_score[0]),
        )
    return ClassificationResult(
        scores=scores,
        auxiliary=auxiliary,
        winning_class=labels,
        winning_score=winning_score,
    )


def load_scoring_function(path: str) -> ScoringFunction:
    """Resolve a scoring function from an import path.

    Args:
        path: "package.module:attribute". The attribute may be a scorer
            instance, or a class / factory returning one when called
            without arguments.

    Returns:
        The scoring function.

    Raises:
        ConfigurationError: If the path cannot be resolved to a scorer.
    """
    module_name, _, attribute = path.partition(":")
    if not module_name or not attribute:
        raise ConfigurationError(
            f"Scoring function must be given as 'module:attribute', got '{path}'"
        )

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import scoring function module '{module_name}': {e}") from e

    try:
        target = getattr(module, attribute)
    except AttributeError as e:
        raise ConfigurationError(f"Module '{module_name}' has no attribute '{attribute}'") from e

    if isinstance(target, type) or not isinstance(target, ScoringFunction):
        try:
            scoring_fn = target()
        except TypeError as e:
            raise ConfigurationError(f"Cannot create scoring function from '{path}': {e}") from e
    else:
        scoring_fn = target

    if not isinstance(scoring_fn, ScoringFunction):
        raise ConfigurationError(f"'{path}' does not provide a scoring function")

    logger.info(
        "Loaded scoring function",
        path=path,
        inputs=len(scoring_fn.input_names),
        outputs=len(scoring_fn.output_names),
    )
    return scoring_fn


# ---------------------------------------------------------------------------
# Row kernel consumed by the tile executor
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ClassifierKernel:
    """Classifies every pixel of a row from its input band samples."""

    scoring_fn: ScoringFunction
    class_labels: tuple[int, ...]
    halo: int = 0
    outputs: dict[str, np.dtype] = field(init=False)

    class_dtype: ClassVar[np.dtype] = np.dtype(np.int8)

    def __post_init__(self) -> None:
        names = list(self.scoring_fn.output_names)
        outputs = {name: np.dtype(np.float32) for name in names}
        outputs[FUZZY_MAX_VAL_BAND_NAME] = np.dtype(np.float32)
        outputs[FINAL_CLASS_BAND_NAME] = self.class_dtype
        object.__setattr__(self, "outputs", outputs)

    def __call__(self, windows: dict[str, np.ndarray]) -> dict[str, np.ndarray]:
        # halo 0: each window holds only the pixel itself
        inputs = np.stack(
            [windows[name][..., 0] for name in self.scoring_fn.input_names],
            axis=-1,
        )
        result = classify(inputs, self.scoring_fn, self.class_labels)

        names = list(self.scoring_fn.output_names)
        rows = {name: result.scores[:, i] for i, name in enumerate(names[:-1])}
        rows[names[-1]] = result.auxiliary
        rows[FUZZY_MAX_VAL_BAND_NAME] = result.winning_score
        rows[FINAL_CLASS_BAND_NAME] = result.winning_class
        return rows
