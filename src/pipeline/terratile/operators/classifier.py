"""Per-pixel classification of a product with an injected scoring function."""

import numpy as np
import structlog
import xarray as xr

from terratile.classify.legend import ClassLegend
from terratile.classify.scoring import (
    FINAL_CLASS_BAND_NAME,
    FUZZY_MAX_VAL_BAND_NAME,
    ClassifierKernel,
    ScoringFunction,
)
from terratile.exceptions import ConfigurationError
from terratile.operators.base import TileOperator
from terratile.pipeline.executor import band_source
from terratile.raster.neighborhood import check_sample_type
from terratile.raster.product import BandSpec, create_target_product, get_band

logger = structlog.get_logger()

DEFAULT_PRODUCT_TYPE = "classification"


class ScoreClassifierOperator(TileOperator):
    """Scores every pixel and writes the arg-max class.

    Target bands are the scoring function's outputs (N class scores and one
    auxiliary score), ``fuzzy_max_val`` with the winning score and
    ``final_class`` with the winning label.

    Args:
        source: Source product.
        scoring_fn: Scorer with N + 1 outputs.
        legend: Class legend with N entries; defaults to labels 0..N-1
            named after the score outputs.
        input_bands: Source bands feeding the scorer inputs, in order;
            defaults to the scorer's input names.
    """

    name = "Score-Classifier"

    def __init__(
        self,
        source: xr.Dataset | xr.DataArray,
        scoring_fn: ScoringFunction,
        legend: ClassLegend | None = None,
        input_bands: list[str] | None = None,
    ) -> None:
        super().__init__(source)
        self.scoring_fn = scoring_fn
        self.legend = legend
        self.input_bands = list(input_bands) if input_bands else list(scoring_fn.input_names)

    def _initialize(self) -> None:
        input_names = list(self.scoring_fn.input_names)
        output_names = list(self.scoring_fn.output_names)

        if len(self.input_bands) != len(input_names):
            raise ConfigurationError(
                f"Scoring function expects {len(input_names)} inputs, "
                f"got {len(self.input_bands)} input bands"
            )
        if len(output_names) < 2:
            raise ConfigurationError(
                "Scoring function must produce at least one class score and one auxiliary score"
            )

        if self.legend is None:
            self.legend = ClassLegend.from_names(output_names[:-1])
        if len(output_names) != len(self.legend) + 1:
            raise ConfigurationError(
                f"Scoring function produces {len(output_names)} outputs, "
                f"expected {len(self.legend)} class scores plus one auxiliary score"
            )

        reserved = {FINAL_CLASS_BAND_NAME, FUZZY_MAX_VAL_BAND_NAME} & set(output_names)
        if reserved:
            raise ConfigurationError(f"Scoring output names clash with reserved bands: {sorted(reserved)}")

        bands = [get_band(self.source, name) for name in self.input_bands]
        for band_name, band in zip(self.input_bands, bands):
            check_sample_type(band.dtype, band_name, any_numeric=True)
            if band.shape != bands[0].shape:
                raise ConfigurationError(
                    f"Input band '{band_name}' has shape {band.shape}, expected {bands[0].shape}"
                )

        self.height, self.width = bands[0].shape
        self.sources = [
            band_source(name, band, any_numeric=True) for name, band in zip(input_names, bands)
        ]
        self.kernels = [ClassifierKernel(self.scoring_fn, self.legend.labels)]

        self.computed_bands = [
            BandSpec(name=name, dtype=np.dtype(np.float32)) for name in output_names
        ]
        self.computed_bands.append(
            BandSpec(
                name=FINAL_CLASS_BAND_NAME,
                dtype=np.dtype(np.int8),
                description="Final classification",
                attrs=self.legend.to_attrs(),
            )
        )
        self.computed_bands.append(
            BandSpec(
                name=FUZZY_MAX_VAL_BAND_NAME,
                dtype=np.dtype(np.float32),
                description="Score of the winning class",
            )
        )

        logger.info(
            "Initialized classifier",
            input_bands=self.input_bands,
            classes=len(self.legend),
            width=self.width,
            height=self.height,
        )

    def _create_empty_target(self) -> xr.Dataset:
        return create_target_product(
            self.source,
            self.input_bands[0],
            name=self.source.attrs.get("product_name", self.name),
            product_type=self.source.attrs.get("product_type", DEFAULT_PRODUCT_TYPE),
            copy_metadata=True,
        )

    def _finalize_target(self, target: xr.Dataset, outputs: dict[str, np.ndarray]) -> xr.Dataset:
        labels, counts = np.unique(outputs[FINAL_CLASS_BAND_NAME], return_counts=True)
        logger.info(
            "Classification statistics",
            class_counts={int(label): int(count) for label, count in zip(labels, counts)},
        )
        return target
