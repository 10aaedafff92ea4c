"""Configuration management for terratile."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from terratile.exceptions import ConfigurationError


@dataclass
class TerrainConfig:
    """Terrain operator configuration."""

    elevation_band_name: str = "elevation"
    copy_elevation_band: bool = False
    compute_orientation: bool = False


@dataclass
class TilingConfig:
    """Tile scheduling configuration."""

    tile_width: int = 512
    tile_height: int = 512
    max_workers: int = 4


@dataclass
class ClassifierConfig:
    """Classifier configuration."""

    scoring_function: str | None = None  # "package.module:attribute"
    legend_path: str | None = None
    input_bands: list[str] = field(default_factory=list)


@dataclass
class OutputConfig:
    """Output product configuration."""

    nodata_value: float = -9999.0
    compress: str = "deflate"


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.lower() in ("true", "1", "yes")
    return bool(value)


def _as_band_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [name.strip() for name in value.split(",") if name.strip()]
    return [str(name) for name in value]


@dataclass
class Config:
    """Main configuration container."""

    terrain: TerrainConfig = field(default_factory=TerrainConfig)
    tiling: TilingConfig = field(default_factory=TilingConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    @classmethod
    def load(cls, config_dir: Path | None = None) -> "Config":
        """Load configuration from files and environment variables."""
        # Load .env file if present
        env_file = Path(__file__).parent.parent / ".env"
        if env_file.exists():
            load_dotenv(env_file)

        config = cls()

        if config_dir and config_dir.exists():
            for name in ("processing.yaml", "classifier.yaml"):
                yaml_file = config_dir / name
                if yaml_file.exists():
                    config._load_yaml(yaml_file)

        # Override with environment variables
        config._load_from_env()
        config.validate()

        return config

    def _load_yaml(self, path: Path) -> None:
        """Load configuration from a YAML file."""
        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
            if data:
                self._apply_yaml_config(data)

    def _apply_yaml_config(self, data: dict[str, Any]) -> None:
        """Apply YAML configuration data."""
        if "terrain" in data:
            terrain = data["terrain"]
            if "elevation_band_name" in terrain:
                self.terrain.elevation_band_name = str(terrain["elevation_band_name"])
            if "copy_elevation_band" in terrain:
                self.terrain.copy_elevation_band = _as_bool(terrain["copy_elevation_band"])
            if "compute_orientation" in terrain:
                self.terrain.compute_orientation = _as_bool(terrain["compute_orientation"])

        if "tiling" in data:
            tiling = data["tiling"]
            if "tile_size" in tiling:
                self.tiling.tile_width = self.tiling.tile_height = int(tiling["tile_size"])
            if "tile_width" in tiling:
                self.tiling.tile_width = int(tiling["tile_width"])
            if "tile_height" in tiling:
                self.tiling.tile_height = int(tiling["tile_height"])
            if "max_workers" in tiling:
                self.tiling.max_workers = int(tiling["max_workers"])

        if "classifier" in data:
            classifier = data["classifier"]
            if "scoring_function" in classifier:
                self.classifier.scoring_function = classifier["scoring_function"]
            if "legend_path" in classifier:
                self.classifier.legend_path = classifier["legend_path"]
            if "input_bands" in classifier:
                self.classifier.input_bands = _as_band_list(classifier["input_bands"])

        if "output" in data:
            output = data["output"]
            if "nodata_value" in output:
                self.output.nodata_value = float(output["nodata_value"])
            if "compress" in output:
                self.output.compress = str(output["compress"])

    def _load_from_env(self) -> None:
        """Override configuration from environment variables."""
        # Terrain
        if band := os.getenv("TERRATILE_ELEVATION_BAND"):
            self.terrain.elevation_band_name = band
        if copy_elevation := os.getenv("TERRATILE_COPY_ELEVATION"):
            self.terrain.copy_elevation_band = _as_bool(copy_elevation)
        if orientation := os.getenv("TERRATILE_COMPUTE_ORIENTATION"):
            self.terrain.compute_orientation = _as_bool(orientation)

        # Tiling
        if tile_size := os.getenv("TERRATILE_TILE_SIZE"):
            self.tiling.tile_width = self.tiling.tile_height = int(tile_size)
        if workers := os.getenv("TERRATILE_MAX_WORKERS"):
            self.tiling.max_workers = int(workers)

        # Classifier
        if scoring_function := os.getenv("TERRATILE_SCORING_FUNCTION"):
            self.classifier.scoring_function = scoring_function
        if legend_path := os.getenv("TERRATILE_LEGEND_PATH"):
            self.classifier.legend_path = legend_path
        if input_bands := os.getenv("TERRATILE_INPUT_BANDS"):
            self.classifier.input_bands = _as_band_list(input_bands)

    def validate(self) -> None:
        """Reject settings no operator can run with."""
        if self.tiling.tile_width <= 0 or self.tiling.tile_height <= 0:
            raise ConfigurationError(
                f"Tile size must be positive, got {self.tiling.tile_width}x{self.tiling.tile_height}"
            )
        if self.tiling.max_workers <= 0:
            raise ConfigurationError(f"max_workers must be positive, got {self.tiling.max_workers}")


# Global config instance
_config: Config | None = None


def get_config() -> Config:
    """Get or create the global configuration instance."""
    global _config
    if _config is None:
        config_dir = Path(__file__).parent.parent / "config"
        _config = Config.load(config_dir)
    return _config


def reload_config(config_dir: Path | None = None) -> Config:
    """Reload configuration (useful for testing)."""
    global _config
    _config = Config.load(config_dir)
    return _config
