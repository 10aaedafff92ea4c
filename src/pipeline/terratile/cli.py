"""Command-line interface for terratile."""

import sys
from pathlib import Path

import click
import structlog

from terratile.classify.legend import ClassLegend
from terratile.classify.scoring import load_scoring_function
from terratile.config import Config, get_config, reload_config
from terratile.exceptions import ConfigurationError, ProcessingCancelledError
from terratile.operators.base import TileOperator
from terratile.operators.classifier import ScoreClassifierOperator
from terratile.operators.slope import SlopeAspectOrientationOperator, SlopeCalculationOperator
from terratile.pipeline.executor import CancellationToken
from terratile.pipeline.runner import run_operator
from terratile.raster.geocoding import geocoding_from_raster
from terratile.raster.product import get_band, load_product, save_product
from terratile.raster.resolution import resolve_resolution

# Configure structlog for CLI output
import logging

logging.basicConfig(format="%(message)s", level=logging.INFO)

structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(colors=True),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = structlog.get_logger()

EXIT_CANCELLED = 130


@click.group()
@click.option("--config-dir", type=click.Path(exists=True, path_type=Path), help="Configuration directory")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.pass_context
def cli(ctx: click.Context, config_dir: Path | None, verbose: bool) -> None:
    """Tiled terrain derivatives and per-pixel classification."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    if config_dir:
        reload_config(config_dir)

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        click.echo("Configuration loaded")


def _run(operator: TileOperator, output: Path, config: Config, tile_size: int | None, workers: int | None) -> None:
    """Run an operator over all tiles and write its target product."""
    tile_width = tile_size or config.tiling.tile_width
    tile_height = tile_size or config.tiling.tile_height

    product = run_operator(
        operator,
        tile_width=tile_width,
        tile_height=tile_height,
        max_workers=workers or config.tiling.max_workers,
        cancel=CancellationToken(),
    )
    save_product(product, output, compress=config.output.compress)

    click.echo(f"\n{operator.name} complete:")
    click.echo(f"  Size: {operator.width} x {operator.height}")
    click.echo(f"  Bands: {', '.join(map(str, product.data_vars))}")
    click.echo(f"  Output: {output}")


def _report_failure(e: BaseException) -> None:
    if isinstance(e, (ProcessingCancelledError, KeyboardInterrupt)):
        click.echo("Cancelled", err=True)
        sys.exit(EXIT_CANCELLED)
    click.echo(f"Error: {e}", err=True)
    sys.exit(1)


@cli.command()
@click.argument("input_path", type=click.Path(exists=True, path_type=Path))
@click.argument("output", type=click.Path(path_type=Path))
@click.option("--elevation-band", help="Name of the elevation band")
@click.option("--copy-elevation", is_flag=True, help="Write the elevation band to the output")
@click.option("--tile-size", type=int, help="Tile width and height in pixels")
@click.option("--workers", type=int, help="Number of worker threads")
def slope(
    input_path: Path,
    output: Path,
    elevation_band: str | None,
    copy_elevation: bool,
    tile_size: int | None,
    workers: int | None,
) -> None:
    """Compute slope, aspect and elevation variance."""
    try:
        config = get_config()
        operator = SlopeCalculationOperator(
            load_product(input_path),
            elevation_band_name=elevation_band or config.terrain.elevation_band_name,
            copy_elevation_band=copy_elevation or config.terrain.copy_elevation_band,
            nodata_value=config.output.nodata_value,
        )
        _run(operator, output, config, tile_size, workers)

    except (Exception, KeyboardInterrupt) as e:
        _report_failure(e)


@cli.command(name="slope-aspect")
@click.argument("input_path", type=click.Path(exists=True, path_type=Path))
@click.argument("output", type=click.Path(path_type=Path))
@click.option("--elevation-band", help="Name of the elevation band")
@click.option("--copy-elevation", is_flag=True, help="Write the elevation band to the output")
@click.option("--orientation", is_flag=True, help="Also compute the grid orientation band")
@click.option("--tile-size", type=int, help="Tile width and height in pixels")
@click.option("--workers", type=int, help="Number of worker threads")
def slope_aspect(
    input_path: Path,
    output: Path,
    elevation_band: str | None,
    copy_elevation: bool,
    orientation: bool,
    tile_size: int | None,
    workers: int | None,
) -> None:
    """Compute slope and aspect on a projected grid, optionally with orientation."""
    try:
        config = get_config()
        operator = SlopeAspectOrientationOperator(
            load_product(input_path),
            elevation_band_name=elevation_band or config.terrain.elevation_band_name,
            copy_elevation_band=copy_elevation or config.terrain.copy_elevation_band,
            nodata_value=config.output.nodata_value,
            compute_orientation=orientation or config.terrain.compute_orientation,
        )
        _run(operator, output, config, tile_size, workers)

    except (Exception, KeyboardInterrupt) as e:
        _report_failure(e)


@cli.command()
@click.argument("input_path", type=click.Path(exists=True, path_type=Path))
@click.argument("output", type=click.Path(path_type=Path))
@click.option("--scoring-function", help="Scoring function import path (package.module:attribute)")
@click.option("--legend", "legend_path", type=click.Path(path_type=Path), help="Class legend YAML file")
@click.option("--input-band", "input_bands", multiple=True, help="Source band feeding the scorer (repeatable, in order)")
@click.option("--tile-size", type=int, help="Tile width and height in pixels")
@click.option("--workers", type=int, help="Number of worker threads")
def classify(
    input_path: Path,
    output: Path,
    scoring_function: str | None,
    legend_path: Path | None,
    input_bands: tuple[str, ...],
    tile_size: int | None,
    workers: int | None,
) -> None:
    """Classify every pixel with a scoring function."""
    try:
        config = get_config()

        scoring_path = scoring_function or config.classifier.scoring_function
        if not scoring_path:
            raise ConfigurationError("No scoring function configured (use --scoring-function)")
        scoring_fn = load_scoring_function(scoring_path)

        if legend_path is None and config.classifier.legend_path:
            legend_path = Path(config.classifier.legend_path)
        legend = ClassLegend.from_yaml(legend_path) if legend_path else None

        operator = ScoreClassifierOperator(
            load_product(input_path),
            scoring_fn,
            legend=legend,
            input_bands=list(input_bands) or config.classifier.input_bands or None,
        )
        _run(operator, output, config, tile_size, workers)

    except (Exception, KeyboardInterrupt) as e:
        _report_failure(e)


@cli.command()
@click.argument("input_path", type=click.Path(exists=True, path_type=Path))
@click.option("--elevation-band", help="Band whose grid is measured")
def resolution(input_path: Path, elevation_band: str | None) -> None:
    """Show the pixel spacing of a product."""
    try:
        config = get_config()
        band = get_band(load_product(input_path), elevation_band or config.terrain.elevation_band_name)
        height, width = band.shape

        result = resolve_resolution(geocoding_from_raster(band), width, height)

        click.echo(f"Size: {width} x {height}")
        click.echo(f"Resolution: {result.meters_per_pixel:.3f} m/pixel ({result.method})")

    except Exception as e:
        _report_failure(e)


if __name__ == "__main__":
    cli()
