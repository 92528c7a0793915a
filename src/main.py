"""
Main CLI interface for the OpenCost cloud cost exporter.

Provides commands to serve the Prometheus exporter, run a single scrape and
inspect the active configuration.
"""

import logging
import sys

import click

from .config.settings import load_settings
from .providers.base import ConfigurationError

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False):
    """Configure logging based on verbosity settings."""
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    logging.getLogger().setLevel(logging.DEBUG if verbose else logging.INFO)

    # Configure library loggers to reduce noise
    noisy_loggers = ["urllib3", "requests", "uvicorn.access"]

    for logger_name in noisy_loggers:
        logging.getLogger(logger_name).setLevel(logging.INFO if verbose else logging.WARNING)


@click.group()
@click.option("--config", "-c", type=click.Path(exists=True), help="Path to an extra settings file")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging and debug output")
@click.pass_context
def cli(ctx, config, verbose):
    """OpenCost Cloud Cost Exporter - serve OpenCost cloud costs as Prometheus metrics."""
    setup_logging(verbose)

    # Ensure context object exists
    ctx.ensure_object(dict)
    ctx.obj["config_file"] = config
    ctx.obj["verbose"] = verbose


def _load_settings(ctx):
    """Load settings once per invocation, exiting on configuration errors."""
    if "settings" not in ctx.obj:
        try:
            ctx.obj["settings"] = load_settings(ctx.obj.get("config_file"))
        except ConfigurationError as e:
            click.echo(f"Error loading configuration: {e}", err=True)
            sys.exit(1)
    return ctx.obj["settings"]


@cli.command()
@click.option("--host", default=None, help="Bind host (default: from LISTEN_ADDR)")
@click.option("--port", type=int, default=None, help="Bind port (default: from LISTEN_ADDR)")
@click.pass_context
def serve(ctx, host, port):
    """Serve /metrics, refreshing from OpenCost every REFRESH_INTERVAL."""
    import uvicorn

    from .api.exporter_service import create_app

    settings = _load_settings(ctx)
    host = host or settings.host
    port = port or settings.port

    app = create_app(settings)
    logger.info(f"listening on {host}:{port}")
    uvicorn.run(app, host=host, port=port, log_config=None)


@cli.command()
@click.option(
    "--output", "-o", type=click.Path(), help="Output file for metrics (default: print to stdout)"
)
@click.pass_context
def scrape(ctx, output):
    """Run a single scrape cycle and print the resulting metrics."""
    from prometheus_client import write_to_textfile

    from .export.prometheus import ExporterMetrics
    from .monitoring.scraper import CloudCostScraper

    settings = _load_settings(ctx)
    metrics = ExporterMetrics()
    scraper = CloudCostScraper(settings, metrics)
    try:
        result = scraper.run_cycle()
    finally:
        scraper.close()

    if output:
        write_to_textfile(output, metrics.registry)
        click.echo(f"✅ Metrics written to: {output}", err=True)
    else:
        click.echo(metrics.render().decode("utf-8"), nl=False)

    if not result.success:
        click.echo(f"❌ Scrape failed: {result.error}", err=True)
        sys.exit(1)


@cli.command()
@click.pass_context
def config_info(ctx):
    """Display current configuration information."""
    settings = _load_settings(ctx)

    click.echo("OpenCost Cloud Cost Exporter Configuration")
    click.echo("=" * 42)
    for key, value in settings.describe().items():
        click.echo(f"{key}={value}")


@cli.command()
def version():
    """Display version information."""
    from . import __version__

    click.echo(f"OpenCost Cloud Cost Exporter v{__version__}")


if __name__ == "__main__":
    cli()
