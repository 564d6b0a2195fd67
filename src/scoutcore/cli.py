"""Command-line interface for ScoutCore."""

from __future__ import annotations

import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import Any, Optional

import click
import structlog
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from scoutcore import __version__
from scoutcore.config import Config, find_config_file
from scoutcore.container import DependencyContainer
from scoutcore.observability import configure_logging, start_metrics_server
from scoutcore.pipeline import ExtractOptions
from scoutcore.protocols import ExtractionResult, ProgressEvent, QueryCategory

console = Console()
logger = structlog.get_logger(__name__)


def _load_config(config_path: Optional[Path]) -> Config:
    """Load ``--config``, else a config file in the working directory, else defaults."""
    path = config_path or find_config_file()
    if path is not None:
        return Config.from_yaml(path)
    return Config()


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "-c", type=click.Path(exists=True), help="Configuration file path")
@click.option(
    "--log-level",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Logging level",
)
@click.pass_context
def cli(ctx: click.Context, config: Optional[str], log_level: str) -> None:
    """ScoutCore - adaptive multi-strategy data extraction."""
    ctx.ensure_object(dict)
    config_path = Path(config) if config else None
    loaded = _load_config(config_path)
    ctx.obj["config"] = loaded

    monitoring = loaded.monitoring.model_copy(update={"log_level": log_level})
    configure_logging(monitoring)


@cli.command()
@click.argument("text")
@click.option("--server-side", is_flag=True, help="Use only the remote extraction service")
@click.option("--json", "as_json", is_flag=True, help="Print the raw result as JSON")
@click.option("--timeout", type=float, default=None, help="Override the global timeout in seconds")
@click.pass_context
def query(ctx: click.Context, text: str, server_side: bool, as_json: bool, timeout: Optional[float]) -> None:
    """Extract data for a free-text query."""
    config: Config = ctx.obj["config"]
    start_metrics_server(config.monitoring)

    async def run() -> ExtractionResult:
        cancel_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, cancel_event.set)
        except (NotImplementedError, RuntimeError):
            logger.debug("Signal handlers unavailable, Ctrl-C will abort without a result")

        container = DependencyContainer(config=config)
        async with container.lifecycle():
            pipeline = await container.get_pipeline()
            options = ExtractOptions(force_server_side=server_side, cancel_event=cancel_event, timeout=timeout)
            if as_json:
                return await pipeline.extract_data(text, options)

            progress = Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
                TimeElapsedColumn(),
                console=console,
                transient=True,
            )
            with progress:
                task = progress.add_task("Starting", total=100)

                def on_event(event: ProgressEvent) -> None:
                    progress.update(task, completed=event.progress, description=event.message)

                unsubscribe = pipeline.on_progress(on_event)
                try:
                    return await pipeline.extract_data(text, options)
                finally:
                    unsubscribe()

    result = asyncio.run(run())

    if as_json:
        click.echo(result.to_json(indent=2))
    else:
        _print_result(result)
    if not result.success:
        sys.exit(1)


def _print_result(result: ExtractionResult) -> None:
    table = Table(show_header=False, box=None)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="white")

    data: Any = result.data.to_dict() if result.data is not None else {}
    for key, value in data.items():
        if key == "kind" or value is None:
            continue
        if isinstance(value, (dict, list)):
            value = json.dumps(value, ensure_ascii=False)
        table.add_row(key, str(value))
    table.add_row("source", result.source)
    table.add_row("time", f"{result.execution_time_ms} ms")

    if result.degraded:
        title, style = "Degraded result", "yellow"
        table.add_row("error", result.error or "")
    elif result.success:
        title, style = "Result", "green"
    else:
        title, style = "Failed", "red"
        table.add_row("error", result.error or "")

    console.print(Panel(table, title=title, border_style=style))


@cli.command()
@click.argument("text")
@click.pass_context
def classify(ctx: click.Context, text: str) -> None:
    """Show how a query is classified."""
    config: Config = ctx.obj["config"]

    async def run() -> Any:
        container = DependencyContainer(config=config)
        async with container.lifecycle():
            pipeline = await container.get_pipeline()
            return await pipeline.classifier.classify(text)

    analysis = asyncio.run(run())

    table = Table(title=f"Classification: {text}")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="magenta")
    for key, value in analysis.to_dict().items():
        table.add_row(key, ", ".join(value) if isinstance(value, list) else str(value))
    console.print(table)


@cli.command()
@click.argument("category", required=False)
@click.pass_context
def sources(ctx: click.Context, category: Optional[str]) -> None:
    """List catalog targets, optionally for one category."""
    from scoutcore.catalog import SourceCatalog

    config: Config = ctx.obj["config"]
    catalog = SourceCatalog.from_yaml(config.catalog_file) if config.catalog_file else SourceCatalog.default()

    if category:
        parsed = QueryCategory.parse(category)
        if parsed is None:
            raise click.BadParameter(f"unknown category {category!r}", param_hint="CATEGORY")
        targets = catalog.lookup(parsed)
    else:
        targets = catalog.all_targets()

    table = Table(title="Extraction targets")
    table.add_column("Name", style="cyan")
    table.add_column("Categories", style="magenta")
    table.add_column("API", justify="center")
    table.add_column("Selectors", justify="right")
    table.add_column("URL", style="dim")
    for target in targets:
        table.add_row(
            target.name,
            ", ".join(c.value for c in target.categories),
            "yes" if target.supports_direct_api else "-",
            str(len(target.selector_rules)),
            target.url,
        )
    console.print(table)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
