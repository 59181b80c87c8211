#!/usr/bin/env python3
"""
pdfshrink - CLI Interface

Compress PDFs by level or to a target size with a cascade of strategies.

Usage:
    pdfshrink compress input.pdf --level high
    pdfshrink compress *.pdf --target 800KB --output-dir out/
    pdfshrink estimate 10MB --target 1MB
"""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from pdfshrink import (
    BatchFailure,
    BatchRunner,
    CompressionIntent,
    CompressionOrchestrator,
    CompressorConfig,
    SourceDocument,
    ValidationError,
    deliver,
)
from pdfshrink.estimator import StrategyFamily, compression_ratio, derive_parameters, pages_to_keep
from pdfshrink.notifications import NotificationKind
from pdfshrink.utils import format_size, parse_size

console = Console()
# Log output; stdout is reserved for results
err_console = Console(stderr=True)

NOTIFICATION_STYLES = {
    NotificationKind.INFO: "blue",
    NotificationKind.SUCCESS: "green",
    NotificationKind.WARNING: "yellow",
    NotificationKind.ERROR: "red",
}


def create_progress_bar():
    """Create a rich progress bar."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        console=console,
    )


def configure_logging(verbose: bool):
    """Route pdfshrink logs through rich when --verbose is given."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )


def build_intent(level: Optional[str], target: Optional[str]) -> CompressionIntent:
    """Turn the --level/--target options into a CompressionIntent."""
    if level and target:
        raise click.UsageError("Use either --level or --target, not both.")
    if target:
        try:
            return CompressionIntent(target_bytes=parse_size(target))
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="--target")
    return CompressionIntent.from_level(level or "medium")


def print_notifications(items):
    for notification in items:
        style = NOTIFICATION_STYLES.get(notification.kind, "white")
        console.print(f"[{style}]{notification.message}[/{style}]")


@click.group(invoke_without_command=True)
@click.version_option(package_name="pdfshrink")
@click.pass_context
def cli(ctx):
    """pdfshrink - Compress PDFs by level or to a target size."""
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.argument("input_files", nargs=-1, type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--level", "-l",
    type=click.Choice(["low", "medium", "high"]),
    help="Compression level (default: medium)",
)
@click.option(
    "--target", "-t",
    help="Target file size (e.g., 800KB, 1.5MB); may remove pages",
)
@click.option(
    "--output-dir", "-d",
    type=click.Path(file_okay=False),
    default=".",
    show_default=True,
    help="Directory for compressed files",
)
@click.option(
    "--bundle/--no-bundle",
    default=True,
    help="Bundle several outputs into one ZIP file (default: bundle)",
)
@click.option(
    "--no-placeholders",
    is_flag=True,
    help="Fail an attempt instead of substituting placeholder pages",
)
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    help="Abandon a single strategy attempt after this many seconds",
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Enable verbose output",
)
@click.option(
    "--json-output", "-j",
    is_flag=True,
    help="Output results as JSON",
)
def compress(
    input_files: tuple,
    level: Optional[str],
    target: Optional[str],
    output_dir: str,
    bundle: bool,
    no_placeholders: bool,
    timeout: Optional[float],
    verbose: bool,
    json_output: bool,
):
    """Compress one or more PDF files."""
    if not input_files:
        console.print("[red]No input files specified[/red]")
        sys.exit(1)

    configure_logging(verbose)
    intent = build_intent(level, target)
    config = CompressorConfig(
        allow_placeholder_fallback=not no_placeholders,
        attempt_timeout=timeout,
    )
    files = [SourceDocument.from_path(path) for path in input_files]
    runner = BatchRunner(CompressionOrchestrator(config=config))

    if not json_output:
        console.print(Panel(
            f"[bold blue]pdfshrink[/bold blue]\n"
            f"Files: {len(files)}\n"
            f"Mode: {intent.describe()}",
            title="Compression Job",
        ))

    try:
        if json_output:
            result = runner.run(files, intent)
        else:
            with create_progress_bar() as progress:
                task = progress.add_task("Initializing...", total=100)

                def progress_callback(stage: str, percentage: int):
                    progress.update(task, description=stage, completed=percentage)

                result = runner.run(files, intent, progress_callback=progress_callback)
                progress.update(task, completed=100, description="Complete")
    except ValidationError as e:
        if json_output:
            click.echo(json.dumps({"success": False, "error": e.message}, indent=2))
        else:
            console.print(f"[bold red]Error: {e.message}[/bold red]")
        sys.exit(1)
    except BatchFailure as e:
        if json_output:
            payload = e.result.to_dict() if e.result else {"success": False}
            payload["error"] = e.message
            click.echo(json.dumps(payload, indent=2))
        else:
            if e.result:
                print_notifications(e.result.notifications)
            else:
                console.print(f"[bold red]Error: {e.message}[/bold red]")
        sys.exit(1)

    output_path = Path(output_dir)
    if bundle:
        delivery = deliver(result.records, output_path, config=config)
        written = delivery.paths
        extra_notifications = delivery.notifications
    else:
        delivery = None
        written = []
        extra_notifications = []
        for record in result.records:
            written.extend(deliver([record], output_path, config=config).paths)

    if json_output:
        payload = result.to_dict()
        payload["outputs"] = [str(path) for path in written]
        payload["bundled"] = bool(delivery and delivery.bundled)
        payload["notifications"].extend(n.to_dict() for n in extra_notifications)
        click.echo(json.dumps(payload, indent=2))
        return

    table = Table(title="Compression Results")
    table.add_column("File", style="cyan")
    table.add_column("Original", style="white")
    table.add_column("Compressed", style="green")
    table.add_column("Reduction", style="green")
    table.add_column("Pages", style="white")
    table.add_column("Method", style="magenta")

    for record in result.records:
        pages = str(record.page_count)
        if record.original.page_count and record.original.page_count != record.page_count:
            pages = f"{record.original.page_count} -> {record.page_count}"
        table.add_row(
            record.original.name,
            format_size(record.original.size),
            format_size(record.compressed_size),
            f"{record.compression_ratio_percent:.1f}%",
            pages,
            record.strategy_id.value,
        )

    console.print(table)

    metrics = result.metrics
    console.print(
        f"Space saved: [bold]{format_size(metrics.bytes_saved)}[/bold] "
        f"({metrics.overall_efficiency_percent:.1f}% overall, "
        f"{metrics.average_elapsed_millis:.0f}ms per file)"
    )
    print_notifications(result.notifications)
    print_notifications(extra_notifications)

    for path in written:
        console.print(f"[bold green]Saved to: {path}[/bold green]")


@cli.command()
@click.argument("source_size")
@click.option(
    "--level", "-l",
    type=click.Choice(["low", "medium", "high"]),
    help="Compression level (default: medium)",
)
@click.option(
    "--target", "-t",
    help="Target file size (e.g., 800KB)",
)
@click.option(
    "--pages", "-p",
    type=click.IntRange(min=1),
    default=1,
    show_default=True,
    help="Page count of the source document",
)
@click.option(
    "--json-output", "-j",
    is_flag=True,
    help="Output as JSON",
)
def estimate(source_size: str, level: Optional[str], target: Optional[str], pages: int, json_output: bool):
    """Show the parameters each strategy would use for a document of SOURCE_SIZE."""
    try:
        size_bytes = parse_size(source_size)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="SOURCE_SIZE")
    intent = build_intent(level, target)

    rows = {}
    for family in StrategyFamily:
        params = derive_parameters(intent, size_bytes, family)
        row = params.to_dict()
        row["pages_kept"] = pages_to_keep(pages, params.page_retention_fraction)
        rows[family.value] = row

    if json_output:
        payload = {"source_size": size_bytes, "mode": intent.describe(), "strategies": rows}
        if intent.has_target:
            payload["ratio"] = round(compression_ratio(intent.target_bytes, size_bytes), 4)
        click.echo(json.dumps(payload, indent=2))
        return

    table = Table(title=f"Parameters for {format_size(size_bytes)} ({intent.describe()})")
    table.add_column("Strategy family", style="cyan")
    table.add_column("Quality", style="green")
    table.add_column("Scale", style="green")
    table.add_column("Pages kept", style="green")

    for name, row in rows.items():
        table.add_row(
            name,
            f"{row['image_quality']:.2f}",
            f"{row['geometric_scale']:.3f}",
            f"{row['pages_kept']}/{pages}",
        )

    console.print(table)


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
