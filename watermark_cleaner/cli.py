"""
Watermark Cleaner CLI

Analyse or clean local PDF files without running the API.

Usage:
    pdf-watermark-cleaner analyze input.pdf [--settings settings.json]
    pdf-watermark-cleaner remove input.pdf output.pdf [--select 0 1] [--policy band]
    pdf-watermark-cleaner serve
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import get_settings
from .pipeline import (
    InvalidSettings,
    LoadError,
    ProcessingTimeout,
    RemovalPolicy,
    parse_candidates,
    parse_settings,
)
from .services.processing import ProcessingService

logger = logging.getLogger(__name__)
console = Console()


def configure_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, console=console)],
        force=True,
    )


def load_settings_file(path: Optional[Path]):
    """Read job settings from a JSON file, or use the defaults."""
    if path is None:
        return parse_settings(None)
    return parse_settings(path.read_text(encoding="utf-8"))


def cmd_analyze(args, service: ProcessingService) -> int:
    data = args.input.read_bytes()
    job_settings = load_settings_file(args.settings)

    result = service.analyze(data, job_settings)

    table = Table(title=f"Watermarks in {args.input.name}")
    table.add_column("#", justify="right")
    table.add_column("Type")
    table.add_column("Location")
    table.add_column("Pages")
    table.add_column("Content")

    for index, candidate in enumerate(result.candidates):
        table.add_row(
            str(index),
            candidate.type.value,
            candidate.location.value,
            ", ".join(str(p) for p in candidate.pages),
            candidate.content or "",
        )

    console.print(table)
    if result.skipped_pages:
        console.print(f"[yellow]Skipped pages: {result.skipped_pages}[/yellow]")

    if args.json:
        payload = [c.model_dump(by_alias=True, mode="json") for c in result.candidates]
        args.json.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        console.print(f"Candidates written to {args.json}")

    return 0


def cmd_remove(args, service: ProcessingService) -> int:
    data = args.input.read_bytes()
    job_settings = load_settings_file(args.settings)

    # Candidates come from a previous `analyze --json`, or are detected now
    if args.watermarks:
        candidates = parse_candidates(args.watermarks.read_text(encoding="utf-8"))
    else:
        candidates = service.analyze(data, job_settings).candidates

    def progress(current: int, total: int, message: str):
        console.print(f"[dim]{current}/{total}[/dim] {message}")

    outcome = service.remove_with_fallback(
        data,
        job_settings,
        candidates=candidates,
        selected_indices=args.select,
        policy=args.policy,
        progress_callback=progress,
    )

    args.output.write_bytes(outcome.pdf_bytes)

    if outcome.fallback:
        console.print(f"[bold yellow]Removal failed, original copied to {args.output}[/bold yellow]")
        console.print(f"[yellow]{outcome.error}[/yellow]")
        return 2

    console.print(
        f"[bold green]Cleaned {outcome.result.page_count} pages -> {args.output}[/bold green]"
    )
    return 0


def cmd_serve(args, service: ProcessingService) -> int:
    from .main import run
    run()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pdf-watermark-cleaner",
        description="Remove header, footer and center watermarks from PDFs",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze = subparsers.add_parser("analyze", help="List watermark candidates")
    analyze.add_argument("input", type=Path, help="PDF to analyse")
    analyze.add_argument("--settings", type=Path, help="Settings JSON file")
    analyze.add_argument("--json", type=Path, help="Write candidates to this JSON file")
    analyze.set_defaults(func=cmd_analyze)

    remove = subparsers.add_parser("remove", help="Write a cleaned copy of a PDF")
    remove.add_argument("input", type=Path, help="PDF to clean")
    remove.add_argument("output", type=Path, help="Where to write the cleaned PDF")
    remove.add_argument("--settings", type=Path, help="Settings JSON file")
    remove.add_argument("--watermarks", type=Path, help="Candidates JSON from `analyze --json`")
    remove.add_argument(
        "--select", type=int, nargs="*", help="Candidate indices to remove (default: all selected)"
    )
    remove.add_argument(
        "--policy",
        choices=[p.value for p in RemovalPolicy],
        help="How to clean header/footer bands",
    )
    remove.set_defaults(func=cmd_remove)

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.set_defaults(func=cmd_serve)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    service = ProcessingService(get_settings())

    try:
        return args.func(args, service)
    except InvalidSettings as e:
        console.print(f"[bold red]Invalid settings:[/bold red] {e}")
        return 1
    except LoadError as e:
        console.print(f"[bold red]Could not read PDF:[/bold red] {e}")
        return 1
    except ProcessingTimeout as e:
        console.print(f"[bold red]Timed out:[/bold red] {e}")
        return 1
    except OSError as e:
        console.print(f"[bold red]File error:[/bold red] {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
