"""
stepwright - natural-language web test runner
Main entry point for the application.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from stepwright import __version__
from stepwright.browser.driver import PlaywrightBrowser
from stepwright.config.settings import get_settings
from stepwright.core.types import ExecutionRecord, StepProgress, TestCase
from stepwright.error_handling import ClassificationUnclassified
from stepwright.execution.classifier import StepClassifier, normalize_steps
from stepwright.monitoring.logger import get_logger, setup_logging
from stepwright.orchestration.communication import EventType
from stepwright.orchestration.coordinator import ExecutionService
from stepwright.orchestration.repository import load_test_case

console = Console()
logger = get_logger("main")

STATUS_STYLES = {
    "running": "cyan",
    "completed": "green",
    "passed": "bold green",
    "failed": "bold red",
}


def create_parser() -> argparse.ArgumentParser:
    """Create command line argument parser."""
    parser = argparse.ArgumentParser(
        prog="stepwright",
        description=f"stepwright - natural-language web test runner v{__version__}",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run a test case file
  stepwright run cases/checkout.json

  # Watch the browser while it runs
  stepwright run cases/checkout.json --no-headless

  # Show how steps are understood
  stepwright classify 'Navigate to "example.com"' 'Select 2nd product'

  # Clean up a pasted list of steps
  stepwright normalize steps.txt
        """,
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Show version information",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable structured logging output (JSON)",
    )

    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Execute a test case JSON file")
    run_parser.add_argument("case", type=Path, help='Path to {"id", "name", "steps"} JSON')
    run_parser.add_argument(
        "--no-headless",
        dest="headless",
        action="store_false",
        default=None,
        help="Show the browser window",
    )
    run_parser.add_argument(
        "--json",
        dest="as_json",
        action="store_true",
        help="Print the execution record as JSON",
    )
    run_parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Overall run timeout in seconds",
    )

    classify_parser = subparsers.add_parser("classify", help="Classify step strings")
    classify_parser.add_argument("steps", nargs="+", help="Step descriptions")
    classify_parser.add_argument(
        "--strict",
        action="store_true",
        help="Exit with an error if any step matches no rule",
    )

    normalize_parser = subparsers.add_parser("normalize", help="Normalize a block of steps")
    normalize_parser.add_argument("file", type=Path, help="Text file with one step per line")

    return parser


def show_version() -> int:
    """Show version information."""
    console.print("\n[bold cyan]stepwright[/bold cyan]")
    console.print(f"Version: [green]{__version__}[/green]")
    return 0


def _render_record(record: ExecutionRecord) -> None:
    table = Table(title=f"{record.test_case_name} ({record.execution_id})", show_lines=True)
    table.add_column("Step", style="cyan", width=6)
    table.add_column("Description", style="white")
    table.add_column("Status")
    table.add_column("Message", style="dim")
    table.add_column("Artifact", style="yellow")

    for result in record.step_results:
        style = STATUS_STYLES.get(result.status.value, "white")
        table.add_row(
            str(result.step_number),
            result.description,
            f"[{style}]{result.status.value}[/{style}]",
            result.message,
            result.artifact or "-",
        )

    console.print(table)
    style = STATUS_STYLES.get(record.status.value, "white")
    console.print(
        f"Status: [{style}]{record.status.value.upper()}[/{style}]"
        f"  Duration: {record.duration_ms or 0} ms"
    )


async def run_case(
    case_path: Path,
    headless: Optional[bool] = None,
    as_json: bool = False,
    timeout: Optional[float] = None,
) -> int:
    """
    Run one test case file.

    Returns:
        Exit code (0 for passed, 1 for failed)
    """
    try:
        test_case = load_test_case(case_path)
    except FileNotFoundError:
        console.print(f"[red]Error: Test case file not found: {case_path}[/red]")
        return 1
    except (json.JSONDecodeError, ValueError) as e:
        console.print(f"[red]Error: Invalid test case file: {e}[/red]")
        return 1

    service = ExecutionService(launcher=PlaywrightBrowser(headless=headless))

    async def on_progress(progress: StepProgress) -> None:
        if as_json:
            return
        style = STATUS_STYLES.get(progress.status.value, "white")
        console.print(
            f"[{style}][{progress.current_step}/{progress.total_steps}] "
            f"{progress.status.value}[/{style}] {progress.step_description}"
        )

    if not as_json:
        console.print(Panel.fit(
            f"[bold cyan]{test_case.name}[/bold cyan]\n{len(test_case.steps)} steps",
            border_style="cyan",
        ))

    try:
        execution_id = await service.run_test_case(test_case)
        service.subscribe(EventType.STEP_PROGRESS, on_progress, execution_id=execution_id)
        record = await service.wait_for(execution_id, timeout=timeout)
    except asyncio.TimeoutError:
        console.print(f"[red]Run did not finish within {timeout} seconds[/red]")
        return 1
    finally:
        await service.shutdown()

    if as_json:
        print(record.model_dump_json(indent=2))
    else:
        _render_record(record)

    return 0 if record.status.value == "passed" else 1


def classify_steps(steps: List[str], strict: bool = False) -> int:
    classifier = StepClassifier()
    table = Table(title="Classified Steps")
    table.add_column("Step", style="white")
    table.add_column("Intent", style="green")
    table.add_column("Fields", style="yellow")

    unmatched = []
    for step in steps:
        try:
            intent = classifier.classify_strict(step)
        except ClassificationUnclassified as e:
            unmatched.append(e.raw_text)
            intent = classifier.classify(step)
        fields = intent.model_dump(exclude={"kind"})
        table.add_row(step, intent.kind, json.dumps(fields) if fields else "-")

    console.print(table)
    if strict and unmatched:
        console.print(f"[red]{len(unmatched)} step(s) matched no rule[/red]")
        return 1
    return 0


def normalize_file(path: Path) -> int:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        console.print(f"[red]Error: File not found: {path}[/red]")
        return 1

    for index, step in enumerate(normalize_steps(text), 1):
        console.print(f"{index}. {step}")
    return 0


async def async_main(args: Optional[List[str]] = None) -> int:
    """Async main entry point."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if parsed_args.version:
        return show_version()

    settings = get_settings()
    setup_logging(
        log_level="DEBUG" if parsed_args.debug else settings.log_level,
        log_format="json" if parsed_args.verbose else settings.log_format,
        log_file=settings.log_file,
    )

    if parsed_args.command == "run":
        return await run_case(
            parsed_args.case,
            headless=parsed_args.headless,
            as_json=parsed_args.as_json,
            timeout=parsed_args.timeout,
        )
    if parsed_args.command == "classify":
        return classify_steps(parsed_args.steps, strict=parsed_args.strict)
    if parsed_args.command == "normalize":
        return normalize_file(parsed_args.file)

    parser.print_help()
    return 1


def main(args: Optional[List[str]] = None) -> int:
    """
    Main entry point for stepwright.

    Args:
        args: Command line arguments

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    try:
        return asyncio.run(async_main(args))
    except Exception as e:
        console.print(f"[red]Fatal error: {e}[/red]")
        return 1


if __name__ == "__main__":
    sys.exit(main())
