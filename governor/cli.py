"""Governor command line.

Usage:
    governor init
    governor intake --title "Loudness meter" --story "As a producer..."
    governor status [--item 42]
    governor advance --item 42 --to ready
    governor refine --item 42
    governor refine-tech --item 42
    governor plan --item 42
    governor deliver --item 42 [--command "dotnet build src/App --configuration Release --nologo"]

The process exits with the flow's exit code (see FlowExitCode).
"""

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from governor import __version__
from governor.config import FlowExitCode, GovernorSettings, ItemStatus
from governor.errors import BacklogParseError, ItemNotFoundError
from governor.repo import ensure_directories, validate_layout
from governor.state import BacklogFile, BacklogStore
from governor.telemetry import TelemetryConfig, init_telemetry, shutdown_telemetry
from governor.workflow.orchestrator import build_orchestrator

logger = logging.getLogger(__name__)

# Aliases for ``advance`` with a fixed target status
STEP_COMMANDS: dict[str, ItemStatus] = {
    "refine": ItemStatus.READY,
    "refine-tech": ItemStatus.READY_FOR_DEV,
    "plan": ItemStatus.IN_SPRINT,
    "deliver": ItemStatus.DONE,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="governor",
        description="Governed backlog flow: intake, refine, plan and deliver",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--workdir",
        "-w",
        type=str,
        default=".",
        help="Repository root (default: current directory)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init", help="Create missing directories and check the layout")

    intake = subparsers.add_parser("intake", help="Add a new candidate item")
    intake.add_argument("--title", required=True, help="Item title")
    intake.add_argument("--story", required=True, help="Item story")

    status = subparsers.add_parser("status", help="Show item statuses")
    status.add_argument("--item", type=int, help="Only show this item")

    advance = subparsers.add_parser("advance", help="Move an item one step forward")
    advance.add_argument("--item", type=int, required=True, help="Backlog item id")
    advance.add_argument(
        "--to",
        required=True,
        choices=ItemStatus.values(),
        help="Target status (must be the item's next status)",
    )
    _add_command_option(advance)

    for name, target in STEP_COMMANDS.items():
        step = subparsers.add_parser(name, help=f"Advance an item to '{target.value}'")
        step.add_argument("--item", type=int, required=True, help="Backlog item id")
        if target == ItemStatus.DONE:
            _add_command_option(step)

    return parser


def _add_command_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--command",
        dest="commands",
        action="append",
        default=None,
        help="Delivery command line (repeatable); defaults to the item's delivery block",
    )


def cmd_init(workdir: Path) -> int:
    for rel in ensure_directories(workdir):
        print(f"Created {rel}/")

    store = BacklogStore(workdir)
    if not store.backlog_path.exists():
        store.save_file(BacklogFile())
        print(f"Created {store.backlog_path.relative_to(workdir)}")

    problems = validate_layout(workdir)
    if problems:
        for problem in problems:
            print(problem)
        return FlowExitCode.INVALID_REPO_LAYOUT
    print("Layout OK")
    return FlowExitCode.SUCCESS


def cmd_intake(workdir: Path, title: str, story: str) -> int:
    if not title.strip():
        print("ERROR: --title must not be empty")
        return FlowExitCode.VALIDATION_FAILED
    try:
        item = BacklogStore(workdir).create_item(title, story)
    except BacklogParseError as e:
        print(f"ERROR: {e}")
        return FlowExitCode.BACKLOG_PARSE_ERROR
    print(f"Created item {item.id}: {item.title} ({item.status.value})")
    return FlowExitCode.SUCCESS


def cmd_status(workdir: Path, item_id: int | None) -> int:
    store = BacklogStore(workdir)
    try:
        items = [store.get(item_id)] if item_id is not None else store.load_file().backlog
    except ItemNotFoundError as e:
        print(f"ERROR: {e}")
        return FlowExitCode.ITEM_NOT_FOUND
    except BacklogParseError as e:
        print(f"ERROR: {e}")
        return FlowExitCode.BACKLOG_PARSE_ERROR

    for item in items:
        print(f"{item.id:>5}  {item.status.value:<14} {item.title}")
    return FlowExitCode.SUCCESS


def cmd_advance(
    workdir: Path,
    item_id: int,
    target: ItemStatus,
    commands: list[str] | None,
    settings: GovernorSettings,
) -> int:
    try:
        orchestrator = build_orchestrator(settings)
    except ValueError as e:
        print(f"ERROR: {e}")
        return FlowExitCode.VALIDATION_FAILED

    report = orchestrator.run(item_id, target, workdir, deliver_commands=commands)
    if report.succeeded:
        print(f"Item {item_id} -> {target.value}")
    else:
        print(f"Item {item_id} not advanced: {report.exit_code.name} ({int(report.exit_code)})")
        for reason in report.reasons:
            print(f"  - {reason}")
    return report.exit_code


def run(argv: list[str] | None = None) -> int:
    """Parse arguments and run a command; returns the exit code."""
    load_dotenv()
    args = build_parser().parse_args(argv)

    config = TelemetryConfig.from_env()
    if args.verbose:
        config.log_level = "DEBUG"
    init_telemetry(config)

    workdir = Path(args.workdir).resolve()
    settings = GovernorSettings.from_env()
    logger.debug(f"Running '{args.command}' in {workdir}")

    try:
        if args.command == "init":
            return int(cmd_init(workdir))
        if args.command == "intake":
            return int(cmd_intake(workdir, args.title, args.story))
        if args.command == "status":
            return int(cmd_status(workdir, args.item))

        target = STEP_COMMANDS.get(args.command) or ItemStatus.parse(args.to)
        return int(
            cmd_advance(workdir, args.item, target, getattr(args, "commands", None), settings)
        )
    finally:
        shutdown_telemetry()


def main() -> None:
    """CLI entry point."""
    sys.exit(run())


if __name__ == "__main__":
    main()
