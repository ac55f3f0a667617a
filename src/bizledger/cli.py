"""Command-line entry points for the bizledger toolkit.

All orchestration in this module is limited to argparse wiring, resolving
the owner a command runs for, and printing JSON payloads. Aggregation lives
in the business layer so the same parser configuration can be reused by
tests, scripts, or an HTTP front-end.
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence, TextIO

from . import core_logic, log
from .constants import TOP_CLIENTS_BY_ITEMS
from .reporting import ReportGenerationError


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="bizledger-cli",
        description="Reporting tools for the bizledger workbook.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to the nearest config.ini at or above the working directory).",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    read_specs = register_read_commands(subparsers)
    return build_command_table(read_specs.values())


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare the reporting commands."""
    specs = {
        "report": register_report_command(subparsers),
        "dashboard": register_dashboard_command(subparsers),
        "clients": register_clients_command(subparsers),
        "top-clients": register_top_clients_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def _add_owner_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--owner",
        dest="owner",
        default=None,
        help="Owner id to report on (defaults to DefaultOwner in config.ini).",
    )


def register_report_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``report``."""
    name = "report"
    help_text = "Print the full analytical report for an owner."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_owner_argument(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_report)


def register_dashboard_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``dashboard``."""
    name = "dashboard"
    help_text = "Print revenue, expense, and net profit totals."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_owner_argument(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_dashboard)


def register_clients_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``clients``."""
    name = "clients"
    help_text = "List clients with their total spend and purchase count."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_owner_argument(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_clients)


def register_top_clients_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``top-clients``."""
    name = "top-clients"
    help_text = "Rank clients by the subtotals of the items they bought."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_owner_argument(parser)
        parser.add_argument("--limit", type=int, default=TOP_CLIENTS_BY_ITEMS)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_top_clients)


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations.

    Without an explicit path the data layer searches for ``config.ini`` from
    the working directory upward.
    """
    return core_logic.load_runtime_context(config_path)


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


def encode_json_value(value: Any) -> Any:
    """``json.dumps`` hook rendering decimals as plain JSON numbers."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def emit_payload(payload: Any, stream: Optional[TextIO] = None) -> None:
    """Write ``payload`` as indented JSON to ``stream`` (stdout by default)."""
    target = stream if stream is not None else sys.stdout
    target.write(json.dumps(payload, default=encode_json_value, ensure_ascii=False, indent=2))
    target.write("\n")


def run_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the full report workflow."""
    owner_id = core_logic.resolve_owner(context, args.owner)
    report = core_logic.build_report(context, owner_id)
    emit_payload(report.as_payload())
    return 0


def run_dashboard(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the dashboard totals workflow."""
    owner_id = core_logic.resolve_owner(context, args.owner)
    summary = core_logic.calculate_dashboard(context, owner_id)
    emit_payload(summary.as_payload())
    return 0


def run_clients(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the client listing workflow."""
    owner_id = core_logic.resolve_owner(context, args.owner)
    summaries = core_logic.summarize_clients(context, owner_id)
    emit_payload([summary.as_payload() for summary in summaries])
    return 0


def run_top_clients(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the item-subtotal client ranking workflow."""
    owner_id = core_logic.resolve_owner(context, args.owner)
    ranking = core_logic.rank_clients_by_items(context, owner_id, limit=args.limit)
    emit_payload([entry.as_payload() for entry in ranking])
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, ReportGenerationError):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    log.error("%s", error)
    return 1


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        core_logic.ensure_schema_version(context)
        return dispatch_command(context, args, command_table)
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
