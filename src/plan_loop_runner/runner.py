#!/usr/bin/env python3
"""Provide the CLI entrypoint and subcommands for Plan Loop Runner.

Each subcommand maps onto one `LoopController` or `plan_tools` operation. The
`idle` subcommand delivers a "session idle" signal the way a host would.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Optional

from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import load_settings
from .constants import DEFAULT_PLAN_FILE, STATE_DIR_NAME
from .controller import LoopController
from .errors import LoopError
from .host import CliHost
from .models import CommandResult, LoopMode, PlanDocument
from .plan import load_plan
from .plan_tools import create_plan, list_plans, list_tasks, save_plan, select_plan_file, view_plan


def _configure_logging(level: str = "INFO") -> None:
    """Configure loguru logger with the specified level."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{module}</cyan>:<cyan>{line}</cyan>\n"
            "{message}"
        ),
    )


# Initialize with default level; will be reconfigured in main() based on CLI args
_configure_logging()


def _base_parser(description: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=f"Plan Loop Runner - {description}")
    parser.add_argument(
        "--project-dir",
        type=Path,
        default=Path("."),
        help="Project directory (default: current directory)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO)",
    )
    return parser


def _add_plan_selector(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--name",
        type=str,
        default=None,
        help=f"Plan name (e.g. 'rest-api' or 'My API'), resolved to {STATE_DIR_NAME}/plans/<slug>.md",
    )
    parser.add_argument(
        "--file",
        type=str,
        default=None,
        help=f"Plan file path (default: {DEFAULT_PLAN_FILE})",
    )


def _add_session_id(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--session-id",
        type=str,
        default=None,
        help="Host session the loop re-prompts",
    )


def _build_plan_parser() -> argparse.ArgumentParser:
    parser = _base_parser("create, view, or save a plan file")
    parser.add_argument(
        "action",
        nargs="?",
        default="create",
        choices=["create", "view", "save"],
        help="create: print the target path; view: summarize the plan; save: write new plan content",
    )
    _add_plan_selector(parser)
    parser.add_argument(
        "--description",
        type=str,
        default=None,
        help="Project description (used for the filename when --name is absent)",
    )
    parser.add_argument(
        "--content-file",
        type=str,
        default=None,
        help="File holding the plan content to save ('-' reads stdin)",
    )
    return parser


def _build_plans_parser() -> argparse.ArgumentParser:
    return _base_parser("list plan files")


def _build_tasks_parser() -> argparse.ArgumentParser:
    parser = _base_parser("list the tasks of a plan")
    _add_plan_selector(parser)
    parser.add_argument(
        "--table",
        action="store_true",
        help="Render the tasks as a table",
    )
    return parser


def _build_start_parser() -> argparse.ArgumentParser:
    parser = _base_parser("start a loop over every pending task of a plan")
    _add_plan_selector(parser)
    _add_session_id(parser)
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=None,
        help="Maximum iterations (default: from config, 0 = unlimited)",
    )
    return parser


def _build_task_parser() -> argparse.ArgumentParser:
    parser = _base_parser("execute a single task once, without a loop or a commit")
    parser.add_argument("task", type=str, help="Task number (1, 2, 3...) or task name/keyword")
    _add_plan_selector(parser)
    _add_session_id(parser)
    return parser


def _build_complete_parser() -> argparse.ArgumentParser:
    parser = _base_parser("mark a task complete")
    parser.add_argument("task", type=str, help="Task number (1, 2, 3...) or task name")
    _add_plan_selector(parser)
    return parser


def _build_loop_parser() -> argparse.ArgumentParser:
    parser = _base_parser("start a loop that resends the same prompt until done")
    parser.add_argument("prompt", type=str, help="Prompt resent on every iteration")
    _add_session_id(parser)
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=None,
        help="Maximum iterations (default: from config, 0 = unlimited)",
    )
    parser.add_argument(
        "--completion-promise",
        type=str,
        default=None,
        help="Phrase that ends the loop when output as <promise>PHRASE</promise>",
    )
    return parser


def _build_cancel_parser() -> argparse.ArgumentParser:
    return _base_parser("cancel the active loop")


def _build_status_parser() -> argparse.ArgumentParser:
    parser = _base_parser("show the active loop")
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print machine-readable JSON",
    )
    return parser


def _build_check_parser() -> argparse.ArgumentParser:
    parser = _base_parser("check text for the active loop's completion promise")
    parser.add_argument("text", type=str, help="Text to check ('-' reads stdin)")
    return parser


def _build_idle_parser() -> argparse.ArgumentParser:
    parser = _base_parser("deliver a session idle signal to the active loop")
    _add_session_id(parser)
    parser.add_argument(
        "--transcript",
        type=Path,
        default=None,
        help="Session transcript (JSON array or JSON lines) scanned for the completion promise",
    )
    return parser


def _emit(result: CommandResult) -> int:
    stream = sys.stdout if result.ok else sys.stderr
    stream.write(result.message.rstrip("\n") + "\n")
    return 0 if result.ok else 1


def _read_arg_text(value: str) -> str:
    if value == "-":
        return sys.stdin.read()
    return value


def _task_table(plan: PlanDocument, title: str, current_num: Optional[int] = None) -> Table:
    table = Table(title=title)
    table.add_column("#", justify="right")
    table.add_column("Status")
    table.add_column("Task")
    table.add_column("Description")
    for index, task in enumerate(plan.tasks, start=1):
        status = "[green]done[/green]" if task.completed else "pending"
        title_markup = escape(task.title)
        name = f"[bold]{title_markup}[/bold]" if index == current_num else title_markup
        table.add_row(str(index), status, name, escape(task.description.split("\n")[0]))
    return table


def _plan_command(
    project_dir: Path,
    action: str,
    *,
    name: Optional[str],
    description: Optional[str],
    file: Optional[str],
    content_file: Optional[str],
) -> int:
    settings = load_settings(project_dir)
    if action == "view":
        return _emit(view_plan(project_dir, settings, name=name, description=description, file=file))
    if action == "save":
        content = None
        if content_file == "-":
            content = sys.stdin.read()
        elif content_file:
            try:
                content = Path(content_file).read_text(encoding="utf-8")
            except OSError as exc:
                sys.stderr.write(f"Cannot read {content_file}: {exc}\n")
                return 1
        return _emit(save_plan(project_dir, settings, content, name=name, description=description, file=file))
    return _emit(create_plan(project_dir, settings, name=name, description=description, file=file))


def _tasks_command(project_dir: Path, *, name: Optional[str], file: Optional[str], table: bool) -> int:
    settings = load_settings(project_dir)
    if not table:
        return _emit(list_tasks(project_dir, settings, name=name, file=file))
    plan_file = select_plan_file(settings, name=name, file=file)
    try:
        _, plan = load_plan(project_dir, plan_file, require_tasks=True)
    except LoopError:
        # Fall back to the descriptive text for the error case.
        return _emit(list_tasks(project_dir, settings, name=name, file=file))
    Console().print(_task_table(plan, f"{plan_file} ({plan.completed_count}/{len(plan.tasks)} complete)"))
    return 0


def _status_command(controller: LoopController, *, as_json: bool = False) -> int:
    if as_json:
        sys.stdout.write(json.dumps(controller.status_payload(), indent=2, sort_keys=True) + "\n")
        return 0

    result = controller.status()
    _emit(result)
    state = controller.store.read()
    if state is not None and state.mode != LoopMode.LEGACY_DIRECT and state.plan_file:
        try:
            _, plan = load_plan(controller.project_dir, state.plan_file)
        except LoopError as exc:
            sys.stdout.write(f"Plan unavailable: {exc.message}\n")
            return 0
        Console().print(_task_table(plan, state.plan_file, state.current_task_num))
    return 0


def _idle_command(controller: LoopController, session_id: Optional[str]) -> int:
    decision = controller.handle_idle(session_id)
    if decision is None:
        return 0
    logger.info("Idle handled: {}", decision.outcome.value)
    return 0


def main(argv: list[str] | None = None) -> None:
    """Run the `plan-loop` CLI.

    Args:
        argv: Optional argument list (excluding the executable name). When omitted,
            uses `sys.argv[1:]`.

    Raises:
        SystemExit: Raised to return a process exit code for every subcommand.
    """
    argv = list(sys.argv[1:] if argv is None else argv)
    commands = {
        "plan": _build_plan_parser,
        "plans": _build_plans_parser,
        "tasks": _build_tasks_parser,
        "start": _build_start_parser,
        "task": _build_task_parser,
        "complete": _build_complete_parser,
        "loop": _build_loop_parser,
        "cancel": _build_cancel_parser,
        "status": _build_status_parser,
        "check": _build_check_parser,
        "idle": _build_idle_parser,
    }
    if not argv or argv[0] not in commands:
        sys.stderr.write("usage: plan-loop {" + ",".join(commands) + "} ...\n")
        raise SystemExit(2)

    command = argv[0]
    args = commands[command]().parse_args(argv[1:])
    _configure_logging(args.log_level)
    project_dir = args.project_dir.resolve()

    if command == "plan":
        raise SystemExit(
            _plan_command(
                project_dir,
                args.action,
                name=args.name,
                description=args.description,
                file=args.file,
                content_file=args.content_file,
            )
        )
    if command == "plans":
        raise SystemExit(_emit(list_plans(project_dir, load_settings(project_dir))))
    if command == "tasks":
        raise SystemExit(_tasks_command(project_dir, name=args.name, file=args.file, table=bool(args.table)))

    host = CliHost(transcript_path=getattr(args, "transcript", None))
    controller = LoopController(project_dir, host)
    if command == "start":
        raise SystemExit(
            _emit(
                controller.start_plan_loop(
                    name=args.name,
                    file=args.file,
                    max_iterations=args.max_iterations,
                    session_id=args.session_id,
                )
            )
        )
    if command == "task":
        raise SystemExit(
            _emit(controller.start_single_task(args.task, name=args.name, file=args.file, session_id=args.session_id))
        )
    if command == "complete":
        raise SystemExit(_emit(controller.mark_complete(args.task, name=args.name, file=args.file)))
    if command == "loop":
        raise SystemExit(
            _emit(
                controller.start_direct_loop(
                    args.prompt,
                    max_iterations=args.max_iterations,
                    completion_promise=args.completion_promise,
                    session_id=args.session_id,
                )
            )
        )
    if command == "cancel":
        raise SystemExit(_emit(controller.cancel()))
    if command == "status":
        raise SystemExit(_status_command(controller, as_json=bool(args.json)))
    if command == "check":
        raise SystemExit(_emit(controller.check_completion(_read_arg_text(args.text))))
    raise SystemExit(_idle_command(controller, args.session_id))


if __name__ == "__main__":
    main()
