"""Plan management commands: create, view, save, and list plans and tasks."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from .config import LoopSettings
from .constants import DESCRIPTION_PREVIEW_CHARS, OVERVIEW_PREVIEW_CHARS
from .errors import LoopError, NoTasksInPlan, PlanNotFound
from .models import CommandResult
from .plan import list_plan_files, load_plan, parse_plan, read_plan_file, resolve_plan_file, write_plan_file
from .utils import _truncate


def select_plan_file(
    settings: LoopSettings,
    *,
    name: Optional[str] = None,
    file: Optional[str] = None,
) -> str:
    """Pick the plan file for a command: `name` wins over `file`, then the default plan."""
    if name:
        return resolve_plan_file(name, settings.plan_dir)
    return file or settings.default_plan_file


def plan_not_found_message(project_dir: Path, plan_file: str, settings: LoopSettings) -> str:
    """Describe a missing plan file and suggest the plans that do exist."""
    message = f"No plan file found at {plan_file}."
    available = list_plan_files(project_dir, settings.plan_dir)
    if available:
        names = ", ".join(name for name, _ in available)
        message += f"\n\nAvailable plans: {names}"
        message += "\n\nUse one of these with --name, or create a new plan with `plan-loop plan create`."
    else:
        message += f"\n\nNo plans found in {settings.plan_dir}/. Use `plan-loop plan create` to create one."
    return message


def _failure(project_dir: Path, settings: LoopSettings, exc: LoopError) -> CommandResult:
    if isinstance(exc, PlanNotFound):
        return CommandResult(False, plan_not_found_message(project_dir, exc.plan_file, settings), exc.error_type)
    return CommandResult(False, exc.message, exc.error_type)


def _target_for_create(
    settings: LoopSettings,
    name: Optional[str],
    description: Optional[str],
    file: Optional[str],
) -> str:
    # file > name > description > default plan name
    if file:
        return file
    base = name or description
    return resolve_plan_file(base, settings.plan_dir) if base else settings.default_plan_file


def create_plan(
    project_dir: Path,
    settings: LoopSettings,
    *,
    name: Optional[str] = None,
    description: Optional[str] = None,
    file: Optional[str] = None,
) -> CommandResult:
    """Resolve where a new plan would be written, refusing if it already exists."""
    plan_file = _target_for_create(settings, name, description, file)
    if read_plan_file(project_dir, plan_file) is not None:
        return CommandResult(
            False,
            f"Plan file already exists at {plan_file}. View it with `plan-loop plan view`, "
            "or delete it first to create a new one.",
            "plan_exists",
        )
    return CommandResult(
        True,
        f"""Ready to create plan.

Target file: {plan_file}

Write the plan content, then save it with:
  plan-loop plan save --file '{plan_file}' --content-file <path>""",
    )


def save_plan(
    project_dir: Path,
    settings: LoopSettings,
    content: Optional[str],
    *,
    name: Optional[str] = None,
    description: Optional[str] = None,
    file: Optional[str] = None,
) -> CommandResult:
    """Write a new plan file; never overwrites an existing one."""
    if not content or not content.strip():
        return CommandResult(False, "Error: No content provided. Pass the plan content to save.", "empty_content")
    plan_file = _target_for_create(settings, name, description, file)
    if read_plan_file(project_dir, plan_file) is not None:
        return CommandResult(
            False,
            f"Plan file already exists at {plan_file}. Delete it first to create a new one, "
            "or use a different filename.",
            "plan_exists",
        )
    write_plan_file(project_dir, plan_file, content)
    return CommandResult(
        True,
        f"""Saved plan to {plan_file}

You can now use:
- plan-loop tasks: List all tasks
- plan-loop start: Start the loop with this plan
- plan-loop task <num>: Execute a single task""",
    )


def view_plan(
    project_dir: Path,
    settings: LoopSettings,
    *,
    name: Optional[str] = None,
    description: Optional[str] = None,
    file: Optional[str] = None,
) -> CommandResult:
    plan_file = _target_for_create(settings, name, description, file)
    try:
        _, plan = load_plan(project_dir, plan_file)
    except LoopError as exc:
        return _failure(project_dir, settings, exc)

    output = f"📋 Plan: {plan.title or plan_file}\n\n"
    if plan.overview:
        output += f"Overview: {_truncate(plan.overview, OVERVIEW_PREVIEW_CHARS)}\n\n"
    output += f"Tasks ({plan.completed_count}/{len(plan.tasks)} complete):\n"
    for index, task in enumerate(plan.tasks, start=1):
        mark = "✓" if task.completed else "○"
        output += f"  {index}. {mark} {task.title}\n"
    if plan.completion_promise:
        output += f"\nCompletion promise: {plan.completion_promise}"
    return CommandResult(True, output)


def plan_progress(project_dir: Path, settings: LoopSettings) -> list[dict[str, object]]:
    """Return one `{name, path, completed, total}` record per plan file."""
    records: list[dict[str, object]] = []
    for name, path in list_plan_files(project_dir, settings.plan_dir):
        content = read_plan_file(project_dir, path)
        record: dict[str, object] = {"name": name, "path": path, "completed": None, "total": None}
        if content is not None:
            plan = parse_plan(content)
            record["completed"] = plan.completed_count
            record["total"] = len(plan.tasks)
        records.append(record)
    return records


def list_plans(project_dir: Path, settings: LoopSettings) -> CommandResult:
    records = plan_progress(project_dir, settings)
    if not records:
        return CommandResult(
            True,
            f'No plans found in {settings.plan_dir}/.\n\nCreate a plan with: plan-loop plan create --name "my-plan"',
        )
    output = f"📋 Available plans in {settings.plan_dir}/\n\n"
    for record in records:
        total = record["total"]
        if total is None:
            output += f"• {record['name']}\n"
            continue
        progress = f"{record['completed']}/{total} tasks" if total else "no tasks"
        output += f"• {record['name']} ({progress})\n"
    output += "\nUsage:\n"
    output += '• plan-loop tasks --name "plan-name"   List tasks in a plan\n'
    output += '• plan-loop task 1 --name "plan-name"  Execute task #1\n'
    output += '• plan-loop start --name "plan-name"   Start loop for all tasks'
    return CommandResult(True, output)


def list_tasks(
    project_dir: Path,
    settings: LoopSettings,
    *,
    name: Optional[str] = None,
    file: Optional[str] = None,
) -> CommandResult:
    plan_file = select_plan_file(settings, name=name, file=file)
    try:
        _, plan = load_plan(project_dir, plan_file, require_tasks=True)
    except (PlanNotFound, NoTasksInPlan) as exc:
        return _failure(project_dir, settings, exc)

    output = f"📋 Tasks from {plan_file}\n\n"
    output += f"Progress: {plan.completed_count}/{len(plan.tasks)} complete\n\n"
    for index, task in enumerate(plan.tasks, start=1):
        checkbox = "[x]" if task.completed else "[ ]"
        output += f"{index:>2}. {checkbox} {task.title}\n"
        if task.description:
            first_line = task.description.split("\n")[0]
            output += f"       {_truncate(first_line, DESCRIPTION_PREVIEW_CHARS)}\n"
    output += "\nCommands:\n"
    output += "- plan-loop task 1       Execute task #1\n"
    output += '- plan-loop task "name"  Execute task by name\n'
    output += "- plan-loop start        Start loop for all tasks"
    return CommandResult(True, output)
