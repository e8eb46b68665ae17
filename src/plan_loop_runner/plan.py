"""Parse plan markdown into tasks and write checkbox changes back surgically.

Plan grammar, one line at a time, first match wins:

    # Title                          -> title (first one only)
    completion_promise: PHRASE       -> completion promise (first one only;
                                        matching outer quotes are dropped)
    ## Overview / ## Anything        -> section marker
    <overview text>                  -> captured while inside ## Overview
    [N.] [-] [ ]|[x]|[X] [**]Title   -> task
    <2+ spaces or a tab>text         -> description of the open task
    anything else                    -> kept in raw_content only
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from loguru import logger

from .constants import DEFAULT_PLAN_DIR
from .errors import NoTasksInPlan, PlanNotFound, TaskNotFound
from .io_utils import _atomic_write_text, _read_text
from .models import PlanDocument, PlanTask, TaskStatus
from .utils import slugify

_TITLE_RE = re.compile(r"^#\s+(?P<title>.+)$")
_PROMISE_RE = re.compile(
    r"completion[_-]?promise:\s*(?P<quote>[\"']?)(?P<promise>.+?)(?P=quote)\s*(?:-->)?\s*$",
    re.IGNORECASE,
)
_SECTION_RE = re.compile(r"^##\s+(?P<name>.+)$")
_OVERVIEW_RE = re.compile(r"^overview\b", re.IGNORECASE)
_TASK_RE = re.compile(
    r"^(?:\d+\.\s+)?(?:-\s*)?\[(?P<mark>[ xX])\]\s*(?P<title>.+)$"
)
_CONTINUATION_RE = re.compile(r"^(?: {2,}|\t)\s*\S")
_UNCHECKED_RE = re.compile(r"\[ \]")
_CHECKED_RE = re.compile(r"\[[xX]\]")


class LineKind(str, Enum):
    """Syntactic category of a single plan line."""

    HEADING = "heading"
    PROMISE = "promise"
    SECTION = "section"
    TASK = "task"
    CONTINUATION = "continuation"
    BLANK = "blank"
    OTHER = "other"


@dataclass
class ClassifiedLine:
    kind: LineKind
    value: str = ""
    completed: bool = False


def classify_line(line: str) -> ClassifiedLine:
    """Classify one plan line by the grammar's precedence order.

    Args:
        line: A single line without its trailing newline.

    Returns:
        The line kind and its payload (title, promise, section name, or task title).
    """
    text = line.rstrip("\r")
    if not text.strip():
        return ClassifiedLine(LineKind.BLANK)

    match = _TITLE_RE.match(text)
    if match:
        return ClassifiedLine(LineKind.HEADING, match.group("title").strip())

    match = _PROMISE_RE.search(text)
    if match:
        return ClassifiedLine(LineKind.PROMISE, match.group("promise").strip())

    match = _SECTION_RE.match(text)
    if match:
        return ClassifiedLine(LineKind.SECTION, match.group("name").strip())

    match = _TASK_RE.match(text)
    if match:
        title = match.group("title").strip()
        if title.startswith("**"):
            title = title[2:]
        if title.endswith("**"):
            title = title[:-2]
        title = title.strip()
        if title:
            return ClassifiedLine(
                LineKind.TASK,
                title,
                completed=match.group("mark").lower() == "x",
            )

    if _CONTINUATION_RE.match(text):
        return ClassifiedLine(LineKind.CONTINUATION, text.strip())

    return ClassifiedLine(LineKind.OTHER, text)


def parse_plan(content: str) -> PlanDocument:
    """Parse plan markdown into a `PlanDocument`.

    Never raises: lines that fit no rule are simply not part of the
    structured view.
    """
    plan = PlanDocument(raw_content=content)
    overview: list[str] = []
    in_overview = False
    current: Optional[PlanTask] = None
    description: list[str] = []

    def _flush() -> None:
        nonlocal current, description
        if current is not None:
            current.description = "\n".join(description).strip()
            plan.tasks.append(current)
        current = None
        description = []

    for index, line in enumerate(content.split("\n")):
        classified = classify_line(line)
        kind = classified.kind

        if kind == LineKind.HEADING and not plan.title:
            plan.title = classified.value
            continue

        if kind == LineKind.PROMISE:
            if plan.completion_promise is None and classified.value:
                plan.completion_promise = classified.value
            continue

        if kind == LineKind.SECTION:
            _flush()
            in_overview = bool(_OVERVIEW_RE.match(classified.value))
            continue

        if in_overview:
            if kind != LineKind.BLANK:
                overview.append(line.rstrip("\r"))
            continue

        if kind == LineKind.TASK:
            _flush()
            current = PlanTask(
                id=f"task-{len(plan.tasks) + 1}",
                title=classified.value,
                status=TaskStatus.COMPLETED if classified.completed else TaskStatus.PENDING,
                line_number=index + 1,
            )
            continue

        if kind == LineKind.CONTINUATION and current is not None:
            description.append(classified.value)

    _flush()
    plan.overview = "\n".join(overview)
    return plan


def _set_checkbox(line: str, status: TaskStatus) -> str:
    if status == TaskStatus.COMPLETED:
        return _UNCHECKED_RE.sub("[x]", line, count=1)
    return _CHECKED_RE.sub("[ ]", line, count=1)


def update_task_status(
    content: str,
    task_id: str,
    tasks: list[PlanTask],
    new_status: TaskStatus,
) -> str:
    """Rewrite the checkbox of a single task, leaving every other byte untouched.

    Args:
        content: Plan text the tasks were parsed from.
        task_id: Id of the task to update (e.g. `task-3`).
        tasks: Tasks parsed from `content`.
        new_status: Status to write.

    Returns:
        Updated plan text, or `content` unchanged if the task id is unknown.
    """
    task = next((t for t in tasks if t.id == task_id), None)
    if task is None:
        logger.debug("update_task_status: unknown task id {}", task_id)
        return content
    lines = content.split("\n")
    index = task.line_number - 1
    if index < 0 or index >= len(lines):
        logger.debug("update_task_status: line {} out of range for {}", task.line_number, task_id)
        return content
    lines[index] = _set_checkbox(lines[index], new_status)
    return "\n".join(lines)


def render_plan(plan: PlanDocument) -> str:
    """Serialize a plan back to markdown, applying each task's current status."""
    content = plan.raw_content
    for task in plan.tasks:
        content = update_task_status(content, task.id, plan.tasks, task.status)
    return content


def next_pending_task(plan: PlanDocument) -> Optional[tuple[int, PlanTask]]:
    """Return `(task_num, task)` for the first task not yet completed, in document order."""
    for index, task in enumerate(plan.tasks):
        if not task.completed:
            return index + 1, task
    return None


def find_task(plan: PlanDocument, ref: str) -> tuple[int, PlanTask]:
    """Resolve a task by 1-based number or by case-insensitive title substring.

    Raises:
        TaskNotFound: If nothing matches.
    """
    ref = str(ref).strip()
    if ref.isdigit():
        num = int(ref)
        if 1 <= num <= len(plan.tasks):
            return num, plan.tasks[num - 1]
    needle = ref.lower()
    if needle:
        for index, task in enumerate(plan.tasks):
            if needle in task.title.lower():
                return index + 1, task
    raise TaskNotFound(ref)


def _plan_path(directory: Path, plan_file: str) -> Path:
    path = Path(plan_file)
    return path if path.is_absolute() else directory / path


def read_plan_file(directory: Path, plan_file: str) -> Optional[str]:
    return _read_text(_plan_path(directory, plan_file))


def write_plan_file(directory: Path, plan_file: str, content: str) -> None:
    _atomic_write_text(_plan_path(directory, plan_file), content)


def resolve_plan_file(name: str, plan_dir: str = DEFAULT_PLAN_DIR) -> str:
    """Map a plan name like "My API" to `<plan_dir>/my-api.md`."""
    slug = slugify(name) or "plan"
    return f"{plan_dir}/{slug}.md"


def list_plan_files(directory: Path, plan_dir: str = DEFAULT_PLAN_DIR) -> list[tuple[str, str]]:
    """List `(name, relative_path)` for every markdown plan in the plan directory."""
    root = _plan_path(directory, plan_dir)
    if not root.is_dir():
        return []
    return [(path.stem, f"{plan_dir}/{path.name}") for path in sorted(root.glob("*.md"))]


def load_plan(directory: Path, plan_file: str, *, require_tasks: bool = False) -> tuple[str, PlanDocument]:
    """Read and parse a plan file.

    Raises:
        PlanNotFound: If the file does not exist or cannot be read.
        NoTasksInPlan: If `require_tasks` and the plan has no tasks.
    """
    content = read_plan_file(directory, plan_file)
    if content is None:
        raise PlanNotFound(plan_file)
    plan = parse_plan(content)
    if require_tasks and not plan.tasks:
        raise NoTasksInPlan(
            f"No tasks found in {plan_file}. Add tasks using checkbox format:\n- [ ] Task description"
        )
    return content, plan


PLAN_TEMPLATE = """# Project Plan

<!-- Optional: Set a completion promise -->
<!-- completion_promise: ALL_TASKS_COMPLETE -->

## Overview

Describe your project goals and context here. This section helps the AI understand
the bigger picture and make better decisions.

## Tasks

- [ ] **Task 1: Setup and Configuration**
  Initialize the project structure and configure dependencies.
  Include any specific requirements or constraints.

- [ ] **Task 2: Implement Core Feature**
  Describe what needs to be built.
  List acceptance criteria if helpful.

- [ ] **Task 3: Add Tests**
  Write tests for the implemented features.
  Specify coverage requirements if any.

- [ ] **Task 4: Documentation**
  Update README and add inline documentation.

## Completion

When all tasks are complete and verified, output:
<promise>ALL_TASKS_COMPLETE</promise>

---

## Notes

Add any additional notes, constraints, or context here.
"""
