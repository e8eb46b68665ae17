"""Test plan parsing, task lookup, and surgical checkbox updates."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from plan_loop_runner.errors import NoTasksInPlan, PlanNotFound, TaskNotFound
from plan_loop_runner.models import TaskStatus
from plan_loop_runner.plan import (
    PLAN_TEMPLATE,
    LineKind,
    classify_line,
    find_task,
    list_plan_files,
    load_plan,
    next_pending_task,
    parse_plan,
    render_plan,
    resolve_plan_file,
    update_task_status,
)

SAMPLE_PLAN = """# REST API

<!-- completion_promise: ALL_DONE -->

## Overview

Build a small REST API.
Keep it simple.

## Tasks

- [ ] **Scaffold project** - create the package layout
  Use src/ layout.
  Add a pyproject.
- [x] Write models
1. [ ] Add endpoints
- [X] **Docs**

Trailing notes that are not tasks.
"""


def test_parse_plan_extracts_structure() -> None:
    """Ensure title, promise, overview, tasks, and descriptions are parsed."""
    plan = parse_plan(SAMPLE_PLAN)

    assert plan.title == "REST API"
    assert plan.completion_promise == "ALL_DONE"
    assert plan.overview == "Build a small REST API.\nKeep it simple."
    assert [task.title for task in plan.tasks] == [
        "Scaffold project** - create the package layout",
        "Write models",
        "Add endpoints",
        "Docs",
    ]
    assert [task.id for task in plan.tasks] == ["task-1", "task-2", "task-3", "task-4"]
    assert [task.status for task in plan.tasks] == [
        TaskStatus.PENDING,
        TaskStatus.COMPLETED,
        TaskStatus.PENDING,
        TaskStatus.COMPLETED,
    ]
    assert plan.tasks[0].description == "Use src/ layout.\nAdd a pyproject."
    assert plan.tasks[1].description == ""
    assert plan.raw_content == SAMPLE_PLAN


def test_line_numbers_point_at_checkbox_lines() -> None:
    plan = parse_plan(SAMPLE_PLAN)
    lines = SAMPLE_PLAN.split("\n")
    for task in plan.tasks:
        assert "[" in lines[task.line_number - 1]
        assert task.title.split("**")[0] in lines[task.line_number - 1]


def test_render_plan_round_trips_bytes() -> None:
    """Ensure reserializing an unchanged plan reproduces the input exactly."""
    for content in (SAMPLE_PLAN, PLAN_TEMPLATE, "- [ ] a\r\n- [x] b\r\n", "", "no tasks here"):
        assert render_plan(parse_plan(content)) == content


def test_update_task_status_is_surgical() -> None:
    """Ensure only the target task's bracket changes."""
    plan = parse_plan(SAMPLE_PLAN)
    updated = update_task_status(SAMPLE_PLAN, "task-3", plan.tasks, TaskStatus.COMPLETED)

    before = SAMPLE_PLAN.split("\n")
    after = updated.split("\n")
    assert len(before) == len(after)
    changed = [i for i, (old, new) in enumerate(zip(before, after)) if old != new]
    assert changed == [plan.tasks[2].line_number - 1]
    assert after[changed[0]] == "1. [x] Add endpoints"

    reverted = update_task_status(updated, "task-3", parse_plan(updated).tasks, TaskStatus.PENDING)
    assert reverted == SAMPLE_PLAN


def test_update_task_status_unknown_id_returns_input() -> None:
    plan = parse_plan(SAMPLE_PLAN)
    assert update_task_status(SAMPLE_PLAN, "task-99", plan.tasks, TaskStatus.COMPLETED) == SAMPLE_PLAN


def test_update_rewrites_only_first_bracket_on_line() -> None:
    content = "- [ ] Handle [ ] literal brackets\n"
    plan = parse_plan(content)
    updated = update_task_status(content, "task-1", plan.tasks, TaskStatus.COMPLETED)
    assert updated == "- [x] Handle [ ] literal brackets\n"


def test_next_pending_task_skips_out_of_order_completed() -> None:
    """Ensure the first unchecked task in document order is chosen."""
    plan = parse_plan("- [x] A\n- [ ] B\n- [x] C\n- [ ] D\n")
    assert next_pending_task(plan) is not None
    num, task = next_pending_task(plan)
    assert (num, task.title) == (2, "B")

    done = parse_plan("- [x] A\n- [X] B\n")
    assert next_pending_task(done) is None


def test_find_task_by_number_and_title() -> None:
    plan = parse_plan(SAMPLE_PLAN)
    assert find_task(plan, "3")[1].title == "Add endpoints"
    assert find_task(plan, "models") == (2, plan.tasks[1])
    assert find_task(plan, "DOCS")[0] == 4
    with pytest.raises(TaskNotFound):
        find_task(plan, "deploy")
    # Out of range numbers fall back to a title search.
    with pytest.raises(TaskNotFound):
        find_task(plan, "9")


@pytest.mark.parametrize(
    ("line", "kind", "value"),
    [
        ("# Title", LineKind.HEADING, "Title"),
        ("completion-promise: 'SHIP IT'", LineKind.PROMISE, "SHIP IT"),
        ("CompletionPromise: \"DONE\"", LineKind.PROMISE, "DONE"),
        ("completion_promise: It's done", LineKind.PROMISE, "It's done"),
        ("<!-- completion_promise: \"Don't stop\" -->", LineKind.PROMISE, "Don't stop"),
        ("## Tasks", LineKind.SECTION, "Tasks"),
        ("- [ ] plain", LineKind.TASK, "plain"),
        ("-[x] no space after dash", LineKind.TASK, "no space after dash"),
        ("12. [ ] numbered", LineKind.TASK, "numbered"),
        ("  indented text", LineKind.CONTINUATION, "indented text"),
        ("\ttabbed text", LineKind.CONTINUATION, "tabbed text"),
        (" one space", LineKind.OTHER, " one space"),
        ("- [?] odd mark", LineKind.OTHER, "- [?] odd mark"),
        ("   ", LineKind.BLANK, ""),
    ],
)
def test_classify_line(line: str, kind: LineKind, value: str) -> None:
    classified = classify_line(line)
    assert classified.kind == kind
    assert classified.value == value


def test_first_title_and_promise_win() -> None:
    plan = parse_plan("# One\n# Two\ncompletion_promise: FIRST\ncompletion_promise: SECOND\n")
    assert plan.title == "One"
    assert plan.completion_promise == "FIRST"


def test_overview_closes_at_next_section_and_flushes_open_task() -> None:
    content = "- [ ] A\n  a detail\n## Overview\ncontext\n## Tasks\n  stray indent\n- [ ] B\n"
    plan = parse_plan(content)
    assert plan.overview == "context"
    assert [task.title for task in plan.tasks] == ["A", "B"]
    assert plan.tasks[0].description == "a detail"
    assert plan.tasks[1].description == ""


def test_malformed_input_never_raises() -> None:
    plan = parse_plan("- [ ]\n- [ ] **\n[x]\n## \n\x00garbage")
    assert plan.tasks == []


def test_load_plan_errors(tmp_path: Path) -> None:
    with pytest.raises(PlanNotFound):
        load_plan(tmp_path, "missing.md")

    (tmp_path / "empty.md").write_text("# Nothing to do\n", encoding="utf-8")
    with pytest.raises(NoTasksInPlan) as excinfo:
        load_plan(tmp_path, "empty.md", require_tasks=True)
    assert "- [ ] Task description" in excinfo.value.message

    content, plan = load_plan(tmp_path, "empty.md")
    assert content == "# Nothing to do\n"
    assert plan.tasks == []


def test_resolve_and_list_plan_files(tmp_path: Path) -> None:
    assert resolve_plan_file("My API!") == ".plan_loop/plans/my-api.md"
    assert resolve_plan_file("***") == ".plan_loop/plans/plan.md"

    plans_dir = tmp_path / ".plan_loop" / "plans"
    plans_dir.mkdir(parents=True)
    (plans_dir / "b.md").write_text("- [ ] x\n", encoding="utf-8")
    (plans_dir / "a.md").write_text("- [ ] y\n", encoding="utf-8")
    (plans_dir / "notes.txt").write_text("ignored", encoding="utf-8")

    assert list_plan_files(tmp_path) == [
        ("a", ".plan_loop/plans/a.md"),
        ("b", ".plan_loop/plans/b.md"),
    ]
