"""Test prompt construction and project tool detection."""

from __future__ import annotations

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from plan_loop_runner.models import ProjectTools
from plan_loop_runner.plan import parse_plan
from plan_loop_runner.prompts import (
    NO_DESCRIPTION,
    build_direct_start_message,
    build_iteration_header,
    build_single_task_prompt,
    build_task_prompt,
    detect_project_tools,
)

PLAN = parse_plan(
    """# Shop

## Overview
Sell things online.

## Tasks
- [x] Cart
- [ ] Checkout
  Accept card payments.
- [ ] Receipts
"""
)


def test_detect_project_tools(tmp_path: Path) -> None:
    assert detect_project_tools(tmp_path) == ProjectTools()
    (tmp_path / "justfile").write_text("test:\n\tpytest\n")
    (tmp_path / "Makefile").write_text("all:\n")
    tools = detect_project_tools(tmp_path)
    assert tools == ProjectTools(has_justfile=True, has_package_json=False, has_makefile=True)
    assert tools.any


def test_task_prompt_lists_progress_and_marks_current() -> None:
    prompt = build_task_prompt(PLAN, PLAN.tasks[1], 2, loop_mode=True)

    assert prompt.startswith("# Shop\n\n## Project Context\nSell things online.\n\n")
    assert "## Progress: 1/3 tasks complete" in prompt
    assert "1. [x] Cart\n2. [ ] Checkout ← CURRENT\n3. [ ] Receipts" in prompt
    assert "## Current Task: #2\n\n**Checkout**\n\nAccept card payments." in prompt
    assert "A git commit will be created for this task" in prompt
    assert "## Available Tools" not in prompt


def test_task_prompt_manual_mode_and_tools() -> None:
    tools = ProjectTools(has_package_json=True)
    prompt = build_task_prompt(PLAN, PLAN.tasks[2], 3, loop_mode=False, project_tools=tools)

    assert NO_DESCRIPTION in prompt
    assert "commit manually when ready" in prompt
    assert "This project has: `npm`/`bun` (package.json)" in prompt


def test_single_task_prompt() -> None:
    prompt = build_single_task_prompt(PLAN, ".plan_loop/plans/shop.md", PLAN.tasks[1])

    assert prompt.startswith("🎯 Executing single task: Checkout")
    assert "**Plan:** Shop" in prompt
    assert "## Project Context\n\nSell things online." in prompt
    assert "No git commit will be created" in prompt


def test_iteration_header_and_direct_start() -> None:
    assert build_iteration_header(4, None) == "🔄 Loop iteration 4 | No completion promise set - loop runs infinitely"
    assert "<promise>DONE</promise>" in build_iteration_header(4, "DONE")

    message = build_direct_start_message("Refactor", 0, None)
    assert "Max iterations: unlimited" in message
    assert "Completion promise: none (runs forever)" in message
    assert message.endswith("Refactor")

    with_promise = build_direct_start_message("Refactor", 10, "DONE")
    assert "Max iterations: 10" in with_promise
    assert "  <promise>DONE</promise>" in with_promise
