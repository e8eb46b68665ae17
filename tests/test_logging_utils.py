"""Test log summaries of loop states and decisions."""

from __future__ import annotations

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from plan_loop_runner.fsm import reduce_loop
from plan_loop_runner.logging_utils import pretty, summarize_decision, summarize_event, summarize_state
from plan_loop_runner.models import IdleObserved, LoopMode, LoopState, TaskCommitResult
from plan_loop_runner.plan import parse_plan


def test_summarize_state() -> None:
    assert summarize_state(None) == {"active": False}
    state = LoopState(
        iteration=2,
        mode=LoopMode.LOOP,
        plan_file="p.md",
        current_task_id="task-2",
        current_task_num=2,
        completion_promise="DONE",
    )
    assert summarize_state(state) == {
        "active": True,
        "mode": "loop",
        "iteration": 2,
        "max_iterations": 0,
        "plan_file": "p.md",
        "current_task": "2 (task-2)",
        "completion_promise": "DONE",
    }


def test_summarize_event_and_decision() -> None:
    plan = parse_plan("- [x] A\n- [ ] B\n")
    event = IdleObserved(
        session_id="s1",
        plan=plan,
        completed_task=plan.tasks[0],
        commit=TaskCommitResult(committed=False, message="Not a git repository", error_type="not_a_git_repository"),
    )
    assert summarize_event(event) == {
        "event": "idle_observed",
        "session_id": "s1",
        "promise_satisfied": False,
        "completed_task": "task-1",
        "progress": "1/2",
        "committed": False,
        "commit_error": "not_a_git_repository",
    }
    assert summarize_event(None) == {"event": None}

    state = LoopState(mode=LoopMode.LOOP, current_task_id="task-1", current_task_num=1, session_id="s1")
    decision = reduce_loop(state, event)
    assert summarize_decision(decision) == {
        "outcome": "continue",
        "terminal": False,
        "effects": ["Notice", "Notice", "SendPrompt"],
        "iteration": 2,
        "current_task_num": 2,
    }


def test_pretty_falls_back_to_str() -> None:
    assert pretty({"a": 1}) == '{\n  "a": 1\n}'
    circular: list[object] = []
    circular.append(circular)
    assert pretty(circular) == str(circular)
