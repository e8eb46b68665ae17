"""Summarize loop states, events, and decisions for log lines."""

import json
from typing import Any, Optional

from .models import IdleObserved, LoopDecision, LoopState


def summarize_state(state: Optional[LoopState]) -> dict[str, Any]:
    """Render a compact, JSON-friendly summary of a loop state.

    Args:
        state: Loop state (or None when no loop is active).

    Returns:
        A dictionary suitable for logging or serialization.
    """
    if state is None:
        return {"active": False}
    d: dict[str, Any] = {
        "active": state.active,
        "mode": state.mode.value,
        "iteration": state.iteration,
        "max_iterations": state.max_iterations,
    }
    if state.plan_file:
        d["plan_file"] = state.plan_file
    if state.current_task_num is not None:
        d["current_task"] = f"{state.current_task_num} ({state.current_task_id or '-'})"
    if state.completion_promise:
        d["completion_promise"] = state.completion_promise
    if state.session_id:
        d["session_id"] = state.session_id
    return d


def summarize_event(event: Optional[IdleObserved]) -> dict[str, Any]:
    if event is None:
        return {"event": None}
    d: dict[str, Any] = {
        "event": event.event_type,
        "session_id": event.session_id,
        "promise_satisfied": event.promise_satisfied,
    }
    if event.completed_task is not None:
        d["completed_task"] = event.completed_task.id
    if event.plan is not None:
        d["progress"] = f"{event.plan.completed_count}/{len(event.plan.tasks)}"
    if event.commit is not None:
        d["committed"] = event.commit.committed
        if event.commit.error_type:
            d["commit_error"] = event.commit.error_type
    return d


def summarize_decision(decision: LoopDecision) -> dict[str, Any]:
    d: dict[str, Any] = {
        "outcome": decision.outcome.value,
        "terminal": decision.terminal,
        "effects": [effect.__class__.__name__ for effect in decision.effects],
    }
    if decision.state is not None:
        d["iteration"] = decision.state.iteration
        if decision.state.current_task_num is not None:
            d["current_task_num"] = decision.state.current_task_num
    return d


def pretty(obj: Any, *, indent: int = 2) -> str:
    """Serialize an object as JSON for readable logs.

    Returns:
        A JSON string when possible; otherwise `str(obj)`.
    """
    try:
        return json.dumps(obj, indent=indent, default=str)
    except (TypeError, ValueError):
        return str(obj)
