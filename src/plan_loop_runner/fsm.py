"""Pure transition function for the loop state machine.

`reduce_loop` takes the persisted state and everything observed while handling
one idle signal, and returns the next state (None once the loop is over) plus
the effects the host should carry out. It performs no I/O.
"""

from __future__ import annotations

from dataclasses import replace

from .models import (
    Effect,
    IdleObserved,
    LoopDecision,
    LoopMode,
    LoopOutcome,
    LoopState,
    Notice,
    PlanDocument,
    PlanTask,
    SendPrompt,
    Toast,
)
from .plan import next_pending_task
from .prompts import build_direct_continuation, build_next_task_prompt


def _finish(outcome: LoopOutcome, effects: list[Effect], level: str, message: str, variant: str) -> LoopDecision:
    effects.append(Notice(level, message))
    effects.append(Toast(message, variant))
    return LoopDecision(state=None, outcome=outcome, effects=effects)


def _commit_effects(event: IdleObserved) -> list[Effect]:
    if event.commit is None:
        return []
    if event.commit.committed:
        return [Notice("info", event.commit.message)]
    # A clean tree is expected; anything else deserves a warning.
    level = "warn" if event.commit.error_type else "info"
    return [Notice(level, f"Commit skipped: {event.commit.message}")]


def _reduce_single_task(state: LoopState, event: IdleObserved) -> LoopDecision:
    title = event.completed_task.title if event.completed_task else f"#{state.current_task_num}"
    return _finish(
        LoopOutcome.SINGLE_TASK_DONE,
        [],
        "info",
        f"Task complete: {title}",
        "success",
    )


def _reduce_plan_loop(state: LoopState, event: IdleObserved) -> LoopDecision:
    plan = event.plan
    if plan is None:
        raise ValueError("plan loop transition requires the re-parsed plan")
    effects = _commit_effects(event)

    nxt = next_pending_task(plan)
    if nxt is None:
        return _finish(
            LoopOutcome.TASKS_COMPLETE,
            effects,
            "info",
            f"Plan loop complete: all {len(plan.tasks)} tasks done after {state.iteration} iterations!",
            "success",
        )

    if state.completion_promise and event.promise_satisfied:
        return _finish(
            LoopOutcome.PROMISE_FULFILLED,
            effects,
            "info",
            f"Detected <promise>{state.completion_promise}</promise> - plan loop complete "
            f"({plan.completed_count}/{len(plan.tasks)} tasks done)",
            "success",
        )

    if state.max_reached:
        return _finish(
            LoopOutcome.MAX_ITERATIONS,
            effects,
            "warn",
            f"Plan loop: max iterations ({state.max_iterations}) reached; "
            f"{len(plan.pending_tasks)} tasks still pending.",
            "warning",
        )

    task_num, task = nxt
    state.iteration += 1
    state.current_task_num = task_num
    state.current_task_id = task.id
    return _advance(state, effects, plan, task_num, task, event)


def _advance(
    state: LoopState,
    effects: list[Effect],
    plan: PlanDocument,
    task_num: int,
    task: PlanTask,
    event: IdleObserved,
) -> LoopDecision:
    text = build_next_task_prompt(
        plan,
        task,
        task_num,
        state.iteration,
        state.completion_promise,
        event.project_tools,
    )
    effects.append(Notice("info", f"Loop iteration {state.iteration}: task {task_num} - {task.title}"))
    effects.append(SendPrompt(event.session_id, text))
    return LoopDecision(state=state, outcome=LoopOutcome.CONTINUE, effects=effects)


def _reduce_direct(state: LoopState, event: IdleObserved) -> LoopDecision:
    effects: list[Effect] = []
    if state.completion_promise and event.promise_satisfied:
        effects.append(Notice("info", f"Detected <promise>{state.completion_promise}</promise> - loop complete!"))
        effects.append(Toast(f"Loop completed after {state.iteration} iterations!", "success"))
        return LoopDecision(state=None, outcome=LoopOutcome.PROMISE_FULFILLED, effects=effects)

    if state.max_reached:
        return _finish(
            LoopOutcome.MAX_ITERATIONS,
            effects,
            "info",
            f"Loop: max iterations ({state.max_iterations}) reached.",
            "warning",
        )

    state.iteration += 1
    text = build_direct_continuation(state.iteration, state.completion_promise, state.prompt)
    effects.append(Notice("info", text.split("\n", 1)[0]))
    effects.append(SendPrompt(event.session_id, text))
    return LoopDecision(state=state, outcome=LoopOutcome.CONTINUE, effects=effects)


def reduce_loop(state: LoopState, event: IdleObserved) -> LoopDecision:
    """Apply one idle signal to the loop state.

    Args:
        state: Current persisted state; left unmodified.
        event: Observations gathered by the controller for this signal.

    Returns:
        A `LoopDecision` whose `state` is the state to persist, or None when
        the loop ends and its state must be deleted.
    """
    state = replace(state, extra=dict(state.extra))
    state.session_id = event.session_id
    if state.mode == LoopMode.SINGLE_TASK:
        return _reduce_single_task(state, event)
    if state.mode == LoopMode.LOOP:
        return _reduce_plan_loop(state, event)
    return _reduce_direct(state, event)
