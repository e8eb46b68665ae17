"""Drive the loop: start commands, idle handling, and the other loop commands.

`LoopController` owns every side effect (state file, plan file, git, host
calls). The transition decisions themselves live in `fsm.reduce_loop`.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Optional

from filelock import Timeout
from loguru import logger

from .config import LoopSettings, load_settings
from .errors import (
    AllTasksComplete,
    LoopError,
    NoSessionIdentifier,
    PlanNotFound,
    TaskAlreadyCompleted,
    TaskNotFound,
)
from .fsm import reduce_loop
from .git_utils import commit_task
from .host import Host, apply_effects
from .logging_utils import pretty, summarize_decision, summarize_event, summarize_state
from .models import (
    CommandResult,
    IdleObserved,
    LoopDecision,
    LoopMode,
    LoopState,
    PlanTask,
    ProjectTools,
    TaskStatus,
)
from .plan import find_task, load_plan, next_pending_task, parse_plan, update_task_status, write_plan_file
from .plan_tools import plan_not_found_message, select_plan_file
from .promise import extract_promise_text, find_promise_in_transcript
from .prompts import (
    build_direct_start_message,
    build_loop_start_message,
    build_single_task_prompt,
    build_task_prompt,
    detect_project_tools,
)
from .state import StateStore
from .utils import _now_iso


class LoopController:
    """Run loop commands and react to idle signals for one project directory."""

    def __init__(
        self,
        project_dir: Path,
        host: Host,
        settings: Optional[LoopSettings] = None,
        store: Optional[StateStore] = None,
    ):
        self.project_dir = project_dir.resolve()
        self.host = host
        self.settings = settings or load_settings(self.project_dir)
        self.store = store or StateStore(self.project_dir)

    def _failure(self, exc: LoopError) -> CommandResult:
        if isinstance(exc, PlanNotFound):
            message = plan_not_found_message(self.project_dir, exc.plan_file, self.settings)
        else:
            message = exc.message
        logger.debug("Command failed ({}): {}", exc.error_type, exc.message)
        return CommandResult(False, message, exc.error_type)

    def _project_tools(self) -> Optional[ProjectTools]:
        if not self.settings.project_tools:
            return None
        return detect_project_tools(self.project_dir)

    def _create(self, build: Callable[[], LoopState]) -> Optional[CommandResult]:
        try:
            self.store.create(build)
        except LoopError as exc:
            return self._failure(exc)
        except Timeout:
            return CommandResult(False, f"Loop state is locked ({self.store.lock_path}). Try again.", "state_locked")
        return None

    def start_plan_loop(
        self,
        *,
        name: Optional[str] = None,
        file: Optional[str] = None,
        max_iterations: Optional[int] = None,
        session_id: Optional[str] = None,
    ) -> CommandResult:
        """Start working through every pending task of a plan, one per iteration.

        Returns:
            The start summary followed by the first task prompt, or a failure
            result describing why the loop could not start.
        """
        plan_file = select_plan_file(self.settings, name=name, file=file)
        limit = self.settings.max_iterations if max_iterations is None else max(0, int(max_iterations))
        tools = self._project_tools()
        output: list[str] = []

        def build() -> LoopState:
            _, plan = load_plan(self.project_dir, plan_file, require_tasks=True)
            nxt = next_pending_task(plan)
            if nxt is None:
                raise AllTasksComplete(f"All tasks in {plan_file} are already complete!")
            task_num, task = nxt
            task_prompt = build_task_prompt(plan, task, task_num, loop_mode=True, project_tools=tools)
            output.append(build_loop_start_message(plan, plan_file, task, task_num, limit, task_prompt))
            return LoopState(
                iteration=1,
                max_iterations=limit,
                completion_promise=plan.completion_promise,
                session_id=session_id,
                started_at=_now_iso(),
                plan_file=plan_file,
                current_task_id=task.id,
                current_task_num=task_num,
                mode=LoopMode.LOOP,
            )

        failure = self._create(build)
        if failure is not None:
            return failure
        logger.info("Plan loop started from {} (max iterations: {})", plan_file, limit or "unlimited")
        return CommandResult(True, output[0])

    def start_single_task(
        self,
        ref: str,
        *,
        name: Optional[str] = None,
        file: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> CommandResult:
        """Run one task once; it is marked complete on the next idle signal, without a commit."""
        plan_file = select_plan_file(self.settings, name=name, file=file)
        tools = self._project_tools()
        output: list[str] = []

        def build() -> LoopState:
            _, plan = load_plan(self.project_dir, plan_file, require_tasks=True)
            try:
                task_num, task = find_task(plan, ref)
            except TaskNotFound as exc:
                raise TaskNotFound(ref, f'Task "{ref}" not found. Use `plan-loop tasks` to see available tasks.') from exc
            if task.completed:
                raise TaskAlreadyCompleted(
                    f'Task "{task.title}" is already marked as complete. '
                    f"To re-run it, uncheck it in {plan_file} first."
                )
            output.append(build_single_task_prompt(plan, plan_file, task, tools))
            return LoopState(
                iteration=1,
                max_iterations=1,
                completion_promise=None,
                session_id=session_id,
                started_at=_now_iso(),
                plan_file=plan_file,
                current_task_id=task.id,
                current_task_num=task_num,
                mode=LoopMode.SINGLE_TASK,
            )

        failure = self._create(build)
        if failure is not None:
            return failure
        logger.info("Single task started from {}", plan_file)
        return CommandResult(True, output[0])

    def start_direct_loop(
        self,
        prompt: str,
        *,
        max_iterations: Optional[int] = None,
        completion_promise: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> CommandResult:
        """Start a loop that resends the same prompt on every idle signal."""
        if not prompt or not prompt.strip():
            return CommandResult(False, "Error: No prompt provided. Please provide a task description.", "empty_prompt")
        limit = self.settings.max_iterations if max_iterations is None else max(0, int(max_iterations))
        promise = completion_promise.strip() if completion_promise and completion_promise.strip() else None

        def build() -> LoopState:
            return LoopState(
                iteration=1,
                max_iterations=limit,
                completion_promise=promise,
                prompt=prompt,
                session_id=session_id,
                started_at=_now_iso(),
                mode=LoopMode.LEGACY_DIRECT,
            )

        failure = self._create(build)
        if failure is not None:
            return failure
        logger.info("Direct loop started (max iterations: {})", limit or "unlimited")
        return CommandResult(True, build_direct_start_message(prompt, limit, promise))

    def cancel(self) -> CommandResult:
        state = self.store.read()
        # Also clears a state file that could not be parsed.
        self.store.remove()
        if state is None:
            return CommandResult(True, "No active loop found.")
        logger.info("Loop cancelled at iteration {}", state.iteration)
        return CommandResult(True, f"🛑 Cancelled loop (was at iteration {state.iteration})")

    def status_payload(self) -> dict[str, Any]:
        state = self.store.read()
        if state is None:
            return {"active": False}
        return state.to_dict()

    def status(self) -> CommandResult:
        state = self.store.read()
        if state is None:
            return CommandResult(True, "No active loop.")
        lines = [
            "📊 Loop Status:",
            f"- Active: {str(state.active).lower()}",
            f"- Mode: {state.mode.value}",
            f"- Iteration: {state.iteration}",
            f"- Max iterations: {state.max_iterations if state.max_iterations > 0 else 'unlimited'}",
            f"- Completion promise: {state.completion_promise or 'none'}",
            f"- Session ID: {state.session_id or 'unknown'}",
            f"- Started at: {state.started_at}",
        ]
        if state.plan_file:
            lines.append(f"- Plan: {state.plan_file}")
        if state.current_task_num is not None:
            lines.append(f"- Current task: #{state.current_task_num} ({state.current_task_id})")
        if state.mode == LoopMode.LEGACY_DIRECT:
            lines.extend(["", "Prompt:", state.prompt])
        return CommandResult(True, "\n".join(lines))

    def mark_complete(
        self,
        ref: str,
        *,
        name: Optional[str] = None,
        file: Optional[str] = None,
    ) -> CommandResult:
        """Check off a task by number or title and report plan progress."""
        plan_file = select_plan_file(self.settings, name=name, file=file)
        try:
            content, plan = load_plan(self.project_dir, plan_file)
            _, task = find_task(plan, ref)
            if task.completed:
                raise TaskAlreadyCompleted(f'Task "{task.title}" is already complete.')
        except LoopError as exc:
            return self._failure(exc)

        write_plan_file(
            self.project_dir,
            plan_file,
            update_task_status(content, task.id, plan.tasks, TaskStatus.COMPLETED),
        )
        completed = plan.completed_count + 1
        output = f"✓ Marked complete: {task.title}\n\nProgress: {completed}/{len(plan.tasks)} tasks complete"
        if completed == len(plan.tasks) and plan.completion_promise:
            output += (
                "\n\n🎉 All tasks complete! The plan's completion promise is:\n"
                f"<promise>{plan.completion_promise}</promise>"
            )
        logger.info("Marked {} complete in {}", task.id, plan_file)
        return CommandResult(True, output)

    def check_completion(self, text: str) -> CommandResult:
        """End the active loop if `text` carries its completion promise."""
        state = self.store.read()
        if state is None:
            return CommandResult(False, "No active loop.")
        if not state.completion_promise:
            return CommandResult(False, "No completion promise set for this loop.")

        found = extract_promise_text(text)
        if found is not None and found == state.completion_promise:
            self.store.remove()
            logger.info("Completion promise matched; loop ended at iteration {}", state.iteration)
            return CommandResult(
                True,
                f"✅ Completion promise detected: <promise>{state.completion_promise}</promise>\n"
                f"Loop completed successfully after {state.iteration} iterations.",
            )
        found_line = f"Found: <promise>{found}</promise>" if found is not None else "No <promise> tags found in text."
        return CommandResult(
            False,
            f"❌ Completion promise NOT detected.\n"
            f"Expected: <promise>{state.completion_promise}</promise>\n"
            f"{found_line}\n\n"
            f"Loop continues at iteration {state.iteration}.",
        )

    def _promise_seen(self, session_id: str, promise: Optional[str]) -> bool:
        if not promise:
            return False
        try:
            messages = self.host.get_messages(session_id)
        except Exception as exc:
            logger.warning("Could not read session transcript, assuming no promise: {}", exc)
            return False
        return find_promise_in_transcript(messages, promise, self.settings.promise_window)

    def _current_task(self, state: LoopState, tasks: list[PlanTask]) -> Optional[PlanTask]:
        num = state.current_task_num
        if num is not None and 1 <= num <= len(tasks):
            return tasks[num - 1]
        return next((task for task in tasks if task.id == state.current_task_id), None)

    def _observe_plan(self, state: LoopState, session_id: str) -> IdleObserved:
        plan_file = state.plan_file or self.settings.default_plan_file
        content, plan = load_plan(self.project_dir, plan_file)
        event = IdleObserved(session_id=session_id)

        task = self._current_task(state, plan.tasks)
        if task is None:
            logger.warning(
                "Current task #{} ({}) is not in {}; nothing to mark complete",
                state.current_task_num,
                state.current_task_id,
                plan_file,
            )
        else:
            if not task.completed:
                content = update_task_status(content, task.id, plan.tasks, TaskStatus.COMPLETED)
                write_plan_file(self.project_dir, plan_file, content)
            event.completed_task = task
            # A task checked by hand still gets its commit.
            if state.mode == LoopMode.LOOP and self.settings.commit_enabled:
                task_num = state.current_task_num or plan.tasks.index(task) + 1
                event.commit = commit_task(
                    self.project_dir,
                    task.title,
                    task_num,
                    scope=self.settings.commit_scope,
                )

        if state.mode == LoopMode.LOOP:
            event.plan = parse_plan(content)
            event.promise_satisfied = self._promise_seen(session_id, state.completion_promise)
            event.project_tools = self._project_tools()
        return event

    def handle_idle(self, session_id: Optional[str] = None) -> Optional[LoopDecision]:
        """React to a "session idle" signal from the host.

        Args:
            session_id: Session id carried by the signal, if any.

        Returns:
            The decision that was applied, or None when the signal was ignored
            (no active loop, no session id, or the plan file vanished).
        """
        try:
            with self.store.lock():
                decision = self._transition(session_id)
        except NoSessionIdentifier as exc:
            self.host.log("warn", exc.message)
            return None
        except Timeout:
            self.host.log("warn", "Loop: state is locked by another process; idle signal ignored.")
            return None
        if decision is not None:
            apply_effects(self.host, decision.effects)
        return decision

    def _transition(self, session_id: Optional[str]) -> Optional[LoopDecision]:
        state = self.store.read()
        if state is None:
            logger.debug("Idle signal with no active loop")
            return None

        sid = session_id or state.session_id
        if not sid:
            raise NoSessionIdentifier("Loop: No session ID available, cannot continue loop.")
        if sid != state.session_id:
            state.session_id = sid
            self.store.write(state)

        if state.mode == LoopMode.LEGACY_DIRECT:
            event = IdleObserved(
                session_id=sid,
                promise_satisfied=self._promise_seen(sid, state.completion_promise),
            )
        else:
            try:
                event = self._observe_plan(state, sid)
            except PlanNotFound as exc:
                self.host.log("error", f"Loop: plan file {exc.plan_file} not found; loop state left unchanged.")
                return None
            except OSError as exc:
                self.host.log("error", f"Loop: could not update plan file - {exc}; loop state left unchanged.")
                return None

        logger.debug("Idle state {} event {}", pretty(summarize_state(state)), pretty(summarize_event(event)))
        decision = reduce_loop(state, event)
        if decision.state is None:
            self.store.remove()
        else:
            self.store.write(decision.state)
        logger.debug("Idle decision {}", pretty(summarize_decision(decision)))
        return decision
