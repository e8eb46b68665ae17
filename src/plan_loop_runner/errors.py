"""Define the error taxonomy raised by plan and loop operations.

User-facing operations catch `LoopError` at the command boundary and turn it
into descriptive text; nothing here is meant to escape to the host.
"""

from __future__ import annotations

from typing import Optional


class LoopError(Exception):
    """Base class for expected, user-reportable loop failures."""

    error_type = "loop_error"

    def __init__(self, message: str, *, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class PlanNotFound(LoopError):
    error_type = "plan_not_found"

    def __init__(self, plan_file: str, message: Optional[str] = None):
        super().__init__(message or f"No plan file found at {plan_file}.")
        self.plan_file = plan_file


class NoTasksInPlan(LoopError):
    error_type = "no_tasks_in_plan"


class AllTasksComplete(LoopError):
    error_type = "all_tasks_complete"


class TaskNotFound(LoopError):
    error_type = "task_not_found"

    def __init__(self, ref: str, message: Optional[str] = None):
        super().__init__(message or f'Task "{ref}" not found.')
        self.ref = ref


class TaskAlreadyCompleted(LoopError):
    error_type = "task_already_completed"


class LoopAlreadyActive(LoopError):
    error_type = "loop_already_active"

    def __init__(self, iteration: int, message: Optional[str] = None):
        super().__init__(
            message
            or f"A loop is already active (iteration {iteration}). Cancel it first."
        )
        self.iteration = iteration


class NoSessionIdentifier(LoopError):
    """Raised when an idle signal carries no usable session id; retried on the next signal."""

    error_type = "no_session_identifier"


class NotAVersionControlledTree(LoopError):
    error_type = "not_a_git_repository"


class CommitFailed(LoopError):
    error_type = "commit_failed"


class StateFileUnreadable(LoopError):
    error_type = "state_file_unreadable"
