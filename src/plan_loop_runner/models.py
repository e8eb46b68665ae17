"""Define the plan document, durable loop state, and structured event/effect models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from .constants import MODE_LEGACY_DIRECT, MODE_LOOP, MODE_SINGLE_TASK


class TaskStatus(str, Enum):
    """Represent the completion state of a plan task checkbox."""

    PENDING = "pending"
    COMPLETED = "completed"


class LoopMode(str, Enum):
    """Enumerate how an active loop reacts to idle signals."""

    LOOP = MODE_LOOP
    SINGLE_TASK = MODE_SINGLE_TASK
    LEGACY_DIRECT = MODE_LEGACY_DIRECT


@dataclass
class PlanTask:
    """Store one checkbox task parsed from a plan file."""

    id: str
    title: str
    description: str = ""
    status: TaskStatus = TaskStatus.PENDING
    line_number: int = 0

    @property
    def completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED


@dataclass
class PlanDocument:
    """Store the structured view of a plan file alongside its raw text."""

    title: str = ""
    overview: str = ""
    tasks: list[PlanTask] = field(default_factory=list)
    completion_promise: Optional[str] = None
    raw_content: str = ""

    @property
    def completed_count(self) -> int:
        return sum(1 for task in self.tasks if task.completed)

    @property
    def pending_tasks(self) -> list[PlanTask]:
        return [task for task in self.tasks if not task.completed]


@dataclass
class ProjectTools:
    """Describe which task runners a project ships."""

    has_justfile: bool = False
    has_package_json: bool = False
    has_makefile: bool = False

    @property
    def any(self) -> bool:
        return self.has_justfile or self.has_package_json or self.has_makefile


@dataclass
class LoopState:
    """Store the durable state of the single active loop in a project."""

    active: bool = True
    iteration: int = 1
    max_iterations: int = 0
    completion_promise: Optional[str] = None
    prompt: str = ""
    session_id: Optional[str] = None
    started_at: str = ""
    plan_file: Optional[str] = None
    current_task_id: Optional[str] = None
    current_task_num: Optional[int] = None
    mode: LoopMode = LoopMode.LEGACY_DIRECT

    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LoopState":
        """Create a `LoopState` from a persisted dictionary.

        Args:
            data: Raw state payload read from the state file.

        Returns:
            A `LoopState` with unknown keys preserved in `extra`.

        Raises:
            ValueError: If numeric fields cannot be coerced to integers.
        """
        extra = dict(data)

        def _pop(key: str, default: Any = None) -> Any:
            return extra.pop(key, default)

        # States written before modes existed are direct prompt loops.
        mode_value = _pop("mode", None)
        try:
            mode = LoopMode(str(mode_value)) if mode_value else LoopMode.LEGACY_DIRECT
        except ValueError:
            mode = LoopMode.LEGACY_DIRECT

        current_task_num = _pop("current_task_num", None)
        return cls(
            active=bool(_pop("active", True)),
            iteration=int(_pop("iteration", 1) or 1),
            max_iterations=int(_pop("max_iterations", 0) or 0),
            completion_promise=_pop("completion_promise", None) or None,
            prompt=str(_pop("prompt", "") or ""),
            session_id=_pop("session_id", None) or None,
            started_at=str(_pop("started_at", "") or ""),
            plan_file=_pop("plan_file", None) or None,
            current_task_id=_pop("current_task_id", None) or None,
            current_task_num=int(current_task_num) if current_task_num is not None else None,
            mode=mode,
            extra=extra,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize the state as a plain dictionary for the state file."""
        data = dict(self.extra)
        data.update(
            {
                "active": bool(self.active),
                "iteration": int(self.iteration),
                "max_iterations": int(self.max_iterations),
                "completion_promise": self.completion_promise,
                "prompt": self.prompt,
                "session_id": self.session_id,
                "started_at": self.started_at,
                "plan_file": self.plan_file,
                "current_task_id": self.current_task_id,
                "current_task_num": self.current_task_num,
                "mode": self.mode.value,
            }
        )
        return data

    @property
    def max_reached(self) -> bool:
        return self.max_iterations > 0 and self.iteration >= self.max_iterations


@dataclass
class TranscriptMessage:
    """One turn of the host session transcript, reduced to its text parts."""

    role: str
    texts: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TranscriptMessage":
        """Accept either `{"role", "texts"}` or the host's `{"info": {"role"}, "parts": [...]}` shape."""
        role = data.get("role") or (data.get("info") or {}).get("role") or ""
        texts = [str(text) for text in data.get("texts") or [] if isinstance(text, str)]
        for part in data.get("parts") or []:
            if isinstance(part, dict) and part.get("type") == "text" and isinstance(part.get("text"), str):
                texts.append(part["text"])
        if isinstance(data.get("text"), str):
            texts.append(data["text"])
        return cls(role=str(role), texts=texts)


@dataclass
class TaskCommitResult:
    """Capture the outcome of committing a completed task."""

    committed: bool
    message: str
    subject: Optional[str] = None
    error_type: Optional[str] = None


@dataclass
class CommandResult:
    """Return value of user-facing commands: descriptive text plus a status."""

    ok: bool
    message: str
    error_type: Optional[str] = None

    def __str__(self) -> str:
        return self.message


@dataclass
class Event:
    """Base class for structured events fed to the loop reducer."""

    event_type: str = field(init=False, default="event")


@dataclass
class IdleObserved(Event):
    """Everything the controller observed while handling one idle signal.

    `plan` is the plan re-parsed after the current task was marked complete
    (plan modes only); `completed_task` is the task that was just completed.
    """

    session_id: str
    promise_satisfied: bool = False
    plan: Optional[PlanDocument] = None
    completed_task: Optional[PlanTask] = None
    commit: Optional[TaskCommitResult] = None
    project_tools: Optional[ProjectTools] = None

    event_type: str = field(init=False, default="idle_observed")


@dataclass
class SendPrompt:
    """Ask the host to send `text` as the next prompt of `session_id`."""

    session_id: str
    text: str


@dataclass
class Notice:
    """Ask the host to write a log line."""

    level: str  # debug | info | warn | error
    message: str


@dataclass
class Toast:
    """Ask the host to show a user-visible notification."""

    message: str
    variant: str  # info | success | warning | error


Effect = Union[SendPrompt, Notice, Toast]


class LoopOutcome(str, Enum):
    """Describe why a reducer step ended where it did."""

    CONTINUE = "continue"
    TASKS_COMPLETE = "tasks_complete"
    PROMISE_FULFILLED = "promise_fulfilled"
    MAX_ITERATIONS = "max_iterations"
    SINGLE_TASK_DONE = "single_task_done"


@dataclass
class LoopDecision:
    """Result of one transition: the next state (None = inactive) and host effects."""

    state: Optional[LoopState]
    outcome: LoopOutcome
    effects: list[Effect] = field(default_factory=list)

    @property
    def terminal(self) -> bool:
        return self.state is None
