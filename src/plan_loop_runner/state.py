"""Persist the single active loop state of a project directory."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional

from filelock import FileLock
from loguru import logger

from .constants import DEFAULT_LOCK_TIMEOUT_SECONDS, LOCK_FILE, STATE_DIR_NAME, STATE_FILE
from .errors import LoopAlreadyActive, StateFileUnreadable
from .io_utils import _load_data_with_error, _save_data
from .models import LoopState


class StateStore:
    """Read, write, and delete `.plan_loop/loop_state.json`.

    The file's presence is the "loop active" signal. A file that cannot be
    parsed reads as no loop at all, which silently cancels it.
    """

    def __init__(self, project_dir: Path, *, lock_timeout: float = DEFAULT_LOCK_TIMEOUT_SECONDS):
        self.project_dir = project_dir.resolve()
        self.state_dir = self.project_dir / STATE_DIR_NAME
        self.path = self.state_dir / STATE_FILE
        self.lock_path = self.state_dir / LOCK_FILE
        self.lock_timeout = lock_timeout

    def lock(self) -> FileLock:
        self.state_dir.mkdir(parents=True, exist_ok=True)
        return FileLock(str(self.lock_path), timeout=self.lock_timeout)

    def _load(self) -> Optional[LoopState]:
        data, err = _load_data_with_error(self.path, {})
        if err:
            raise StateFileUnreadable(f"Loop state unreadable: {err}")
        if not data:
            return None
        try:
            state = LoopState.from_dict(data)
        except (TypeError, ValueError) as exc:
            raise StateFileUnreadable(f"Loop state malformed: {exc}") from exc
        return state if state.active else None

    def read(self) -> Optional[LoopState]:
        try:
            return self._load()
        except StateFileUnreadable as exc:
            logger.warning("{}; treating loop as inactive", exc.message)
            return None

    def write(self, state: LoopState) -> None:
        _save_data(self.path, state.to_dict())

    def remove(self) -> bool:
        """Delete the state file; returns False if there was nothing to delete."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        return True

    def create(self, build: Callable[[], LoopState]) -> LoopState:
        """Persist a new loop unless one is already active.

        The existence check and the write happen under the project lock, with
        `build()` called in between, so two concurrent starts cannot both
        succeed. Errors raised by `build` leave the state file untouched.

        Raises:
            LoopAlreadyActive: If a loop state already exists.
        """
        with self.lock():
            existing = self.read()
            if existing is not None:
                raise LoopAlreadyActive(existing.iteration)
            state = build()
            self.write(state)
        return state
