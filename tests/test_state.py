"""Test loop state persistence, fail-open reads, and guarded creation."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest
from filelock import FileLock, Timeout

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from plan_loop_runner.errors import LoopAlreadyActive
from plan_loop_runner.models import LoopMode, LoopState
from plan_loop_runner.state import StateStore


def _state(**overrides: object) -> LoopState:
    data = {"iteration": 2, "max_iterations": 5, "plan_file": ".plan_loop/plans/plan.md", "mode": LoopMode.LOOP}
    data.update(overrides)
    return LoopState(**data)  # type: ignore[arg-type]


def test_write_read_remove(tmp_path: Path) -> None:
    store = StateStore(tmp_path)
    assert store.read() is None

    store.write(_state(current_task_id="task-3", current_task_num=3, session_id="s1"))
    loaded = store.read()
    assert loaded is not None
    assert loaded.mode == LoopMode.LOOP
    assert (loaded.iteration, loaded.max_iterations) == (2, 5)
    assert (loaded.current_task_id, loaded.current_task_num, loaded.session_id) == ("task-3", 3, "s1")

    raw = json.loads(store.path.read_text(encoding="utf-8"))
    assert raw["mode"] == "loop"
    assert raw["current_task_num"] == 3

    assert store.remove() is True
    assert store.remove() is False
    assert store.read() is None


def test_corrupt_state_reads_as_inactive(tmp_path: Path) -> None:
    store = StateStore(tmp_path)
    store.state_dir.mkdir(parents=True)
    store.path.write_text("{not json", encoding="utf-8")
    assert store.read() is None

    store.path.write_text('["a", "list"]', encoding="utf-8")
    assert store.read() is None

    store.path.write_text('{"iteration": "many"}', encoding="utf-8")
    assert store.read() is None


def test_inactive_or_legacy_state(tmp_path: Path) -> None:
    store = StateStore(tmp_path)
    store.state_dir.mkdir(parents=True)
    store.path.write_text(json.dumps({"active": False, "iteration": 3}), encoding="utf-8")
    assert store.read() is None

    # States without a mode are direct prompt loops; unknown keys survive a rewrite.
    store.path.write_text(json.dumps({"active": True, "iteration": 3, "prompt": "go", "note": "kept"}), encoding="utf-8")
    state = store.read()
    assert state is not None
    assert state.mode == LoopMode.LEGACY_DIRECT
    store.write(state)
    assert json.loads(store.path.read_text(encoding="utf-8"))["note"] == "kept"


def test_create_refuses_second_loop_and_keeps_bytes(tmp_path: Path) -> None:
    """Ensure a second start fails and leaves the stored state byte-identical."""
    store = StateStore(tmp_path)
    store.create(lambda: _state(iteration=4))
    before = store.path.read_bytes()

    calls: list[str] = []

    def build() -> LoopState:
        calls.append("built")
        return _state(iteration=1)

    with pytest.raises(LoopAlreadyActive) as excinfo:
        store.create(build)

    assert excinfo.value.iteration == 4
    assert calls == []
    assert store.path.read_bytes() == before


def test_create_writes_nothing_when_build_fails(tmp_path: Path) -> None:
    store = StateStore(tmp_path)

    def build() -> LoopState:
        raise ValueError("bad plan")

    with pytest.raises(ValueError):
        store.create(build)
    assert not store.path.exists()


def test_create_times_out_while_locked(tmp_path: Path) -> None:
    store = StateStore(tmp_path, lock_timeout=0.1)
    store.state_dir.mkdir(parents=True)
    with FileLock(str(store.lock_path)):
        with pytest.raises(Timeout):
            store.create(lambda: _state())
    assert not store.path.exists()
