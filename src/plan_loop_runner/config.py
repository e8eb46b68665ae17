"""Load optional runner configuration from `.plan_loop/config.yaml`."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from loguru import logger

from .constants import (
    CONFIG_FILE,
    DEFAULT_COMMIT_SCOPE,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_PLAN_DIR,
    DEFAULT_PROMISE_WINDOW,
    STATE_DIR_NAME,
)
from .io_utils import _load_data_with_error
from .utils import _coerce_int


def load_runner_config(project_dir: Path) -> tuple[dict[str, Any], str | None]:
    """Load the optional runner config file.

    Args:
        project_dir: Project root directory.

    Returns:
        A tuple of `(config, error_message)`. If the file is missing, returns `({}, None)`.
    """
    project_dir = project_dir.resolve()
    path = project_dir / STATE_DIR_NAME / CONFIG_FILE
    if not path.exists():
        return {}, None
    data, err = _load_data_with_error(path, {})
    if err:
        return {}, err
    return data, None


def _get_nested(config: dict[str, Any], *keys: str) -> Any:
    cur: Any = config
    for key in keys:
        if not isinstance(cur, dict):
            return None
        cur = cur.get(key)
    return cur


def _as_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return default


@dataclass
class LoopSettings:
    """Typed view over the runner config with defaults applied."""

    plan_dir: str = DEFAULT_PLAN_DIR
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    commit_enabled: bool = True
    commit_scope: str = DEFAULT_COMMIT_SCOPE
    promise_window: int = DEFAULT_PROMISE_WINDOW
    project_tools: bool = True

    @property
    def default_plan_file(self) -> str:
        return f"{self.plan_dir}/plan.md"

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "LoopSettings":
        plan_dir = config.get("plan_dir")
        scope = _get_nested(config, "commit", "scope")
        window = _coerce_int(_get_nested(config, "completion", "window"), DEFAULT_PROMISE_WINDOW)
        return cls(
            plan_dir=str(plan_dir).rstrip("/") if isinstance(plan_dir, str) and plan_dir.strip() else DEFAULT_PLAN_DIR,
            max_iterations=max(0, _coerce_int(config.get("max_iterations"), DEFAULT_MAX_ITERATIONS)),
            commit_enabled=_as_bool(_get_nested(config, "commit", "enabled"), True),
            commit_scope=str(scope).strip() if isinstance(scope, str) and scope.strip() else DEFAULT_COMMIT_SCOPE,
            promise_window=window if window > 0 else DEFAULT_PROMISE_WINDOW,
            project_tools=_as_bool(config.get("project_tools"), True),
        )


def load_settings(project_dir: Path) -> LoopSettings:
    """Load `LoopSettings`, falling back to defaults when the config is unreadable."""
    config, err = load_runner_config(project_dir)
    if err:
        logger.warning("Ignoring unreadable runner config: {}", err)
    return LoopSettings.from_config(config)
