"""Provide the public `plan_loop_runner` package exports."""

from __future__ import annotations

from .controller import LoopController
from .host import Host
from .plan import parse_plan, update_task_status

__all__ = ["LoopController", "Host", "parse_plan", "update_task_status"]
