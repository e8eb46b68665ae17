"""Boundary between the loop controller and the host development tool."""

from __future__ import annotations

import abc
import json
import sys
from pathlib import Path
from typing import Iterable, Optional, TextIO

from loguru import logger

from .constants import LOG_SERVICE
from .models import Effect, Notice, SendPrompt, Toast, TranscriptMessage

_LOG_LEVELS = {
    "debug": "DEBUG",
    "info": "INFO",
    "warn": "WARNING",
    "warning": "WARNING",
    "error": "ERROR",
}


class Host(abc.ABC):
    """Commands the controller can issue to the host, plus transcript access."""

    @abc.abstractmethod
    def send_prompt(self, session_id: str, text: str) -> None:
        """Send `text` as the next prompt of `session_id`."""

    @abc.abstractmethod
    def get_messages(self, session_id: str) -> list[TranscriptMessage]:
        """Return the session transcript, oldest first."""

    def log(self, level: str, message: str) -> None:
        logger.bind(service=LOG_SERVICE).log(_LOG_LEVELS.get(level, "INFO"), message)

    def show_toast(self, message: str, variant: str) -> None:
        self.log("warn" if variant in {"warning", "error"} else "info", f"[{variant}] {message}")


def apply_effects(host: Host, effects: Iterable[Effect]) -> None:
    """Carry out reducer effects in order.

    A failing prompt send is logged; the state has already been persisted and
    the next idle signal will pick up from there.
    """
    for effect in effects:
        if isinstance(effect, Notice):
            host.log(effect.level, effect.message)
        elif isinstance(effect, Toast):
            host.show_toast(effect.message, effect.variant)
        elif isinstance(effect, SendPrompt):
            try:
                host.send_prompt(effect.session_id, effect.text)
            except Exception as exc:
                host.log("error", f"Failed to send prompt - {exc}")
        else:  # pragma: no cover - exhaustive over Effect
            raise TypeError(f"Unknown effect: {effect!r}")


def load_transcript(path: Path) -> list[TranscriptMessage]:
    """Read a transcript from a JSON array or a JSON-lines file.

    Raises:
        OSError: If the file cannot be read.
        ValueError: If it contains invalid JSON.
    """
    raw = path.read_text(encoding="utf-8")
    stripped = raw.strip()
    if not stripped:
        return []
    if stripped.startswith("["):
        items = json.loads(stripped)
    else:
        items = [json.loads(line) for line in stripped.splitlines() if line.strip()]
    return [TranscriptMessage.from_dict(item) for item in items if isinstance(item, dict)]


class CliHost(Host):
    """Host used by the command line: prompts go to stdout, the transcript comes from a file."""

    def __init__(self, transcript_path: Optional[Path] = None, out: Optional[TextIO] = None):
        self.transcript_path = transcript_path
        self.out = out

    def send_prompt(self, session_id: str, text: str) -> None:
        out = self.out or sys.stdout
        out.write(text + "\n")
        out.flush()

    def get_messages(self, session_id: str) -> list[TranscriptMessage]:
        if self.transcript_path is None:
            return []
        return load_transcript(self.transcript_path)
