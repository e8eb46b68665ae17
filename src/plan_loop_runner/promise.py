"""Detect `<promise>...</promise>` completion phrases in agent output."""

from __future__ import annotations

import re
from typing import Iterable, Optional

from .constants import DEFAULT_PROMISE_WINDOW
from .models import TranscriptMessage
from .utils import _collapse_whitespace

_PROMISE_TAG_RE = re.compile(r"<promise>(?P<body>.*?)</promise>", re.DOTALL)


def extract_promise_text(text: str) -> Optional[str]:
    """Return the first promise payload, trimmed and whitespace-collapsed.

    Returns:
        The normalized payload, `""` for empty tags, or None when no tags exist.
    """
    if not text:
        return None
    match = _PROMISE_TAG_RE.search(text)
    if not match:
        return None
    return _collapse_whitespace(match.group("body"))


def is_promise_satisfied(candidate_text: str, target: str) -> bool:
    """Exact, case-sensitive comparison of the extracted promise against `target`."""
    return extract_promise_text(candidate_text) == target


def find_promise_in_transcript(
    messages: Iterable[TranscriptMessage],
    target: str,
    window: int = DEFAULT_PROMISE_WINDOW,
) -> bool:
    """Scan the most recent assistant turns, newest first, for the target promise.

    Only the last `window` assistant turns are considered; older history is
    never scanned.
    """
    if not target or window <= 0:
        return False
    assistant_turns = [message for message in messages if message.role == "assistant"]
    for message in reversed(assistant_turns[-window:]):
        for text in message.texts:
            if is_promise_satisfied(text, target):
                return True
    return False
