"""Test completion promise extraction and transcript scanning."""

from __future__ import annotations

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from plan_loop_runner.models import TranscriptMessage
from plan_loop_runner.promise import extract_promise_text, find_promise_in_transcript, is_promise_satisfied


def test_extract_promise_text_normalizes_whitespace() -> None:
    assert extract_promise_text("<promise>  ALL\n   DONE  </promise>") == "ALL DONE"
    assert extract_promise_text("done <promise>A</promise> then <promise>B</promise>") == "A"
    assert extract_promise_text("<promise></promise>") == ""


def test_extract_promise_text_without_tags() -> None:
    assert extract_promise_text("no tags here") is None
    assert extract_promise_text("<promise>unterminated") is None
    assert extract_promise_text("") is None


def test_promise_match_is_exact_and_case_sensitive() -> None:
    assert is_promise_satisfied("<promise>ALL_DONE</promise>", "ALL_DONE")
    assert not is_promise_satisfied("<promise>all_done</promise>", "ALL_DONE")
    assert not is_promise_satisfied("<promise>ALL_DONE now</promise>", "ALL_DONE")
    assert not is_promise_satisfied("ALL_DONE", "ALL_DONE")


def _assistant(text: str) -> TranscriptMessage:
    return TranscriptMessage(role="assistant", texts=[text])


def test_transcript_scan_ignores_user_turns() -> None:
    messages = [
        TranscriptMessage(role="user", texts=["<promise>DONE</promise>"]),
        _assistant("still working"),
    ]
    assert not find_promise_in_transcript(messages, "DONE")


def test_transcript_scan_only_checks_recent_assistant_turns() -> None:
    messages = [_assistant("<promise>DONE</promise>")] + [_assistant(f"step {i}") for i in range(5)]
    assert not find_promise_in_transcript(messages, "DONE", window=5)
    assert find_promise_in_transcript(messages, "DONE", window=6)


def test_transcript_scan_checks_every_text_part() -> None:
    messages = [TranscriptMessage(role="assistant", texts=["thinking", "<promise>DONE</promise>"])]
    assert find_promise_in_transcript(messages, "DONE")
    assert not find_promise_in_transcript(messages, "")


def test_transcript_message_accepts_host_shape() -> None:
    message = TranscriptMessage.from_dict(
        {
            "info": {"role": "assistant"},
            "parts": [
                {"type": "tool", "text": "<promise>NO</promise>"},
                {"type": "text", "text": "<promise>YES</promise>"},
            ],
        }
    )
    assert message.role == "assistant"
    assert message.texts == ["<promise>YES</promise>"]
