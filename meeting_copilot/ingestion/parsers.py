"""Parsers turning meeting-bot webhook payloads into transcript fragments."""

from __future__ import annotations

from typing import Any

from meeting_copilot.ingestion.models import RawFragment

TRANSCRIPT_TRIGGER = "transcript.update"
BOT_STATE_TRIGGER = "bot.state_change"


class FragmentParseError(ValueError):
    """Raised when a payload cannot be turned into a :class:`RawFragment`."""


def _as_int(value: Any, field_name: str) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError) as exc:
        raise FragmentParseError(f"Field {field_name!r} is not numeric: {value!r}") from exc


def _parse_bot_transcript(data: dict[str, Any]) -> RawFragment:
    """Bot provider format: nested ``transcription`` block, string durations."""
    transcription = data.get("transcription") or {}
    text = str(transcription.get("transcript") or "").strip()
    words = transcription.get("words")
    if isinstance(words, list):
        word_count = len(words)
    elif words is not None:
        word_count = _as_int(words, "transcription.words")
    else:
        word_count = len(text.split())

    speaker_id = data.get("speaker_uuid") or data.get("speaker_user_uuid")
    if not speaker_id:
        raise FragmentParseError("Transcript payload has no speaker_uuid")

    return RawFragment(
        speaker_id=str(speaker_id),
        speaker_name=str(data.get("speaker_name") or "Unknown"),
        speaker_user_id=data.get("speaker_user_uuid"),
        speaker_is_host=bool(data.get("speaker_is_host", False)),
        timestamp_ms=_as_int(data.get("timestamp_ms"), "timestamp_ms"),
        duration_ms=_as_int(data.get("duration_ms") or 0, "duration_ms"),
        text=text,
        word_count=word_count,
    )


def _parse_flat_fragment(data: dict[str, Any]) -> RawFragment:
    """Internal flat format, as produced by :meth:`RawFragment.to_dict`."""
    if not data.get("speaker_id"):
        raise FragmentParseError("Fragment payload has no speaker_id")
    text = str(data.get("text") or "").strip()
    return RawFragment(
        speaker_id=str(data["speaker_id"]),
        speaker_name=str(data.get("speaker_name") or "Unknown"),
        speaker_user_id=data.get("speaker_user_id"),
        speaker_is_host=bool(data.get("speaker_is_host", False)),
        timestamp_ms=_as_int(data.get("timestamp_ms"), "timestamp_ms"),
        duration_ms=_as_int(data.get("duration_ms") or 0, "duration_ms"),
        text=text,
        word_count=_as_int(data.get("word_count") or len(text.split()), "word_count"),
    )


def parse_fragment(payload: dict[str, Any]) -> RawFragment:
    """Parse one transcript fragment from a webhook payload.

    Supported formats:

    Bot webhook envelope::

        {"trigger": "transcript.update", "bot_id": "...", "data": {...}}

    Bot transcript data (times in milliseconds)::

        {
          "speaker_name": "Alice", "speaker_uuid": "...", "speaker_user_uuid": "...",
          "speaker_is_host": true, "timestamp_ms": 1000, "duration_ms": "850",
          "transcription": {"transcript": "Hello", "words": 1}
        }

    Internal flat format::

        {"speaker_id": "...", "speaker_name": "...", "timestamp_ms": 1000, "text": "..."}

    Raises:
        FragmentParseError: If the payload matches none of the formats, or the
            fragment carries no text.
    """
    if not isinstance(payload, dict):
        raise FragmentParseError(f"Expected a JSON object, got {type(payload).__name__}")

    data = payload
    if "trigger" in payload:
        if payload["trigger"] != TRANSCRIPT_TRIGGER:
            raise FragmentParseError(f"Not a transcript payload: {payload['trigger']!r}")
        data = payload.get("data") or {}

    if "transcription" in data:
        fragment = _parse_bot_transcript(data)
    elif "speaker_id" in data:
        fragment = _parse_flat_fragment(data)
    else:
        msg = f"Unrecognized fragment format. Keys: {list(data.keys())}"
        raise FragmentParseError(msg)

    if not fragment.text:
        raise FragmentParseError("Fragment has no text")
    return fragment


def parse_bot_state(payload: dict[str, Any]) -> str:
    """Extract the bot's new state label from a ``bot.state_change`` payload.

    Accepts the full envelope (``{"trigger": ..., "data": {"new_state": ...}}``)
    or a bare ``{"state": ...}`` body.
    """
    if "trigger" in payload and payload["trigger"] != BOT_STATE_TRIGGER:
        raise ValueError(f"Not a bot state payload: {payload['trigger']!r}")
    data = payload.get("data") or payload
    state = data.get("new_state") or data.get("state")
    if not state:
        raise ValueError(f"Bot state payload has no state. Keys: {list(data.keys())}")
    return str(state)
