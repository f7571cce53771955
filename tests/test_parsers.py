"""Tests for bot webhook payload parsing."""

from __future__ import annotations

import pytest

from meeting_copilot.ingestion.parsers import FragmentParseError, parse_bot_state, parse_fragment

BOT_DATA = {
    "speaker_name": "Alice",
    "speaker_uuid": "spk-1",
    "speaker_user_uuid": "user-1",
    "speaker_is_host": True,
    "timestamp_ms": 12_500,
    "duration_ms": "850",
    "transcription": {"transcript": "  Let's review the budget.  ", "words": 4},
}


class TestParseFragment:
    def test_bot_envelope(self) -> None:
        payload = {"trigger": "transcript.update", "bot_id": "bot-1", "data": BOT_DATA}
        fragment = parse_fragment(payload)
        assert fragment.speaker_id == "spk-1"
        assert fragment.speaker_name == "Alice"
        assert fragment.speaker_user_id == "user-1"
        assert fragment.speaker_is_host is True
        assert fragment.timestamp_ms == 12_500
        assert fragment.duration_ms == 850
        assert fragment.text == "Let's review the budget."
        assert fragment.word_count == 4

    def test_bare_bot_data(self) -> None:
        assert parse_fragment(BOT_DATA).speaker_id == "spk-1"

    def test_word_list_is_counted(self) -> None:
        data = {**BOT_DATA, "transcription": {"transcript": "a b", "words": [{}, {}]}}
        assert parse_fragment(data).word_count == 2

    def test_missing_words_counts_text(self) -> None:
        data = {**BOT_DATA, "transcription": {"transcript": "one two three"}}
        assert parse_fragment(data).word_count == 3

    def test_flat_format(self) -> None:
        fragment = parse_fragment(
            {"speaker_id": "s", "speaker_name": "Bob", "timestamp_ms": 100, "text": "hi"}
        )
        assert fragment.speaker_name == "Bob"
        assert fragment.duration_ms == 0
        assert fragment.word_count == 1

    def test_round_trips_to_dict(self) -> None:
        fragment = parse_fragment(BOT_DATA)
        assert parse_fragment(fragment.to_dict()) == fragment

    def test_other_trigger_rejected(self) -> None:
        with pytest.raises(FragmentParseError, match="Not a transcript"):
            parse_fragment({"trigger": "bot.state_change", "data": {}})

    def test_unknown_shape_rejected(self) -> None:
        with pytest.raises(FragmentParseError, match="Unrecognized"):
            parse_fragment({"hello": "world"})

    def test_empty_text_rejected(self) -> None:
        data = {**BOT_DATA, "transcription": {"transcript": "   "}}
        with pytest.raises(FragmentParseError, match="no text"):
            parse_fragment(data)

    def test_bad_timestamp_rejected(self) -> None:
        with pytest.raises(FragmentParseError, match="timestamp_ms"):
            parse_fragment({**BOT_DATA, "timestamp_ms": "soon"})

    def test_missing_speaker_rejected(self) -> None:
        data = {k: v for k, v in BOT_DATA.items() if k not in ("speaker_uuid", "speaker_user_uuid")}
        with pytest.raises(FragmentParseError, match="speaker"):
            parse_fragment(data)

    def test_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            parse_fragment({})


class TestParseBotState:
    def test_envelope(self) -> None:
        payload = {"trigger": "bot.state_change", "data": {"new_state": "joined_recording"}}
        assert parse_bot_state(payload) == "joined_recording"

    def test_bare_state(self) -> None:
        assert parse_bot_state({"state": "ended"}) == "ended"

    def test_wrong_trigger(self) -> None:
        with pytest.raises(ValueError):
            parse_bot_state({"trigger": "transcript.update", "data": {"new_state": "ended"}})

    def test_missing_state(self) -> None:
        with pytest.raises(ValueError, match="no state"):
            parse_bot_state({"data": {}})
