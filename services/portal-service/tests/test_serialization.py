from datetime import datetime, timezone

import pytest

from app.sessions.errors import SessionDecodeError, SessionEncodeError
from app.sessions.serialization import (
    decode_session,
    encode_session,
    format_timestamp,
    parse_timestamp,
)


def test_encode_decode_nested_payload():
    data = {"userId": "u1", "flags": {"admin": False}, "items": [1, 2.5, None, "x"]}
    assert decode_session(encode_session(data)) == data


def test_encode_rejects_non_json_values():
    with pytest.raises(SessionEncodeError):
        encode_session({"when": datetime.now()})


@pytest.mark.parametrize("raw", [None, "", "   "])
def test_decode_empty_is_empty_session(raw):
    assert decode_session(raw) == {}


@pytest.mark.parametrize("raw", ["{not json", "[1, 2]", '"text"'])
def test_decode_invalid_payload_raises(raw):
    with pytest.raises(SessionDecodeError):
        decode_session(raw)


def test_timestamp_keeps_sub_day_precision():
    epoch = 1_700_000_123.456
    text = format_timestamp(epoch)
    assert text.endswith("Z")
    assert "T" in text
    assert parse_timestamp(text) == pytest.approx(epoch, abs=0.001)


def test_parse_legacy_date_only_value_as_midnight_utc():
    expected = datetime(2024, 3, 5, tzinfo=timezone.utc).timestamp()
    assert parse_timestamp("2024-03-05") == expected


def test_parse_naive_timestamp_as_utc():
    expected = datetime(2024, 3, 5, 12, 30, tzinfo=timezone.utc).timestamp()
    assert parse_timestamp("2024-03-05T12:30:00") == expected


def test_parse_garbage_raises_value_error():
    with pytest.raises(ValueError):
        parse_timestamp("next tuesday")
