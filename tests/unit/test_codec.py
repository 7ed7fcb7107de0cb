"""Unit tests for loxbridge/codec.py."""

import json

import pytest

from loxbridge.codec import (
    DecodeError,
    NormalizedMessage,
    RawDatagram,
    coerce_value,
    decode,
    encode,
    encode_message,
    normalize,
    shape_payload,
)


class TestDecode:
    def test_full_datagram(self):
        datagram = decode(b"sensor/temp;true;1;true;;json")
        assert datagram == RawDatagram("sensor/temp", "true", 1, True, None, "json")

    def test_topic_only_uses_defaults(self):
        datagram = decode("sensor/temp")
        assert datagram == RawDatagram("sensor/temp", "", 0, False, None, "json_raw")

    def test_whitespace_is_trimmed(self):
        assert decode(b"  sensor;5\r\n") == decode(b"sensor;5")

    def test_name_field(self):
        assert decode("light/state;on;0;false;Living room").name == "Living room"

    def test_retain_only_for_literal_true(self):
        assert decode("t;1;0;TRUE").retain is False
        assert decode("t;1;0;1").retain is False
        assert decode("t;1;0;true").retain is True

    def test_empty_datagram_raises(self):
        with pytest.raises(DecodeError):
            decode(b"")

    def test_empty_topic_raises(self):
        with pytest.raises(DecodeError):
            decode(";5;0")

    def test_invalid_utf8_raises(self):
        with pytest.raises(DecodeError):
            decode(b"\xff\xfe;1")

    def test_non_numeric_qos_raises(self):
        with pytest.raises(DecodeError):
            decode("sensor;1;abc")

    def test_empty_qos_raises(self):
        with pytest.raises(DecodeError):
            decode("sensor;1;;true")

    def test_out_of_range_qos_raises(self):
        with pytest.raises(DecodeError):
            decode("sensor;1;3")

    def test_qos_integer_prefix(self):
        assert decode("sensor;1;2x").qos == 2

    def test_logger_prefix_is_stripped(self):
        assert decode("2024-01-01 00:00:00;5;sensor;1") == decode("sensor;1")

    def test_logger_prefix_only_at_start(self):
        datagram = decode("sensor;2024-01-01 00:00:00;1")
        assert datagram.topic == "sensor"
        assert datagram.value == "2024-01-01 00:00:00"

    def test_logger_prefix_without_payload_raises(self):
        with pytest.raises(DecodeError):
            decode("2024-01-01 00:00:00;5")


class TestCoerceValue:
    @pytest.mark.parametrize(
        "token, expected",
        [
            ("", ""),
            ("true", 1),
            ("false", 0),
            ("21", 21),
            ("-3", -3),
            ("21.5", 21.5),
            ("21.0", 21),
            ("1e3", 1000),
            ("on", "on"),
            ("1_000", "1_000"),
            ("nan", "nan"),
            ("inf", "inf"),
        ],
    )
    def test_coercion(self, token, expected):
        result = coerce_value(token)
        assert result == expected
        assert type(result) is type(expected)


class TestShapePayload:
    def test_json_mode_wraps_value(self):
        message = normalize(decode("sensor/temp;true;1;true;;json"), timestamp=1700000000000)
        payload = shape_payload(message, "json")
        assert payload == '{"ts":1700000000000,"val":1}'

    def test_json_mode_includes_name(self):
        message = normalize(decode("sensor/temp;21.5;0;false;Kitchen;json"), timestamp=1)
        assert json.loads(shape_payload(message, "json")) == {"ts": 1, "val": 21.5, "name": "Kitchen"}

    def test_json_mode_sets_timestamp(self):
        message = normalize(decode("sensor;1;0;false;;json"))
        assert json.loads(shape_payload(message, "json"))["ts"] == message.timestamp
        assert message.timestamp > 0

    def test_json_raw_mode_returns_unserialized_value(self):
        message = normalize(decode("sensor;42"))
        assert shape_payload(message, "json_raw") == 42

    def test_json_raw_mode_keeps_strings(self):
        message = normalize(decode("sensor;open"))
        assert shape_payload(message, "json_raw") == "open"

    def test_unknown_mode_falls_back_to_raw(self):
        message = normalize(decode("sensor;42;0;false;;xml"))
        assert shape_payload(message, "xml") == 42


class TestEncode:
    @pytest.mark.parametrize(
        "wire",
        [
            "sensor/temp;21.5;1;true;Kitchen;json",
            "sensor/temp;true;2;false;;json_raw",
            "a/b;;0;false;;json_raw",
        ],
    )
    def test_decode_encode_roundtrip(self, wire):
        datagram = decode(wire)
        assert decode(encode(datagram)) == datagram

    def test_encode_defaults(self):
        assert encode(RawDatagram("sensor")) == "sensor;;0;false;;json_raw"

    def test_encode_message(self):
        message = NormalizedMessage(topic="sensor", value=21, field_name="temp", qos=1, retain=True)
        assert encode_message(message, "json") == "sensor;21;1;true;temp;json"

    def test_encode_message_boolean_and_null(self):
        assert encode_message(NormalizedMessage(topic="s", value=True)) == "s;true;0;false;;json_raw"
        assert encode_message(NormalizedMessage(topic="s", value=None)) == "s;;0;false;;json_raw"
