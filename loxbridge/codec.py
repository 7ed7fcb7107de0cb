"""Codec for the semicolon-delimited UDP datagrams sent by the Miniserver.

Wire format::

    topic;value;qos;retain;name;mode

Only the topic is required. Datagrams forwarded by the Loxone logger carry an
extra ``YYYY-MM-DD HH:MM:SS;seq;`` prefix which is stripped before decoding.
"""

import json
import logging
import math
import re
import time
from dataclasses import dataclass

logger = logging.getLogger(__name__)

SEPARATOR = ";"
MODE_JSON = "json"
MODE_JSON_RAW = "json_raw"
MODES = (MODE_JSON, MODE_JSON_RAW)

LOGGER_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2};")
QOS_TOKEN = re.compile(r"^\s*([+-]?\d+)")

# integral floats below this are written without a fraction, like JSON numbers
_MAX_SAFE_INTEGER = 2**53


class DecodeError(Exception):
    """Raised when a datagram cannot be decoded."""


@dataclass(frozen=True)
class RawDatagram:
    topic: str
    value: str = ""
    qos: int = 0
    retain: bool = False
    name: str | None = None
    mode: str = MODE_JSON_RAW


@dataclass(frozen=True)
class NormalizedMessage:
    topic: str
    value: str | int | float | None
    field_name: str | None = None
    timestamp: int | None = None
    qos: int = 0
    retain: bool = False


def now_ms() -> int:
    return int(time.time() * 1000)


def _parse_qos(token: str) -> int:
    match = QOS_TOKEN.match(token)
    if match is None:
        raise DecodeError(f"qos {token!r} is not a number")
    qos = int(match.group(1))
    if qos not in (0, 1, 2):
        raise DecodeError(f"qos {qos} out of range")
    return qos


def decode(data: bytes | str) -> RawDatagram:
    """Decode one datagram into its positional fields.

    Raises DecodeError for an empty topic, undecodable bytes or a bad qos.
    """
    if isinstance(data, bytes):
        try:
            data = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"datagram is not valid UTF-8: {e}") from e

    text = data.strip()
    parts = text.split(SEPARATOR)
    if LOGGER_PREFIX.match(text):
        parts = parts[2:]

    if not parts or not parts[0]:
        raise DecodeError(f"datagram {text!r} has no topic")

    topic = parts[0]
    value = parts[1] if len(parts) > 1 else ""
    qos = _parse_qos(parts[2]) if len(parts) > 2 else 0
    retain = len(parts) > 3 and parts[3] == "true"
    name = parts[4] if len(parts) > 4 and parts[4] else None
    mode = parts[5] if len(parts) > 5 else MODE_JSON_RAW
    return RawDatagram(topic, value, qos, retain, name, mode)


def coerce_value(token: str) -> str | int | float:
    """Turn a value token into the number or string published on the bus.

    ``true``/``false`` become 1/0 and numeric tokens become numbers. Anything
    else, including the empty string, is returned unchanged.
    """
    if token == "":
        return ""
    if token == "true":
        return 1
    if token == "false":
        return 0
    if "_" in token:
        return token
    try:
        return int(token)
    except ValueError:
        pass
    try:
        number = float(token)
    except ValueError:
        return token
    if not math.isfinite(number):
        return token
    if number.is_integer() and abs(number) < _MAX_SAFE_INTEGER:
        return int(number)
    return number


def normalize(datagram: RawDatagram, timestamp: int | None = None) -> NormalizedMessage:
    return NormalizedMessage(
        topic=datagram.topic,
        value=coerce_value(datagram.value),
        field_name=datagram.name,
        timestamp=now_ms() if timestamp is None else timestamp,
        qos=datagram.qos,
        retain=datagram.retain,
    )


def shape_payload(message: NormalizedMessage, mode: str) -> str | int | float | None:
    """Build the bus payload for a normalized message.

    ``json`` wraps the value as ``{"ts": ..., "val": ..., "name": ...}`` text.
    ``json_raw`` returns the coerced value itself, unserialized.
    """
    if mode == MODE_JSON:
        payload = {"ts": message.timestamp if message.timestamp is not None else now_ms(), "val": message.value}
        if message.field_name is not None:
            payload["name"] = message.field_name
        return json.dumps(payload, separators=(",", ":"))
    if mode != MODE_JSON_RAW:
        logger.warning("Unknown payload mode %r for topic %s, publishing raw value", mode, message.topic)
    return message.value


def encode(datagram: RawDatagram) -> str:
    fields = [
        datagram.topic,
        datagram.value,
        str(datagram.qos),
        "true" if datagram.retain else "false",
        datagram.name or "",
        datagram.mode,
    ]
    return SEPARATOR.join(fields)


def _value_token(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def encode_message(message: NormalizedMessage, mode: str = MODE_JSON_RAW) -> str:
    return encode(
        RawDatagram(
            topic=message.topic,
            value=_value_token(message.value),
            qos=message.qos,
            retain=message.retain,
            name=message.field_name,
            mode=mode,
        )
    )
