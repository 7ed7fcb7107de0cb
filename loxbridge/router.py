"""Routing of inbound bus messages to the UDP and HTTP emitters.

Payload shapes:
  "param=value" or any bare JSON value      -> one UDP datagram
  {"name": "param", "val": value}           -> UDP, or HTTP when val is a string
  {"param1": val1, "param2": val2, ...}     -> one emission per field
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Literal

from loxbridge.emitters import HttpEmitter, UdpEmitter
from loxbridge.subscriptions import SubscriptionTable

logger = logging.getLogger(__name__)

DEFAULT_FIELD_NAME = "unknown"
UDP = "udp"
HTTP = "http"


class ParseError(Exception):
    """Raised when a bus payload is not valid JSON."""


@dataclass(frozen=True)
class Bare:
    value: Any


@dataclass(frozen=True)
class SingleField:
    name: str
    val: Any


@dataclass(frozen=True)
class MultiField:
    fields: dict


Payload = Bare | SingleField | MultiField


@dataclass(frozen=True)
class Emission:
    kind: Literal["udp", "http"]
    topic: str
    field: str
    value: Any


def parse_payload(payload: bytes | str) -> Any:
    try:
        return json.loads(payload)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ParseError(f"invalid JSON payload: {e}") from e


def classify(data: Any) -> Payload:
    if not isinstance(data, dict):
        return Bare(data)
    if "val" in data:
        name = data.get("name")
        return SingleField(name if name is not None else DEFAULT_FIELD_NAME, data["val"])
    return MultiField(data)


def _emission_for(topic: str, field: str, value: Any) -> Emission:
    return Emission(HTTP if isinstance(value, str) else UDP, topic, field, value)


def plan(topic: str, payload: bytes | str, table: SubscriptionTable) -> list[Emission]:
    """Decide which emissions a bus message produces, without sending anything."""
    shape = classify(parse_payload(payload))

    if isinstance(shape, Bare):
        value = shape.value
        if isinstance(value, str) and "=" in value:
            field, value = value.split("=")[:2]
            return [Emission(UDP, topic, field, value)]
        return [Emission(UDP, topic, topic, value)]

    if isinstance(shape, SingleField):
        if shape.val is None:
            return []
        return [_emission_for(topic, str(shape.name), shape.val)]

    emissions = []
    rule = table.find(topic)
    if rule is not None and rule.fields:
        for spec in rule.fields:
            if spec.name not in shape.fields:
                continue
            value = shape.fields[spec.name]
            if spec.type == "string":
                emissions.append(Emission(HTTP, topic, spec.name, value))
            elif value is not None:
                emissions.append(Emission(UDP, topic, spec.name, value))
    else:
        for field, value in shape.fields.items():
            if value is not None:
                emissions.append(_emission_for(topic, field, value))
    return emissions


class MessageRouter:
    def __init__(self, table: SubscriptionTable, udp: UdpEmitter, http: HttpEmitter):
        self.table = table
        self.udp = udp
        self.http = http

    def route(self, topic: str, payload: bytes | str) -> list[Emission]:
        logger.info("Bus message on %s: %s", topic, payload[:200])
        try:
            emissions = plan(topic, payload, self.table)
        except ParseError as e:
            logger.error("Dropping message on %s: %s", topic, e)
            return []

        if not emissions:
            logger.debug("No emissions for message on %s", topic)
        for emission in emissions:
            logger.debug("Routing %s field %s=%r via %s", emission.topic, emission.field, emission.value, emission.kind)
            emitter = self.http if emission.kind == HTTP else self.udp
            try:
                emitter.emit(emission.topic, emission.field, emission.value)
            except Exception:
                logger.exception("Emission of %s on %s failed", emission.field, emission.topic)
        return emissions
