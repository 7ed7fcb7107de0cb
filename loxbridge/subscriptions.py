"""Per-topic subscription rules and the field naming they imply."""

import logging

import paho.mqtt.client as mqtt

from loxbridge.config import SubscriptionRule

logger = logging.getLogger(__name__)

UDP_IDENTIFIER_SEPARATOR = "_"
API_IDENTIFIER_SEPARATOR = " - "


class SubscriptionTable:
    """Read-only lookup of subscription rules by incoming topic."""

    def __init__(self, rules: tuple[SubscriptionRule, ...] | list[SubscriptionRule] = ()):
        self._rules = tuple(rules)

    def __iter__(self):
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    @property
    def topics(self) -> list[str]:
        return [rule.topic for rule in self._rules]

    def find(self, topic: str) -> SubscriptionRule | None:
        """Return the first rule whose topic contains or matches ``topic``.

        Rule topics may be MQTT filters with ``+``/``#`` wildcards.
        """
        for rule in self._rules:
            if topic in rule.topic or mqtt.topic_matches_sub(rule.topic, topic):
                return rule
        return None


def udp_field_name(rule: SubscriptionRule | None, field: str) -> str:
    """Field name for UDP datagrams: ``identifier_field``."""
    if rule is not None and rule.identifier:
        return f"{rule.identifier}{UDP_IDENTIFIER_SEPARATOR}{field}"
    return field


def api_field_name(rule: SubscriptionRule | None, field: str) -> str:
    """Field name for the HTTP API: ``identifier - field``."""
    if rule is not None and rule.identifier:
        return f"{rule.identifier}{API_IDENTIFIER_SEPARATOR}{field}"
    return field
