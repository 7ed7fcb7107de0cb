"""Shared fixtures for the bridge tests."""

from concurrent.futures import Executor, Future

import pytest

from loxbridge.config import AppConfig


class InlineExecutor(Executor):
    """Runs submitted calls immediately in the calling thread."""

    def submit(self, fn, /, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except BaseException as e:
            future.set_exception(e)
        return future


@pytest.fixture
def config_dict():
    return {
        "mqtt": {"host": "localhost", "port": 1883, "name": "loxone"},
        "udp": {"host": "192.168.1.10", "port": 7000, "listen_port": 7001},
        "loxone": {
            "host": "192.168.1.10",
            "port": 80,
            "username": "admin",
            "password": "secret",
            "subscriptions": [
                {"topic": "zigbee2mqtt/kitchen_sensor", "identifier": "K1"},
                {
                    "topic": "zigbee2mqtt/hallway",
                    "fields": [
                        {"name": "occupancy", "type": "number"},
                        {"name": "last_seen", "type": "string"},
                    ],
                },
            ],
        },
        "logging": {"level": "DEBUG"},
    }


@pytest.fixture
def config(config_dict):
    return AppConfig(**config_dict)


@pytest.fixture
def inline_executor():
    return InlineExecutor()
