"""Outbound transports towards the Loxone Miniserver.

UdpEmitter sends ``field=value`` datagrams to a virtual UDP input.
HttpEmitter sets virtual inputs through ``/dev/sps/io/<name>/<value>``.
Both are fire-and-forget: failures are logged, never retried or raised.
"""

import json
import logging
import socket
from concurrent.futures import Executor, Future, ThreadPoolExecutor

import requests
from requests.utils import quote

from loxbridge.config import AppConfig
from loxbridge.subscriptions import SubscriptionTable, api_field_name, udp_field_name

logger = logging.getLogger(__name__)

HTTP_WORKERS = 4
TRUE_TOKENS = ("true", "yes")
FALSE_TOKENS = ("false", "no", "null")


class TransmissionError(Exception):
    """Raised when a datagram or HTTP request cannot be delivered."""


def to_text(value) -> str:
    """Render a JSON value the way it is written into datagrams and URLs."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def format_udp_value(value) -> str:
    text = to_text(value)
    if text in TRUE_TOKENS:
        return "1"
    if text in FALSE_TOKENS:
        return "0"
    return text


class UdpEmitter:
    def __init__(self, config: AppConfig, table: SubscriptionTable, sock: socket.socket | None = None):
        self.address = (config.udp.host, config.udp.port)
        self.table = table
        self._sock = sock if sock is not None else socket.socket(socket.AF_INET, socket.SOCK_DGRAM)

    def format_datagram(self, topic: str, field: str, value) -> str:
        name = udp_field_name(self.table.find(topic), field)
        return f"{name}={format_udp_value(value)}".lower()

    def _send(self, message: str) -> None:
        try:
            self._sock.sendto(message.encode("utf-8"), self.address)
        except OSError as e:
            raise TransmissionError(f"UDP send of {message!r} to {self.address[0]}:{self.address[1]} failed: {e}") from e

    def emit(self, topic: str, field: str, value) -> bool:
        message = self.format_datagram(topic, field, value)
        logger.info("UDP send %s to %s:%d", message, *self.address)
        try:
            self._send(message)
        except TransmissionError as e:
            logger.error("%s", e)
            return False
        return True

    def close(self) -> None:
        self._sock.close()


class HttpEmitter:
    def __init__(
        self,
        config: AppConfig,
        table: SubscriptionTable,
        session: requests.Session | None = None,
        executor: Executor | None = None,
    ):
        loxone = config.loxone
        self.host = f"{loxone.host}:{loxone.port}"
        self.base_url = f"http://{loxone.username}:{loxone.password}@{self.host}"
        self.timeout = loxone.timeout
        self.table = table
        self.session = session if session is not None else requests.Session()
        self.executor = executor if executor is not None else ThreadPoolExecutor(
            max_workers=HTTP_WORKERS, thread_name_prefix="loxone-http"
        )

    def build_url(self, name: str, value: str) -> str:
        return f"{self.base_url}/dev/sps/io/{quote(name, safe='')}/{quote(value, safe='')}"

    def emit(self, topic: str, field: str, value) -> Future:
        name = api_field_name(self.table.find(topic), field)
        text = to_text(value)
        url = self.build_url(name, text)
        logger.info("HTTP GET %s/dev/sps/io/%s/%s", self.host, name, text)
        future = self.executor.submit(self._request, url)
        future.add_done_callback(self._log_result)
        return future

    def _request(self, url: str) -> int:
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransmissionError(f"HTTP request to {self.host} failed: {e}") from e
        if not response.ok:
            raise TransmissionError(f"HTTP request to {self.host} returned status {response.status_code}")
        return response.status_code

    @staticmethod
    def _log_result(future: Future) -> None:
        if future.cancelled():
            logger.debug("HTTP request cancelled on shutdown")
            return
        try:
            status = future.result()
        except TransmissionError as e:
            logger.error("%s", e)
            return
        logger.debug("HTTP request completed with status %d", status)

    def close(self) -> None:
        self.executor.shutdown(wait=False, cancel_futures=True)
        self.session.close()
