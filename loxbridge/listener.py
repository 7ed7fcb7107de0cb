"""UDP listener: receives Miniserver datagrams and republishes them on the bus."""

import logging
import socket
import threading
from typing import Callable

from loxbridge.codec import DecodeError, decode, normalize, shape_payload
from loxbridge.config import AppConfig

logger = logging.getLogger(__name__)

MAX_DATAGRAM_SIZE = 65535
RECEIVE_TIMEOUT = 0.5

PublishFn = Callable[[str, object, int, bool], None]


class SocketBindError(Exception):
    """Raised when the UDP listening port cannot be claimed."""


class UdpListener:
    def __init__(self, config: AppConfig, publish: PublishFn):
        self.bind_host = config.udp.bind_host
        self.bind_port = config.udp.bind_port
        self.publish = publish
        self._sock: socket.socket | None = None
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()

    @property
    def address(self) -> tuple[str, int]:
        if self._sock is None:
            return (self.bind_host, self.bind_port)
        return self._sock.getsockname()

    def bind(self) -> None:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.bind((self.bind_host, self.bind_port))
        except OSError as e:
            sock.close()
            raise SocketBindError(f"Cannot bind UDP listener to {self.bind_host}:{self.bind_port}: {e}") from e
        sock.settimeout(RECEIVE_TIMEOUT)
        self._sock = sock
        logger.info("UDP listener bound to udp://%s:%d", *self.address)

    def start(self) -> None:
        """Bind the socket and start receiving in a background thread."""
        if self._sock is None:
            self.bind()
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._receive_loop, args=(self._sock,), name="udp-listener", daemon=True)
        self._thread.start()

    def _receive_loop(self, sock: socket.socket) -> None:
        while not self._stop_event.is_set():
            try:
                data, addr = sock.recvfrom(MAX_DATAGRAM_SIZE)
            except socket.timeout:
                continue
            except OSError as e:
                if self._stop_event.is_set():
                    break
                logger.error("UDP receive failed: %s", e)
                self._stop_event.wait(timeout=RECEIVE_TIMEOUT)
                continue
            self.handle_datagram(data, addr)
        logger.info("UDP listener closed")

    def handle_datagram(self, data: bytes, addr: tuple[str, int] | None = None) -> bool:
        source = f"{addr[0]}:{addr[1]}" if addr else "unknown"
        logger.info("UDP message from %s: %r", source, data[:200])
        try:
            datagram = decode(data)
        except DecodeError as e:
            logger.error("Discarding datagram from %s: %s", source, e)
            return False

        message = normalize(datagram)
        payload = shape_payload(message, datagram.mode)
        logger.info("Publish %s %s (qos=%d, retain=%s)", message.topic, payload, message.qos, message.retain)
        try:
            self.publish(message.topic, payload, message.qos, message.retain)
        except Exception:
            logger.exception("Publish to %s failed", message.topic)
            return False
        return True

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=5.0)
            self._thread = None
        if self._sock is not None:
            self._sock.close()
            self._sock = None
