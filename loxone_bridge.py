#!/usr/bin/env python3
"""MQTT <-> Loxone Miniserver bridge.

Forwards MQTT messages to the Miniserver via UDP and its HTTP API,
and republishes UDP datagrams sent by the Miniserver on the broker.

Usage: loxone_bridge.py [config.yaml]
"""

import logging
import signal
import sys
from pathlib import Path

from loxbridge.bridge import LoxoneBridge
from loxbridge.config import ConfigError, load_config
from loxbridge.listener import SocketBindError


def setup_logging(level: str, log_file: str | None) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        handlers=handlers,
    )


def main() -> None:
    config_path = Path(sys.argv[1]) if len(sys.argv) > 1 else None
    try:
        config = load_config(config_path)
    except ConfigError as e:
        print(f"loxone_bridge: {e}", file=sys.stderr)
        sys.exit(2)
    setup_logging(config.logging.level, config.logging.file)
    logger = logging.getLogger(__name__)

    bridge = LoxoneBridge(config)

    def shutdown(signum, frame):
        sig_name = signal.Signals(signum).name
        logger.info("Received %s, shutting down", sig_name)
        bridge.stop()
        sys.exit(0)

    signal.signal(signal.SIGTERM, shutdown)
    signal.signal(signal.SIGINT, shutdown)

    bridge.connect()
    try:
        bridge.start()
    except SocketBindError as e:
        logger.critical("%s", e)
        sys.exit(1)
    logger.info("loxone_bridge running, waiting for messages")

    # Block main thread; MQTT and UDP loops run in background threads
    signal.pause()


if __name__ == "__main__":
    main()
