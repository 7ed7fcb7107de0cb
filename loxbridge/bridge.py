"""MQTT side of the Loxone bridge.

Subscribes to the command topic and the configured state topics, routes
incoming messages to the Miniserver, and republishes datagrams received
from the Miniserver on the broker.
"""

import logging
import time

import paho.mqtt.client as mqtt

from loxbridge.config import AppConfig
from loxbridge.emitters import HttpEmitter, UdpEmitter
from loxbridge.listener import UdpListener
from loxbridge.router import MessageRouter
from loxbridge.subscriptions import SubscriptionTable

logger = logging.getLogger(__name__)

BACKOFF_BASE = 1
BACKOFF_MAX = 60

STATUS_CONNECTED = "2"
STATUS_DISCONNECTED = "0"


class LoxoneBridge:
    def __init__(self, config: AppConfig):
        self.config = config
        self.table = SubscriptionTable(config.loxone.subscriptions)
        self.udp_emitter = UdpEmitter(config, self.table)
        self.http_emitter = HttpEmitter(config, self.table)
        self.router = MessageRouter(self.table, self.udp_emitter, self.http_emitter)
        self.listener = UdpListener(config, self.publish)
        self._setup_client()

    @property
    def status_topic(self) -> str:
        return f"{self.config.mqtt.name}/connected"

    @property
    def command_topic(self) -> str:
        return f"{self.config.mqtt.name}/set/#"

    def _setup_client(self) -> None:
        broker = self.config.mqtt
        self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=broker.client_id, protocol=mqtt.MQTTv311)
        if broker.username:
            self.client.username_pw_set(broker.username, broker.password)
        if broker.tls:
            self.client.tls_set()
        self.client.will_set(self.status_topic, STATUS_DISCONNECTED, qos=1, retain=True)
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message

    def _on_connect(self, client: mqtt.Client, userdata, flags, reason_code, properties=None) -> None:
        if reason_code != 0:
            logger.error("Broker connection failed: rc=%s", reason_code)
            return
        logger.info("Connected to broker %s:%d", self.config.mqtt.host, self.config.mqtt.port)
        client.publish(self.status_topic, STATUS_CONNECTED, qos=1, retain=True)
        client.subscribe(self.command_topic)
        for topic in self.table.topics:
            client.subscribe(topic)
        logger.info("Subscribed to %s", ", ".join([self.command_topic, *self.table.topics]))

    def _on_disconnect(self, client: mqtt.Client, userdata, flags, reason_code, properties=None) -> None:
        if reason_code != 0:
            logger.warning("Unexpected disconnect from broker (rc=%s), will reconnect", reason_code)
        else:
            logger.info("Disconnected from broker")

    def _on_message(self, client: mqtt.Client, userdata, msg: mqtt.MQTTMessage) -> None:
        self.router.route(msg.topic, msg.payload)

    def publish(self, topic: str, payload, qos: int = 0, retain: bool = False) -> None:
        result = self.client.publish(topic, payload, qos=qos, retain=retain)
        if result.rc == mqtt.MQTT_ERR_SUCCESS:
            logger.debug("Published to %s", topic)
        else:
            logger.error("Publish to %s failed: rc=%d", topic, result.rc)

    def connect(self) -> None:
        """Connect to the broker with retry logic."""
        delay = BACKOFF_BASE
        host, port = self.config.mqtt.host, self.config.mqtt.port
        while True:
            try:
                self.client.connect(host, port, keepalive=60)
                return
            except OSError as e:
                logger.warning("Connection to broker at %s:%d failed: %s, retrying in %ds", host, port, e, delay)
                time.sleep(delay)
                delay = min(delay * 2, BACKOFF_MAX)

    def start(self) -> None:
        """Bind the UDP listener and start the MQTT loop (non-blocking, threaded).

        Raises SocketBindError if the UDP port cannot be claimed.
        """
        self.listener.start()
        self.client.loop_start()
        logger.info("Loxone bridge started")

    def stop(self) -> None:
        """Mark the bridge offline, stop both loops and release the emitters."""
        self.listener.stop()
        self.client.publish(self.status_topic, STATUS_DISCONNECTED, qos=1, retain=True)
        self.client.disconnect()
        self.client.loop_stop()
        self.udp_emitter.close()
        self.http_emitter.close()
        logger.info("Loxone bridge stopped")
