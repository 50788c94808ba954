"""MQTT connection handling and topic bookkeeping on top of the TCP server."""

from __future__ import annotations

import logging
import socket
import threading
from collections.abc import Callable
from typing import Protocol

from zeroframe.mqtt import (
    IdentifierHeader,
    MqttError,
    MqttMessage,
    PacketType,
    PublishHeader,
    SubscribePayload,
)
from zeroframe.sockets import SocketConnect, SocketServer, TCPServer

logger = logging.getLogger(__name__)


class MqttMessageListener(Protocol):
    """Receives PUBLISH packets arriving on a connection."""

    def publish(self, conn: MqttConnect, message: MqttMessage) -> None:
        """Handle a PUBLISH received on ``conn``."""


def _identifier(message: MqttMessage) -> int:
    header = message.variable_header
    if not isinstance(header, (IdentifierHeader, PublishHeader)):
        raise MqttError(f"{message.fixed_header.message_type_name} carries no identifier")
    return header.identifier


class MqttConnect(SocketConnect):
    """One MQTT client connection, keyed by its remote address."""

    def __init__(self) -> None:
        super().__init__()
        self.topics: dict[str, int] = {}
        self.serial_number = 0
        self.listener: MqttMessageListener | None = None
        self._serial_lock = threading.Lock()
        self._handlers: dict[int, Callable[[MqttMessage], None]] = {
            PacketType.CONNECT: self._on_connect,
            PacketType.PUBLISH: self._on_publish,
            PacketType.PUBREC: self._on_pubrec,
            PacketType.SUBSCRIBE: self._on_subscribe,
            PacketType.PINGREQ: self._on_pingreq,
        }

    def add_listener(self, listener: MqttMessageListener) -> None:
        self.listener = listener

    def register_id(self) -> str:
        return self.remote_addr()

    def accept(self, server: SocketServer, sock: socket.socket) -> None:
        super().accept(server, sock)
        self.topics = {}
        self.serial_number = 0

    def close(self) -> None:
        """Close the connection and drop its topic subscriptions."""
        super().close()
        if isinstance(self.server, MqttServer):
            self.server._drop_subscriber(self)

    def update_serial_number(self, serial_number: int) -> None:
        """Adopt a peer's serial number if it is newer, or small enough to be a restart."""
        with self._serial_lock:
            if self.serial_number < serial_number or serial_number < 10:
                self.serial_number = serial_number

    def use_serial_number(self) -> int:
        """Take the next serial number for an outgoing packet."""
        with self._serial_lock:
            self.serial_number = (self.serial_number + 1) & 0xFFFF
            return self.serial_number

    def on_message(self, data: bytes) -> None:
        try:
            message = MqttMessage.parse(data)
        except MqttError as exc:
            logger.error("mqtt server connect %s message error %s", self.remote_addr(), exc)
            raise
        logger.debug(
            "mqtt connect %s on message type `%s`",
            self.remote_addr(),
            message.fixed_header.message_type_name,
        )
        try:
            self._dispatch(message)
        except Exception as exc:
            logger.error("mqtt server connect %s on message error %s", self.remote_addr(), exc)
            raise

    def _dispatch(self, message: MqttMessage) -> None:
        try:
            handler = self._handlers.get(message.fixed_header.message_type)
            if handler is not None:
                handler(message)
        finally:
            self.heartbeat()

    def _on_connect(self, message: MqttMessage) -> None:
        self.write(MqttMessage.connack().to_bytes())

    def _on_pingreq(self, message: MqttMessage) -> None:
        logger.info("mqtt connect %s on pingreq", self.remote_addr())
        try:
            self.write(MqttMessage.pingresp().to_bytes())
        finally:
            self.heartbeat()

    def _on_subscribe(self, message: MqttMessage) -> None:
        payload = message.payload
        if not isinstance(payload, SubscribePayload):
            raise MqttError("subscribe packet without topics")
        results = bytearray()
        for topic in payload.topics:
            self.topics[topic.topic_name] = topic.qos
            results.append(topic.qos & 0xFF)
        self.authorized()
        if isinstance(self.server, MqttServer):
            for topic_name in self.topics:
                self.server._add_subscriber(topic_name, self)
        self.write(MqttMessage.suback(_identifier(message), bytes(results)).to_bytes())

    def _on_publish(self, message: MqttMessage) -> None:
        if self.listener is not None:
            try:
                self.listener.publish(self, message)
            except Exception as exc:  # noqa: BLE001 - the sender is still acknowledged
                logger.error("mqttserv process publish err : %s", exc)
        identifier = _identifier(message)
        self.update_serial_number(identifier)
        self.write(MqttMessage.puback(identifier).to_bytes())

    def _on_pubrec(self, message: MqttMessage) -> None:
        self.write(MqttMessage.pubrel(_identifier(message)).to_bytes())


class MqttServer(TCPServer):
    """TCP server speaking MQTT, tracking which connections subscribe to which topics."""

    def __init__(
        self,
        address: str | tuple[str, int],
        auth_wait_seconds: float,
        heartbeat_seconds: float,
        heartbeat_check_interval: float,
        buffer_size: int,
    ) -> None:
        super().__init__(
            address,
            auth_wait_seconds,
            heartbeat_seconds,
            heartbeat_check_interval,
            buffer_size,
            MqttConnect,
        )
        self._topics: dict[str, dict[str, MqttConnect]] = {}
        self._topics_lock = threading.Lock()

    def subscribers(self, topic: str) -> list[MqttConnect]:
        """Connections currently subscribed to ``topic``."""
        with self._topics_lock:
            return list(self._topics.get(topic, {}).values())

    def _add_subscriber(self, topic: str, conn: MqttConnect) -> None:
        with self._topics_lock:
            self._topics.setdefault(topic, {})[conn.remote_addr()] = conn

    def _drop_subscriber(self, conn: MqttConnect) -> None:
        key = conn.remote_addr()
        with self._topics_lock:
            for topic in conn.topics:
                members = self._topics.get(topic)
                if members is None:
                    continue
                members.pop(key, None)
                if not members:
                    del self._topics[topic]