"""MQTT packet model: fixed header, variable headers, payloads and framing."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum

MQTT_PROTOCOL = "MQTT"
MQTT_LEVEL_3_1_1 = 0x04
CONNECT_VARIABLE_HEADER_LEN = 10

MAX_REMAINING_LENGTH = 0x0FFFFFFF
_MAX_LENGTH_BYTES = 4


class MqttError(ValueError):
    """Raised when a packet is malformed or cannot be encoded."""


class PacketType(IntEnum):
    """Control packet types, as numbered by this server."""

    CONNECT = 0b0001
    CONNACK = 0b0010
    PUBLISH = 0b0011
    PUBACK = 0b0100
    PUBREC = 0b0101
    PUBREL = 0b0110
    PUBCOMP = 0b0111
    SUBSCRIBE = 0b1000
    SUBACK = 0b1001
    UNSUBSCRIBE = 0b1010
    UNSUBACK = 0b1011
    PINGREQ = 0b1100
    PINGRESP = 0b1110
    DISCONNECT = 0b1111


def encode_remaining_length(length: int) -> bytes:
    """Encode ``length`` as an MQTT variable-length integer."""
    if length < 0 or length > MAX_REMAINING_LENGTH:
        raise MqttError(f"remaining length {length} out of range")
    out = bytearray()
    while True:
        digit = length & 0x7F
        length >>= 7
        if length:
            out.append(digit | 0x80)
        else:
            out.append(digit)
            return bytes(out)


def decode_remaining_length(data: bytes) -> int:
    """Decode an MQTT variable-length integer from its encoded bytes."""
    return sum((byte & 0x7F) << (7 * index) for index, byte in enumerate(data))


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def _slice(data: bytes, start: int, count: int, what: str) -> bytes:
    if start + count > len(data):
        raise MqttError(f"{what} needs {count} bytes at offset {start}, got {len(data) - start}")
    return data[start:start + count]


@dataclass
class FixedHeader:
    """First byte of a packet plus its encoded remaining length."""

    header: int
    length: bytes = b""

    @classmethod
    def make(cls, message_type: int, flags: int, length: int) -> FixedHeader:
        """Header for a packet of ``message_type`` carrying ``length`` bytes."""
        return cls(
            header=((int(message_type) << 4) + flags) & 0xFF,
            length=encode_remaining_length(length),
        )

    @property
    def message_type(self) -> int:
        return (self.header >> 4) & 0x0F

    @property
    def message_type_name(self) -> str:
        try:
            return PacketType(self.message_type).name
        except ValueError:
            return "UNKNOW"

    @property
    def b3(self) -> int:
        return (self.header >> 3) & 1

    @property
    def b2(self) -> int:
        return (self.header >> 2) & 1

    @property
    def b1(self) -> int:
        return (self.header >> 1) & 1

    @property
    def b0(self) -> int:
        return self.header & 1

    @property
    def remaining_length(self) -> int:
        return decode_remaining_length(self.length)


@dataclass
class VariableHeader:
    """Raw variable header bytes."""

    data: bytes = b""


@dataclass
class IdentifierHeader(VariableHeader):
    """Variable header holding a two-byte packet identifier."""

    @classmethod
    def make(cls, identifier: int) -> IdentifierHeader:
        return cls(struct.pack(">H", identifier & 0xFFFF))

    def validate(self) -> None:
        if len(self.data) != 2:
            raise MqttError(f"invalid identifier variable header length : {len(self.data)}")

    @property
    def identifier(self) -> int:
        return struct.unpack(">H", self.data[:2])[0]


@dataclass
class ConnectHeader(VariableHeader):
    """Variable header of a CONNECT packet."""

    def validate(self) -> None:
        if len(self.data) != CONNECT_VARIABLE_HEADER_LEN:
            raise MqttError(f"invalid connect variable header length : {len(self.data)}")
        if self.protocol_length != 4:
            raise MqttError(f"invalid connect variable protocol length : {self.protocol_length}")
        if self.protocol != MQTT_PROTOCOL:
            raise MqttError(f"invalid connect variable protocol : {self.protocol}")

    @property
    def protocol_length(self) -> int:
        return struct.unpack(">H", self.data[:2])[0]

    @property
    def protocol(self) -> str:
        return _decode(self.data[2:6])

    @property
    def level(self) -> int:
        return self.data[6]

    @property
    def _flags(self) -> int:
        return self.data[7]

    @property
    def user_name_flag(self) -> int:
        return (self._flags >> 7) & 1

    @property
    def password_flag(self) -> int:
        return (self._flags >> 6) & 1

    @property
    def will_retain(self) -> int:
        return (self._flags >> 5) & 1

    @property
    def will_qos(self) -> int:
        return (self._flags >> 3) & 0b11

    @property
    def will_flag(self) -> int:
        return (self._flags >> 2) & 1

    @property
    def clean_session(self) -> int:
        return (self._flags >> 1) & 1

    @property
    def reserved(self) -> int:
        return self._flags & 1

    @property
    def keep_alive(self) -> int:
        return struct.unpack(">H", self.data[8:10])[0]


@dataclass
class ConnackHeader(VariableHeader):
    """Variable header of a CONNACK packet."""

    @classmethod
    def make(cls, session_present: int, return_code: int) -> ConnackHeader:
        return cls(bytes((session_present & 0xFF, return_code & 0xFF)))

    def validate(self) -> None:
        if len(self.data) != 2:
            raise MqttError(f"invalid connack variable header length : {len(self.data)}")

    @property
    def session_present(self) -> int:
        return self.data[0]

    @property
    def return_code(self) -> int:
        return self.data[1]


@dataclass
class PublishHeader(VariableHeader):
    """Variable header of a PUBLISH packet: topic and packet identifier."""

    @classmethod
    def make(cls, topic: str, identifier: int) -> PublishHeader:
        encoded = topic.encode("utf-8")
        return cls(
            struct.pack(">H", len(encoded) & 0xFFFF)
            + encoded
            + struct.pack(">H", identifier & 0xFFFF)
        )

    @classmethod
    def parse(cls, data: bytes) -> PublishHeader:
        """Take the topic and identifier from the front of ``data``."""
        (topic_length,) = struct.unpack(">H", _slice(data, 0, 2, "publish topic length"))
        return cls(_slice(data, 0, 2 + topic_length + 2, "publish variable header"))

    @property
    def topic(self) -> str:
        return _decode(self.data[2:-2])

    @property
    def identifier(self) -> int:
        return struct.unpack(">H", self.data[-2:])[0]


@dataclass
class Payload:
    """Raw payload bytes."""

    data: bytes = b""


def _read_string(data: bytes, index: int) -> tuple[str, int]:
    (length,) = struct.unpack(">H", _slice(data, index, 2, "string length"))
    index += 2
    return _decode(_slice(data, index, length, "string")), index + length


@dataclass
class ParamsPayload(Payload):
    """Payload made of length-prefixed strings."""

    params: list[str] = field(init=False, default_factory=list)

    def __post_init__(self) -> None:
        index = 0
        while index < len(self.data):
            param, index = _read_string(self.data, index)
            self.params.append(param)


@dataclass
class Topic:
    """A topic filter with its requested QoS."""

    topic_name: str
    qos: int


@dataclass
class SubscribePayload(Payload):
    """Payload of a SUBSCRIBE packet: topic filters and their QoS."""

    topics: list[Topic] = field(init=False, default_factory=list)

    def __post_init__(self) -> None:
        index = 0
        while index < len(self.data):
            name, index = _read_string(self.data, index)
            qos = _slice(self.data, index, 1, "topic qos")[0]
            index += 1
            self.topics.append(Topic(topic_name=name, qos=qos))


@dataclass
class MqttMessage:
    """A complete control packet."""

    fixed_header: FixedHeader
    variable_header: VariableHeader = field(default_factory=VariableHeader)
    payload: Payload = field(default_factory=Payload)

    @classmethod
    def parse(cls, data: bytes) -> MqttMessage:
        """Split one received packet into its parts."""
        data = bytes(data)
        if not data:
            raise MqttError("empty message")

        length_bytes = bytearray()
        index = 1
        while index < len(data):
            length_bytes.append(data[index])
            if not data[index] & 0x80 or index >= _MAX_LENGTH_BYTES:
                break
            index += 1

        fixed = FixedHeader(header=data[0], length=bytes(length_bytes))
        if len(data) - len(fixed.length) - 1 != fixed.remaining_length:
            raise MqttError(
                f"message less length inconsistent real {len(data)} "
                f"record {fixed.remaining_length}"
            )

        start = len(fixed.length) + 1
        body = data[start:]
        variable: VariableHeader
        payload: Payload
        kind = fixed.message_type

        if kind == PacketType.CONNECT:
            variable = ConnectHeader(_slice(body, 0, CONNECT_VARIABLE_HEADER_LEN, "connect header"))
            payload = ParamsPayload(body[CONNECT_VARIABLE_HEADER_LEN:])
        elif kind == PacketType.CONNACK:
            variable = ConnackHeader(_slice(body, 0, 2, "connack header"))
            payload = Payload()
        elif kind == PacketType.PUBLISH:
            variable = PublishHeader.parse(body)
            payload = Payload(body[len(variable.data):])
        elif kind in (
            PacketType.PUBACK,
            PacketType.PUBREC,
            PacketType.PUBREL,
            PacketType.PUBCOMP,
            PacketType.UNSUBACK,
        ):
            variable = IdentifierHeader(_slice(body, 0, 2, "identifier header"))
            payload = Payload()
        elif kind == PacketType.SUBSCRIBE:
            variable = IdentifierHeader(_slice(body, 0, 2, "identifier header"))
            payload = SubscribePayload(body[2:])
        elif kind == PacketType.SUBACK:
            variable = IdentifierHeader(_slice(body, 0, 2, "identifier header"))
            payload = Payload(body[2:])
        elif kind == PacketType.UNSUBSCRIBE:
            variable = IdentifierHeader(_slice(body, 0, 2, "identifier header"))
            payload = ParamsPayload(body[2:])
        else:
            variable = VariableHeader()
            payload = Payload()

        return cls(fixed_header=fixed, variable_header=variable, payload=payload)

    @classmethod
    def _assemble(
        cls, kind: PacketType, flags: int, variable: VariableHeader, payload: Payload
    ) -> MqttMessage:
        fixed = FixedHeader.make(kind, flags, len(variable.data) + len(payload.data))
        return cls(fixed_header=fixed, variable_header=variable, payload=payload)

    @classmethod
    def connack(cls) -> MqttMessage:
        """Accepting CONNACK without a present session."""
        return cls._assemble(PacketType.CONNACK, 0, ConnackHeader.make(0, 0), Payload())

    @classmethod
    def pingresp(cls) -> MqttMessage:
        return cls._assemble(PacketType.PINGRESP, 0, VariableHeader(), Payload())

    @classmethod
    def suback(cls, identifier: int, results: bytes) -> MqttMessage:
        return cls._assemble(
            PacketType.SUBACK, 0, IdentifierHeader.make(identifier), Payload(bytes(results))
        )

    @classmethod
    def puback(cls, identifier: int) -> MqttMessage:
        return cls._assemble(PacketType.PUBACK, 0, IdentifierHeader.make(identifier), Payload())

    @classmethod
    def pubrel(cls, identifier: int) -> MqttMessage:
        return cls._assemble(PacketType.PUBREL, 0, IdentifierHeader.make(identifier), Payload())

    @classmethod
    def publish(cls, topic: str, identifier: int, data: bytes) -> MqttMessage:
        return cls._assemble(
            PacketType.PUBLISH, 0b0100, PublishHeader.make(topic, identifier), Payload(bytes(data))
        )

    def to_bytes(self) -> bytes:
        """The packet as sent on the wire."""
        return (
            bytes((self.fixed_header.header,))
            + self.fixed_header.length
            + self.variable_header.data
            + self.payload.data
        )

    def __bytes__(self) -> bytes:
        return self.to_bytes()