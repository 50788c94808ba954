"""Framing of version 1 messages: head, lengths, id, type, body, CRC, end."""

from __future__ import annotations

import struct
import uuid
from dataclasses import dataclass
from enum import IntEnum

HEAD = b"zero"
END = b"ZERO"
VERSION = 1

# head(4) + version(2) + data length(4) + id(32) + type(1) + body length(4) + crc(2) + end(4)
FRAME_OVERHEAD = 53


class MessageType(IntEnum):
    """Message types the protocol itself reserves."""

    CONNECT = 0x01
    HEARTBEAT = 0x02
    CONNACK = 0x11
    BEATACK = 0x12


class MessageCheckError(ValueError):
    """Raised when a frame is malformed or fails verification."""


def _make_crc_table() -> list[int]:
    table = []
    for index in range(256):
        crc = index << 8
        for _ in range(8):
            crc = ((crc << 1) ^ 0x1021) if crc & 0x8000 else (crc << 1)
            crc &= 0xFFFF
        table.append(crc)
    return table


_CRC_TABLE = _make_crc_table()


def crc16_aug_ccitt(data: bytes) -> int:
    """CRC-16/AUG-CCITT (poly 0x1021, init 0x1D0F) of ``data``."""
    crc = 0x1D0F
    for byte in data:
        crc = _CRC_TABLE[((crc >> 8) ^ byte) & 0xFF] ^ ((crc << 8) & 0xFFFF)
    return crc


def bytes_string(data: bytes) -> str:
    """Readable hexadecimal dump of ``data``."""
    return " ".join(f"{byte:02X}" for byte in data)


@dataclass
class V1Message:
    """One protocol frame."""

    message_id: str
    message_type: int
    body: bytes = b""
    head: bytes = HEAD
    version: int = VERSION
    data_length: int = 0
    body_length: int = 0
    checksum: int = 0
    end: bytes = END

    @classmethod
    def new(cls, message_type: int, body: bytes = b"") -> V1Message:
        """A fresh message with a random id; call :meth:`complete` before sending."""
        return cls(message_id=uuid.uuid4().hex, message_type=int(message_type), body=bytes(body))

    @classmethod
    def ack(cls, message_type: int, message_id: str, body: bytes = b"") -> V1Message:
        """A reply carrying the id of the message it answers."""
        return cls(message_id=message_id, message_type=int(message_type), body=bytes(body))

    @classmethod
    def parse(cls, data: bytes) -> V1Message:
        """Split a received frame into its fields without verifying it."""
        data = bytes(data)
        if len(data) < FRAME_OVERHEAD:
            raise MessageCheckError(
                f"message of {len(data)} bytes is shorter than {FRAME_OVERHEAD}"
            )
        version, data_length = struct.unpack(">HI", data[4:10])
        message_type, body_length = struct.unpack(">BI", data[42:47])
        (checksum,) = struct.unpack(">H", data[-6:-4])
        return cls(
            message_id=data[10:42].decode("latin-1"),
            message_type=message_type,
            body=data[47:-6],
            head=data[0:4],
            version=version,
            data_length=data_length,
            body_length=body_length,
            checksum=checksum,
            end=data[-4:],
        )

    def _frame(self, checksum: int) -> bytes:
        return b"".join(
            (
                self.head,
                struct.pack(">HI", self.version, self.data_length),
                self.message_id.encode("latin-1"),
                struct.pack(">BI", self.message_type, self.body_length),
                self.body,
                struct.pack(">H", checksum),
                self.end,
            )
        )

    @property
    def head_string(self) -> str:
        return self.head.decode("latin-1")

    @property
    def end_string(self) -> str:
        return self.end.decode("latin-1")

    def complete(self) -> None:
        """Fill in the length fields and the checksum."""
        self.body_length = len(self.body)
        self.data_length = FRAME_OVERHEAD + len(self.body)
        self.checksum = crc16_aug_ccitt(self._frame(0))

    def check(self) -> None:
        """Verify head, end, lengths and checksum; raise on the first mismatch."""
        unsigned = self._frame(0)
        if self.head != HEAD:
            raise MessageCheckError(
                f"err message head {bytes_string(self.head)} ### message datas {bytes_string(unsigned)}"
            )
        if self.end != END:
            raise MessageCheckError(
                f"err message end {bytes_string(self.end)} ### message datas {bytes_string(unsigned)}"
            )
        if self.data_length != len(unsigned):
            raise MessageCheckError(
                f"err message data length {self.data_length} reality {len(unsigned)}"
                f" ### message datas {bytes_string(unsigned)}"
            )
        if self.body_length != len(self.body):
            raise MessageCheckError(
                f"err message body length {self.body_length} reality {len(self.body)}"
                f" ### message datas {bytes_string(self.body)}"
            )
        if crc16_aug_ccitt(unsigned) != self.checksum:
            raise MessageCheckError(
                f"err message verify {self.checksum:04X} ### message datas {bytes_string(unsigned)}"
            )

    def to_bytes(self) -> bytes:
        """The frame as sent on the wire."""
        return self._frame(self.checksum)

    def __bytes__(self) -> bytes:
        return self.to_bytes()

    def __str__(self) -> str:
        return bytes_string(self.to_bytes())