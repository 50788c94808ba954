"""Notification messages exchanged over the message queue as JSON."""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any

TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def _text(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"`{key}` must be a string, got {type(value).__name__}")
    return value


@dataclass
class NotifyMessage:
    """A typed notification published on a topic."""

    message_id: str = ""
    topic: str = ""
    create_time: datetime | None = None
    message_type: str = ""
    payload: Any = None

    @classmethod
    def new(cls, topic: str, message_type: str, payload: Any = None) -> NotifyMessage:
        """A message with a fresh id, stamped with the current time."""
        return cls(
            message_id=str(uuid.uuid4()),
            topic=topic,
            create_time=datetime.now().replace(microsecond=0),
            message_type=message_type,
            payload=payload,
        )

    def to_dict(self) -> dict[str, Any]:
        """The JSON object form, leaving out empty fields."""
        data: dict[str, Any] = {}
        if self.message_id:
            data["messageId"] = self.message_id
        if self.topic:
            data["topic"] = self.topic
        if self.create_time is not None:
            data["createTime"] = self.create_time.strftime(TIME_FORMAT)
        if self.message_type:
            data["messageType"] = self.message_type
        if self.payload is not None:
            data["payload"] = self.payload
        return data

    def to_json(self) -> bytes:
        """Encode the message as UTF-8 JSON."""
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":")).encode(
            "utf-8"
        )

    @classmethod
    def from_json(cls, data: bytes | str) -> NotifyMessage:
        """Decode a message; raises ``ValueError`` on malformed input."""
        obj = json.loads(data)
        if not isinstance(obj, dict):
            raise ValueError(f"notify message must be an object, got {type(obj).__name__}")
        created = _text(obj, "createTime")
        return cls(
            message_id=_text(obj, "messageId"),
            topic=_text(obj, "topic"),
            create_time=datetime.strptime(created, TIME_FORMAT) if created else None,
            message_type=_text(obj, "messageType"),
            payload=obj.get("payload"),
        )