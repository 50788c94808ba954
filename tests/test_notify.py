import json
import uuid
from datetime import datetime

import pytest

from zeroframe.notify import NotifyMessage


def test_new_fills_id_and_time():
    message = NotifyMessage.new("devices", "device.online", {"id": "dev-1"})
    assert uuid.UUID(message.message_id).version == 4
    assert message.topic == "devices"
    assert message.message_type == "device.online"
    assert message.payload == {"id": "dev-1"}
    assert message.create_time is not None
    assert message.create_time.microsecond == 0


def test_new_ids_are_unique():
    first = NotifyMessage.new("t", "x")
    second = NotifyMessage.new("t", "x")
    assert first.message_id != second.message_id
    assert first.payload is None and second.payload is None


def test_round_trip():
    message = NotifyMessage.new("devices", "message.normal", [1, "two", None])
    assert NotifyMessage.from_json(message.to_json()) == message


def test_json_field_names_and_time_format():
    message = NotifyMessage(
        message_id="m-1",
        topic="t",
        create_time=datetime(2024, 1, 2, 3, 4, 5),
        message_type="x",
        payload={"a": 1},
    )
    assert json.loads(message.to_json()) == {
        "messageId": "m-1",
        "topic": "t",
        "createTime": "2024-01-02 03:04:05",
        "messageType": "x",
        "payload": {"a": 1},
    }


def test_empty_fields_are_omitted():
    assert json.loads(NotifyMessage().to_json()) == {}
    assert NotifyMessage.from_json(b"{}") == NotifyMessage()


def test_from_json_accepts_text():
    message = NotifyMessage.from_json('{"topic": "t", "messageType": "notify.test"}')
    assert message.topic == "t"
    assert message.message_type == "notify.test"
    assert message.create_time is None


def test_invalid_json_raises():
    with pytest.raises(ValueError):
        NotifyMessage.from_json(b"{not json")


def test_non_object_raises():
    with pytest.raises(ValueError, match="object"):
        NotifyMessage.from_json(b"[1, 2]")


def test_bad_time_raises():
    with pytest.raises(ValueError):
        NotifyMessage.from_json(b'{"createTime": "yesterday"}')


def test_non_string_field_raises():
    with pytest.raises(ValueError, match="topic"):
        NotifyMessage.from_json(b'{"topic": 5}')