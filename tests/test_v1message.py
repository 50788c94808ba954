import pytest

from zeroframe.v1message import (
    MessageCheckError,
    MessageType,
    V1Message,
    bytes_string,
    crc16_aug_ccitt,
)


def _completed(message_type=MessageType.CONNECT, body=b"hello"):
    message = V1Message.new(message_type, body)
    message.complete()
    return message


def test_crc_check_value():
    assert crc16_aug_ccitt(b"123456789") == 0xE5CC


def test_crc_changes_with_data():
    assert crc16_aug_ccitt(b"abc") != crc16_aug_ccitt(b"abd")


def test_message_type_values_on_wire():
    connack = V1Message.ack(MessageType.CONNACK, "0" * 32)
    connack.complete()
    assert connack.to_bytes()[42] == 0x11
    beatack = V1Message.ack(MessageType.BEATACK, "0" * 32)
    beatack.complete()
    assert beatack.to_bytes()[42] == 0x12


def test_new_message_has_32_char_id():
    message = V1Message.new(MessageType.HEARTBEAT)
    assert len(message.message_id) == 32
    assert "-" not in message.message_id
    assert message.message_type == MessageType.HEARTBEAT


def test_wire_layout():
    message = _completed(body=b"hello")
    data = message.to_bytes()
    assert data[:4] == b"zero"
    assert data[-4:] == b"ZERO"
    assert data[4:6] == b"\x00\x01"
    assert data[10:42] == message.message_id.encode()
    assert data[42] == MessageType.CONNECT
    assert data[47:-6] == b"hello"
    assert message.data_length == len(data)
    assert message.body_length == len(b"hello")


def test_round_trip_parse():
    message = _completed(MessageType.HEARTBEAT, b"\x00\x01payload")
    parsed = V1Message.parse(message.to_bytes())
    parsed.check()
    assert parsed == message
    assert parsed.to_bytes() == message.to_bytes()
    assert parsed.head_string == "zero"
    assert parsed.end_string == "ZERO"


def test_empty_body_round_trip():
    message = _completed(MessageType.CONNECT, b"")
    parsed = V1Message.parse(message.to_bytes())
    parsed.check()
    assert parsed.body == b""
    assert len(message.to_bytes()) == message.data_length


def test_ack_keeps_id():
    request = _completed()
    reply = V1Message.ack(MessageType.CONNACK, request.message_id)
    reply.complete()
    parsed = V1Message.parse(reply.to_bytes())
    parsed.check()
    assert parsed.message_id == request.message_id
    assert parsed.message_type == MessageType.CONNACK


def test_tampered_checksum_fails():
    data = bytearray(_completed().to_bytes())
    data[-5] ^= 0xFF
    with pytest.raises(MessageCheckError, match="verify"):
        V1Message.parse(bytes(data)).check()


def test_tampered_body_fails():
    data = bytearray(_completed(body=b"hello").to_bytes())
    data[47] ^= 0x01
    with pytest.raises(MessageCheckError, match="verify"):
        V1Message.parse(bytes(data)).check()


def test_bad_head_fails():
    data = b"ZERO" + _completed().to_bytes()[4:]
    with pytest.raises(MessageCheckError, match="head"):
        V1Message.parse(data).check()


def test_bad_end_fails():
    data = _completed().to_bytes()[:-4] + b"zero"
    with pytest.raises(MessageCheckError, match="end"):
        V1Message.parse(data).check()


def test_body_length_mismatch_fails():
    message = _completed(body=b"hello")
    message.body = b"hello!"
    message.data_length += 1
    with pytest.raises(MessageCheckError, match="body length"):
        message.check()


def test_data_length_mismatch_fails():
    message = _completed(body=b"hello")
    message.body = b"hello!"
    with pytest.raises(MessageCheckError, match="data length"):
        message.check()


def test_uncompleted_message_fails_check():
    message = V1Message.new(MessageType.CONNECT, b"x")
    with pytest.raises(MessageCheckError):
        message.check()


def test_short_frame_rejected():
    with pytest.raises(MessageCheckError):
        V1Message.parse(b"zero\x00\x01")


def test_bytes_string_and_str():
    assert bytes_string(b"\x0a\xff") == "0A FF"
    message = _completed()
    assert str(message) == bytes_string(message.to_bytes())
    assert len(str(message).split(" ")) == message.data_length