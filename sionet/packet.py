"""Socket.IO packets: encoding to and decoding from Engine.IO payloads."""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import IntEnum

from sionet.message import (
    ArrayMessage,
    BinaryMessage,
    BoolMessage,
    DoubleMessage,
    IntMessage,
    Message,
    NullMessage,
    ObjectMessage,
    StringMessage,
)

PLACEHOLDER_KEY = "_placeholder"

_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1
_ATOI = re.compile(r"\s*([+-]?\d+)")


class FrameType(IntEnum):
    """Engine.IO frame kinds, written as the first character of a payload."""

    OPEN = 0
    CLOSE = 1
    PING = 2
    PONG = 3
    MESSAGE = 4
    UPGRADE = 5
    NOOP = 6


class PacketType(IntEnum):
    """Socket.IO packet kinds carried inside a message frame."""

    CONNECT = 0
    DISCONNECT = 1
    EVENT = 2
    ACK = 3
    ERROR = 4
    BINARY_EVENT = 5
    BINARY_ACK = 6


_BINARY_TYPES = frozenset({PacketType.BINARY_EVENT, PacketType.BINARY_ACK})
_ACK_TYPES = frozenset({PacketType.ACK, PacketType.BINARY_ACK})
_BINARY_OF = {PacketType.EVENT: PacketType.BINARY_EVENT, PacketType.ACK: PacketType.BINARY_ACK}

EncodeCallback = Callable[[bool, "str | bytes"], None]
DecodeCallback = Callable[["Packet"], None]


def to_json(message: Message, buffers: list[bytes]) -> object:
    """Turn a message into a JSON value, moving binary parts into ``buffers``."""
    if isinstance(message, NullMessage):
        return None
    if isinstance(message, BoolMessage):
        return bool(message.value)
    if isinstance(message, IntMessage):
        return int(message.value)
    if isinstance(message, DoubleMessage):
        return float(message.value)
    if isinstance(message, StringMessage):
        return message.value
    if isinstance(message, BinaryMessage):
        placeholder = {PLACEHOLDER_KEY: True, "num": len(buffers)}
        buffers.append(message.value)
        return placeholder
    if isinstance(message, ArrayMessage):
        return [to_json(item, buffers) for item in message]
    if isinstance(message, ObjectMessage):
        return {key: to_json(item, buffers) for key, item in message.items()}
    raise TypeError(f"cannot encode {type(message).__name__}")


def _child(value: object, buffers: list[bytes]) -> Message:
    message = from_json(value, buffers)
    return NullMessage() if message is None else message


def from_json(value: object, buffers: list[bytes]) -> Message | None:
    """Turn a decoded JSON value into a message, resolving binary placeholders."""
    if isinstance(value, bool):
        return BoolMessage(value)
    if isinstance(value, int):
        if _INT64_MIN <= value <= _INT64_MAX:
            return IntMessage(value)
        return DoubleMessage(float(value))
    if isinstance(value, float):
        return DoubleMessage(value)
    if isinstance(value, str):
        return StringMessage(value)
    if isinstance(value, (list, tuple)):
        return ArrayMessage([_child(item, buffers) for item in value])
    if isinstance(value, dict):
        if value.get(PLACEHOLDER_KEY) is True:
            num = value.get("num")
            if isinstance(num, int) and not isinstance(num, bool) and 0 <= num < len(buffers):
                return BinaryMessage(buffers[num])
            return None
        return ObjectMessage(
            {key: _child(item, buffers) for key, item in value.items() if isinstance(key, str)}
        )
    if value is None:
        return NullMessage()
    return None


def _first_char(payload: str | bytes) -> str:
    if not payload:
        return ""
    if isinstance(payload, (bytes, bytearray, memoryview)):
        return chr(bytes(payload[:1])[0])
    return payload[0]


def is_binary_message(payload: str | bytes) -> bool:
    """Whether the payload opens with the raw message frame byte."""
    return _first_char(payload) == chr(FrameType.MESSAGE)


def is_text_message(payload: str | bytes) -> bool:
    """Whether the payload opens with the message frame digit."""
    return _first_char(payload) == str(int(FrameType.MESSAGE))


def is_message(payload: str | bytes) -> bool:
    return is_binary_message(payload) or is_text_message(payload)


def _as_text(payload: str | bytes) -> str:
    if isinstance(payload, (bytes, bytearray, memoryview)):
        return bytes(payload).decode("utf-8", errors="replace")
    return payload


def _as_bytes(buffer: str | bytes) -> bytes:
    if isinstance(buffer, str):
        return buffer.encode("utf-8")
    return bytes(buffer)


def _atoi(text: str) -> int:
    match = _ATOI.match(text)
    return int(match.group(1)) if match else 0


def _find_first_of(text: str, chars: str, start: int) -> int:
    return next((i for i, c in enumerate(text[start:], start) if c in chars), -1)


def _frame_of(char: str) -> FrameType | None:
    if char.isdigit() and int(char) in FrameType._value2member_map_:
        return FrameType(int(char))
    return None


def _packet_type_of(char: str) -> PacketType | None:
    if char.isdigit() and int(char) in PacketType._value2member_map_:
        return PacketType(int(char))
    return None


def _reject_constant(name: str) -> float:
    raise ValueError(f"invalid JSON constant {name}")


def _parse_json(text: str, buffers: list[bytes]) -> Message | None:
    try:
        value = json.loads(text, parse_constant=_reject_constant)
    except ValueError:
        return NullMessage()
    return from_json(value, buffers)


@dataclass
class Packet:
    """One Engine.IO frame, with its Socket.IO packet when it is a message."""

    frame: FrameType | None = FrameType.MESSAGE
    type: PacketType | None = PacketType.EVENT
    nsp: str = "/"
    message: Message | None = None
    pack_id: int = -1
    _pending_buffers: int = field(default=0, init=False, repr=False, compare=False)
    _json_text: str = field(default="", init=False, repr=False, compare=False)
    _buffers: list[bytes] = field(default_factory=list, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.frame is FrameType.MESSAGE and self.type in _ACK_TYPES and self.pack_id < 0:
            raise ValueError("an acknowledgement needs a packet id")

    def parse(self, payload: str | bytes) -> bool:
        """Decode a text payload; return True when binary attachments must follow."""
        text = _as_text(payload)
        self.frame = _frame_of(text[:1])
        self.message = None
        self.pack_id = -1
        self._buffers = []
        self._json_text = ""
        self._pending_buffers = 0
        pos = 1
        if self.frame is FrameType.MESSAGE:
            self.type = _packet_type_of(text[1:2])
            if self.type is None:
                return False
            pos = 2
            if self.type in _BINARY_TYPES:
                dash = text.find("-")
                count = text[pos:] if dash < 0 else text[pos:dash]
                self._pending_buffers = max(_atoi(count), 0)
                pos = dash + 1
        else:
            self.type = None

        start = _find_first_of(text, '{["/', pos)
        if start < 0:
            self.nsp = "/"
            return False
        json_pos = start
        if text[start] == "/":
            comma = text.find(",")
            if comma < 0:
                self.nsp = text[start:]
                return False
            self.nsp = text[start:comma] if comma > start else text[start:]
            pos = comma + 1
            json_pos = _find_first_of(text, '"[{', pos)
            if json_pos < 0:
                return False
        else:
            self.nsp = "/"

        if pos < json_pos:
            self.pack_id = _atoi(text[pos:json_pos])
        if self.frame is FrameType.MESSAGE and self.type in _BINARY_TYPES:
            self._json_text = text[json_pos:]
            return True
        self.message = _parse_json(text[json_pos:], [])
        return False

    def parse_buffer(self, buffer: str | bytes) -> bool:
        """Take one binary attachment; return True while more are expected."""
        if self._pending_buffers <= 0:
            return False
        self._buffers.append(_as_bytes(buffer))
        self._pending_buffers -= 1
        if self._pending_buffers:
            return True
        buffers, self._buffers = self._buffers, []
        self.message = _parse_json(self._json_text, buffers)
        self._json_text = ""
        return False

    def encode(self) -> tuple[str, list[bytes]]:
        """Return the text payload and the binary attachments that follow it."""
        if self.frame is None:
            raise ValueError("packet has no frame type")
        head = str(int(self.frame))
        if self.frame is not FrameType.MESSAGE:
            return head, []
        if self.type is None:
            raise ValueError("message packet has no packet type")
        buffers: list[bytes] = []
        body = None
        if self.message is not None:
            body = json.dumps(
                to_json(self.message, buffers),
                separators=(",", ":"),
                ensure_ascii=False,
                allow_nan=False,
            )
        packet_type = _BINARY_OF.get(self.type, self.type) if buffers else self.type
        parts = [head, str(int(packet_type))]
        if buffers:
            parts.append(f"{len(buffers)}-")
        if self.nsp and self.nsp != "/":
            parts.append(self.nsp)
            if body is not None or self.pack_id >= 0:
                parts.append(",")
        if self.pack_id >= 0:
            parts.append(str(self.pack_id))
        if body is not None:
            parts.append(body)
        return "".join(parts), buffers


class PacketManager:
    """Feeds packets out through an encode callback and assembles incoming ones."""

    def __init__(
        self,
        decode_callback: DecodeCallback | None = None,
        encode_callback: EncodeCallback | None = None,
    ) -> None:
        self.decode_callback = decode_callback
        self.encode_callback = encode_callback
        self._partial: Packet | None = None

    def reset(self) -> None:
        """Drop any packet still waiting for attachments."""
        self._partial = None

    def encode(self, packet: Packet, callback: EncodeCallback | None = None) -> None:
        """Encode ``packet`` and pass the text, then each attachment, to the callback."""
        payload, buffers = packet.encode()
        sink = callback or self.encode_callback
        if sink is None:
            return
        sink(False, payload)
        for buffer in buffers:
            sink(True, buffer)

    def put_payload(self, payload: str | bytes) -> None:
        """Take one incoming payload and report every completed packet."""
        if is_text_message(payload):
            packet = Packet()
            if packet.parse(payload):
                self._partial = packet
                return
        elif self._partial is not None and len(payload) > 0:
            if self._partial.parse_buffer(payload):
                return
            packet, self._partial = self._partial, None
        else:
            packet = Packet()
            packet.parse(payload)
        if self.decode_callback is not None:
            self.decode_callback(packet)