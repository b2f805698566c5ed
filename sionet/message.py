"""Typed values carried by Socket.IO events, and argument lists built from them."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import IntEnum
from typing import ClassVar


class Flag(IntEnum):
    """Kind of value a message holds."""

    INTEGER = 0
    DOUBLE = 1
    STRING = 2
    BINARY = 3
    ARRAY = 4
    OBJECT = 5
    BOOLEAN = 6
    NULL = 7


class Message:
    """Base of every value that can travel inside a packet."""

    __slots__ = ()
    flag: ClassVar[Flag]


@dataclass(frozen=True)
class NullMessage(Message):
    """The JSON ``null`` value."""

    value: None = field(default=None, init=False)
    flag: ClassVar[Flag] = Flag.NULL


@dataclass(frozen=True)
class BoolMessage(Message):
    """A boolean value."""

    value: bool
    flag: ClassVar[Flag] = Flag.BOOLEAN

    def __bool__(self) -> bool:
        return self.value


@dataclass(frozen=True)
class IntMessage(Message):
    """A 64-bit integer value; also readable as a float."""

    value: int
    flag: ClassVar[Flag] = Flag.INTEGER

    def __int__(self) -> int:
        return self.value

    def __float__(self) -> float:
        return float(self.value)


@dataclass(frozen=True)
class DoubleMessage(Message):
    """A floating point value."""

    value: float
    flag: ClassVar[Flag] = Flag.DOUBLE

    def __float__(self) -> float:
        return self.value


@dataclass(frozen=True)
class StringMessage(Message):
    """A text value."""

    value: str
    flag: ClassVar[Flag] = Flag.STRING

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class BinaryMessage(Message):
    """A binary attachment."""

    value: bytes
    flag: ClassVar[Flag] = Flag.BINARY

    def __post_init__(self) -> None:
        if not isinstance(self.value, bytes):
            object.__setattr__(self, "value", bytes(self.value))

    def __bytes__(self) -> bytes:
        return self.value


def _coerce(item: object) -> Message | None:
    """Turn a message, text or bytes into a message; ``None`` stays ``None``."""
    if item is None:
        return None
    if isinstance(item, Message):
        return item
    if isinstance(item, str):
        return StringMessage(item)
    if isinstance(item, (bytes, bytearray, memoryview)):
        return BinaryMessage(bytes(item))
    raise TypeError(f"cannot store {type(item).__name__} in a message")


@dataclass
class ArrayMessage(Message):
    """An ordered sequence of messages."""

    value: list[Message] = field(default_factory=list)
    flag: ClassVar[Flag] = Flag.ARRAY

    def push(self, item: Message | str | bytes | None) -> None:
        """Append an item; ``None`` is ignored."""
        message = _coerce(item)
        if message is not None:
            self.value.append(message)

    def insert(self, pos: int, item: Message | str | bytes | None) -> None:
        """Insert an item before ``pos``; ``None`` is ignored."""
        message = _coerce(item)
        if message is not None:
            self.value.insert(pos, message)

    def __len__(self) -> int:
        return len(self.value)

    def __getitem__(self, index: int) -> Message:
        return self.value[index]

    def __iter__(self) -> Iterator[Message]:
        return iter(self.value)


@dataclass
class ObjectMessage(Message):
    """A mapping from string keys to messages, iterated in key order."""

    value: dict[str, Message] = field(default_factory=dict)
    flag: ClassVar[Flag] = Flag.OBJECT

    def insert(self, key: str, item: Message | str | bytes | None) -> None:
        """Set ``key`` to an item, replacing any previous one; ``None`` is ignored."""
        message = _coerce(item)
        if message is not None:
            self.value[key] = message

    def has(self, key: str) -> bool:
        return key in self.value

    def get(self, key: str) -> Message | None:
        """Return the message stored under ``key``, or ``None``."""
        return self.value.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self.value

    def __getitem__(self, key: str) -> Message:
        return self.value[key]

    def __len__(self) -> int:
        return len(self.value)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self.value))

    def items(self) -> Iterator[tuple[str, Message]]:
        """Key and message pairs in key order."""
        return ((key, self.value[key]) for key in sorted(self.value))


class MessageList:
    """The arguments of an event or an acknowledgement."""

    def __init__(self, content: object = None) -> None:
        self._items: list[Message] = []
        if isinstance(content, (list, tuple)):
            for item in content:
                self.push(item)
        else:
            self.push(content)

    def push(self, item: Message | str | bytes | None) -> None:
        """Append an item; ``None`` is ignored."""
        message = _coerce(item)
        if message is not None:
            self._items.append(message)

    def insert(self, pos: int, item: Message | str | bytes | None) -> None:
        """Insert an item before ``pos``; ``None`` is ignored."""
        message = _coerce(item)
        if message is not None:
            self._items.insert(pos, message)

    def to_array_message(self, event_name: str | None = None) -> ArrayMessage:
        """Build an array of the items, led by the event name when one is given."""
        array = ArrayMessage()
        if event_name is not None:
            array.value.append(StringMessage(event_name))
        array.value.extend(self._items)
        return array

    def extend(self, items: Iterable[Message | str | bytes | None]) -> None:
        for item in items:
            self.push(item)

    def __len__(self) -> int:
        return len(self._items)

    def __getitem__(self, index: int) -> Message:
        return self._items[index]

    def __iter__(self) -> Iterator[Message]:
        return iter(self._items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MessageList):
            return NotImplemented
        return self._items == other._items

    def __repr__(self) -> str:
        return f"MessageList({self._items!r})"