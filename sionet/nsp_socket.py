"""A Socket.IO namespace socket: event bindings, emits, acknowledgements."""

from __future__ import annotations

import itertools
import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

from sionet.message import (
    ArrayMessage,
    Message,
    MessageList,
    ObjectMessage,
    StringMessage,
)
from sionet.packet import Packet, PacketType

CONNECT_TIMEOUT = 20.0
CLOSE_TIMEOUT = 3.0


class Timer(Protocol):
    def cancel(self) -> None: ...


class SocketOwner(Protocol):
    """What a socket needs from the client that owns it."""

    def opened(self) -> bool: ...

    def send(self, packet: Packet) -> None: ...

    def schedule(self, delay: float, callback: Callable[[], None]) -> Timer: ...

    def on_socket_opened(self, nsp: str) -> None: ...

    def on_socket_closed(self, nsp: str) -> None: ...

    def remove_socket(self, nsp: str) -> None: ...


@dataclass
class Event:
    """An incoming event, with room for the acknowledgement to send back."""

    nsp: str
    name: str
    messages: MessageList = field(default_factory=MessageList)
    need_ack: bool = False
    ack_message: MessageList = field(default_factory=MessageList)

    @property
    def message(self) -> Message | None:
        """The first argument of the event, or ``None`` when there is none."""
        return self.messages[0] if len(self.messages) else None

    def put_ack_message(self, ack_message: MessageList | Message | str | bytes | None) -> None:
        """Set the acknowledgement arguments; ignored when no ack was asked for."""
        if self.need_ack:
            self.ack_message = (
                ack_message if isinstance(ack_message, MessageList) else MessageList(ack_message)
            )


EventListener = Callable[[Event], None]
ErrorListener = Callable[["Message | None"], None]
AckListener = Callable[[MessageList], None]


class Socket:
    """One namespace multiplexed over a client connection."""

    _event_ids = itertools.count(1)
    _event_ids_lock = threading.Lock()

    def __init__(self, client: SocketOwner | None, nsp: str, auth: Message | None = None) -> None:
        self._client = client
        self._connected = False
        self._nsp = nsp
        self._auth = auth
        self._socket_id = ""
        self._acks: dict[int, AckListener] = {}
        self._bindings: dict[str, EventListener] = {}
        self._error_listener: ErrorListener | None = None
        self._timer: Timer | None = None
        self._queue: deque[Packet] = deque()
        self._event_lock = threading.Lock()
        self._packet_lock = threading.Lock()
        if client is not None and client.opened():
            self._send_connect()

    @property
    def namespace(self) -> str:
        return self._nsp

    @property
    def socket_id(self) -> str:
        return self._socket_id

    @property
    def connected(self) -> bool:
        return self._connected

    def on(self, event_name: str, listener: EventListener) -> None:
        """Bind ``listener`` to ``event_name``, replacing any previous binding."""
        with self._event_lock:
            self._bindings[event_name] = listener

    def off(self, event_name: str) -> None:
        with self._event_lock:
            self._bindings.pop(event_name, None)

    def off_all(self) -> None:
        with self._event_lock:
            self._bindings.clear()

    def on_error(self, listener: ErrorListener) -> None:
        self._error_listener = listener

    def off_error(self) -> None:
        self._error_listener = None

    def emit(
        self,
        name: str,
        messages: MessageList | Message | str | bytes | list | None = None,
        ack: AckListener | None = None,
    ) -> None:
        """Send an event; ``ack`` is called with the server's acknowledgement."""
        if self._client is None:
            return
        if not isinstance(messages, MessageList):
            messages = MessageList(messages)
        array = messages.to_array_message(name)
        pack_id = -1
        if ack is not None:
            with Socket._event_ids_lock:
                pack_id = next(Socket._event_ids)
            with self._event_lock:
                self._acks[pack_id] = ack
        self._send_packet(
            Packet(type=PacketType.EVENT, nsp=self._nsp, message=array, pack_id=pack_id)
        )

    def close(self) -> None:
        """Ask the server to leave the namespace; closes locally after a short wait."""
        if self._client is None or not self._connected:
            return
        self._send_packet(Packet(type=PacketType.DISCONNECT, nsp=self._nsp))
        self._cancel_timer()
        self._timer = self._client.schedule(CLOSE_TIMEOUT, self.on_close)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _send_connect(self) -> None:
        if self._client is None:
            return
        self._client.send(Packet(type=PacketType.CONNECT, nsp=self._nsp, message=self._auth))
        self._cancel_timer()
        self._timer = self._client.schedule(CONNECT_TIMEOUT, self._timeout_connection)

    def _timeout_connection(self) -> None:
        if self._client is None:
            return
        self._timer = None
        self.on_close()

    def _drain_queue(self) -> None:
        while True:
            with self._packet_lock:
                if not self._queue:
                    return
                packet = self._queue.popleft()
            if self._client is not None:
                self._client.send(packet)

    def _clear_queue(self) -> None:
        with self._packet_lock:
            self._queue.clear()

    def _send_packet(self, packet: Packet) -> None:
        if self._client is None:
            return
        if self._connected:
            self._drain_queue()
            self._client.send(packet)
        else:
            with self._packet_lock:
                self._queue.append(packet)

    def on_connected(self) -> None:
        """Mark the namespace joined and flush packets queued meanwhile."""
        self._cancel_timer()
        if self._connected or self._client is None:
            return
        self._connected = True
        self._client.on_socket_opened(self._nsp)
        self._drain_queue()

    def on_close(self) -> None:
        """Detach from the client for good and drop queued packets."""
        client = self._client
        if client is None:
            return
        self._client = None
        self._cancel_timer()
        self._connected = False
        self._clear_queue()
        client.on_socket_closed(self._nsp)
        client.remove_socket(self._nsp)

    def on_open(self) -> None:
        """The underlying connection opened: ask to join the namespace."""
        self._send_connect()

    def on_disconnect(self) -> None:
        """The underlying connection dropped: forget the joined state."""
        if self._client is None:
            return
        if self._connected:
            self._connected = False
            self._clear_queue()

    def on_message_packet(self, packet: Packet) -> None:
        """Handle a packet addressed to this namespace."""
        if self._client is None or packet.nsp != self._nsp:
            return
        kind = packet.type
        message = packet.message
        if kind is PacketType.CONNECT:
            if isinstance(message, ObjectMessage):
                sid = message.get("sid")
                if isinstance(sid, StringMessage):
                    self._socket_id = sid.value
            self.on_connected()
        elif kind is PacketType.DISCONNECT:
            self.on_close()
        elif kind in (PacketType.EVENT, PacketType.BINARY_EVENT):
            if isinstance(message, ArrayMessage) and len(message) >= 1:
                head = message[0]
                if isinstance(head, StringMessage):
                    args = MessageList(list(message.value[1:]))
                    self._on_event(packet.nsp, packet.pack_id, head.value, args)
        elif kind in (PacketType.ACK, PacketType.BINARY_ACK):
            if isinstance(message, ArrayMessage):
                args = MessageList(list(message.value))
            else:
                args = MessageList(message)
            self._on_ack(packet.pack_id, args)
        elif kind is PacketType.ERROR:
            if self._error_listener is not None:
                self._error_listener(message)

    def _on_event(self, nsp: str, msg_id: int, name: str, args: MessageList) -> None:
        need_ack = msg_id >= 0
        event = Event(nsp, name, args, need_ack)
        with self._event_lock:
            listener = self._bindings.get(name)
        if listener is not None:
            listener(event)
        if need_ack:
            self._send_packet(
                Packet(
                    type=PacketType.ACK,
                    nsp=self._nsp,
                    message=event.ack_message.to_array_message(),
                    pack_id=msg_id,
                )
            )

    def _on_ack(self, msg_id: int, args: MessageList) -> None:
        with self._event_lock:
            listener = self._acks.pop(msg_id, None)
        if listener is not None:
            listener(args)