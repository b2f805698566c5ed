"""Socket.IO connection engine: websocket transport, namespaces and reconnection."""

from __future__ import annotations

import functools
import logging
import queue
import ssl
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Protocol
from urllib.parse import urlsplit

import websocket

from sionet.message import IntMessage, Message, ObjectMessage, StringMessage
from sionet.nsp_socket import Socket
from sionet.packet import FrameType, Packet, PacketManager

_logger = logging.getLogger(__name__)

CLOSE_NORMAL = 1000
CLOSE_ABNORMAL = 1006
CLOSE_POLICY_VIOLATION = 1008

DEFAULT_PATH = "socket.io"
DEFAULT_PING_INTERVAL = 25000
DEFAULT_PING_TIMEOUT = 60000
LOGS_QUIET = logging.CRITICAL + 10

_PLAIN_SCHEMES = frozenset({"http", "ws"})
_SECURE_SCHEMES = frozenset({"https", "wss"})


class ConnectionState(Enum):
    """Lifecycle of the underlying connection."""

    OPENING = "opening"
    OPENED = "opened"
    CLOSING = "closing"
    CLOSED = "closed"


class CloseReason(Enum):
    """Why the connection ended."""

    NORMAL = "normal"
    DROP = "drop"


def encode_query_string(query: str) -> str:
    """Percent-encode every byte of ``query`` that is not an ASCII letter or digit."""
    out = []
    for byte in query.encode("utf-8"):
        char = chr(byte)
        if char.isascii() and char.isalnum():
            out.append(char)
        else:
            out.append(f"%{byte:02X}")
    return "".join(out)


def is_tls(uri: str) -> bool:
    """Whether ``uri`` asks for an encrypted connection."""
    scheme = urlsplit(uri).scheme.lower()
    if scheme in _PLAIN_SCHEMES:
        return False
    if scheme in _SECURE_SCHEMES:
        return True
    raise ValueError("unsupported URI scheme")


def build_connect_url(
    uri: str, path: str, sid: str, query_string: str, timestamp: int
) -> str:
    """Build the websocket URL used to open an Engine.IO session."""
    secure = is_tls(uri)
    parts = urlsplit(uri)
    host = parts.hostname
    if not host:
        raise ValueError(f"invalid URI {uri!r}")
    port = parts.port or (443 if secure else 80)
    resource = parts.path or "/"
    if parts.query:
        resource = f"{resource}?{parts.query}"
    resource_path = "/socket.io/" if resource == "/" else resource
    if path != DEFAULT_PATH:
        resource_path = f"/{path}/"
    host_text = f"[{host}]" if ":" in host else host
    url = [
        "wss://" if secure else "ws://",
        host_text,
        f":{port}",
        resource_path,
        "?EIO=4&transport=websocket",
    ]
    if sid:
        url.append(f"&sid={sid}")
    url.append(f"&t={timestamp}")
    url.append(query_string)
    return "".join(url)


@dataclass(frozen=True)
class TransportEvents:
    """Callbacks a transport reports its lifecycle through."""

    on_open: Callable[[], None]
    on_message: Callable[["str | bytes"], None]
    on_close: Callable[[int], None]
    on_fail: Callable[[], None]


class Transport(Protocol):
    """A websocket connection driven by the engine's network thread."""

    def run(self) -> None: ...

    def send(self, data: str | bytes, binary: bool) -> None: ...

    def close(self, code: int, reason: str) -> None: ...


TransportFactory = Callable[[str, "dict[str, str]", TransportEvents], Transport]


class _WebSocketTransport:
    """Transport over a websocket-client application."""

    def __init__(
        self,
        url: str,
        headers: dict[str, str],
        events: TransportEvents,
        verify_tls: bool = True,
    ) -> None:
        self._events = events
        self._opened = False
        self._finished = False
        self._local_close: int | None = None
        self._sslopt = None if verify_tls else {"cert_reqs": ssl.CERT_NONE, "check_hostname": False}
        self._app = websocket.WebSocketApp(
            url,
            header=[f"{key}: {value}" for key, value in headers.items()],
            on_open=self._handle_open,
            on_message=self._handle_message,
            on_error=self._handle_error,
            on_close=self._handle_close,
        )

    def _handle_open(self, _app: object) -> None:
        self._opened = True
        self._events.on_open()

    def _handle_message(self, _app: object, data: str | bytes) -> None:
        self._events.on_message(data)

    def _handle_error(self, _app: object, error: object) -> None:
        _logger.debug("websocket error: %s", error)

    def _handle_close(self, _app: object, code: int | None, _reason: object) -> None:
        self._finish(code)

    def _finish(self, code: int | None) -> None:
        if self._finished:
            return
        self._finished = True
        if not self._opened:
            self._events.on_fail()
        else:
            self._events.on_close(self._local_close or code or CLOSE_ABNORMAL)

    def run(self) -> None:
        self._app.run_forever(sslopt=self._sslopt)
        self._finish(None)

    def send(self, data: str | bytes, binary: bool) -> None:
        opcode = websocket.ABNF.OPCODE_BINARY if binary else websocket.ABNF.OPCODE_TEXT
        self._app.send(data, opcode=opcode)

    def close(self, code: int, reason: str) -> None:
        self._local_close = code
        self._app.close(status=code, reason=reason.encode("utf-8"))


class Engine:
    """Owns one Engine.IO connection and the namespace sockets multiplexed over it."""

    def __init__(
        self,
        transport_factory: TransportFactory | None = None,
        *,
        verify_tls: bool = True,
    ) -> None:
        self._transport_factory: TransportFactory = transport_factory or functools.partial(
            _WebSocketTransport, verify_tls=verify_tls
        )
        self._lock = threading.RLock()
        self._socket_lock = threading.Lock()
        self._tasks: queue.SimpleQueue[Callable[[], None] | None] = queue.SimpleQueue()
        self._loop_running = False
        self._network_thread: threading.Thread | None = None
        self._transport: Transport | None = None
        self._con_open = False
        self._state = ConnectionState.CLOSED
        self._sid = ""
        self._base_url = ""
        self._query_string = ""
        self._headers: dict[str, str] = {}
        self._auth: Message | None = None
        self._path = DEFAULT_PATH
        self.ping_interval = 0
        self.ping_timeout = 0
        self._packets = PacketManager(self._on_decode, self._send_impl)
        self._reconn_timer: threading.Timer | None = None
        self._reconn_delay = 5000
        self._reconn_delay_max = 25000
        self.reconnect_attempts = 0xFFFFFFFF
        self._reconn_made = 0
        self._sockets: dict[str, Socket] = {}
        self.log_level = logging.INFO

        self.open_listener: Callable[[], None] | None = None
        self.fail_listener: Callable[[], None] | None = None
        self.reconnecting_listener: Callable[[], None] | None = None
        self.reconnect_listener: Callable[[int, int], None] | None = None
        self.close_listener: Callable[[CloseReason], None] | None = None
        self.socket_open_listener: Callable[[str], None] | None = None
        self.socket_close_listener: Callable[[str], None] | None = None

    # public state

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def url(self) -> str:
        """The base URL of the last connection attempt."""
        return self._base_url

    @property
    def sid(self) -> str:
        """The session id the server handed out, or an empty string."""
        return self._sid

    @property
    def reconnect_delay(self) -> int:
        """Initial reconnection delay in milliseconds."""
        return self._reconn_delay

    @reconnect_delay.setter
    def reconnect_delay(self, millis: int) -> None:
        self._reconn_delay = millis
        if self._reconn_delay_max < millis:
            self._reconn_delay_max = millis

    @property
    def reconnect_delay_max(self) -> int:
        """Upper bound of the reconnection delay in milliseconds."""
        return self._reconn_delay_max

    @reconnect_delay_max.setter
    def reconnect_delay_max(self, millis: int) -> None:
        self._reconn_delay_max = millis
        if self._reconn_delay > millis:
            self._reconn_delay = millis

    def opened(self) -> bool:
        return self._state is ConnectionState.OPENED

    def next_delay(self) -> int:
        """Delay in milliseconds before the next reconnection attempt."""
        made = min(self._reconn_made, 32)
        return int(min(self._reconn_delay * 1.5**made, self._reconn_delay_max))

    # logging

    def _access(self, level: int, text: str) -> None:
        if level >= self.log_level:
            _logger.log(level, text)

    def set_logs_default(self) -> None:
        self.log_level = logging.INFO

    def set_logs_quiet(self) -> None:
        self.log_level = LOGS_QUIET

    def set_logs_verbose(self) -> None:
        self.log_level = logging.DEBUG

    # network thread

    def _post(self, task: Callable[[], None] | None) -> None:
        with self._lock:
            self._tasks.put(task)
            if not self._loop_running:
                self._loop_running = True
                self._network_thread = threading.Thread(
                    target=self._run_loop, name="sionet-engine", daemon=True
                )
                self._network_thread.start()

    def _run_loop(self) -> None:
        while True:
            task = self._tasks.get()
            if task is not None:
                task()
            with self._lock:
                if self._tasks.empty() and self._reconn_timer is None:
                    self._loop_running = False
                    break
        self._access(logging.DEBUG, "run loop end")

    def _cancel_reconnect(self) -> None:
        with self._lock:
            if self._reconn_timer is not None:
                self._reconn_timer.cancel()
                self._reconn_timer = None
                if self._loop_running:
                    self._tasks.put(None)

    def schedule(self, delay: float, callback: Callable[[], None]) -> threading.Timer:
        """Run ``callback`` after ``delay`` seconds; the returned timer can be cancelled."""

        def fire() -> None:
            with self._lock:
                callback()

        timer = threading.Timer(delay, fire)
        timer.daemon = True
        timer.start()
        return timer

    # connection control

    def connect(
        self,
        uri: str = "",
        query: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        auth: Message | None = None,
        path: str = DEFAULT_PATH,
    ) -> None:
        """Start connecting in the background; does nothing while already connected."""
        self._cancel_reconnect()
        thread = self._network_thread
        if thread is not None:
            if self._state not in (ConnectionState.CLOSING, ConnectionState.CLOSED):
                return
            if thread is not threading.current_thread():
                thread.join()
            self._network_thread = None
        with self._lock:
            self._state = ConnectionState.OPENING
            self._reconn_made = 0
            if uri:
                self._base_url = uri
            self._query_string = "".join(
                f"&{key}={encode_query_string(value)}"
                for key, value in sorted((query or {}).items())
            )
            self._headers = dict(headers or {})
            self._auth = auth
            if path:
                self._path = path
            self._reset_states()
            self._post(functools.partial(self._connect_impl, self._base_url, self._query_string))

    def _connect_impl(self, uri: str, query_string: str) -> None:
        with self._lock:
            try:
                url = build_connect_url(uri, self._path, self._sid, query_string, int(time.time()))
                events = TransportEvents(
                    self._on_open, self._on_message, self._on_close, self._on_fail
                )
                transport = self._transport_factory(url, dict(self._headers), events)
            except (ValueError, OSError, websocket.WebSocketException) as exc:
                self._access(logging.INFO, f"Get Connection Error: {exc}")
                if self.fail_listener is not None:
                    self.fail_listener()
                return
            self._transport = transport
        transport.run()

    def close(self) -> None:
        """Leave every namespace and close the connection."""
        with self._lock:
            self._state = ConnectionState.CLOSING
            self._sockets_invoke(Socket.close)
            self._close_impl(CLOSE_NORMAL, "End by user")

    def sync_close(self) -> None:
        """Close and wait for the network thread to finish."""
        self.close()
        thread = self._network_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()
            self._network_thread = None

    def _close_impl(self, code: int, reason: str) -> None:
        self._access(logging.DEBUG, f"Close by reason: {reason}")
        self._cancel_reconnect()
        transport = self._transport
        if not self._con_open or transport is None:
            self._access(logging.WARNING, f"No active session: {reason}")
            return
        try:
            transport.close(code, reason)
        except (OSError, websocket.WebSocketException) as exc:
            self._access(logging.WARNING, f"Close failed: {exc}")

    def _reset_states(self) -> None:
        self._sid = ""
        self._packets.reset()

    def _schedule_reconnect(self) -> bool:
        if self._reconn_made >= self.reconnect_attempts:
            return False
        delay = self.next_delay()
        self._access(logging.INFO, f"Reconnect for attempt: {self._reconn_made}")
        if self.reconnect_listener is not None:
            self.reconnect_listener(self._reconn_made, delay)
        self._reconn_timer = self.schedule(
            delay / 1000, lambda: self._post(self._timeout_reconnect)
        )
        return True

    def _timeout_reconnect(self) -> None:
        with self._lock:
            self._reconn_timer = None
            if self._state is not ConnectionState.CLOSED:
                return
            self._state = ConnectionState.OPENING
            self._reconn_made += 1
            self._reset_states()
            self._access(logging.INFO, "Reconnecting...")
            if self.reconnecting_listener is not None:
                self.reconnecting_listener()
            uri, query_string = self._base_url, self._query_string
        self._connect_impl(uri, query_string)

    # namespaces

    def socket(self, nsp: str = "") -> Socket:
        """Return the socket of a namespace, creating it on first use."""
        if not nsp:
            name = "/"
        elif not nsp.startswith("/"):
            name = "/" + nsp
        else:
            name = nsp
        with self._socket_lock:
            existing = self._sockets.get(name)
            if existing is not None:
                return existing
            created = Socket(self, name, self._auth)
            self._sockets[name] = created
            return created

    def remove_socket(self, nsp: str) -> None:
        with self._socket_lock:
            self._sockets.pop(nsp, None)

    def _get_socket(self, nsp: str) -> Socket | None:
        with self._socket_lock:
            return self._sockets.get(nsp)

    def _sockets_invoke(self, action: Callable[[Socket], None]) -> None:
        with self._socket_lock:
            sockets = [self._sockets[name] for name in sorted(self._sockets)]
        for sock in sockets:
            action(sock)

    def on_socket_opened(self, nsp: str) -> None:
        if self.socket_open_listener is not None:
            self.socket_open_listener(nsp)

    def on_socket_closed(self, nsp: str) -> None:
        if self.socket_close_listener is not None:
            self.socket_close_listener(nsp)

    # sending

    def send(self, packet: Packet) -> None:
        """Encode a packet and send it while the connection is open."""
        self._packets.encode(packet)

    def _send_impl(self, binary: bool, payload: str | bytes) -> None:
        transport = self._transport
        if self._state is ConnectionState.OPENED and transport is not None:
            try:
                transport.send(payload, binary)
            except (OSError, websocket.WebSocketException) as exc:
                self._access(logging.WARNING, f"Send failed, reason: {exc}")

    # transport events

    def _on_open(self) -> None:
        with self._lock:
            if self._state is ConnectionState.CLOSING:
                self._access(logging.INFO, "Connection opened while closing.")
                self._con_open = True
                self.close()
                return
            self._access(logging.INFO, "Connected.")
            self._state = ConnectionState.OPENED
            self._con_open = True
            self._reconn_made = 0
            self._sockets_invoke(Socket.on_open)
            self.socket("")
            if self.open_listener is not None:
                self.open_listener()

    def _on_fail(self) -> None:
        with self._lock:
            if self._state is ConnectionState.CLOSING:
                self._access(logging.INFO, "Connection failed while closing.")
                self.close()
                return
            self._transport = None
            self._con_open = False
            self._state = ConnectionState.CLOSED
            self._sockets_invoke(Socket.on_disconnect)
            self._access(logging.INFO, "Connection failed.")
            if not self._schedule_reconnect() and self.fail_listener is not None:
                self.fail_listener()

    def _on_close(self, code: int) -> None:
        with self._lock:
            self._access(logging.INFO, "Client Disconnected.")
            was = self._state
            self._state = ConnectionState.CLOSED
            self._con_open = False
            self._transport = None
            self._sockets_invoke(Socket.on_disconnect)
            if code == CLOSE_NORMAL or was is ConnectionState.CLOSING:
                reason = CloseReason.NORMAL
            else:
                if self._schedule_reconnect():
                    return
                reason = CloseReason.DROP
            if self.close_listener is not None:
                self.close_listener(reason)

    def _on_message(self, data: str | bytes) -> None:
        with self._lock:
            self._packets.put_payload(data)

    def _on_decode(self, packet: Packet) -> None:
        if packet.frame is FrameType.MESSAGE:
            sock = self._get_socket(packet.nsp)
            if sock is not None:
                sock.on_message_packet(packet)
        elif packet.frame is FrameType.OPEN:
            self._on_handshake(packet.message)
        elif packet.frame is FrameType.CLOSE:
            self._close_impl(CLOSE_ABNORMAL, "End by server")
        elif packet.frame is FrameType.PING:
            self._on_ping()

    def _on_handshake(self, message: Message | None) -> None:
        if isinstance(message, ObjectMessage):
            sid = message.get("sid")
            if isinstance(sid, StringMessage):
                self._sid = sid.value
                interval = message.get("pingInterval")
                self.ping_interval = (
                    interval.value if isinstance(interval, IntMessage) else DEFAULT_PING_INTERVAL
                )
                timeout = message.get("pingTimeout")
                self.ping_timeout = (
                    timeout.value if isinstance(timeout, IntMessage) else DEFAULT_PING_TIMEOUT
                )
                return
        self._close_impl(CLOSE_POLICY_VIOLATION, "Handshake error")

    def _on_ping(self) -> None:
        transport = self._transport

        def direct(binary: bool, payload: str | bytes) -> None:
            if transport is not None:
                transport.send(payload, binary)

        self._packets.encode(Packet(frame=FrameType.PONG), direct)

    def __enter__(self) -> Engine:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.sync_close()