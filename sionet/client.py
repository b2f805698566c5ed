"""The public Socket.IO client: listeners, connection control and namespaces."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sionet.engine import Engine, TransportFactory
from sionet.message import Message
from sionet.nsp_socket import Socket

_CON_LISTENERS = (
    "open_listener",
    "fail_listener",
    "reconnecting_listener",
    "reconnect_listener",
    "close_listener",
)
_SOCKET_LISTENERS = ("socket_open_listener", "socket_close_listener")


class _EngineAttribute:
    """An attribute stored on the client's engine under the same name."""

    def __set_name__(self, owner: type, name: str) -> None:
        self._name = name

    def __get__(self, obj: Client | None, objtype: type | None = None) -> Any:
        if obj is None:
            return self
        return getattr(obj._engine, self._name)

    def __set__(self, obj: Client, value: Any) -> None:
        setattr(obj._engine, self._name, value)


class Client:
    """A Socket.IO client holding one connection and its namespace sockets."""

    open_listener = _EngineAttribute()
    fail_listener = _EngineAttribute()
    reconnecting_listener = _EngineAttribute()
    reconnect_listener = _EngineAttribute()
    close_listener = _EngineAttribute()
    socket_open_listener = _EngineAttribute()
    socket_close_listener = _EngineAttribute()

    def __init__(
        self,
        *,
        verify_tls: bool = True,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        self._engine = Engine(transport_factory, verify_tls=verify_tls)
        self.path = ""

    @property
    def url(self) -> str:
        """The base URL of the last connection attempt."""
        return self._engine.url

    @property
    def sessionid(self) -> str:
        """The session id handed out by the server, or an empty string."""
        return self._engine.sid

    @property
    def reconnect_attempts(self) -> int:
        return self._engine.reconnect_attempts

    @property
    def reconnect_delay(self) -> int:
        return self._engine.reconnect_delay

    @property
    def reconnect_delay_max(self) -> int:
        return self._engine.reconnect_delay_max

    def clear_con_listeners(self) -> None:
        """Remove every connection listener."""
        for name in _CON_LISTENERS:
            setattr(self._engine, name, None)

    def clear_socket_listeners(self) -> None:
        """Remove the namespace open and close listeners."""
        for name in _SOCKET_LISTENERS:
            setattr(self._engine, name, None)

    def connect(
        self,
        uri: str = "",
        query: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        auth: Message | None = None,
    ) -> None:
        """Start connecting to ``uri`` in the background."""
        self._engine.connect(uri, query, headers, auth, self.path)

    def socket(self, nsp: str = "") -> Socket:
        """Return the socket of namespace ``nsp``, creating it on first use."""
        return self._engine.socket(nsp)

    def close(self) -> None:
        """Close the connection without waiting."""
        self._engine.close()

    def sync_close(self) -> None:
        """Close the connection and wait for the network thread to end."""
        self._engine.sync_close()

    def opened(self) -> bool:
        return self._engine.opened()

    def set_reconnect_attempts(self, attempts: int) -> None:
        """Limit reconnection attempts; a negative value wraps to an unsigned count."""
        self._engine.reconnect_attempts = attempts & 0xFFFFFFFF

    def set_reconnect_delay(self, millis: int) -> None:
        self._engine.reconnect_delay = millis

    def set_reconnect_delay_max(self, millis: int) -> None:
        self._engine.reconnect_delay_max = millis

    def set_logs_default(self) -> None:
        self._engine.set_logs_default()

    def set_logs_quiet(self) -> None:
        self._engine.set_logs_quiet()

    def set_logs_verbose(self) -> None:
        self._engine.set_logs_verbose()

    def __enter__(self) -> Client:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.sync_close()