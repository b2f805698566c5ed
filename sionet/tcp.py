"""A thin blocking TCP client that exchanges plain text messages."""

from __future__ import annotations

import select
import socket

_MAX_READ = 65507


class TcpConnection:
    """A connected TCP stream carrying UTF-8 text."""

    def __init__(self, sock: socket.socket) -> None:
        self._sock: socket.socket | None = sock

    @property
    def closed(self) -> bool:
        return self._sock is None

    def _require_open(self) -> socket.socket:
        if self._sock is None:
            raise ValueError("connection is closed")
        return self._sock

    def send_message(self, message: str) -> int:
        """Send ``message`` as UTF-8 and return the number of bytes sent."""
        sock = self._require_open()
        data = message.encode("utf-8")
        sock.sendall(data)
        return len(data)

    def _peek(self, sock: socket.socket) -> bool:
        readable, _, _ = select.select([sock], [], [], 0)
        if not readable:
            return False
        try:
            return bool(sock.recv(1, socket.MSG_PEEK))
        except OSError:
            return False

    def has_pending_data(self) -> bool:
        """Whether bytes are waiting to be read; ``False`` once closed."""
        if self._sock is None:
            return False
        return self._peek(self._sock)

    def get_message(self) -> str | None:
        """Read everything pending as text, up to the first NUL; ``None`` if nothing waits."""
        sock = self._require_open()
        chunks = []
        while self._peek(sock):
            chunks.append(sock.recv(_MAX_READ))
        if not chunks:
            return None
        data = b"".join(chunks).split(b"\0", 1)[0]
        return data.decode("utf-8", errors="replace")

    def close(self) -> None:
        """Close the connection; closing twice does nothing."""
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    def __enter__(self) -> TcpConnection:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def connect(host: str, port: int) -> TcpConnection:
    """Resolve ``host`` and open a TCP connection to its first address."""
    try:
        infos = socket.getaddrinfo(host, port, type=socket.SOCK_STREAM)
    except socket.gaierror as exc:
        raise ConnectionError(f"Unable to resolve host {host!r}") from exc
    if not infos:
        raise ConnectionError(f"Unable to resolve host {host!r}")
    family, socktype, proto, _, address = infos[0]
    sock = socket.socket(family, socktype, proto)
    try:
        sock.connect(address)
    except OSError as exc:
        sock.close()
        raise ConnectionError(f"Could not connect to {host}:{port}") from exc
    return TcpConnection(sock)