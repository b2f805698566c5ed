"""Socket.IO client with namespace sockets, plus a small TCP text socket helper."""

__version__ = "0.1.0"
__all__ = ["message", "tcp", "packet", "nsp_socket", "engine", "client"]