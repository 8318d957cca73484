"""
Blocking socket streams for the native backend.
"""

import logging
import socket
import ssl
from typing import Optional

from .stream import SyncNetworkStream
from .utils import translate_connect_error

logger = logging.getLogger(__name__)


class SocketStream(SyncNetworkStream):
    """SyncNetworkStream over a plain or TLS-wrapped socket."""

    def __init__(self, sock: socket.socket) -> None:
        self._sock = sock
        self._closed = False

    def read(self, max_bytes: int) -> bytes:
        if self._closed:
            raise RuntimeError("Stream is closed")
        return self._sock.recv(max_bytes)

    def write(self, data: bytes) -> None:
        if self._closed:
            raise RuntimeError("Stream is closed")
        self._sock.sendall(data)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._sock.close()
        except OSError as e:
            logger.debug(f"Error closing socket: {e}")

    @property
    def is_closed(self) -> bool:
        return self._closed


def connect_socket(
    host: str,
    port: int,
    timeout: Optional[float] = None,
    ssl_context: Optional[ssl.SSLContext] = None,
) -> SocketStream:
    """
    Open a TCP connection, optionally upgraded to TLS.

    ``timeout`` applies to connecting and to every later read.

    Raises:
        ConnectionError: DNS, connect or TLS failure
        TimeoutError: If connecting times out
    """
    sock = None
    try:
        sock = socket.create_connection((host, port), timeout=timeout)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        if ssl_context is not None:
            sock = ssl_context.wrap_socket(sock, server_hostname=host)
    except Exception as e:
        if sock is not None:
            sock.close()
        raise translate_connect_error(e, host, port, timeout) from e

    logger.debug(f"Connected to {host}:{port} (tls={ssl_context is not None})")
    return SocketStream(sock)
