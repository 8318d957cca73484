"""
Network layer for fetchkit.

Blocking socket streams for the native backend's worker threads and
asyncio streams for the web backend's asyncio host. Mocks for tests live
in ``fetchkit.network.mock``.
"""

from .backend import AsyncioNetworkBackend, AsyncioNetworkStream, NetworkBackend
from .stream import NetworkStream, SyncNetworkStream
from .sync import SocketStream, connect_socket
from .utils import (
    URLComponents,
    create_ssl_context,
    parse_url,
    translate_connect_error,
)

__all__ = [
    "NetworkBackend",
    "NetworkStream",
    "SyncNetworkStream",
    "AsyncioNetworkBackend",
    "AsyncioNetworkStream",
    "SocketStream",
    "connect_socket",
    "URLComponents",
    "create_ssl_context",
    "parse_url",
    "translate_connect_error",
]
