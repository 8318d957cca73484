"""
Network backend interface for fetchkit.

A NetworkBackend opens asynchronous connections for the web backend's
asyncio host. AsyncioNetworkBackend is the implementation on top of
asyncio streams.
"""

import asyncio
import logging
import ssl
from abc import ABC, abstractmethod
from typing import Any, Optional

from .stream import NetworkStream
from .utils import translate_connect_error

logger = logging.getLogger(__name__)


class NetworkBackend(ABC):
    """
    Interface for network backend implementations.
    """

    @abstractmethod
    async def connect(
        self,
        host: str,
        port: int,
        timeout: Optional[float] = None,
        ssl_context: Optional[ssl.SSLContext] = None,
    ) -> NetworkStream:
        """
        Connect to a TCP endpoint, optionally with TLS.

        Args:
            host: The hostname or IP address to connect to.
            port: The port number to connect to.
            timeout: Optional timeout in seconds for the connection.
            ssl_context: TLS settings; plain TCP when None.

        Returns:
            A NetworkStream representing the connection.

        Raises:
            ConnectionError: If the connection fails.
            TimeoutError: If the connection times out.
        """
        pass


class AsyncioNetworkStream(NetworkStream):
    """NetworkStream over an asyncio reader/writer pair."""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._reader = reader
        self._writer = writer
        self._closed = False

    async def read(self, max_bytes: int) -> bytes:
        if self._closed:
            raise RuntimeError("Stream is closed")
        return await self._reader.read(max_bytes)

    async def write(self, data: bytes) -> None:
        if self._closed:
            raise RuntimeError("Stream is closed")
        self._writer.write(data)
        await self._writer.drain()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except (OSError, ssl.SSLError) as e:
            logger.debug(f"Error closing stream: {e}")

    def get_extra_info(self, name: str) -> Optional[Any]:
        return self._writer.get_extra_info(name)

    @property
    def is_closed(self) -> bool:
        return self._closed


class AsyncioNetworkBackend(NetworkBackend):
    """Opens connections with ``asyncio.open_connection``."""

    async def connect(
        self,
        host: str,
        port: int,
        timeout: Optional[float] = None,
        ssl_context: Optional[ssl.SSLContext] = None,
    ) -> AsyncioNetworkStream:
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(
                    host,
                    port,
                    ssl=ssl_context,
                    server_hostname=host if ssl_context is not None else None,
                ),
                timeout=timeout,
            )
        except Exception as e:
            raise translate_connect_error(e, host, port, timeout) from e

        logger.debug(f"Connected to {host}:{port} (tls={ssl_context is not None})")
        return AsyncioNetworkStream(reader, writer)
