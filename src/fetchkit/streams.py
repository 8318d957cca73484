"""
Response body streams handed to httpx by the h11 transports.

Each stream reads the raw (still encoded) body from the connection that
carried the request. Reading is driven by consumption: nothing is pulled
from the network until httpx asks for the next chunk. Content decoding
happens above, in ``httpx.Response.iter_bytes``/``aiter_bytes``.
"""

from typing import AsyncIterator, Iterator

import httpx

from .exceptions import FetchError, StreamError
from .http11 import HTTP11Connection, SyncHTTP11Connection


class SyncConnectionStream(httpx.SyncByteStream):
    """
    Blocking body stream over a SyncHTTP11Connection.

    The connection is closed when the body ends, when reading fails or
    when httpx closes the response early.
    """

    def __init__(self, connection: SyncHTTP11Connection) -> None:
        self._connection = connection
        self._closed = False
        self._bytes_read = 0

    def __iter__(self) -> Iterator[bytes]:
        if self._closed:
            raise StreamError("Cannot read from closed stream")

        while True:
            try:
                chunk = self._connection.receive_body_chunk()
            except FetchError:
                self.close()
                raise
            if chunk is None:
                self.close()
                return
            self._bytes_read += len(chunk)
            yield chunk

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._connection.close()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def bytes_read(self) -> int:
        """Number of raw body bytes handed out so far."""
        return self._bytes_read


class ConnectionStream(httpx.AsyncByteStream):
    """
    Async body stream over an HTTP11Connection.
    """

    def __init__(self, connection: HTTP11Connection) -> None:
        self._connection = connection
        self._closed = False
        self._bytes_read = 0

    async def __aiter__(self) -> AsyncIterator[bytes]:
        if self._closed:
            raise StreamError("Cannot read from closed stream")

        while True:
            try:
                chunk = await self._connection.receive_body_chunk()
            except FetchError:
                await self.aclose()
                raise
            if chunk is None:
                await self.aclose()
                return
            self._bytes_read += len(chunk)
            yield chunk

    async def aclose(self) -> None:
        """Close the stream and the connection behind it."""
        if not self._closed:
            self._closed = True
            await self._connection.aclose()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def bytes_read(self) -> int:
        return self._bytes_read
