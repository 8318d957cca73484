"""
HTTP/1.1 connection implementation for fetchkit.

Both drivers wrap one ``h11`` client state machine: SyncHTTP11Connection
blocks on a SyncNetworkStream (native worker threads) and HTTP11Connection
awaits a NetworkStream (event loop). Every connection carries a single
request/response cycle and is closed afterwards.
"""

import asyncio
import logging
import socket
from http import HTTPStatus
from typing import Iterable, List, Optional, Tuple, Union

import h11

from .exceptions import (
    ConnectionError,
    IncompleteBodyError,
    ProtocolError,
    StreamError,
    TimeoutError,
)
from .network.stream import NetworkStream, SyncNetworkStream

logger = logging.getLogger(__name__)

WireHeaders = List[Tuple[bytes, bytes]]


def single_exchange_headers(headers: Iterable[Tuple[bytes, bytes]]) -> WireHeaders:
    """
    Request headers for a connection that carries one exchange.

    Any Connection or Keep-Alive header is replaced by ``Connection: close``;
    everything else goes out unchanged and in order.
    """
    wire = [
        (bytes(name), bytes(value))
        for name, value in headers
        if name.lower() not in (b"connection", b"keep-alive")
    ]
    wire.append((b"Connection", b"close"))
    return wire


def reason_phrase(status: int, reason: bytes) -> str:
    """The server's reason phrase, or the standard one when it sent none."""
    text = reason.decode("latin-1").strip()
    if text:
        return text
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return "Error"


class _HTTP11Base:
    """State shared by the blocking and the asynchronous driver."""

    READ_SIZE = 65536  # 64KB reads

    def __init__(self, read_timeout: Optional[float] = None) -> None:
        self._h11_connection = h11.Connection(h11.CLIENT)
        self._read_timeout = read_timeout
        self._bytes_sent = 0
        self._bytes_received = 0
        self._closed = False

    def _request_events(
        self,
        method: str,
        target: str,
        headers: WireHeaders,
        body: bytes,
    ) -> List[h11.Event]:
        try:
            events: List[h11.Event] = [
                h11.Request(method=method, target=target, headers=headers)
            ]
        except h11.LocalProtocolError as e:
            raise ProtocolError(f"Invalid request: {e}", cause=e) from e
        if body:
            events.append(h11.Data(data=body))
        events.append(h11.EndOfMessage())
        return events

    def _encode(self, event: h11.Event) -> bytes:
        try:
            data = self._h11_connection.send(event)
        except h11.LocalProtocolError as e:
            raise ProtocolError(f"Invalid request: {e}", cause=e) from e
        data = data or b""
        self._bytes_sent += len(data)
        return data

    def _next_event(self) -> Union[h11.Event, type]:
        in_body = self._h11_connection.their_state is h11.SEND_BODY
        try:
            return self._h11_connection.next_event()
        except h11.RemoteProtocolError as e:
            if in_body:
                raise IncompleteBodyError(str(e), cause=e) from e
            raise ProtocolError(f"Malformed response: {e}", cause=e) from e

    def _receive_data(self, data: bytes) -> None:
        if not data and self._h11_connection.their_state is h11.SEND_RESPONSE:
            raise ConnectionError("Server closed the connection before sending a response")
        self._bytes_received += len(data)
        self._h11_connection.receive_data(data)

    def _read_error(self, error: BaseException) -> Exception:
        if isinstance(error, (socket.timeout, asyncio.TimeoutError)):
            return TimeoutError("Receiving from server timed out", self._read_timeout, cause=error)
        if self._h11_connection.their_state is h11.SEND_BODY:
            return StreamError(f"Failed to read response body: {error}", cause=error)
        return ConnectionError(f"Failed to read response: {error}", cause=error)

    def _head_event(self, event: h11.Event) -> Optional[h11.Response]:
        if isinstance(event, h11.InformationalResponse):
            return None
        if isinstance(event, h11.Response):
            return event
        if isinstance(event, h11.ConnectionClosed):
            raise ProtocolError("Connection closed by server")
        raise ProtocolError(f"Unexpected event before response: {event!r}")

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def bytes_sent(self) -> int:
        return self._bytes_sent

    @property
    def bytes_received(self) -> int:
        return self._bytes_received


class SyncHTTP11Connection(_HTTP11Base):
    """
    Blocking HTTP/1.1 driver.

    The stream's own timeout applies to reads; ``read_timeout`` is only
    reported in error messages.
    """

    def __init__(self, stream: SyncNetworkStream, read_timeout: Optional[float] = None) -> None:
        super().__init__(read_timeout)
        self._stream = stream

    def send_request(
        self,
        method: str,
        target: str,
        headers: WireHeaders,
        body: bytes = b"",
    ) -> None:
        for event in self._request_events(method, target, headers, body):
            data = self._encode(event)
            if not data:
                continue
            try:
                self._stream.write(data)
            except OSError as e:
                raise ConnectionError(f"Failed to send request: {e}", cause=e) from e

    def receive_response(self) -> h11.Response:
        """Read until the final (non-1xx) response head."""
        while True:
            event = self._next_event()
            if event is h11.NEED_DATA:
                self._read_more()
                continue
            head = self._head_event(event)
            if head is not None:
                return head

    def receive_body_chunk(self) -> Optional[bytes]:
        """
        Receive a chunk of response body.

        Returns:
            Raw (still encoded) body bytes or None at end of body
        """
        while True:
            event = self._next_event()
            if event is h11.NEED_DATA:
                self._read_more()
                continue
            if isinstance(event, h11.Data):
                if event.data:
                    return bytes(event.data)
                continue
            if isinstance(event, (h11.EndOfMessage, h11.ConnectionClosed)):
                return None

    def _read_more(self) -> None:
        try:
            data = self._stream.read(self.READ_SIZE)
        except OSError as e:
            raise self._read_error(e) from e
        self._receive_data(data)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._stream.close()
            logger.debug(
                f"Connection closed (sent={self._bytes_sent}, received={self._bytes_received})"
            )


class HTTP11Connection(_HTTP11Base):
    """
    Asynchronous HTTP/1.1 driver for the event loop.
    """

    def __init__(self, stream: NetworkStream, read_timeout: Optional[float] = None) -> None:
        super().__init__(read_timeout)
        self._stream = stream

    async def send_request(
        self,
        method: str,
        target: str,
        headers: WireHeaders,
        body: bytes = b"",
    ) -> None:
        for event in self._request_events(method, target, headers, body):
            data = self._encode(event)
            if not data:
                continue
            try:
                await self._stream.write(data)
            except OSError as e:
                raise ConnectionError(f"Failed to send request: {e}", cause=e) from e

    async def receive_response(self) -> h11.Response:
        while True:
            event = self._next_event()
            if event is h11.NEED_DATA:
                await self._read_more()
                continue
            head = self._head_event(event)
            if head is not None:
                return head

    async def receive_body_chunk(self) -> Optional[bytes]:
        while True:
            event = self._next_event()
            if event is h11.NEED_DATA:
                await self._read_more()
                continue
            if isinstance(event, h11.Data):
                if event.data:
                    return bytes(event.data)
                continue
            if isinstance(event, (h11.EndOfMessage, h11.ConnectionClosed)):
                return None

    async def _read_more(self) -> None:
        try:
            data = await asyncio.wait_for(
                self._stream.read(self.READ_SIZE),
                timeout=self._read_timeout,
            )
        except (OSError, asyncio.TimeoutError) as e:
            raise self._read_error(e) from e
        self._receive_data(data)

    async def aclose(self) -> None:
        if not self._closed:
            self._closed = True
            await self._stream.aclose()
            logger.debug(
                f"Connection closed (sent={self._bytes_sent}, received={self._bytes_received})"
            )
