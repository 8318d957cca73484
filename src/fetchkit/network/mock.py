"""
Mock implementations for testing.

In-memory stand-ins for every seam fetchkit talks through: network
streams and backends for the h11 drivers, a BlockingExecutor for the
native backend and a HostFetch for the web backend. None of them perform
real I/O.
"""

import ssl
from collections import deque
from typing import Any, AsyncIterator, Deque, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from ..config import FetchConfig
from ..host import HostFetch, HostResponse
from ..http_primitives import Request
from ..transport import BlockingExecutor, BodyReader, RawResponse
from .backend import NetworkBackend
from .stream import NetworkStream, SyncNetworkStream


class _MockStreamBuffer:
    """Read/write buffers shared by the sync and async mock streams."""

    def __init__(self, data: bytes = b"", read_error: Optional[BaseException] = None) -> None:
        self._data = data
        self._position = 0
        self._closed = False
        self._write_buffer: List[bytes] = []
        self._read_error = read_error

    def _read(self, max_bytes: Optional[int]) -> bytes:
        if self._closed:
            raise RuntimeError("Stream is closed")

        if self._position >= len(self._data):
            if self._read_error is not None:
                raise self._read_error
            return b""

        if max_bytes is None:
            end = len(self._data)
        else:
            end = min(self._position + max_bytes, len(self._data))
        result = self._data[self._position:end]
        self._position = end
        return result

    def _write(self, data: bytes) -> None:
        if self._closed:
            raise RuntimeError("Stream is closed")
        self._write_buffer.append(data)

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def written_data(self) -> bytes:
        """Get all data that was written to the stream."""
        return b"".join(self._write_buffer)

    def add_data(self, data: bytes) -> None:
        """Add data to be available for reading."""
        self._data += data


class MockNetworkStream(_MockStreamBuffer, NetworkStream):
    """
    Mock network stream for testing.

    Serves ``data`` to readers, then b"" (or raises ``read_error`` once
    the data is used up), and records everything written.
    """

    def __init__(self, data: bytes = b"", read_error: Optional[BaseException] = None) -> None:
        super().__init__(data, read_error)
        self._extra_info: Dict[str, Any] = {}

    async def read(self, max_bytes: Optional[int] = None) -> bytes:
        return self._read(max_bytes)

    async def write(self, data: bytes) -> None:
        self._write(data)

    async def aclose(self) -> None:
        self._closed = True

    def get_extra_info(self, name: str) -> Optional[Any]:
        return self._extra_info.get(name)

    def set_extra_info(self, name: str, value: Any) -> None:
        self._extra_info[name] = value


class MockSyncNetworkStream(_MockStreamBuffer, SyncNetworkStream):
    """Blocking counterpart of MockNetworkStream."""

    def read(self, max_bytes: Optional[int] = None) -> bytes:
        return self._read(max_bytes)

    def write(self, data: bytes) -> None:
        self._write(data)

    def close(self) -> None:
        self._closed = True


class MockNetworkBackend(NetworkBackend):
    """
    Mock network backend for testing.

    Every ``connect`` to a (host, port) pops the next scripted reply for
    that address; an exception instance is raised instead of connecting.
    """

    def __init__(self) -> None:
        self._replies: Dict[Tuple[str, int], Deque[Union[bytes, BaseException]]] = {}
        self.connections: List[Tuple[str, int, Optional[ssl.SSLContext], MockNetworkStream]] = []

    def add_reply(self, host: str, port: int, reply: Union[bytes, BaseException]) -> None:
        """Script the raw server bytes (or the error) for the next connection."""
        self._replies.setdefault((host, port), deque()).append(reply)

    async def connect(
        self,
        host: str,
        port: int,
        timeout: Optional[float] = None,
        ssl_context: Optional[ssl.SSLContext] = None,
    ) -> MockNetworkStream:
        replies = self._replies.get((host, port))
        if not replies:
            raise OSError(f"No mock reply for {host}:{port}")
        reply = replies.popleft()
        if isinstance(reply, BaseException):
            raise reply

        stream = MockNetworkStream(reply)
        stream.set_extra_info("peername", (host, port))
        stream.set_extra_info("sockname", ("127.0.0.1", 12345))
        if ssl_context is not None:
            stream.set_extra_info("ssl_object", True)
        self.connections.append((host, port, ssl_context, stream))
        return stream

    def reset(self) -> None:
        """Reset all scripted replies and recorded connections."""
        self._replies.clear()
        self.connections.clear()


class MockBodyReader(BodyReader):
    """
    BodyReader handing out pre-defined chunks.

    After the chunks, raises ``error`` if one was given, else returns b"".
    ``max_bytes`` is ignored: each read returns one whole chunk.
    """

    def __init__(self, chunks: Iterable[bytes] = (), error: Optional[BaseException] = None) -> None:
        self._chunks: Deque[bytes] = deque(chunk for chunk in chunks if chunk)
        self._error = error
        self.closed = False
        self.reads = 0

    def read(self, max_bytes: int) -> bytes:
        self.reads += 1
        if self._chunks:
            return self._chunks.popleft()
        if self._error is not None:
            raise self._error
        return b""

    def close(self) -> None:
        self.closed = True


def mock_raw_response(
    url: str,
    status: int = 200,
    reason: str = "OK",
    headers: Sequence[Tuple[bytes, bytes]] = (),
    chunks: Iterable[bytes] = (),
    error: Optional[BaseException] = None,
) -> RawResponse:
    """Build a RawResponse around a MockBodyReader."""
    return RawResponse(
        url=url,
        status=status,
        reason=reason,
        headers=list(headers),
        body=MockBodyReader(chunks, error),
    )


class MockExecutor(BlockingExecutor):
    """
    BlockingExecutor replaying scripted outcomes in order.

    Each outcome is a RawResponse to return or an exception to raise.
    Executed requests are recorded in ``requests``.
    """

    def __init__(
        self,
        outcomes: Iterable[Union[RawResponse, BaseException]] = (),
        config: Optional[FetchConfig] = None,
    ) -> None:
        self._outcomes: Deque[Union[RawResponse, BaseException]] = deque(outcomes)
        self.config = config or FetchConfig()
        self.requests: List[Request] = []

    def add(self, outcome: Union[RawResponse, BaseException]) -> None:
        self._outcomes.append(outcome)

    def execute(self, request: Request) -> RawResponse:
        self.requests.append(request)
        if not self._outcomes:
            raise AssertionError(f"No scripted outcome for {request.url}")
        outcome = self._outcomes.popleft()
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class MockHostResponse(HostResponse):
    """HostResponse with fixed head and body chunks."""

    def __init__(
        self,
        url: str,
        status: int = 200,
        status_text: str = "OK",
        headers: Sequence[Tuple[Any, Any]] = (),
        chunks: Iterable[bytes] = (),
        error: Optional[BaseException] = None,
        has_body: bool = True,
    ) -> None:
        self._url = url
        self._status = status
        self._status_text = status_text
        self._headers = list(headers)
        self._chunks = list(chunks)
        self._error = error
        self._has_body = has_body
        self.closed = False

    @property
    def url(self) -> str:
        return self._url

    @property
    def status(self) -> int:
        return self._status

    @property
    def status_text(self) -> str:
        return self._status_text

    @property
    def headers(self) -> List[Tuple[Any, Any]]:
        return list(self._headers)

    async def array_buffer(self) -> bytes:
        if self._error is not None:
            raise self._error
        return b"".join(self._chunks)

    def body(self) -> Optional[AsyncIterator[bytes]]:
        if not self._has_body:
            return None
        return self._iter_body()

    async def _iter_body(self) -> AsyncIterator[bytes]:
        for chunk in self._chunks:
            yield chunk
        if self._error is not None:
            raise self._error

    async def aclose(self) -> None:
        self.closed = True


class MockHostFetch(HostFetch):
    """
    HostFetch replaying scripted outcomes in order.

    An exception outcome is raised from ``fetch``, the way a browser
    rejects the fetch promise.
    """

    def __init__(self, outcomes: Iterable[Union[MockHostResponse, BaseException]] = ()) -> None:
        self._outcomes: Deque[Union[MockHostResponse, BaseException]] = deque(outcomes)
        self.requests: List[Request] = []

    def add(self, outcome: Union[MockHostResponse, BaseException]) -> None:
        self._outcomes.append(outcome)

    async def fetch(self, request: Request) -> MockHostResponse:
        self.requests.append(request)
        if not self._outcomes:
            raise AssertionError(f"No scripted outcome for {request.url}")
        outcome = self._outcomes.popleft()
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome
