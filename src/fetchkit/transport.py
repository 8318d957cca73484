"""
Request executors and httpx transports.

Redirects, content decoding and timeouts are httpx's job: every request
goes through an ``httpx.Client`` (native worker threads) or an
``httpx.AsyncClient`` (asyncio host). Underneath, H11Transport and
AsyncH11Transport carry each exchange over its own h11 connection.

A BlockingExecutor performs one HTTP exchange on the calling thread and
hands back the raw response: status line, wire headers and a readable
body. Normalising that into Response/PartialResponse is the job of
``fetchkit.native``.
"""

import logging
import ssl
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

import httpx

from .config import FetchConfig
from .exceptions import ConnectionError, FetchError, ProtocolError, StreamError, TimeoutError
from .http11 import (
    HTTP11Connection,
    SyncHTTP11Connection,
    WireHeaders,
    reason_phrase,
    single_exchange_headers,
)
from .http_primitives import Request
from .network.backend import AsyncioNetworkBackend, NetworkBackend
from .network.sync import connect_socket
from .network.utils import URLComponents, create_ssl_context, parse_url
from .streams import ConnectionStream, SyncConnectionStream

logger = logging.getLogger(__name__)

HTTP_VERSION = b"HTTP/1.1"


def translate_httpx_error(error: Exception, url: str, config: FetchConfig) -> FetchError:
    """Map an exception raised by an httpx client to a FetchError."""
    if isinstance(error, httpx.TooManyRedirects):
        return ProtocolError(
            f"Too many redirects (more than {config.max_redirects}) for {url}", cause=error
        )
    if isinstance(error, httpx.TimeoutException):
        return TimeoutError(f"Request to {url} timed out", config.timeout, cause=error)
    if isinstance(error, httpx.DecodingError):
        return StreamError(f"Failed to decode response body: {error}", cause=error)
    if isinstance(error, httpx.NetworkError):
        return ConnectionError(f"Request to {url} failed: {error}", cause=error)
    if isinstance(error, (httpx.HTTPError, httpx.InvalidURL)):
        return ProtocolError(f"Request to {url} failed: {error}", cause=error)
    return FetchError(f"{type(error).__name__}: {error}", cause=error)


# Raised by the httpx clients themselves, as opposed to fetchkit errors
# coming up from the transports.
CLIENT_ERRORS = (httpx.HTTPError, httpx.InvalidURL)


def client_options(config: FetchConfig) -> Dict[str, Any]:
    """Keyword arguments shared by the blocking and the asynchronous client."""
    return {
        "follow_redirects": config.max_redirects > 0,
        "max_redirects": config.max_redirects,
        "timeout": httpx.Timeout(config.timeout),
        "headers": {"User-Agent": config.user_agent},
        # Proxies and netrc from the environment do not apply to fetchkit.
        "trust_env": False,
    }


def build_request(client: Union[httpx.Client, httpx.AsyncClient], request: Request) -> httpx.Request:
    """
    The httpx request for ``request``.

    Raises:
        ProtocolError: If the URL or a header cannot be put on the wire
    """
    try:
        return client.build_request(
            request.method.value,
            request.url,
            headers=[(name, value) for name, value in request.headers],
            content=request.body or None,
        )
    except (httpx.InvalidURL, UnicodeEncodeError) as e:
        raise ProtocolError(f"Invalid request: {e}", cause=e) from e


class _H11TransportBase:
    """Connection setup shared by the blocking and the asynchronous transport."""

    def __init__(
        self,
        accept_invalid_certs: bool = False,
        accept_invalid_hostnames: bool = False,
    ) -> None:
        self._accept_invalid_certs = accept_invalid_certs
        self._accept_invalid_hostnames = accept_invalid_hostnames
        self._ssl_context: Optional[ssl.SSLContext] = None

    def _context_for(self, url: URLComponents) -> Optional[ssl.SSLContext]:
        if not url.is_tls:
            return None
        if self._ssl_context is None:
            self._ssl_context = create_ssl_context(
                accept_invalid_certs=self._accept_invalid_certs,
                accept_invalid_hostnames=self._accept_invalid_hostnames,
            )
        return self._ssl_context

    @staticmethod
    def _timeouts(request: httpx.Request) -> Tuple[Optional[float], Optional[float]]:
        timeouts = request.extensions.get("timeout", {})
        return timeouts.get("connect"), timeouts.get("read")

    @staticmethod
    def _response(head: Any, stream: Union[httpx.SyncByteStream, httpx.AsyncByteStream]) -> httpx.Response:
        return httpx.Response(
            head.status_code,
            headers=[(bytes(name), bytes(value)) for name, value in head.headers],
            stream=stream,
            extensions={"http_version": HTTP_VERSION, "reason_phrase": bytes(head.reason)},
        )


class H11Transport(_H11TransportBase, httpx.BaseTransport):
    """
    httpx transport over blocking sockets: one h11 connection per request.

    The TLS relaxation flags apply to every HTTPS connection the transport
    opens, redirects included.
    """

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        url = parse_url(str(request.url))
        connect_timeout, read_timeout = self._timeouts(request)

        stream = connect_socket(url.host, url.port, connect_timeout, self._context_for(url))
        connection = SyncHTTP11Connection(stream, read_timeout=read_timeout)
        try:
            connection.send_request(
                request.method,
                url.target,
                single_exchange_headers(request.headers.raw),
                request.read(),
            )
            head = connection.receive_response()
        except BaseException:
            connection.close()
            raise

        logger.debug(f"{request.method} {request.url} -> {head.status_code}")
        return self._response(head, SyncConnectionStream(connection))


class AsyncH11Transport(_H11TransportBase, httpx.AsyncBaseTransport):
    """
    httpx transport on the asyncio loop: one h11 connection per request,
    opened through a NetworkBackend.
    """

    def __init__(
        self,
        backend: Optional[NetworkBackend] = None,
        accept_invalid_certs: bool = False,
        accept_invalid_hostnames: bool = False,
    ) -> None:
        super().__init__(accept_invalid_certs, accept_invalid_hostnames)
        self._backend = backend or AsyncioNetworkBackend()

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        url = parse_url(str(request.url))
        connect_timeout, read_timeout = self._timeouts(request)

        stream = await self._backend.connect(url.host, url.port, connect_timeout, self._context_for(url))
        connection = HTTP11Connection(stream, read_timeout=read_timeout)
        try:
            await connection.send_request(
                request.method,
                url.target,
                single_exchange_headers(request.headers.raw),
                await request.aread(),
            )
            head = await connection.receive_response()
        except BaseException:
            await connection.aclose()
            raise

        logger.debug(f"{request.method} {request.url} -> {head.status_code}")
        return self._response(head, ConnectionStream(connection))


class BodyReader(ABC):
    """Blocking reader over a response body."""

    @abstractmethod
    def read(self, max_bytes: int) -> bytes:
        """
        Read up to ``max_bytes`` of decoded body.

        Returns b"" at end of body.

        Raises:
            StreamError: If the body cannot be read
            IncompleteBodyError: If the body ends early
        """
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    def read_all(self, chunk_size: int = 65536) -> bytes:
        chunks = []
        while True:
            chunk = self.read(chunk_size)
            if not chunk:
                return b"".join(chunks)
            chunks.append(chunk)


@dataclass
class RawResponse:
    """A response as the executor received it."""

    url: str
    status: int
    reason: str
    headers: WireHeaders
    body: BodyReader

    def close(self) -> None:
        self.body.close()


class BlockingExecutor(ABC):
    """
    Performs one HTTP exchange, blocking the calling thread.
    """

    @abstractmethod
    def execute(self, request: Request) -> RawResponse:
        """
        Send ``request`` and return once the response head has arrived.

        Raises:
            FetchError: If no response could be obtained
        """
        pass


class ClientBody(BodyReader):
    """BodyReader over a streamed httpx response, decoded by httpx."""

    def __init__(self, response: httpx.Response, client: httpx.Client, config: FetchConfig) -> None:
        self._response = response
        self._client = client
        self._config = config
        self._chunks = response.iter_bytes()
        self._buffer = bytearray()
        self._eof = False

    def read(self, max_bytes: int) -> bytes:
        try:
            while not self._buffer and not self._eof:
                chunk = next(self._chunks, None)
                if chunk is None:
                    self._eof = True
                else:
                    self._buffer += chunk
        except FetchError:
            self.close()
            raise
        except CLIENT_ERRORS as e:
            self.close()
            raise translate_httpx_error(e, str(self._response.url), self._config) from e

        data = bytes(self._buffer[:max_bytes])
        del self._buffer[:max_bytes]
        if self._eof and not self._buffer:
            self.close()
        return data

    def close(self) -> None:
        self._response.close()
        self._client.close()


class HttpxExecutor(BlockingExecutor):
    """
    BlockingExecutor running each request through its own ``httpx.Client``.

    The client follows redirects up to ``config.max_redirects`` and decodes
    the body; H11Transport underneath honours the request's TLS flags.
    A fresh client per request keeps cookies from leaking between requests.
    """

    def __init__(self, config: Optional[FetchConfig] = None) -> None:
        self._config = config or FetchConfig.from_env()

    @property
    def config(self) -> FetchConfig:
        return self._config

    def create_client(self, request: Request) -> httpx.Client:
        transport = H11Transport(
            accept_invalid_certs=request.danger_accept_invalid_certs,
            accept_invalid_hostnames=request.danger_accept_invalid_hostnames,
        )
        return httpx.Client(transport=transport, **client_options(self._config))

    def execute(self, request: Request) -> RawResponse:
        client = self.create_client(request)
        try:
            response = client.send(build_request(client, request), stream=True)
        except CLIENT_ERRORS as e:
            client.close()
            raise translate_httpx_error(e, request.url, self._config) from e
        except BaseException:
            client.close()
            raise

        if response.history:
            logger.debug(f"Redirected {len(response.history)} time(s): {request.url} -> {response.url}")
        return RawResponse(
            url=str(response.url),
            status=response.status_code,
            reason=reason_phrase(response.status_code, response.extensions.get("reason_phrase", b"")),
            headers=list(response.headers.raw),
            body=ClientBody(response, client, self._config),
        )

