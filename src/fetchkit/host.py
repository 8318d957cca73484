"""
Host asynchronous fetch primitives for the web backend.

A HostFetch plays the role of the browser's ``fetch``: it resolves to a
HostResponse once the status line and headers are known, and the body is
then materialised in full (``array_buffer``) or read as a chunk stream
(``body``). ``fetchkit.web`` turns that into Response/PartialResponse.

Two hosts are provided: PyodideHostFetch calls ``window.fetch`` when
running in the browser, AsyncioHostFetch runs an ``httpx.AsyncClient``
on the asyncio event loop for CPython.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Iterable, List, Optional, Tuple

import httpx

from .config import FetchConfig, default_backend, WEB
from .http11 import WireHeaders, reason_phrase
from .http_primitives import Request, is_success
from .network.backend import AsyncioNetworkBackend, NetworkBackend
from .transport import CLIENT_ERRORS, AsyncH11Transport, build_request, client_options, translate_httpx_error

logger = logging.getLogger(__name__)


class HostResponse(ABC):
    """Response metadata plus a body that has not been read yet."""

    @property
    @abstractmethod
    def url(self) -> str:
        pass

    @property
    @abstractmethod
    def status(self) -> int:
        pass

    @property
    @abstractmethod
    def status_text(self) -> str:
        pass

    @property
    def ok(self) -> bool:
        return is_success(self.status)

    @property
    @abstractmethod
    def headers(self) -> Iterable[Tuple[Any, Any]]:
        """Header (name, value) pairs as the host presents them."""
        pass

    @abstractmethod
    async def array_buffer(self) -> bytes:
        """Wait for the whole body."""
        pass

    @abstractmethod
    def body(self) -> Optional[AsyncIterator[bytes]]:
        """The body as a chunk stream, None when the host has no body stream."""
        pass

    async def aclose(self) -> None:
        """Release the body if it will not be read."""


class HostFetch(ABC):
    """The host's asynchronous fetch primitive."""

    @abstractmethod
    async def fetch(self, request: Request) -> HostResponse:
        """
        Start ``request`` and resolve once the response head is available.

        Any exception is treated as a rejection: no response was obtained.
        """
        pass


def browser_headers(headers: WireHeaders) -> List[Tuple[str, str]]:
    """
    Present wire headers the way the browser Headers object does.

    Names are lower-cased and sorted; values of repeated names are joined
    with ", ".
    """
    combined = {}
    for name, value in headers:
        key = name.decode("latin-1").lower()
        text = value.decode("latin-1")
        if key in combined:
            combined[key] = f"{combined[key]}, {text}"
        else:
            combined[key] = text
    return sorted(combined.items())


class AsyncioHostResponse(HostResponse):
    """A streamed ``httpx.Response`` together with the client that owns it."""

    def __init__(self, response: httpx.Response, client: httpx.AsyncClient, config: FetchConfig) -> None:
        self._response = response
        self._client = client
        self._config = config
        self._headers = browser_headers(response.headers.raw)

    @property
    def url(self) -> str:
        return str(self._response.url)

    @property
    def status(self) -> int:
        return self._response.status_code

    @property
    def status_text(self) -> str:
        return reason_phrase(self.status, self._response.extensions.get("reason_phrase", b""))

    @property
    def headers(self) -> List[Tuple[str, str]]:
        return list(self._headers)

    async def array_buffer(self) -> bytes:
        try:
            return await self._response.aread()
        except CLIENT_ERRORS as e:
            raise translate_httpx_error(e, self.url, self._config) from e

    def body(self) -> AsyncIterator[bytes]:
        return self._iter_body()

    async def _iter_body(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.aiter_bytes():
                yield chunk
        except CLIENT_ERRORS as e:
            raise translate_httpx_error(e, self.url, self._config) from e

    async def aclose(self) -> None:
        await self._response.aclose()
        await self._client.aclose()


class AsyncioHostFetch(HostFetch):
    """
    HostFetch on the running asyncio loop, built on ``httpx.AsyncClient``.

    Redirect following and content decoding match the native executor;
    the connections are opened through ``backend`` by AsyncH11Transport.
    ``request.mode`` has no meaning outside a browser and is ignored.
    """

    def __init__(
        self,
        config: Optional[FetchConfig] = None,
        backend: Optional[NetworkBackend] = None,
    ) -> None:
        self._config = config or FetchConfig.from_env()
        self._backend = backend or AsyncioNetworkBackend()

    def create_client(self, request: Request) -> httpx.AsyncClient:
        transport = AsyncH11Transport(
            self._backend,
            accept_invalid_certs=request.danger_accept_invalid_certs,
            accept_invalid_hostnames=request.danger_accept_invalid_hostnames,
        )
        return httpx.AsyncClient(transport=transport, **client_options(self._config))

    async def fetch(self, request: Request) -> AsyncioHostResponse:
        client = self.create_client(request)
        try:
            response = await client.send(build_request(client, request), stream=True)
        except CLIENT_ERRORS as e:
            await client.aclose()
            raise translate_httpx_error(e, request.url, self._config) from e
        except BaseException:
            await client.aclose()
            raise

        if response.history:
            logger.debug(f"Redirected {len(response.history)} time(s): {request.url} -> {response.url}")
        return AsyncioHostResponse(response, client, self._config)


class PyodideHostResponse(HostResponse):
    """Wraps a JS ``Response`` proxy."""

    def __init__(self, js_response: Any) -> None:
        self._js = js_response

    @property
    def url(self) -> str:
        return self._js.url

    @property
    def status(self) -> int:
        return self._js.status

    @property
    def status_text(self) -> str:
        return self._js.statusText

    @property
    def ok(self) -> bool:
        return bool(self._js.ok)

    @property
    def headers(self) -> List[Tuple[Any, Any]]:
        return [(entry[0], entry[1]) for entry in self._js.headers.entries()]

    async def array_buffer(self) -> bytes:
        buffer = await self._js.arrayBuffer()
        return buffer.to_bytes()

    def body(self) -> Optional[AsyncIterator[bytes]]:
        if self._js.body is None:
            return None
        return self._read_body(self._js.body.getReader())

    async def _read_body(self, reader: Any) -> AsyncIterator[bytes]:
        while True:
            result = await reader.read()
            if result.done:
                return
            yield result.value.to_bytes()


class PyodideHostFetch(HostFetch):
    """
    The browser's ``window.fetch``, reached through Pyodide.

    Only importable inside Pyodide, where the ``js`` and ``pyodide``
    modules are provided by the runtime.
    """

    async def fetch(self, request: Request) -> PyodideHostResponse:
        from js import Object, fetch as js_fetch
        from pyodide.ffi import to_js

        init = {
            "method": request.method.value,
            "mode": request.mode.value,
            "headers": [[name, value] for name, value in request.headers],
        }
        if request.body:
            init["body"] = to_js(request.body)

        js_response = await js_fetch(request.url, to_js(init, dict_converter=Object.fromEntries))
        return PyodideHostResponse(js_response)


def default_host(config: Optional[FetchConfig] = None) -> HostFetch:
    """The host matching the interpreter: the browser under Pyodide, asyncio elsewhere."""
    if default_backend() == WEB:
        return PyodideHostFetch()
    return AsyncioHostFetch(config)
