"""
Tests for the web backend, its hosts and web streaming.
"""

import asyncio

import pytest

from conftest import GZIP_BODY
from fetchkit import web
from fetchkit.config import FetchConfig
from fetchkit.exceptions import (
    BlockedRequestError,
    ConnectionError,
    FetchError,
    IncompleteBodyError,
    ProtocolError,
    StreamError,
)
from fetchkit.host import AsyncioHostFetch, browser_headers
from fetchkit.http_primitives import Request
from fetchkit.network.mock import MockHostFetch, MockHostResponse, MockNetworkBackend
from fetchkit.streaming import Chunk, Flow, ResponseHeader
from fetchkit.streaming.web import fetch_async_streaming, fetch_streaming


class JsException(Exception):
    """Looks like the exception Pyodide raises for a rejected JS promise."""

    def __init__(self, name, message):
        super().__init__(message)
        self.name = name


def _ok(url="http://a.test/ok", chunks=(b"hello",), **kwargs):
    headers = kwargs.pop("headers", [("Content-Type", "text/plain"), ("X-A", "1")])
    return MockHostResponse(url, headers=headers, chunks=chunks, **kwargs)


async def _fetch_with_callback(request, host):
    loop = asyncio.get_running_loop()
    done = loop.create_future()
    calls = []

    def on_done(result):
        calls.append(result)
        done.set_result(result)

    web.fetch(request, on_done, host)
    assert not calls
    result = await asyncio.wait_for(done, 5)
    await asyncio.sleep(0)
    assert len(calls) == 1
    return result


async def _stream_events(request, host, flows=()):
    loop = asyncio.get_running_loop()
    finished = loop.create_future()
    events = []
    flows = list(flows)

    def on_data(event):
        events.append((event, loop.time()))
        ended = isinstance(event, FetchError) or (isinstance(event, Chunk) and event.is_end)
        flow = flows.pop(0) if flows else Flow.CONTINUE
        if (ended or flow.is_break) and not finished.done():
            finished.set_result(None)
        return flow

    fetch_streaming(request, on_data, host)
    await asyncio.wait_for(finished, 5)
    # Let the task run its cleanup.
    await asyncio.sleep(0.05)
    return events


def _kinds(events):
    names = []
    for event, _ in events:
        if isinstance(event, ResponseHeader):
            names.append("header")
        elif isinstance(event, Chunk):
            names.append(event.data)
        else:
            names.append(type(event).__name__)
    return names


class TestDescribeFetchError:
    def test_js_type_error_is_blocked(self) -> None:
        error = web.describe_fetch_error(JsException("TypeError", "Failed to fetch"), "http://a.test/")
        assert isinstance(error, BlockedRequestError)
        assert "http://a.test/" in str(error)
        assert "CORS" in str(error)

    def test_python_type_error_is_not_blocked(self) -> None:
        """A TypeError raised by Python code is a host bug, not a refused request."""
        error = web.describe_fetch_error(TypeError("unsupported operand"), "http://a.test/")
        assert type(error) is FetchError
        assert str(error) == "TypeError: unsupported operand"

    def test_other_errors(self) -> None:
        error = web.describe_fetch_error(JsException("AbortError", "aborted"))
        assert type(error) is FetchError
        assert str(error) == "JsException: aborted"

    def test_fetch_error_unchanged(self) -> None:
        original = ConnectionError("refused")
        assert web.describe_fetch_error(original) is original


class TestWebFetchAsync:
    """Test web.fetch_async with scripted hosts."""

    @pytest.mark.asyncio
    async def test_ok(self) -> None:
        host = MockHostFetch([_ok()])
        response = await web.fetch_async(Request.get("http://a.test/ok"), host)
        assert response.ok
        assert response.status == 200
        assert response.bytes == b"hello"
        assert response.headers.items() == [("content-type", "text/plain"), ("x-a", "1")]
        assert host.requests[0].url == "http://a.test/ok"

    @pytest.mark.asyncio
    async def test_not_found(self) -> None:
        host = MockHostFetch([MockHostResponse("http://a.test/missing", 404, "Not Found", chunks=[b"missing"])])
        response = await web.fetch_async(Request.get("http://a.test/missing"), host)
        assert not response.ok
        assert response.status == 404
        assert response.bytes == b"missing"

    @pytest.mark.asyncio
    async def test_blocked(self) -> None:
        host = MockHostFetch([JsException("TypeError", "Failed to fetch")])
        with pytest.raises(BlockedRequestError) as exc_info:
            await web.fetch_async(Request.get("http://a.test/"), host)
        assert isinstance(exc_info.value.cause, JsException)

    @pytest.mark.asyncio
    async def test_host_type_error_is_not_blocked(self) -> None:
        host = MockHostFetch([TypeError("unsupported operand")])
        with pytest.raises(FetchError) as exc_info:
            await web.fetch_async(Request.get("http://a.test/"), host)
        assert not isinstance(exc_info.value, BlockedRequestError)

    @pytest.mark.asyncio
    async def test_non_string_header(self) -> None:
        host = MockHostFetch([_ok(headers=[("x-bad", b"bytes")])])
        with pytest.raises(ProtocolError):
            await web.fetch_async(Request.get("http://a.test/"), host)

    @pytest.mark.asyncio
    async def test_head_incomplete_body_is_empty(self) -> None:
        host = MockHostFetch([_ok(chunks=(), error=IncompleteBodyError("ended"))])
        response = await web.fetch_async(Request.head("http://a.test/"), host)
        assert response.bytes == b""

    @pytest.mark.asyncio
    async def test_body_error(self) -> None:
        response_host = _ok(error=JsException("AbortError", "aborted"))
        host = MockHostFetch([response_host])
        with pytest.raises(FetchError, match="aborted"):
            await web.fetch_async(Request.get("http://a.test/"), host)
        assert response_host.closed

    @pytest.mark.asyncio
    async def test_default_host(self) -> None:
        host = MockHostFetch([_ok()])
        web.set_default_host(host)
        try:
            await web.fetch_async(Request.get("http://a.test/ok"))
            assert web.get_default_host() is host
        finally:
            web.set_default_host(None)
        assert isinstance(web.get_default_host(), AsyncioHostFetch)


class TestWebFetch:
    """Test the callback entry point on the running loop."""

    @pytest.mark.asyncio
    async def test_callback_after_return(self) -> None:
        result = await _fetch_with_callback(Request.get("http://a.test/ok"), MockHostFetch([_ok()]))
        assert result.bytes == b"hello"

    @pytest.mark.asyncio
    async def test_callback_receives_error(self) -> None:
        host = MockHostFetch([JsException("TypeError", "NetworkError when attempting to fetch")])
        result = await _fetch_with_callback(Request.get("http://a.test/"), host)
        assert isinstance(result, BlockedRequestError)

    def test_no_running_loop(self) -> None:
        """Without a running loop the coroutine is closed and RuntimeError raised."""
        with pytest.raises(RuntimeError):
            web.fetch(Request.get("http://a.test/"), lambda result: None, MockHostFetch())

    def test_spawn_future_closes_coroutine(self) -> None:
        async def job():
            pass

        coro = job()
        with pytest.raises(RuntimeError):
            web.spawn_future(coro)
        assert coro.cr_frame is None


class TestAsyncioHostFetch:
    """Test the asyncio host against the local server."""

    @pytest.fixture
    def host(self):
        return AsyncioHostFetch(FetchConfig(timeout=5.0))

    @pytest.mark.asyncio
    async def test_ok(self, http_server, host) -> None:
        response = await web.fetch_async(Request.get(f"{http_server}/ok"), host)
        assert response.ok
        assert response.bytes == b"hello"
        assert response.status_text == "OK"

    @pytest.mark.asyncio
    async def test_not_found(self, http_server, host) -> None:
        response = await web.fetch_async(Request.get(f"{http_server}/missing"), host)
        assert response.status == 404
        assert response.bytes == b"missing"

    @pytest.mark.asyncio
    async def test_duplicates_joined(self, http_server, host) -> None:
        """Repeated headers come back joined, the way a browser shows them."""
        response = await web.fetch_async(Request.get(f"{http_server}/cookies"), host)
        assert response.headers.get_all("set-cookie") == ["a=1, b=2"]

    @pytest.mark.asyncio
    async def test_gzip_and_redirect(self, http_server, host) -> None:
        response = await web.fetch_async(Request.get(f"{http_server}/gzip"), host)
        assert response.bytes == GZIP_BODY

        response = await web.fetch_async(Request.get(f"{http_server}/redirect"), host)
        assert response.url == f"{http_server}/ok"
        assert response.bytes == b"hello"

    @pytest.mark.asyncio
    async def test_head(self, http_server, host) -> None:
        response = await web.fetch_async(Request.head(f"{http_server}/gzip"), host)
        assert response.ok
        assert response.bytes == b""

    @pytest.mark.asyncio
    async def test_post_echo(self, http_server, host) -> None:
        response = await web.fetch_async(Request.post(f"{http_server}/echo", "ping"), host)
        assert response.bytes == b"ping"
        assert response.headers.get("x-method") == "POST"

    @pytest.mark.asyncio
    async def test_unresolvable(self, unresolvable_url, host) -> None:
        with pytest.raises(ConnectionError):
            await web.fetch_async(Request.get(unresolvable_url), host)

    @pytest.mark.asyncio
    async def test_redirect_loop(self, http_server, host) -> None:
        with pytest.raises(ProtocolError, match="Too many redirects"):
            await web.fetch_async(Request.get(f"{http_server}/loop"), host)

    @pytest.mark.asyncio
    async def test_empty_gzip_body(self, http_server, host) -> None:
        """A complete, empty body labelled gzip is an empty Response."""
        response = await web.fetch_async(Request.get(f"{http_server}/empty-gzip"), host)
        assert response.ok
        assert response.bytes == b""

    @pytest.mark.asyncio
    async def test_cross_origin_redirect_drops_credentials(self, http_server, host) -> None:
        request = Request.get(f"{http_server}/elsewhere").with_header("Authorization", "Bearer secret")
        response = await web.fetch_async(request, host)
        assert response.url.startswith("http://localhost:")
        assert response.headers.get("x-authorization") == ""
        assert response.headers.get("x-host") == response.url.split("/")[2]

    @pytest.mark.asyncio
    async def test_mock_backend(self) -> None:
        """Redirects are followed across scripted connections."""
        backend = MockNetworkBackend()
        backend.add_reply("a.test", 80, b"HTTP/1.1 301 Moved\r\nLocation: /new\r\nContent-Length: 0\r\n\r\n")
        backend.add_reply("a.test", 80, b"HTTP/1.1 200 OK\r\nContent-Length: 2\r\n\r\nok")
        host = AsyncioHostFetch(FetchConfig(timeout=5.0), backend)

        response = await web.fetch_async(Request.get("http://a.test/old"), host)

        assert response.url == "http://a.test/new"
        assert response.bytes == b"ok"
        assert len(backend.connections) == 2
        assert backend.connections[1][3].written_data.startswith(b"GET /new HTTP/1.1\r\n")
        assert all(stream.is_closed for _, _, _, stream in backend.connections)

    def test_browser_headers(self) -> None:
        headers = browser_headers([(b"X-B", b"1"), (b"Set-Cookie", b"a=1"), (b"set-cookie", b"b=2")])
        assert headers == [("set-cookie", "a=1, b=2"), ("x-b", "1")]


class TestWebStreaming:
    """Test web streaming with scripted hosts and the asyncio host."""

    @pytest.mark.asyncio
    async def test_async_iterator(self) -> None:
        host = MockHostFetch([_ok(chunks=[b"ab", b"", b"cd"])])
        parts = await fetch_async_streaming(Request.get("http://a.test/"), host)
        events = [part async for part in parts]
        assert isinstance(events[0], ResponseHeader)
        assert [event.data for event in events[1:]] == [b"ab", b"cd", b""]

    @pytest.mark.asyncio
    async def test_async_iterator_rejected(self) -> None:
        host = MockHostFetch([JsException("TypeError", "Failed to fetch")])
        with pytest.raises(BlockedRequestError):
            await fetch_async_streaming(Request.get("http://a.test/"), host)

    @pytest.mark.asyncio
    async def test_no_body_stream(self) -> None:
        host = MockHostFetch([_ok(has_body=False)])
        events = await _stream_events(Request.get("http://a.test/"), host)
        assert _kinds(events) == ["header", b""]

    @pytest.mark.asyncio
    async def test_three_chunk_body(self) -> None:
        response = _ok(chunks=[b"ab", b"cd"])
        events = await _stream_events(Request.get("http://a.test/"), MockHostFetch([response]))
        assert _kinds(events) == ["header", b"ab", b"cd", b""]
        assert response.closed

    @pytest.mark.asyncio
    async def test_break_on_first_chunk(self) -> None:
        response = _ok(chunks=[b"ab", b"cd"])
        events = await _stream_events(
            Request.get("http://a.test/"), MockHostFetch([response]), [Flow.CONTINUE, Flow.BREAK]
        )
        assert _kinds(events) == ["header", b"ab"]
        assert response.closed

    @pytest.mark.asyncio
    async def test_wait_does_not_block_loop(self) -> None:
        """Other tasks keep running while the stream waits."""
        ticks = []

        async def ticker():
            for _ in range(5):
                ticks.append(None)
                await asyncio.sleep(0.01)

        ticker_task = asyncio.ensure_future(ticker())
        events = await _stream_events(
            Request.get("http://a.test/"),
            MockHostFetch([_ok(chunks=[b"ab"])]),
            [Flow.CONTINUE, Flow.wait(0.1)],
        )
        await ticker_task
        assert _kinds(events) == ["header", b"ab", b""]
        assert events[2][1] - events[1][1] >= 0.09
        assert len(ticks) == 5

    @pytest.mark.asyncio
    async def test_rejection(self) -> None:
        host = MockHostFetch([JsException("TypeError", "blocked")])
        events = await _stream_events(Request.get("http://a.test/"), host)
        assert _kinds(events) == ["BlockedRequestError"]

    @pytest.mark.asyncio
    async def test_body_error(self) -> None:
        response = _ok(chunks=[b"ab"], error=JsException("AbortError", "aborted"))
        events = await _stream_events(Request.get("http://a.test/"), MockHostFetch([response]))
        assert _kinds(events) == ["header", b"ab", "FetchError"]
        assert response.closed

    @pytest.mark.asyncio
    async def test_head_incomplete_body_ends_normally(self) -> None:
        response = _ok(chunks=(), error=IncompleteBodyError("ended"))
        events = await _stream_events(Request.head("http://a.test/"), MockHostFetch([response]))
        assert _kinds(events) == ["header", b""]

    @pytest.mark.asyncio
    async def test_header_decode_error_aborts(self) -> None:
        response = _ok(headers=[("x-bad", None)])
        events = await _stream_events(Request.get("http://a.test/"), MockHostFetch([response]))
        assert _kinds(events) == ["ProtocolError"]
        assert response.closed

    @pytest.mark.asyncio
    async def test_asyncio_host_chunks(self, http_server) -> None:
        host = AsyncioHostFetch(FetchConfig(timeout=5.0))
        events = await _stream_events(Request.get(f"{http_server}/chunks"), host)
        assert _kinds(events)[0] == "header"
        assert _kinds(events)[-1] == b""
        assert b"".join(event.data for event, _ in events[1:]) == b"abcd"

    @pytest.mark.asyncio
    async def test_asyncio_host_truncated(self, http_server) -> None:
        host = AsyncioHostFetch(FetchConfig(timeout=5.0))
        events = await _stream_events(Request.get(f"{http_server}/truncated"), host)
        kinds = _kinds(events)
        assert kinds[0] == "header"
        assert kinds[-1] == "IncompleteBodyError"
        assert isinstance(events[-1][0], StreamError)
