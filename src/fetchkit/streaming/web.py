"""
Streaming on the web backend: body chunks are read from the host's body
stream on the event loop.
"""

import logging
from typing import AsyncIterator, Optional

from ..exceptions import FetchError, IncompleteBodyError
from ..host import HostFetch, HostResponse
from ..http_primitives import Method, Request
from ..web import describe_fetch_error, fetch_host_response, partial_response, spawn_future
from .controller import StreamController
from .types import Chunk, Part, ResponseHeader, StreamHandler

logger = logging.getLogger(__name__)


async def fetch_async_streaming(
    request: Request,
    host: Optional[HostFetch] = None,
) -> AsyncIterator[Part]:
    """
    Start a request and return an async iterator over its parts.

    The iterator yields the ResponseHeader, the body chunks and a final
    empty Chunk. Reading a part raises FetchError if it cannot be produced.

    Raises:
        FetchError: If the host rejected the request
    """
    response = await fetch_host_response(request, host)
    return _parts(request, response)


async def _parts(request: Request, response: HostResponse) -> AsyncIterator[Part]:
    try:
        yield ResponseHeader(partial_response(response))

        body = response.body()
        if body is not None:
            try:
                async for data in body:
                    if data:
                        yield Chunk(bytes(data))
            except IncompleteBodyError:
                if request.method is not Method.HEAD:
                    raise
            except FetchError:
                raise
            except Exception as e:
                raise describe_fetch_error(e, request.url) from e

        yield Chunk(b"")
    finally:
        await response.aclose()


async def _drive(request: Request, on_data: StreamHandler, host: Optional[HostFetch]) -> None:
    controller = StreamController(on_data)
    try:
        parts = await fetch_async_streaming(request, host)
    except FetchError as e:
        controller.fail(e)
        return

    try:
        while True:
            try:
                part = await parts.__anext__()
            except StopAsyncIteration:
                return
            except FetchError as e:
                logger.debug(f"Stream of {request.url} failed: {e}")
                controller.fail(e)
                return
            if not await controller.adeliver(part):
                return
    finally:
        await parts.aclose()


def fetch_streaming(
    request: Request,
    on_data: StreamHandler,
    host: Optional[HostFetch] = None,
) -> None:
    """
    Schedule a streaming request on the running event loop.

    ``on_data`` receives the same events as on the native backend;
    ``Flow.wait`` suspends the task without blocking the loop.

    Raises:
        RuntimeError: If no event loop is running in this thread
    """
    spawn_future(_drive(request, on_data, host))
