"""
Web backend: everything runs on the single, already running event loop.

``fetch`` schedules a task with ``spawn_future`` and calls the callback
from the loop once the host fetch settles. No thread is created and the
caller is never blocked; the task only suspends while awaiting the host.
"""

import asyncio
import logging
from typing import Any, Callable, Coroutine, Optional, Set

from .exceptions import BlockedRequestError, FetchError, IncompleteBodyError, ProtocolError
from .host import HostFetch, HostResponse, default_host
from .http_primitives import Headers, Method, PartialResponse, Request, Response, Result

logger = logging.getLogger(__name__)

_default_host: Optional[HostFetch] = None

# Strong references to running tasks; the loop only keeps weak ones.
_background_tasks: Set["asyncio.Task[Any]"] = set()


def get_default_host() -> HostFetch:
    global _default_host
    if _default_host is None:
        _default_host = default_host()
    return _default_host


def set_default_host(host: Optional[HostFetch]) -> None:
    """Replace the process-wide host; None restores the default."""
    global _default_host
    _default_host = host


def spawn_future(coro: Coroutine[Any, Any, None]) -> None:
    """
    Run a coroutine as a fire-and-forget task on the running event loop.

    Raises:
        RuntimeError: If no event loop is running in this thread
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        coro.close()
        raise
    task = loop.create_task(coro)
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)


def _is_js_type_error(error: BaseException) -> bool:
    # Pyodide surfaces JS exceptions as JsException carrying the JS name;
    # a Python TypeError is a bug in the host, not a refused request.
    return getattr(error, "name", None) == "TypeError"


def describe_fetch_error(error: BaseException, url: str = "") -> FetchError:
    """Turn a host rejection into a FetchError with a readable message."""
    if isinstance(error, FetchError):
        return error
    if _is_js_type_error(error):
        target = f" to {url}" if url else ""
        return BlockedRequestError(
            f"the request{target} was prevented from being sent. "
            "Possible causes: no network connection, a CORS or content "
            f"security policy, or a browser extension ({error})",
            cause=error,
        )
    return FetchError(f"{type(error).__name__}: {error}", cause=error)


def decode_headers(response: HostResponse) -> Headers:
    """
    Read the host's headers with lower-cased names, sorted by name.

    Raises:
        ProtocolError: If the host hands out a name or value that is not text
    """
    headers = Headers()
    for name, value in response.headers:
        if not isinstance(name, str) or not isinstance(value, str):
            raise ProtocolError(f"Failed to read header {name!r}: value is not a string")
        headers.insert(name.lower(), value)
    headers.sort()
    return headers


def partial_response(response: HostResponse) -> PartialResponse:
    return PartialResponse.create(
        url=response.url,
        status=response.status,
        status_text=response.status_text,
        headers=decode_headers(response),
    )


async def fetch_host_response(request: Request, host: Optional[HostFetch] = None) -> HostResponse:
    """
    Start a request on the host.

    Raises:
        FetchError: If the host rejected the request
    """
    host = host or get_default_host()
    if request.danger_accept_invalid_certs or request.danger_accept_invalid_hostnames:
        logger.debug("TLS relaxation flags are ignored by the web backend")
    try:
        return await host.fetch(request)
    except FetchError:
        raise
    except Exception as e:
        raise describe_fetch_error(e, request.url) from e


async def read_body(request: Request, response: HostResponse) -> bytes:
    """
    Await the whole body.

    A HEAD response whose body ends right after the headers is treated as
    having an empty body, as on the native backend.
    """
    try:
        return await response.array_buffer()
    except IncompleteBodyError:
        if request.method is Method.HEAD:
            logger.debug(f"Ignoring truncated body of HEAD {request.url}")
            return b""
        raise
    except FetchError:
        raise
    except Exception as e:
        raise describe_fetch_error(e, request.url) from e


async def fetch_async(request: Request, host: Optional[HostFetch] = None) -> Response:
    """
    Perform a request on the event loop.

    Any response is returned, including 404 and other error statuses.

    Raises:
        FetchError: If the host could not perform the request
    """
    response = await fetch_host_response(request, host)
    try:
        partial = partial_response(response)
        body = await read_body(request, response)
    finally:
        await response.aclose()
    return partial.complete(body)


async def _run(request: Request, on_done: Callable[[Result], None], host: Optional[HostFetch]) -> None:
    try:
        result: Result = await fetch_async(request, host)
    except FetchError as e:
        logger.warning(f"{request.method.value} {request.url} failed: {e}")
        result = e
    except Exception as e:
        logger.exception(f"Host failed on {request.method.value} {request.url}")
        result = FetchError(f"Unexpected error: {e!r}", cause=e)
    on_done(result)


def fetch(
    request: Request,
    on_done: Callable[[Result], None],
    host: Optional[HostFetch] = None,
) -> None:
    """
    Schedule a request on the running event loop and call ``on_done``
    with the Response or the FetchError.

    ``on_done`` is called exactly once, from the event loop, never before
    this function returns.

    Raises:
        RuntimeError: If no event loop is running in this thread
    """
    spawn_future(_run(request, on_done, host))
