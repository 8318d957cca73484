"""
Native backend: one worker thread per fetch.

``fetch_blocking`` performs the exchange on the calling thread through a
BlockingExecutor. ``fetch`` runs it on a fresh daemon thread and hands
the outcome to the callback from that thread. ``fetch_async`` lets a
coroutine await the worker's result.
"""

import asyncio
import logging
import threading
from typing import Callable, Optional

from .config import FetchConfig
from .exceptions import FetchError, IncompleteBodyError, ProtocolError, StreamError
from .http_primitives import Headers, Method, PartialResponse, Request, Response, Result
from .transport import BlockingExecutor, HttpxExecutor, RawResponse

logger = logging.getLogger(__name__)

THREAD_NAME = "fetchkit"

_default_executor: Optional[BlockingExecutor] = None
_default_executor_lock = threading.Lock()


def get_default_executor() -> BlockingExecutor:
    """The process-wide executor, configured from the environment on first use."""
    global _default_executor
    with _default_executor_lock:
        if _default_executor is None:
            _default_executor = HttpxExecutor(FetchConfig.from_env())
        return _default_executor


def set_default_executor(executor: Optional[BlockingExecutor]) -> None:
    """Replace the process-wide executor; None restores the default."""
    global _default_executor
    with _default_executor_lock:
        _default_executor = executor


def decode_headers(raw: RawResponse) -> Headers:
    """
    Convert wire headers to text, lower-casing names and sorting by name.

    Raises:
        ProtocolError: If a header value is not valid text
    """
    headers = Headers()
    for name, value in raw.headers:
        try:
            headers.insert(name.decode("ascii").lower(), value.decode("ascii"))
        except UnicodeDecodeError as e:
            raise ProtocolError(f"Failed to convert header value to string: {e}", cause=e) from e
    headers.sort()
    return headers


def partial_response(raw: RawResponse) -> PartialResponse:
    return PartialResponse.create(
        url=raw.url,
        status=raw.status,
        status_text=raw.reason,
        headers=decode_headers(raw),
    )


def read_body(request: Request, raw: RawResponse) -> bytes:
    """
    Read the whole body.

    A HEAD response whose body stream ends right after the headers is
    treated as having an empty body.
    """
    try:
        return raw.body.read_all()
    except IncompleteBodyError:
        if request.method is Method.HEAD:
            logger.debug(f"Ignoring truncated body of HEAD {request.url}")
            return b""
        raise
    except FetchError:
        raise
    except Exception as e:
        raise StreamError(f"Failed to read response body: {e}", cause=e) from e


def fetch_blocking(request: Request, executor: Optional[BlockingExecutor] = None) -> Response:
    """
    Perform a request and block the calling thread until it is done.

    Any response is returned, including 404 and other error statuses.

    Raises:
        FetchError: If no response could be obtained (DNS, connection,
            TLS, invalid URL, unreadable headers or body)
    """
    executor = executor or get_default_executor()
    raw = executor.execute(request)
    try:
        partial = partial_response(raw)
        body = read_body(request, raw)
    finally:
        raw.close()
    return partial.complete(body)


def _run(request: Request, on_done: Callable[[Result], None], executor: Optional[BlockingExecutor]) -> None:
    try:
        result: Result = fetch_blocking(request, executor)
    except FetchError as e:
        logger.warning(f"{request.method.value} {request.url} failed: {e}")
        result = e
    except Exception as e:
        logger.exception(f"Executor failed on {request.method.value} {request.url}")
        result = FetchError(f"Unexpected error: {e!r}", cause=e)
    on_done(result)


def fetch(
    request: Request,
    on_done: Callable[[Result], None],
    executor: Optional[BlockingExecutor] = None,
) -> None:
    """
    Perform a request on a new worker thread and call ``on_done`` with
    the Response or the FetchError.

    ``on_done`` is called exactly once, from the worker thread, never
    before this function returns.

    Raises:
        RuntimeError: If the worker thread cannot be started
    """
    thread = threading.Thread(
        target=_run,
        args=(request, on_done, executor),
        name=THREAD_NAME,
        daemon=True,
    )
    thread.start()


async def fetch_async(request: Request, executor: Optional[BlockingExecutor] = None) -> Response:
    """
    Await a request running on a worker thread.

    Raises:
        FetchError: If no response could be obtained
    """
    loop = asyncio.get_running_loop()
    slot: "asyncio.Future[Result]" = loop.create_future()

    def settle(result: Result) -> None:
        if not slot.done():
            slot.set_result(result)

    def on_done(result: Result) -> None:
        try:
            loop.call_soon_threadsafe(settle, result)
        except RuntimeError:
            logger.debug(f"Event loop closed before {request.url} completed")

    fetch(request, on_done, executor)
    result = await slot
    if isinstance(result, FetchError):
        raise result
    return result
