"""
Streaming on the native backend: the body is read on a worker thread
and handed to the handler chunk by chunk.
"""

import logging
import threading
from typing import Optional

from ..config import FetchConfig
from ..exceptions import FetchError, IncompleteBodyError, StreamError
from ..http_primitives import Method, Request
from ..native import THREAD_NAME, get_default_executor, partial_response
from ..transport import BlockingExecutor, RawResponse
from .controller import StreamController
from .types import Chunk, ResponseHeader, StreamHandler

logger = logging.getLogger(__name__)


def _chunk_size(executor: BlockingExecutor) -> int:
    config = getattr(executor, "config", None)
    if isinstance(config, FetchConfig):
        return config.chunk_size
    return FetchConfig.DEFAULT_CHUNK_SIZE


def fetch_streaming_blocking(
    request: Request,
    on_data: StreamHandler,
    executor: Optional[BlockingExecutor] = None,
    chunk_size: Optional[int] = None,
) -> None:
    """
    Perform a request on the calling thread, calling ``on_data`` once with
    the ResponseHeader and then once per body Chunk.

    The last chunk is empty. A FetchError replaces the event that could
    not be produced and ends the stream. ``Flow.wait`` sleeps this thread.
    """
    controller = StreamController(on_data)
    executor = executor or get_default_executor()
    chunk_size = chunk_size or _chunk_size(executor)

    try:
        raw = executor.execute(request)
    except FetchError as e:
        controller.fail(e)
        return
    except Exception as e:
        logger.exception(f"Executor failed on {request.method.value} {request.url}")
        controller.fail(FetchError(f"Unexpected error: {e!r}", cause=e))
        return

    try:
        _stream_response(request, raw, controller, chunk_size)
    finally:
        raw.close()


def _stream_response(
    request: Request,
    raw: RawResponse,
    controller: StreamController,
    chunk_size: int,
) -> None:
    try:
        partial = partial_response(raw)
    except FetchError as e:
        # A bad header value aborts the whole stream.
        controller.fail(e)
        return

    if not controller.deliver(ResponseHeader(partial)):
        return

    while True:
        try:
            data = raw.body.read(chunk_size)
        except IncompleteBodyError as e:
            if request.method is not Method.HEAD:
                controller.fail(e)
                return
            data = b""
        except FetchError as e:
            controller.fail(e)
            return
        except Exception as e:
            controller.fail(StreamError(f"Failed to read response body: {e}", cause=e))
            return

        if not controller.deliver(Chunk(data)):
            return


def fetch_streaming(
    request: Request,
    on_data: StreamHandler,
    executor: Optional[BlockingExecutor] = None,
) -> None:
    """
    Run ``fetch_streaming_blocking`` on a new worker thread.

    Raises:
        RuntimeError: If the worker thread cannot be started
    """
    thread = threading.Thread(
        target=fetch_streaming_blocking,
        args=(request, on_data, executor),
        name=THREAD_NAME,
        daemon=True,
    )
    thread.start()
