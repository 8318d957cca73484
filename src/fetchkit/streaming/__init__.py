"""
Streaming HTTP fetch.

Works like ``fetchkit.fetch`` except the handler is called once with the
ResponseHeader and then once per body Chunk, ending with an empty chunk.
After each event the handler returns a Flow: ``Flow.CONTINUE``,
``Flow.BREAK`` to abort, or ``Flow.wait(seconds)`` to slow delivery down.

Example::

    def on_data(event):
        if isinstance(event, FetchError):
            print(f"failed: {event}")
        elif isinstance(event, ResponseHeader):
            return Flow.CONTINUE if event.response.ok else Flow.BREAK
        elif event.is_end:
            print("done")
        else:
            sink.write(event.data)
        return Flow.CONTINUE

    fetchkit.streaming.fetch(Request.get(url), on_data)
"""

from ..config import WEB, select_backend
from .controller import StreamController
from .types import Chunk, Flow, FlowAction, Part, ResponseHeader, StreamEvent, StreamHandler

if select_backend() == WEB:
    from .web import fetch_streaming as fetch
else:
    from .native import fetch_streaming as fetch

__all__ = [
    "fetch",
    "Chunk",
    "Flow",
    "FlowAction",
    "Part",
    "ResponseHeader",
    "StreamController",
    "StreamEvent",
    "StreamHandler",
]
