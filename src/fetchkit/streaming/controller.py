"""
Streaming controller.

Delivers the events of one streaming fetch to its handler in protocol
order and applies the Flow the handler returns after each of them.
"""

import asyncio
import logging
import time

from ..exceptions import FetchError
from .types import Chunk, Flow, FlowAction, Part, ResponseHeader, StreamEvent, StreamHandler, resolve_flow

logger = logging.getLogger(__name__)


class StreamController:
    """
    Enforces the event order of a streaming fetch.

    One ResponseHeader, then non-empty Chunks, then one empty Chunk. An
    error replaces whichever event was due. After the empty chunk, an
    error or a BREAK from the handler, the stream is finished and any
    further delivery is a bug in the caller.
    """

    def __init__(self, on_data: StreamHandler) -> None:
        self._on_data = on_data
        self._header_sent = False
        self._finished = False
        self._events = 0

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def events_delivered(self) -> int:
        return self._events

    def _emit(self, event: StreamEvent) -> Flow:
        if self._finished:
            raise RuntimeError("Stream has already finished")

        if isinstance(event, ResponseHeader):
            if self._header_sent:
                raise RuntimeError("Response header was already delivered")
            self._header_sent = True
        elif isinstance(event, Chunk):
            if not self._header_sent:
                raise RuntimeError("Chunk delivered before the response header")
            if event.is_end:
                self._finished = True
        elif isinstance(event, FetchError):
            self._finished = True
        else:
            raise TypeError(f"Not a stream event: {event!r}")

        self._events += 1
        flow = resolve_flow(self._on_data(event))
        if flow.is_break and not self._finished:
            logger.debug(f"Stream stopped by handler after {self._events} events")
            self._finished = True
        return flow

    def deliver(self, part: Part) -> bool:
        """
        Hand ``part`` to the handler, sleeping the thread on Flow.wait.

        Returns:
            True if the handler wants the next event
        """
        flow = self._emit(part)
        if flow.action is FlowAction.WAIT and not self._finished:
            time.sleep(flow.delay)
        return not self._finished

    async def adeliver(self, part: Part) -> bool:
        """Like ``deliver`` but waits with ``asyncio.sleep``."""
        flow = self._emit(part)
        if flow.action is FlowAction.WAIT and not self._finished:
            await asyncio.sleep(flow.delay)
        return not self._finished

    def fail(self, error: FetchError) -> None:
        """Deliver the error that ends the stream."""
        self._emit(error)
