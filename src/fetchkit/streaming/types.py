"""
Events and flow-control values of the streaming API.
"""

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Callable, ClassVar, Optional, Union

from ..exceptions import FetchError
from ..http_primitives import PartialResponse


@dataclass(frozen=True)
class ResponseHeader:
    """
    The status line and headers of the response.

    Delivered once, before any chunk.
    """

    response: PartialResponse


@dataclass(frozen=True)
class Chunk:
    """
    A piece of the response body.

    An empty chunk marks the end of the body; nothing follows it.
    """

    data: bytes

    @property
    def is_end(self) -> bool:
        return not self.data


Part = Union[ResponseHeader, Chunk]


class FlowAction(Enum):
    CONTINUE = "continue"
    BREAK = "break"
    WAIT = "wait"


@dataclass(frozen=True)
class Flow:
    """
    What a streaming handler wants to happen next.

    ``Flow.CONTINUE`` asks for the next event, ``Flow.BREAK`` stops the
    fetch and ``Flow.wait(seconds)`` delays the next event.
    """

    action: FlowAction
    delay: float = 0.0

    CONTINUE: ClassVar["Flow"]
    BREAK: ClassVar["Flow"]

    @classmethod
    def wait(cls, delay: Union[float, timedelta]) -> "Flow":
        if isinstance(delay, timedelta):
            delay = delay.total_seconds()
        if delay < 0:
            raise ValueError("wait delay must be non-negative")
        return cls(FlowAction.WAIT, float(delay))

    @property
    def is_break(self) -> bool:
        return self.action is FlowAction.BREAK


Flow.CONTINUE = Flow(FlowAction.CONTINUE)
Flow.BREAK = Flow(FlowAction.BREAK)


StreamEvent = Union[ResponseHeader, Chunk, FetchError]

# Returning None is the same as Flow.CONTINUE.
StreamHandler = Callable[[StreamEvent], Optional[Flow]]


def resolve_flow(value: Optional[Flow]) -> Flow:
    if value is None:
        return Flow.CONTINUE
    if isinstance(value, Flow):
        return value
    raise TypeError(f"streaming handlers must return a Flow or None, got {value!r}")
