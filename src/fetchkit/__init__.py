"""
fetchkit - Minimal HTTP fetch for native Python and the browser

One request/response API with two backends: a worker thread per request
on native interpreters, and the running event loop (``window.fetch``
under Pyodide) on the web backend. The backend is chosen once, when the
package is imported.
"""

__version__ = "0.1.0"
__author__ = "Developer"
__email__ = "dev@example.com"

from .config import NATIVE, WEB, FetchConfig, select_backend
from .exceptions import (
    BlockedRequestError,
    ConnectionError,
    FetchError,
    IncompleteBodyError,
    ProtocolError,
    StreamError,
    TimeoutError,
)
from .http_primitives import (
    Headers,
    Method,
    Mode,
    PartialResponse,
    Request,
    Response,
    Result,
    is_success,
)
from . import streaming

# The backend every top-level entry point is bound to.
BACKEND = select_backend()

if BACKEND == WEB:
    from .web import fetch, fetch_async, spawn_future
else:
    from .native import fetch, fetch_async, fetch_blocking

__all__ = [
    "BACKEND",
    "NATIVE",
    "WEB",
    "fetch",
    "fetch_async",
    "streaming",
    "FetchConfig",
    "Headers",
    "Method",
    "Mode",
    "PartialResponse",
    "Request",
    "Response",
    "Result",
    "is_success",
    "FetchError",
    "BlockedRequestError",
    "ConnectionError",
    "IncompleteBodyError",
    "ProtocolError",
    "StreamError",
    "TimeoutError",
]

if BACKEND == WEB:
    __all__.append("spawn_future")
else:
    __all__.append("fetch_blocking")
