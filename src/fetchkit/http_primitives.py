"""
HTTP primitives for fetchkit.

This module defines the data model shared by every backend: headers,
requests and responses. Requests and responses are frozen dataclasses;
the core never mutates them once they have been handed over.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import (
    Iterable,
    Iterator,
    List,
    Optional,
    Tuple,
    Union,
)

from typing_extensions import TypeAlias

from .exceptions import FetchError


HeaderPair = Tuple[str, str]


class Headers:
    """
    Ordered collection of header name/value pairs.

    The same name may appear more than once (``Set-Cookie`` for example)
    and every occurrence is kept. Lookups are case-insensitive.
    """

    __slots__ = ("_headers",)

    def __init__(self, headers: Optional[Iterable[HeaderPair]] = None) -> None:
        self._headers: List[HeaderPair] = []
        for name, value in headers or ():
            self.insert(name, value)

    @classmethod
    def new(cls, headers: Iterable[HeaderPair]) -> "Headers":
        """Create headers from a sequence of (name, value) pairs."""
        return cls(headers)

    def insert(self, name: str, value: str) -> None:
        """
        Append a header.

        An existing header with the same name is kept, so the
        name can appear several times.
        """
        self._headers.append((str(name), str(value)))

    def get(self, name: str) -> Optional[str]:
        """Get the value of the first header with the given name."""
        name_lower = name.lower()
        for header_name, header_value in self._headers:
            if header_name.lower() == name_lower:
                return header_value
        return None

    def get_all(self, name: str) -> List[str]:
        """Get every value for the given name, in insertion order."""
        name_lower = name.lower()
        return [
            header_value
            for header_name, header_value in self._headers
            if header_name.lower() == name_lower
        ]

    def sort(self) -> None:
        """
        Sort the headers by name.

        This only makes headers easier to read when printed. The sort
        is stable, so repeated headers keep their relative order.
        """
        self._headers.sort(key=lambda pair: pair[0])

    def copy(self) -> "Headers":
        return Headers(self._headers)

    def items(self) -> List[HeaderPair]:
        return list(self._headers)

    def __iter__(self) -> Iterator[HeaderPair]:
        return iter(list(self._headers))

    def __len__(self) -> int:
        return len(self._headers)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.get(name) is not None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Headers):
            return NotImplemented
        return self._headers == other._headers

    def __repr__(self) -> str:
        return f"Headers({self._headers!r})"


class Method(Enum):
    """HTTP request methods."""

    GET = "GET"
    HEAD = "HEAD"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    CONNECT = "CONNECT"
    OPTIONS = "OPTIONS"
    TRACE = "TRACE"

    @property
    def contains_body(self) -> bool:
        """Whether requests with this method carry a body."""
        return self in (Method.POST, Method.PUT, Method.PATCH)

    @classmethod
    def parse(cls, method: Union[str, bytes, "Method"]) -> "Method":
        if isinstance(method, Method):
            return method
        if isinstance(method, bytes):
            method = method.decode("ascii", errors="replace")
        try:
            return cls(method.upper())
        except ValueError:
            raise ValueError(f"Unsupported HTTP method: {method!r}") from None


class Mode(Enum):
    """
    Cross-origin policy of a request.

    Only the web backend honours it; see
    https://developer.mozilla.org/en-US/docs/Web/API/Request/mode
    """

    SAME_ORIGIN = "same-origin"
    NO_CORS = "no-cors"
    CORS = "cors"
    NAVIGATE = "navigate"


def _default_headers() -> Headers:
    return Headers([("Accept", "*/*")])


def _body_headers() -> Headers:
    return Headers([
        ("Accept", "*/*"),
        ("Content-Type", "text/plain; charset=utf-8"),
    ])


@dataclass(frozen=True)
class Request:
    """
    Immutable HTTP request.

    Use the ``get``/``post``/... constructors for the common cases and
    the ``with_*`` methods to derive modified copies.
    """

    method: Method
    url: str
    body: bytes = b""
    headers: Headers = field(default_factory=_default_headers)
    mode: Mode = Mode.CORS
    # Native backend only; the browser owns TLS validation.
    danger_accept_invalid_hostnames: bool = False
    danger_accept_invalid_certs: bool = False

    def __post_init__(self) -> None:
        """Validate request data after initialization."""
        if not isinstance(self.method, Method):
            object.__setattr__(self, "method", Method.parse(self.method))

        if not isinstance(self.url, str):
            raise ValueError("url must be a string")

        if isinstance(self.body, (bytearray, memoryview)):
            object.__setattr__(self, "body", bytes(self.body))
        if not isinstance(self.body, bytes):
            raise ValueError("body must be bytes")

        if not isinstance(self.headers, Headers):
            raise ValueError("headers must be a Headers instance")

        if self.body and not self.method.contains_body:
            raise ValueError(f"{self.method.value} requests cannot carry a body")

    @classmethod
    def create(
        cls,
        method: Union[str, bytes, Method],
        url: str,
        body: Union[bytes, str] = b"",
        headers: Optional[Union[Headers, Iterable[HeaderPair]]] = None,
    ) -> "Request":
        """
        Create a Request with proper type conversion.

        Args:
            method: HTTP method, any casing
            url: Target URL
            body: Request body; strings are encoded as UTF-8
            headers: Headers instance or list of (name, value) pairs

        Returns:
            New Request instance
        """
        if isinstance(body, str):
            body = body.encode("utf-8")

        if headers is None:
            headers = _default_headers()
        elif not isinstance(headers, Headers):
            headers = Headers(headers)

        return cls(method=Method.parse(method), url=url, body=body, headers=headers)

    @classmethod
    def get(cls, url: str) -> "Request":
        """Create a ``GET`` request with the given url."""
        return cls(method=Method.GET, url=url)

    @classmethod
    def head(cls, url: str) -> "Request":
        """Create a ``HEAD`` request with the given url."""
        return cls(method=Method.HEAD, url=url)

    @classmethod
    def delete(cls, url: str) -> "Request":
        return cls(method=Method.DELETE, url=url)

    @classmethod
    def options(cls, url: str) -> "Request":
        return cls(method=Method.OPTIONS, url=url)

    @classmethod
    def post(cls, url: str, body: Union[bytes, str] = b"") -> "Request":
        """Create a ``POST`` request with the given url and body."""
        return cls._with_body(Method.POST, url, body)

    @classmethod
    def put(cls, url: str, body: Union[bytes, str] = b"") -> "Request":
        return cls._with_body(Method.PUT, url, body)

    @classmethod
    def patch(cls, url: str, body: Union[bytes, str] = b"") -> "Request":
        return cls._with_body(Method.PATCH, url, body)

    @classmethod
    def _with_body(cls, method: Method, url: str, body: Union[bytes, str]) -> "Request":
        if isinstance(body, str):
            body = body.encode("utf-8")
        return cls(method=method, url=url, body=body, headers=_body_headers())

    def with_header(self, name: str, value: str) -> "Request":
        """Create a new request with one more header."""
        headers = self.headers.copy()
        headers.insert(name, value)
        return replace(self, headers=headers)

    def with_headers(self, headers: Union[Headers, Iterable[HeaderPair]]) -> "Request":
        """Create a new request with different headers."""
        if not isinstance(headers, Headers):
            headers = Headers(headers)
        return replace(self, headers=headers)

    def with_mode(self, mode: Mode) -> "Request":
        return replace(self, mode=mode)

    def with_danger_accept_invalid_hostnames(self, accept: bool = True) -> "Request":
        return replace(self, danger_accept_invalid_hostnames=accept)

    def with_danger_accept_invalid_certs(self, accept: bool = True) -> "Request":
        return replace(self, danger_accept_invalid_certs=accept)


def is_success(status: int) -> bool:
    """True for 2xx status codes."""
    return 200 <= status < 300


@dataclass(frozen=True)
class Response:
    """
    Response from a completed HTTP request.

    Any status code produces a Response, including 4xx and 5xx.
    """

    # The URL we ended up at, after following redirects.
    url: str
    ok: bool
    status: int
    status_text: str
    headers: Headers
    bytes: bytes

    def text(self) -> Optional[str]:
        """The body decoded as UTF-8, or None if it is not valid UTF-8."""
        try:
            return self.bytes.decode("utf-8")
        except UnicodeDecodeError:
            return None

    @property
    def content_type(self) -> Optional[str]:
        return self.headers.get("content-type")

    def __repr__(self) -> str:
        return (
            f"Response(url={self.url!r}, ok={self.ok!r}, status={self.status!r}, "
            f"status_text={self.status_text!r}, headers={self.headers!r}, "
            f"bytes=<{len(self.bytes)} bytes>)"
        )


@dataclass(frozen=True)
class PartialResponse:
    """
    Status line and headers of a response whose body is still arriving.

    Used as the first event of a streaming fetch.
    """

    url: str
    ok: bool
    status: int
    status_text: str
    headers: Headers
    _completed: List[bool] = field(
        default_factory=lambda: [False], init=False, repr=False, compare=False
    )

    @classmethod
    def create(
        cls,
        url: str,
        status: int,
        status_text: str,
        headers: Headers,
    ) -> "PartialResponse":
        return cls(
            url=url,
            ok=is_success(status),
            status=status,
            status_text=status_text,
            headers=headers,
        )

    def complete(self, body: bytes) -> Response:
        """
        Attach the received body and produce the full Response.

        This can only happen once per partial response.
        """
        if self._completed[0]:
            raise RuntimeError("PartialResponse has already been completed")
        self._completed[0] = True
        return Response(
            url=self.url,
            ok=self.ok,
            status=self.status,
            status_text=self.status_text,
            headers=self.headers,
            bytes=bytes(body),
        )


# What a fetch callback receives.
Result: TypeAlias = Union[Response, FetchError]
