"""
Custom exceptions for fetchkit.

Every failure to obtain a response is a FetchError. An HTTP error
status (404, 500, ...) is never an exception: it is a Response
with ``ok`` set to False.
"""

from typing import Optional


class FetchError(Exception):
    """Base exception for all fetchkit errors."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause


class ConnectionError(FetchError):
    """Raised when no connection to the server could be established."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"Connection error: {message}", cause)


class ProtocolError(FetchError):
    """Raised for malformed input or a malformed HTTP exchange."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"Protocol error: {message}", cause)


class TimeoutError(FetchError):
    """Raised when connecting or receiving times out."""

    def __init__(
        self,
        message: str,
        timeout: Optional[float] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        if timeout is not None:
            message = f"{message} (timeout: {timeout}s)"
        super().__init__(f"Timeout error: {message}", cause)
        self.timeout = timeout


class StreamError(FetchError):
    """Raised when reading the response body fails."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"Stream error: {message}", cause)


class IncompleteBodyError(StreamError):
    """Raised when the body ends before the announced length or encoding allows."""


class BlockedRequestError(FetchError):
    """Raised when the host refused to perform the request at all."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"Request blocked: {message}", cause)
