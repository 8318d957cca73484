"""
Network stream interfaces for fetchkit.

NetworkStream is the non-blocking stream driven by the event loop on the
web backend; SyncNetworkStream is its blocking counterpart used from the
worker threads of the native backend.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional


class NetworkStream(ABC):
    """
    Interface for network streams with async I/O operations.

    This interface defines the contract that all asynchronous stream
    implementations must follow.
    """

    @abstractmethod
    async def read(self, max_bytes: int) -> bytes:
        """
        Read up to ``max_bytes`` from the stream.

        Returns:
            The data read, or b"" once the peer has closed the connection.

        Raises:
            RuntimeError: If the stream is closed.
            OSError: If a network error occurs.
        """
        pass

    @abstractmethod
    async def write(self, data: bytes) -> None:
        """
        Write data to the stream.

        Raises:
            RuntimeError: If the stream is closed.
            OSError: If a network error occurs.
        """
        pass

    @abstractmethod
    async def aclose(self) -> None:
        """Close the stream and cleanup resources."""
        pass

    @abstractmethod
    def get_extra_info(self, name: str) -> Optional[Any]:
        """
        Get extra information about the stream.

        Args:
            name: Common values are "peername", "sockname" and "ssl_object".

        Returns:
            The requested information or None if not available.
        """
        pass

    @property
    @abstractmethod
    def is_closed(self) -> bool:
        pass


class SyncNetworkStream(ABC):
    """Interface for blocking network streams."""

    @abstractmethod
    def read(self, max_bytes: int) -> bytes:
        """
        Block until data is available and return up to ``max_bytes``.

        Returns b"" once the peer has closed the connection.
        """
        pass

    @abstractmethod
    def write(self, data: bytes) -> None:
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    @property
    @abstractmethod
    def is_closed(self) -> bool:
        pass
