"""
Configuration for fetchkit.

Defaults live on FetchConfig as class constants; every value can be
overridden in the constructor or through ``FETCHKIT_*`` environment
variables with FetchConfig.from_env().
"""

import os
import sys
from dataclasses import dataclass, field
from typing import Mapping, Optional

from . import __version__

NATIVE = "native"
WEB = "web"
BACKENDS = (NATIVE, WEB)


def default_backend(platform: Optional[str] = None) -> str:
    """The backend matching the interpreter we are running on."""
    platform = platform or sys.platform
    return WEB if platform == "emscripten" else NATIVE


@dataclass(frozen=True)
class FetchConfig:
    """
    Transport configuration.

    Attributes:
        timeout: Connect and receive timeout in seconds, None to wait forever
        max_redirects: Redirects followed before giving up, 0 disables following
        chunk_size: Maximum size of a streamed body chunk on the native backend
        user_agent: Sent when the request has no User-Agent header
        backend: "native" or "web"
    """

    DEFAULT_TIMEOUT = 30.0
    DEFAULT_MAX_REDIRECTS = 5
    DEFAULT_CHUNK_SIZE = 2048
    DEFAULT_USER_AGENT = f"fetchkit/{__version__}"

    timeout: Optional[float] = DEFAULT_TIMEOUT
    max_redirects: int = DEFAULT_MAX_REDIRECTS
    chunk_size: int = DEFAULT_CHUNK_SIZE
    user_agent: str = DEFAULT_USER_AGENT
    backend: str = field(default_factory=default_backend)

    def __post_init__(self) -> None:
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be positive or None")
        if self.max_redirects < 0:
            raise ValueError("max_redirects must be non-negative")
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if self.backend not in BACKENDS:
            raise ValueError(f"backend must be one of {BACKENDS}, got {self.backend!r}")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "FetchConfig":
        """Build a config from FETCHKIT_* environment variables."""
        env = os.environ if environ is None else environ
        kwargs = {}

        timeout = env.get("FETCHKIT_TIMEOUT")
        if timeout:
            kwargs["timeout"] = None if timeout.lower() == "none" else _parse_float("FETCHKIT_TIMEOUT", timeout)

        max_redirects = env.get("FETCHKIT_MAX_REDIRECTS")
        if max_redirects:
            kwargs["max_redirects"] = _parse_int("FETCHKIT_MAX_REDIRECTS", max_redirects)

        chunk_size = env.get("FETCHKIT_CHUNK_SIZE")
        if chunk_size:
            kwargs["chunk_size"] = _parse_int("FETCHKIT_CHUNK_SIZE", chunk_size)

        user_agent = env.get("FETCHKIT_USER_AGENT")
        if user_agent:
            kwargs["user_agent"] = user_agent

        backend = env.get("FETCHKIT_BACKEND")
        if backend:
            kwargs["backend"] = backend.strip().lower()

        return cls(**kwargs)


def _parse_float(name: str, value: str) -> float:
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}") from None


def _parse_int(name: str, value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}") from None


def select_backend(environ: Optional[Mapping[str, str]] = None) -> str:
    """
    The backend to bind at import time.

    ``FETCHKIT_BACKEND`` wins; otherwise the backend matching the platform.
    """
    env = os.environ if environ is None else environ
    backend = (env.get("FETCHKIT_BACKEND") or "").strip().lower() or default_backend()
    if backend not in BACKENDS:
        raise ValueError(f"FETCHKIT_BACKEND must be one of {BACKENDS}, got {backend!r}")
    return backend
