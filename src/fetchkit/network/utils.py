"""
Network utilities for fetchkit.

URL parsing, TLS context setup and the mapping of low-level socket
errors onto the fetchkit exception hierarchy.
"""

import asyncio
import socket
import ssl
from typing import NamedTuple, Optional
from urllib.parse import urlsplit

from ..exceptions import ConnectionError, FetchError, ProtocolError, TimeoutError

DEFAULT_PORTS = {"http": 80, "https": 443}


class URLComponents(NamedTuple):
    """The parts of a URL a connection needs."""

    scheme: str
    host: str
    port: int
    target: str

    @property
    def is_tls(self) -> bool:
        return self.scheme == "https"


def parse_url(url: str) -> URLComponents:
    """
    Parse URL into components.

    Args:
        url: Absolute http or https URL

    Returns:
        URLComponents with the request target (path plus query)

    Raises:
        ProtocolError: If URL is malformed or uses another scheme
    """
    try:
        parsed = urlsplit(url)
        port = parsed.port
    except ValueError as e:
        raise ProtocolError(f"Invalid URL {url!r}: {e}", cause=e) from e

    scheme = parsed.scheme.lower()
    if scheme not in DEFAULT_PORTS:
        raise ProtocolError(f"Unsupported URL scheme in {url!r}")

    host = parsed.hostname
    if not host:
        raise ProtocolError(f"No hostname found in URL {url!r}")

    if port is None:
        port = DEFAULT_PORTS[scheme]

    target = parsed.path or "/"
    if parsed.query:
        target += "?" + parsed.query

    return URLComponents(scheme=scheme, host=host, port=port, target=target)


def create_ssl_context(
    accept_invalid_certs: bool = False,
    accept_invalid_hostnames: bool = False,
) -> ssl.SSLContext:
    """
    Create a client SSL context.

    Args:
        accept_invalid_certs: Skip certificate validation entirely
        accept_invalid_hostnames: Keep validating the chain but not the hostname

    Returns:
        Configured SSL context
    """
    context = ssl.create_default_context()

    # check_hostname has to go before verify_mode can drop to CERT_NONE
    if accept_invalid_certs or accept_invalid_hostnames:
        context.check_hostname = False
    if accept_invalid_certs:
        context.verify_mode = ssl.CERT_NONE

    context.set_alpn_protocols(["http/1.1"])
    context.options |= ssl.OP_NO_COMPRESSION
    context.minimum_version = ssl.TLSVersion.TLSv1_2

    return context


def translate_connect_error(
    error: BaseException,
    host: str,
    port: int,
    timeout: Optional[float] = None,
) -> FetchError:
    """Map an exception raised while connecting to a FetchError."""
    if isinstance(error, FetchError):
        return error
    if isinstance(error, (socket.timeout, asyncio.TimeoutError)):
        return TimeoutError(f"Connecting to {host}:{port} timed out", timeout, cause=error)
    if isinstance(error, socket.gaierror):
        return ConnectionError(f"Failed to resolve host {host!r}: {error}", cause=error)
    if isinstance(error, ssl.SSLError):
        return ConnectionError(f"TLS handshake with {host}:{port} failed: {error}", cause=error)
    if isinstance(error, OSError):
        return ConnectionError(f"Failed to connect to {host}:{port}: {error}", cause=error)
    return ConnectionError(f"Failed to connect to {host}:{port}: {error!r}", cause=error)
