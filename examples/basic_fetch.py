"""
Basic fetch example using fetchkit.

This example demonstrates the three ways to run a request on the
native backend: with a callback, blocking, and awaited.
"""

import asyncio
import logging
import threading

import fetchkit
from fetchkit import FetchError, Request

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

URL = "https://httpbin.org/get"


def callback_request():
    """Demonstrate fetch with a callback on the worker thread."""
    logger.info("Making GET request with a callback...")
    done = threading.Event()

    def on_done(result):
        if isinstance(result, FetchError):
            logger.error(f"Request failed: {result}")
        else:
            logger.info(f"Response status: {result.status} {result.status_text}")
            logger.info(f"Response body length: {len(result.bytes)} bytes")
        done.set()

    fetchkit.fetch(Request.get(URL), on_done)
    done.wait()


def blocking_request():
    """Demonstrate fetch_blocking with a POST body."""
    logger.info("Making blocking POST request...")
    response = fetchkit.fetch_blocking(Request.post("https://httpbin.org/post", "Hello, World!"))
    logger.info(f"Response ok: {response.ok}, content type: {response.content_type}")
    for name, value in response.headers:
        logger.info(f"  {name}: {value}")


async def awaited_request():
    """Demonstrate fetch_async from a coroutine."""
    logger.info("Making awaited GET request...")
    response = await fetchkit.fetch_async(Request.get("https://httpbin.org/status/404"))
    # HTTP errors are responses, not exceptions
    logger.info(f"Response ok: {response.ok}, status: {response.status}")


def main():
    """Run all examples."""
    logger.info(f"fetchkit {fetchkit.__version__} on the {fetchkit.BACKEND} backend")
    if fetchkit.BACKEND != fetchkit.NATIVE:
        logger.error("This example needs the native backend")
        return

    try:
        callback_request()
        blocking_request()
        asyncio.run(awaited_request())
    except FetchError as e:
        logger.error(f"Example failed: {e}")
        raise

    logger.info("All examples completed successfully!")


if __name__ == "__main__":
    main()
