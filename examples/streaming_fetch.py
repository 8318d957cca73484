"""
Streaming example using fetchkit.

Downloads a body chunk by chunk, stops early once enough bytes have
arrived and slows delivery down with Flow.wait.
"""

import logging
import threading

import fetchkit
from fetchkit import FetchError, Request
from fetchkit.streaming import Flow, ResponseHeader

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

LIMIT = 8 * 1024


def main():
    done = threading.Event()
    received = 0

    def on_data(event):
        nonlocal received
        if isinstance(event, FetchError):
            logger.error(f"Stream failed: {event}")
            done.set()
            return Flow.BREAK
        if isinstance(event, ResponseHeader):
            logger.info(f"Status {event.response.status}, headers: {len(event.response.headers)}")
            if not event.response.ok:
                done.set()
                return Flow.BREAK
            return Flow.CONTINUE
        if event.is_end:
            logger.info(f"Finished after {received} bytes")
            done.set()
            return Flow.CONTINUE

        received += len(event.data)
        logger.info(f"Chunk of {len(event.data)} bytes")
        if received >= LIMIT:
            logger.info("Got enough, stopping")
            done.set()
            return Flow.BREAK
        return Flow.wait(0.05)

    fetchkit.streaming.fetch(Request.get("https://httpbin.org/stream-bytes/32768"), on_data)
    done.wait()


if __name__ == "__main__":
    main()
