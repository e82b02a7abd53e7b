"""
Stream Bridge
=============

Vendor SDKs and transports deliver streamed replies in different ways,
often as callbacks or a background reader. The agent loop wants to pull
chunks one at a time with `async for`. StreamBridge sits between the two:

    producer side                      consumer side
    -------------                      -------------
    bridge.push(chunk)   ──► queue ──► async for chunk in bridge.chunks():
    bridge.finish()                        ...
    bridge.fail("reset")

Rules:
- chunks come out in the order they were pushed
- the consumer waits at most poll_interval per cycle, then re-checks the
  finished flag, so it never blocks forever on a dead connection
- everything queued is drained before finish() is honored
- a stream that stays silent for idle_timeout seconds fails
"""

import asyncio
import time
from typing import AsyncIterator

from lumina.llm.base import StreamChunk
from lumina.utils.logger import Logger

logger = Logger("StreamBridge")


class StreamBridge:
    """
    Ordered channel from a push-style producer to a pull-style consumer.

    Example:
        bridge = StreamBridge(poll_interval=0.1)
        client.on_delta = lambda text: bridge.push(StreamChunk.of_text(text))
        client.on_done = bridge.finish

        async for chunk in bridge.chunks():
            print(chunk.text, end="")
    """

    def __init__(self, poll_interval: float = 0.1, idle_timeout: float | None = 300.0):
        self.poll_interval = poll_interval
        self.idle_timeout = idle_timeout
        self._queue: asyncio.Queue[StreamChunk] = asyncio.Queue()
        self._finished = False
        self._error: str | None = None

    @property
    def finished(self) -> bool:
        return self._finished

    def push(self, chunk: StreamChunk) -> None:
        """Queue a chunk. Chunks pushed after finish() are dropped."""
        if self._finished:
            logger.debug(f"Dropping {chunk.type} chunk pushed after stream end")
            return
        self._queue.put_nowait(chunk)

    def finish(self) -> None:
        """Mark the stream complete; queued chunks are still delivered."""
        self._finished = True

    def fail(self, error: str) -> None:
        """Mark the stream failed; consumers get an error chunk after the queue drains."""
        if not self._finished:
            self._error = error
            self._finished = True

    async def chunks(self) -> AsyncIterator[StreamChunk]:
        """Yield chunks in push order until the stream finishes."""
        last_activity = time.monotonic()

        while not (self._finished and self._queue.empty()):
            try:
                chunk = await asyncio.wait_for(self._queue.get(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                if self.idle_timeout is not None and time.monotonic() - last_activity > self.idle_timeout:
                    logger.warning(f"No stream activity for {self.idle_timeout}s, giving up")
                    self.fail(f"stream timed out after {self.idle_timeout}s without data")
                continue

            last_activity = time.monotonic()
            yield chunk

        if self._error is not None:
            yield StreamChunk.of_error(self._error)
