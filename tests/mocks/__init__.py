"""
Test doubles for the model provider and the embedder.

Neither touches the network; both are deterministic.
"""
import asyncio
import hashlib
import re

from lumina.llm import LLMError, LLMProvider, LLMResponse, LLMUsage, StreamChunk

# Scripted reply that streams a little text and then never finishes
HANG = object()

FAKE_USAGE = LLMUsage(prompt_tokens=10, completion_tokens=5, total_tokens=15)


class FakeProvider(LLMProvider):
    """Replays scripted replies, one per request, and records every request"""

    name = "fake"

    def __init__(self, replies, streaming=True, chunk_size=16):
        self.replies = list(replies)
        self.supports_streaming = streaming
        self.chunk_size = chunk_size
        self.requests = []

    def _next_reply(self, messages):
        self.requests.append([dict(m) for m in messages])
        if not self.replies:
            raise LLMError("no scripted reply left")
        return self.replies.pop(0)

    async def call(self, messages, options=None):
        reply = self._next_reply(messages)
        if reply is HANG:
            await asyncio.Event().wait()
        return LLMResponse(content=reply, usage=FAKE_USAGE)

    async def stream(self, messages, options=None):
        reply = self._next_reply(messages)
        if reply is HANG:
            yield StreamChunk.of_text("partial ")
            await asyncio.Event().wait()
        for i in range(0, len(reply), self.chunk_size):
            yield StreamChunk.of_text(reply[i:i + self.chunk_size])
        yield StreamChunk.of_usage(FAKE_USAGE)


class FakeEmbedder:
    """Bag-of-words vectors: each word lights up one hashed dimension"""

    dimensions = 64

    def __init__(self):
        self.batch_sizes = []

    def _vector(self, text):
        vector = [0.0] * self.dimensions
        for token in re.findall(r"\w+", text.lower()):
            index = int(hashlib.md5(token.encode()).hexdigest(), 16) % self.dimensions
            vector[index] += 1.0
        return vector

    async def embed(self, text):
        return self._vector(text)

    async def embed_batch(self, texts):
        self.batch_sizes.append(len(texts))
        return [self._vector(t) for t in texts]
