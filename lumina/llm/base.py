"""
Model Provider Contract
=======================

Every vendor is wrapped in an LLMProvider with the same two entry points:

    response = await provider.call(messages, options)
    async for chunk in provider.stream(messages, options):
        ...

Messages are plain dicts in chat-completions shape:
    {"role": "system" | "user" | "assistant", "content": "..."}

Streaming is optional. Providers that support it set supports_streaming;
for the rest, stream_llm() falls back to a single call() and replays the
answer as a one-chunk stream.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

Message = dict[str, str]


class LLMError(Exception):
    """Raised when a model request fails."""


@dataclass
class LLMOptions:
    temperature: float | None = None
    max_tokens: int | None = None
    tools: list[dict] | None = None   # Native function-calling schemas, if the vendor uses them


@dataclass
class LLMUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def add(self, other: "LLMUsage") -> None:
        self.prompt_tokens += other.prompt_tokens
        self.completion_tokens += other.completion_tokens
        self.total_tokens += other.total_tokens


@dataclass
class LLMResponse:
    content: str
    tool_calls: list[dict[str, Any]] | None = None
    usage: LLMUsage | None = None


@dataclass
class StreamChunk:
    """
    One piece of a streamed reply.

    type is one of:
        text       visible reply text
        reasoning  model reasoning (DeepSeek R1 style), not part of the reply
        usage      token accounting, usually last
        error      the stream failed; error holds the cause
    """
    type: str
    text: str = ""
    usage: LLMUsage | None = None
    error: str | None = None

    @classmethod
    def of_text(cls, text: str) -> "StreamChunk":
        return cls(type="text", text=text)

    @classmethod
    def of_reasoning(cls, text: str) -> "StreamChunk":
        return cls(type="reasoning", text=text)

    @classmethod
    def of_usage(cls, usage: LLMUsage) -> "StreamChunk":
        return cls(type="usage", usage=usage)

    @classmethod
    def of_error(cls, error: str) -> "StreamChunk":
        return cls(type="error", error=error)


@dataclass(frozen=True)
class ProviderMeta:
    """Static facts about a vendor."""
    name: str
    default_base_url: str | None
    requires_api_key: bool = True
    default_models: tuple[str, ...] = field(default_factory=tuple)


class LLMProvider(ABC):
    """Uniform call/stream contract over a model vendor."""

    name: str = "provider"
    supports_streaming: bool = False

    @abstractmethod
    async def call(self, messages: list[Message], options: LLMOptions | None = None) -> LLMResponse:
        """Request a complete reply."""

    def stream(self, messages: list[Message], options: LLMOptions | None = None) -> AsyncIterator[StreamChunk]:
        """Request a streamed reply. Only valid when supports_streaming is True."""
        raise NotImplementedError(f"{self.name} does not support streaming")
