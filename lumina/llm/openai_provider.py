"""
OpenAI-Compatible Provider
==========================

Most chat vendors expose the OpenAI chat-completions API, so one provider
backed by the official openai SDK covers them all by switching base_url:
OpenAI, DeepSeek, Moonshot, Groq, OpenRouter, Gemini's compatibility
endpoint and a local Ollama server.

DeepSeek reasoning models also return `reasoning_content`. In streams it
becomes `reasoning` chunks; in a plain call() it is prepended to the
reply inside <thinking> tags, which the response parser ignores.
"""

import asyncio
import json
from typing import AsyncIterator

from openai import APIError, AsyncOpenAI

from lumina.llm.base import (
    LLMError,
    LLMOptions,
    LLMProvider,
    LLMResponse,
    LLMUsage,
    Message,
    StreamChunk,
)
from lumina.llm.stream import StreamBridge
from lumina.utils.config import LLMSettings
from lumina.utils.logger import Logger

logger = Logger("OpenAIProvider")


def _usage_from(raw) -> LLMUsage | None:
    if raw is None:
        return None
    return LLMUsage(
        prompt_tokens=raw.prompt_tokens or 0,
        completion_tokens=raw.completion_tokens or 0,
        total_tokens=raw.total_tokens or 0,
    )


class OpenAICompatibleProvider(LLMProvider):
    """
    Chat provider for any OpenAI-compatible endpoint.

    Example:
        provider = OpenAICompatibleProvider(
            name="deepseek",
            settings=LLMSettings(provider="deepseek", model="deepseek-chat", api_key="sk-..."),
            base_url="https://api.deepseek.com/v1",
        )
        reply = await provider.call([{"role": "user", "content": "Hello"}])
    """

    supports_streaming = True

    def __init__(
        self,
        name: str,
        settings: LLMSettings,
        base_url: str | None = None,
        poll_interval: float = 0.1,
        client: AsyncOpenAI | None = None
    ):
        self.name = name
        self.settings = settings
        self.model = settings.model
        self.poll_interval = poll_interval
        self.client = client or AsyncOpenAI(
            # Local servers ignore the key but the SDK insists on one
            api_key=settings.api_key or "not-needed",
            base_url=base_url,
            timeout=settings.timeout_seconds,
        )

        logger.info(f"Provider {name} initialized with model: {self.model}")

    def _build_request(self, messages: list[Message], options: LLMOptions | None, stream: bool) -> dict:
        options = options or LLMOptions()
        temperature = options.temperature if options.temperature is not None else self.settings.temperature
        if "reasoner" in self.model:
            # DeepSeek reasoners reject any other temperature
            temperature = 1.0

        request = {
            "model": self.model,
            "messages": [{"role": m["role"], "content": m["content"]} for m in messages],
            "temperature": temperature,
            "max_tokens": options.max_tokens or self.settings.max_tokens,
            "stream": stream,
        }
        if options.tools:
            request["tools"] = options.tools
            request["tool_choice"] = "auto"
        if stream:
            request["stream_options"] = {"include_usage": True}
        return request

    async def call(self, messages: list[Message], options: LLMOptions | None = None) -> LLMResponse:
        request = self._build_request(messages, options, stream=False)
        try:
            response = await self.client.chat.completions.create(**request)
        except APIError as e:
            raise LLMError(f"{self.name} request failed: {e}") from e

        if not response.choices:
            raise LLMError(f"{self.name} returned no choices")
        message = response.choices[0].message

        content = ""
        reasoning = getattr(message, "reasoning_content", None)
        if reasoning:
            content += f"<thinking>\n{reasoning}\n</thinking>\n\n"
        content += message.content or ""

        tool_calls = []
        for tc in message.tool_calls or []:
            try:
                arguments = json.loads(tc.function.arguments or "{}")
            except json.JSONDecodeError as e:
                logger.error(f"Failed to parse tool arguments: {e}")
                arguments = {}
            tool_calls.append({"id": tc.id, "name": tc.function.name, "arguments": arguments})

        return LLMResponse(
            content=content,
            tool_calls=tool_calls or None,
            usage=_usage_from(response.usage),
        )

    async def stream(self, messages: list[Message], options: LLMOptions | None = None) -> AsyncIterator[StreamChunk]:
        request = self._build_request(messages, options, stream=True)
        bridge = StreamBridge(poll_interval=self.poll_interval, idle_timeout=self.settings.timeout_seconds)
        producer = asyncio.create_task(self._pump(request, bridge))

        try:
            async for chunk in bridge.chunks():
                yield chunk
        finally:
            if not producer.done():
                producer.cancel()

    async def _pump(self, request: dict, bridge: StreamBridge) -> None:
        """Read the SDK stream and push every delta into the bridge."""
        try:
            stream = await self.client.chat.completions.create(**request)
            async for event in stream:
                self._on_event(event, bridge)
            bridge.finish()
        except APIError as e:
            logger.error(f"{self.name} stream failed", e)
            bridge.fail(f"{self.name} request failed: {e}")
        except (OSError, ValueError) as e:
            logger.error(f"{self.name} stream broke", e)
            bridge.fail(f"{self.name} stream broke: {e}")
        except Exception as e:
            logger.error(f"{self.name} stream failed unexpectedly", e)
            bridge.fail(f"{self.name} stream failed: {type(e).__name__}: {e}")
        finally:
            # Cancellation included: the consumer must never wait on a dead producer
            if not bridge.finished:
                bridge.finish()

    @staticmethod
    def _on_event(event, bridge: StreamBridge) -> None:
        if event.choices:
            delta = event.choices[0].delta
            reasoning = getattr(delta, "reasoning_content", None)
            if reasoning:
                bridge.push(StreamChunk.of_reasoning(reasoning))
            if delta.content:
                bridge.push(StreamChunk.of_text(delta.content))

        usage = _usage_from(getattr(event, "usage", None))
        if usage is not None:
            bridge.push(StreamChunk.of_usage(usage))
