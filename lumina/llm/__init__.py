"""
LLM Service
===========

Uniform access to chat models.

    provider = create_provider(config.llm)
    async for chunk in stream_llm(provider, messages):
        ...

create_provider() validates the configuration before anything touches
the network: an unknown vendor or a missing API key fails immediately
with ConfigError.
"""

from typing import AsyncIterator

from lumina.llm.base import (
    LLMError,
    LLMOptions,
    LLMProvider,
    LLMResponse,
    LLMUsage,
    Message,
    ProviderMeta,
    StreamChunk,
)
from lumina.llm.stream import StreamBridge
from lumina.utils.config import ConfigError, LLMSettings
from lumina.utils.logger import Logger

logger = Logger("LLM")

PROVIDER_REGISTRY: dict[str, ProviderMeta] = {
    "openai": ProviderMeta("openai", None, default_models=("gpt-4o", "gpt-4o-mini")),
    "deepseek": ProviderMeta(
        "deepseek", "https://api.deepseek.com/v1", default_models=("deepseek-chat", "deepseek-reasoner")
    ),
    "moonshot": ProviderMeta("moonshot", "https://api.moonshot.cn/v1", default_models=("moonshot-v1-32k",)),
    "groq": ProviderMeta("groq", "https://api.groq.com/openai/v1", default_models=("llama-3.3-70b-versatile",)),
    "openrouter": ProviderMeta("openrouter", "https://openrouter.ai/api/v1"),
    "gemini": ProviderMeta(
        "gemini", "https://generativelanguage.googleapis.com/v1beta/openai/", default_models=("gemini-2.0-flash",)
    ),
    "ollama": ProviderMeta("ollama", "http://localhost:11434/v1", requires_api_key=False),
}


def create_provider(settings: LLMSettings, poll_interval: float = 0.1) -> LLMProvider:
    """
    Build the provider described by the settings.

    Raises:
        ConfigError: Unsupported provider, missing API key or missing model
    """
    meta = PROVIDER_REGISTRY.get(settings.provider)
    if meta is None:
        raise ConfigError(
            f"unsupported provider: {settings.provider}. "
            f"Supported: {', '.join(PROVIDER_REGISTRY)}"
        )

    if meta.requires_api_key and not settings.api_key:
        raise ConfigError(f"missing API key for provider {settings.provider} (set LLM_API_KEY)")

    model = settings.model
    if model == "custom":
        if not settings.custom_model_id:
            raise ConfigError("model is 'custom' but no custom model id is configured")
        model = settings.custom_model_id
    if not model:
        raise ConfigError("no model configured (set LLM_MODEL)")

    from lumina.llm.openai_provider import OpenAICompatibleProvider

    resolved = LLMSettings(**{**settings.__dict__, "model": model})
    logger.debug(f"Creating provider {meta.name} for model {model}")
    return OpenAICompatibleProvider(
        name=meta.name,
        settings=resolved,
        base_url=settings.base_url or meta.default_base_url,
        poll_interval=poll_interval,
    )


async def call_llm(
    provider: LLMProvider,
    messages: list[Message],
    options: LLMOptions | None = None
) -> LLMResponse:
    """Single non-streaming request."""
    return await provider.call(messages, options)


async def stream_llm(
    provider: LLMProvider,
    messages: list[Message],
    options: LLMOptions | None = None
) -> AsyncIterator[StreamChunk]:
    """
    Stream a reply, falling back to one call() for non-streaming providers.

    The fallback yields the whole reply as a single text chunk, followed by
    a usage chunk when the vendor reported usage.
    """
    if not provider.supports_streaming:
        response = await provider.call(messages, options)
        yield StreamChunk.of_text(response.content)
        if response.usage is not None:
            yield StreamChunk.of_usage(response.usage)
        return

    async for chunk in provider.stream(messages, options):
        yield chunk


__all__ = [
    "LLMError",
    "LLMOptions",
    "LLMProvider",
    "LLMResponse",
    "LLMUsage",
    "Message",
    "PROVIDER_REGISTRY",
    "ProviderMeta",
    "StreamBridge",
    "StreamChunk",
    "call_llm",
    "create_provider",
    "stream_llm",
]
