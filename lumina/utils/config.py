"""
Configuration Management
========================

Typed configuration for the agent core, read from environment variables
(and a .env file, if present).

Sections:
    LLMSettings   which model vendor to talk to, and how
    AgentSettings loop behaviour: step ceiling, auto approval, locale,
                  tool result truncation, stream polling
    RAGConfig     chunking, embeddings, search defaults, reranking

Credentials are deliberately not validated here. The LLM API key is only
required for vendors that need one, so the check happens in
lumina.llm.create_provider(), before any network call is made.

Usage:
    from lumina.utils.config import get_config

    config = get_config()
    print(config.llm.provider, config.agent.max_steps)
"""

import os
from dataclasses import dataclass, replace
from pathlib import Path

from dotenv import load_dotenv


class ConfigError(Exception):
    """Raised when configuration is missing or invalid."""


def _optional(name: str, default: str) -> str:
    return os.getenv(name, default)


def _optional_str(name: str) -> str | None:
    """Get an environment variable, treating empty strings as unset."""
    value = os.getenv(name)
    return value or None


def _optional_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {value!r}")


def _optional_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {value!r}")


def _optional_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if not value:
        return default
    return value.lower() in ("1", "true", "yes", "on")


# ==============================================================================
# Configuration Dataclasses
# ==============================================================================

@dataclass(frozen=True)
class LLMSettings:
    """Chat model configuration."""
    provider: str                  # openai, deepseek, moonshot, groq, openrouter, gemini, ollama
    model: str
    api_key: str | None = None
    base_url: str | None = None    # Overrides the vendor default endpoint
    custom_model_id: str | None = None  # Used when model == "custom"
    temperature: float = 0.7
    max_tokens: int = 8192
    timeout_seconds: float = 120.0


@dataclass(frozen=True)
class AgentSettings:
    """Agent loop configuration."""
    max_steps: int = 20                  # Model turns before the task fails
    max_plan_iterations: int = 1
    auto_approve: bool = False           # Skip the approval pause for write tools
    locale: str = "en"
    max_tool_result_length: int = 8000   # Tool output cap before truncation
    stream_poll_interval: float = 0.1    # Seconds between stream queue polls

    def with_overrides(self, **changes) -> "AgentSettings":
        return replace(self, **changes)


@dataclass(frozen=True)
class RAGConfig:
    """Retrieval configuration."""
    embedding_model: str = "text-embedding-3-small"
    embedding_api_key: str | None = None
    embedding_base_url: str | None = None
    embedding_dimensions: int | None = None   # None: taken from the first vector
    embedding_batch_size: int = 32
    chunk_size: int = 1200          # Max characters per chunk
    chunk_overlap_lines: int = 2    # Lines repeated between split windows
    min_chunk_size: int = 20        # Fragments shorter than this are dropped
    max_results: int = 10
    min_score: float = 0.3
    reranker_enabled: bool = False
    reranker_model: str = "BAAI/bge-reranker-v2-m3"
    reranker_api_key: str | None = None
    reranker_base_url: str | None = None
    rerank_oversample_factor: int = 3
    rerank_min_candidates: int = 20
    data_dir_name: str = ".lumina"


@dataclass(frozen=True)
class Config:
    """
    Root configuration object.

    Access via:
        config = get_config()
        config.llm.model
        config.rag.min_score
    """
    llm: LLMSettings
    agent: AgentSettings
    rag: RAGConfig
    workspace: Path | None
    log_level: str


def load_config() -> Config:
    """
    Load all configuration from the environment.

    Raises:
        ConfigError: If a numeric variable cannot be parsed
    """
    load_dotenv()

    workspace = _optional_str("LUMINA_WORKSPACE")
    llm_api_key = _optional_str("LLM_API_KEY")

    return Config(
        llm=LLMSettings(
            provider=_optional("LLM_PROVIDER", "openai").lower(),
            model=_optional("LLM_MODEL", "gpt-4o-mini"),
            api_key=llm_api_key,
            base_url=_optional_str("LLM_BASE_URL"),
            custom_model_id=_optional_str("LLM_CUSTOM_MODEL_ID"),
            temperature=_optional_float("LLM_TEMPERATURE", 0.7),
            max_tokens=_optional_int("LLM_MAX_TOKENS", 8192),
            timeout_seconds=_optional_float("LLM_TIMEOUT_SECONDS", 120.0),
        ),
        agent=AgentSettings(
            max_steps=_optional_int("AGENT_MAX_STEPS", 20),
            max_plan_iterations=_optional_int("AGENT_MAX_PLAN_ITERATIONS", 1),
            auto_approve=_optional_bool("AGENT_AUTO_APPROVE", False),
            locale=_optional("AGENT_LOCALE", "en"),
            max_tool_result_length=_optional_int("AGENT_MAX_TOOL_RESULT_LENGTH", 8000),
            stream_poll_interval=_optional_float("AGENT_STREAM_POLL_INTERVAL", 0.1),
        ),
        rag=RAGConfig(
            embedding_model=_optional("RAG_EMBEDDING_MODEL", "text-embedding-3-small"),
            # Embeddings default to the chat key, most vendors share one
            embedding_api_key=_optional_str("RAG_EMBEDDING_API_KEY") or llm_api_key,
            embedding_base_url=_optional_str("RAG_EMBEDDING_BASE_URL"),
            embedding_dimensions=_optional_int("RAG_EMBEDDING_DIMENSIONS", 0) or None,
            embedding_batch_size=_optional_int("RAG_EMBEDDING_BATCH_SIZE", 32),
            chunk_size=_optional_int("RAG_CHUNK_SIZE", 1200),
            chunk_overlap_lines=_optional_int("RAG_CHUNK_OVERLAP_LINES", 2),
            min_chunk_size=_optional_int("RAG_MIN_CHUNK_SIZE", 20),
            max_results=_optional_int("RAG_MAX_RESULTS", 10),
            min_score=_optional_float("RAG_MIN_SCORE", 0.3),
            reranker_enabled=_optional_bool("RAG_RERANKER_ENABLED", False),
            reranker_model=_optional("RAG_RERANKER_MODEL", "BAAI/bge-reranker-v2-m3"),
            reranker_api_key=_optional_str("RAG_RERANKER_API_KEY"),
            reranker_base_url=_optional_str("RAG_RERANKER_BASE_URL"),
            rerank_oversample_factor=_optional_int("RAG_RERANK_OVERSAMPLE_FACTOR", 3),
            rerank_min_candidates=_optional_int("RAG_RERANK_MIN_CANDIDATES", 20),
        ),
        workspace=Path(workspace).expanduser() if workspace else None,
        log_level=_optional("LOG_LEVEL", "info"),
    )


_config_instance: Config | None = None


def get_config() -> Config:
    """Get the configuration, loading it on first access."""
    global _config_instance
    if _config_instance is None:
        _config_instance = load_config()
    return _config_instance


def reset_config() -> None:
    """Forget the cached configuration (used by tests that patch the environment)."""
    global _config_instance
    _config_instance = None
