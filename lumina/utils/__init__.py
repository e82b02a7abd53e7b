"""
Utilities Module
================

Shared plumbing for the agent core:
- logger: context-tagged console logging
- config: environment-driven typed configuration
"""

from lumina.utils.logger import Logger
from lumina.utils.config import (
    AgentSettings,
    Config,
    ConfigError,
    LLMSettings,
    RAGConfig,
    get_config,
)

__all__ = [
    "Logger",
    "get_config",
    "Config",
    "ConfigError",
    "LLMSettings",
    "AgentSettings",
    "RAGConfig",
]
