"""
Blockwatch Common Module

Shared infrastructure: configuration, errors, the LLM client and schemas.
"""

from .config import BlockwatchConfig, load_config
from .errors import (
    AllSearchesFailedError,
    BlockwatchError,
    ChatClientError,
    LLMUnavailableError,
    PipelineError,
    SlackAPIError,
)
from .llm_client import AvailabilityCache, LLMClient

__all__ = [
    "BlockwatchConfig",
    "load_config",
    "AllSearchesFailedError",
    "BlockwatchError",
    "ChatClientError",
    "LLMUnavailableError",
    "PipelineError",
    "SlackAPIError",
    "AvailabilityCache",
    "LLMClient",
]
