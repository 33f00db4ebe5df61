"""
Configuration Management for Blockwatch

Loads configuration from ~/.blockwatch/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import List

logger = logging.getLogger("blockwatch.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".blockwatch"
CONFIG_PATH = CONFIG_DIR / "config.json"
LOGS_DIR = CONFIG_DIR / "logs"

DEFAULT_SEARCH_TERMS = [
    '"release blocker"',
    "blocker",
    "blocking",
    "critical",
    "urgent",
    "hotfix",
    '"no go"',
]


@dataclass
class SlackConfig:
    """Slack Web API configuration"""
    token: str = ""
    default_channel: str = ""
    api_base_url: str = "https://slack.com/api"
    timeout: float = 10.0
    max_retries: int = 3


@dataclass
class TrackerConfig:
    """Issue tracker configuration (ticket links and escalation handle)"""
    base_url: str = ""
    gatekeeper_handle: str = "test-managers"


@dataclass
class LLMConfig:
    """Language model provider configuration"""
    provider: str = "local"
    local_base_url: str = "http://localhost:1234/v1"
    local_model: str = "qwen3-8b"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-haiku-4-5-20251001"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    google_api_key: str = ""
    google_model: str = "gemini-2.0-flash"
    timeout: float = 30.0
    temperature: float = 0.3
    max_tokens: int = 256
    availability_ttl: float = 60.0


@dataclass
class DetectionConfig:
    """Issue detection pipeline configuration"""
    use_llm_classification: bool = True
    classifier_concurrency: int = 3
    min_llm_confidence: int = 60
    excerpt_length: int = 200
    search_terms: List[str] = field(default_factory=lambda: list(DEFAULT_SEARCH_TERMS))


@dataclass
class BlockwatchConfig:
    """Main Blockwatch configuration"""
    slack: SlackConfig = field(default_factory=SlackConfig)
    tracker: TrackerConfig = field(default_factory=TrackerConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    _env_sourced_keys: set = field(default_factory=set, repr=False)


def _parse_slack_config(data: dict) -> SlackConfig:
    """Parse slack section from config dict"""
    slack_data = data.get("slack", {})
    return SlackConfig(
        token=slack_data.get("token") or slack_data.get("bot_token", ""),
        default_channel=slack_data.get("default_channel", ""),
        api_base_url=slack_data.get("api_base_url", "https://slack.com/api"),
        timeout=float(slack_data.get("timeout", 10.0)),
        max_retries=int(slack_data.get("max_retries", 3)),
    )


def _parse_tracker_config(data: dict) -> TrackerConfig:
    """Parse tracker section from config dict"""
    tracker_data = data.get("tracker", {})
    return TrackerConfig(
        base_url=tracker_data.get("base_url", ""),
        gatekeeper_handle=tracker_data.get("gatekeeper_handle", "test-managers"),
    )


def _parse_llm_config(data: dict) -> LLMConfig:
    """Parse llm section from config dict"""
    llm_data = data.get("llm", {})
    defaults = LLMConfig()
    return LLMConfig(
        provider=llm_data.get("provider", defaults.provider),
        local_base_url=llm_data.get("local_base_url", defaults.local_base_url),
        local_model=llm_data.get("local_model", defaults.local_model),
        anthropic_api_key=llm_data.get("anthropic_api_key", ""),
        anthropic_model=llm_data.get("anthropic_model", defaults.anthropic_model),
        openai_api_key=llm_data.get("openai_api_key", ""),
        openai_model=llm_data.get("openai_model", defaults.openai_model),
        google_api_key=llm_data.get("google_api_key", ""),
        google_model=llm_data.get("google_model", defaults.google_model),
        timeout=float(llm_data.get("timeout", defaults.timeout)),
        temperature=float(llm_data.get("temperature", defaults.temperature)),
        max_tokens=int(llm_data.get("max_tokens", defaults.max_tokens)),
        availability_ttl=float(llm_data.get("availability_ttl", defaults.availability_ttl)),
    )


def _parse_detection_config(data: dict) -> DetectionConfig:
    """Parse detection section from config dict"""
    detection_data = data.get("detection", {})
    return DetectionConfig(
        use_llm_classification=detection_data.get("use_llm_classification", True),
        classifier_concurrency=int(detection_data.get("classifier_concurrency", 3)),
        min_llm_confidence=int(detection_data.get("min_llm_confidence", 60)),
        excerpt_length=int(detection_data.get("excerpt_length", 200)),
        search_terms=list(detection_data.get("search_terms") or DEFAULT_SEARCH_TERMS),
    )


def load_config() -> BlockwatchConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.blockwatch/config.json)
    3. Default values
    """
    config = BlockwatchConfig()

    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.slack = _parse_slack_config(data)
            config.tracker = _parse_tracker_config(data)
            config.llm = _parse_llm_config(data)
            config.detection = _parse_detection_config(data)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load config file: %s", e)

    # SLACK_BOT_TOKEN is the older name; SLACK_TOKEN wins when both are set
    for env_var in ("SLACK_BOT_TOKEN", "SLACK_TOKEN"):
        if os.getenv(env_var):
            config.slack.token = os.getenv(env_var)
            config._env_sourced_keys.add("slack_token")
    if os.getenv("SLACK_CHANNEL"):
        config.slack.default_channel = os.getenv("SLACK_CHANNEL")

    if os.getenv("JIRA_BASE_URL"):
        config.tracker.base_url = os.getenv("JIRA_BASE_URL")
    if os.getenv("BLOCKWATCH_GATEKEEPER"):
        config.tracker.gatekeeper_handle = os.getenv("BLOCKWATCH_GATEKEEPER")

    _env_llm_map = {
        "ANTHROPIC_API_KEY": "anthropic_api_key",
        "ANTHROPIC_MODEL": "anthropic_model",
        "OPENAI_API_KEY": "openai_api_key",
        "OPENAI_MODEL": "openai_model",
        "GOOGLE_API_KEY": "google_api_key",
        "GEMINI_API_KEY": "google_api_key",
        "GOOGLE_MODEL": "google_model",
        "LOCAL_LLM_URL": "local_base_url",
        "LOCAL_LLM_MODEL": "local_model",
        "BLOCKWATCH_LLM_PROVIDER": "provider",
    }
    for env_var, attr in _env_llm_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(config.llm, attr, val)
            config._env_sourced_keys.add(attr)

    if os.getenv("BLOCKWATCH_USE_LLM"):
        config.detection.use_llm_classification = (
            os.getenv("BLOCKWATCH_USE_LLM").lower() not in ("0", "false", "no")
        )
    if os.getenv("BLOCKWATCH_MIN_LLM_CONFIDENCE"):
        config.detection.min_llm_confidence = int(os.getenv("BLOCKWATCH_MIN_LLM_CONFIDENCE"))

    return config


def save_config(config: BlockwatchConfig) -> None:
    """Save configuration to file.

    Secrets that were sourced from environment variables are written as
    empty strings so that they are not persisted to disk.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())

    llm_section = {
        "provider": config.llm.provider,
        "local_base_url": config.llm.local_base_url,
        "local_model": config.llm.local_model,
        "anthropic_api_key": config.llm.anthropic_api_key,
        "anthropic_model": config.llm.anthropic_model,
        "openai_api_key": config.llm.openai_api_key,
        "openai_model": config.llm.openai_model,
        "google_api_key": config.llm.google_api_key,
        "google_model": config.llm.google_model,
        "timeout": config.llm.timeout,
        "temperature": config.llm.temperature,
        "max_tokens": config.llm.max_tokens,
        "availability_ttl": config.llm.availability_ttl,
    }
    for key in ("anthropic_api_key", "openai_api_key", "google_api_key"):
        if key in env_sourced:
            llm_section[key] = ""

    data = {
        "slack": {
            "token": "" if "slack_token" in env_sourced else config.slack.token,
            "default_channel": config.slack.default_channel,
            "api_base_url": config.slack.api_base_url,
            "timeout": config.slack.timeout,
            "max_retries": config.slack.max_retries,
        },
        "tracker": {
            "base_url": config.tracker.base_url,
            "gatekeeper_handle": config.tracker.gatekeeper_handle,
        },
        "llm": llm_section,
        "detection": {
            "use_llm_classification": config.detection.use_llm_classification,
            "classifier_concurrency": config.detection.classifier_concurrency,
            "min_llm_confidence": config.detection.min_llm_confidence,
            "excerpt_length": config.detection.excerpt_length,
            "search_terms": config.detection.search_terms,
        },
    }

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)


def ensure_directories() -> None:
    """Ensure required directories exist"""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
