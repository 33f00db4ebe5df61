"""Tests for configuration loading and saving."""

import json
import os
import pytest
from unittest.mock import patch


class TestDefaults:
    def test_llm_config_defaults(self):
        from blockwatch.common.config import LLMConfig
        cfg = LLMConfig()
        assert cfg.provider == "local"
        assert cfg.local_base_url == "http://localhost:1234/v1"
        assert cfg.anthropic_api_key == ""

    def test_detection_defaults(self):
        from blockwatch.common.config import DEFAULT_SEARCH_TERMS, DetectionConfig
        cfg = DetectionConfig()
        assert cfg.use_llm_classification
        assert cfg.classifier_concurrency == 3
        assert cfg.search_terms == DEFAULT_SEARCH_TERMS
        assert len(cfg.search_terms) == 7
        cfg.search_terms.append("x")
        assert len(DEFAULT_SEARCH_TERMS) == 7


class TestLoadConfig:
    def test_load_from_file(self, tmp_path):
        from blockwatch.common.config import load_config
        config_data = {
            "slack": {"token": "xoxp-file", "default_channel": "release"},
            "tracker": {"base_url": "https://jira.example.com", "gatekeeper_handle": "release-gate"},
            "llm": {"provider": "openai", "openai_api_key": "sk-test", "openai_model": "gpt-4o"},
            "detection": {"min_llm_confidence": 75, "search_terms": ["blocker"]},
        }
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps(config_data))

        with patch("blockwatch.common.config.CONFIG_PATH", config_file), \
             patch.dict(os.environ, {}, clear=True):
            cfg = load_config()

        assert cfg.slack.token == "xoxp-file"
        assert cfg.slack.default_channel == "release"
        assert cfg.tracker.gatekeeper_handle == "release-gate"
        assert cfg.llm.provider == "openai"
        assert cfg.llm.openai_model == "gpt-4o"
        assert cfg.detection.min_llm_confidence == 75
        assert cfg.detection.search_terms == ["blocker"]

    def test_missing_file_gives_defaults(self, tmp_path):
        from blockwatch.common.config import load_config
        with patch("blockwatch.common.config.CONFIG_PATH", tmp_path / "absent.json"), \
             patch.dict(os.environ, {}, clear=True):
            cfg = load_config()
        assert cfg.slack.token == ""
        assert cfg.llm.provider == "local"

    def test_invalid_file_logs_warning(self, tmp_path, caplog):
        import logging
        from blockwatch.common.config import load_config
        config_file = tmp_path / "config.json"
        config_file.write_text("{not json")

        with patch("blockwatch.common.config.CONFIG_PATH", config_file), \
             patch.dict(os.environ, {}, clear=True), \
             caplog.at_level(logging.WARNING, logger="blockwatch.common.config"):
            cfg = load_config()

        assert cfg.tracker.gatekeeper_handle == "test-managers"
        assert "Failed to load config file" in caplog.text

    def test_env_var_overrides(self, tmp_path):
        from blockwatch.common.config import load_config
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"slack": {"token": "xoxp-file"}}))

        env = {
            "SLACK_TOKEN": "xoxp-env",
            "JIRA_BASE_URL": "https://jira.env",
            "OPENAI_API_KEY": "sk-env",
            "BLOCKWATCH_LLM_PROVIDER": "openai",
            "BLOCKWATCH_USE_LLM": "false",
            "BLOCKWATCH_MIN_LLM_CONFIDENCE": "80",
        }
        with patch("blockwatch.common.config.CONFIG_PATH", config_file), \
             patch.dict(os.environ, env, clear=True):
            cfg = load_config()

        assert cfg.slack.token == "xoxp-env"
        assert cfg.tracker.base_url == "https://jira.env"
        assert cfg.llm.openai_api_key == "sk-env"
        assert cfg.llm.provider == "openai"
        assert not cfg.detection.use_llm_classification
        assert cfg.detection.min_llm_confidence == 80

    def test_gemini_key_alias(self, tmp_path):
        from blockwatch.common.config import load_config
        with patch("blockwatch.common.config.CONFIG_PATH", tmp_path / "absent.json"), \
             patch.dict(os.environ, {"GEMINI_API_KEY": "g-key"}, clear=True):
            cfg = load_config()
        assert cfg.llm.google_api_key == "g-key"


class TestSaveConfig:
    def test_save_config_omits_env_secrets(self, tmp_path):
        from blockwatch.common.config import load_config, save_config
        config_file = tmp_path / "config.json"
        config_file.write_text("{}")

        env = {"SLACK_TOKEN": "xoxp-env", "ANTHROPIC_API_KEY": "sk-ant"}
        with patch("blockwatch.common.config.CONFIG_DIR", tmp_path), \
             patch("blockwatch.common.config.CONFIG_PATH", config_file), \
             patch.dict(os.environ, env, clear=True):
            cfg = load_config()
            cfg.tracker.base_url = "https://jira.example.com"
            save_config(cfg)

        saved = json.loads(config_file.read_text())
        assert saved["slack"]["token"] == ""
        assert saved["llm"]["anthropic_api_key"] == ""
        assert saved["tracker"]["base_url"] == "https://jira.example.com"

    def test_save_then_load_round_trip(self, tmp_path):
        from blockwatch.common.config import BlockwatchConfig, load_config, save_config
        config_file = tmp_path / "config.json"
        cfg = BlockwatchConfig()
        cfg.slack.token = "xoxp-file"
        cfg.detection.min_llm_confidence = 70

        with patch("blockwatch.common.config.CONFIG_DIR", tmp_path), \
             patch("blockwatch.common.config.CONFIG_PATH", config_file), \
             patch.dict(os.environ, {}, clear=True):
            save_config(cfg)
            loaded = load_config()

        assert loaded.slack.token == "xoxp-file"
        assert loaded.detection.min_llm_confidence == 70
