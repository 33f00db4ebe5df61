"""
Provider-agnostic LLM client for Blockwatch.

Supports a local OpenAI-compatible server (LM Studio, llama.cpp, vLLM),
Anthropic, OpenAI and Google Gemini with a shared text-generation interface.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import httpx

from .errors import LLMUnavailableError

logger = logging.getLogger("blockwatch.common.llm_client")


@dataclass
class AvailabilityCache:
    """Remembers probe results per (base_url, model) for ``ttl`` seconds."""
    ttl: float = 60.0
    _entries: Dict[Tuple[str, str], Tuple[bool, float]] = field(default_factory=dict)

    def get(self, key: Tuple[str, str]) -> Optional[bool]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        available, checked_at = entry
        if time.monotonic() - checked_at > self.ttl:
            del self._entries[key]
            return None
        return available

    def set(self, key: Tuple[str, str], available: bool) -> None:
        self._entries[key] = (available, time.monotonic())

    def clear(self) -> None:
        self._entries.clear()


def probe_local_model(base_url: str, model: str, timeout: float = 2.0) -> bool:
    """Check that an OpenAI-compatible server is up and serves ``model``."""
    try:
        response = httpx.get(f"{base_url.rstrip('/')}/models", timeout=timeout)
        response.raise_for_status()
        models = response.json().get("data", [])
    except (httpx.HTTPError, ValueError) as e:
        logger.info("Local LLM at %s not reachable: %s", base_url, e)
        return False

    ids = {m.get("id") for m in models if isinstance(m, dict)}
    if model not in ids:
        logger.info("Local LLM at %s does not serve model %s", base_url, model)
        return False
    return True


class LLMClient:
    """Unified text generation client across LLM providers."""

    def __init__(
        self,
        provider: str = "local",
        model: str = "",
        anthropic_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        google_api_key: Optional[str] = None,
        local_base_url: str = "http://localhost:1234/v1",
        availability_ttl: float = 60.0,
        availability_cache: Optional[AvailabilityCache] = None,
    ) -> None:
        self.provider = (provider or "local").lower()
        self.model = model
        self.local_base_url = local_base_url
        self._client = None

        self.availability = availability_cache or AvailabilityCache(ttl=availability_ttl)

        if self.provider == "local":
            try:
                from openai import OpenAI

                self._client = OpenAI(base_url=local_base_url, api_key="not-needed")
            except ImportError:
                logger.warning("openai package not installed")
            except Exception as e:
                logger.warning("Failed to initialize local LLM client: %s", e)
            return

        if self.provider == "anthropic":
            if not anthropic_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                import anthropic

                self._client = anthropic.Anthropic(api_key=anthropic_api_key)
            except ImportError:
                logger.warning("anthropic package not installed")
            except Exception as e:
                logger.warning("Failed to initialize Anthropic client: %s", e)
            return

        if self.provider == "openai":
            if not openai_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                from openai import OpenAI

                self._client = OpenAI(api_key=openai_api_key)
            except ImportError:
                logger.warning("openai package not installed")
            except Exception as e:
                logger.warning("Failed to initialize OpenAI client: %s", e)
            return

        if self.provider == "google":
            if not google_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                import google.generativeai as genai

                genai.configure(api_key=google_api_key)
                self._client = genai  # Store the module, not a model instance
                self._google_models = {}  # Cache models by system prompt hash
            except ImportError:
                logger.warning("google-generativeai package not installed")
            except Exception as e:
                logger.warning("Failed to initialize Gemini client: %s", e)
            return

        logger.warning("Unsupported LLM provider: %s", self.provider)

    @classmethod
    def from_config(cls, llm_config) -> "LLMClient":
        """Build a client for the configured provider and its model."""
        provider = (llm_config.provider or "local").lower()
        model = {
            "local": llm_config.local_model,
            "anthropic": llm_config.anthropic_model,
            "openai": llm_config.openai_model,
            "google": llm_config.google_model,
        }.get(provider, "")
        return cls(
            provider=provider,
            model=model,
            anthropic_api_key=llm_config.anthropic_api_key,
            openai_api_key=llm_config.openai_api_key,
            google_api_key=llm_config.google_api_key,
            local_base_url=llm_config.local_base_url,
            availability_ttl=llm_config.availability_ttl,
        )

    @property
    def is_available(self) -> bool:
        if self._client is None:
            return False
        if self.provider != "local":
            return True

        key = (self.local_base_url, self.model)
        cached = self.availability.get(key)
        if cached is not None:
            return cached
        available = probe_local_model(self.local_base_url, self.model)
        self.availability.set(key, available)
        return available

    def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        max_tokens: int = 512,
        timeout: float = 30.0,
        temperature: Optional[float] = None,
        response_schema: Optional[Dict[str, Any]] = None,
    ) -> str:
        if self._client is None:
            raise LLMUnavailableError("LLM client is not available")

        if self.provider == "anthropic":
            kwargs = {
                "model": self.model,
                "max_tokens": max_tokens,
                "messages": [{"role": "user", "content": prompt}],
                "timeout": timeout,
            }
            if system:
                kwargs["system"] = system
            if temperature is not None:
                kwargs["temperature"] = temperature
            response = self._client.messages.create(**kwargs)
            return response.content[0].text.strip()

        if self.provider in ("openai", "local"):
            messages = []
            if system:
                messages.append({"role": "system", "content": system})
            messages.append({"role": "user", "content": prompt})
            kwargs = {
                "model": self.model,
                "max_tokens": max_tokens,
                "messages": messages,
                "timeout": timeout,
            }
            if temperature is not None:
                kwargs["temperature"] = temperature
            if response_schema is not None:
                kwargs["response_format"] = {
                    "type": "json_schema",
                    "json_schema": {
                        "name": response_schema.get("title", "response"),
                        "schema": response_schema,
                    },
                }
            response = self._client.chat.completions.create(**kwargs)
            return (response.choices[0].message.content or "").strip()

        if self.provider == "google":
            import hashlib

            cache_key = hashlib.md5((system or "").encode()).hexdigest()
            if cache_key not in self._google_models:
                kwargs = {"model_name": self.model}
                if system:
                    kwargs["system_instruction"] = system
                self._google_models[cache_key] = self._client.GenerativeModel(**kwargs)
            model = self._google_models[cache_key]
            generation_config = {"max_output_tokens": max_tokens}
            if temperature is not None:
                generation_config["temperature"] = temperature
            if response_schema is not None:
                generation_config["response_mime_type"] = "application/json"
            response = model.generate_content(
                prompt,
                generation_config=generation_config,
                request_options={"timeout": timeout},
            )
            return response.text.strip()

        raise LLMUnavailableError(f"Unsupported LLM provider: {self.provider}")
