#!/usr/bin/env python3
# CUI // SP-PROPIN
# Controlled by: RFX Proposal Engine
# CUI Category: PROPIN
# Distribution: D
# POC: RFX Proposal Engine Administrator
"""Config-driven LLM router for the RFX engine.

Reads args/llm_config.yaml and resolves each function (for example
"requirement_extraction") to a provider + model by walking the routing
chain. There is no invoke-time fallback: the first resolvable model is
returned and failures are left to the caller's retry policy.

Availability probing is optional (settings.probe_availability) and its
results are cached for settings.availability_cache_ttl_seconds.
"""

import logging
import os
import re
import time
from pathlib import Path
from typing import Dict, Optional, Tuple

import yaml

from rfxcore.errors import LLMUnavailableError
from rfxcore.llm.provider import LLMProvider

logger = logging.getLogger("rfxcore.llm.router")

BASE_DIR = Path(__file__).resolve().parent.parent.parent
DEFAULT_CONFIG_PATH = BASE_DIR / "args" / "llm_config.yaml"


def _expand_env(value):
    """Expand ${VAR:-default} patterns in string values."""
    if not isinstance(value, str):
        return value
    pattern = r'\$\{([^}]+)\}'
    def replacer(match):
        expr = match.group(1)
        if ":-" in expr:
            var, default = expr.split(":-", 1)
            return os.environ.get(var, default)
        return os.environ.get(expr, match.group(0))
    return re.sub(pattern, replacer, value)


def default_config_path() -> Path:
    env = os.environ.get("RFX_LLM_CONFIG_PATH")
    return Path(env) if env else DEFAULT_CONFIG_PATH


class LLMRouter:
    """Config-driven router mapping RFX functions to LLM providers."""

    def __init__(self, config_path=None):
        self._config_path = Path(config_path) if config_path else default_config_path()
        self._config: Dict = {}
        self._providers: Dict[str, LLMProvider] = {}
        self._availability_cache: Dict[str, bool] = {}
        self._availability_cache_time: float = 0.0
        self._cache_ttl: float = 1800.0
        self._probe = False
        self._load_config()

    @property
    def config_path(self) -> Path:
        return self._config_path

    @property
    def loaded(self) -> bool:
        return bool(self._config)

    def _load_config(self):
        """Load and parse llm_config.yaml."""
        if not self._config_path.exists():
            logger.warning("LLM config not found at %s, no providers configured",
                           self._config_path)
            return
        try:
            with open(self._config_path, "r", encoding="utf-8") as f:
                self._config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as exc:
            logger.error("Failed to load LLM config %s: %s", self._config_path, exc)
            self._config = {}
            return
        settings = self._config.get("settings", {}) or {}
        self._cache_ttl = float(settings.get("availability_cache_ttl_seconds", 1800))
        self._probe = bool(settings.get("probe_availability", False))

    def register_provider(self, name: str, provider: LLMProvider):
        """Install a ready-made provider instance under a configured name."""
        self._providers[name] = provider

    def _get_provider(self, provider_name: str) -> Optional[LLMProvider]:
        """Get or create a provider instance by name."""
        if provider_name in self._providers:
            return self._providers[provider_name]

        provider_cfg = self._config.get("providers", {}).get(provider_name, {})
        if not provider_cfg:
            return None

        ptype = provider_cfg.get("type", "")
        instance = None

        if ptype in ("openai", "openai_compatible"):
            from rfxcore.llm.openai_provider import OpenAICompatibleProvider
            api_key = provider_cfg.get("api_key", "")
            if not api_key:
                api_key_env = provider_cfg.get("api_key_env", "")
                if api_key_env:
                    api_key = os.environ.get(api_key_env, "")
            base_url = _expand_env(provider_cfg.get("base_url", "https://api.openai.com/v1"))
            instance = OpenAICompatibleProvider(
                api_key=api_key, base_url=base_url, provider_label=provider_name,
            )

        elif ptype == "ollama":
            from rfxcore.llm.openai_provider import OpenAICompatibleProvider
            base_url = _expand_env(provider_cfg.get("base_url", "http://localhost:11434/v1"))
            instance = OpenAICompatibleProvider(
                api_key="ollama", base_url=base_url, provider_label=provider_name,
            )

        else:
            logger.warning("Unknown provider type '%s' for '%s'", ptype, provider_name)

        if instance:
            self._providers[provider_name] = instance
        return instance

    def _get_model_config(self, model_name: str) -> dict:
        return self._config.get("models", {}).get(model_name, {})

    def _check_model_available(self, model_name: str) -> bool:
        if not self._probe:
            return True

        now = time.time()
        if (now - self._availability_cache_time) > self._cache_ttl:
            self._availability_cache = {}
            self._availability_cache_time = now

        if model_name in self._availability_cache:
            return self._availability_cache[model_name]

        model_cfg = self._get_model_config(model_name)
        provider = self._get_provider(model_cfg.get("provider", ""))
        available = bool(provider and provider.check_availability(model_cfg.get("model_id", "")))
        self._availability_cache[model_name] = available
        return available

    def get_provider_for_function(self, function: str) -> Tuple[LLMProvider, str, dict]:
        """Resolve function to (provider, model_id, model_config).

        Raises:
            LLMUnavailableError: no config, no route, or no usable model.
        """
        if not self._config:
            raise LLMUnavailableError(
                f"No LLM configuration loaded from {self._config_path}",
                {"function": function},
            )

        routing = self._config.get("routing", {})
        route = routing.get(function, routing.get("default", {}))
        chain = route.get("chain", [])

        for model_name in chain:
            model_cfg = self._get_model_config(model_name)
            if not model_cfg:
                logger.warning("Routing for %s names unknown model '%s'", function, model_name)
                continue
            provider = self._get_provider(model_cfg.get("provider", ""))
            if provider is None or not self._check_model_available(model_name):
                continue
            logger.debug("Routed %s to %s/%s", function, provider.provider_name,
                         model_cfg.get("model_id", ""))
            return provider, model_cfg.get("model_id", ""), model_cfg

        raise LLMUnavailableError(
            f"No available model for function '{function}'",
            {"function": function, "chain": list(chain)},
        )
