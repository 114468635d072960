"""
Configuration loader — YAML file + environment variable overrides.
"""

from __future__ import annotations
import os
import yaml
from pathlib import Path
from typing import Any, Optional

from ..core.models import LLMSettings, PROVIDER_NAMES, ProviderConfig, normalize_api_key


class Config:
    """Configuration container with dot-access and env var support."""

    def __init__(self, data: dict):
        self._data = data

    def get(self, key: str, default: Any = None) -> Any:
        """Get a config value by dot-separated key path."""
        value = self._data
        for k in key.split("."):
            if not isinstance(value, dict):
                return default
            value = value.get(k)
            if value is None:
                return default
        return value

    def set(self, key: str, value: Any) -> None:
        """Set a config value by dot-separated key path."""
        keys = key.split(".")
        d = self._data
        for k in keys[:-1]:
            d = d.setdefault(k, {})
        d[keys[-1]] = value

    @property
    def raw(self) -> dict:
        return self._data

    def __repr__(self) -> str:
        # Never print the raw tree: it holds API keys.
        return f"Config(keys={sorted(self._data)})"


# Ordered: later entries win, so LLM_PROVIDER beats AI_PROVIDER.
ENV_MAPPINGS = [
    ("AI_PROVIDER", "llm.provider"),
    ("LLM_PROVIDER", "llm.provider"),
    ("DEEPSEEK_API_KEY", "providers.deepseek.api_key"),
    ("DEEPSEEK_BASE_URL", "providers.deepseek.base_url"),
    ("DEEPSEEK_MODEL", "providers.deepseek.model"),
    ("OPENAI_API_KEY", "providers.openai.api_key"),
    ("OPENAI_BASE_URL", "providers.openai.base_url"),
    ("OPENAI_MODEL", "providers.openai.model"),
    ("GEMINI_API_KEY", "providers.gemini.api_key"),
    ("GEMINI_BASE_URL", "providers.gemini.base_url"),
    ("GEMINI_MODEL", "providers.gemini.model"),
    ("PROXY_URL", "proxy"),
    ("AXIS_DATA_DIR", "storage.data_dir"),
    ("AXIS_PUBLIC_BASE_URL", "calendar.public_base_url"),
    ("AXIS_API_HOST", "api.host"),
    ("AXIS_API_PORT", "api.port"),
    ("AXIS_LOG_LEVEL", "logging.level"),
    ("AXIS_LOG_FORMAT", "logging.format"),
]

_INT_KEYS = {"api.port"}


def load_config(config_path: Optional[str] = None, environ: Optional[dict] = None) -> Config:
    """
    Load configuration from YAML file with env var overrides.

    Priority (highest to lowest):
    1. Environment variables (LLM_PROVIDER, DEEPSEEK_API_KEY, etc.)
    2. User config file (if provided)
    3. Default config
    """
    env = os.environ if environ is None else environ

    default_path = Path(__file__).parent / "default_config.yaml"
    with open(default_path) as f:
        data = yaml.safe_load(f)

    if config_path and Path(config_path).exists():
        with open(config_path) as f:
            user_data = yaml.safe_load(f) or {}
        data = _deep_merge(data, user_data)

    config = Config(data)
    for env_key, config_key in ENV_MAPPINGS:
        env_val = env.get(env_key)
        if env_val is None or env_val == "":
            continue
        if config_key in _INT_KEYS:
            env_val = int(env_val)
        config.set(config_key, env_val)

    return config


def build_llm_settings(config: Config) -> LLMSettings:
    """Freeze the provider section of *config* into an ``LLMSettings`` value."""
    proxy = str(config.get("proxy", "") or "").strip()
    timeout = float(config.get("timeout", 60))
    providers = {}
    for name in PROVIDER_NAMES:
        model = str(config.get(f"providers.{name}.model", "")).strip()
        if name == "gemini" and model.startswith("models/"):
            model = model[len("models/"):]
        providers[name] = ProviderConfig(
            name=name,
            base_url=str(config.get(f"providers.{name}.base_url", "")).strip().rstrip("/"),
            model=model,
            api_key=normalize_api_key(config.get(f"providers.{name}.api_key", "")),
            proxy=proxy,
            timeout=timeout,
        )

    default = str(config.get("llm.provider", "deepseek")).strip().lower()
    if default not in PROVIDER_NAMES:
        default = "deepseek"
    return LLMSettings(default_provider=default, providers=providers)


def _deep_merge(base: dict, overlay: dict) -> dict:
    """Recursively merge overlay dict into base dict."""
    result = base.copy()
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result
