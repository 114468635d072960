"""
Provider Selector — resolve exactly one backend name for a turn.

Precedence, first configured match wins:

    requested → per-user preference → env default → first configured (sorted)

When nothing is configured the requested name (or the env default) is
returned unchanged, so the first adapter call fails loudly with
``ProviderNotConfiguredError`` instead of silently picking something else.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

from .models import LLMSettings, PROVIDER_NAMES


def normalize_provider(value: Any) -> Optional[str]:
    """Lower-cased provider name if supported, else ``None``."""
    name = str(value or "").strip().lower()
    return name if name in PROVIDER_NAMES else None


def resolve_provider(
    requested: Any,
    preference: Any,
    env_default: Any,
    configured: Iterable[str],
) -> str:
    configured_set = set(configured)
    req = normalize_provider(requested)
    pref = normalize_provider(preference)
    default = normalize_provider(env_default) or "deepseek"

    for candidate in (req, pref, default):
        if candidate and candidate in configured_set:
            return candidate
    for name in PROVIDER_NAMES:
        if name in configured_set:
            return name
    return req or default


def resolve_for_user(
    settings: LLMSettings,
    user_data: Optional[dict],
    requested: Any = None,
) -> str:
    preference = ((user_data or {}).get("settings") or {}).get("aiProvider")
    return resolve_provider(
        requested, preference, settings.default_provider, settings.configured_providers(),
    )


def provider_summary(settings: LLMSettings, user_data: Optional[dict] = None) -> dict:
    """Payload for the providers endpoint."""
    preference = normalize_provider(((user_data or {}).get("settings") or {}).get("aiProvider"))
    return {
        "supportedProviders": list(PROVIDER_NAMES),
        "configuredProviders": settings.configured_providers(),
        "defaultProvider": settings.default_provider,
        "selectedProvider": preference,
        "effectiveProvider": resolve_for_user(settings, user_data),
    }
