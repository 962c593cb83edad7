#!/usr/bin/env python3
"""
Centralized configuration for chat providers.

Builds the provider registry from the environment at process start:
- Which backends exist and which adapter family serves each
- Endpoint, default model, and priority per backend
- Whether a backend is enabled (credential present, not explicitly disabled)

A provider without a credential is disabled for the lifetime of the
process; that is a startup decision, separate from the temporary
exclusions the availability tracker applies at runtime.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Iterable, Iterator

from dotenv import load_dotenv


# =============================================================================
# Adapter Families
# =============================================================================


class AdapterType(str, Enum):
    """Wire formats the router knows how to speak."""

    OPENAI_COMPAT = "openai_compat"
    GROQ = "groq"
    GEMINI = "gemini"
    ANTHROPIC = "anthropic"
    HUGGINGFACE = "huggingface"


# =============================================================================
# Default Provider Table
# =============================================================================

DEFAULT_COOLDOWN_SECONDS = 30.0
DEFAULT_TIMEOUT_SECONDS = 300.0


@dataclass(frozen=True)
class _ProviderDefaults:
    name: str
    adapter: AdapterType
    endpoint_base: str
    default_model: str
    priority: int
    key_env: str
    enabled_by_default: bool = True


PROVIDER_DEFAULTS: tuple[_ProviderDefaults, ...] = (
    _ProviderDefaults(
        name="deepseek",
        adapter=AdapterType.OPENAI_COMPAT,
        endpoint_base="https://api.deepseek.com/v1",
        default_model="deepseek-chat",
        priority=1,
        key_env="DEEPSEEK_API_KEY",
    ),
    _ProviderDefaults(
        name="groq",
        adapter=AdapterType.GROQ,
        endpoint_base="https://api.groq.com/openai/v1",
        default_model="openai/gpt-oss-safeguard-20b",
        priority=2,
        key_env="GROQ_API_KEY",
    ),
    _ProviderDefaults(
        name="gemini",
        adapter=AdapterType.GEMINI,
        endpoint_base="https://generativelanguage.googleapis.com/v1beta",
        default_model="gemini-2.0-flash-exp",
        priority=3,
        key_env="GEMINI_API_KEY",
    ),
    # Legacy inference endpoint; opt in with HUGGINGFACE_ENABLED=true
    _ProviderDefaults(
        name="huggingface",
        adapter=AdapterType.HUGGINGFACE,
        endpoint_base="https://api-inference.huggingface.co",
        default_model="microsoft/DialoGPT-large",
        priority=4,
        key_env="HUGGINGFACE_API_KEY",
        enabled_by_default=False,
    ),
    _ProviderDefaults(
        name="openai",
        adapter=AdapterType.OPENAI_COMPAT,
        endpoint_base="https://api.openai.com/v1",
        default_model="gpt-4o-mini",
        priority=5,
        key_env="OPENAI_API_KEY",
    ),
    _ProviderDefaults(
        name="anthropic",
        adapter=AdapterType.ANTHROPIC,
        endpoint_base="https://api.anthropic.com/v1",
        default_model="claude-3-5-sonnet-20241022",
        priority=6,
        key_env="ANTHROPIC_API_KEY",
    ),
)


# =============================================================================
# Configuration
# =============================================================================


@dataclass(frozen=True)
class ProviderDescriptor:
    """Immutable configuration for one backend."""

    name: str
    adapter: AdapterType
    credential: str
    endpoint_base: str
    default_model: str
    priority: int
    enabled: bool

    def to_dict(self) -> dict[str, str | int | bool]:
        """Serialize to dict (excluding credential)."""
        return {
            "name": self.name,
            "adapter": self.adapter.value,
            "endpoint_base": self.endpoint_base,
            "default_model": self.default_model,
            "priority": self.priority,
            "enabled": self.enabled,
        }


class ProviderRegistry:
    """
    Fixed set of provider descriptors.

    Example:
        >>> registry = ProviderRegistry(load_providers())
        >>> [p.name for p in registry.enabled()]
        ['deepseek', 'gemini']
    """

    def __init__(self, providers: Iterable[ProviderDescriptor]):
        self._providers: dict[str, ProviderDescriptor] = {}
        for provider in providers:
            if provider.name in self._providers:
                raise ValueError(f"Duplicate provider name: {provider.name}")
            self._providers[provider.name] = provider

    def __iter__(self) -> Iterator[ProviderDescriptor]:
        return iter(self.all())

    def __len__(self) -> int:
        return len(self._providers)

    def get(self, name: str) -> ProviderDescriptor | None:
        return self._providers.get(name)

    def all(self) -> list[ProviderDescriptor]:
        """Every configured provider, priority order."""
        return sorted(self._providers.values(), key=lambda p: p.priority)

    def enabled(self) -> list[ProviderDescriptor]:
        """The active set: enabled providers, priority order."""
        return [p for p in self.all() if p.enabled]


@dataclass
class RouterConfig:
    """Configuration for the router as a whole."""

    providers: list[ProviderDescriptor] = field(default_factory=list)
    cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    usage_log: str | None = None

    def to_dict(self) -> dict[str, object]:
        """Serialize to dict."""
        return {
            "providers": [p.to_dict() for p in self.providers],
            "cooldown_seconds": self.cooldown_seconds,
            "timeout": self.timeout,
            "usage_log": self.usage_log,
        }


# =============================================================================
# Configuration Loading
# =============================================================================


def _parse_bool(value: str, env_var: str) -> bool:
    normalized = value.strip().lower()
    if normalized in ("1", "true", "yes", "on"):
        return True
    if normalized in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"Invalid boolean for {env_var}: {value!r}")


def _parse_number(value: str, env_var: str, cast: type = float):
    try:
        return cast(value)
    except ValueError:
        raise ValueError(f"Invalid value for {env_var}: {value!r}") from None


def _load_provider(defaults: _ProviderDefaults) -> ProviderDescriptor:
    prefix = defaults.name.upper()

    credential = (os.getenv(defaults.key_env) or "").strip()

    enabled_flag = os.getenv(f"{prefix}_ENABLED")
    if enabled_flag is None or not enabled_flag.strip():
        wanted = defaults.enabled_by_default
    else:
        wanted = _parse_bool(enabled_flag, f"{prefix}_ENABLED")

    priority_str = os.getenv(f"{prefix}_PRIORITY")
    priority = (
        _parse_number(priority_str, f"{prefix}_PRIORITY", int)
        if priority_str
        else defaults.priority
    )

    return ProviderDescriptor(
        name=defaults.name,
        adapter=defaults.adapter,
        credential=credential,
        endpoint_base=(os.getenv(f"{prefix}_BASE_URL") or defaults.endpoint_base).rstrip("/"),
        default_model=os.getenv(f"{prefix}_MODEL") or defaults.default_model,
        priority=priority,
        enabled=wanted and bool(credential),
    )


def load_providers() -> list[ProviderDescriptor]:
    """
    Build provider descriptors from the environment.

    Environment variables (per provider, NAME in upper case):
        <KEY_ENV>: Credential, e.g. DEEPSEEK_API_KEY. Empty disables.
        NAME_BASE_URL: Override endpoint base.
        NAME_MODEL: Override default model.
        NAME_PRIORITY: Override priority (lower is tried first).
        NAME_ENABLED: "false" disables even when a key is set.

    Returns:
        Descriptors for every known provider, enabled or not.
    """
    load_dotenv()
    return [_load_provider(defaults) for defaults in PROVIDER_DEFAULTS]


@lru_cache(maxsize=1)
def get_config() -> RouterConfig:
    """
    Load router configuration from environment.

    Environment variables:
        ROUTER_COOLDOWN_SECONDS: Exclusion window after a transient failure (default: 30)
        ROUTER_TIMEOUT_SECONDS: Per-call HTTP timeout (default: 300)
        ROUTER_USAGE_LOG: Optional JSONL path for per-call usage records

    Returns:
        RouterConfig with loaded settings.
    """
    load_dotenv()

    cooldown = _parse_number(
        os.getenv("ROUTER_COOLDOWN_SECONDS", str(DEFAULT_COOLDOWN_SECONDS)),
        "ROUTER_COOLDOWN_SECONDS",
    )
    timeout = _parse_number(
        os.getenv("ROUTER_TIMEOUT_SECONDS", str(DEFAULT_TIMEOUT_SECONDS)),
        "ROUTER_TIMEOUT_SECONDS",
    )
    if cooldown < 0:
        raise ValueError("ROUTER_COOLDOWN_SECONDS must not be negative")
    if timeout <= 0:
        raise ValueError("ROUTER_TIMEOUT_SECONDS must be positive")

    return RouterConfig(
        providers=load_providers(),
        cooldown_seconds=cooldown,
        timeout=timeout,
        usage_log=os.getenv("ROUTER_USAGE_LOG") or None,
    )
