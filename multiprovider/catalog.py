#!/usr/bin/env python3
"""
Model catalog.

Maps the user-facing model ids a caller can pin onto a concrete
(provider, backend model) pair. Several ids are legacy aliases kept so
old client settings keep resolving.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Iterable

from multiprovider.config import ProviderDescriptor, ProviderRegistry


AUTO_MODEL_ID = "auto"


@dataclass(frozen=True)
class ModelCatalogEntry:
    """One pinnable model."""

    model_id: str
    provider_name: str
    backend_model: str
    name: str = ""

    def to_dict(self) -> dict[str, str]:
        """Serialize to dict."""
        return {
            "model_id": self.model_id,
            "provider": self.provider_name,
            "backend_model": self.backend_model,
            "name": self.name or self.model_id,
        }


DEFAULT_CATALOG: tuple[ModelCatalogEntry, ...] = (
    ModelCatalogEntry("deepseek-chat", "deepseek", "deepseek-chat", "DeepSeek Chat"),
    ModelCatalogEntry("llama-3.1-8b-instant", "groq", "llama-3.1-8b-instant", "Llama 3.1 8B Instant"),
    ModelCatalogEntry("llama-3.3-70b-versatile", "groq", "llama-3.3-70b-versatile", "Llama 3.3 70B Versatile"),
    ModelCatalogEntry("gpt-oss-20b", "groq", "openai/gpt-oss-20b", "GPT-OSS 20B"),
    ModelCatalogEntry("gpt-oss-120b", "groq", "openai/gpt-oss-120b", "GPT-OSS 120B"),
    ModelCatalogEntry("llama-guard-4-12b", "groq", "meta-llama/llama-guard-4-12b", "Llama Guard 4 12B"),
    ModelCatalogEntry("llama-4-scout", "groq", "meta-llama/llama-4-scout-17b-16e-instruct", "Llama 4 Scout"),
    ModelCatalogEntry("llama-4-maverick", "groq", "meta-llama/llama-4-maverick", "Llama 4 Maverick"),
    ModelCatalogEntry("gpt-oss-safeguard-20b", "groq", "openai/gpt-oss-safeguard-20b", "GPT-OSS Safeguard 20B"),
    # Legacy ids; the vision preview was decommissioned, served by Gemini now
    ModelCatalogEntry("llama-3.2-90b-vision", "gemini", "gemini-2.0-flash-exp", "Gemini 2.0 Flash"),
    ModelCatalogEntry("gemini-1.5-flash", "gemini", "gemini-2.0-flash-exp", "Gemini 2.0 Flash"),
    ModelCatalogEntry("gemini-2.0-flash", "gemini", "gemini-2.0-flash-exp", "Gemini 2.0 Flash"),
    ModelCatalogEntry("gemini-2.5-flash", "gemini", "gemini-2.0-flash-exp", "Gemini 2.0 Flash"),
    ModelCatalogEntry("gpt-4o-mini", "openai", "gpt-4o-mini", "GPT-4o Mini"),
    ModelCatalogEntry("gpt-4o", "openai", "gpt-4o", "GPT-4o"),
    ModelCatalogEntry("claude-3-5-sonnet", "anthropic", "claude-3-5-sonnet-20241022", "Claude 3.5 Sonnet"),
    ModelCatalogEntry("claude-3-opus", "anthropic", "claude-3-opus-20240229", "Claude 3 Opus"),
)


class ModelCatalog:
    """
    Static model id lookup, bound to a provider registry.

    Example:
        >>> catalog = ModelCatalog(registry)
        >>> catalog.resolve("gpt-4o").default_model
        'gpt-4o'
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        entries: Iterable[ModelCatalogEntry] = DEFAULT_CATALOG,
    ):
        self._registry = registry
        self._entries: dict[str, ModelCatalogEntry] = {e.model_id: e for e in entries}

    def entries(self) -> list[ModelCatalogEntry]:
        return list(self._entries.values())

    def get(self, model_id: str) -> ModelCatalogEntry | None:
        return self._entries.get(model_id)

    def resolve(self, model_id: str | None) -> ProviderDescriptor | None:
        """
        Resolve a model id to the provider that serves it.

        Args:
            model_id: User-facing model id.

        Returns:
            The enabled provider's descriptor with `default_model` set to the
            backend model, or None for unknown ids, "auto", or ids whose
            provider is disabled.
        """
        if not model_id or model_id == AUTO_MODEL_ID:
            return None

        entry = self._entries.get(model_id)
        if entry is None:
            return None

        provider = self._registry.get(entry.provider_name)
        if provider is None or not provider.enabled:
            return None

        return dataclasses.replace(provider, default_model=entry.backend_model)

    def is_available(self, model_id: str) -> bool:
        """True if the model's provider is configured and enabled."""
        return self.resolve(model_id) is not None
