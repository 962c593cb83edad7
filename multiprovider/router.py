#!/usr/bin/env python3
"""
Multi-provider router with automatic failover.

Sends a chat request to the highest-priority available provider and falls
back to the next one when a provider fails. Transient failures exclude a
provider for a cooldown window; rate-limit errors are handed straight back
to the caller with their retry guidance instead of being masked by the
next provider.

Usage:
    from multiprovider import ChatMessage, get_router

    router = get_router()
    response = router.generate_response([ChatMessage.user("Hi")])
    print(response.provider_name, response.text)
"""

from __future__ import annotations

import logging
import threading
from functools import lru_cache
from typing import Any, Iterable, Mapping, Sequence

import requests

from multiprovider.anthropic import AnthropicAdapter
from multiprovider.availability import AvailabilityTracker
from multiprovider.base import (
    BaseAdapter,
    CanonicalResponse,
    ChatMessage,
    MessageRole,
    ProviderError,
    RateLimitError,
)
from multiprovider.catalog import ModelCatalog
from multiprovider.config import (
    DEFAULT_TIMEOUT_SECONDS,
    AdapterType,
    ProviderDescriptor,
    ProviderRegistry,
    RouterConfig,
    get_config,
)
from multiprovider.gemini import GeminiAdapter
from multiprovider.huggingface import HuggingFaceAdapter
from multiprovider.openai_compat import GroqAdapter, OpenAICompatibleAdapter
from multiprovider.usage_tracker import UsageTracker


logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================


class RouterError(Exception):
    """Base exception for terminal routing failures."""


class AllProvidersUnavailableError(RouterError):
    """Raised when every enabled provider is cooling down (or none is enabled)."""

    def __init__(self, message: str = "All AI providers are currently unavailable. Please try again later."):
        super().__init__(message)


class AllProvidersFailedError(RouterError):
    """Raised when every candidate failed within one request."""

    def __init__(
        self,
        failures: Sequence[ProviderError] = (),
        message: str = "All AI providers failed. Please try again later.",
    ):
        super().__init__(message)
        self.failures = list(failures)


class RequestCancelledError(RouterError):
    """Raised when the caller cancels a request between provider attempts."""

    def __init__(self, message: str = "Request cancelled"):
        super().__init__(message)


# =============================================================================
# Adapter Factory
# =============================================================================

ADAPTER_CLASSES: dict[AdapterType, type[BaseAdapter]] = {
    AdapterType.OPENAI_COMPAT: OpenAICompatibleAdapter,
    AdapterType.GROQ: GroqAdapter,
    AdapterType.GEMINI: GeminiAdapter,
    AdapterType.ANTHROPIC: AnthropicAdapter,
    AdapterType.HUGGINGFACE: HuggingFaceAdapter,
}


def create_adapters(
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    session: requests.Session | None = None,
) -> dict[AdapterType, BaseAdapter]:
    """
    Create one adapter per family, sharing a single HTTP session.

    Args:
        timeout: Per-call timeout in seconds.
        session: Optional session; a new one is created otherwise.

    Returns:
        Adapters keyed by family.
    """
    session = session or requests.Session()
    return {
        adapter_type: cls(timeout=timeout, session=session)
        for adapter_type, cls in ADAPTER_CLASSES.items()
    }


# =============================================================================
# Router
# =============================================================================


class MultiProviderRouter:
    """
    Routes chat requests across providers with failover.

    Attempts are strictly sequential: one provider at a time, in priority
    order, never speculatively in parallel.

    Example:
        >>> router = MultiProviderRouter(registry, tracker=AvailabilityTracker(30))
        >>> router.generate_response([ChatMessage.user("hello")]).text
        'Hi there!'
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        *,
        catalog: ModelCatalog | None = None,
        tracker: AvailabilityTracker | None = None,
        adapters: Mapping[AdapterType, Any] | None = None,
        usage_tracker: UsageTracker | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        """
        Initialize the router.

        Args:
            registry: Provider descriptors.
            catalog: Model catalog for pinned requests (built from registry if omitted).
            tracker: Availability tracker; pass one per test for isolation.
            adapters: Adapter per family (real HTTP adapters if omitted).
            usage_tracker: Optional sink for successful responses.
            timeout: Per-call timeout used when building default adapters.
        """
        self._registry = registry
        self._catalog = catalog or ModelCatalog(registry)
        self._tracker = tracker or AvailabilityTracker()
        self._adapters = dict(adapters) if adapters is not None else create_adapters(timeout)
        self._usage_tracker = usage_tracker

        enabled = registry.enabled()
        self._current_provider: str | None = enabled[0].name if enabled else None
        self._current_lock = threading.Lock()

        logger.info("Initialized AI providers: %s", ", ".join(p.name for p in enabled) or "none")

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    @property
    def catalog(self) -> ModelCatalog:
        return self._catalog

    @property
    def tracker(self) -> AvailabilityTracker:
        return self._tracker

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def generate_response(
        self,
        messages: Iterable[ChatMessage | Mapping[str, str]],
        model_id: str | None = None,
        *,
        cancel_event: threading.Event | None = None,
    ) -> CanonicalResponse:
        """
        Generate a response, failing over between providers.

        Args:
            messages: Conversation; ChatMessage objects or {role, content} dicts.
            model_id: Optional pinned model id from the model catalog.
            cancel_event: When set, no further provider is attempted.

        Returns:
            The first successful CanonicalResponse.

        Raises:
            RateLimitError: A provider was rate limited; carries retry guidance.
            AllProvidersUnavailableError: No candidate was available.
            AllProvidersFailedError: Every candidate failed.
            RequestCancelledError: cancel_event was set mid-request.
            ValueError: Empty conversation.
        """
        conversation = _coerce_messages(messages)
        if not conversation:
            raise ValueError("Messages list cannot be empty")

        failures: list[ProviderError] = []
        excluded_now: set[str] = set()

        pinned = self._catalog.resolve(model_id) if model_id else None
        if pinned is not None:
            self._check_cancelled(cancel_event)
            logger.info("Using selected model: %s (%s)", model_id, pinned.name)
            try:
                return self._attempt(pinned, conversation, excluded_now, model_id=model_id)
            except RateLimitError:
                raise
            except ProviderError as e:
                failures.append(e)
                logger.warning("Selected model %s failed, falling back to auto selection", model_id)
        elif model_id:
            logger.debug("Model %s not pinnable, using auto selection", model_id)

        candidates = self._tracker.candidates(self._registry.enabled())
        if not candidates:
            logger.error("No AI providers available")
            raise AllProvidersUnavailableError()

        for provider in candidates:
            self._check_cancelled(cancel_event)
            logger.debug("Trying provider: %s", provider.name)
            try:
                return self._attempt(provider, conversation, excluded_now)
            except RateLimitError:
                raise
            except ProviderError as e:
                failures.append(e)
                continue

        logger.error(
            "All AI providers failed: %s",
            "; ".join(f"{f.provider}={f.kind.value}" for f in failures),
        )
        raise AllProvidersFailedError(failures)

    def get_provider_status(self) -> dict[str, bool]:
        """Availability of each enabled provider."""
        return {p.name: self._tracker.is_available(p.name) for p in self._registry.enabled()}

    def get_current_provider(self) -> str | None:
        """The provider that last served a request (initially the top priority one)."""
        with self._current_lock:
            return self._current_provider

    def reset_failed_providers(self) -> None:
        """Make every provider available again."""
        self._tracker.reset()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _attempt(
        self,
        provider: ProviderDescriptor,
        messages: Sequence[ChatMessage],
        excluded_now: set[str],
        *,
        model_id: str | None = None,
    ) -> CanonicalResponse:
        adapter = self._adapters.get(provider.adapter)
        if adapter is None:
            raise ProviderError(f"No adapter for {provider.adapter.value}", provider.name)

        try:
            response = adapter.complete(provider, messages, provider.default_model)
        except ProviderError as e:
            excluded = self._tracker.record_failure(provider.name, e.kind)
            if excluded:
                excluded_now.add(provider.name)
            logger.warning(
                "Provider %s failed (%s%s): %s",
                provider.name,
                e.kind.value,
                ", excluded" if excluded else "",
                e,
            )
            raise

        self._tracker.record_success(provider.name, preserve=excluded_now)
        with self._current_lock:
            self._current_provider = provider.name
        if self._usage_tracker is not None:
            self._usage_tracker.record(response, model_id=model_id)

        logger.info("Success with %s", provider.name)
        return response

    @staticmethod
    def _check_cancelled(cancel_event: threading.Event | None) -> None:
        if cancel_event is not None and cancel_event.is_set():
            logger.info("Request cancelled before next provider attempt")
            raise RequestCancelledError()


def _coerce_messages(messages: Iterable[ChatMessage | Mapping[str, str]]) -> list[ChatMessage]:
    result: list[ChatMessage] = []
    for msg in messages:
        if isinstance(msg, ChatMessage):
            result.append(msg)
        else:
            result.append(ChatMessage(MessageRole(msg["role"]), msg["content"]))
    return result


# =============================================================================
# Router Factory
# =============================================================================


def create_router(config: RouterConfig | None = None) -> MultiProviderRouter:
    """
    Create a router from configuration.

    Args:
        config: Router configuration (loaded from environment if omitted).

    Returns:
        Configured MultiProviderRouter instance.
    """
    config = config or get_config()
    registry = ProviderRegistry(config.providers)
    usage_tracker = UsageTracker(config.usage_log) if config.usage_log else None

    return MultiProviderRouter(
        registry,
        tracker=AvailabilityTracker(config.cooldown_seconds),
        usage_tracker=usage_tracker,
        timeout=config.timeout,
    )


@lru_cache(maxsize=1)
def get_router() -> MultiProviderRouter:
    """
    Get the process-wide router.

    This is the main entry point for application code; tests should build
    their own MultiProviderRouter instead.

    Example:
        >>> from multiprovider import get_router
        >>> response = get_router().generate_response(messages, "gpt-4o")
    """
    return create_router()
