"""
Multi-Provider Chat Router

Sends chat requests to interchangeable LLM providers with automatic failover:
- DeepSeek, OpenAI (OpenAI-compatible chat completions)
- Groq
- Google Gemini
- Anthropic Claude
- Hugging Face text generation

Usage:
    from multiprovider import ChatMessage, get_router

    router = get_router()
    response = router.generate_response([ChatMessage.user("Hello")])

    # Or pin a specific model
    response = router.generate_response(messages, "claude-3-5-sonnet")
"""

from __future__ import annotations

from multiprovider.availability import AvailabilityTracker
from multiprovider.base import (
    AuthenticationError,
    BaseAdapter,
    CanonicalResponse,
    ChatMessage,
    ErrorKind,
    MalformedRequestError,
    MessageRole,
    OverloadedError,
    ProviderError,
    ProviderTimeoutError,
    RateLimitError,
    RateLimitInfo,
    TokenUsage,
)
from multiprovider.catalog import AUTO_MODEL_ID, ModelCatalog, ModelCatalogEntry
from multiprovider.config import (
    AdapterType,
    ProviderDescriptor,
    ProviderRegistry,
    RouterConfig,
    get_config,
    load_providers,
)
from multiprovider.router import (
    AllProvidersFailedError,
    AllProvidersUnavailableError,
    MultiProviderRouter,
    RequestCancelledError,
    RouterError,
    create_adapters,
    create_router,
    get_router,
)
from multiprovider.usage_tracker import UsageTracker

__all__ = [
    # Canonical types
    "ChatMessage",
    "MessageRole",
    "CanonicalResponse",
    "TokenUsage",
    "RateLimitInfo",
    "BaseAdapter",
    # Errors
    "ErrorKind",
    "ProviderError",
    "AuthenticationError",
    "MalformedRequestError",
    "OverloadedError",
    "ProviderTimeoutError",
    "RateLimitError",
    "RouterError",
    "AllProvidersUnavailableError",
    "AllProvidersFailedError",
    "RequestCancelledError",
    # Config
    "AdapterType",
    "ProviderDescriptor",
    "ProviderRegistry",
    "RouterConfig",
    "get_config",
    "load_providers",
    # Routing
    "AUTO_MODEL_ID",
    "AvailabilityTracker",
    "ModelCatalog",
    "ModelCatalogEntry",
    "MultiProviderRouter",
    "UsageTracker",
    "create_adapters",
    "create_router",
    "get_router",
]
