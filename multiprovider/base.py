#!/usr/bin/env python3
"""
Base classes and canonical types for chat providers.

Defines the abstract adapter interface every provider family implements,
the canonical request/response shapes the router passes around, and the
error taxonomy adapters map their wire-level failures onto.
"""

from __future__ import annotations

import json
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping, Sequence

import requests

if TYPE_CHECKING:
    from multiprovider.config import ProviderDescriptor


NO_RESPONSE_TEXT = "No response generated"
GENERIC_RATE_LIMIT_MESSAGE = "Rate limit reached. Please wait a moment and try again."

# "try again in 16.425s", "retry after 12.5 seconds", "12 secs"
_RETRY_HINT_PATTERNS = (
    re.compile(r"(?:try again in|retry after|in|after)\s+(\d+(?:\.\d+)?)\s*(?:seconds?|secs?|s)\b", re.IGNORECASE),
    re.compile(r"(\d+(?:\.\d+)?)\s*(?:seconds?|secs?|s)\b", re.IGNORECASE),
)

# Go-style durations as Groq reports them: "2m59.56s", "1h2m3s", "5m"
_COMPOUND_DURATION = re.compile(r"\b(?:(\d+)h)?(?:(\d+)m(?!s))?(?:(\d+(?:\.\d+)?)s)?\b")


# =============================================================================
# Error Taxonomy
# =============================================================================


class ErrorKind(str, Enum):
    """Canonical failure kinds, independent of any provider's wire format."""

    AUTH_FAILURE = "auth_failure"
    MALFORMED_REQUEST = "malformed_request"
    OVERLOADED = "overloaded"
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"

    @property
    def is_transient(self) -> bool:
        """True for kinds expected to resolve on their own over time."""
        return self not in (ErrorKind.AUTH_FAILURE, ErrorKind.MALFORMED_REQUEST)


@dataclass(frozen=True)
class RateLimitInfo:
    """Retry guidance extracted from a rate-limited response."""

    retry_after_seconds: float | None = None
    human_message: str = GENERIC_RATE_LIMIT_MESSAGE

    @classmethod
    def from_seconds(cls, seconds: float | None) -> RateLimitInfo:
        """Build info with the standard human-readable message."""
        if seconds is None:
            return cls()
        return cls(
            retry_after_seconds=seconds,
            human_message=f"Rate limit reached. You can retry in {seconds:.1f} seconds.",
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dict."""
        return {
            "retry_after_seconds": self.retry_after_seconds,
            "human_message": self.human_message,
        }


# =============================================================================
# Exceptions
# =============================================================================


class ProviderError(Exception):
    """Base exception for provider errors."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(
        self,
        message: str,
        provider: str,
        details: dict[str, Any] | None = None,
        *,
        kind: ErrorKind | None = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.details = details or {}
        if kind is not None:
            self.kind = kind

    @property
    def is_transient(self) -> bool:
        return self.kind.is_transient


class AuthenticationError(ProviderError):
    """Raised when the provider rejects the credential."""

    kind = ErrorKind.AUTH_FAILURE

    def __init__(self, provider: str, message: str = "Authentication failed", details: dict[str, Any] | None = None):
        super().__init__(message, provider, details)


class MalformedRequestError(ProviderError):
    """Raised for 4xx responses other than auth and rate limiting."""

    kind = ErrorKind.MALFORMED_REQUEST


class OverloadedError(ProviderError):
    """Raised when the backend reports temporary capacity exhaustion."""

    kind = ErrorKind.OVERLOADED


class ProviderTimeoutError(ProviderError):
    """Raised on timeouts and connection-level failures."""

    kind = ErrorKind.TIMEOUT


class RateLimitError(ProviderError):
    """Raised when API rate limit is hit."""

    kind = ErrorKind.RATE_LIMITED

    def __init__(
        self,
        provider: str,
        retry_after: float | None = None,
        details: dict[str, Any] | None = None,
        *,
        rate_limit: RateLimitInfo | None = None,
    ):
        self.rate_limit = rate_limit or RateLimitInfo.from_seconds(retry_after)
        self.retry_after = self.rate_limit.retry_after_seconds
        message = f"Rate limit exceeded for {provider}"
        if self.retry_after:
            message += f", retry after {self.retry_after}s"
        super().__init__(message, provider, {"retry_after": self.retry_after, **(details or {})})

    @property
    def human_message(self) -> str:
        return self.rate_limit.human_message


_ERROR_CLASSES: dict[ErrorKind, type[ProviderError]] = {
    ErrorKind.MALFORMED_REQUEST: MalformedRequestError,
    ErrorKind.OVERLOADED: OverloadedError,
    ErrorKind.TIMEOUT: ProviderTimeoutError,
    ErrorKind.UNKNOWN: ProviderError,
}


# =============================================================================
# Data Models
# =============================================================================


class MessageRole(str, Enum):
    """Message role in a conversation."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ChatMessage:
    """A single message in a conversation."""

    role: MessageRole
    content: str

    @classmethod
    def user(cls, content: str) -> ChatMessage:
        return cls(MessageRole.USER, content)

    @classmethod
    def system(cls, content: str) -> ChatMessage:
        return cls(MessageRole.SYSTEM, content)

    @classmethod
    def assistant(cls, content: str) -> ChatMessage:
        return cls(MessageRole.ASSISTANT, content)

    def to_dict(self) -> dict[str, str]:
        """Serialize to OpenAI-style API format."""
        return {
            "role": self.role.value,
            "content": self.content,
        }


@dataclass(frozen=True)
class TokenUsage:
    """Token usage from a completion."""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int

    def to_dict(self) -> dict[str, int]:
        """Serialize to dict."""
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass
class CanonicalResponse:
    """Provider-independent result of one chat request."""

    text: str
    provider_name: str
    usage: TokenUsage | None = None
    rate_limit: RateLimitInfo | None = None

    # Optional metadata
    model: str | None = None
    latency_ms: int | None = None
    raw_response: Any = field(default=None, repr=False)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dict."""
        result: dict[str, Any] = {
            "text": self.text,
            "provider": self.provider_name,
        }
        if self.usage:
            result["usage"] = self.usage.to_dict()
        if self.rate_limit:
            result["rate_limit"] = self.rate_limit.to_dict()
        if self.model:
            result["model"] = self.model
        if self.latency_ms is not None:
            result["latency_ms"] = self.latency_ms
        return result


# =============================================================================
# Helpers
# =============================================================================


def parse_retry_seconds(text: str | None) -> float | None:
    """
    Pull a retry delay out of free-form error text.

    Recognizes "try again in 16.4s", "retry after 12.5 seconds", compound
    "2m59.56s" durations and bare "30s"-style durations. Returns None when
    no duration is present.
    """
    if not text:
        return None
    for match in _COMPOUND_DURATION.finditer(text):
        hours, minutes, seconds = match.groups()
        if hours is None and minutes is None:
            continue
        return int(hours or 0) * 3600 + int(minutes or 0) * 60 + float(seconds or 0)
    for pattern in _RETRY_HINT_PATTERNS:
        match = pattern.search(text)
        if match:
            return float(match.group(1))
    return None


def parse_retry_after_header(headers: Mapping[str, str] | None) -> float | None:
    """Read a numeric Retry-After header (seconds). HTTP-date values are ignored."""
    if not headers:
        return None
    value = headers.get("Retry-After") or headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


# =============================================================================
# Base Adapter
# =============================================================================


class BaseAdapter(ABC):
    """
    Abstract base class for provider adapters.

    An adapter performs exactly one HTTP call to one backend family and
    translates in both directions. It holds no per-request state and never
    retries: fallback and cooldown policy belong to the router.

    Subclasses implement request building and response parsing; error
    classification has a status-code default that subclasses refine with
    whatever quirks their backend has.
    """

    family: str = "base"

    def __init__(
        self,
        *,
        timeout: float = 300.0,
        session: requests.Session | None = None,
    ):
        """
        Initialize the adapter.

        Args:
            timeout: Request timeout in seconds.
            session: Optional shared requests session.
        """
        self._timeout = timeout
        self._session = session or requests.Session()

    @property
    def timeout(self) -> float:
        return self._timeout

    def complete(
        self,
        provider: ProviderDescriptor,
        messages: Sequence[ChatMessage],
        model: str | None = None,
    ) -> CanonicalResponse:
        """
        Execute one chat request against the provider.

        Args:
            provider: Descriptor with endpoint and credential.
            messages: Conversation to send.
            model: Backend model; defaults to the provider's default model.

        Returns:
            CanonicalResponse with text, usage, and provider name.

        Raises:
            ProviderError: Subclass matching the canonical error kind.
        """
        model = model or provider.default_model
        start_time = time.time()

        url, params = self._build_url(provider, model)
        headers = self._build_headers(provider)
        payload = self._build_payload(messages, model)

        try:
            response = self._session.post(
                url,
                headers=headers,
                params=params,
                json=payload,
                timeout=self._timeout,
            )
        except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
            raise ProviderTimeoutError(f"Request failed: {type(e).__name__}", provider.name, {"error": str(e)}) from e
        except requests.exceptions.RequestException as e:
            raise ProviderError(f"Request error: {e}", provider.name) from e

        if not 200 <= response.status_code < 300:
            raise self._error_from_response(provider.name, response)

        try:
            data = response.json()
        except ValueError:
            data = None

        result = self._parse_response(data, provider.name, model, messages)
        result.latency_ms = int((time.time() - start_time) * 1000)
        return result

    # -------------------------------------------------------------------------
    # Wire format (per family)
    # -------------------------------------------------------------------------

    @abstractmethod
    def _build_url(self, provider: ProviderDescriptor, model: str) -> tuple[str, dict[str, str] | None]:
        """Return the endpoint URL and optional query params."""
        ...

    @abstractmethod
    def _build_headers(self, provider: ProviderDescriptor) -> dict[str, str]:
        ...

    @abstractmethod
    def _build_payload(self, messages: Sequence[ChatMessage], model: str) -> dict[str, Any]:
        ...

    @abstractmethod
    def _parse_response(
        self,
        data: Any,
        provider_name: str,
        model: str,
        messages: Sequence[ChatMessage],
    ) -> CanonicalResponse:
        """Translate a 2xx body. Unrecognized shapes yield NO_RESPONSE_TEXT."""
        ...

    # -------------------------------------------------------------------------
    # Error classification
    # -------------------------------------------------------------------------

    def classify_error(self, status_code: int, body: str, headers: Mapping[str, str]) -> ErrorKind:
        """Map a non-2xx response onto a canonical error kind."""
        if status_code in (401, 403):
            return ErrorKind.AUTH_FAILURE
        if status_code == 429:
            return ErrorKind.RATE_LIMITED
        if status_code == 408:
            return ErrorKind.TIMEOUT
        if 400 <= status_code < 500:
            return ErrorKind.MALFORMED_REQUEST
        if status_code in (502, 503, 504, 529):
            return ErrorKind.OVERLOADED
        return ErrorKind.UNKNOWN

    def extract_rate_limit(self, body: str, headers: Mapping[str, str]) -> RateLimitInfo:
        """
        Extract retry guidance: structured hint first, then free text.

        Subclasses with a JSON retry field override _structured_retry_hint.
        """
        seconds = parse_retry_after_header(headers)
        if seconds is None:
            seconds = self._structured_retry_hint(_safe_json(body))
        if seconds is None:
            seconds = parse_retry_seconds(body)
        return RateLimitInfo.from_seconds(seconds)

    def _structured_retry_hint(self, data: Any) -> float | None:
        return None

    def _error_from_response(self, provider_name: str, response: requests.Response) -> ProviderError:
        body = response.text or ""
        headers = response.headers or {}
        kind = self.classify_error(response.status_code, body, headers)
        details = {"status_code": response.status_code, "response": body[:500]}

        if kind == ErrorKind.RATE_LIMITED:
            return RateLimitError(provider_name, details=details, rate_limit=self.extract_rate_limit(body, headers))
        if kind == ErrorKind.AUTH_FAILURE:
            return AuthenticationError(provider_name, f"Authentication failed ({response.status_code})", details)

        error_cls = _ERROR_CLASSES[kind]
        return error_cls(
            f"API error {response.status_code}: {body[:200]}",
            provider_name,
            details,
            kind=kind,
        )


def _safe_json(body: str) -> Any:
    if not body:
        return None
    try:
        return json.loads(body)
    except ValueError:
        return None


# Response bodies are untrusted: every level is checked before it is read,
# and anything unexpected degrades to "absent" rather than raising.


def get_dict(data: Any, key: str) -> dict[str, Any]:
    """`data[key]` if both are dicts, else an empty dict."""
    value = data.get(key) if isinstance(data, dict) else None
    return value if isinstance(value, dict) else {}


def get_list(data: Any, key: str) -> list[Any]:
    """`data[key]` if it is a list, else an empty list."""
    value = data.get(key) if isinstance(data, dict) else None
    return value if isinstance(value, list) else []


def first_dict(items: Any) -> dict[str, Any]:
    """First element of a list when it is a dict, else an empty dict."""
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0]
    return {}


def get_text(data: Any, key: str) -> str | None:
    """`data[key]` only when it is a non-empty string."""
    value = data.get(key) if isinstance(data, dict) else None
    return value if isinstance(value, str) and value else None


def build_usage(prompt: Any, completion: Any, total: Any = None) -> TokenUsage | None:
    """
    Build TokenUsage from raw counts.

    Returns:
        TokenUsage, or None when a count is not a number.
    """
    try:
        prompt_tokens = int(prompt or 0)
        completion_tokens = int(completion or 0)
        total_tokens = int(total) if total is not None else prompt_tokens + completion_tokens
    except (TypeError, ValueError):
        return None
    return TokenUsage(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=total_tokens,
    )


def usage_from_openai(data: Any) -> TokenUsage | None:
    """Read an OpenAI-style `usage` block, if present."""
    usage_data = get_dict(data, "usage")
    if not usage_data:
        return None
    return build_usage(
        usage_data.get("prompt_tokens"),
        usage_data.get("completion_tokens"),
        usage_data.get("total_tokens"),
    )
