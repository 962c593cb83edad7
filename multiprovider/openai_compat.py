#!/usr/bin/env python3
"""
OpenAI-compatible chat completions adapters.

DeepSeek, OpenAI, and Groq all expose `/chat/completions` with bearer
auth and the `choices[0].message.content` response shape. Groq gets its
own subclass because its error bodies need extra interpretation.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from multiprovider.base import (
    NO_RESPONSE_TEXT,
    BaseAdapter,
    CanonicalResponse,
    ChatMessage,
    ErrorKind,
    first_dict,
    get_dict,
    get_list,
    get_text,
    usage_from_openai,
)
from multiprovider.config import ProviderDescriptor


class OpenAICompatibleAdapter(BaseAdapter):
    """
    Adapter for OpenAI-style chat completion APIs.
    """

    family = "openai_compat"

    temperature = 0.7
    max_tokens = 2048

    def _build_url(self, provider: ProviderDescriptor, model: str) -> tuple[str, dict[str, str] | None]:
        return f"{provider.endpoint_base}/chat/completions", None

    def _build_headers(self, provider: ProviderDescriptor) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {provider.credential}",
            "Content-Type": "application/json",
        }

    def _build_payload(self, messages: Sequence[ChatMessage], model: str) -> dict[str, Any]:
        return {
            "model": model,
            "messages": [m.to_dict() for m in messages],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }

    def _parse_response(
        self,
        data: Any,
        provider_name: str,
        model: str,
        messages: Sequence[ChatMessage],
    ) -> CanonicalResponse:
        """Parse an OpenAI-style response."""
        message = get_dict(first_dict(get_list(data, "choices")), "message")
        content = get_text(message, "content")

        return CanonicalResponse(
            text=content or NO_RESPONSE_TEXT,
            provider_name=provider_name,
            usage=usage_from_openai(data),
            model=get_text(data, "model") or model,
            raw_response=data,
        )


class GroqAdapter(OpenAICompatibleAdapter):
    """
    Groq speaks the OpenAI format, but reports token-per-minute and quota
    exhaustion with inconsistent status codes and only puts the retry delay
    in the error text ("Please try again in 16.425s").
    """

    family = "groq"

    max_tokens = 4096

    def classify_error(self, status_code: int, body: str, headers: Mapping[str, str]) -> ErrorKind:
        lowered = body.lower()
        if status_code == 429 or "rate limit" in lowered or "tpm" in lowered or "quota" in lowered:
            return ErrorKind.RATE_LIMITED
        if "overloaded" in lowered or "unavailable" in lowered:
            return ErrorKind.OVERLOADED
        return super().classify_error(status_code, body, headers)
