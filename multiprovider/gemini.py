#!/usr/bin/env python3
"""
Google Gemini generateContent adapter.

Talks to the REST endpoint directly rather than through the SDK, so it
shares the request/timeout handling of the other adapters.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from multiprovider.base import (
    NO_RESPONSE_TEXT,
    BaseAdapter,
    CanonicalResponse,
    ChatMessage,
    ErrorKind,
    MessageRole,
    build_usage,
    first_dict,
    get_dict,
    get_list,
    get_text,
    parse_retry_seconds,
)
from multiprovider.config import ProviderDescriptor


class GeminiAdapter(BaseAdapter):
    """
    Google Gemini API adapter.

    Gemini uses 'user' and 'model' roles, takes the system prompt as a
    separate `systemInstruction`, and reports failures with a gRPC-style
    `error.status` ("UNAVAILABLE", "RESOURCE_EXHAUSTED").
    """

    family = "gemini"

    temperature = 0.7
    max_output_tokens = 8192

    def _build_url(self, provider: ProviderDescriptor, model: str) -> tuple[str, dict[str, str] | None]:
        return f"{provider.endpoint_base}/models/{model}:generateContent", {"key": provider.credential}

    def _build_headers(self, provider: ProviderDescriptor) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    def _build_payload(self, messages: Sequence[ChatMessage], model: str) -> dict[str, Any]:
        system_parts, contents = self._convert_messages(messages)
        payload: dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": self.max_output_tokens,
            },
        }
        if system_parts:
            payload["systemInstruction"] = {"parts": system_parts}
        return payload

    def _convert_messages(
        self,
        messages: Sequence[ChatMessage],
    ) -> tuple[list[dict[str, str]], list[dict[str, Any]]]:
        """
        Convert messages to Gemini format.

        Returns:
            Tuple of (system_parts, contents)
        """
        system_parts: list[dict[str, str]] = []
        contents: list[dict[str, Any]] = []

        for msg in messages:
            if msg.role == MessageRole.SYSTEM:
                system_parts.append({"text": msg.content})
            else:
                role = "model" if msg.role == MessageRole.ASSISTANT else "user"
                contents.append({"role": role, "parts": [{"text": msg.content}]})

        return system_parts, contents

    def _parse_response(
        self,
        data: Any,
        provider_name: str,
        model: str,
        messages: Sequence[ChatMessage],
    ) -> CanonicalResponse:
        """Parse Gemini API response."""
        candidate = first_dict(get_list(data, "candidates"))
        part = first_dict(get_list(get_dict(candidate, "content"), "parts"))
        content = get_text(part, "text")

        usage = None
        metadata = get_dict(data, "usageMetadata")
        if metadata:
            usage = build_usage(
                metadata.get("promptTokenCount"),
                metadata.get("candidatesTokenCount"),
                metadata.get("totalTokenCount"),
            )

        return CanonicalResponse(
            text=content or NO_RESPONSE_TEXT,
            provider_name=provider_name,
            usage=usage,
            model=model,
            raw_response=data,
        )

    def classify_error(self, status_code: int, body: str, headers: Mapping[str, str]) -> ErrorKind:
        if "RESOURCE_EXHAUSTED" in body:
            return ErrorKind.RATE_LIMITED
        if "UNAVAILABLE" in body or "overloaded" in body.lower():
            return ErrorKind.OVERLOADED
        # Gemini answers a bad key with 400 INVALID_ARGUMENT
        if "API_KEY_INVALID" in body or "API key not valid" in body:
            return ErrorKind.AUTH_FAILURE
        return super().classify_error(status_code, body, headers)

    def _structured_retry_hint(self, data: Any) -> float | None:
        """Read `error.details[].retryDelay` from a google.rpc.RetryInfo entry."""
        for detail in get_list(get_dict(data, "error"), "details"):
            if isinstance(detail, dict) and "retryDelay" in detail:
                return parse_retry_seconds(str(detail["retryDelay"]))
        return None
