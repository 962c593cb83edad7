#!/usr/bin/env python3
"""
Anthropic Claude Messages API adapter.
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
    get_dict,
    get_list,
    get_text,
)
from multiprovider.config import ProviderDescriptor


ANTHROPIC_VERSION = "2023-06-01"


class AnthropicAdapter(BaseAdapter):
    """
    Anthropic Messages API adapter.

    Authenticates with `x-api-key` and sends the system prompt as a
    top-level field instead of a message.
    """

    family = "anthropic"

    temperature = 0.7
    max_tokens = 2048  # Anthropic requires max_tokens

    def _build_url(self, provider: ProviderDescriptor, model: str) -> tuple[str, dict[str, str] | None]:
        return f"{provider.endpoint_base}/messages", None

    def _build_headers(self, provider: ProviderDescriptor) -> dict[str, str]:
        return {
            "x-api-key": provider.credential,
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }

    def _build_payload(self, messages: Sequence[ChatMessage], model: str) -> dict[str, Any]:
        system_content, converted = self._convert_messages(messages)
        payload: dict[str, Any] = {
            "model": model,
            "messages": converted,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        if system_content:
            payload["system"] = system_content
        return payload

    def _convert_messages(
        self,
        messages: Sequence[ChatMessage],
    ) -> tuple[str | None, list[dict[str, str]]]:
        """
        Convert messages to Anthropic format.

        Anthropic handles system prompts separately from the message list.

        Returns:
            Tuple of (system_content, messages_list)
        """
        system_chunks: list[str] = []
        converted: list[dict[str, str]] = []

        for msg in messages:
            if msg.role == MessageRole.SYSTEM:
                system_chunks.append(msg.content)
            else:
                converted.append({
                    "role": msg.role.value,
                    "content": msg.content,
                })

        system_content = "\n\n".join(system_chunks) if system_chunks else None
        return system_content, converted

    def _parse_response(
        self,
        data: Any,
        provider_name: str,
        model: str,
        messages: Sequence[ChatMessage],
    ) -> CanonicalResponse:
        """Parse Anthropic API response."""
        content = ""
        for block in get_list(data, "content"):
            if isinstance(block, dict) and block.get("type", "text") == "text":
                content += get_text(block, "text") or ""

        usage = None
        usage_data = get_dict(data, "usage")
        if usage_data:
            usage = build_usage(usage_data.get("input_tokens"), usage_data.get("output_tokens"))

        return CanonicalResponse(
            text=content or NO_RESPONSE_TEXT,
            provider_name=provider_name,
            usage=usage,
            model=get_text(data, "model") or model,
            raw_response=data,
        )

    def classify_error(self, status_code: int, body: str, headers: Mapping[str, str]) -> ErrorKind:
        if "overloaded_error" in body:
            return ErrorKind.OVERLOADED
        if "rate_limit_error" in body:
            return ErrorKind.RATE_LIMITED
        return super().classify_error(status_code, body, headers)
