#!/usr/bin/env python3
"""
Hugging Face Inference API adapter.

Text-generation backends take a single prompt and answer with a plain
array of `{generated_text}` objects. They report no token usage, so
usage is estimated locally with tiktoken.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Mapping, Sequence

import tiktoken

from multiprovider.base import (
    NO_RESPONSE_TEXT,
    BaseAdapter,
    CanonicalResponse,
    ChatMessage,
    ErrorKind,
    MessageRole,
    TokenUsage,
    first_dict,
    get_text,
)
from multiprovider.config import ProviderDescriptor


logger = logging.getLogger(__name__)


class HuggingFaceAdapter(BaseAdapter):
    """
    Hugging Face text-generation adapter.
    """

    family = "huggingface"

    temperature = 0.7
    max_length = 100

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._tokenizer = None
        self._tokenizer_failed = False
        self._tokenizer_lock = threading.Lock()

    def _build_url(self, provider: ProviderDescriptor, model: str) -> tuple[str, dict[str, str] | None]:
        return f"{provider.endpoint_base}/models/{model}", None

    def _build_headers(self, provider: ProviderDescriptor) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {provider.credential}",
            "Content-Type": "application/json",
        }

    def _build_payload(self, messages: Sequence[ChatMessage], model: str) -> dict[str, Any]:
        return {
            "inputs": self._prompt_text(messages),
            "parameters": {
                "max_length": self.max_length,
                "temperature": self.temperature,
                "return_full_text": False,
                "do_sample": True,
            },
        }

    @staticmethod
    def _prompt_text(messages: Sequence[ChatMessage]) -> str:
        """The last user message; these models are not conversational."""
        for msg in reversed(messages):
            if msg.role == MessageRole.USER:
                return msg.content
        return "Hello"

    def _parse_response(
        self,
        data: Any,
        provider_name: str,
        model: str,
        messages: Sequence[ChatMessage],
    ) -> CanonicalResponse:
        """Parse a text-generation response in any of its shapes."""
        payload = first_dict(data) if isinstance(data, list) else data
        text = get_text(payload, "generated_text") or get_text(payload, "text")

        text = (text or "").strip() or NO_RESPONSE_TEXT

        prompt_tokens = self.count_tokens(self._prompt_text(messages))
        completion_tokens = self.count_tokens(text) if text != NO_RESPONSE_TEXT else 0

        return CanonicalResponse(
            text=text,
            provider_name=provider_name,
            usage=TokenUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
            model=model,
            raw_response=data,
        )

    def classify_error(self, status_code: int, body: str, headers: Mapping[str, str]) -> ErrorKind:
        # 503 with {"error": "Model ... is currently loading", "estimated_time": ...}
        if "currently loading" in body:
            return ErrorKind.OVERLOADED
        return super().classify_error(status_code, body, headers)

    def count_tokens(self, text: str) -> int:
        """
        Count tokens using tiktoken cl100k_base as an approximation.

        The encoding is loaded on first use (tiktoken may download it). If
        it cannot be loaded, counts fall back to roughly four characters
        per token for the lifetime of the adapter.
        """
        if not text:
            return 0
        tokenizer = self._get_tokenizer()
        if tokenizer is None:
            return max(1, len(text) // 4)
        return len(tokenizer.encode(text))

    def _get_tokenizer(self) -> Any:
        with self._tokenizer_lock:
            if self._tokenizer is None and not self._tokenizer_failed:
                try:
                    self._tokenizer = tiktoken.get_encoding("cl100k_base")
                except Exception as e:
                    self._tokenizer_failed = True
                    logger.warning("Could not load cl100k_base encoding, estimating tokens from length: %s", e)
            return self._tokenizer
