"""Tests for provider adapters: wire format, parsing, and error classification."""

from __future__ import annotations

import pytest
import requests
import tiktoken

from multiprovider.anthropic import AnthropicAdapter
from multiprovider.base import (
    NO_RESPONSE_TEXT,
    AuthenticationError,
    ChatMessage,
    ErrorKind,
    MalformedRequestError,
    OverloadedError,
    ProviderError,
    ProviderTimeoutError,
    RateLimitError,
    parse_retry_seconds,
)
from multiprovider.config import AdapterType
from multiprovider.gemini import GeminiAdapter
from multiprovider.huggingface import HuggingFaceAdapter
from multiprovider.openai_compat import GroqAdapter, OpenAICompatibleAdapter


CONVERSATION = [
    ChatMessage.system("Be brief."),
    ChatMessage.user("Hi"),
    ChatMessage.assistant("Hello!"),
    ChatMessage.user("What is 2+2?"),
]


def posted(session):
    """(url, kwargs) of the single POST the adapter made."""
    assert session.post.call_count == 1
    args, kwargs = session.post.call_args
    return args[0], kwargs


# ── Retry hint parsing ────────────────────────────────────────────────


class TestParseRetrySeconds:
    @pytest.mark.parametrize("text,expected", [
        ("retry after 12.5 seconds", 12.5),
        ("Please try again in 16.425s.", 16.425),
        ("Rate limit reached. Try again in 3 secs", 3.0),
        ('{"retryDelay": "12s"}', 12.0),
        ("wait 7 seconds please", 7.0),
    ])
    def test_extracts_duration(self, text, expected):
        assert parse_retry_seconds(text) == expected

    @pytest.mark.parametrize("text,expected", [
        ("Rate limit reached on tokens per day (TPD). Please try again in 2m59.56s.", 179.56),
        ("Please try again in 1h2m3s", 3723.0),
        ("Please try again in 5m", 300.0),
    ])
    def test_compound_duration(self, text, expected):
        assert parse_retry_seconds(text) == pytest.approx(expected)

    @pytest.mark.parametrize("text", ["", None, "slow down", "limit is 6000 tokens"])
    def test_no_duration(self, text):
        assert parse_retry_seconds(text) is None


# ── OpenAI-compatible ─────────────────────────────────────────────────


class TestOpenAICompatibleAdapter:
    @pytest.fixture
    def provider(self, make_provider):
        return make_provider("deepseek", 1, model="deepseek-chat", endpoint="https://api.deepseek.com/v1")

    def test_request_shape(self, provider, session, make_response):
        session.post.return_value = make_response(json_data={"choices": [{"message": {"content": "4"}}]})
        adapter = OpenAICompatibleAdapter(session=session, timeout=12)

        adapter.complete(provider, CONVERSATION)

        url, kwargs = posted(session)
        assert url == "https://api.deepseek.com/v1/chat/completions"
        assert kwargs["headers"]["Authorization"] == "Bearer test-key"
        assert kwargs["json"]["model"] == "deepseek-chat"
        assert kwargs["json"]["messages"][0] == {"role": "system", "content": "Be brief."}
        assert len(kwargs["json"]["messages"]) == 4
        assert kwargs["timeout"] == 12

    def test_parses_choice_and_usage(self, provider, session, make_response):
        session.post.return_value = make_response(json_data={
            "model": "deepseek-chat",
            "choices": [{"message": {"content": "4"}, "finish_reason": "stop"}],
            "usage": {"prompt_tokens": 20, "completion_tokens": 1, "total_tokens": 21},
        })

        response = OpenAICompatibleAdapter(session=session).complete(provider, CONVERSATION)

        assert response.text == "4"
        assert response.provider_name == "deepseek"
        assert response.usage.total_tokens == 21
        assert response.latency_ms is not None

    def test_pinned_model_overrides_default(self, provider, session, make_response):
        session.post.return_value = make_response(json_data={"choices": [{"message": {"content": "ok"}}]})
        OpenAICompatibleAdapter(session=session).complete(provider, CONVERSATION, "deepseek-reasoner")
        _, kwargs = posted(session)
        assert kwargs["json"]["model"] == "deepseek-reasoner"

    @pytest.mark.parametrize("body", [
        {"choices": []},
        {"unexpected": True},
        {"choices": [{"message": "hi"}]},
        {"choices": {"0": {"message": {"content": "hi"}}}},
        {"choices": [{"message": {"content": [{"type": "text"}]}}]},
        {"choices": ["hi"]},
        ["hi"],
        None,
    ])
    def test_unrecognized_success_body_yields_placeholder(self, provider, session, make_response, body):
        if body is None:
            session.post.return_value = make_response(200, text="<html>gateway</html>")
        else:
            session.post.return_value = make_response(json_data=body)

        response = OpenAICompatibleAdapter(session=session).complete(provider, CONVERSATION)

        assert response.text == NO_RESPONSE_TEXT
        assert response.usage is None

    def test_non_numeric_usage_is_dropped(self, provider, session, make_response):
        session.post.return_value = make_response(json_data={
            "choices": [{"message": {"content": "4"}}],
            "usage": {"prompt_tokens": "n/a", "completion_tokens": 1},
        })

        response = OpenAICompatibleAdapter(session=session).complete(provider, CONVERSATION)

        assert response.text == "4"
        assert response.usage is None

    @pytest.mark.parametrize("status,error_cls,kind", [
        (401, AuthenticationError, ErrorKind.AUTH_FAILURE),
        (403, AuthenticationError, ErrorKind.AUTH_FAILURE),
        (400, MalformedRequestError, ErrorKind.MALFORMED_REQUEST),
        (404, MalformedRequestError, ErrorKind.MALFORMED_REQUEST),
        (408, ProviderTimeoutError, ErrorKind.TIMEOUT),
        (503, OverloadedError, ErrorKind.OVERLOADED),
        (502, OverloadedError, ErrorKind.OVERLOADED),
        (500, ProviderError, ErrorKind.UNKNOWN),
    ])
    def test_status_classification(self, provider, session, make_response, status, error_cls, kind):
        session.post.return_value = make_response(status, text="nope")

        with pytest.raises(error_cls) as exc_info:
            OpenAICompatibleAdapter(session=session).complete(provider, CONVERSATION)

        assert exc_info.value.kind == kind
        assert exc_info.value.provider == "deepseek"
        assert exc_info.value.details["status_code"] == status

    def test_retry_after_header_wins(self, provider, session, make_response):
        session.post.return_value = make_response(
            429, text="slow down, try again in 99 seconds", headers={"Retry-After": "20"},
        )

        with pytest.raises(RateLimitError) as exc_info:
            OpenAICompatibleAdapter(session=session).complete(provider, CONVERSATION)

        assert exc_info.value.retry_after == 20.0
        assert "20.0 seconds" in exc_info.value.human_message

    def test_retry_delay_from_text(self, provider, session, make_response):
        session.post.return_value = make_response(429, text="Rate limited: retry after 12.5 seconds")

        with pytest.raises(RateLimitError) as exc_info:
            OpenAICompatibleAdapter(session=session).complete(provider, CONVERSATION)

        assert exc_info.value.rate_limit.retry_after_seconds == 12.5

    def test_rate_limit_without_hint(self, provider, session, make_response):
        session.post.return_value = make_response(429, text="Too Many Requests")

        with pytest.raises(RateLimitError) as exc_info:
            OpenAICompatibleAdapter(session=session).complete(provider, CONVERSATION)

        assert exc_info.value.retry_after is None
        assert exc_info.value.human_message == "Rate limit reached. Please wait a moment and try again."

    @pytest.mark.parametrize("exc", [
        requests.exceptions.ConnectTimeout("connect timed out"),
        requests.exceptions.ReadTimeout("read timed out"),
        requests.exceptions.ConnectionError("refused"),
    ])
    def test_transport_failures_are_timeouts(self, provider, session, exc):
        session.post.side_effect = exc

        with pytest.raises(ProviderTimeoutError) as exc_info:
            OpenAICompatibleAdapter(session=session).complete(provider, CONVERSATION)

        assert exc_info.value.kind == ErrorKind.TIMEOUT
        assert exc_info.value.__cause__ is exc

    def test_other_transport_error_is_unknown(self, provider, session):
        session.post.side_effect = requests.exceptions.InvalidURL("bad url")

        with pytest.raises(ProviderError) as exc_info:
            OpenAICompatibleAdapter(session=session).complete(provider, CONVERSATION)

        assert exc_info.value.kind == ErrorKind.UNKNOWN

    def test_credential_not_in_error_text(self, provider, session, make_response):
        session.post.return_value = make_response(401, text="invalid key")

        with pytest.raises(AuthenticationError) as exc_info:
            OpenAICompatibleAdapter(session=session).complete(provider, CONVERSATION)

        assert "test-key" not in str(exc_info.value)


# ── Groq ──────────────────────────────────────────────────────────────


class TestGroqAdapter:
    @pytest.fixture
    def provider(self, make_provider):
        return make_provider("groq", 2, adapter=AdapterType.GROQ, endpoint="https://api.groq.com/openai/v1")

    def test_tpm_error_with_non_429_status_is_rate_limited(self, provider, session, make_response):
        session.post.return_value = make_response(413, json_data={
            "error": {
                "message": "Request too large on tokens per minute (TPM): Limit 6000, Used 5800, "
                           "Requested 900. Please try again in 16.425s.",
                "type": "tokens",
            }
        })

        with pytest.raises(RateLimitError) as exc_info:
            GroqAdapter(session=session).complete(provider, CONVERSATION)

        assert exc_info.value.retry_after == 16.425

    def test_minute_retry_hint(self, provider, session, make_response):
        session.post.return_value = make_response(429, json_data={
            "error": {"message": "Rate limit reached on tokens per day (TPD). Please try again in 2m59.56s."},
        })

        with pytest.raises(RateLimitError) as exc_info:
            GroqAdapter(session=session).complete(provider, CONVERSATION)

        assert exc_info.value.retry_after == pytest.approx(179.56)

    def test_plain_client_error_stays_malformed(self, provider, session, make_response):
        session.post.return_value = make_response(400, json_data={"error": {"message": "messages: field required"}})

        with pytest.raises(MalformedRequestError):
            GroqAdapter(session=session).complete(provider, CONVERSATION)

    def test_uses_openai_shape(self, provider, session, make_response):
        session.post.return_value = make_response(json_data={"choices": [{"message": {"content": "fast"}}]})
        response = GroqAdapter(session=session).complete(provider, CONVERSATION)
        url, _ = posted(session)
        assert url == "https://api.groq.com/openai/v1/chat/completions"
        assert response.text == "fast"


# ── Gemini ────────────────────────────────────────────────────────────


class TestGeminiAdapter:
    @pytest.fixture
    def provider(self, make_provider):
        return make_provider(
            "gemini", 3,
            adapter=AdapterType.GEMINI,
            model="gemini-2.0-flash-exp",
            endpoint="https://generativelanguage.googleapis.com/v1beta",
        )

    def test_request_shape(self, provider, session, make_response):
        session.post.return_value = make_response(json_data={
            "candidates": [{"content": {"parts": [{"text": "4"}]}}],
        })

        GeminiAdapter(session=session).complete(provider, CONVERSATION)

        url, kwargs = posted(session)
        assert url == "https://generativelanguage.googleapis.com/v1beta/models/gemini-2.0-flash-exp:generateContent"
        assert kwargs["params"] == {"key": "test-key"}
        body = kwargs["json"]
        assert body["systemInstruction"] == {"parts": [{"text": "Be brief."}]}
        assert [c["role"] for c in body["contents"]] == ["user", "model", "user"]
        assert body["contents"][2]["parts"] == [{"text": "What is 2+2?"}]

    def test_parses_candidates_and_usage_metadata(self, provider, session, make_response):
        session.post.return_value = make_response(json_data={
            "candidates": [{"content": {"parts": [{"text": "Four."}], "role": "model"}}],
            "usageMetadata": {"promptTokenCount": 9, "candidatesTokenCount": 2, "totalTokenCount": 11},
        })

        response = GeminiAdapter(session=session).complete(provider, CONVERSATION)

        assert response.text == "Four."
        assert response.usage.prompt_tokens == 9
        assert response.usage.total_tokens == 11

    def test_missing_candidates_yields_placeholder(self, provider, session, make_response):
        session.post.return_value = make_response(json_data={"promptFeedback": {"blockReason": "SAFETY"}})
        response = GeminiAdapter(session=session).complete(provider, CONVERSATION)
        assert response.text == NO_RESPONSE_TEXT

    @pytest.mark.parametrize("body", [
        {"candidates": [{"content": "x"}]},
        {"candidates": {"0": {"content": {"parts": [{"text": "hi"}]}}}},
        {"candidates": [{"content": {"parts": "hi"}}]},
        {"candidates": [{"content": {"parts": [{"text": 5}]}}]},
        {"candidates": ["hi"]},
    ])
    def test_malformed_candidates_yield_placeholder(self, provider, session, make_response, body):
        session.post.return_value = make_response(json_data=body)
        response = GeminiAdapter(session=session).complete(provider, CONVERSATION)
        assert response.text == NO_RESPONSE_TEXT

    def test_non_numeric_usage_metadata_is_dropped(self, provider, session, make_response):
        session.post.return_value = make_response(json_data={
            "candidates": [{"content": {"parts": [{"text": "Four."}]}}],
            "usageMetadata": {"promptTokenCount": "unknown", "candidatesTokenCount": 2},
        })

        response = GeminiAdapter(session=session).complete(provider, CONVERSATION)

        assert response.text == "Four."
        assert response.usage is None

    def test_malformed_retry_details_ignored(self, provider, session, make_response):
        session.post.return_value = make_response(429, json_data={
            "error": {"code": 429, "status": "RESOURCE_EXHAUSTED", "details": 7},
        })

        with pytest.raises(RateLimitError) as exc_info:
            GeminiAdapter(session=session).complete(provider, CONVERSATION)

        assert exc_info.value.retry_after is None

    def test_unavailable_is_overloaded(self, provider, session, make_response):
        session.post.return_value = make_response(503, json_data={
            "error": {"code": 503, "message": "The model is overloaded.", "status": "UNAVAILABLE"},
        })

        with pytest.raises(OverloadedError):
            GeminiAdapter(session=session).complete(provider, CONVERSATION)

    def test_resource_exhausted_reads_retry_info(self, provider, session, make_response):
        session.post.return_value = make_response(429, json_data={
            "error": {
                "code": 429,
                "message": "You exceeded your current quota.",
                "status": "RESOURCE_EXHAUSTED",
                "details": [
                    {"@type": "type.googleapis.com/google.rpc.QuotaFailure"},
                    {"@type": "type.googleapis.com/google.rpc.RetryInfo", "retryDelay": "42s"},
                ],
            }
        })

        with pytest.raises(RateLimitError) as exc_info:
            GeminiAdapter(session=session).complete(provider, CONVERSATION)

        assert exc_info.value.retry_after == 42.0

    def test_invalid_key_is_auth_failure(self, provider, session, make_response):
        session.post.return_value = make_response(400, json_data={
            "error": {"code": 400, "message": "API key not valid. Please pass a valid API key.",
                      "status": "INVALID_ARGUMENT", "details": [{"reason": "API_KEY_INVALID"}]},
        })

        with pytest.raises(AuthenticationError):
            GeminiAdapter(session=session).complete(provider, CONVERSATION)


# ── Anthropic ─────────────────────────────────────────────────────────


class TestAnthropicAdapter:
    @pytest.fixture
    def provider(self, make_provider):
        return make_provider(
            "anthropic", 6,
            adapter=AdapterType.ANTHROPIC,
            model="claude-3-5-sonnet-20241022",
            endpoint="https://api.anthropic.com/v1",
        )

    def test_request_shape(self, provider, session, make_response):
        session.post.return_value = make_response(json_data={"content": [{"type": "text", "text": "4"}]})

        AnthropicAdapter(session=session).complete(provider, CONVERSATION)

        url, kwargs = posted(session)
        assert url == "https://api.anthropic.com/v1/messages"
        assert kwargs["headers"]["x-api-key"] == "test-key"
        assert kwargs["headers"]["anthropic-version"] == "2023-06-01"
        assert "Authorization" not in kwargs["headers"]
        body = kwargs["json"]
        assert body["system"] == "Be brief."
        assert [m["role"] for m in body["messages"]] == ["user", "assistant", "user"]
        assert body["max_tokens"] > 0

    def test_parses_content_blocks_and_usage(self, provider, session, make_response):
        session.post.return_value = make_response(json_data={
            "model": "claude-3-5-sonnet-20241022",
            "content": [{"type": "text", "text": "Two plus two "}, {"type": "text", "text": "is four."}],
            "usage": {"input_tokens": 15, "output_tokens": 6},
        })

        response = AnthropicAdapter(session=session).complete(provider, CONVERSATION)

        assert response.text == "Two plus two is four."
        assert response.usage.total_tokens == 21

    @pytest.mark.parametrize("body", [
        {"content": "hi"},
        {"content": [{"type": "text", "text": {"nested": True}}]},
        {"content": [{"type": "tool_use", "id": "t1"}]},
        {"content": ["hi"]},
    ])
    def test_malformed_content_yields_placeholder(self, provider, session, make_response, body):
        session.post.return_value = make_response(json_data=body)
        response = AnthropicAdapter(session=session).complete(provider, CONVERSATION)
        assert response.text == NO_RESPONSE_TEXT

    def test_non_numeric_usage_is_dropped(self, provider, session, make_response):
        session.post.return_value = make_response(json_data={
            "content": [{"type": "text", "text": "4"}],
            "usage": {"input_tokens": "many", "output_tokens": 1},
        })

        response = AnthropicAdapter(session=session).complete(provider, CONVERSATION)

        assert response.text == "4"
        assert response.usage is None

    def test_529_is_overloaded(self, provider, session, make_response):
        session.post.return_value = make_response(529, json_data={
            "type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"},
        })

        with pytest.raises(OverloadedError):
            AnthropicAdapter(session=session).complete(provider, CONVERSATION)

    def test_rate_limit_uses_retry_after_header(self, provider, session, make_response):
        session.post.return_value = make_response(
            429,
            json_data={"type": "error", "error": {"type": "rate_limit_error", "message": "Slow down"}},
            headers={"retry-after": "8"},
        )

        with pytest.raises(RateLimitError) as exc_info:
            AnthropicAdapter(session=session).complete(provider, CONVERSATION)

        assert exc_info.value.retry_after == 8.0


# ── Hugging Face ──────────────────────────────────────────────────────


class FakeEncoding:
    def encode(self, text):
        return text.split()


class TestHuggingFaceAdapter:
    @pytest.fixture
    def provider(self, make_provider):
        return make_provider(
            "huggingface", 4,
            adapter=AdapterType.HUGGINGFACE,
            model="microsoft/DialoGPT-large",
            endpoint="https://api-inference.huggingface.co",
        )

    @pytest.fixture(autouse=True)
    def offline_tokenizer(self, monkeypatch):
        monkeypatch.setattr(tiktoken, "get_encoding", lambda name: FakeEncoding())

    def test_sends_last_user_message(self, provider, session, make_response):
        session.post.return_value = make_response(json_data=[{"generated_text": "Four"}])

        HuggingFaceAdapter(session=session).complete(provider, CONVERSATION)

        url, kwargs = posted(session)
        assert url == "https://api-inference.huggingface.co/models/microsoft/DialoGPT-large"
        assert kwargs["json"]["inputs"] == "What is 2+2?"

    def test_parses_generated_text_array(self, provider, session, make_response):
        session.post.return_value = make_response(json_data=[{"generated_text": "  It is four  "}])

        response = HuggingFaceAdapter(session=session).complete(provider, CONVERSATION)

        assert response.text == "It is four"
        assert response.usage.prompt_tokens == 3
        assert response.usage.completion_tokens == 3

    def test_single_object_shape(self, provider, session, make_response):
        session.post.return_value = make_response(json_data={"generated_text": "Four"})
        response = HuggingFaceAdapter(session=session).complete(provider, CONVERSATION)
        assert response.text == "Four"

    def test_empty_array_yields_placeholder(self, provider, session, make_response):
        session.post.return_value = make_response(json_data=[])
        response = HuggingFaceAdapter(session=session).complete(provider, CONVERSATION)
        assert response.text == NO_RESPONSE_TEXT
        assert response.usage.completion_tokens == 0

    @pytest.mark.parametrize("body", [[["Four"]], {"generated_text": ["Four"]}, [{"generated_text": 4}], "Four"])
    def test_malformed_body_yields_placeholder(self, provider, session, make_response, body):
        session.post.return_value = make_response(json_data=body)
        response = HuggingFaceAdapter(session=session).complete(provider, CONVERSATION)
        assert response.text == NO_RESPONSE_TEXT

    def test_unloadable_encoding_falls_back_to_length_estimate(self, provider, session, make_response, monkeypatch):
        calls = []

        def unavailable(name):
            calls.append(name)
            raise OSError("could not fetch cl100k_base")

        monkeypatch.setattr(tiktoken, "get_encoding", unavailable)
        session.post.return_value = make_response(json_data=[{"generated_text": "It is four"}])
        adapter = HuggingFaceAdapter(session=session)

        response = adapter.complete(provider, CONVERSATION)
        adapter.count_tokens("another call")

        assert response.text == "It is four"
        assert response.usage.prompt_tokens == len("What is 2+2?") // 4
        assert response.usage.completion_tokens == len("It is four") // 4
        assert calls == ["cl100k_base"]

    def test_model_loading_is_overloaded(self, provider, session, make_response):
        session.post.return_value = make_response(503, json_data={
            "error": "Model microsoft/DialoGPT-large is currently loading", "estimated_time": 20.0,
        })

        with pytest.raises(OverloadedError):
            HuggingFaceAdapter(session=session).complete(provider, CONVERSATION)
