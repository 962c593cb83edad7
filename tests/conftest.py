"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import json
from typing import Any
from unittest.mock import MagicMock

import pytest

from multiprovider.availability import AvailabilityTracker
from multiprovider.base import CanonicalResponse, TokenUsage
from multiprovider.config import AdapterType, ProviderDescriptor, ProviderRegistry


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedAdapter:
    """
    Stands in for every adapter family.

    `script` maps provider name to an outcome: a reply string, an exception
    instance to raise, or a list of those consumed one per call (the last
    entry repeats).
    """

    def __init__(self, script: dict[str, Any] | None = None):
        self.script = dict(script or {})
        self.calls: list[tuple[str, str | None]] = []

    def complete(self, provider, messages, model=None):
        self.calls.append((provider.name, model))
        outcome = self.script.get(provider.name, f"reply from {provider.name}")
        if isinstance(outcome, list):
            outcome = outcome.pop(0) if len(outcome) > 1 else outcome[0]
        if callable(outcome) and not isinstance(outcome, BaseException):
            outcome = outcome()
        if isinstance(outcome, BaseException):
            raise outcome
        return CanonicalResponse(
            text=outcome,
            provider_name=provider.name,
            usage=TokenUsage(prompt_tokens=3, completion_tokens=2, total_tokens=5),
            model=model,
        )

    @property
    def attempted(self) -> list[str]:
        return [name for name, _ in self.calls]


def _provider(
    name: str,
    priority: int,
    *,
    enabled: bool = True,
    adapter: AdapterType = AdapterType.OPENAI_COMPAT,
    model: str | None = None,
    endpoint: str = "https://api.example.test/v1",
    credential: str = "test-key",
) -> ProviderDescriptor:
    return ProviderDescriptor(
        name=name,
        adapter=adapter,
        credential=credential,
        endpoint_base=endpoint,
        default_model=model or f"{name}-model",
        priority=priority,
        enabled=enabled,
    )


@pytest.fixture
def make_provider():
    return _provider


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def tracker(clock) -> AvailabilityTracker:
    return AvailabilityTracker(cooldown_seconds=30, clock=clock)


@pytest.fixture
def three_providers() -> ProviderRegistry:
    return ProviderRegistry([_provider("1", 1), _provider("2", 2), _provider("3", 3)])


@pytest.fixture
def scripted():
    return ScriptedAdapter


@pytest.fixture
def make_response():
    """Build a stand-in for requests.Response."""

    def _make(
        status: int = 200,
        json_data: Any = None,
        text: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> MagicMock:
        response = MagicMock()
        response.status_code = status
        response.headers = headers or {}
        if json_data is not None:
            response.json.return_value = json_data
            response.text = json.dumps(json_data)
        else:
            response.json.side_effect = ValueError("No JSON object could be decoded")
            response.text = text or ""
        return response

    return _make


@pytest.fixture
def session():
    """MagicMock standing in for requests.Session."""
    return MagicMock()
