#!/usr/bin/env python3
"""
Availability Tracker

Decides which providers are currently eligible for a request and records
the effect of failures. A transient failure excludes a provider for a
cooldown window; expiry is a lazy timestamp comparison made whenever
candidates are computed, so no timers are involved.

Usage:
    tracker = AvailabilityTracker(cooldown_seconds=30)

    for provider in tracker.candidates(registry.enabled()):
        ...
        tracker.record_failure(provider.name, ErrorKind.TIMEOUT)

    tracker.record_success("groq")  # clears exclusions from earlier requests
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Iterable, Sequence, TypeVar

from multiprovider.base import ErrorKind
from multiprovider.config import DEFAULT_COOLDOWN_SECONDS


logger = logging.getLogger(__name__)

T = TypeVar("T")


class AvailabilityTracker:
    """
    Tracks per-provider exclusion windows.

    Only transient error kinds exclude a provider. A success from any
    provider clears every exclusion left over from earlier requests,
    treating it as a sign the shared request path is healthy again;
    providers that failed within the succeeding request stay excluded.

    Safe to share between threads; every read and write of the exclusion
    map happens under one lock.
    """

    def __init__(
        self,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the tracker.

        Args:
            cooldown_seconds: How long a transient failure excludes a provider.
            clock: Monotonic time source, injectable for tests.
        """
        self._cooldown = cooldown_seconds
        self._clock = clock
        self._excluded_until: dict[str, float] = {}
        self._lock = threading.Lock()

    @property
    def cooldown_seconds(self) -> float:
        return self._cooldown

    def candidates(self, providers: Sequence[T], *, key: Callable[[T], str] | None = None) -> list[T]:
        """
        Return the providers whose exclusion window has elapsed.

        Args:
            providers: Providers in priority order.
            key: Maps a provider to its name (defaults to `.name`).

        Returns:
            Subsequence of `providers`, order preserved.
        """
        name_of = key or (lambda p: p.name)
        with self._lock:
            self._expire_locked()
            return [p for p in providers if name_of(p) not in self._excluded_until]

    def record_failure(self, provider_name: str, kind: ErrorKind) -> bool:
        """
        Record a failed call.

        Returns:
            True if the provider is now excluded.
        """
        if not kind.is_transient:
            return False
        with self._lock:
            self._excluded_until[provider_name] = self._clock() + self._cooldown
        logger.info("Excluding provider %s for %.0fs after %s", provider_name, self._cooldown, kind.value)
        return True

    def record_success(self, provider_name: str, *, preserve: Iterable[str] = ()) -> None:
        """
        Record a successful call; every provider becomes available again.

        Args:
            provider_name: Provider that succeeded.
            preserve: Providers whose exclusion stands anyway, i.e. those
                that failed earlier within the same request.
        """
        keep = set(preserve) - {provider_name}
        with self._lock:
            cleared = [name for name in self._excluded_until if name not in keep]
            for name in cleared:
                del self._excluded_until[name]
        if cleared:
            logger.info("Success on %s; re-enabling %s", provider_name, ", ".join(sorted(cleared)))

    def reset(self) -> None:
        """Clear all exclusion state."""
        with self._lock:
            self._excluded_until.clear()
        logger.info("All providers reset and available")

    def is_available(self, provider_name: str) -> bool:
        with self._lock:
            self._expire_locked()
            return provider_name not in self._excluded_until

    def excluded_until(self, provider_name: str) -> float | None:
        """Clock value at which the provider's exclusion ends, if excluded."""
        with self._lock:
            self._expire_locked()
            return self._excluded_until.get(provider_name)

    def excluded_names(self) -> list[str]:
        with self._lock:
            self._expire_locked()
            return sorted(self._excluded_until)

    def _expire_locked(self) -> None:
        now = self._clock()
        expired = [name for name, until in self._excluded_until.items() if until <= now]
        for name in expired:
            del self._excluded_until[name]
            logger.debug("Provider %s is available for retry", name)
