#!/usr/bin/env python3
"""
Usage Tracker Module

Tracks calls and tokens across routed requests.
Supports per-provider tracking, session totals, and optional file logging.

Usage:
    from multiprovider.usage_tracker import UsageTracker

    tracker = UsageTracker(log_file="usage.jsonl")

    # Track after each routed call
    tracker.record(response)  # CanonicalResponse from the router

    # Get summary
    summary = tracker.get_summary()
    print(tracker.format_summary())
"""

from __future__ import annotations

import dataclasses
import json
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TextIO

from multiprovider.base import CanonicalResponse, TokenUsage


# =============================================================================
# Data Models
# =============================================================================


@dataclass
class ProviderStats:
    """Accumulated statistics for a specific provider."""

    provider: str
    call_count: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    total_latency_ms: int = 0

    def record(self, usage: TokenUsage | None, latency_ms: int | None = None) -> None:
        """Record a single call."""
        self.call_count += 1
        if usage is not None:
            self.prompt_tokens += usage.prompt_tokens
            self.completion_tokens += usage.completion_tokens
            self.total_tokens += usage.total_tokens
        if latency_ms:
            self.total_latency_ms += latency_ms

    def to_dict(self) -> dict[str, str | int]:
        """Serialize to dict."""
        return {
            "provider": self.provider,
            "call_count": self.call_count,
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
            "total_latency_ms": self.total_latency_ms,
        }


@dataclass
class UsageSummary:
    """Summary of all tracked usage."""

    total_calls: int
    total_prompt_tokens: int
    total_completion_tokens: int
    total_tokens: int
    by_provider: dict[str, ProviderStats]
    start_time: datetime
    end_time: datetime | None = None

    def to_dict(self) -> dict[str, object]:
        """Serialize to dict."""
        return {
            "total_calls": self.total_calls,
            "total_prompt_tokens": self.total_prompt_tokens,
            "total_completion_tokens": self.total_completion_tokens,
            "total_tokens": self.total_tokens,
            "by_provider": {k: v.to_dict() for k, v in self.by_provider.items()},
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
        }


# =============================================================================
# Usage Tracker
# =============================================================================


class UsageTracker:
    """
    Tracks usage across routed calls.

    Accumulates token usage per provider, providing session totals and
    per-provider breakdowns. Recording is thread-safe so one tracker can
    sit behind a router shared by concurrent requests.

    Example:
        >>> tracker = UsageTracker()
        >>> response = router.generate_response(messages)
        >>> tracker.record(response)
        >>> print(tracker.format_summary())
    """

    def __init__(
        self,
        log_file: str | Path | None = None,
        *,
        auto_flush: bool = True,
    ):
        """
        Initialize usage tracker.

        Args:
            log_file: Optional path to log each call as JSONL.
            auto_flush: If True, flush log file after each write.
        """
        self._start_time = datetime.now(timezone.utc)
        self._provider_stats: dict[str, ProviderStats] = {}
        self._log_file: TextIO | None = None
        self._log_path: Path | None = None
        self._auto_flush = auto_flush
        self._lock = threading.Lock()

        if log_file:
            self._log_path = Path(log_file)
            self._log_file = open(self._log_path, "a", encoding="utf-8")

    def __enter__(self) -> UsageTracker:
        """Context manager entry."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Context manager exit - close log file."""
        self.close()

    def close(self) -> None:
        """Close the log file if open."""
        with self._lock:
            if self._log_file:
                self._log_file.close()
                self._log_file = None

    def record(self, response: CanonicalResponse, *, model_id: str | None = None) -> None:
        """
        Record a successful response.

        Args:
            response: CanonicalResponse returned by the router.
            model_id: Optional pinned model id the caller asked for.
        """
        with self._lock:
            self._record_locked(
                response.provider_name,
                response.usage,
                response.latency_ms,
            )

            if self._log_file:
                log_entry: dict[str, object] = {
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                    "provider": response.provider_name,
                    "model": response.model,
                    "prompt_tokens": response.usage.prompt_tokens if response.usage else 0,
                    "completion_tokens": response.usage.completion_tokens if response.usage else 0,
                    "total_tokens": response.usage.total_tokens if response.usage else 0,
                    "latency_ms": response.latency_ms,
                }
                if model_id:
                    log_entry["model_id"] = model_id

                self._log_file.write(json.dumps(log_entry) + "\n")
                if self._auto_flush:
                    self._log_file.flush()

    def _record_locked(self, provider: str, usage: TokenUsage | None, latency_ms: int | None) -> None:
        if provider not in self._provider_stats:
            self._provider_stats[provider] = ProviderStats(provider=provider)
        self._provider_stats[provider].record(usage, latency_ms)

    def get_summary(self) -> UsageSummary:
        """
        Get current usage summary.

        Returns:
            UsageSummary with totals and per-provider breakdown.
        """
        with self._lock:
            stats = {name: dataclasses.replace(s) for name, s in self._provider_stats.items()}

        return UsageSummary(
            total_calls=sum(s.call_count for s in stats.values()),
            total_prompt_tokens=sum(s.prompt_tokens for s in stats.values()),
            total_completion_tokens=sum(s.completion_tokens for s in stats.values()),
            total_tokens=sum(s.total_tokens for s in stats.values()),
            by_provider=stats,
            start_time=self._start_time,
            end_time=datetime.now(timezone.utc),
        )

    def format_summary(self, *, include_provider_breakdown: bool = True) -> str:
        """
        Format a human-readable usage summary.

        Args:
            include_provider_breakdown: Include per-provider details.

        Returns:
            Formatted summary string.
        """
        summary = self.get_summary()
        lines = [
            "=" * 60,
            "USAGE SUMMARY",
            "=" * 60,
            f"Total Calls:             {summary.total_calls:,}",
            f"Total Prompt Tokens:     {summary.total_prompt_tokens:,}",
            f"Total Completion Tokens: {summary.total_completion_tokens:,}",
            f"Total Tokens:            {summary.total_tokens:,}",
        ]

        if summary.total_calls > 0:
            lines.extend([
                "",
                "AVERAGES",
                f"Avg Tokens per Call:     {summary.total_tokens // summary.total_calls:,}",
            ])

        if include_provider_breakdown and summary.by_provider:
            lines.extend([
                "",
                "BY PROVIDER",
                "-" * 60,
            ])
            for name, stats in sorted(summary.by_provider.items()):
                avg_latency = stats.total_latency_ms // stats.call_count if stats.call_count else 0
                lines.extend([
                    f"  {name}:",
                    f"    Calls:      {stats.call_count:,}",
                    f"    Tokens:     {stats.total_tokens:,} (prompt: {stats.prompt_tokens:,}, completion: {stats.completion_tokens:,})",
                    f"    Latency:    {avg_latency:,} ms avg",
                ])

        lines.append("=" * 60)
        return "\n".join(lines)

    @classmethod
    def from_log(cls, path: str | Path) -> UsageTracker:
        """
        Rebuild totals from a JSONL usage log.

        Args:
            path: Log written by a tracker with `log_file` set.

        Returns:
            Tracker holding the log's totals (without a log file of its own).
        """
        tracker = cls()
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                if not line.strip():
                    continue
                entry = json.loads(line)
                usage = TokenUsage(
                    prompt_tokens=entry.get("prompt_tokens", 0),
                    completion_tokens=entry.get("completion_tokens", 0),
                    total_tokens=entry.get("total_tokens", 0),
                )
                tracker._record_locked(entry["provider"], usage, entry.get("latency_ms"))
        return tracker

    def to_dict(self) -> dict[str, object]:
        """Serialize tracker state to dict."""
        return self.get_summary().to_dict()

    @property
    def total_tokens(self) -> int:
        """Get current total tokens."""
        with self._lock:
            return sum(s.total_tokens for s in self._provider_stats.values())

    @property
    def total_calls(self) -> int:
        """Get current total calls."""
        with self._lock:
            return sum(s.call_count for s in self._provider_stats.values())
