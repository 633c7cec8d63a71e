"""
sportml-chat: Request metrics and statistics tracking.

Thread-safe statistics collection for monitoring the chat endpoint:
provider attempts versus configuration skips, cache efficiency,
rate-limit rejections and response statuses.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any


@dataclass
class OrchestratorStats:
    """Snapshot of endpoint metrics.

    Attributes:
        total_requests: Requests received by the endpoint.
        cache_hits: Requests answered from the response cache.
        rate_limited: Requests rejected by the rate limiter.
        invalid_requests: Requests rejected by validation.
        provider_attempts: Per-provider count of actual invoke() calls.
        provider_skips: Per-provider count of skips for missing credentials.
        provider_successes: Per-provider count of successful replies.
        provider_failures: Per-provider, per-reason failure counts.
        responses_by_status: HTTP status → count.
        avg_response_ms: Running average over successful provider replies.
    """

    total_requests: int = 0
    cache_hits: int = 0
    rate_limited: int = 0
    invalid_requests: int = 0
    provider_attempts: dict[str, int] = field(default_factory=dict)
    provider_skips: dict[str, int] = field(default_factory=dict)
    provider_successes: dict[str, int] = field(default_factory=dict)
    provider_failures: dict[str, dict[str, int]] = field(default_factory=dict)
    responses_by_status: dict[int, int] = field(default_factory=dict)
    avg_response_ms: float = 0.0


class StatsTracker:
    """Thread-safe statistics tracker for the orchestrator.

    All methods are safe to call from any thread. Stats are collected
    in real-time and can be retrieved as a snapshot via get_stats().
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._stats = OrchestratorStats()
        self._response_count = 0

    def record_request(self) -> None:
        with self._lock:
            self._stats.total_requests += 1

    def record_rate_limited(self) -> None:
        with self._lock:
            self._stats.rate_limited += 1

    def record_invalid(self) -> None:
        with self._lock:
            self._stats.invalid_requests += 1

    def record_cache_hit(self) -> None:
        with self._lock:
            self._stats.cache_hits += 1

    def record_skip(self, provider: str) -> None:
        """Record a provider skipped for missing credentials (not an attempt)."""
        with self._lock:
            skips = self._stats.provider_skips
            skips[provider] = skips.get(provider, 0) + 1

    def record_attempt(self, provider: str) -> None:
        with self._lock:
            attempts = self._stats.provider_attempts
            attempts[provider] = attempts.get(provider, 0) + 1

    def record_success(self, provider: str, elapsed_ms: float) -> None:
        with self._lock:
            successes = self._stats.provider_successes
            successes[provider] = successes.get(provider, 0) + 1

            # Running average response time
            self._response_count += 1
            self._stats.avg_response_ms += (
                elapsed_ms - self._stats.avg_response_ms
            ) / self._response_count

    def record_failure(self, provider: str, reason: str) -> None:
        with self._lock:
            by_reason = self._stats.provider_failures.setdefault(provider, {})
            by_reason[reason] = by_reason.get(reason, 0) + 1

    def record_status(self, status_code: int) -> None:
        with self._lock:
            statuses = self._stats.responses_by_status
            statuses[status_code] = statuses.get(status_code, 0) + 1

    def get_stats(self) -> dict[str, Any]:
        """Get a snapshot of current statistics as a dictionary."""
        with self._lock:
            return {
                "total_requests": self._stats.total_requests,
                "cache_hits": self._stats.cache_hits,
                "rate_limited": self._stats.rate_limited,
                "invalid_requests": self._stats.invalid_requests,
                "provider_attempts": dict(self._stats.provider_attempts),
                "provider_skips": dict(self._stats.provider_skips),
                "provider_successes": dict(self._stats.provider_successes),
                "provider_failures": {
                    name: dict(reasons)
                    for name, reasons in self._stats.provider_failures.items()
                },
                "responses_by_status": dict(self._stats.responses_by_status),
                "avg_response_ms": round(self._stats.avg_response_ms, 1),
            }

    def reset(self) -> None:
        """Reset all statistics to zero."""
        with self._lock:
            self._stats = OrchestratorStats()
            self._response_count = 0
