from __future__ import annotations
import logging
import threading
import time
from collections import deque, defaultdict
from dataclasses import dataclass
from typing import Callable, Deque, Dict

from app.core.config import settings
from app.core.exceptions import RateLimitedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitPolicy:
    """An independent request budget: at most ``max_requests`` per ``window_seconds``."""
    namespace: str
    max_requests: int
    window_seconds: float


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int


def default_policies() -> Dict[str, RateLimitPolicy]:
    """Budgets for each inbound operation, keyed by namespace."""
    window = settings.RATE_LIMIT_WINDOW_SECONDS
    policies = [
        RateLimitPolicy('conversations', settings.RATE_LIMIT_CONVERSATIONS_MAX, window),
        RateLimitPolicy('score-interview', settings.RATE_LIMIT_SCORING_MAX, window),
        RateLimitPolicy('upload', settings.RATE_LIMIT_UPLOAD_MAX, window),
    ]
    return {p.namespace: p for p in policies}


class SlidingWindowRateLimiter:
    """
    Per-identifier admission control using a sliding window of timestamps.

    Keys are ``namespace:identifier``. Each key keeps the timestamps of its
    admitted calls; expired ones are pruned lazily on access, and every
    ``sweep_interval``-th call sweeps all keys so idle identifiers do not
    accumulate. Denials are reported, never waited out: the caller decides.

    State is process-local. A restart resets every budget.
    """

    def __init__(
        self,
        sweep_interval: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._windows: Dict[str, Deque[float]] = defaultdict(deque)
        # Window length last used per key, so the sweep prunes each key by its own policy
        self._window_seconds: Dict[str, float] = {}
        self._sweep_interval = sweep_interval or settings.RATE_LIMIT_SWEEP_INTERVAL
        self._call_count = 0
        self._clock = clock
        # The critical section never awaits, so a thread lock serializes both
        # coroutines and threadpool-run endpoints.
        self._lock = threading.Lock()

    def admit(self, namespace: str, identifier: str, max_requests: int, window_seconds: float) -> RateLimitDecision:
        """Record and admit a call if the key has budget left in the trailing window."""
        key = f"{namespace}:{identifier}"
        with self._lock:
            now = self._clock()

            self._call_count += 1
            if self._call_count % self._sweep_interval == 0:
                self._sweep(now)

            history = self._windows[key]
            self._window_seconds[key] = window_seconds
            self._prune(history, now, window_seconds)

            if len(history) >= max_requests:
                logger.info(f"Rate limit reached for {key} ({len(history)}/{max_requests} in {window_seconds:.0f}s)")
                return RateLimitDecision(allowed=False, remaining=0)

            history.append(now)
            return RateLimitDecision(allowed=True, remaining=max_requests - len(history))

    def require(self, policy: RateLimitPolicy, identifier: str) -> RateLimitDecision:
        """Admit under ``policy`` or raise ``RateLimitedError``."""
        decision = self.admit(policy.namespace, identifier, policy.max_requests, policy.window_seconds)
        if not decision.allowed:
            raise RateLimitedError(
                f"Rate limit exceeded for {policy.namespace} by {identifier}",
                details={"namespace": policy.namespace, "limit": policy.max_requests},
            )
        return decision

    def tracked_keys(self) -> int:
        """Number of keys currently holding state."""
        with self._lock:
            return len(self._windows)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()
            self._window_seconds.clear()
            self._call_count = 0

    @staticmethod
    def _prune(history: Deque[float], now: float, window_seconds: float) -> None:
        while history and now - history[0] >= window_seconds:
            history.popleft()

    def _sweep(self, now: float) -> None:
        expired = []
        for key, history in self._windows.items():
            self._prune(history, now, self._window_seconds.get(key, 0.0))
            if not history:
                expired.append(key)
        for key in expired:
            del self._windows[key]
            self._window_seconds.pop(key, None)
        if expired:
            logger.debug(f"Rate limiter sweep removed {len(expired)} idle keys")
