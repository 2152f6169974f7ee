"""Groq API key pool with per-key rate limit tracking."""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable

logger = logging.getLogger(__name__)

MINUTE = 60.0
DAY = 86400.0


@dataclass(frozen=True)
class RateLimits:
    """Per-key ceilings; a key is usable only while every counter is below its limit."""

    rpm: int = 30
    rpd: int = 1000
    tpm: int = 30_000
    tpd: int = 500_000


@dataclass
class UsageWindow:
    """Sliding request and token counters for one key."""

    requests_minute: deque = field(default_factory=deque)
    requests_day: deque = field(default_factory=deque)
    tokens_minute: deque = field(default_factory=deque)
    tokens_day: deque = field(default_factory=deque)

    def prune(self, now: float) -> None:
        """Drop events that fell out of their window."""
        for events, horizon in (
            (self.requests_minute, MINUTE),
            (self.requests_day, DAY),
        ):
            while events and events[0] <= now - horizon:
                events.popleft()
        for events, horizon in (
            (self.tokens_minute, MINUTE),
            (self.tokens_day, DAY),
        ):
            while events and events[0][0] <= now - horizon:
                events.popleft()

    def record(self, now: float, tokens: int) -> None:
        self.requests_minute.append(now)
        self.requests_day.append(now)
        self.tokens_minute.append((now, tokens))
        self.tokens_day.append((now, tokens))

    def counts(self) -> tuple[int, int, int, int]:
        """(requests/minute, requests/day, tokens/minute, tokens/day)."""
        return (
            len(self.requests_minute),
            len(self.requests_day),
            sum(tokens for _, tokens in self.tokens_minute),
            sum(tokens for _, tokens in self.tokens_day),
        )


class CredentialPool:
    """Round-robin selection over API keys that still have quota.

    Selection never fails: when every key is exhausted the first key is
    returned and the resulting rate-limit error is left to the caller's
    retry policy.
    """

    def __init__(
        self,
        keys: list[str],
        limits: RateLimits = RateLimits(),
        clock: Callable[[], float] = time.time,
    ):
        if not keys:
            raise ValueError("CredentialPool needs at least one API key")
        self._keys = list(keys)
        self._ids = [f"key_{index + 1}" for index in range(len(keys))]
        self._windows = {key_id: UsageWindow() for key_id in self._ids}
        self._limits = limits
        self._clock = clock
        self._cursor = 0
        # Guards the cursor and windows; usage may be recorded from worker threads
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._keys)

    @property
    def key_ids(self) -> list[str]:
        return list(self._ids)

    def _usable(self, key_id: str, now: float) -> bool:
        window = self._windows[key_id]
        window.prune(now)
        rpm, rpd, tpm, tpd = window.counts()
        return (
            rpm < self._limits.rpm
            and rpd < self._limits.rpd
            and tpm < self._limits.tpm
            and tpd < self._limits.tpd
        )

    def select(self) -> tuple[str, str]:
        """Return (api_key, key_id) for the next key with remaining quota."""
        with self._lock:
            now = self._clock()
            for _ in range(len(self._keys)):
                index = self._cursor
                self._cursor = (self._cursor + 1) % len(self._keys)
                key_id = self._ids[index]
                if self._usable(key_id, now):
                    if len(self._keys) > 1:
                        logger.debug(f"Using Groq {key_id}")
                    return self._keys[index], key_id

        logger.warning("All Groq keys are at their rate limits; falling back to key_1")
        return self._keys[0], self._ids[0]

    def record_usage(self, key_id: str, tokens: int = 1000) -> None:
        """Count one request and its token cost against a key."""
        with self._lock:
            window = self._windows.get(key_id)
            if window is None:
                return
            now = self._clock()
            window.record(now, tokens)
            window.prune(now)
            rpm, _, tpm, _ = window.counts()
        logger.debug(f"{key_id} usage: {rpm}/{self._limits.rpm} rpm, {tpm}/{self._limits.tpm} tpm")

    def stats(self) -> list[dict]:
        """Current usage of every key, formatted used/limit."""
        result = []
        with self._lock:
            now = self._clock()
            for key_id in self._ids:
                available = self._usable(key_id, now)
                rpm, rpd, tpm, tpd = self._windows[key_id].counts()
                result.append(
                    {
                        "key_id": key_id,
                        "rpm": f"{rpm}/{self._limits.rpm}",
                        "rpd": f"{rpd}/{self._limits.rpd}",
                        "tpm": f"{tpm}/{self._limits.tpm}",
                        "tpd": f"{tpd}/{self._limits.tpd}",
                        "available": available,
                    }
                )
        return result
