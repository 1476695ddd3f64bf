import logging
import time
from collections import defaultdict
from typing import Callable, Dict, List

log = logging.getLogger(__name__)

DEFAULT_WINDOW = 60.0
LLM_REQUESTS_PER_MINUTE = 60
LLM_MIN_INTERVAL = 1 / 3


class RateLimiter:
    """Sliding-window limits kept in memory; nothing survives a restart."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self.limits: Dict[str, List[float]] = defaultdict(list)
        self.global_limits: Dict[str, List[float]] = defaultdict(list)
        self._llm_minute = -1
        self._llm_count = 0
        self._llm_last: Dict[str, float] = {}

    @staticmethod
    def _admit(calls: List[float], now: float, limit: int, window: float) -> bool:
        calls[:] = [t for t in calls if now - t < window]
        if len(calls) >= limit:
            return False
        calls.append(now)
        return True

    def check(self, user_id, action: str, limit: int = 5, window: float = DEFAULT_WINDOW) -> bool:
        key = f"{user_id}:{action}"
        allowed = self._admit(self.limits[key], self._clock(), limit, window)
        if not allowed:
            log.info("rate limit hit for %s", key)
        return allowed

    def check_global(self, action: str, limit: int = 60, window: float = DEFAULT_WINDOW) -> bool:
        allowed = self._admit(self.global_limits[action], self._clock(), limit, window)
        if not allowed:
            log.info("global rate limit hit for %s", action)
        return allowed

    def check_llm(self, chat_id) -> bool:
        now = self._clock()
        minute = int(now // 60)
        if minute != self._llm_minute:
            self._llm_minute = minute
            self._llm_count = 0
        if self._llm_count >= LLM_REQUESTS_PER_MINUTE:
            return False
        key = str(chat_id)
        last = self._llm_last.get(key, 0.0)
        if now - last < LLM_MIN_INTERVAL:
            return False
        self._llm_count += 1
        self._llm_last[key] = now
        return True

    def cleanup(self, window: float = DEFAULT_WINDOW) -> None:
        now = self._clock()
        for table in (self.limits, self.global_limits):
            for key in list(table):
                fresh = [t for t in table[key] if now - t < window]
                if fresh:
                    table[key] = fresh
                else:
                    del table[key]
        stale = [key for key, last in self._llm_last.items() if now - last >= window]
        for key in stale:
            del self._llm_last[key]
