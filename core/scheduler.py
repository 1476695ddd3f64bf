"""Minute-resolution delivery of subscribed content.

The loop wakes at every minute boundary and compares each subscription's
"HH:MM" list with the wall clock in that subscription's time zone. Nothing is
replayed after downtime.
"""

import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Set, Tuple

import pytz

from .storage import SubscriptionStore

log = logging.getLogger(__name__)

CONTENT_TYPES = ["fact", "joke", "quote", "meme"]
TIME_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")

Deliver = Callable[[str, str], Awaitable[None]]


def normalize_time(value: str) -> Optional[str]:
    match = TIME_PATTERN.match(value.strip())
    if not match:
        return None
    return f"{int(match.group(1)):02d}:{match.group(2)}"


def parse_times(raw: str) -> Optional[List[str]]:
    times = []
    for part in re.split(r"[,\s]+", raw.strip()):
        if not part:
            continue
        normalized = normalize_time(part)
        if normalized is None:
            return None
        times.append(normalized)
    return sorted(set(times)) or None


def local_minute(now_utc: datetime, zone: str) -> str:
    try:
        tz = pytz.timezone(zone)
    except pytz.UnknownTimeZoneError:
        log.warning("unknown timezone %s, using UTC", zone)
        tz = pytz.utc
    return now_utc.astimezone(tz).strftime("%H:%M")


def due_subscriptions(subscriptions: Dict[str, Dict[str, dict]], now_utc: datetime) -> List[Tuple[str, str]]:
    due = []
    for chat_id, entries in subscriptions.items():
        for kind, data in entries.items():
            if not isinstance(data, dict):
                continue
            times = data.get("times") or []
            zone = data.get("timezone") or "UTC"
            if local_minute(now_utc, zone) in times:
                due.append((chat_id, kind))
    return due


class SubscriptionScheduler:
    def __init__(
        self,
        store: SubscriptionStore,
        deliver: Deliver,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.store = store
        self.deliver = deliver
        self._clock = clock
        self._fired: Set[Tuple[str, str, str]] = set()
        self._task: Optional[asyncio.Task] = None

    async def tick(self) -> List[Tuple[str, str]]:
        now = self._clock()
        stamp = now.strftime("%Y-%m-%dT%H:%M")
        self._fired = {entry for entry in self._fired if entry[2] == stamp}
        # copy: a delivery failure may remove the chat while we iterate
        snapshot = {k: dict(v) for k, v in self.store.get_subscriptions().items()}
        delivered = []
        for chat_id, kind in due_subscriptions(snapshot, now):
            key = (chat_id, kind, stamp)
            if key in self._fired:
                continue
            self._fired.add(key)
            log.info("sending %s to %s", kind, chat_id)
            try:
                await self.deliver(chat_id, kind)
            except Exception as exc:
                log.exception("error sending %s to %s: %s", kind, chat_id, exc)
                continue
            delivered.append((chat_id, kind))
        return delivered

    async def run(self) -> None:
        log.info("subscription scheduler started")
        while True:
            now = self._clock()
            await asyncio.sleep(60 - now.second - now.microsecond / 1_000_000)
            try:
                await self.tick()
            except Exception as exc:
                log.exception("scheduler tick failed: %s", exc)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
