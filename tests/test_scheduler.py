import asyncio
from datetime import datetime, timezone

from core.scheduler import SubscriptionScheduler, due_subscriptions, local_minute, normalize_time, parse_times
from core.storage import SubscriptionStore


def test_normalize_and_parse_times():
    assert normalize_time("8:05") == "08:05"
    assert normalize_time("24:00") is None
    assert parse_times("20:30,8:00 08:00") == ["08:00", "20:30"]
    assert parse_times("8am") is None
    assert parse_times("") is None


def test_local_minute_unknown_zone_falls_back_to_utc():
    now = datetime(2024, 6, 1, 7, 30, tzinfo=timezone.utc)
    assert local_minute(now, "Europe/Paris") == "09:30"
    assert local_minute(now, "Nowhere/Land") == "07:30"


def test_due_subscriptions_uses_each_timezone():
    now = datetime(2024, 6, 1, 7, 30, tzinfo=timezone.utc)
    subs = {
        "1": {"fact": {"times": ["09:30"], "timezone": "Europe/Paris"}},
        "2": {"joke": {"times": ["07:30"]}},
        "3": {"quote": {"times": ["07:30"], "timezone": "Asia/Tokyo"}},
        "4": {"meme": "garbage"},
    }
    assert sorted(due_subscriptions(subs, now)) == [("1", "fact"), ("2", "joke")]


def _scheduler(tmp_path, now, deliver):
    store = SubscriptionStore(tmp_path / "s.json")
    store.set_content(1, "fact", ["07:30"])
    store.set_content(2, "joke", ["07:30"])
    return SubscriptionScheduler(store, deliver, clock=lambda: now[0]), store


def test_tick_fires_once_per_minute(tmp_path):
    sent = []

    async def deliver(chat_id, kind):
        sent.append((chat_id, kind))

    now = [datetime(2024, 6, 1, 7, 30, 5, tzinfo=timezone.utc)]
    scheduler, _ = _scheduler(tmp_path, now, deliver)
    assert len(asyncio.run(scheduler.tick())) == 2
    now[0] = datetime(2024, 6, 1, 7, 30, 40, tzinfo=timezone.utc)
    assert asyncio.run(scheduler.tick()) == []
    assert sorted(sent) == [("1", "fact"), ("2", "joke")]


def test_tick_survives_delivery_failure_and_removal(tmp_path):
    attempts = []

    async def deliver(chat_id, kind):
        attempts.append(chat_id)
        if chat_id == "1":
            store.remove_subscription(chat_id)
            raise RuntimeError("blocked")

    now = [datetime(2024, 6, 1, 7, 30, tzinfo=timezone.utc)]
    scheduler, store = _scheduler(tmp_path, now, deliver)
    delivered = asyncio.run(scheduler.tick())
    assert delivered == [("2", "joke")]
    assert sorted(attempts) == ["1", "2"]
    assert store.kinds_for(1) == []


def test_start_and_stop(tmp_path):
    async def deliver(chat_id, kind):
        pass

    async def run():
        store = SubscriptionStore(tmp_path / "s.json")
        scheduler = SubscriptionScheduler(store, deliver)
        task = scheduler.start()
        assert scheduler.start() is task
        await scheduler.stop()
        assert task.cancelled()

    asyncio.run(run())
