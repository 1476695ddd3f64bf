import asyncio

import aiohttp
import pytest

from conftest import FakeResponse, FakeSession
from core.errors import UnavailableError
from core.facts import NINJAS_URL, USELESS_FACTS_URL, fetch_fact, normalize_category
from core.jokes import JOKEAPI_URL, OFFICIAL_JOKE_URL, fetch_joke, format_joke
from core.quotes import FALLBACK_QUOTE, QUOTABLE_URL, ZENQUOTES_URL, Quote, fetch_quote


def test_normalize_category():
    assert normalize_category(" Science ") == "science"
    assert normalize_category("cooking") is None
    assert normalize_category(None) is None


def test_fact_uses_ninjas_for_categories():
    session = FakeSession([(NINJAS_URL, FakeResponse(payload=[{"fact": "Rome was not built in a day."}]))])
    fact = asyncio.run(fetch_fact(session, "history", api_key="k"))
    assert fact == "Rome was not built in a day."
    assert session.calls[0][2]["headers"] == {"X-Api-Key": "k"}


def test_fact_falls_back_to_useless_facts():
    session = FakeSession(
        [
            (NINJAS_URL, FakeResponse(status=401)),
            (USELESS_FACTS_URL, FakeResponse(payload={"text": " Honey never spoils. "})),
        ]
    )
    assert asyncio.run(fetch_fact(session, "science", api_key="k")) == "Honey never spoils."


def test_random_fact_skips_ninjas():
    session = FakeSession([(USELESS_FACTS_URL, FakeResponse(payload={"text": "Fact"}))])
    assert asyncio.run(fetch_fact(session, "random", api_key="k")) == "Fact"
    assert session.urls() == [USELESS_FACTS_URL]


def test_fact_failure():
    session = FakeSession([(USELESS_FACTS_URL, aiohttp.ClientConnectionError("down"))])
    with pytest.raises(UnavailableError):
        asyncio.run(fetch_fact(session))


def test_joke_official():
    session = FakeSession([(OFFICIAL_JOKE_URL, FakeResponse(payload={"setup": "Why?", "punchline": "Because."}))])
    assert asyncio.run(fetch_joke(session)) == "Why?\n\nBecause."


def test_joke_falls_back_to_jokeapi():
    session = FakeSession(
        [
            (OFFICIAL_JOKE_URL, asyncio.TimeoutError()),
            (JOKEAPI_URL, FakeResponse(payload={"type": "single", "joke": "One-liner."})),
        ]
    )
    assert asyncio.run(fetch_joke(session)) == "One-liner."
    assert "safe-mode" in session.calls[1][2]["params"]


def test_joke_all_sources_fail():
    session = FakeSession([(JOKEAPI_URL, FakeResponse(payload={"error": True}))])
    with pytest.raises(UnavailableError):
        asyncio.run(fetch_joke(session))


def test_format_joke():
    assert format_joke("Just this") == "Just this"


def test_quote_sources():
    session = FakeSession([(QUOTABLE_URL, FakeResponse(payload={"content": "Be kind.", "author": "Anon"}))])
    quote = asyncio.run(fetch_quote(session))
    assert quote.format() == "Be kind.\n— Anon"

    session = FakeSession(
        [
            (QUOTABLE_URL, FakeResponse(status=500)),
            (ZENQUOTES_URL, FakeResponse(payload=[{"q": "Stay.", "a": "Zen"}])),
        ]
    )
    assert asyncio.run(fetch_quote(session)) == Quote("Stay.", "Zen")


def test_quote_last_resort():
    assert asyncio.run(fetch_quote(FakeSession([]))) is FALLBACK_QUOTE
