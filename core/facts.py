import logging
from typing import Optional

import aiohttp

from .errors import HTTP_ERRORS, UnavailableError

log = logging.getLogger(__name__)

FACT_CATEGORIES = ["history", "science", "geography", "technology", "random"]

NINJAS_URL = "https://api.api-ninjas.com/v1/facts"
USELESS_FACTS_URL = "https://uselessfacts.jsph.pl/api/v2/facts/random"

TIMEOUT = aiohttp.ClientTimeout(total=10)


def normalize_category(category: Optional[str]) -> Optional[str]:
    if not category:
        return None
    cleaned = category.strip().lower()
    return cleaned if cleaned in FACT_CATEGORIES else None


async def _from_ninjas(session: aiohttp.ClientSession, category: str, api_key: str) -> Optional[str]:
    async with session.get(
        NINJAS_URL,
        params={"category": category},
        headers={"X-Api-Key": api_key},
        timeout=TIMEOUT,
    ) as resp:
        if resp.status != 200:
            log.info("api-ninjas returned %s for %s", resp.status, category)
            return None
        data = await resp.json(content_type=None)
    if isinstance(data, list) and data and data[0].get("fact"):
        return str(data[0]["fact"])
    return None


async def _from_useless_facts(session: aiohttp.ClientSession) -> Optional[str]:
    async with session.get(USELESS_FACTS_URL, params={"language": "en"}, timeout=TIMEOUT) as resp:
        resp.raise_for_status()
        data = await resp.json(content_type=None)
    text = (data or {}).get("text")
    return str(text).strip() if text else None


async def fetch_fact(
    session: aiohttp.ClientSession,
    category: str = "random",
    api_key: Optional[str] = None,
) -> str:
    if category != "random" and api_key:
        try:
            fact = await _from_ninjas(session, category, api_key)
            if fact:
                return fact
        except HTTP_ERRORS as exc:
            log.warning("api-ninjas fact lookup failed: %s", exc)
    try:
        fact = await _from_useless_facts(session)
    except HTTP_ERRORS as exc:
        log.error("fact lookup failed: %s", exc)
        fact = None
    if not fact:
        raise UnavailableError("Sorry, I couldn't fetch a fact right now. Please try again later.")
    return fact
