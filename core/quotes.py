import logging
from dataclasses import dataclass
from typing import Optional

import aiohttp

from .errors import HTTP_ERRORS

log = logging.getLogger(__name__)

QUOTABLE_URL = "https://api.quotable.io/random"
ZENQUOTES_URL = "https://zenquotes.io/api/random"
QUOTE_TAGS = "inspirational|motivation|wisdom"

TIMEOUT = aiohttp.ClientTimeout(total=10)


@dataclass
class Quote:
    text: str
    author: str

    def format(self) -> str:
        return f"{self.text}\n— {self.author}"


FALLBACK_QUOTE = Quote("The only way to do great work is to love what you do.", "Steve Jobs")


async def _quotable(session: aiohttp.ClientSession) -> Optional[Quote]:
    async with session.get(QUOTABLE_URL, params={"tags": QUOTE_TAGS}, timeout=TIMEOUT) as resp:
        resp.raise_for_status()
        data = await resp.json(content_type=None)
    if data and data.get("content") and data.get("author"):
        return Quote(data["content"], data["author"])
    return None


async def _zenquotes(session: aiohttp.ClientSession) -> Optional[Quote]:
    async with session.get(ZENQUOTES_URL, timeout=TIMEOUT) as resp:
        resp.raise_for_status()
        data = await resp.json(content_type=None)
    if isinstance(data, list) and data and data[0].get("q") and data[0].get("a"):
        return Quote(data[0]["q"], data[0]["a"])
    return None


async def fetch_quote(session: aiohttp.ClientSession) -> Quote:
    for source in (_quotable, _zenquotes):
        try:
            quote = await source(session)
        except HTTP_ERRORS as exc:
            log.warning("quote source %s failed: %s", source.__name__, exc)
            continue
        if quote:
            return quote
    return FALLBACK_QUOTE
