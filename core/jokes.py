import logging
from typing import Optional

import aiohttp

from .errors import HTTP_ERRORS, UnavailableError

log = logging.getLogger(__name__)

OFFICIAL_JOKE_URL = "https://official-joke-api.appspot.com/random_joke"
JOKEAPI_URL = "https://v2.jokeapi.dev/joke/Any"

TIMEOUT = aiohttp.ClientTimeout(total=10)


def format_joke(setup: str, punchline: str = "") -> str:
    setup = (setup or "").strip()
    punchline = (punchline or "").strip()
    return f"{setup}\n\n{punchline}" if punchline else setup


async def _official(session: aiohttp.ClientSession) -> Optional[str]:
    async with session.get(OFFICIAL_JOKE_URL, timeout=TIMEOUT) as resp:
        resp.raise_for_status()
        data = await resp.json(content_type=None)
    if data and data.get("setup"):
        return format_joke(data["setup"], data.get("punchline", ""))
    return None


async def _jokeapi(session: aiohttp.ClientSession) -> Optional[str]:
    params = {"safe-mode": "", "blacklistFlags": "nsfw,religious,political,racist,sexist,explicit"}
    async with session.get(JOKEAPI_URL, params=params, timeout=TIMEOUT) as resp:
        resp.raise_for_status()
        data = await resp.json(content_type=None)
    if not data or data.get("error"):
        return None
    if data.get("type") == "twopart":
        return format_joke(data.get("setup", ""), data.get("delivery", ""))
    return format_joke(data.get("joke", "")) or None


async def fetch_joke(session: aiohttp.ClientSession) -> str:
    for source in (_official, _jokeapi):
        try:
            joke = await source(session)
        except HTTP_ERRORS as exc:
            log.warning("joke source %s failed: %s", source.__name__, exc)
            continue
        if joke:
            return joke
    raise UnavailableError("😕 Sorry, I couldn't fetch a joke right now. Please try again later.")
