import html
import logging
import re
import time
from typing import Callable, Dict, Optional, Tuple

import aiohttp

from .errors import HTTP_ERRORS, NotFoundError, UnavailableError

log = logging.getLogger(__name__)

OMDB_URL = "http://www.omdbapi.com/"
CACHE_SECONDS = 24 * 60 * 60
IMDB_ID_PATTERN = re.compile(r"^tt\d+$")

USAGE_TEXT = (
    "*Movie Information Search* 🎬\n\n"
    "Search by title or IMDb ID:\n"
    "• /movie <title>\n"
    "• /mv <imdb_id>\n\n"
    "Examples:\n"
    "`/movie The Matrix`\n"
    "`/mv tt0133093`\n"
    "`/movie tt16366836`"
)


def is_imdb_id(query: str) -> bool:
    return bool(IMDB_ID_PATTERN.match(query.strip()))


def upscale_poster(url: str) -> str:
    return url.replace("_SX300", "_SX1500").replace("_SY300", "_SY2000")


def has_poster(movie: dict) -> bool:
    poster = movie.get("Poster")
    return bool(poster) and poster != "N/A"


def _field(movie: dict, key: str, default: str = "N/A") -> str:
    value = movie.get(key)
    if not value or value == "N/A":
        value = default
    return html.escape(str(value))


def format_movie(movie: dict) -> str:
    imdb_url = f"https://www.imdb.com/title/{movie.get('imdbID', '')}"
    return (
        f"📀 𝖳𝗂𝗍𝗅𝖾 : <a href=\"{imdb_url}\">{_field(movie, 'Title')}</a>\n\n"
        f"🌟 𝖱𝖺𝗍𝗂𝗇𝗀 : {_field(movie, 'imdbRating')}/10\n"
        f"📆 𝖱𝖾𝗅𝖾𝖺𝗌𝖾 : {_field(movie, 'Released')}\n"
        f"🎭 𝖦𝖾𝗇𝗋𝖾 : {_field(movie, 'Genre')}\n"
        f"🔊 𝖫𝖺𝗇𝗀𝗎𝖺𝗀𝖾 : {_field(movie, 'Language')}\n"
        f"🎥 𝖣𝗂𝗋𝖾𝖼𝗍𝗈𝗋𝗌 : {_field(movie, 'Director')}\n"
        f"🔆 𝖲𝗍𝖺𝗋𝗌 : {_field(movie, 'Actors')}\n\n"
        f"🗒 𝖲𝗍𝗈𝗋𝗒𝗅𝗂𝗇𝖾 : <code>{_field(movie, 'Plot', 'No plot available')}</code>"
    )


def shorten_plot(movie: dict) -> dict:
    plot = str(movie.get("Plot") or "")
    first = plot.split(".")[0].strip()
    shortened = dict(movie)
    shortened["Plot"] = f"{first}." if first else plot
    return shortened


class MovieService:
    def __init__(self, api_key: Optional[str], clock: Callable[[], float] = time.time):
        self.api_key = api_key
        self._clock = clock
        self.cache: Dict[str, Tuple[float, dict]] = {}

    def _cached(self, key: str) -> Optional[dict]:
        hit = self.cache.get(key)
        if not hit:
            return None
        stored_at, data = hit
        if self._clock() - stored_at > CACHE_SECONDS:
            del self.cache[key]
            return None
        return data

    async def lookup(self, session: aiohttp.ClientSession, query: str) -> dict:
        query = query.strip()
        key = query.lower()
        cached = self._cached(key)
        if cached is not None:
            log.debug("movie cache hit for %s", key)
            return cached
        if not self.api_key:
            raise UnavailableError("❌ Movie search is not configured.")

        params = {"apikey": self.api_key, "plot": "short"}
        params["i" if is_imdb_id(query) else "t"] = query
        try:
            async with session.get(OMDB_URL, params=params, timeout=aiohttp.ClientTimeout(total=10)) as resp:
                data = await resp.json(content_type=None)
        except HTTP_ERRORS as exc:
            log.error("omdb lookup failed for %s: %s", query, exc)
            raise UnavailableError("❌ Failed to fetch movie information. Please try again.") from exc

        if not isinstance(data, dict) or data.get("Response") == "False":
            message = (data or {}).get("Error") if isinstance(data, dict) else None
            raise NotFoundError(f"❌ {message or 'Movie not found'}")

        if has_poster(data):
            data["Poster"] = upscale_poster(data["Poster"])
        self.cache[key] = (self._clock(), data)
        return data
