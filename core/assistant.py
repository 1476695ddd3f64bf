import logging
from dataclasses import dataclass
from typing import Dict, Optional

import aiohttp

from .config import Config
from .facts import fetch_fact
from .imaging import ImageGenerator
from .jokes import fetch_joke
from .llm import LLMService
from .memes import Meme, MemeService
from .movies import MovieService
from .quotes import fetch_quote
from .ratelimit import RateLimiter
from .stats import BotStats
from .storage import SubscriptionStore
from .translate import Translator
from .video import VideoDownloader
from .voice import VoiceTranscriber

log = logging.getLogger(__name__)

USER_AGENT = "NiteBot/1.1"


@dataclass
class Content:
    kind: str
    text: str = ""
    photo_url: Optional[str] = None
    meme: Optional[Meme] = None

    @property
    def is_photo(self) -> bool:
        return self.photo_url is not None


@dataclass
class ChatReply:
    text: str = ""
    meme: Optional[Meme] = None
    subreddit: Optional[str] = None


def greeting(first_name: str, hour: int) -> str:
    if 5 <= hour < 12:
        return f"Good Morning {first_name}! 🌅"
    if 12 <= hour < 17:
        return f"Good Afternoon {first_name}! ☀️"
    if 17 <= hour < 22:
        return f"Good Evening {first_name}! 🌆"
    return f"Good Night {first_name}! 🌙"


class Assistant:
    """Owns the shared HTTP session, the services and every in-memory table."""

    def __init__(self, config: Config, *, llm: Optional[LLMService] = None):
        self.config = config
        self.rate_limiter = RateLimiter()
        self.llm = llm or LLMService(config.openai_api_key, config.model, self.rate_limiter)
        self.subscriptions = SubscriptionStore(config.subscriptions_path)
        self.stats = BotStats(config.admin_user_id)
        self.memes = MemeService()
        self.movies = MovieService(config.omdb_api_key)
        self.translator = Translator()
        self.images = ImageGenerator(config.hugging_face_token)
        self.voice = VoiceTranscriber(config.hugging_face_token)
        self.videos = VideoDownloader(config.max_video_mb * 1024 * 1024)
        self.translate_sessions: Dict[str, str] = {}
        self._http: Optional[aiohttp.ClientSession] = None

    @property
    def http(self) -> aiohttp.ClientSession:
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession(headers={"User-Agent": USER_AGENT})
        return self._http

    async def fetch_content(self, kind: str, subreddit: Optional[str] = None) -> Content:
        """Fetch one item of subscribable content; raises ServiceError on failure."""
        if kind == "fact":
            return Content(kind, text=await fetch_fact(self.http, "random", self.config.api_ninjas_key))
        if kind == "joke":
            return Content(kind, text=await fetch_joke(self.http))
        if kind == "quote":
            quote = await fetch_quote(self.http)
            return Content(kind, text=quote.format())
        if kind == "meme":
            meme = await self.memes.fetch(self.http, subreddit)
            return Content(kind, text=meme.caption(), photo_url=meme.url, meme=meme)
        raise ValueError(f"invalid content type: {kind}")

    async def handle_chat(self, chat_id, text: str) -> ChatReply:
        intent = await self.llm.detect_intent(text)
        if intent.type == "meme":
            subreddit = intent.subreddit or self.memes.preferred(chat_id)
            meme = await self.memes.fetch(self.http, subreddit)
            return ChatReply(meme=meme, subreddit=subreddit)
        return ChatReply(text=await self.llm.generate_response(chat_id, text))

    def start_translation(self, chat_id, text: str) -> None:
        self.translate_sessions[str(chat_id)] = text

    def pending_translation(self, chat_id) -> Optional[str]:
        return self.translate_sessions.get(str(chat_id))

    def end_translation(self, chat_id) -> None:
        self.translate_sessions.pop(str(chat_id), None)

    async def close(self) -> None:
        if self._http is not None and not self._http.closed:
            await self._http.close()
        await self.llm.close()
