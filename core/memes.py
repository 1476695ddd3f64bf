import logging
import random
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import aiohttp
import yaml

from .errors import HTTP_ERRORS, AccessDeniedError, NotFoundError, UnavailableError

log = logging.getLogger(__name__)

SUBREDDITS_FILE = Path(__file__).with_name("data").joinpath("meme_subreddits.yaml")
FALLBACK_SUBREDDITS = ["memes", "dankmemes", "wholesomememes"]

SORT_METHODS = ["hot", "top", "new"]
TIME_FILTERS = ["all", "year", "month", "week"]
IMAGE_PATTERN = re.compile(r"\.(jpg|jpeg|png|gif)$", re.IGNORECASE)
SUBREDDIT_PATTERN = re.compile(r"^[A-Za-z0-9_]{2,21}$")

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
)


@dataclass
class Meme:
    title: str
    url: str
    author: str
    subreddit: str
    upvotes: int
    link: str
    sort_method: str
    time_filter: Optional[str] = None

    def caption(self) -> str:
        return f"{self.title}\n\n💻 u/{self.author}\n⌨️ r/{self.subreddit}"

    def detailed_caption(self) -> str:
        author = f"👤 u/{self.author}"
        subreddit = f"🔗 r/{self.subreddit}"
        width = max(len(author), len(subreddit)) + 4
        source = self.sort_method + (f"/{self.time_filter}" if self.time_filter else "")
        return (
            f"{self.title}\n\n"
            f"{author.ljust(width)}👍 {self.upvotes:,}\n"
            f"{subreddit.ljust(width)}📊 From {source}"
        )


def load_subreddits(path: Path = SUBREDDITS_FILE) -> List[str]:
    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        subreddits = [str(s) for s in payload.get("subreddits", []) if s]
    except (OSError, yaml.YAMLError, AttributeError) as exc:
        log.error("failed to load meme subreddits: %s", exc)
        subreddits = []
    return subreddits or list(FALLBACK_SUBREDDITS)


def is_valid_subreddit(name: str) -> bool:
    return bool(SUBREDDIT_PATTERN.match(name or ""))


def pick_posts(children: List[dict]) -> List[dict]:
    posts = []
    for child in children:
        data = child.get("data") or {}
        url = data.get("url") or ""
        if not IMAGE_PATTERN.search(url):
            continue
        if data.get("is_video") or data.get("stickied"):
            continue
        posts.append(data)
    return posts


class MemeService:
    def __init__(self, subreddits: Optional[List[str]] = None, rng: Optional[random.Random] = None):
        self.subreddits = subreddits or load_subreddits()
        self.rng = rng or random.Random()
        self.preferences: Dict[str, str] = {}

    def preferred(self, chat_id) -> Optional[str]:
        return self.preferences.get(str(chat_id))

    def set_preference(self, chat_id, subreddit: Optional[str]) -> None:
        if subreddit:
            self.preferences[str(chat_id)] = subreddit
        else:
            self.preferences.pop(str(chat_id), None)

    async def fetch(self, session: aiohttp.ClientSession, subreddit: Optional[str] = None) -> Meme:
        target = subreddit or self.rng.choice(self.subreddits)
        sort_method = self.rng.choice(SORT_METHODS)
        time_filter = self.rng.choice(TIME_FILTERS) if sort_method == "top" else None

        url = f"https://www.reddit.com/r/{target}/{sort_method}.json"
        params = {"limit": "100", "raw_json": "1"}
        if time_filter:
            params["t"] = time_filter

        try:
            async with session.get(
                url,
                params=params,
                headers={"User-Agent": USER_AGENT},
                timeout=aiohttp.ClientTimeout(total=15),
                allow_redirects=False,
            ) as resp:
                if resp.status == 403:
                    raise AccessDeniedError("❌ This subreddit is private or quarantined.")
                if resp.status in (404, 302):
                    raise NotFoundError("❌ Subreddit not found.")
                resp.raise_for_status()
                payload = await resp.json(content_type=None)
        except HTTP_ERRORS as exc:
            log.warning("reddit fetch failed for r/%s: %s", target, exc)
            raise UnavailableError("😕 Sorry, I couldn't fetch a meme right now. Please try again later.") from exc

        children = ((payload or {}).get("data") or {}).get("children") or []
        if not children:
            raise NotFoundError("❌ This subreddit doesn't exist or has no posts. Please try another one.")
        posts = pick_posts(children)
        if not posts:
            raise UnavailableError("😕 No image memes found there right now. Please try again later.")

        post = self.rng.choice(posts)
        return Meme(
            title=str(post.get("title") or ""),
            url=str(post["url"]),
            author=str(post.get("author") or "unknown"),
            subreddit=str(post.get("subreddit") or target),
            upvotes=int(post.get("ups") or 0),
            link=f"https://reddit.com{post.get('permalink', '')}",
            sort_method=sort_method,
            time_filter=time_filter,
        )
