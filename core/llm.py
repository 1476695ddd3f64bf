import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Optional

from openai import AsyncOpenAI, OpenAIError

from .ratelimit import RateLimiter

log = logging.getLogger(__name__)

MAX_HISTORY = 10
MAX_INPUT_CHARS = 30720
TELEGRAM_MESSAGE_LIMIT = 4096

SYSTEM_PROMPT = (
    "You are Nite, a friendly and versatile personal assistant living in a Telegram chat. "
    "Answer concisely. Telegram Markdown (*bold*, _italic_, `code`) is allowed."
)

INTENT_PROMPT = """You are an intent detector for a meme bot. Analyze if this message indicates the user wants to see a meme.
If they mention a specific subreddit, extract it.

Respond in this format:
- If user wants a random meme: "meme:random"
- If user specifies a subreddit: "meme:subredditname" (without r/ prefix)
- If not asking for meme: "other"

Examples:
"send me a meme" -> "meme:random"
"get a meme from r/memes" -> "meme:memes"
"show meme from dankmemes" -> "meme:dankmemes"
"how are you" -> "other"

Message: "{message}"
"""

RATE_LIMITED_TEXT = "I'm processing too many requests right now. Please try again in a moment."
TOO_LONG_TEXT = "Your message is too long. Please send a shorter message (max 30,720 characters)."
FAILURE_TEXT = (
    "I'm having trouble processing your request right now. Please try again in a moment. "
    "If the problem persists, contact support."
)


@dataclass
class Intent:
    type: str = "other"
    subreddit: Optional[str] = None


def parse_intent(answer: str) -> Intent:
    cleaned = (answer or "").strip().strip('"').strip().lower()
    if not cleaned.startswith("meme:"):
        return Intent()
    subreddit = cleaned.split(":", 1)[1].strip().strip('"')
    if subreddit.startswith("r/"):
        subreddit = subreddit[2:]
    if not subreddit or subreddit == "random":
        return Intent(type="meme")
    return Intent(type="meme", subreddit=subreddit)


def split_message(text: str, limit: int = TELEGRAM_MESSAGE_LIMIT) -> List[str]:
    """Cut text into chunks of at most `limit` characters, preferring line breaks."""
    chunks: List[str] = []
    remaining = text
    while len(remaining) > limit:
        cut = remaining.rfind("\n", 0, limit)
        if cut <= 0:
            cut = limit
        chunks.append(remaining[:cut])
        remaining = remaining[cut:].lstrip("\n")
    if remaining:
        chunks.append(remaining)
    return chunks


class LLMService:
    def __init__(
        self,
        api_key: str,
        model: str,
        rate_limiter: RateLimiter,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.client = client or AsyncOpenAI(api_key=api_key)
        self.model = model
        self.rate_limiter = rate_limiter
        self.history: Dict[str, List[dict]] = defaultdict(list)

    async def generate_response(self, chat_id, message: str) -> str:
        if not self.rate_limiter.check_llm(chat_id):
            return RATE_LIMITED_TEXT
        if len(message) > MAX_INPUT_CHARS:
            return TOO_LONG_TEXT

        history = self.history[str(chat_id)]
        messages = [{"role": "system", "content": SYSTEM_PROMPT}, *history, {"role": "user", "content": message}]
        try:
            completion = await self.client.chat.completions.create(model=self.model, messages=messages)
            reply = (completion.choices[0].message.content or "").strip()
        except OpenAIError as exc:
            log.error("error generating LLM response: %s", exc)
            return FAILURE_TEXT
        if not reply:
            return FAILURE_TEXT

        history.append({"role": "user", "content": message})
        history.append({"role": "assistant", "content": reply})
        del history[:-MAX_HISTORY]
        return reply

    async def detect_intent(self, message: str) -> Intent:
        try:
            completion = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": INTENT_PROMPT.format(message=message)}],
                temperature=0,
                max_tokens=20,
            )
            answer = completion.choices[0].message.content or ""
        except OpenAIError as exc:
            log.warning("error detecting intent: %s", exc)
            return Intent()
        return parse_intent(answer)

    async def close(self) -> None:
        await self.client.close()
