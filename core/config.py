import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

log = logging.getLogger(__name__)

REQUIRED_VARS = (
    "TELEGRAM_BOT_TOKEN",
    "OPENAI_API_KEY",
    "HUGGING_FACE_TOKEN",
    "ADMIN_USER_ID",
)


def _env_int(name: str, default: int, *, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return max(minimum, value)


def parse_share_pair(raw: str) -> Tuple[Tuple[str, str], ...]:
    """Parse "id[:name],id[:name]" into two (chat id, display name) entries."""
    entries = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        chat_id, _, name = item.partition(":")
        entries.append((chat_id.strip(), name.strip() or "partner"))
    if entries and len(entries) != 2:
        log.warning("MEME_SHARE_CHAT_IDS expects exactly two chats; ignoring")
        return ()
    return tuple(entries)


def share_target(pair: Tuple[Tuple[str, str], ...], chat_id) -> Optional[Tuple[str, str]]:
    """The other chat of the share pair, when chat_id is one of the two."""
    if len(pair) != 2:
        return None
    first, second = pair
    if str(chat_id) == first[0]:
        return second
    if str(chat_id) == second[0]:
        return first
    return None


@dataclass
class Config:
    telegram_token: str
    openai_api_key: str
    hugging_face_token: str
    admin_user_id: str
    model: str = "gpt-4.1-mini"
    omdb_api_key: Optional[str] = None
    api_ninjas_key: Optional[str] = None
    meme_share_pair: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)
    data_dir: Path = Path("data")
    tictactoe_url: str = "https://localhost:8443"
    max_video_mb: int = 50
    log_level: str = "INFO"

    @property
    def subscriptions_path(self) -> Path:
        return self.data_dir / "subscriptions.json"

    @classmethod
    def from_env(cls) -> "Config":
        missing = [name for name in REQUIRED_VARS if not os.getenv(name)]
        if missing:
            for name in missing:
                log.error("missing required environment variable: %s", name)
            raise SystemExit(
                f"Missing required environment variables: {', '.join(missing)}"
            )

        share_pair = parse_share_pair(os.getenv("MEME_SHARE_CHAT_IDS", ""))

        return cls(
            telegram_token=os.environ["TELEGRAM_BOT_TOKEN"],
            openai_api_key=os.environ["OPENAI_API_KEY"],
            hugging_face_token=os.environ["HUGGING_FACE_TOKEN"],
            admin_user_id=os.environ["ADMIN_USER_ID"].strip(),
            model=os.getenv("MODEL", "gpt-4.1-mini"),
            omdb_api_key=os.getenv("OMDB_API_KEY") or None,
            api_ninjas_key=os.getenv("API_NINJAS_KEY") or None,
            meme_share_pair=share_pair,
            data_dir=Path(os.getenv("DATA_DIR", "data")),
            tictactoe_url=os.getenv("TICTACTOE_URL", "https://localhost:8443"),
            max_video_mb=_env_int("MAX_VIDEO_MB", 50),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
