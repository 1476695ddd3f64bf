"""Translation through public Lingva mirrors, tried in order until one answers."""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote

import aiohttp

from .errors import HTTP_ERRORS, UnavailableError

log = logging.getLogger(__name__)

LINGVA_INSTANCES = [
    f"{base}/api/v1"
    for base in (
        "https://lingva.ml",
        "https://lingva.fossdaily.xyz",
        "https://translate.plausibility.cloud",
        "https://lingva.pussthecat.org",
    )
]
REQUEST_TIMEOUT = 5

SUPPORTED_LANGUAGES: Dict[str, str] = {
    "auto": "Auto Detect",
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "it": "Italian",
    "pt": "Portuguese",
    "ru": "Russian",
    "ja": "Japanese",
    "ko": "Korean",
    "zh": "Chinese",
    "ar": "Arabic",
    "hi": "Hindi",
}

POPULAR_LANGUAGES: List[Tuple[str, str]] = [
    ("English", "en"),
    ("Spanish", "es"),
    ("Chinese", "zh"),
    ("Japanese", "ja"),
    ("Russian", "ru"),
    ("German", "de"),
    ("Italian", "it"),
    ("Hindi", "hi"),
]

HELP_TEXT = """*Nite Live Translate*

I. Direct Translation:
/trans en Hello World,
/trns English Bonjour le monde,
/translate german こんにちは

II. Quick Translation:
/trans Hello World
Shows a list of popular languages to choose from.

Source language is automatically detected"""


@dataclass
class Translation:
    text: str
    translated: str
    source: str
    target: str

    def format(self) -> str:
        return (
            f"🔤 *Original* ({language_name(self.source)}):\n{self.text}\n\n"
            f"🌐 *Translation* ({language_name(self.target)}):\n{self.translated}"
        )


def language_name(code: str) -> str:
    return SUPPORTED_LANGUAGES.get(code, code)


def resolve_language(value: Optional[str]) -> Optional[str]:
    """Map a code, a language name, or its first two letters to a supported target code."""
    if not value:
        return None
    wanted = value.strip().lower()
    for code, name in SUPPORTED_LANGUAGES.items():
        if code == "auto":
            continue
        if code == wanted or name.lower() == wanted or code == wanted[:2]:
            return code
    return None


def split_arguments(args: Sequence[str]) -> Tuple[Optional[str], str]:
    """Split command arguments into (language, text).

    The first word counts as a language only when more text follows it and it
    is purely alphabetic, mirroring "/trans <lang> <text>".
    """
    if not args:
        return None, ""
    if len(args) >= 2 and args[0].isalpha() and args[0].isascii():
        return args[0].lower(), " ".join(args[1:]).strip()
    return None, " ".join(args).strip()


class Translator:
    def __init__(self, instances: Optional[List[str]] = None):
        self.instances = instances or list(LINGVA_INSTANCES)

    async def translate(
        self,
        session: aiohttp.ClientSession,
        text: str,
        target: str,
        source: str = "auto",
    ) -> Translation:
        timeout = aiohttp.ClientTimeout(total=REQUEST_TIMEOUT)
        encoded = quote(text, safe="")
        last_error: Optional[BaseException] = None
        for api_url in self.instances:
            try:
                async with session.get(f"{api_url}/{source}/{target}/{encoded}", timeout=timeout) as resp:
                    resp.raise_for_status()
                    data = await resp.json(content_type=None)
                translated = data.get("translation")
                if not translated:
                    raise ValueError("empty translation")
            except HTTP_ERRORS as exc:
                log.warning("translation error with %s: %s", api_url, exc)
                last_error = exc
                continue
            detected = ((data.get("info") or {}).get("detectedSource")) or source
            return Translation(text=text, translated=translated, source=detected, target=target)

        log.error("all translation instances failed: %s", last_error)
        raise UnavailableError("❌ Sorry, translation failed. Please try again later.")
