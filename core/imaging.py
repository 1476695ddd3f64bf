import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import aiohttp

from .errors import HTTP_ERRORS, UnavailableError

log = logging.getLogger(__name__)

HF_INFERENCE_URL = "https://router.huggingface.co/hf-inference/models/{model}"
GENERATION_TIMEOUT = 180

MODELS: Dict[str, str] = {
    "FLUX Dev": "black-forest-labs/FLUX.1-dev",
    "FLUX Schnell": "black-forest-labs/FLUX.1-schnell",
    "FLUX Realism": "XLabs-AI/flux-RealismLora",
    "FLUX Logo": "Shakker-Labs/FLUX.1-dev-LoRA-Logo-Design",
    "FLUX Koda": "alvdansen/flux-koda",
    "Anime Style": "alvdansen/softserve_anime",
}
MODEL_NAMES: List[str] = list(MODELS)


@dataclass
class ImageSession:
    prompt: str
    reply_to_message_id: Optional[int] = None


def model_by_index(index: int) -> Optional[Tuple[str, str]]:
    if 0 <= index < len(MODEL_NAMES):
        name = MODEL_NAMES[index]
        return name, MODELS[name]
    return None


class PromptHistory(OrderedDict):
    """Prompt of each generated photo, keyed by (chat id, message id), oldest evicted first."""

    def __init__(self, max_items: int = 500):
        super().__init__()
        self.max_items = max_items

    def remember(self, chat_id, message_id: int, session: ImageSession) -> None:
        key = (str(chat_id), message_id)
        self[key] = session
        self.move_to_end(key)
        while len(self) > self.max_items:
            self.popitem(last=False)

    def recall(self, chat_id, message_id: int) -> Optional[ImageSession]:
        return self.get((str(chat_id), message_id))


class ImageGenerator:
    def __init__(self, token: str):
        self.token = token
        self.sessions: Dict[str, ImageSession] = {}
        self.history = PromptHistory()

    def start_session(self, chat_id, prompt: str, reply_to_message_id: Optional[int]) -> ImageSession:
        session = ImageSession(prompt=prompt, reply_to_message_id=reply_to_message_id)
        self.sessions[str(chat_id)] = session
        return session

    def get_session(self, chat_id) -> Optional[ImageSession]:
        return self.sessions.get(str(chat_id))

    def end_session(self, chat_id) -> None:
        self.sessions.pop(str(chat_id), None)

    async def generate(self, http: aiohttp.ClientSession, model_id: str, prompt: str) -> bytes:
        url = HF_INFERENCE_URL.format(model=model_id)
        headers = {
            "Authorization": f"Bearer {self.token}",
            "Accept": "image/png",
            "x-wait-for-model": "true",
        }
        log.info("starting generation with %s", model_id)
        try:
            async with http.post(
                url,
                json={"inputs": prompt},
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=GENERATION_TIMEOUT),
            ) as resp:
                if resp.status != 200:
                    detail = await resp.text()
                    log.error("%s: HTTP %s %s", model_id, resp.status, detail[:200])
                    raise UnavailableError()
                content_type = resp.headers.get("Content-Type", "")
                if not content_type.startswith("image/"):
                    log.error("%s: unexpected content type %s", model_id, content_type)
                    raise UnavailableError()
                data = await resp.read()
        except HTTP_ERRORS as exc:
            log.error("%s: %s", model_id, exc)
            raise UnavailableError() from exc
        log.info("%s: 200 DONE (%d bytes)", model_id, len(data))
        return data
