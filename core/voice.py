import logging

import aiohttp

from .errors import HTTP_ERRORS, UnavailableError

log = logging.getLogger(__name__)

WHISPER_MODEL = "openai/whisper-base"
HF_INFERENCE_URL = "https://router.huggingface.co/hf-inference/models/{model}"


class VoiceTranscriber:
    """Speech-to-text over the Hugging Face inference API; tracks chats waiting for a voice note."""

    def __init__(self, token: str, model: str = WHISPER_MODEL):
        self.token = token
        self.model = model
        self.waiting: set = set()

    def enable(self, chat_id) -> None:
        self.waiting.add(str(chat_id))

    def cancel(self, chat_id) -> bool:
        key = str(chat_id)
        if key in self.waiting:
            self.waiting.discard(key)
            return True
        return False

    async def transcribe(self, http: aiohttp.ClientSession, audio: bytes, content_type: str = "audio/ogg") -> str:
        url = HF_INFERENCE_URL.format(model=self.model)
        headers = {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": content_type,
            "x-wait-for-model": "true",
        }
        log.info("starting transcription (%d bytes)", len(audio))
        try:
            async with http.post(
                url,
                data=audio,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=120),
            ) as resp:
                if resp.status != 200:
                    detail = await resp.text()
                    log.error("transcription failed: HTTP %s %s", resp.status, detail[:200])
                    raise UnavailableError()
                payload = await resp.json(content_type=None)
        except HTTP_ERRORS as exc:
            log.error("transcription request failed: %s", exc)
            raise UnavailableError() from exc
        text = str((payload or {}).get("text") or "").strip()
        log.info("transcription completed: %s", text)
        return text
