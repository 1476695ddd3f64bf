import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from telegram import Message
from telegram.constants import ParseMode
from telegram.error import BadRequest, TelegramError

from core.llm import split_message

log = logging.getLogger(__name__)

ADMIN_ONLY_TEXT = "⛔ This command is only available for administrators."


def command_text(message: Optional[Message]) -> str:
    """Everything after the command word, with the original spacing and line breaks."""
    if not message or not message.text:
        return ""
    return message.text.partition(" ")[2].strip()


async def reply_markdown(message: Message, text: str, **kwargs) -> Message:
    """Reply with Markdown, resending as plain text when Telegram rejects the entities."""
    try:
        return await message.reply_text(text, parse_mode=ParseMode.MARKDOWN, **kwargs)
    except BadRequest as exc:
        log.info("markdown rejected, sending plain text: %s", exc)
        return await message.reply_text(text, **kwargs)


async def reply_long(message: Message, text: str) -> None:
    for chunk in split_message(text):
        await reply_markdown(message, chunk)


async def safe_delete(message: Optional[Message]) -> bool:
    if message is None:
        return False
    try:
        await message.delete()
    except TelegramError as exc:
        log.debug("could not delete message %s: %s", message.message_id, exc)
        return False
    return True


async def delete_later(message: Message, delay: float) -> None:
    await asyncio.sleep(delay)
    await safe_delete(message)


@asynccontextmanager
async def chat_action(bot, chat_id, action: str, interval: float = 3.0):
    """Keep a chat action ("upload_photo", "typing", ...) visible while the block runs."""

    async def _repeat():
        while True:
            try:
                await bot.send_chat_action(chat_id=chat_id, action=action)
            except TelegramError as exc:
                log.debug("chat action failed in %s: %s", chat_id, exc)
            await asyncio.sleep(interval)

    task = asyncio.create_task(_repeat())
    try:
        yield
    finally:
        task.cancel()
