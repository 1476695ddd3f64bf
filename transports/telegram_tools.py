import asyncio
import logging
import time
from typing import Coroutine, Dict, Optional, Set

from telegram import Message, ReplyKeyboardRemove, Update
from telegram.constants import ParseMode
from telegram.error import BadRequest, TelegramError
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from core.currency import convert, format_conversion, parse_query
from core.errors import ServiceError
from core.tictactoe import game_over_text
from core.timezones import find_timezone, format_time_message
from core.translate import HELP_TEXT as TRANSLATE_HELP
from core.translate import resolve_language, split_arguments
from transports import telegram_keyboards as keyboards
from transports.telegram_common import command_text, delete_later, safe_delete

log = logging.getLogger(__name__)

CLOCK_UPDATES = 300
CLEAR_DEFAULT = 100
CLEAR_ALL = 1000
DELETE_BATCH = 100
SELF_DESTRUCT_SECONDS = 30
CONFIRM_SECONDS = 30
SPINNER_FRAMES = "◜◝◞◟"

CURRENCY_USAGE = (
    "*Currency Converter* 💱\n\n"
    "Usage: /cr <amount> <from> to <to>\n"
    "Examples:\n"
    "`/cr 100 usd to eur`\n"
    "`/currency 12,5 gbp jpy`\n"
    "`/cr btc usd`"
)
CLEANUP_DONE = (
    "🧹 *Cleanup Complete*\n\n"
    "Messages have been deleted.\n\n"
    "Note: Messages older than 48 hours cannot be deleted.\n\n"
    "_This message will self-destruct in 30 seconds..._"
)
CLEAR_ALL_WARNING = (
    "⚠️ WARNING:\n"
    "This will:\n"
    "• Clear all messages in this chat\n"
    "• Delete all media files in this chat\n\n"
    "Note: This only affects messages in your chat with the bot.\n\n"
    "Are you sure? Reply with /confirm within 30 seconds to proceed."
)


def message_ids_before(last_id: int, count: int):
    """Ids from last_id downwards, `count` of them, never below 1."""
    return list(range(last_id, max(0, last_id - count), -1))


class ToolHandlers:
    def __init__(self, assistant):
        self.assistant = assistant
        self._clocks: Dict[int, asyncio.Task] = {}
        # chat id -> deadline of the "/clear all" confirmation
        self._pending_clear: Dict[int, float] = {}
        self._tasks: Set[asyncio.Task] = set()

    def _spawn(self, coro: Coroutine) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def shutdown(self) -> None:
        """Cancel clocks, spinners and pending self-deletes."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def register(self, application: Application) -> None:
        application.add_handler(CommandHandler(["time", "tm", "t"], self.show_time))
        application.add_handler(CommandHandler(["currency", "cr"], self.currency))
        application.add_handler(CommandHandler(["translate", "trns", "trans"], self.translate))
        application.add_handler(CommandHandler("clear", self.clear))
        application.add_handler(CommandHandler("confirm", self.confirm))
        application.add_handler(CommandHandler(["tictactoe", "ttt"], self.tictactoe))
        application.add_handler(MessageHandler(filters.StatusUpdate.WEB_APP_DATA, self.web_app_data))
        application.add_handler(CallbackQueryHandler(self.translate_callback, pattern=r"^translate_"))

    # time

    async def show_time(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.effective_message
        location = command_text(message)
        if not location:
            await message.reply_text(
                "Please provide a city or country name.\nExample: `/time Paris` or `/t Japan`",
                parse_mode=ParseMode.MARKDOWN,
            )
            return
        zone = find_timezone(location)
        if zone is None:
            await message.reply_text(
                "Sorry, I couldn't find that location. Please try another city or country name."
            )
            return

        clock = await message.reply_text(format_time_message(zone), parse_mode=ParseMode.MARKDOWN)
        previous = self._clocks.pop(message.chat_id, None)
        if previous:
            previous.cancel()
        self._clocks[message.chat_id] = self._spawn(self._run_clock(clock, zone))

    async def _run_clock(self, clock: Message, zone: str) -> None:
        try:
            for _ in range(CLOCK_UPDATES):
                await asyncio.sleep(1)
                try:
                    await clock.edit_text(format_time_message(zone), parse_mode=ParseMode.MARKDOWN)
                except TelegramError as exc:
                    log.info("stopping clock in %s: %s", clock.chat_id, exc)
                    break
        finally:
            if self._clocks.get(clock.chat_id) is asyncio.current_task():
                del self._clocks[clock.chat_id]

    # currency

    async def currency(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.effective_message
        query = parse_query(command_text(message))
        if query is None:
            await message.reply_text(CURRENCY_USAGE, parse_mode=ParseMode.MARKDOWN)
            return
        try:
            conversion = await convert(self.assistant.http, query)
        except ServiceError as exc:
            await message.reply_text(exc.user_message)
            return
        await message.reply_text(format_conversion(conversion), parse_mode=ParseMode.MARKDOWN)

    # translate

    async def translate(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.effective_message
        chat_id = message.chat_id
        language, text = split_arguments(context.args or [])
        if not text and not language:
            await message.reply_text(TRANSLATE_HELP, parse_mode=ParseMode.MARKDOWN)
            return

        target = resolve_language(language)
        if language and target is None:
            # first word was not a language after all
            text = " ".join(context.args)
        self.assistant.start_translation(chat_id, text)

        if language is None:
            await message.reply_text("Select target language:", reply_markup=keyboards.all_languages())
            return
        if target is None:
            await message.reply_text(
                f"🎯 Select target language:\n\nText to translate:\n{text}",
                reply_markup=keyboards.popular_languages(),
            )
            return

        status = await message.reply_text("🔄 *Translating...*", parse_mode=ParseMode.MARKDOWN)
        await self._translate_into(status, chat_id, target)

    async def _translate_into(self, status: Message, chat_id, target: str) -> None:
        text = self.assistant.pending_translation(chat_id)
        try:
            translation = await self.assistant.translator.translate(self.assistant.http, text, target)
        except ServiceError as exc:
            await status.edit_text(exc.user_message)
            return
        finally:
            self.assistant.end_translation(chat_id)
        try:
            await status.edit_text(
                translation.format(), parse_mode=ParseMode.MARKDOWN, reply_markup=keyboards.translate_another()
            )
        except BadRequest as exc:
            log.info("markdown rejected for translation: %s", exc)
            await status.edit_text(translation.format().replace("*", ""), reply_markup=keyboards.translate_another())

    async def translate_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        chat_id = query.message.chat_id
        choice = query.data.split("_", 1)[1]

        if choice == "start":
            await query.answer()
            await query.message.reply_text("✍️ Send /trans <text> to translate something else.")
            return
        if self.assistant.pending_translation(chat_id) is None:
            await query.answer("Session expired. Please send /trans again.", show_alert=True)
            return
        if choice == "cancel":
            self.assistant.end_translation(chat_id)
            await query.answer()
            await query.edit_message_text("❌ Translation cancelled.")
            return
        if choice == "more":
            await query.answer()
            await query.edit_message_reply_markup(reply_markup=keyboards.all_languages())
            return

        await query.answer()
        await query.edit_message_text("🔄 *Translating...*", parse_mode=ParseMode.MARKDOWN)
        await self._translate_into(query.message, chat_id, choice)

    # clear

    async def clear(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.effective_message
        param = context.args[0].lower() if context.args else ""
        if param == "all":
            warning = await message.reply_text(CLEAR_ALL_WARNING)
            self._pending_clear[message.chat_id] = time.monotonic() + CONFIRM_SECONDS
            self._spawn(self._expire_confirmation(message.chat_id, warning))
            return
        try:
            amount = max(1, int(param)) if param else CLEAR_DEFAULT
        except ValueError:
            amount = CLEAR_DEFAULT
        await self._run_cleanup(context, message, message.message_id, amount)

    async def _expire_confirmation(self, chat_id: int, warning: Message) -> None:
        await asyncio.sleep(CONFIRM_SECONDS)
        deadline = self._pending_clear.get(chat_id)
        if deadline is not None and deadline <= time.monotonic():
            del self._pending_clear[chat_id]
        await safe_delete(warning)

    async def confirm(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.effective_message
        deadline = self._pending_clear.pop(message.chat_id, None)
        if deadline is None or deadline < time.monotonic():
            await message.reply_text("Nothing to confirm. Use /clear all first.")
            return
        await self._run_cleanup(context, message, message.message_id, CLEAR_ALL)

    async def _run_cleanup(self, context, message: Message, last_id: int, amount: int) -> None:
        chat_id = message.chat_id
        status = await context.bot.send_message(
            chat_id=chat_id, text="*Cleanup in progress* ◡", parse_mode=ParseMode.MARKDOWN
        )
        spinner = self._spawn(self._spin(status))
        try:
            deleted = await self._delete_ids(context.bot, chat_id, message_ids_before(last_id, amount))
            log.info("cleared %d message batches in %s", deleted, chat_id)
        except TelegramError as exc:
            log.error("clear command failed in %s: %s", chat_id, exc)
            spinner.cancel()
            await safe_delete(status)
            error = await context.bot.send_message(
                chat_id=chat_id, text="❌ Error during cleanup. Some messages may not have been deleted."
            )
            self._spawn(delete_later(error, SELF_DESTRUCT_SECONDS))
            return
        spinner.cancel()
        await safe_delete(status)
        done = await context.bot.send_message(chat_id=chat_id, text=CLEANUP_DONE, parse_mode=ParseMode.MARKDOWN)
        self._spawn(delete_later(done, SELF_DESTRUCT_SECONDS))

    @staticmethod
    async def _delete_ids(bot, chat_id: int, ids) -> int:
        batches = 0
        for start in range(0, len(ids), DELETE_BATCH):
            chunk = ids[start : start + DELETE_BATCH]
            try:
                await bot.delete_messages(chat_id=chat_id, message_ids=chunk)
            except BadRequest as exc:
                # missing or too old messages are expected
                log.debug("batch delete in %s: %s", chat_id, exc)
                continue
            batches += 1
        return batches

    @staticmethod
    async def _spin(status: Message) -> None:
        frame = 0
        while True:
            await asyncio.sleep(0.5)
            try:
                await status.edit_text(
                    f"*Cleanup in progress* {SPINNER_FRAMES[frame]}", parse_mode=ParseMode.MARKDOWN
                )
            except TelegramError as exc:
                log.debug("spinner update failed: %s", exc)
            frame = (frame + 1) % len(SPINNER_FRAMES)

    # tictactoe

    async def tictactoe(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        await update.effective_message.reply_text(
            "🎮 Let's play Tic Tac Toe!",
            reply_markup=keyboards.tictactoe(self.assistant.config.tictactoe_url),
        )

    async def web_app_data(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.effective_message
        text: Optional[str] = game_over_text(message.web_app_data.data)
        if text is None:
            return
        await message.reply_text(text, reply_markup=ReplyKeyboardRemove())
