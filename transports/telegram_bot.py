import asyncio
import logging
from datetime import datetime
from typing import Optional

from telegram import Update
from telegram.constants import ChatAction, ParseMode
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from core.assistant import greeting
from core.errors import ServiceError
from core.scheduler import SubscriptionScheduler
from transports import telegram_keyboards as keyboards
from transports.telegram_admin import AdminHandlers
from transports.telegram_common import reply_long
from transports.telegram_content import ContentHandlers
from transports.telegram_media import MediaHandlers
from transports.telegram_tools import ToolHandlers

log = logging.getLogger(__name__)

HELP_MESSAGE = "Hi, My name is Nite\nI am a versatile personal assistant bot."

COMMANDS_MESSAGE = """*Available Commands:*

/time, /tm, /t (location) - Live clock for a city or country
/currency, /cr (amount from to) - Real-time currency conversion
/imagine, /image, /im, /i (prompt) - Generate images using AI
/meme, /mm (subreddit|random) - Fresh memes from Reddit
/joke, /jk - A random joke
/fact, /ft (category) - A random fact
/quote, /qt - An inspirational quote
/movie, /mv (title|imdb id) - Movie information
/translate, /trns, /trans (lang) (text) - Translate text
/transcribe, /trcb - Transcribe your next voice message
/ytdl, /yt (url) - Download a YouTube video
/subscribe, /unsubscribe, /subscriptions - Daily content
/clear (n|all) - Delete recent messages
/tictactoe, /ttt - Play Tic Tac Toe

Any other text is answered by the assistant."""

ABOUT_MESSAGE = "*Nite v1.1*\nA versatile Telegram bot."

HOUSEKEEPING_INTERVAL = 60


class TelegramTransport:
    def __init__(self, assistant, token: str):
        self.assistant = assistant
        self.application = Application.builder().token(token).concurrent_updates(True).build()
        self.admin = AdminHandlers(assistant)
        self.content = ContentHandlers(assistant)
        self.tools = ToolHandlers(assistant)
        self.media = MediaHandlers(assistant)
        self.scheduler = SubscriptionScheduler(assistant.subscriptions, self._deliver)
        self._register_handlers()
        self._stop_event = asyncio.Event()
        self._housekeeping: Optional[asyncio.Task] = None

    def _register_handlers(self):
        app = self.application
        self.admin.register(app)
        app.add_handler(CommandHandler("start", self.start_command))
        app.add_handler(CommandHandler("help", self.help_command))
        app.add_handler(MessageHandler(filters.Regex(r"^/\?(\s|@|$)"), self.help_command))
        app.add_handler(CallbackQueryHandler(self.help_callback, pattern=r"^help_(commands|about|main)$"))
        self.content.register(app)
        self.tools.register(app)
        self.media.register(app)
        app.add_handler(MessageHandler(filters.TEXT & (~filters.COMMAND), self.handle_message))
        app.add_error_handler(self.on_error)

    async def start_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        user = update.effective_user
        name = user.first_name if user else "there"
        await update.effective_message.reply_text(greeting(name, datetime.now().hour))

    async def help_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        await update.effective_message.reply_text(
            HELP_MESSAGE, parse_mode=ParseMode.MARKDOWN, reply_markup=keyboards.help_menu()
        )

    async def help_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        await query.answer()
        if query.data == "help_commands":
            text, markup = COMMANDS_MESSAGE, keyboards.back_to_help()
        elif query.data == "help_about":
            text, markup = ABOUT_MESSAGE, keyboards.back_to_help()
        else:
            text, markup = HELP_MESSAGE, keyboards.help_menu()
        await query.edit_message_text(text, parse_mode=ParseMode.MARKDOWN, reply_markup=markup)

    async def handle_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.effective_message
        user = update.effective_user
        if not message or not message.text or not user or user.is_bot:
            return
        chat_id = message.chat_id
        await context.bot.send_chat_action(chat_id=chat_id, action=ChatAction.TYPING)
        try:
            reply = await self.assistant.handle_chat(chat_id, message.text)
        except ServiceError as exc:
            await message.reply_text(exc.user_message)
            return
        if reply.meme is not None:
            await self.content.post_meme(context.bot, chat_id, reply.meme, reply.subreddit)
            return
        await reply_long(message, reply.text)

    async def on_error(self, update: object, context: ContextTypes.DEFAULT_TYPE):
        log.error("unhandled error while processing %s", update, exc_info=context.error)

    async def _deliver(self, chat_id: str, kind: str) -> None:
        await self.content.deliver(self.application.bot, chat_id, kind)

    async def _run_housekeeping(self) -> None:
        while True:
            await asyncio.sleep(HOUSEKEEPING_INTERVAL)
            self.assistant.rate_limiter.cleanup()

    async def start(self):
        await self.application.initialize()
        await self.application.start()
        await self.application.updater.start_polling()
        self.scheduler.start()
        self._housekeeping = asyncio.create_task(self._run_housekeeping())
        log.info("telegram transport started")
        try:
            await self._stop_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            self._housekeeping.cancel()
            await self.scheduler.stop()
            await self.tools.shutdown()
            await self.application.updater.stop()
            await self.application.stop()
            await self.application.shutdown()

    async def stop(self):
        self._stop_event.set()
