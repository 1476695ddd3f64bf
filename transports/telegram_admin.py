import functools
import logging
import time
from datetime import datetime, timedelta

from telegram import Update
from telegram.constants import ParseMode
from telegram.error import Forbidden, TelegramError
from telegram.ext import (
    Application,
    ApplicationHandlerStop,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    TypeHandler,
)

from core.stats import help_page
from transports import telegram_keyboards as keyboards
from transports.telegram_common import ADMIN_ONLY_TEXT, command_text

log = logging.getLogger(__name__)

MAINTENANCE_TEXT = "🛠 The bot is under maintenance right now. Please try again later."
BROADCAST_PROGRESS_EVERY = 5


def admin_only(handler):
    @functools.wraps(handler)
    async def wrapper(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        user = update.effective_user
        if user is None or not self.stats.is_admin(user.id):
            if update.callback_query:
                await update.callback_query.answer("⛔ This action is only available for administrators.")
            elif update.effective_message:
                await update.effective_message.reply_text(ADMIN_ONLY_TEXT)
            return
        return await handler(self, update, context)

    return wrapper


class AdminHandlers:
    def __init__(self, assistant):
        self.assistant = assistant
        self.stats = assistant.stats

    def register(self, application: Application) -> None:
        # runs before every other handler group
        application.add_handler(TypeHandler(Update, self.track), group=-1)
        application.add_handler(CommandHandler("stats", self.show_stats))
        application.add_handler(CommandHandler("clearstats", self.clear_stats))
        application.add_handler(CommandHandler("broadcast", self.broadcast))
        application.add_handler(CommandHandler("previewbroadcast", self.preview_broadcast))
        application.add_handler(CommandHandler("broadcastinfo", self.broadcast_info))
        application.add_handler(CommandHandler("maintenance", self.maintenance))
        application.add_handler(CommandHandler("admin", self.admin_help))
        application.add_handler(CallbackQueryHandler(self.admin_help_page, pattern=r"^admin_help_\d+$"))

    async def track(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        user = update.effective_user
        if user is None:
            return
        chat = update.effective_chat
        self.stats.track(user.id, chat.id if chat else None)
        if not self.stats.maintenance or self.stats.is_admin(user.id):
            return
        if update.callback_query:
            await update.callback_query.answer(MAINTENANCE_TEXT, show_alert=True)
        elif update.message:
            await update.message.reply_text(MAINTENANCE_TEXT)
        raise ApplicationHandlerStop

    @admin_only
    async def show_stats(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        uptime = timedelta(seconds=int(time.time() - self.stats.started_at))
        text = (
            "📊 *Bot Statistics*\n\n"
            f"Total Unique Users: {self.stats.total_users}\n"
            f"Active Chats: {self.stats.audience}\n"
            f"Uptime: {uptime}\n"
            f"Last Updated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}"
        )
        await update.effective_message.reply_text(text, parse_mode=ParseMode.MARKDOWN)

    @admin_only
    async def clear_stats(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        self.stats.clear()
        await update.effective_message.reply_text("✅ Statistics have been cleared.")

    @admin_only
    async def broadcast(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.effective_message
        text = command_text(message)
        if not text:
            await message.reply_text("Usage: /broadcast <message>")
            return

        status = await message.reply_text("🚀 Starting broadcast...\n\nMessage:\n" + text)
        sent = failed = 0
        for chat_id in sorted(self.stats.chats):
            try:
                await context.bot.send_message(
                    chat_id=chat_id,
                    text=f"📢 *Broadcast Message*\n\n{text}",
                    parse_mode=ParseMode.MARKDOWN,
                )
                sent += 1
            except Forbidden as exc:
                log.info("dropping chat %s from broadcast audience: %s", chat_id, exc)
                self.stats.forget_chat(chat_id)
                failed += 1
            except TelegramError as exc:
                log.warning("broadcast to %s failed: %s", chat_id, exc)
                failed += 1
            if (sent + failed) % BROADCAST_PROGRESS_EVERY == 0:
                await self._edit_status(
                    status,
                    f"🚀 *Broadcasting in Progress*\n\n✅ Sent: {sent}\n❌ Failed: {failed}\n\nPlease wait...",
                )

        log.info("broadcast finished: %d sent, %d failed", sent, failed)
        await self._edit_status(
            status,
            f"📊 *Broadcast Complete*\n\n✅ Successfully sent: {sent}\n❌ Failed: {failed}\n📝 Message:\n{text}",
        )

    @staticmethod
    async def _edit_status(status, text: str) -> None:
        try:
            await status.edit_text(text, parse_mode=ParseMode.MARKDOWN)
        except TelegramError as exc:
            log.warning("error updating broadcast status: %s", exc)

    @admin_only
    async def preview_broadcast(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.effective_message
        text = command_text(message)
        if not text:
            await message.reply_text("Usage: /previewbroadcast <message>")
            return
        await message.reply_text(
            f"📢 *Preview of Broadcast Message*\n\n{text}", parse_mode=ParseMode.MARKDOWN
        )

    @admin_only
    async def broadcast_info(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        await update.effective_message.reply_text(
            "📊 *Broadcast Information*\n\n"
            f"Total potential recipients: {self.stats.audience}\n\n"
            "Use /previewbroadcast <message> to test your message\n"
            "Use /broadcast <message> to send to all users",
            parse_mode=ParseMode.MARKDOWN,
        )

    @admin_only
    async def maintenance(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.effective_message
        action = context.args[0].lower() if context.args else ""
        if action == "stop":
            self.stats.maintenance = True
            log.info("maintenance mode enabled")
            await message.reply_text("🔄 Bot is going into maintenance mode...")
        elif action == "start":
            self.stats.maintenance = False
            log.info("maintenance mode disabled")
            await message.reply_text("✅ Bot is now active again!")
        else:
            await message.reply_text("Usage: /maintenance <stop|start>")

    @admin_only
    async def admin_help(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        await update.effective_message.reply_text(
            help_page(1), parse_mode=ParseMode.MARKDOWN, reply_markup=keyboards.admin_help(1)
        )

    @admin_only
    async def admin_help_page(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        page = int(query.data.rsplit("_", 1)[1])
        try:
            await query.edit_message_text(
                help_page(page), parse_mode=ParseMode.MARKDOWN, reply_markup=keyboards.admin_help(page)
            )
        except TelegramError as exc:
            log.error("admin help pagination error: %s", exc)
            await query.answer("❌ Error updating help message.")
            return
        await query.answer()
