import logging

from telegram import Update
from telegram.constants import ChatAction, ParseMode
from telegram.error import BadRequest, Forbidden, TelegramError
from telegram.ext import Application, CallbackQueryHandler, CommandHandler, ContextTypes

from core.config import share_target
from core.errors import ServiceError
from core.facts import FACT_CATEGORIES, fetch_fact, normalize_category
from core.jokes import fetch_joke
from core.memes import is_valid_subreddit
from core.movies import USAGE_TEXT, format_movie, has_poster, shorten_plot
from core.quotes import fetch_quote
from core.scheduler import CONTENT_TYPES, parse_times
from core.timezones import find_timezone, is_valid_timezone
from transports import telegram_keyboards as keyboards
from transports.telegram_common import chat_action, command_text, safe_delete

log = logging.getLogger(__name__)

CAPTION_LIMIT = 1024
GENERIC_ERROR = "Sorry, something went wrong. Please try again later."

SUBSCRIBE_USAGE = (
    "*Daily content subscriptions*\n\n"
    "/subscribe <fact|joke|quote|meme> <HH:MM[,HH:MM...]> [timezone or city]\n\n"
    "Examples:\n"
    "`/subscribe fact 08:00`\n"
    "`/subscribe meme 09:30,18:00 Europe/Paris`\n"
    "`/subscribe quote 07:15 tokyo`\n\n"
    "/unsubscribe <type|all> stops deliveries, /subscriptions lists them."
)


class ContentHandlers:
    def __init__(self, assistant):
        self.assistant = assistant

    def register(self, application: Application) -> None:
        application.add_handler(CommandHandler(["fact", "ft", "facts"], self.fact))
        application.add_handler(CommandHandler(["joke", "jk"], self.joke))
        application.add_handler(CommandHandler(["quote", "qt"], self.quote))
        application.add_handler(CommandHandler(["meme", "mm"], self.meme))
        application.add_handler(CommandHandler(["movie", "mv"], self.movie))
        application.add_handler(CommandHandler("subscribe", self.subscribe))
        application.add_handler(CommandHandler("unsubscribe", self.unsubscribe))
        application.add_handler(CommandHandler("subscriptions", self.list_subscriptions))
        application.add_handler(CallbackQueryHandler(self.fact_callback, pattern=r"^fact_"))
        application.add_handler(CallbackQueryHandler(self.send_meme_callback, pattern=r"^send_meme_"))
        application.add_handler(CallbackQueryHandler(self.meme_callback, pattern=r"^meme_"))
        application.add_handler(CallbackQueryHandler(self.another_callback, pattern=r"^more_"))
        application.add_handler(CallbackQueryHandler(self.unsubscribe_callback, pattern=r"^unsub_"))

    # facts / jokes / quotes

    async def fact(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.effective_message
        if not context.args:
            await message.reply_text("Please select a category:", reply_markup=keyboards.fact_categories())
            return
        category = normalize_category(context.args[0])
        if category is None:
            await message.reply_text(
                f"Invalid category. Available categories are: {', '.join(FACT_CATEGORIES)}"
            )
            return
        await context.bot.send_chat_action(chat_id=message.chat_id, action=ChatAction.TYPING)
        try:
            fact = await fetch_fact(self.assistant.http, category, self.assistant.config.api_ninjas_key)
        except ServiceError as exc:
            await message.reply_text(exc.user_message)
            return
        await message.reply_text(fact, reply_markup=keyboards.another_fact(category))

    async def fact_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        category = normalize_category(query.data.split("_", 1)[1]) or "random"
        await query.answer()
        try:
            fact = await fetch_fact(self.assistant.http, category, self.assistant.config.api_ninjas_key)
            await query.edit_message_text(fact, reply_markup=keyboards.another_fact(category))
        except ServiceError as exc:
            await query.message.reply_text(exc.user_message)
        except BadRequest as exc:
            # same fact twice leaves the message unchanged
            log.info("fact edit skipped: %s", exc)

    async def joke(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.effective_message
        await context.bot.send_chat_action(chat_id=message.chat_id, action=ChatAction.TYPING)
        try:
            joke = await fetch_joke(self.assistant.http)
        except ServiceError as exc:
            await message.reply_text(exc.user_message)
            return
        await message.reply_text(joke, reply_markup=self._another(message.chat_id, "joke"))

    async def quote(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.effective_message
        quote = await fetch_quote(self.assistant.http)
        await message.reply_text(quote.format(), reply_markup=self._another(message.chat_id, "quote"))

    def _another(self, chat_id, kind: str):
        subscribed = kind in self.assistant.subscriptions.kinds_for(chat_id)
        return keyboards.another_content(kind, subscribed=subscribed)

    # memes

    async def meme(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.effective_message
        chat_id = message.chat_id
        memes = self.assistant.memes
        if context.args:
            requested = context.args[0].lower()
            if requested.startswith("r/"):
                requested = requested[2:]
            if requested == "random":
                memes.set_preference(chat_id, None)
                await message.reply_text("🎲 Set to random subreddits mode!")
            elif is_valid_subreddit(requested):
                memes.set_preference(chat_id, requested)
                await message.reply_text(f"✅ Set default subreddit to r/{requested}")
            else:
                await message.reply_text("❌ That doesn't look like a subreddit name.")
                return
        try:
            await self.send_meme(context.bot, chat_id, memes.preferred(chat_id))
        except ServiceError as exc:
            await message.reply_text(exc.user_message)

    async def send_meme(self, bot, chat_id, subreddit, refresh: bool = False) -> None:
        """Fetch a meme and post it as a photo; raises ServiceError when none can be fetched."""
        async with chat_action(bot, chat_id, ChatAction.UPLOAD_PHOTO):
            meme = await self.assistant.memes.fetch(self.assistant.http, subreddit)
            await self.post_meme(bot, chat_id, meme, subreddit, refresh)

    async def post_meme(self, bot, chat_id, meme, subreddit, refresh: bool = False) -> None:
        await bot.send_photo(
            chat_id=chat_id,
            photo=meme.url,
            caption=(meme.detailed_caption() if refresh else meme.caption())[:CAPTION_LIMIT],
            reply_markup=self._meme_keyboard(chat_id, subreddit, refresh),
        )

    def _meme_keyboard(self, chat_id, subreddit, refresh: bool = False):
        target = share_target(self.assistant.config.meme_share_pair, chat_id)
        return keyboards.meme_actions(subreddit, share_target=target, refresh=refresh)

    async def meme_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        subreddit = query.data.split("_", 1)[1]
        if subreddit == "random":
            subreddit = None
        await query.answer()
        try:
            await self.send_meme(context.bot, query.message.chat_id, subreddit, refresh=True)
        except ServiceError as exc:
            await query.message.reply_text(exc.user_message)

    async def send_meme_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        target_id = query.data[len("send_meme_"):]
        target = share_target(self.assistant.config.meme_share_pair, query.message.chat_id)
        if target is None or target[0] != target_id:
            await query.answer("This meme can't be shared from here.", show_alert=True)
            return
        try:
            await context.bot.forward_message(
                chat_id=int(target_id),
                from_chat_id=query.message.chat_id,
                message_id=query.message.message_id,
            )
        except TelegramError as exc:
            log.error("error forwarding meme to %s: %s", target_id, exc)
            await query.answer("Failed to forward the meme 😕", show_alert=True)
            return
        await query.answer("Meme forwarded successfully! 💝", show_alert=True)

    # movies

    async def movie(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.effective_message
        search = command_text(message)
        if not search:
            await message.reply_text(USAGE_TEXT, parse_mode=ParseMode.MARKDOWN)
            return

        loading = await message.reply_text("🔍 Searching for movie...")
        try:
            movie = await self.assistant.movies.lookup(self.assistant.http, search)
        except ServiceError as exc:
            await loading.edit_text(exc.user_message)
            return
        await safe_delete(loading)
        await self.send_movie(message, movie)

    async def send_movie(self, message, movie: dict) -> None:
        if not has_poster(movie):
            await message.reply_text(format_movie(movie), parse_mode=ParseMode.HTML, disable_web_page_preview=True)
            return
        caption = format_movie(movie)
        if len(caption) > CAPTION_LIMIT:
            caption = format_movie(shorten_plot(movie))
        try:
            await message.reply_photo(photo=movie["Poster"], caption=caption, parse_mode=ParseMode.HTML)
            return
        except BadRequest as exc:
            log.warning("poster send failed, falling back to text: %s", exc)
        await message.reply_text(format_movie(movie), parse_mode=ParseMode.HTML, disable_web_page_preview=True)

    # subscriptions

    async def subscribe(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.effective_message
        args = context.args or []
        if len(args) < 2:
            await message.reply_text(SUBSCRIBE_USAGE, parse_mode=ParseMode.MARKDOWN)
            return

        kind = args[0].lower().rstrip("s")
        if kind not in CONTENT_TYPES:
            await message.reply_text(f"❌ Unknown content type. Choose one of: {', '.join(CONTENT_TYPES)}")
            return
        times = parse_times(args[1])
        if times is None:
            await message.reply_text("❌ Times must look like HH:MM, separated by commas (e.g. 08:00,20:30).")
            return

        store = self.assistant.subscriptions
        zone = store.timezone_for(message.chat_id, kind) or "UTC"
        if len(args) > 2:
            wanted = " ".join(args[2:])
            zone = wanted if is_valid_timezone(wanted) else find_timezone(wanted)
            if zone is None:
                await message.reply_text(f"❌ I couldn't find a time zone for {wanted}.")
                return

        entry = store.set_content(message.chat_id, kind, times, zone)
        log.info("chat %s subscribed to %s at %s (%s)", message.chat_id, kind, entry["times"], zone)
        await message.reply_text(
            f"✅ Subscribed to daily {kind}s at {', '.join(entry['times'])} ({zone})."
        )

    async def unsubscribe(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.effective_message
        store = self.assistant.subscriptions
        if not context.args:
            await message.reply_text("Usage: /unsubscribe <fact|joke|quote|meme|all>")
            return
        kind = context.args[0].lower().rstrip("s")
        if kind == "all":
            removed = store.remove_subscription(message.chat_id)
            await message.reply_text("✅ All subscriptions removed." if removed else "You have no subscriptions.")
            return
        if store.remove_content(message.chat_id, kind):
            await message.reply_text(f"✅ Daily {kind}s stopped.")
        else:
            await message.reply_text(f"You are not subscribed to daily {kind}s.")

    async def list_subscriptions(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.effective_message
        entries = self.assistant.subscriptions.get(message.chat_id)
        if not entries:
            await message.reply_text("You have no subscriptions. Use /subscribe to add one.")
            return
        lines = ["📬 *Your subscriptions*", ""]
        for kind in sorted(entries):
            data = entries[kind]
            lines.append(f"• {kind}: {', '.join(data.get('times', []))} ({data.get('timezone', 'UTC')})")
        await message.reply_text("\n".join(lines), parse_mode=ParseMode.MARKDOWN)

    async def unsubscribe_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        kind = query.data.split("_", 1)[1]
        chat_id = query.message.chat_id
        if self.assistant.subscriptions.remove_content(chat_id, kind):
            await query.answer(f"Daily {kind}s stopped.", show_alert=True)
        else:
            await query.answer(f"You are not subscribed to daily {kind}s.")
        try:
            await query.edit_message_reply_markup(reply_markup=keyboards.another_content(kind))
        except BadRequest as exc:
            log.debug("keyboard unchanged: %s", exc)

    async def another_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        kind = query.data.split("_", 1)[1]
        message = query.message
        chat_id = message.chat_id
        subscribed = kind in self.assistant.subscriptions.kinds_for(chat_id)
        try:
            content = await self.assistant.fetch_content(kind, self.assistant.memes.preferred(chat_id))
        except (ServiceError, ValueError) as exc:
            log.warning("refreshing %s for %s failed: %s", kind, chat_id, exc)
            await query.answer(GENERIC_ERROR, show_alert=True)
            return
        await query.answer()
        markup = keyboards.another_content(kind, subscribed=subscribed)

        if not subscribed and not content.is_photo:
            try:
                await query.edit_message_text(content.text, reply_markup=markup)
            except BadRequest as exc:
                log.info("%s edit skipped: %s", kind, exc)
            return

        if subscribed:
            await safe_delete(message)
        await self._send_content(context.bot, chat_id, content, markup)

    @staticmethod
    async def _send_content(bot, chat_id, content, markup) -> None:
        if content.is_photo:
            await bot.send_photo(
                chat_id=chat_id, photo=content.photo_url, caption=content.text[:CAPTION_LIMIT], reply_markup=markup
            )
        else:
            await bot.send_message(chat_id=chat_id, text=content.text, reply_markup=markup)

    async def deliver(self, bot, chat_id: str, kind: str) -> None:
        """Scheduled delivery; a chat that blocked the bot loses its subscription."""
        content = await self.assistant.fetch_content(kind)
        markup = keyboards.another_content(kind, subscribed=True)
        try:
            await bot.send_chat_action(chat_id=chat_id, action=ChatAction.TYPING)
            await self._send_content(bot, chat_id, content, markup)
        except Forbidden as exc:
            log.info("removing inaccessible chat %s from subscriptions: %s", chat_id, exc)
            self.assistant.subscriptions.remove_subscription(chat_id)
            self.assistant.stats.forget_chat(chat_id)
