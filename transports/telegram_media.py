import asyncio
import concurrent.futures
import logging
from typing import List

from telegram import Message, Update
from telegram.constants import ChatAction, ParseMode
from telegram.error import TelegramError
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from core.errors import ServiceError
from core.imaging import model_by_index
from core.video import HELP_TEXT as VIDEO_HELP
from core.video import downloading_text, is_valid_youtube_url
from transports import telegram_keyboards as keyboards
from transports.telegram_common import chat_action, command_text, safe_delete

log = logging.getLogger(__name__)

IMAGES_PER_MINUTE = 5
UPLOAD_TIMEOUT = 300


class MediaHandlers:
    def __init__(self, assistant):
        self.assistant = assistant

    def register(self, application: Application) -> None:
        application.add_handler(CommandHandler(["imagine", "image", "im", "i"], self.imagine))
        application.add_handler(CommandHandler(["transcribe", "trcb"], self.transcribe))
        application.add_handler(CommandHandler(["ytdl", "yt"], self.ytdl))
        application.add_handler(CallbackQueryHandler(self.pick_model, pattern=r"^img_model_\d+$"))
        application.add_handler(CallbackQueryHandler(self.regenerate, pattern=r"^img_regen$"))
        application.add_handler(CallbackQueryHandler(self.upscale, pattern=r"^img_upscale$"))
        application.add_handler(CallbackQueryHandler(self.cancel_transcribe, pattern=r"^transcribe_cancel$"))
        application.add_handler(MessageHandler(filters.VOICE, self.handle_voice))

    # imagine

    async def imagine(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.effective_message
        prompt = command_text(message)
        if not prompt:
            await message.reply_text(
                "Please describe the image.\nExample: `/imagine a lighthouse at dusk, oil painting`",
                parse_mode=ParseMode.MARKDOWN,
            )
            return
        self.assistant.images.start_session(message.chat_id, prompt, message.message_id)
        await message.reply_text("🎨 Choose a model for image generation:", reply_markup=keyboards.image_models())

    async def pick_model(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        chat_id = query.message.chat_id
        images = self.assistant.images
        picked = model_by_index(int(query.data.rsplit("_", 1)[1]))
        session = images.get_session(chat_id)
        if session is None or picked is None:
            await query.answer("❌ Session expired. Please start over with /imagine command.", show_alert=True)
            return
        if not self.assistant.rate_limiter.check(update.effective_user.id, "imagine", limit=IMAGES_PER_MINUTE):
            await query.answer("⏳ You can generate 5 images per minute. Please wait a moment.", show_alert=True)
            return
        await query.answer()

        model_name, model_id = picked
        images.end_session(chat_id)
        await query.edit_message_text(f"🎨 Generating image using {model_name}...")
        try:
            async with chat_action(context.bot, chat_id, ChatAction.UPLOAD_PHOTO):
                image = await images.generate(self.assistant.http, model_id, session.prompt)
                photo = await context.bot.send_photo(
                    chat_id=chat_id,
                    photo=image,
                    caption=f"*{model_name}*",
                    parse_mode=ParseMode.MARKDOWN,
                    reply_to_message_id=session.reply_to_message_id,
                    reply_markup=keyboards.image_actions(),
                )
        except (ServiceError, TelegramError) as exc:
            log.error("%s generation failed: %s", model_name, exc)
            await self._report_picker(
                context, query.message, f"❌ Failed to generate image using {model_name}. Please try again.",
                session.reply_to_message_id,
            )
            return
        images.history.remember(chat_id, photo.message_id, session)
        await self._report_picker(
            context, query.message, f"✨ Successfully generated image using {model_name}!",
            session.reply_to_message_id,
        )

    @staticmethod
    async def _report_picker(context, picker: Message, text: str, reply_to) -> None:
        try:
            await picker.edit_text(text)
        except TelegramError as exc:
            log.info("picker edit failed, sending new message: %s", exc)
            await context.bot.send_message(chat_id=picker.chat_id, text=text, reply_to_message_id=reply_to)

    async def regenerate(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        photo = query.message
        previous = self.assistant.images.history.recall(photo.chat_id, photo.message_id)
        if previous is None:
            await query.answer("❌ Session expired. Please start over with /imagine command.", show_alert=True)
            return
        await query.answer()
        self.assistant.images.start_session(photo.chat_id, previous.prompt, previous.reply_to_message_id)
        await context.bot.send_message(
            chat_id=photo.chat_id,
            text="🎨 Choose a model for regeneration:",
            reply_markup=keyboards.image_models(),
            reply_to_message_id=previous.reply_to_message_id,
        )

    async def upscale(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        await update.callback_query.answer("⚙️ Upscaling feature coming soon!", show_alert=True)

    # transcribe

    async def transcribe(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.effective_message
        self.assistant.voice.enable(message.chat_id)
        await message.reply_text(
            "Please send a voice message to transcribe.", reply_markup=keyboards.transcribe_cancel()
        )

    async def cancel_transcribe(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        await query.answer()
        if self.assistant.voice.cancel(query.message.chat_id):
            await query.edit_message_text("Transcription mode cancelled.")

    async def handle_voice(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.effective_message
        voice = self.assistant.voice
        if not voice.cancel(message.chat_id):
            return

        status = await message.reply_text("Transcribing your message...")
        try:
            tg_file = await context.bot.get_file(message.voice.file_id)
            audio = bytes(await tg_file.download_as_bytearray())
            text = await voice.transcribe(self.assistant.http, audio, message.voice.mime_type or "audio/ogg")
        except (ServiceError, TelegramError) as exc:
            log.error("error transcribing voice message: %s", exc)
            await status.edit_text("Sorry, I had trouble transcribing your voice message. Please try again.")
            return
        if not text:
            await status.edit_text("I couldn't make out any words in that voice message.")
            return
        await status.edit_text(f"Transcription:\n{text}")

    # ytdl

    async def ytdl(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.effective_message
        url = context.args[0] if context.args else ""
        if not url:
            await message.reply_text(VIDEO_HELP, parse_mode=ParseMode.MARKDOWN)
            return
        if not is_valid_youtube_url(url):
            await message.reply_text("❌ Please provide a valid YouTube URL (youtube.com or youtu.be).")
            return

        videos = self.assistant.videos
        user_id = update.effective_user.id
        if not videos.claim(user_id):
            await message.reply_text("⏳ Please wait for your current download to finish.")
            return

        workdir = None
        try:
            status = await message.reply_text("🔍 Fetching video information...")
            info = await videos.fetch_info(url)
            await status.edit_text(downloading_text(info.title, 0))

            loop = asyncio.get_running_loop()
            edits: List[concurrent.futures.Future] = []

            def on_progress(progress: float) -> None:
                # called from the download thread
                edits.append(
                    asyncio.run_coroutine_threadsafe(self._show_progress(status, info.title, progress), loop)
                )

            workdir = videos.make_workdir()
            path = await videos.download(url, workdir, on_progress)
            await asyncio.gather(*(asyncio.wrap_future(edit) for edit in edits), return_exceptions=True)
            await status.edit_text("📤 Uploading to Telegram...")
            with path.open("rb") as video:
                await message.reply_video(
                    video=video,
                    caption=f"🎥 {info.title}",
                    filename=f"{info.title}.mp4",
                    supports_streaming=True,
                    write_timeout=UPLOAD_TIMEOUT,
                    read_timeout=UPLOAD_TIMEOUT,
                )
            await safe_delete(status)
        except ServiceError as exc:
            await message.reply_text(exc.user_message)
        except TelegramError as exc:
            log.error("youtube upload failed for %s: %s", url, exc)
            await message.reply_text("❌ Failed to download video. Please try again.")
        finally:
            videos.release(user_id)
            videos.cleanup(workdir)

    @staticmethod
    async def _show_progress(status: Message, title: str, progress: float) -> None:
        try:
            await status.edit_text(downloading_text(title, progress))
        except TelegramError as exc:
            log.debug("progress update failed: %s", exc)
