import asyncio
from types import SimpleNamespace

import pytest
from telegram.error import Forbidden
from telegram.ext import ApplicationHandlerStop

from core.assistant import Content
from core.errors import NotFoundError
from core.imaging import ImageGenerator
from core.ratelimit import RateLimiter
from core.stats import BotStats
from core.storage import SubscriptionStore
from core.video import VideoInfo, downloading_text
from transports.telegram_admin import MAINTENANCE_TEXT, AdminHandlers
from transports.telegram_common import ADMIN_ONLY_TEXT, command_text
from transports.telegram_content import SUBSCRIBE_USAGE, ContentHandlers
from transports.telegram_media import MediaHandlers
from transports.telegram_tools import CLEANUP_DONE, CURRENCY_USAGE, ToolHandlers, message_ids_before


class FakeMessage:
    def __init__(self, text="", chat_id=100, message_id=50):
        self.text = text
        self.chat_id = chat_id
        self.message_id = message_id
        self.replies = []
        self.markups = []
        self.sent = []
        self.edits = []
        self.deleted = False

    async def reply_text(self, text, **kwargs):
        self.replies.append(text)
        self.markups.append(kwargs.get("reply_markup"))
        reply = FakeMessage(text, self.chat_id, self.message_id + 1)
        self.sent.append(reply)
        return reply

    async def edit_text(self, text, **kwargs):
        self.text = text
        self.edits.append(text)

    async def delete(self):
        self.deleted = True

    async def reply_video(self, video, **kwargs):
        self.replies.append(kwargs.get("caption"))


class FakeCallbackQuery:
    def __init__(self, data="", message=None):
        self.data = data
        self.message = message or FakeMessage()
        self.answers = []
        self.edits = []

    async def answer(self, text=None, show_alert=False):
        self.answers.append((text, show_alert))

    async def edit_message_text(self, text, **kwargs):
        self.edits.append(text)

    async def edit_message_reply_markup(self, reply_markup=None):
        self.edits.append(reply_markup)


class FakeBot:
    def __init__(self, failures=None):
        self.failures = failures or {}
        self.sent = []
        self.markups = []
        self.deleted = []
        self.forwarded = []

    def _maybe_fail(self, chat_id):
        if chat_id in self.failures:
            raise self.failures[chat_id]

    async def send_message(self, chat_id, text, **kwargs):
        self._maybe_fail(chat_id)
        self.sent.append(text)
        self.markups.append(kwargs.get("reply_markup"))
        return FakeMessage(text, chat_id)

    async def send_chat_action(self, chat_id, action):
        self._maybe_fail(chat_id)

    async def delete_messages(self, chat_id, message_ids):
        self.deleted.append(list(message_ids))

    async def forward_message(self, chat_id, from_chat_id, message_id):
        self.forwarded.append((chat_id, from_chat_id, message_id))


def _update(message=None, user_id=7, query=None):
    return SimpleNamespace(
        effective_message=message,
        message=message,
        effective_user=SimpleNamespace(id=user_id, first_name="Ann", is_bot=False),
        effective_chat=SimpleNamespace(id=message.chat_id if message else 100),
        callback_query=query,
    )


def _context(*args, bot=None):
    return SimpleNamespace(args=list(args), bot=bot or FakeBot())


def _callback_data(markup):
    return [button.callback_data for row in markup.inline_keyboard for button in row]


def test_command_text_keeps_everything_after_the_command():
    assert command_text(FakeMessage("/t new york")) == "new york"
    assert command_text(FakeMessage("/imagine")) == ""
    assert command_text(None) == ""


def test_message_ids_before():
    assert message_ids_before(10, 3) == [10, 9, 8]
    assert message_ids_before(2, 5) == [2, 1]


# admin


def _admin():
    return AdminHandlers(SimpleNamespace(stats=BotStats("42")))


def test_admin_command_denied_for_regular_user():
    message = FakeMessage("/stats")
    asyncio.run(_admin().show_stats(_update(message, user_id=7), _context()))
    assert message.replies == [ADMIN_ONLY_TEXT]


def test_admin_callback_denied_for_regular_user():
    query = FakeCallbackQuery("admin_help_2")
    asyncio.run(_admin().admin_help_page(_update(None, user_id=7, query=query), _context()))
    assert query.answers == [("⛔ This action is only available for administrators.", False)]


def test_track_counts_users_and_blocks_during_maintenance():
    admin = _admin()
    message = FakeMessage("hi", chat_id=-100)
    asyncio.run(admin.track(_update(message, user_id=7), _context()))
    assert admin.stats.total_users == 1
    assert admin.stats.audience == 1

    admin.stats.maintenance = True
    with pytest.raises(ApplicationHandlerStop):
        asyncio.run(admin.track(_update(message, user_id=7), _context()))
    assert message.replies == [MAINTENANCE_TEXT]

    # the administrator is never blocked
    asyncio.run(admin.track(_update(FakeMessage("hi"), user_id=42), _context()))


def test_broadcast_reports_progress_and_drops_blocked_chats():
    admin = _admin()
    admin.stats.chats.update({1, 2, 3, 4, 5, 6})
    bot = FakeBot(failures={3: Forbidden("bot was blocked by the user")})
    message = FakeMessage("/broadcast hello all")

    asyncio.run(admin.broadcast(_update(message, user_id=42), _context(bot=bot)))

    assert bot.sent == ["📢 *Broadcast Message*\n\nhello all"] * 5
    assert admin.stats.chats == {1, 2, 4, 5, 6}
    status = message.sent[0]
    assert len(status.edits) == 2
    assert "✅ Sent: 4\n❌ Failed: 1" in status.edits[0]
    assert "Broadcast Complete" in status.edits[1]
    assert "✅ Successfully sent: 5\n❌ Failed: 1" in status.edits[1]


# subscriptions and content


def _content(tmp_path, **extra):
    store = SubscriptionStore(tmp_path / "subscriptions.json")
    assistant = SimpleNamespace(subscriptions=store, stats=BotStats("42"), **extra)
    return ContentHandlers(assistant), store


def _fetching(text):
    async def fetch_content(kind, subreddit=None):
        return Content(kind, text=text)

    return fetch_content


def test_subscribe_usage(tmp_path):
    handlers, _ = _content(tmp_path)
    message = FakeMessage("/subscribe fact")
    asyncio.run(handlers.subscribe(_update(message), _context("fact")))
    assert message.replies == [SUBSCRIBE_USAGE]


def test_subscribe_with_zone(tmp_path):
    handlers, store = _content(tmp_path)
    message = FakeMessage()
    asyncio.run(handlers.subscribe(_update(message), _context("facts", "20:30,08:00", "Europe/Paris")))
    assert message.replies == ["✅ Subscribed to daily facts at 08:00, 20:30 (Europe/Paris)."]
    assert store.get(100) == {"fact": {"times": ["08:00", "20:30"], "timezone": "Europe/Paris"}}


def test_subscribe_keeps_previous_zone(tmp_path):
    handlers, store = _content(tmp_path)
    store.set_content(100, "joke", ["09:00"], "Asia/Tokyo")
    message = FakeMessage()
    asyncio.run(handlers.subscribe(_update(message), _context("joke", "10:00")))
    assert store.get(100)["joke"] == {"times": ["10:00"], "timezone": "Asia/Tokyo"}


@pytest.mark.parametrize(
    "args, reply",
    [
        (("poem", "08:00"), "❌ Unknown content type. Choose one of: fact, joke, quote, meme"),
        (("joke", "25:00"), "❌ Times must look like HH:MM, separated by commas (e.g. 08:00,20:30)."),
        (("joke", "08:00", "zzqqx"), "❌ I couldn't find a time zone for zzqqx."),
    ],
)
def test_subscribe_rejects_bad_input(tmp_path, args, reply):
    handlers, store = _content(tmp_path)
    message = FakeMessage()
    asyncio.run(handlers.subscribe(_update(message), _context(*args)))
    assert message.replies == [reply]
    assert store.get(100) == {}


def test_unsubscribe(tmp_path):
    handlers, store = _content(tmp_path)
    store.set_content(100, "joke", ["09:00"])
    store.set_content(100, "quote", ["10:00"])
    message = FakeMessage()

    asyncio.run(handlers.unsubscribe(_update(message), _context("jokes")))
    asyncio.run(handlers.unsubscribe(_update(message), _context("joke")))
    asyncio.run(handlers.unsubscribe(_update(message), _context("all")))
    asyncio.run(handlers.unsubscribe(_update(message), _context("all")))
    assert message.replies == [
        "✅ Daily jokes stopped.",
        "You are not subscribed to daily jokes.",
        "✅ All subscriptions removed.",
        "You have no subscriptions.",
    ]


def test_deliver_sends_with_subscribed_keyboard(tmp_path):
    handlers, store = _content(tmp_path, fetch_content=_fetching("a joke"))
    store.set_content(100, "joke", ["09:00"])
    bot = FakeBot()
    asyncio.run(handlers.deliver(bot, "100", "joke"))
    assert bot.sent == ["a joke"]
    assert _callback_data(bot.markups[0]) == ["more_joke", "unsub_joke"]


def test_deliver_to_blocked_chat_drops_subscription(tmp_path):
    handlers, store = _content(tmp_path, fetch_content=_fetching("a joke"))
    store.set_content(100, "joke", ["09:00"])
    handlers.assistant.stats.chats.add(100)
    bot = FakeBot(failures={"100": Forbidden("bot was blocked by the user")})

    asyncio.run(handlers.deliver(bot, "100", "joke"))

    assert bot.sent == []
    assert store.get(100) == {}
    assert handlers.assistant.stats.chats == set()


def _another_handlers(tmp_path):
    memes = SimpleNamespace(preferred=lambda chat_id: None)
    return _content(tmp_path, fetch_content=_fetching("fresh joke"), memes=memes)


def test_another_edits_in_place_without_subscription(tmp_path):
    handlers, _ = _another_handlers(tmp_path)
    old = FakeMessage("old joke")
    query = FakeCallbackQuery("more_joke", old)
    bot = FakeBot()

    asyncio.run(handlers.another_callback(_update(old, query=query), _context(bot=bot)))

    assert query.edits == ["fresh joke"]
    assert not old.deleted
    assert bot.sent == []


def test_another_resends_in_subscribed_chat(tmp_path):
    handlers, store = _another_handlers(tmp_path)
    store.set_content(100, "joke", ["09:00"])
    old = FakeMessage("old joke")
    query = FakeCallbackQuery("more_joke", old)
    bot = FakeBot()

    asyncio.run(handlers.another_callback(_update(old, query=query), _context(bot=bot)))

    assert old.deleted
    assert query.edits == []
    assert bot.sent == ["fresh joke"]
    assert _callback_data(bot.markups[0]) == ["more_joke", "unsub_joke"]


def _sharing_handlers(tmp_path):
    config = SimpleNamespace(meme_share_pair=(("100", "Ann"), ("200", "Sam")))
    return _content(tmp_path, config=config)[0]


@pytest.mark.parametrize(
    "chat_id, data",
    [
        (100, "send_meme_300"),
        (300, "send_meme_200"),
    ],
)
def test_send_meme_refuses_chats_outside_share_pair(tmp_path, chat_id, data):
    handlers = _sharing_handlers(tmp_path)
    photo = FakeMessage(chat_id=chat_id, message_id=9)
    query = FakeCallbackQuery(data, photo)
    bot = FakeBot()

    asyncio.run(handlers.send_meme_callback(_update(photo, query=query), _context(bot=bot)))

    assert bot.forwarded == []
    assert query.answers == [("This meme can't be shared from here.", True)]


def test_send_meme_forwards_to_partner(tmp_path):
    handlers = _sharing_handlers(tmp_path)
    photo = FakeMessage(chat_id=100, message_id=9)
    query = FakeCallbackQuery("send_meme_200", photo)
    bot = FakeBot()

    asyncio.run(handlers.send_meme_callback(_update(photo, query=query), _context(bot=bot)))

    assert bot.forwarded == [(200, 100, 9)]
    assert query.answers == [("Meme forwarded successfully! 💝", True)]


def test_meme_callback_answers_before_fetching(tmp_path):
    events = []

    async def fetch(session, subreddit=None):
        events.append(("fetch", subreddit))
        raise NotFoundError("❌ Subreddit r/nope doesn't exist or has no posts.")

    memes = SimpleNamespace(fetch=fetch)
    config = SimpleNamespace(meme_share_pair=())
    handlers = _content(tmp_path, memes=memes, config=config, http=None)[0]
    photo = FakeMessage(chat_id=100)
    query = FakeCallbackQuery("meme_nope", photo)

    async def answer(text=None, show_alert=False):
        events.append(("answer", text))

    query.answer = answer
    asyncio.run(handlers.meme_callback(_update(photo, query=query), _context()))

    assert events == [("answer", None), ("fetch", "nope")]
    assert photo.replies == ["❌ Subreddit r/nope doesn't exist or has no posts."]


# tools


class FakeTranslationAssistant:
    def __init__(self):
        self.sessions = {}

    def start_translation(self, chat_id, text):
        self.sessions[str(chat_id)] = text

    def pending_translation(self, chat_id):
        return self.sessions.get(str(chat_id))

    def end_translation(self, chat_id):
        self.sessions.pop(str(chat_id), None)


def test_currency_usage_without_query():
    message = FakeMessage("/cr")
    handlers = ToolHandlers(SimpleNamespace())
    asyncio.run(handlers.currency(_update(message), _context()))
    assert message.replies == [CURRENCY_USAGE]


def test_translate_unknown_language_keeps_whole_text():
    assistant = FakeTranslationAssistant()
    message = FakeMessage("/trans qzx hello world")
    asyncio.run(ToolHandlers(assistant).translate(_update(message), _context("qzx", "hello", "world")))

    assert assistant.pending_translation(100) == "qzx hello world"
    assert message.replies == ["🎯 Select target language:\n\nText to translate:\nqzx hello world"]
    assert _callback_data(message.markups[0])[-1] == "translate_more"


def test_translate_callback_without_session():
    query = FakeCallbackQuery("translate_fr")
    asyncio.run(ToolHandlers(FakeTranslationAssistant()).translate_callback(_update(None, query=query), _context()))
    assert query.answers == [("Session expired. Please send /trans again.", True)]
    assert query.edits == []


def test_new_clock_replaces_previous_and_shutdown_cancels():
    handlers = ToolHandlers(SimpleNamespace())

    async def run():
        await handlers.show_time(_update(FakeMessage("/t paris")), _context("paris"))
        first = handlers._clocks[100]
        await handlers.show_time(_update(FakeMessage("/t tokyo")), _context("tokyo"))
        second = handlers._clocks[100]
        await asyncio.sleep(0)
        first_done = first.cancelled()
        await handlers.shutdown()
        return first_done, second

    first_cancelled, second = asyncio.run(run())
    assert first_cancelled
    assert second.cancelled()
    assert handlers._clocks == {}


def test_confirm_without_pending_clear():
    message = FakeMessage("/confirm")
    asyncio.run(ToolHandlers(SimpleNamespace()).confirm(_update(message), _context()))
    assert message.replies == ["Nothing to confirm. Use /clear all first."]


def test_clear_all_then_confirm_deletes_in_batches():
    handlers = ToolHandlers(SimpleNamespace())
    bot = FakeBot()

    async def run():
        await handlers.clear(_update(FakeMessage("/clear all", message_id=500)), _context("all", bot=bot))
        assert 100 in handlers._pending_clear
        await handlers.confirm(_update(FakeMessage("/confirm", message_id=502)), _context(bot=bot))
        await handlers.shutdown()

    asyncio.run(run())
    batches = bot.deleted
    assert len(batches) == 6
    assert batches[0][0] == 502
    assert [len(batch) for batch in batches] == [100] * 5 + [2]
    assert bot.sent[-1] == CLEANUP_DONE
    assert 100 not in handlers._pending_clear
    assert handlers._tasks == set()


def test_clear_counts_default_and_explicit():
    handlers = ToolHandlers(SimpleNamespace())
    bot = FakeBot()

    async def run():
        await handlers.clear(_update(FakeMessage("/clear 3", message_id=40)), _context("3", bot=bot))
        await handlers.shutdown()

    asyncio.run(run())
    assert bot.deleted == [[40, 39, 38]]


# media


def _media():
    assistant = SimpleNamespace(images=ImageGenerator("token"), rate_limiter=RateLimiter())
    return MediaHandlers(assistant), assistant


def test_pick_model_without_session():
    handlers, _ = _media()
    query = FakeCallbackQuery("img_model_0")
    asyncio.run(handlers.pick_model(_update(None, query=query), _context()))
    assert query.answers == [("❌ Session expired. Please start over with /imagine command.", True)]


def test_pick_model_rate_limited():
    handlers, assistant = _media()
    for _ in range(5):
        assert assistant.rate_limiter.check(7, "imagine", limit=5)
    assistant.images.start_session(100, "a cat", 1)
    query = FakeCallbackQuery("img_model_0")

    asyncio.run(handlers.pick_model(_update(None, user_id=7, query=query), _context()))

    assert query.answers == [("⏳ You can generate 5 images per minute. Please wait a moment.", True)]
    assert query.edits == []
    assert assistant.images.get_session(100) is not None


class FakeVideos:
    def __init__(self, workdir):
        self.workdir = workdir
        self.released = []

    def claim(self, user_id):
        return True

    def release(self, user_id):
        self.released.append(user_id)

    async def fetch_info(self, url):
        return VideoInfo(title="Clip", url=url)

    def make_workdir(self):
        return self.workdir

    async def download(self, url, workdir, on_progress):
        # progress hooks fire on the download thread
        await asyncio.to_thread(on_progress, 50.0)
        path = workdir / "video.mp4"
        path.write_bytes(b"mp4")
        return path

    def cleanup(self, workdir):
        pass


def test_ytdl_progress_lands_before_upload_notice(tmp_path):
    videos = FakeVideos(tmp_path)
    handlers = MediaHandlers(SimpleNamespace(videos=videos))
    message = FakeMessage("/yt https://youtu.be/abc")

    asyncio.run(handlers.ytdl(_update(message), _context("https://youtu.be/abc")))

    status = message.sent[0]
    assert status.edits == [
        downloading_text("Clip", 0),
        downloading_text("Clip", 50.0),
        "📤 Uploading to Telegram...",
    ]
    assert status.deleted
    assert message.replies[-1] == "🎥 Clip"
    assert videos.released == [7]
