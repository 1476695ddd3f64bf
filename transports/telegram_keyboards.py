from typing import List, Optional, Sequence, Tuple

from telegram import (
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    KeyboardButton,
    ReplyKeyboardMarkup,
    WebAppInfo,
)

from core.facts import FACT_CATEGORIES
from core.imaging import MODEL_NAMES
from core.stats import total_pages
from core.translate import POPULAR_LANGUAGES, SUPPORTED_LANGUAGES


def _rows(buttons: Sequence[InlineKeyboardButton], per_row: int) -> List[List[InlineKeyboardButton]]:
    return [list(buttons[i : i + per_row]) for i in range(0, len(buttons), per_row)]


def help_menu() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        [[
            InlineKeyboardButton("Commands", callback_data="help_commands"),
            InlineKeyboardButton("About", callback_data="help_about"),
        ]]
    )


def back_to_help() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([[InlineKeyboardButton("<< Back", callback_data="help_main")]])


def admin_help(page: int) -> InlineKeyboardMarkup:
    pages = total_pages()
    buttons = []
    if page > 1:
        buttons.append(InlineKeyboardButton("⬅️ Previous", callback_data=f"admin_help_{page - 1}"))
    if page < pages:
        buttons.append(InlineKeyboardButton("Next ➡️", callback_data=f"admin_help_{page + 1}"))
    return InlineKeyboardMarkup([buttons])


def fact_categories() -> InlineKeyboardMarkup:
    buttons = [
        InlineKeyboardButton(category.capitalize(), callback_data=f"fact_{category}")
        for category in FACT_CATEGORIES
    ]
    return InlineKeyboardMarkup(_rows(buttons, 3))


def another_fact(category: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        [[InlineKeyboardButton(f"🔄 Another {category} fact", callback_data=f"fact_{category}")]]
    )


def another_content(kind: str, subscribed: bool = False) -> InlineKeyboardMarkup:
    row = [InlineKeyboardButton(f"🔄 Another {kind.capitalize()}", callback_data=f"more_{kind}")]
    if subscribed:
        row.append(InlineKeyboardButton(f"❌ Stop Daily {kind.capitalize()}s", callback_data=f"unsub_{kind}"))
    return InlineKeyboardMarkup([row])


def meme_actions(
    subreddit: Optional[str],
    share_target: Optional[Tuple[str, str]] = None,
    refresh: bool = False,
) -> InlineKeyboardMarkup:
    icon = "🔄" if refresh else "🎲"
    label = f"{icon} Another meme from r/{subreddit}" if subreddit else f"{icon} Another random meme"
    buttons = [InlineKeyboardButton(label, callback_data=f"meme_{subreddit or 'random'}")]
    if share_target:
        chat_id, name = share_target
        buttons.append(InlineKeyboardButton(f"Send to {name} ❤️", callback_data=f"send_meme_{chat_id}"))
    return InlineKeyboardMarkup([buttons])


def image_models() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        [[InlineKeyboardButton(name, callback_data=f"img_model_{index}")] for index, name in enumerate(MODEL_NAMES)]
    )


def image_actions() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        [[
            InlineKeyboardButton("🎲 Regenerate", callback_data="img_regen"),
            InlineKeyboardButton("✨ Upscale", callback_data="img_upscale"),
        ]]
    )


def all_languages() -> InlineKeyboardMarkup:
    buttons = [
        InlineKeyboardButton(name, callback_data=f"translate_{code}")
        for code, name in SUPPORTED_LANGUAGES.items()
        if code != "auto"
    ]
    rows = _rows(buttons, 2)
    rows.append([InlineKeyboardButton("Cancel", callback_data="translate_cancel")])
    return InlineKeyboardMarkup(rows)


def popular_languages() -> InlineKeyboardMarkup:
    buttons = [InlineKeyboardButton(name, callback_data=f"translate_{code}") for name, code in POPULAR_LANGUAGES]
    rows = _rows(buttons, 2)
    rows.append([InlineKeyboardButton("More Languages", callback_data="translate_more")])
    return InlineKeyboardMarkup(rows)


def translate_another() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([[InlineKeyboardButton("Translate Another", callback_data="translate_start")]])


def transcribe_cancel() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([[InlineKeyboardButton("Cancel", callback_data="transcribe_cancel")]])


def tictactoe(url: str) -> ReplyKeyboardMarkup:
    # web app data only comes back from reply keyboard buttons
    return ReplyKeyboardMarkup(
        [[KeyboardButton("Start Game", web_app=WebAppInfo(url=url))]],
        resize_keyboard=True,
        one_time_keyboard=True,
    )
