import math
import time
from dataclasses import dataclass
from typing import List, Set

COMMANDS_PER_PAGE = 2


@dataclass(frozen=True)
class AdminCommand:
    command: str
    description: str
    usage: str
    example: str


ADMIN_COMMANDS: List[AdminCommand] = [
    AdminCommand("/stats", "Shows bot statistics including total users and last update time", "Just type /stats", "/stats"),
    AdminCommand("/broadcast", "Sends a message to all bot users", "/broadcast <message>", "/broadcast Hello everyone! Bot maintenance in 1 hour."),
    AdminCommand("/previewbroadcast", "Preview how your broadcast message will look", "/previewbroadcast <message>", "/previewbroadcast *Important Update*: New features!"),
    AdminCommand("/broadcastinfo", "Shows information about potential broadcast recipients", "Just type /broadcastinfo", "/broadcastinfo"),
    AdminCommand("/maintenance", "Controls bot maintenance mode", "/maintenance <stop|start>", "/maintenance stop"),
    AdminCommand("/clearstats", "Resets all bot statistics", "Just type /clearstats", "/clearstats"),
]


def total_pages(per_page: int = COMMANDS_PER_PAGE) -> int:
    return max(1, math.ceil(len(ADMIN_COMMANDS) / per_page))


def help_page(page: int, per_page: int = COMMANDS_PER_PAGE) -> str:
    pages = total_pages(per_page)
    page = min(max(page, 1), pages)
    start = (page - 1) * per_page
    lines = [f"📚 *Admin Commands Help* (Page {page}/{pages})", ""]
    for cmd in ADMIN_COMMANDS[start : start + per_page]:
        lines.append(f"*{cmd.command}*")
        lines.append(f"📝 Description: {cmd.description}")
        lines.append(f"🔍 Usage: {cmd.usage}")
        lines.append(f"💡 Example: `{cmd.example}`")
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"


class BotStats:
    """Users and chats seen since start-up, plus the maintenance switch."""

    def __init__(self, admin_user_id: str):
        self.admin_user_id = str(admin_user_id)
        self.users: Set[str] = set()
        self.chats: Set[int] = set()
        self.maintenance = False
        self.started_at = time.time()

    def is_admin(self, user_id) -> bool:
        return str(user_id) == self.admin_user_id

    def track(self, user_id, chat_id) -> None:
        if user_id is None or self.is_admin(user_id):
            return
        self.users.add(str(user_id))
        if chat_id is not None:
            self.chats.add(int(chat_id))

    def forget_chat(self, chat_id) -> None:
        self.chats.discard(int(chat_id))

    def clear(self) -> None:
        self.users.clear()

    @property
    def total_users(self) -> int:
        return len(self.users)

    @property
    def audience(self) -> int:
        return len(self.chats)
