import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional

log = logging.getLogger(__name__)

Subscriptions = Dict[str, Dict[str, dict]]


class SubscriptionStore:
    """Chat id -> {content type -> {"times": [...], "timezone": str}} kept in one JSON file."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._subscriptions: Subscriptions = {}
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            log.info("creating subscription file at %s", self.path)
            self._save()
            return
        try:
            raw = self.path.read_text(encoding="utf-8")
            payload = json.loads(raw) if raw.strip() else {}
        except (OSError, json.JSONDecodeError) as exc:
            log.warning("failed to load subscriptions, starting empty: %s", exc)
            self._subscriptions = {}
            self._save()
            return
        if not isinstance(payload, dict):
            log.warning("subscription file is not an object, starting empty")
            payload = {}
        self._subscriptions = {
            str(chat_id): dict(entry)
            for chat_id, entry in payload.items()
            if isinstance(entry, dict)
        }
        log.info("loaded subscriptions for %d chats", len(self._subscriptions))

    def _save(self) -> None:
        try:
            self.path.write_text(
                json.dumps(self._subscriptions, ensure_ascii=False, indent=2),
                encoding="utf-8",
            )
        except OSError as exc:
            log.error("failed to persist subscriptions: %s", exc)

    def get_subscriptions(self) -> Subscriptions:
        return self._subscriptions

    def get(self, chat_id) -> Dict[str, dict]:
        return dict(self._subscriptions.get(str(chat_id), {}))

    def update_subscription(self, chat_id, data: Dict[str, dict]) -> None:
        log.info("updating subscription for %s: %s", chat_id, data)
        self._subscriptions[str(chat_id)] = dict(data)
        self._save()

    def set_content(self, chat_id, kind: str, times: Iterable[str], timezone: str = "UTC") -> dict:
        entry = {"times": sorted(set(times)), "timezone": timezone}
        current = self.get(chat_id)
        current[kind] = entry
        self.update_subscription(chat_id, current)
        return entry

    def remove_content(self, chat_id, kind: str) -> bool:
        current = self.get(chat_id)
        if kind not in current:
            return False
        del current[kind]
        if current:
            self.update_subscription(chat_id, current)
        else:
            self.remove_subscription(chat_id)
        return True

    def remove_subscription(self, chat_id) -> bool:
        key = str(chat_id)
        if key not in self._subscriptions:
            return False
        log.info("removing subscription for %s", key)
        del self._subscriptions[key]
        self._save()
        return True

    def kinds_for(self, chat_id) -> List[str]:
        return sorted(self._subscriptions.get(str(chat_id), {}))

    def timezone_for(self, chat_id, kind: str) -> Optional[str]:
        entry = self._subscriptions.get(str(chat_id), {}).get(kind)
        return entry.get("timezone") if entry else None
