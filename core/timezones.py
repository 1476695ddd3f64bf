"""Location to time zone lookup and clock formatting for the /time command."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

import pytz
import yaml

log = logging.getLogger(__name__)

TIMEZONES_FILE = Path(__file__).with_name("data").joinpath("timezones.yaml")

_MAPPINGS: Optional[Dict[str, str]] = None


def load_mappings(path: Path = TIMEZONES_FILE) -> Dict[str, str]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        log.error("failed to load timezone table %s: %s", path, exc)
        return {}
    return {str(k).lower(): str(v) for k, v in raw.items() if v}


def _mappings() -> Dict[str, str]:
    global _MAPPINGS
    if _MAPPINGS is None:
        _MAPPINGS = load_mappings()
    return _MAPPINGS


def find_timezone(location: str, mappings: Optional[Dict[str, str]] = None) -> Optional[str]:
    table = _mappings() if mappings is None else mappings
    wanted = " ".join(location.lower().split())
    if not wanted:
        return None

    if wanted in table:
        return table[wanted]

    # longest key first so "new york" beats "york"-like fragments
    for key in sorted(table, key=len, reverse=True):
        if key in wanted or wanted in key:
            return table[key]

    # a literal zone name such as "Europe/Paris"
    for zone in pytz.all_timezones:
        if zone.lower() == wanted:
            return zone

    parts = [re.sub(r"[^a-z]", "", part) for part in wanted.split(" ")]
    parts = [p for p in parts if p]
    if not parts:
        return None
    for zone in pytz.all_timezones:
        zone_parts = zone.lower().replace("_", "").split("/")
        if any(part in zone_part for part in parts for zone_part in zone_parts):
            return zone
    return None


def location_name(zone: str) -> str:
    return zone.split("/")[-1].replace("_", " ")


def format_time_message(zone: str, now: Optional[datetime] = None) -> str:
    tz = pytz.timezone(zone)
    moment = now.astimezone(tz) if now else datetime.now(tz)
    return (
        f"*{location_name(zone)}: {moment.strftime('%H:%M:%S')}*\n"
        f"*{moment.strftime('%B %d %Y')}*"
    )


def is_valid_timezone(zone: str) -> bool:
    return zone in pytz.all_timezones_set
