"""YouTube downloads through yt-dlp, run off the event loop."""

from __future__ import annotations

import asyncio
import logging
import re
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Set

import yt_dlp

from .errors import ServiceError

log = logging.getLogger(__name__)

YOUTUBE_URL_PATTERN = re.compile(r"^(https?://)?(www\.|m\.)?(youtube\.com|youtu\.be)/.+$", re.IGNORECASE)
FORMAT_SPEC = "bv*[height<=1080][ext=mp4]+ba[ext=m4a]/b[height<=1080][ext=mp4]/mp4"
PROGRESS_STEP = 5.0
BAR_LENGTH = 10

HELP_TEXT = """
🎥 *YouTube Downloader*

Download YouTube videos in high quality!

*Usage:*
• /yt [YouTube URL]
• /ytdl [YouTube URL]

*Examples:*
• /yt https://youtube.com/watch?v=...
• /ytdl https://youtu.be/...

*Features:*
• Downloads in best available quality (up to 1080p)
• Supports both youtube.com and youtu.be links

*Note:* Please wait for each download to complete before starting another.
""".strip()

ERROR_MESSAGES = [
    (re.compile(r"(too large|max[-_ ]?filesize|file is larger)", re.I), "❌ Video is too large. Please try a different video."),
    (re.compile(r"private video", re.I), "❌ This video is private."),
    (re.compile(r"(not available|unavailable|removed)", re.I), "❌ This video is not available."),
    (re.compile(r"file not found", re.I), "❌ Download failed. Please try again."),
]
DEFAULT_ERROR = "❌ Failed to download video. Please try again."


class DownloadError(ServiceError):
    default_message = DEFAULT_ERROR


@dataclass
class VideoInfo:
    title: str
    url: str
    duration: Optional[float] = None
    filesize: Optional[int] = None


def is_valid_youtube_url(url: str) -> bool:
    return bool(YOUTUBE_URL_PATTERN.match((url or "").strip()))


def progress_bar(progress: float, length: int = BAR_LENGTH) -> str:
    progress = max(0.0, min(100.0, progress))
    filled = round(progress * length / 100)
    return f"[{'■' * filled}{'□' * (length - filled)}]"


def downloading_text(title: str, progress: float) -> str:
    return (
        f"📥 Downloading: {title}\n\n"
        f"Progress: {progress_bar(progress)} {progress:.1f}%\n"
        "Quality: Best available (up to 1080p)"
    )


def classify_error(message: str) -> str:
    for pattern, text in ERROR_MESSAGES:
        if pattern.search(message or ""):
            return text
    return DEFAULT_ERROR


class ProgressTracker:
    """Turns yt-dlp progress hooks into callbacks every PROGRESS_STEP percent."""

    def __init__(self, on_progress: Callable[[float], None], step: float = PROGRESS_STEP):
        self.on_progress = on_progress
        self.step = step
        self.last = 0.0

    def __call__(self, status: Dict[str, Any]) -> None:
        if status.get("status") != "downloading":
            return
        total = status.get("total_bytes") or status.get("total_bytes_estimate")
        done = status.get("downloaded_bytes") or 0
        if not total:
            return
        progress = min(100.0, done * 100.0 / total)
        if progress < self.last:
            # next stream of a merged download (video, then audio)
            self.last = 0.0
        if progress - self.last >= self.step:
            self.last = progress
            self.on_progress(progress)


class VideoDownloader:
    def __init__(self, max_bytes: int, work_root: Optional[Path] = None):
        self.max_bytes = max_bytes
        self.work_root = work_root
        self.active_users: Set[str] = set()

    def claim(self, user_id) -> bool:
        key = str(user_id)
        if key in self.active_users:
            return False
        self.active_users.add(key)
        return True

    def release(self, user_id) -> None:
        self.active_users.discard(str(user_id))

    def _probe(self, url: str) -> VideoInfo:
        opts = {"quiet": True, "no_warnings": True, "noplaylist": True, "skip_download": True}
        with yt_dlp.YoutubeDL(opts) as ydl:
            info = ydl.extract_info(url, download=False)
        if not isinstance(info, dict):
            raise DownloadError()
        return VideoInfo(
            title=str(info.get("title") or "video"),
            url=str(info.get("webpage_url") or url),
            duration=info.get("duration"),
            filesize=info.get("filesize") or info.get("filesize_approx"),
        )

    def _download(self, url: str, target: Path, hook: Callable[[Dict[str, Any]], None]) -> Path:
        opts = {
            "quiet": True,
            "no_warnings": True,
            "noplaylist": True,
            "format": FORMAT_SPEC,
            "merge_output_format": "mp4",
            "max_filesize": self.max_bytes,
            "outtmpl": {"default": str(target.parent / "video.%(ext)s")},
            "progress_hooks": [hook],
            "retries": 3,
        }
        with yt_dlp.YoutubeDL(opts) as ydl:
            ydl.download([url])
        if not target.exists():
            raise DownloadError("❌ Download failed. Please try again.")
        if target.stat().st_size > self.max_bytes:
            raise DownloadError("❌ Video is too large. Please try a different video.")
        return target

    async def fetch_info(self, url: str) -> VideoInfo:
        try:
            info = await asyncio.to_thread(self._probe, url)
        except yt_dlp.utils.DownloadError as exc:
            log.warning("video probe failed for %s: %s", url, exc)
            raise DownloadError(classify_error(str(exc))) from exc
        if info.filesize and info.filesize > self.max_bytes:
            raise DownloadError("❌ Video is too large. Please try a different video.")
        return info

    def make_workdir(self) -> Path:
        if self.work_root:
            self.work_root.mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(prefix="ytdl_", dir=self.work_root))

    async def download(
        self,
        url: str,
        workdir: Path,
        on_progress: Callable[[float], None],
    ) -> Path:
        target = workdir / "video.mp4"
        tracker = ProgressTracker(on_progress)
        try:
            return await asyncio.to_thread(self._download, url, target, tracker)
        except yt_dlp.utils.DownloadError as exc:
            log.warning("video download failed for %s: %s", url, exc)
            raise DownloadError(classify_error(str(exc))) from exc

    @staticmethod
    def cleanup(workdir: Optional[Path]) -> None:
        if workdir is None:
            return
        shutil.rmtree(workdir, ignore_errors=True)
