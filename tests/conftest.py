import sys
from pathlib import Path
from typing import Any, List, Optional, Tuple

import aiohttp

sys.path.append(str(Path(__file__).resolve().parents[1]))


class FakeResponse:
    def __init__(self, status: int = 200, payload: Any = None, body: bytes = b"", headers: Optional[dict] = None):
        self.status = status
        self.payload = payload
        self.body = body
        self.headers = headers or {}

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def json(self, content_type=None):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload

    async def text(self) -> str:
        return self.body.decode("utf-8", "replace") if self.body else str(self.payload or "")

    async def read(self) -> bytes:
        return self.body

    def raise_for_status(self) -> None:
        if self.status >= 400:
            raise aiohttp.ClientError(f"HTTP {self.status}")


class FakeSession:
    """Answers get/post by the first route whose prefix matches the URL.

    A route value may be a FakeResponse or an exception to raise.
    """

    def __init__(self, routes: List[Tuple[str, Any]]):
        self.routes = routes
        self.calls: List[Tuple[str, str, dict]] = []
        self.closed = False

    def _respond(self, method: str, url: str, kwargs: dict):
        self.calls.append((method, url, kwargs))
        for prefix, value in self.routes:
            if url.startswith(prefix):
                if isinstance(value, Exception):
                    raise value
                return value
        raise aiohttp.ClientConnectionError(f"no route for {url}")

    def get(self, url, **kwargs):
        return self._respond("GET", url, kwargs)

    def post(self, url, **kwargs):
        return self._respond("POST", url, kwargs)

    def urls(self) -> List[str]:
        return [url for _, url, _ in self.calls]
