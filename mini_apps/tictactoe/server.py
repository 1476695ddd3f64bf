"""Static HTTPS host for the Tic Tac Toe web app opened from the bot's "Start Game" button."""

import logging
import os
import ssl
from pathlib import Path

from aiohttp import web

log = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent
PUBLIC_DIR = BASE_DIR / "public"
SSL_DIR = BASE_DIR / "ssl"
DEFAULT_PORT = 8443


def make_app(public_dir: Path = PUBLIC_DIR) -> web.Application:
    async def index(request: web.Request) -> web.FileResponse:
        return web.FileResponse(public_dir / "index.html")

    app = web.Application()
    app.router.add_get("/", index)
    app.router.add_static("/", public_dir, show_index=False)
    return app


def make_ssl_context(ssl_dir: Path = SSL_DIR) -> ssl.SSLContext:
    context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    context.load_cert_chain(ssl_dir / "cert.pem", ssl_dir / "key.pem")
    return context


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s :: %(message)s")
    port = int(os.getenv("PORT", DEFAULT_PORT))
    try:
        context = make_ssl_context()
    except (OSError, ssl.SSLError) as exc:
        raise SystemExit(f"Cannot load certificates from {SSL_DIR}: {exc}")
    log.info("TicTacToe mini app running on port %s", port)
    try:
        web.run_app(make_app(), port=port, ssl_context=context, print=None)
    except OSError as exc:
        raise SystemExit(f"Port {port} is unavailable: {exc}")


if __name__ == "__main__":
    main()
