import asyncio
import logging
import signal

from dotenv import load_dotenv

from core.assistant import Assistant
from core.config import Config
from transports.telegram_bot import TelegramTransport

QUIET_LOGGERS = ("httpx", "httpcore", "telegram.ext.Updater")


def setup_logging(level: str) -> None:
    logging.getLogger().setLevel(getattr(logging, level, logging.INFO))
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


async def main():
    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s :: %(message)s")

    config = Config.from_env()
    setup_logging(config.log_level)

    assistant = Assistant(config)
    telegram_transport = TelegramTransport(assistant, config.telegram_token)

    stop_event = asyncio.Event()

    def _signal_handler(*_):
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            signal.signal(sig, lambda *_: stop_event.set())

    telegram_task = asyncio.create_task(telegram_transport.start())

    await stop_event.wait()

    await telegram_transport.stop()
    await telegram_task
    await assistant.close()


if __name__ == "__main__":
    asyncio.run(main())
