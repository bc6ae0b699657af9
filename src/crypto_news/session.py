from __future__ import annotations

import argparse
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any, Optional

from telethon.sessions import StringSession
from telethon.sync import TelegramClient

from .config import Settings

ClientFactory = Callable[[StringSession, int, str], Any]


def _default_factory(session: StringSession, api_id: int, api_hash: str) -> TelegramClient:
    return TelegramClient(session, api_id, api_hash, connection_retries=5)


def generate_session_string(
    api_id: int,
    api_hash: str,
    client_factory: Optional[ClientFactory] = None,
    logger: Optional[logging.Logger] = None,
) -> str:
    """Log in interactively and return the session string for TELEGRAM_SESSION_STRING.

    ``client.start()`` prompts on the terminal for the phone number, the login
    code and, when enabled, the 2FA password.
    """
    log = logger or logging.getLogger(__name__)
    factory = client_factory or _default_factory
    client = factory(StringSession(), api_id, api_hash)
    try:
        client.start()
        log.info("telegram login succeeded")
        return client.session.save()
    finally:
        if client.is_connected():
            client.disconnect()


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Log in to Telegram and print a session string")
    parser.add_argument("--config-file", default="config.ini", help="Path to config.ini file")
    parser.add_argument("--env-file", default=".env", help="Path to .env file")
    return parser.parse_args()


def main() -> None:
    args = _parse_args()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    settings = Settings.from_files(config_file=Path(args.config_file), env_file=Path(args.env_file))
    if settings.telegram_api_id is None or not settings.telegram_api_hash:
        raise SystemExit("TELEGRAM_API_ID and TELEGRAM_API_HASH must be set before generating a session")

    session_string = generate_session_string(settings.telegram_api_id, settings.telegram_api_hash)
    print("\nSession string (keep it secret, set it as TELEGRAM_SESSION_STRING):\n")
    print(session_string)


if __name__ == "__main__":
    main()
