from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any, Optional

from telethon.errors import RPCError
from telethon.sessions import StringSession
from telethon.sync import TelegramClient
from telethon.tl.types import MessageEntityTextUrl

from ..models import ChannelMessage, MessageEntity
from ..urls import TEXT_URL_KIND

ClientFactory = Callable[[], Any]


class ChannelError(RuntimeError):
    """A channel fetch failed; callers may retry on the next cycle."""


class ChannelAuthError(ChannelError):
    """The stored session is not authorized for the channel."""


def _to_entity(raw: Any) -> MessageEntity:
    if isinstance(raw, MessageEntityTextUrl):
        return MessageEntity(kind=TEXT_URL_KIND, url=raw.url)
    return MessageEntity(kind=type(raw).__name__, url=getattr(raw, "url", None))


def to_channel_message(raw: Any) -> Optional[ChannelMessage]:
    message_id = getattr(raw, "id", None)
    if not message_id:
        return None
    entities = tuple(_to_entity(entity) for entity in (getattr(raw, "entities", None) or ()))
    return ChannelMessage(
        id=int(message_id),
        text=getattr(raw, "message", None) or "",
        entities=entities,
    )


class TelegramChannelClient:
    def __init__(
        self,
        api_id: int,
        api_hash: str,
        session_string: str,
        channel: str,
        connection_retries: int = 5,
        client_factory: Optional[ClientFactory] = None,
        logger: Optional[logging.Logger] = None,
    ):
        if not channel.strip():
            raise ValueError("TELEGRAM_CHANNEL is required for the channel client")
        self.api_id = api_id
        self.api_hash = api_hash
        self.session_string = session_string
        self.channel = channel.strip()
        self.connection_retries = connection_retries
        self.client_factory = client_factory or self._default_factory
        self.logger = logger or logging.getLogger(__name__)
        self._client: Any = None

    def _default_factory(self) -> TelegramClient:
        return TelegramClient(
            StringSession(self.session_string),
            self.api_id,
            self.api_hash,
            connection_retries=self.connection_retries,
            auto_reconnect=True,
        )

    def connect(self) -> None:
        if self._client is None:
            self._client = self.client_factory()
        try:
            if not self._client.is_connected():
                self.logger.info("connecting to telegram: channel=%s", self.channel)
                self._client.connect()
            authorized = self._client.is_user_authorized()
        except (RPCError, ConnectionError, OSError) as exc:
            raise ChannelError(f"Telegram connection failed: {exc}") from exc
        if not authorized:
            raise ChannelAuthError("Telegram authorization failed. Check API credentials and session string.")

    def _connected_client(self) -> Any:
        if self._client is None or not self._client.is_connected():
            self.connect()
        return self._client

    def _get_messages(self, **kwargs: Any) -> list[Any]:
        client = self._connected_client()
        try:
            result = client.get_messages(self.channel, **kwargs)
        except (RPCError, ConnectionError, OSError) as exc:
            raise ChannelError(f"Telegram fetch failed ({kwargs}): {exc}") from exc
        if result is None:
            return []
        if isinstance(result, list):
            return result
        return list(result)

    def _convert(self, raw_messages: Iterable[Any]) -> list[ChannelMessage]:
        converted: list[ChannelMessage] = []
        for raw in raw_messages:
            message = to_channel_message(raw) if raw is not None else None
            if message is not None:
                converted.append(message)
        return converted

    def fetch_latest(self, limit: int) -> list[ChannelMessage]:
        return self._convert(self._get_messages(limit=limit))

    def fetch_older(self, offset_id: int, limit: int) -> list[ChannelMessage]:
        # offset_id excludes itself: only messages with a smaller id come back.
        messages = self._convert(self._get_messages(limit=limit, offset_id=offset_id))
        return [message for message in messages if message.id < offset_id]

    def fetch_by_ids(self, ids: Iterable[int]) -> list[ChannelMessage]:
        wanted = [int(message_id) for message_id in ids]
        if not wanted:
            return []
        return self._convert(self._get_messages(ids=wanted))

    def latest_message_id(self) -> int:
        messages = self._convert(self._get_messages(limit=1))
        return messages[0].id if messages else 0

    def disconnect(self) -> None:
        if self._client is not None and self._client.is_connected():
            self._client.disconnect()
