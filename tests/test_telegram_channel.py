from __future__ import annotations

from types import SimpleNamespace

import pytest
from telethon.tl.types import MessageEntityBold, MessageEntityTextUrl

from crypto_news.fetchers.telegram import (
    ChannelAuthError,
    ChannelError,
    TelegramChannelClient,
    to_channel_message,
)


class FakeTelegramClient:
    def __init__(self, messages: list, authorized: bool = True, error: Exception | None = None):
        self.messages = messages
        self.authorized = authorized
        self.error = error
        self.connected = False
        self.calls: list[tuple[str, dict]] = []

    def is_connected(self) -> bool:
        return self.connected

    def connect(self) -> None:
        self.connected = True

    def disconnect(self) -> None:
        self.connected = False

    def is_user_authorized(self) -> bool:
        return self.authorized

    def get_messages(self, entity: str, **kwargs):
        self.calls.append((entity, kwargs))
        if self.error is not None:
            raise self.error
        if "ids" in kwargs:
            return [message for message in self.messages if message.id in kwargs["ids"]]
        return self.messages[: kwargs.get("limit", len(self.messages))]


def _raw(message_id: int, text: str, entities: list | None = None) -> SimpleNamespace:
    return SimpleNamespace(id=message_id, message=text, entities=entities)


def _client(fake: FakeTelegramClient) -> TelegramChannelClient:
    return TelegramChannelClient(
        api_id=1,
        api_hash="hash",
        session_string="session",
        channel="@cryptonews",
        client_factory=lambda: fake,
    )


def test_to_channel_message_maps_text_url_entities() -> None:
    raw = _raw(
        5,
        "Bitcoin rallies",
        [MessageEntityBold(offset=0, length=7), MessageEntityTextUrl(offset=8, length=7, url="https://x.example.com")],
    )

    message = to_channel_message(raw)

    assert message is not None
    assert message.id == 5
    assert message.text == "Bitcoin rallies"
    assert [entity.kind for entity in message.entities] == ["MessageEntityBold", "text_url"]
    assert message.entities[1].url == "https://x.example.com"


def test_to_channel_message_handles_media_only_posts() -> None:
    message = to_channel_message(_raw(6, None))

    assert message is not None
    assert message.text == ""
    assert message.entities == ()
    assert to_channel_message(SimpleNamespace(id=None)) is None


def test_fetch_latest_connects_and_converts() -> None:
    fake = FakeTelegramClient([_raw(12, "a"), _raw(11, "b"), _raw(10, "c")])
    client = _client(fake)

    messages = client.fetch_latest(2)

    assert fake.connected is True
    assert [message.id for message in messages] == [12, 11]
    assert fake.calls == [("@cryptonews", {"limit": 2})]


def test_fetch_older_passes_offset_and_filters_newer_ids() -> None:
    fake = FakeTelegramClient([_raw(9, "a"), _raw(8, "b"), _raw(7, "c")])
    client = _client(fake)

    messages = client.fetch_older(offset_id=8, limit=10)

    assert [message.id for message in messages] == [7]
    assert fake.calls == [("@cryptonews", {"limit": 10, "offset_id": 8})]


def test_fetch_by_ids_and_latest_message_id() -> None:
    fake = FakeTelegramClient([_raw(30, "a"), _raw(29, "b")])
    client = _client(fake)

    assert [message.id for message in client.fetch_by_ids([29])] == [29]
    assert client.fetch_by_ids([]) == []
    assert client.latest_message_id() == 30


def test_unauthorized_session_raises_auth_error() -> None:
    client = _client(FakeTelegramClient([], authorized=False))

    with pytest.raises(ChannelAuthError):
        client.connect()


def test_fetch_errors_are_wrapped() -> None:
    client = _client(FakeTelegramClient([], error=ConnectionError("reset by peer")))

    with pytest.raises(ChannelError, match="reset by peer"):
        client.fetch_latest(5)


def test_disconnect_closes_open_client() -> None:
    fake = FakeTelegramClient([])
    client = _client(fake)
    client.connect()

    client.disconnect()

    assert fake.connected is False


def test_blank_channel_is_rejected() -> None:
    with pytest.raises(ValueError):
        TelegramChannelClient(api_id=1, api_hash="h", session_string="s", channel="  ")
