from __future__ import annotations

from telethon.sessions import StringSession

from crypto_news.session import generate_session_string


class FakeLoginClient:
    def __init__(self, session: StringSession, api_id: int, api_hash: str):
        self.session = session
        self.api_id = api_id
        self.api_hash = api_hash
        self.started = False
        self.connected = False

    def start(self) -> None:
        self.started = True
        self.connected = True

    def is_connected(self) -> bool:
        return self.connected

    def disconnect(self) -> None:
        self.connected = False


def test_generate_session_string_logs_in_and_disconnects() -> None:
    clients: list[FakeLoginClient] = []

    def factory(session: StringSession, api_id: int, api_hash: str) -> FakeLoginClient:
        client = FakeLoginClient(session, api_id, api_hash)
        clients.append(client)
        return client

    result = generate_session_string(12345, "hash", client_factory=factory)

    client = clients[0]
    assert client.started is True
    assert (client.api_id, client.api_hash) == (12345, "hash")
    assert isinstance(client.session, StringSession)
    assert result == client.session.save()
    assert client.connected is False
