from __future__ import annotations

import pytest

from crypto_news.summarizers.openrouter import OpenRouterSummarizer

GOOD_CONTENT = (
    "Headline: Bitcoin breaks fresh yearly records\n\n"
    "Bitcoin rose sharply today as institutional demand grew across major exchanges worldwide."
)


class FakeResponse:
    def __init__(self, body: dict, status_code: int = 200):
        self._body = body
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise RuntimeError(f"HTTP {self.status_code}")

    def json(self) -> dict:
        return self._body


class FakeSession:
    def __init__(self, responses: list[FakeResponse]):
        self.responses = list(responses)
        self.calls: list[dict] = []

    def post(self, url: str, json: dict | None = None, headers: dict | None = None, timeout: float | None = None):
        self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        return self.responses.pop(0)


def _chat(content: str) -> FakeResponse:
    return FakeResponse({"choices": [{"message": {"role": "assistant", "content": content}}]})


def _summarizer(session: FakeSession, *, keys=("key-one", "key-two"), models=("model-a",)) -> OpenRouterSummarizer:
    return OpenRouterSummarizer(
        api_keys=keys,
        models=models,
        endpoint="https://openrouter.example.com/chat",
        timeout_sec=7,
        word_range=(5, 50),
        char_range=(20, 500),
        site_url="https://site.example.com",
        site_name="News Desk",
        session=session,
    )


def test_summarize_parses_headline_and_body() -> None:
    session = FakeSession([_chat(GOOD_CONTENT)])

    summary = _summarizer(session).summarize("raw post", "https://news.example.com/btc")

    assert summary is not None
    assert summary.headline == "Bitcoin breaks fresh yearly records"
    assert summary.body.startswith("Bitcoin rose sharply")
    assert "Headline" not in summary.body


def test_summarize_sends_payload_headers_and_timeout() -> None:
    session = FakeSession([_chat(GOOD_CONTENT)])

    _summarizer(session).summarize("raw post text", "https://news.example.com/btc")

    call = session.calls[0]
    assert call["url"] == "https://openrouter.example.com/chat"
    assert call["timeout"] == 7
    assert call["headers"] == {
        "Authorization": "Bearer key-one",
        "HTTP-Referer": "https://site.example.com",
        "X-Title": "News Desk",
    }
    assert call["json"]["model"] == "model-a"
    assert call["json"]["messages"][1]["content"].startswith("raw post text")


def test_summarize_falls_back_across_keys_and_models() -> None:
    session = FakeSession(
        [
            FakeResponse({}, status_code=429),
            _chat("no headline line in this reply at all"),
            _chat(GOOD_CONTENT),
        ]
    )

    summary = _summarizer(session, models=("model-a", "model-b")).summarize("raw", "https://n.example.com")

    assert summary is not None
    assert [(call["json"]["model"], call["headers"]["Authorization"]) for call in session.calls] == [
        ("model-a", "Bearer key-one"),
        ("model-a", "Bearer key-two"),
        ("model-b", "Bearer key-one"),
    ]


def test_summarize_returns_none_when_every_attempt_fails() -> None:
    session = FakeSession([FakeResponse({"choices": []}), FakeResponse({}, status_code=500)])

    assert _summarizer(session).summarize("raw", "https://n.example.com") is None
    assert len(session.calls) == 2


def test_parse_response_rejects_out_of_bounds_bodies() -> None:
    summarizer = _summarizer(FakeSession([]))

    assert summarizer.parse_response("Headline: Short one\nToo few words") is None
    assert summarizer.parse_response("Headline: Long one\n" + "word " * 60) is None
    assert summarizer.parse_response("Just a paragraph without any headline marker at all, sadly.") is None


def test_parse_response_accepts_markdown_title_variants() -> None:
    summarizer = _summarizer(FakeSession([]))

    summary = summarizer.parse_response(
        "## **Title:** Ether upgrade ships on time\n"
        "The network upgrade went live after months of testing by core developers."
    )

    assert summary is not None
    assert summary.headline == "Ether upgrade ships on time"


def test_missing_keys_are_rejected() -> None:
    with pytest.raises(ValueError):
        OpenRouterSummarizer(api_keys=(" ",), models=("m",), endpoint="e", timeout_sec=1)


class StepClock:
    def __init__(self, step: float):
        self.now = 0.0
        self.step = step

    def __call__(self) -> float:
        value = self.now
        self.now += self.step
        return value


def test_total_budget_caps_attempts_and_shrinks_last_timeout() -> None:
    session = FakeSession([FakeResponse({}, status_code=500) for _ in range(4)])
    summarizer = OpenRouterSummarizer(
        api_keys=("k1", "k2"),
        models=("model-a", "model-b"),
        endpoint="https://openrouter.example.com/chat",
        timeout_sec=7,
        total_budget_sec=10,
        clock=StepClock(step=3),
        session=session,
    )

    assert summarizer.summarize("raw", "https://n.example.com") is None

    # Deadline is t=10: attempts start at t=3 and t=9, the check at t=15 stops the loop.
    assert [call["timeout"] for call in session.calls] == [7, 1]
