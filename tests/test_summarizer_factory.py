import pytest

from crypto_news.config import Settings
from crypto_news.summarizers import Summarizer, build_summarizer, register_summarizer
from crypto_news.summarizers.openrouter import OpenRouterSummarizer


def _settings(provider: str) -> Settings:
    return Settings.from_mapping(
        {
            "SUMMARIZER_PROVIDER": provider,
            "OPENROUTER_API_KEYS": "k1, k2",
            "OPENROUTER_MODELS": "model-a,model-b",
            "MODEL_TIMEOUT_SEC": "12",
        }
    )


def test_openrouter_summarizer_is_built_from_settings() -> None:
    summarizer = build_summarizer(_settings("OpenRouter"))

    assert isinstance(summarizer, OpenRouterSummarizer)
    assert summarizer.api_keys == ("k1", "k2")
    assert summarizer.models == ("model-a", "model-b")
    assert summarizer.timeout_sec == 12.0
    assert (summarizer.word_min, summarizer.word_max) == (200, 300)
    assert summarizer.total_budget_sec == 48.0


def test_registered_provider_is_used() -> None:
    class EchoSummarizer(Summarizer):
        name = "echo"

        def summarize(self, text, source_url):
            return None

    register_summarizer("echo", lambda settings, session: EchoSummarizer())

    assert isinstance(build_summarizer(_settings("echo")), EchoSummarizer)


def test_unknown_summarizer_raises() -> None:
    with pytest.raises(ValueError):
        build_summarizer(_settings("unknown-provider"))
