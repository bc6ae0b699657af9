import json

import fakeredis

from crypto_news.models import Article, PriceQuote
from crypto_news.store import (
    ARTICLES_KEY,
    FAILED_PREFIX,
    PROCESSED_SET_KEY,
    STATUS_FAILED,
    STATUS_STORED,
    RedisStore,
)


def _store(max_articles: int = 3) -> RedisStore:
    client = fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)
    return RedisStore(client, max_articles=max_articles)


def _article(message_id: int, api_id: int) -> Article:
    return Article(
        id=message_id,
        api_id=api_id,
        headline=f"Headline {message_id}",
        body=f"Body {message_id}",
        source=f"https://news.example.com/{message_id}",
        date="2026-10-18T00:00:00+00:00",
    )


def test_commit_article_keeps_newest_first_and_evicts_oldest() -> None:
    store = _store(max_articles=3)
    for api_id, message_id in enumerate([5, 9, 7], start=1000):
        store.commit_article(_article(message_id, api_id))

    store.commit_article(_article(8, 1003))

    assert [article.id for article in store.load_articles()] == [9, 8, 7]
    assert store.is_processed(5)
    assert store.message_status(8) == STATUS_STORED


def test_commit_article_replaces_existing_entry_for_same_id() -> None:
    store = _store()
    store.commit_article(_article(4, 1000))
    store.commit_article(_article(4, 1001))

    articles = store.load_articles()
    assert len(articles) == 1
    assert articles[0].api_id == 1001


def test_commit_article_clears_failure_record() -> None:
    store = _store()
    store.mark_failed(6, "content too short", ttl_sec=60)
    assert store.has_failure(6)

    store.commit_article(_article(6, 1000))

    assert not store.has_failure(6)
    assert store.message_status(6) == STATUS_STORED


def test_mark_failed_keeps_first_expiry() -> None:
    store = _store()
    store.mark_failed(3, "first", ttl_sec=100)
    store.client.expire(f"{FAILED_PREFIX}3", 10)

    store.mark_failed(3, "second", ttl_sec=100)

    assert store.failure_reason(3) == "second"
    assert 0 < store.client.ttl(f"{FAILED_PREFIX}3") <= 10
    assert store.is_processed(3)
    assert store.message_status(3) == STATUS_FAILED


def test_failed_ids_lists_numeric_records_only() -> None:
    store = _store()
    store.mark_failed(12, "x", ttl_sec=60)
    store.mark_failed(4, "y", ttl_sec=60)
    store.client.set(f"{FAILED_PREFIX}garbage", "z")

    assert store.failed_ids() == [4, 12]


def test_processing_lease_is_exclusive_and_released() -> None:
    store = _store()
    with store.processing_lease(42, ttl_sec=30) as first:
        with store.processing_lease(42, ttl_sec=30) as second:
            assert first is True
            assert second is False
        # The losing holder must not release the winner's lease.
        assert store.client.exists("lock:42")

    assert not store.client.exists("lock:42")


def test_api_id_counter_is_initialized_once() -> None:
    store = _store()
    assert store.ensure_api_id_counter(999) is True
    assert store.next_api_id() == 1000
    assert store.ensure_api_id_counter(999) is False
    assert store.next_api_id() == 1001


def test_high_water_mark_never_decreases() -> None:
    store = _store()
    assert store.get_high_water_mark() == 0
    assert store.advance_high_water_mark(12) is True
    assert store.advance_high_water_mark(7) is False
    assert store.advance_high_water_mark(12) is False
    assert store.get_high_water_mark() == 12


def test_article_reads_for_api() -> None:
    store = _store()
    store.commit_article(_article(2, 1000))

    assert store.get_article_by_api_id(1000)["headline"] == "Headline 2"
    assert store.get_article_by_api_id(1234) is None
    assert json.loads(store.client.get(ARTICLES_KEY))[0]["apiId"] == 1000
    assert store.client.sismember(PROCESSED_SET_KEY, "2")


def test_store_prices_replaces_latest_and_trims_history() -> None:
    store = _store()
    assert store.ensure_default_prices([PriceQuote("BTC", 50000.0, 1)]) is True

    for ts in range(1, 5):
        store.store_prices([PriceQuote("BTC", 60000.0 + ts, ts)], history_limit=2)

    assert store.latest_prices() == [{"symbol": "BTC", "price": 60004.0, "timestamp": 4}]
    assert store.price_history("BTC") == [(3, 60003.0), (4, 60004.0)]
    assert store.ensure_default_prices([PriceQuote("BTC", 1.0, 1)]) is False
