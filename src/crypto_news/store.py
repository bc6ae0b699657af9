from __future__ import annotations

import json
import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any, Optional

import redis

from .models import Article, PriceQuote

ARTICLES_KEY = "articles"
PROCESSED_SET_KEY = "processed_ids"
STATUS_HASH_KEY = "message_status"
FAILED_PREFIX = "failed:"
LOCK_PREFIX = "lock:"
HIGH_WATER_MARK_KEY = "lastMaxId"
API_ID_COUNTER_KEY = "article_api_id_counter"
API_ID_COUNTER_START = 999
LATEST_PRICES_KEY = "latestPrices"
PRICE_HISTORY_PREFIX = "priceHistory:"
WEBHOOK_ARTICLE_MARK_KEY = "webhook_last_posted_article_max_id"
WEBHOOK_PRICES_HASH_KEY = "webhook_last_posted_prices_hash"

STATUS_STORED = "stored"
STATUS_SKIPPED_NO_URL = "skipped_no_url"
STATUS_FAILED = "failed"


class RedisLease:
    """Best-effort exclusive lease on a single key (``SET NX EX``).

    The TTL only frees leases left behind by a crashed holder. It is not a
    fencing mechanism: a holder that outlives its TTL can overlap with the
    next one.
    """

    def __init__(self, client: redis.Redis, value: str = "processing"):
        self.client = client
        self.value = value

    def acquire(self, key: str, ttl_sec: int) -> bool:
        return bool(self.client.set(key, self.value, nx=True, ex=max(int(ttl_sec), 1)))

    def release(self, key: str) -> None:
        self.client.delete(key)


class RedisStore:
    def __init__(
        self,
        client: redis.Redis,
        max_articles: int,
        logger: Optional[logging.Logger] = None,
    ):
        self.client = client
        self.max_articles = max_articles
        self.lease = RedisLease(client)
        self.logger = logger or logging.getLogger(__name__)

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        max_articles: int,
        connect_timeout_sec: float = 5.0,
        logger: Optional[logging.Logger] = None,
    ) -> "RedisStore":
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=connect_timeout_sec,
            health_check_interval=30,
        )
        return cls(client, max_articles=max_articles, logger=logger)

    def ping(self) -> bool:
        return bool(self.client.ping())

    def flush(self) -> None:
        self.client.flushdb()

    # -- processing lease --------------------------------------------------

    @contextmanager
    def processing_lease(self, message_id: int, ttl_sec: int) -> Iterator[bool]:
        key = f"{LOCK_PREFIX}{message_id}"
        acquired = self.lease.acquire(key, ttl_sec)
        try:
            yield acquired
        finally:
            if acquired:
                self.lease.release(key)

    # -- processed ids and failure records -----------------------------------

    def is_processed(self, message_id: int) -> bool:
        return bool(self.client.sismember(PROCESSED_SET_KEY, str(message_id)))

    def processed_ids(self) -> set[int]:
        return {int(value) for value in self.client.smembers(PROCESSED_SET_KEY)}

    def message_status(self, message_id: int) -> Optional[str]:
        return self.client.hget(STATUS_HASH_KEY, str(message_id))

    def mark_processed(self, message_id: int, status: str) -> None:
        pipe = self.client.pipeline(transaction=True)
        pipe.sadd(PROCESSED_SET_KEY, str(message_id))
        pipe.hset(STATUS_HASH_KEY, str(message_id), status)
        pipe.execute()

    def has_failure(self, message_id: int) -> bool:
        return bool(self.client.exists(f"{FAILED_PREFIX}{message_id}"))

    def failure_reason(self, message_id: int) -> Optional[str]:
        return self.client.get(f"{FAILED_PREFIX}{message_id}")

    def mark_failed(self, message_id: int, reason: str, ttl_sec: int) -> None:
        key = f"{FAILED_PREFIX}{message_id}"
        reason = (reason or "unknown failure")[:1000]
        # A repeated failure keeps the first expiry so retries stay bounded.
        if not self.client.set(key, reason, nx=True, ex=max(int(ttl_sec), 1)):
            self.client.set(key, reason, xx=True, keepttl=True)
        self.mark_processed(message_id, STATUS_FAILED)

    def failed_ids(self) -> list[int]:
        ids: list[int] = []
        for key in self.client.scan_iter(match=f"{FAILED_PREFIX}*", count=500):
            raw = key[len(FAILED_PREFIX):]
            if raw.isdigit():
                ids.append(int(raw))
        return sorted(ids)

    # -- api id counter --------------------------------------------------------

    def ensure_api_id_counter(self, start: int = API_ID_COUNTER_START) -> bool:
        return bool(self.client.set(API_ID_COUNTER_KEY, start, nx=True))

    def next_api_id(self) -> int:
        return int(self.client.incr(API_ID_COUNTER_KEY))

    # -- high-water mark -------------------------------------------------------

    def get_high_water_mark(self) -> int:
        raw = self.client.get(HIGH_WATER_MARK_KEY)
        return int(raw) if raw else 0

    def advance_high_water_mark(self, value: int) -> bool:
        def _apply(pipe: redis.client.Pipeline) -> bool:
            raw = pipe.get(HIGH_WATER_MARK_KEY)
            if value <= (int(raw) if raw else 0):
                return False
            pipe.multi()
            pipe.set(HIGH_WATER_MARK_KEY, int(value))
            return True

        return bool(self.client.transaction(_apply, HIGH_WATER_MARK_KEY, value_from_callable=True))

    # -- articles --------------------------------------------------------------

    def ensure_articles_key(self) -> bool:
        return bool(self.client.set(ARTICLES_KEY, "[]", nx=True))

    def load_article_dicts(self) -> list[dict[str, Any]]:
        raw = self.client.get(ARTICLES_KEY)
        if not raw:
            return []
        data = json.loads(raw)
        return data if isinstance(data, list) else []

    def load_articles(self) -> list[Article]:
        return [Article.from_dict(item) for item in self.load_article_dicts()]

    def article_count(self) -> int:
        return len(self.load_article_dicts())

    def get_article_by_api_id(self, api_id: int) -> Optional[dict[str, Any]]:
        for item in self.load_article_dicts():
            if item.get("apiId") == api_id:
                return item
        return None

    def commit_article(self, article: Article) -> list[Article]:
        """Store ``article`` and mark its message handled in one MULTI/EXEC.

        ``articles`` is WATCHed, so a concurrent writer makes redis-py re-run
        the read-merge-write instead of losing an update.
        """

        def _apply(pipe: redis.client.Pipeline) -> list[Article]:
            raw = pipe.get(ARTICLES_KEY)
            current = [Article.from_dict(item) for item in json.loads(raw)] if raw else []
            merged = [article] + [item for item in current if item.id != article.id]
            merged.sort(key=lambda item: item.id, reverse=True)
            merged = merged[: self.max_articles]

            pipe.multi()
            pipe.set(ARTICLES_KEY, json.dumps([item.to_dict() for item in merged]))
            pipe.sadd(PROCESSED_SET_KEY, str(article.id))
            pipe.hset(STATUS_HASH_KEY, str(article.id), STATUS_STORED)
            pipe.delete(f"{FAILED_PREFIX}{article.id}")
            return merged

        return self.client.transaction(_apply, ARTICLES_KEY, value_from_callable=True)

    # -- prices ----------------------------------------------------------------

    def latest_prices(self) -> list[dict[str, Any]]:
        raw = self.client.get(LATEST_PRICES_KEY)
        if not raw:
            return []
        data = json.loads(raw)
        return data if isinstance(data, list) else []

    def ensure_default_prices(self, quotes: Sequence[PriceQuote]) -> bool:
        payload = json.dumps([quote.to_dict() for quote in quotes])
        return bool(self.client.set(LATEST_PRICES_KEY, payload, nx=True))

    def store_prices(self, quotes: Sequence[PriceQuote], history_limit: int) -> None:
        pipe = self.client.pipeline(transaction=True)
        pipe.set(LATEST_PRICES_KEY, json.dumps([quote.to_dict() for quote in quotes]))
        for quote in quotes:
            key = f"{PRICE_HISTORY_PREFIX}{quote.symbol}"
            pipe.zadd(key, {f"{quote.timestamp}:{quote.price}": quote.timestamp})
            pipe.zremrangebyrank(key, 0, -history_limit - 1)
        pipe.execute()

    def price_history(self, symbol: str) -> list[tuple[int, float]]:
        entries = self.client.zrange(f"{PRICE_HISTORY_PREFIX}{symbol}", 0, -1, withscores=True)
        history: list[tuple[int, float]] = []
        for member, score in entries:
            _, _, price = member.partition(":")
            history.append((int(score), float(price)))
        return history

    # -- webhook markers ---------------------------------------------------------

    def webhook_markers(self) -> tuple[int, str]:
        article_mark, prices_hash = self.client.mget(WEBHOOK_ARTICLE_MARK_KEY, WEBHOOK_PRICES_HASH_KEY)
        return (int(article_mark) if article_mark else 0), (prices_hash or "")

    def mark_webhook_posted(self, article_max_id: int, prices_hash: str) -> None:
        pipe = self.client.pipeline(transaction=True)
        pipe.set(WEBHOOK_ARTICLE_MARK_KEY, int(article_max_id))
        pipe.set(WEBHOOK_PRICES_HASH_KEY, prices_hash)
        pipe.execute()
