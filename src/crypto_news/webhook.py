from __future__ import annotations

import hashlib
import json
import logging
import time
from typing import Any, Optional

import requests

from .store import RedisStore


def prices_hash(prices: Any) -> str:
    # Compact separators so the digest matches other writers of the same marker.
    payload = json.dumps(prices, separators=(",", ":"))
    return hashlib.md5(payload.encode("utf-8")).hexdigest()


class WebhookNotifier:
    """Pushes the cached articles and prices to a webhook when either changed.

    Change detection compares the newest article id and a hash of the latest
    prices against markers kept in Redis. The markers only move after a 2xx
    response, so a failed post is repeated on the next run.
    """

    def __init__(
        self,
        store: RedisStore,
        target_url: str,
        timeout_sec: float = 15.0,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ):
        if not target_url.strip():
            raise ValueError("WEBHOOK_TARGET_URL is required for the webhook notifier")
        self.store = store
        self.target_url = target_url.strip()
        self.timeout_sec = timeout_sec
        self.session = session or requests.Session()
        self.logger = logger or logging.getLogger(__name__)
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def run_once(self) -> bool:
        if self._running:
            self.logger.info("webhook check skipped: previous check still running")
            return False

        self._running = True
        try:
            return self._check_and_post()
        except Exception:
            self.logger.exception("webhook check failed")
            return False
        finally:
            self._running = False

    def _check_and_post(self) -> bool:
        articles = self.store.load_article_dicts()
        prices = self.store.latest_prices()
        article_max_id = int(articles[0].get("id") or 0) if articles else 0
        current_hash = prices_hash(prices)

        posted_max_id, posted_hash = self.store.webhook_markers()
        articles_changed = article_max_id > posted_max_id
        prices_changed = current_hash != posted_hash
        self.logger.info(
            "webhook state: articles_changed=%s max_id=%s posted_max_id=%s prices_changed=%s",
            articles_changed,
            article_max_id,
            posted_max_id,
            prices_changed,
        )
        if not (articles_changed or prices_changed):
            return False

        payload = {
            "allArticles": articles,
            "latestArticle": articles[0] if articles else None,
            "latestPrices": prices,
        }
        started = time.monotonic()
        try:
            response = self.session.post(self.target_url, json=payload, timeout=self.timeout_sec)
        except requests.RequestException as exc:
            self.logger.warning("webhook post failed: url=%s error=%s", self.target_url, exc)
            return False

        elapsed_ms = int((time.monotonic() - started) * 1000)
        if not 200 <= response.status_code < 300:
            self.logger.warning(
                "webhook post rejected: url=%s status=%s elapsed_ms=%d",
                self.target_url,
                response.status_code,
                elapsed_ms,
            )
            return False

        self.store.mark_webhook_posted(article_max_id, current_hash)
        self.logger.info("webhook posted: status=%s elapsed_ms=%d", response.status_code, elapsed_ms)
        return True
