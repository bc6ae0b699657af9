from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Optional, Protocol, TypeVar

from .config import Settings
from .fetchers.telegram import ChannelError
from .models import ChannelMessage, CycleStats
from .processor import MessageProcessor
from .store import RedisStore

T = TypeVar("T")


class ChannelClient(Protocol):
    def fetch_latest(self, limit: int) -> list[ChannelMessage]: ...

    def fetch_older(self, offset_id: int, limit: int) -> list[ChannelMessage]: ...

    def fetch_by_ids(self, ids: list[int]) -> list[ChannelMessage]: ...

    def latest_message_id(self) -> int: ...


class PollScheduler:
    """Drives one poll cycle: backfill, forward-fetch, high-water-mark update."""

    def __init__(
        self,
        settings: Settings,
        channel: ChannelClient,
        processor: MessageProcessor,
        store: RedisStore,
        logger: Optional[logging.Logger] = None,
    ):
        self.settings = settings
        self.channel = channel
        self.processor = processor
        self.store = store
        self.logger = logger or logging.getLogger(__name__)
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def run_cycle(self, *, raise_errors: bool = False) -> Optional[CycleStats]:
        if self._running:
            self.logger.info("poll skipped: previous cycle still running")
            return None

        self._running = True
        self.logger.info("poll cycle starting")
        try:
            stats = self._run_cycle()
            self.logger.info(
                "poll cycle complete: fetched=%s stored=%s skipped=%s failed=%s mark=%s",
                stats.fetched,
                stats.stored,
                stats.skipped,
                stats.failed,
                stats.high_water_mark,
            )
            return stats
        except Exception:
            if raise_errors:
                raise
            self.logger.exception("poll cycle failed")
            return None
        finally:
            self._running = False

    def _run_cycle(self) -> CycleStats:
        stats = CycleStats()
        article_count = self.store.article_count()
        mark = self.store.get_high_water_mark()
        self.logger.info("poll state: articles=%s mark=%s", article_count, mark)

        if article_count < self.settings.max_articles:
            self._backfill(mark, stats)

        highest = self._forward_fetch(mark, stats)

        channel_latest = self._safe_fetch("latest id", self.channel.latest_message_id, 0)
        new_mark = max(highest, channel_latest, mark)
        if new_mark > mark and self.store.advance_high_water_mark(new_mark):
            self.logger.info("high-water mark advanced: %s -> %s", mark, new_mark)
        stats.high_water_mark = max(new_mark, mark)
        return stats

    def _backfill(self, mark: int, stats: CycleStats) -> None:
        articles = self.store.load_articles()
        if articles:
            oldest_id = min(article.id for article in articles)
        else:
            oldest_id = mark + 1 if mark > 0 else 1
        if oldest_id <= 1:
            self.logger.info("backfill skipped: reached channel origin")
            return

        needed = self.settings.max_articles - len(articles)
        limit = max(needed + 10, self.settings.message_fetch_limit)
        self.logger.info("backfill: looking for %s messages older than id=%s", needed, oldest_id)
        candidates = self._safe_fetch(
            "backfill",
            lambda: self.channel.fetch_older(oldest_id, limit),
            [],
        )
        candidates = [message for message in candidates if message.id < oldest_id]
        if not candidates:
            self.logger.info("backfill: no older messages found")
            return

        stats.fetched += len(candidates)
        for message in sorted(candidates, key=lambda item: item.id):
            if self.store.is_processed(message.id):
                continue
            stats.record(self.processor.process(message))
            if self.store.article_count() >= self.settings.max_articles:
                self.logger.info("backfill: capacity reached")
                break

    def _forward_fetch(self, mark: int, stats: CycleStats) -> int:
        latest = self._safe_fetch(
            "latest messages",
            lambda: self.channel.fetch_latest(self.settings.message_fetch_limit),
            [],
        )
        candidates: dict[int, ChannelMessage] = {
            message.id: message for message in latest if message.id > mark
        }

        retry_ids = {message_id for message_id in self.store.failed_ids() if message_id > mark}
        if retry_ids:
            self.logger.info("retrying failed messages: count=%s above mark=%s", len(retry_ids), mark)
            refetched = self._safe_fetch(
                "failed retry",
                lambda: self.channel.fetch_by_ids(sorted(retry_ids)),
                [],
            )
            for message in refetched:
                if message.id > mark:
                    candidates.setdefault(message.id, message)

        stats.fetched += len(candidates)
        highest = mark
        for message_id in sorted(candidates, reverse=True):
            message = candidates[message_id]
            is_retry = message_id in retry_ids
            if not is_retry and self.store.is_processed(message_id):
                continue
            result = self.processor.process(message, retry=is_retry)
            stats.record(result)
            if result.accounted_for:
                highest = max(highest, message_id)
        return highest

    def _safe_fetch(self, label: str, fetch: Callable[[], T], default: T) -> T:
        try:
            return fetch()
        except ChannelError as exc:
            self.logger.warning("channel fetch failed: step=%s error=%s", label, exc)
            return default
