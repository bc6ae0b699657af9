from __future__ import annotations

import logging
from typing import Optional, Protocol

from .models import CycleStats
from .scheduler import PollScheduler
from .store import API_ID_COUNTER_START, RedisStore


class Connectable(Protocol):
    def connect(self) -> None: ...


class ColdStartInitializer:
    """One-time setup before steady-state polling.

    Every failure here propagates: polling must not start against a cache the
    first cycle could not seed.
    """

    def __init__(
        self,
        store: RedisStore,
        channel: Connectable,
        scheduler: PollScheduler,
        counter_start: int = API_ID_COUNTER_START,
        flush_cache: bool = False,
        logger: Optional[logging.Logger] = None,
    ):
        self.store = store
        self.channel = channel
        self.scheduler = scheduler
        self.counter_start = counter_start
        self.flush_cache = flush_cache
        self.logger = logger or logging.getLogger(__name__)

    def run(self) -> CycleStats:
        self.logger.info("cold start: connecting to cache")
        self.store.ping()

        if self.flush_cache:
            self.logger.warning("cold start: FLUSHING cache database (unset DO_FLUSH_REDIS after this deploy)")
            self.store.flush()

        self.logger.info("cold start: connecting to channel")
        self.channel.connect()

        if self.store.ensure_api_id_counter(self.counter_start):
            self.logger.info("cold start: api id counter initialized to %s", self.counter_start)
        if self.store.ensure_articles_key():
            self.logger.info("cold start: empty article cache initialized")

        self.logger.info("cold start: running initial poll cycle")
        stats = self.scheduler.run_cycle(raise_errors=True)
        if stats is None:
            raise RuntimeError("initial poll cycle did not run: scheduler already running")
        self.logger.info("cold start complete: stored=%s mark=%s", stats.stored, stats.high_water_mark)
        return stats
