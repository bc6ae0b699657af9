from __future__ import annotations

import argparse
import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import Optional

import requests

from .config import Settings
from .fetchers.prices import PriceFetcher
from .fetchers.telegram import TelegramChannelClient
from .prices import PricePoller
from .processor import MessageProcessor
from .scheduler import PollScheduler
from .startup import ColdStartInitializer
from .store import RedisStore
from .summarizers import build_summarizer
from .webhook import WebhookNotifier


class IntervalJob:
    def __init__(self, name: str, interval_sec: float, action: Callable[[], object]):
        self.name = name
        self.interval_sec = max(float(interval_sec), 1.0)
        self.action = action
        self.next_run = 0.0

    def due(self, now: float) -> bool:
        return now >= self.next_run

    def run(self, now: float) -> None:
        self.next_run = now + self.interval_sec
        self.action()


def _seconds_until_next(jobs: list[IntervalJob], now: float) -> float:
    if not jobs:
        return 0.0
    return max(min(job.next_run for job in jobs) - now, 0.0)


def _run_jobs_forever(
    jobs: list[IntervalJob],
    logger: logging.Logger,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
    max_ticks: Optional[int] = None,
) -> None:
    ticks = 0
    while max_ticks is None or ticks < max_ticks:
        now = clock()
        for job in jobs:
            if job.due(now):
                logger.debug("running job: name=%s", job.name)
                job.run(now)
        sleep(_seconds_until_next(jobs, clock()))
        ticks += 1


def _build_jobs(
    settings: Settings,
    scheduler: PollScheduler,
    price_poller: Optional[PricePoller],
    webhook_notifier: Optional[WebhookNotifier],
    now: float,
) -> list[IntervalJob]:
    # Cold start already ran a poll cycle, so polling waits one interval.
    poll_job = IntervalJob("telegram-poll", settings.poll_interval_sec, scheduler.run_cycle)
    poll_job.next_run = now + poll_job.interval_sec
    jobs = [poll_job]
    if price_poller is not None:
        jobs.append(IntervalJob("price-poll", settings.price_poll_interval_sec, price_poller.run_once))
    if webhook_notifier is not None:
        webhook_job = IntervalJob("webhook", settings.webhook_interval_sec, webhook_notifier.run_once)
        webhook_job.next_run = now + webhook_job.interval_sec
        jobs.append(webhook_job)
    return jobs


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Telegram crypto news summarizer and price cache")
    parser.add_argument("--config-file", default="config.ini", help="Path to config.ini file")
    parser.add_argument("--env-file", default=".env", help="Path to .env file")
    parser.add_argument("--once", action="store_true", help="Run cold start (one cycle) and exit")
    parser.add_argument("--flush-cache", action="store_true", help="Flush the cache database before starting")
    parser.add_argument("--no-prices", action="store_true", help="Do not poll crypto prices")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    return parser.parse_args()


def main() -> None:
    args = _parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger = logging.getLogger("crypto_news")

    settings = Settings.from_files(
        config_file=Path(args.config_file),
        env_file=Path(args.env_file),
    )
    if args.flush_cache:
        settings.flush_cache_on_start = True
    try:
        settings.validate()
    except ValueError as exc:
        raise SystemExit(str(exc))

    session = requests.Session()
    session.headers.update({"User-Agent": settings.request_user_agent})

    store = RedisStore.from_url(
        settings.redis_url,
        max_articles=settings.max_articles,
        connect_timeout_sec=settings.redis_connect_timeout_sec,
        logger=logger,
    )
    channel = TelegramChannelClient(
        api_id=settings.telegram_api_id or 0,
        api_hash=settings.telegram_api_hash or "",
        session_string=settings.telegram_session_string or "",
        channel=settings.telegram_channel or "",
        connection_retries=settings.telegram_connection_retries,
        logger=logger,
    )
    summarizer = build_summarizer(settings, session=session)
    processor = MessageProcessor(settings=settings, store=store, summarizer=summarizer, logger=logger)
    scheduler = PollScheduler(
        settings=settings,
        channel=channel,
        processor=processor,
        store=store,
        logger=logger,
    )
    price_poller = None
    if not args.no_prices:
        price_poller = PricePoller(
            fetcher=PriceFetcher(
                api_urls=settings.price_api_urls,
                symbols=settings.crypto_symbols,
                timeout_sec=settings.price_api_timeout_sec,
                session=session,
                logger=logger,
            ),
            store=store,
            history_limit=settings.price_history_limit,
            logger=logger,
        )

    initializer = ColdStartInitializer(
        store=store,
        channel=channel,
        scheduler=scheduler,
        flush_cache=settings.flush_cache_on_start,
        logger=logger,
    )
    try:
        initializer.run()
    except Exception as exc:
        logger.exception("startup failed; polling not started")
        channel.disconnect()
        raise SystemExit(1) from exc

    if price_poller is not None:
        price_poller.initialize()

    if args.once:
        if price_poller is not None:
            price_poller.run_once()
        channel.disconnect()
        return

    webhook_notifier = None
    if settings.webhook_target_url:
        webhook_notifier = WebhookNotifier(
            store=store,
            target_url=settings.webhook_target_url,
            timeout_sec=settings.webhook_timeout_sec,
            session=session,
            logger=logger,
        )
    else:
        logger.info("webhook notifier off: WEBHOOK_TARGET_URL not set")

    jobs = _build_jobs(settings, scheduler, price_poller, webhook_notifier, now=time.monotonic())
    logger.info("polling started: jobs=%s", ", ".join(f"{job.name}/{job.interval_sec:g}s" for job in jobs))
    try:
        _run_jobs_forever(jobs, logger)
    except KeyboardInterrupt:
        logger.info("shutting down")
    finally:
        channel.disconnect()


if __name__ == "__main__":
    main()
