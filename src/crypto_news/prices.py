from __future__ import annotations

import logging
import time
from typing import Optional

from .fetchers.prices import PriceFetcher
from .models import PriceQuote
from .store import RedisStore

DEFAULT_PRICES = (("BTC", 50000.0), ("ETH", 3000.0))


class PricePoller:
    def __init__(
        self,
        fetcher: PriceFetcher,
        store: RedisStore,
        history_limit: int,
        logger: Optional[logging.Logger] = None,
    ):
        self.fetcher = fetcher
        self.store = store
        self.history_limit = history_limit
        self.logger = logger or logging.getLogger(__name__)

    def initialize(self) -> None:
        timestamp = int(time.time() * 1000)
        defaults = [PriceQuote(symbol=symbol, price=price, timestamp=timestamp) for symbol, price in DEFAULT_PRICES]
        try:
            if self.store.ensure_default_prices(defaults):
                self.logger.info("default prices initialized")
        except Exception:
            self.logger.exception("price initialization failed")

    def run_once(self) -> Optional[list[PriceQuote]]:
        quotes = self.fetcher.fetch()
        if not quotes:
            return None
        try:
            self.store.store_prices(quotes, self.history_limit)
        except Exception:
            self.logger.exception("price storage failed")
            return None
        self.logger.info("prices stored: %s", ", ".join(f"{quote.symbol}=${quote.price}" for quote in quotes))
        return quotes
