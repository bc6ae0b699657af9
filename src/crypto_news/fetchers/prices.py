from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from typing import Optional

import requests

from ..models import PriceQuote


class PriceFetcher:
    def __init__(
        self,
        api_urls: Sequence[str],
        symbols: Sequence[tuple[str, str]],
        timeout_sec: float,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.api_urls = tuple(url.strip() for url in api_urls if url and url.strip())
        self.symbols = tuple(symbols)
        self.timeout_sec = timeout_sec
        self.session = session or requests.Session()
        self.logger = logger or logging.getLogger(__name__)

    def fetch(self) -> Optional[list[PriceQuote]]:
        ids = ",".join(api_id for _, api_id in self.symbols)
        if not ids:
            self.logger.warning("price fetch skipped: no CRYPTO_SYMBOLS configured")
            return None

        for api_url in self.api_urls:
            try:
                response = self.session.get(
                    api_url,
                    params={"ids": ids, "vs_currencies": "usd", "precision": 2},
                    timeout=self.timeout_sec,
                )
                response.raise_for_status()
                body = response.json()
            except Exception as exc:
                self.logger.warning("price api failed: url=%s error=%s", api_url, exc)
                continue

            if not isinstance(body, dict) or not body:
                self.logger.warning("price api returned malformed body: url=%s", api_url)
                continue

            timestamp = int(time.time() * 1000)
            quotes = [
                PriceQuote(symbol=symbol, price=self._usd(body.get(api_id)), timestamp=timestamp)
                for symbol, api_id in self.symbols
            ]
            self.logger.info("price api succeeded: url=%s symbols=%s", api_url, len(quotes))
            return quotes

        self.logger.error("all price api attempts failed: urls=%s", len(self.api_urls))
        return None

    @staticmethod
    def _usd(entry: object) -> float:
        if not isinstance(entry, dict):
            return 0.0
        try:
            return float(entry.get("usd") or 0)
        except (TypeError, ValueError):
            return 0.0
