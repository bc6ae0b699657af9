from __future__ import annotations

import configparser
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional


DEFAULT_OPENROUTER_ENDPOINT = "https://openrouter.ai/api/v1/chat/completions"
DEFAULT_OPENROUTER_MODEL = "meta-llama/llama-3-70b-instruct"
DEFAULT_PRICE_API = "https://api.coingecko.com/api/v3/simple/price"
REQUIRED_KEYS = (
    "TELEGRAM_API_ID",
    "TELEGRAM_API_HASH",
    "TELEGRAM_SESSION_STRING",
    "TELEGRAM_CHANNEL",
    "REDIS_URL",
    "OPENROUTER_API_KEYS",
)


def _as_bool(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_ini(path: Path) -> dict[str, str]:
    if not path.exists():
        return {}

    parser = configparser.ConfigParser()
    parser.optionxform = str
    parser.read(path, encoding="utf-8")

    values: dict[str, str] = {}
    for key, value in parser.defaults().items():
        values[key.upper()] = value
    for section in parser.sections():
        for key, value in parser.items(section):
            values[key.upper()] = value
    return values


def _parse_dotenv(path: Path) -> dict[str, str]:
    if not path.exists():
        return {}

    values: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip()
        if (
            len(value) >= 2
            and value[0] == value[-1]
            and value[0] in {"'", '"'}
        ):
            value = value[1:-1]

        if key:
            values[key.upper()] = value
    return values


def _pick(
    values: Mapping[str, str],
    key: str,
    default: Optional[str] = None,
) -> Optional[str]:
    value = values.get(key)
    if value is None:
        return default
    return str(value)


def _pick_int(values: Mapping[str, str], key: str, default: int) -> int:
    raw = (_pick(values, key) or "").strip()
    return int(raw) if raw else default


def _pick_float(values: Mapping[str, str], key: str, default: float) -> float:
    raw = (_pick(values, key) or "").strip()
    return float(raw) if raw else default


def _split_csv(value: Optional[str]) -> tuple[str, ...]:
    raw = (value or "").strip()
    if not raw:
        return ()
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def _parse_symbols(value: Optional[str]) -> tuple[tuple[str, str], ...]:
    # "BTC:bitcoin,ETH:ethereum" -> (("BTC", "bitcoin"), ("ETH", "ethereum"))
    pairs: list[tuple[str, str]] = []
    for part in _split_csv(value):
        symbol, _, api_id = part.partition(":")
        symbol = symbol.strip()
        api_id = api_id.strip()
        if symbol and api_id:
            pairs.append((symbol, api_id))
    return tuple(pairs)


@dataclass
class Settings:
    telegram_api_id: Optional[int]
    telegram_api_hash: Optional[str]
    telegram_session_string: Optional[str]
    telegram_channel: Optional[str]
    telegram_connection_retries: int

    redis_url: str
    redis_connect_timeout_sec: float

    max_articles: int
    message_fetch_limit: int
    poll_interval_sec: int
    processing_lock_ttl_sec: int
    failure_ttl_sec: int
    max_input_chars: int
    min_body_chars: int
    min_body_words: int
    max_body_chars: int

    summarizer_provider: str
    openrouter_api_keys: tuple[str, ...]
    openrouter_models: tuple[str, ...]
    openrouter_endpoint: str
    model_timeout_sec: float
    summary_word_min: int
    summary_word_max: int
    summary_char_min: int
    summary_char_max: int
    site_url: Optional[str]
    site_name: str

    price_api_urls: tuple[str, ...]
    crypto_symbols: tuple[tuple[str, str], ...]
    price_history_limit: int
    price_api_timeout_sec: float
    price_poll_interval_sec: int

    webhook_target_url: Optional[str]
    webhook_interval_sec: int
    webhook_timeout_sec: float

    api_cors_origins: tuple[str, ...]
    flush_cache_on_start: bool
    request_user_agent: str

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, str]) -> "Settings":
        values = {key.upper(): str(value) for key, value in mapping.items() if value is not None}
        api_id_raw = (_pick(values, "TELEGRAM_API_ID") or "").strip()

        return cls(
            telegram_api_id=int(api_id_raw) if api_id_raw else None,
            telegram_api_hash=(_pick(values, "TELEGRAM_API_HASH") or "").strip() or None,
            telegram_session_string=(_pick(values, "TELEGRAM_SESSION_STRING") or "").strip() or None,
            telegram_channel=(_pick(values, "TELEGRAM_CHANNEL") or "").strip() or None,
            telegram_connection_retries=_pick_int(values, "TELEGRAM_CONNECTION_RETRIES", 5),
            redis_url=(_pick(values, "REDIS_URL", "redis://localhost:6379/0") or "").strip(),
            redis_connect_timeout_sec=_pick_float(values, "REDIS_CONNECT_TIMEOUT_SEC", 5.0),
            max_articles=_pick_int(values, "MAX_ARTICLES", 25),
            message_fetch_limit=_pick_int(values, "MESSAGE_FETCH_LIMIT", 25),
            poll_interval_sec=_pick_int(values, "POLL_INTERVAL_SEC", 60),
            processing_lock_ttl_sec=_pick_int(values, "PROCESSING_LOCK_TTL_SEC", 60),
            failure_ttl_sec=_pick_int(values, "FAILURE_TTL_SEC", 86400),
            max_input_chars=_pick_int(values, "MAX_INPUT_CHARS", 2000),
            min_body_chars=_pick_int(values, "MIN_BODY_CHARS", 50),
            min_body_words=_pick_int(values, "MIN_BODY_WORDS", 20),
            max_body_chars=_pick_int(values, "MAX_BODY_CHARS", 5000),
            summarizer_provider=(_pick(values, "SUMMARIZER_PROVIDER", "openrouter") or "openrouter").strip().lower(),
            openrouter_api_keys=_split_csv(_pick(values, "OPENROUTER_API_KEYS")),
            openrouter_models=_split_csv(_pick(values, "OPENROUTER_MODELS")) or (DEFAULT_OPENROUTER_MODEL,),
            openrouter_endpoint=(
                _pick(values, "OPENROUTER_ENDPOINT", DEFAULT_OPENROUTER_ENDPOINT) or DEFAULT_OPENROUTER_ENDPOINT
            ).strip(),
            model_timeout_sec=_pick_float(values, "MODEL_TIMEOUT_SEC", 20.0),
            summary_word_min=_pick_int(values, "SUMMARY_WORD_MIN", 200),
            summary_word_max=_pick_int(values, "SUMMARY_WORD_MAX", 300),
            summary_char_min=_pick_int(values, "SUMMARY_CHAR_MIN", 900),
            summary_char_max=_pick_int(values, "SUMMARY_CHAR_MAX", 3500),
            site_url=(_pick(values, "SITE_URL") or "").strip() or None,
            site_name=(_pick(values, "SITE_NAME", "CryptoNews AI Processor") or "").strip(),
            price_api_urls=_split_csv(_pick(values, "PRICE_API_URLS")) or (DEFAULT_PRICE_API,),
            crypto_symbols=_parse_symbols(_pick(values, "CRYPTO_SYMBOLS")),
            price_history_limit=_pick_int(values, "PRICE_HISTORY_LIMIT", 1440),
            price_api_timeout_sec=_pick_float(values, "PRICE_API_TIMEOUT_SEC", 8.0),
            price_poll_interval_sec=_pick_int(values, "PRICE_POLL_INTERVAL_SEC", 150),
            webhook_target_url=(_pick(values, "WEBHOOK_TARGET_URL") or "").strip() or None,
            webhook_interval_sec=_pick_int(values, "WEBHOOK_INTERVAL_MINUTES", 1) * 60,
            webhook_timeout_sec=_pick_float(values, "WEBHOOK_TIMEOUT_SEC", 15.0),
            api_cors_origins=_split_csv(_pick(values, "API_CORS_ORIGINS")),
            flush_cache_on_start=_as_bool(_pick(values, "DO_FLUSH_REDIS", "false"), default=False),
            request_user_agent=(_pick(values, "REQUEST_USER_AGENT", "crypto-news/0.1") or "").strip(),
        )

    @classmethod
    def from_files(
        cls,
        *,
        config_file: Path | str = "config.ini",
        env_file: Path | str = ".env",
        base_env: Optional[Mapping[str, str]] = None,
    ) -> "Settings":
        merged_values: dict[str, str] = {}
        merged_values.update(_parse_ini(Path(config_file)))
        merged_values.update(_parse_dotenv(Path(env_file)))
        if base_env is None:
            base_env = os.environ
        for key, value in base_env.items():
            if value is not None:
                merged_values[key.upper()] = str(value)
        return cls.from_mapping(merged_values)

    @property
    def symbols(self) -> tuple[str, ...]:
        return tuple(symbol for symbol, _ in self.crypto_symbols)

    def missing_required(self) -> list[str]:
        present = {
            "TELEGRAM_API_ID": self.telegram_api_id is not None,
            "TELEGRAM_API_HASH": bool(self.telegram_api_hash),
            "TELEGRAM_SESSION_STRING": bool(self.telegram_session_string),
            "TELEGRAM_CHANNEL": bool(self.telegram_channel),
            "REDIS_URL": bool(self.redis_url),
            "OPENROUTER_API_KEYS": bool(self.openrouter_api_keys),
        }
        return [key for key in REQUIRED_KEYS if not present[key]]

    def validate(self) -> None:
        missing = self.missing_required()
        if missing:
            raise ValueError(f"Missing required configuration: {', '.join(missing)}")
        if self.max_articles < 1:
            raise ValueError("MAX_ARTICLES must be at least 1")
        if self.message_fetch_limit < 1:
            raise ValueError("MESSAGE_FETCH_LIMIT must be at least 1")
