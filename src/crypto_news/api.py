from __future__ import annotations

import argparse
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Optional

import redis
import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings
from .store import RedisStore


def build_app(
    *,
    store: RedisStore,
    symbols: Sequence[str] = (),
    cors_origins: tuple[str, ...] = (),
    logger: Optional[logging.Logger] = None,
) -> FastAPI:
    app_logger = logger or logging.getLogger("crypto_news.api")
    normalized_origins = tuple(origin.strip() for origin in cors_origins if origin.strip())
    known_symbols = tuple(symbol.strip() for symbol in symbols if symbol.strip())

    app = FastAPI(
        title="Crypto News API",
        description="Read-only JSON API over cached articles and prices",
        version="0.1.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(normalized_origins),
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Content-Type"],
    )
    if not normalized_origins:
        app_logger.warning("CORS whitelist is empty; browser cross-origin requests will be rejected")

    @app.exception_handler(redis.RedisError)
    async def redis_exception_handler(_: Request, exc: redis.RedisError) -> JSONResponse:
        app_logger.exception("api cache error")
        return JSONResponse(status_code=500, content={"success": False, "error": "cache_unavailable"})

    @app.get("/health")
    def health() -> dict[str, bool]:
        return {"ok": True}

    @app.get("/api/cached-articles")
    def cached_articles() -> list[dict[str, Any]]:
        return store.load_article_dicts()

    @app.get("/api/articles/{api_id}")
    def article_by_api_id(api_id: str) -> dict[str, Any]:
        try:
            requested = int(api_id.strip())
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid API ID format - must be a number")

        item = store.get_article_by_api_id(requested)
        if item is None:
            raise HTTPException(status_code=404, detail="Article not found for the given API ID")
        return {"success": True, "data": item}

    @app.get("/api/cached-prices")
    def cached_prices() -> dict[str, Optional[float]]:
        if not known_symbols:
            app_logger.warning("no CRYPTO_SYMBOLS configured for /api/cached-prices")
            return {}
        by_symbol = {item.get("symbol"): item.get("price") for item in store.latest_prices()}
        return {symbol: (by_symbol.get(symbol) or None) for symbol in known_symbols}

    @app.exception_handler(HTTPException)
    async def http_exception_handler(_: Request, exc: HTTPException) -> JSONResponse:
        error_message = exc.detail if isinstance(exc.detail, str) else "request_error"
        return JSONResponse(status_code=exc.status_code, content={"success": False, "error": error_message})

    return app


def create_app() -> FastAPI:
    """
    Uvicorn factory entrypoint.
    Example:
      REDIS_URL=redis://localhost:6379/0 CRYPTO_SYMBOLS=BTC:bitcoin,ETH:ethereum \
      python3 -m uvicorn crypto_news.api:create_app --factory --host 127.0.0.1 --port 3000
    """
    settings = Settings.from_files()
    return _app_from_settings(settings, logging.getLogger("crypto_news.api"))


def _app_from_settings(settings: Settings, logger: logging.Logger) -> FastAPI:
    store = RedisStore.from_url(
        settings.redis_url,
        max_articles=settings.max_articles,
        connect_timeout_sec=settings.redis_connect_timeout_sec,
        logger=logger,
    )
    return build_app(
        store=store,
        symbols=settings.symbols,
        cors_origins=settings.api_cors_origins,
        logger=logger,
    )


def run_api_server(
    *,
    settings: Settings,
    host: str = "127.0.0.1",
    port: int = 3000,
    logger: Optional[logging.Logger] = None,
) -> None:
    if port < 1 or port > 65535:
        raise ValueError("port must be in [1, 65535]")

    app_logger = logger or logging.getLogger("crypto_news.api")
    app = _app_from_settings(settings, app_logger)
    app_logger.info("api started: http://%s:%s (cache=%s)", host, port, settings.redis_url)

    uvicorn.run(app, host=host, port=port, log_level="info")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve cached crypto news and prices as JSON")
    parser.add_argument("--config-file", default="config.ini", help="Path to config.ini file")
    parser.add_argument("--env-file", default=".env", help="Path to .env file")
    parser.add_argument("--host", default="127.0.0.1", help="Bind host")
    parser.add_argument("--port", type=int, default=3000, help="Bind port")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    return parser.parse_args()


def main() -> None:
    args = _parse_args()
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = Settings.from_files(config_file=Path(args.config_file), env_file=Path(args.env_file))
    run_api_server(
        settings=settings,
        host=args.host,
        port=args.port,
        logger=logging.getLogger("crypto_news.api"),
    )


if __name__ == "__main__":
    main()
