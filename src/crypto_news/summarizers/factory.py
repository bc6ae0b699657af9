from __future__ import annotations

from collections.abc import Callable
from typing import Optional

import requests

from ..config import Settings
from .base import Summarizer
from .openrouter import OpenRouterSummarizer

SummarizerBuilder = Callable[[Settings, Optional[requests.Session]], Summarizer]

_SUMMARIZER_REGISTRY: dict[str, SummarizerBuilder] = {}


def register_summarizer(name: str, builder: SummarizerBuilder) -> None:
    _SUMMARIZER_REGISTRY[name.strip().lower()] = builder


def _build_openrouter(settings: Settings, session: Optional[requests.Session]) -> Summarizer:
    return OpenRouterSummarizer(
        api_keys=settings.openrouter_api_keys,
        models=settings.openrouter_models,
        endpoint=settings.openrouter_endpoint,
        timeout_sec=settings.model_timeout_sec,
        word_range=(settings.summary_word_min, settings.summary_word_max),
        char_range=(settings.summary_char_min, settings.summary_char_max),
        site_url=settings.site_url,
        site_name=settings.site_name,
        # Summarizing must finish inside the processing lease.
        total_budget_sec=max(settings.processing_lock_ttl_sec * 0.8, 1.0),
        session=session,
    )


def build_summarizer(settings: Settings, session: Optional[requests.Session] = None) -> Summarizer:
    _SUMMARIZER_REGISTRY.setdefault("openrouter", _build_openrouter)

    provider = settings.summarizer_provider.strip().lower()
    builder = _SUMMARIZER_REGISTRY.get(provider)
    if not builder:
        options = ", ".join(sorted(_SUMMARIZER_REGISTRY.keys()))
        raise ValueError(f"Unsupported summarizer provider '{provider}'. Available: {options}")
    return builder(settings, session)
