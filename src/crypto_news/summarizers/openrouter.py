from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable, Sequence
from typing import Optional

import requests

from ..models import Summary
from ..text import count_words, preview, sanitize_body
from .base import Summarizer

HEADLINE_LINE_RE = re.compile(
    r"^[#* \t]*(?:headline|title|header)[ \t]*\**[ \t]*:?[ \t]*\**[ \t]*(.+)$",
    re.IGNORECASE | re.MULTILINE,
)
HEADLINE_TRIM_RE = re.compile(r"^[\s*_\-]+|[\s*_\-]+$")
BLANK_RUN_RE = re.compile(r"(\n\s*){3,}")

SYSTEM_PROMPT = """STRICT REQUIREMENTS FOR CRYPTO NEWS ARTICLE:
1. HEADLINE: Must be exactly 5-7 words.
2. ARTICLE BODY: Must be between {word_min} and {word_max} words (approx {char_min}-{char_max} characters).
3. CONTENT: Must be full sentences providing detailed analysis based ONLY on the user input. DO NOT add outside info or disclaimers.
4. FORMAT: MUST follow this structure EXACTLY, with 'Headline:' at the start:

Headline: [Your headline here]
[Your article content here]"""


class OpenRouterSummarizer(Summarizer):
    name = "openrouter"

    def __init__(
        self,
        api_keys: Sequence[str],
        models: Sequence[str],
        endpoint: str,
        timeout_sec: float,
        word_range: tuple[int, int] = (200, 300),
        char_range: tuple[int, int] = (900, 3500),
        site_url: Optional[str] = None,
        site_name: Optional[str] = None,
        temperature: float = 0.5,
        max_tokens: int = 3500,
        total_budget_sec: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.api_keys = tuple(key.strip() for key in api_keys if key and key.strip())
        self.models = tuple(model.strip() for model in models if model and model.strip())
        if not self.api_keys:
            raise ValueError("OPENROUTER_API_KEYS is required for OpenRouter summarizer")
        if not self.models:
            raise ValueError("OPENROUTER_MODELS must name at least one model")
        self.endpoint = endpoint
        self.timeout_sec = timeout_sec
        self.word_min, self.word_max = word_range
        self.char_min, self.char_max = char_range
        self.site_url = site_url
        self.site_name = site_name
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.total_budget_sec = total_budget_sec
        self.clock = clock
        self.session = session or requests.Session()
        self.logger = logger or logging.getLogger(__name__)

    def summarize(self, text: str, source_url: str) -> Optional[Summary]:
        """Try each model with each key until one reply passes validation.

        ``timeout_sec`` bounds a single connect or read, so ``total_budget_sec``
        caps the whole loop. No new attempt starts once it is spent, and the
        last attempt gets only the time that remains.
        """
        deadline = self.clock() + self.total_budget_sec if self.total_budget_sec else None
        for model in self.models:
            for api_key in self.api_keys:
                timeout = self.timeout_sec
                if deadline is not None:
                    remaining = deadline - self.clock()
                    if remaining <= 0:
                        self.logger.warning("summarizer time budget spent: source=%s", source_url)
                        return None
                    timeout = min(timeout, remaining)
                try:
                    summary = self._attempt(model, api_key, text, timeout)
                except Exception as exc:
                    self.logger.warning("summarizer attempt failed: model=%s key=%s... error=%s", model, api_key[:5], exc)
                    continue
                if summary is not None:
                    self.logger.info("summarizer succeeded: model=%s source=%s", model, source_url)
                    return summary

        self.logger.warning("summarizer produced no valid article: source=%s", source_url)
        return None

    def _attempt(self, model: str, api_key: str, text: str, timeout: float) -> Optional[Summary]:
        started = self.clock()
        response = self.session.post(
            self.endpoint,
            json=self._payload(model, text),
            headers=self._headers(api_key),
            timeout=timeout,
        )
        response.raise_for_status()

        content = self._message_content(response.json())
        if not content:
            self.logger.warning("summarizer malformed response: model=%s", model)
            return None
        self.logger.debug(
            "summarizer raw response: model=%s elapsed_ms=%d preview=%s",
            model,
            int((self.clock() - started) * 1000),
            preview(content),
        )
        return self.parse_response(content, model=model)

    def _payload(self, model: str, text: str) -> dict:
        system_prompt = SYSTEM_PROMPT.format(
            word_min=self.word_min,
            word_max=self.word_max,
            char_min=self.char_min,
            char_max=self.char_max,
        )
        user_prompt = (
            f"{text}\n\nREMEMBER: The article body must be {self.word_min}-{self.word_max} "
            "words long and start AFTER the headline line."
        )
        return {
            "model": model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }

    def _headers(self, api_key: str) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {api_key}"}
        if self.site_url:
            headers["HTTP-Referer"] = self.site_url
        if self.site_name:
            headers["X-Title"] = self.site_name
        return headers

    @staticmethod
    def _message_content(body: object) -> Optional[str]:
        if not isinstance(body, dict):
            return None
        choices = body.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            return None
        message = choices[0].get("message") or {}
        content = message.get("content") if isinstance(message, dict) else None
        return str(content) if content else None

    def parse_response(self, content: str, model: str = "") -> Optional[Summary]:
        match = HEADLINE_LINE_RE.search(content)
        if not match or not match.group(1).strip():
            self.logger.warning("summarizer rejected: model=%s reason=missing headline line", model)
            return None

        headline = HEADLINE_TRIM_RE.sub("", match.group(1))[:100].strip()
        body = content[: match.start()] + content[match.end():]
        body = BLANK_RUN_RE.sub("\n\n", body).strip()
        # One char of headroom keeps over-long bodies detectable after truncation.
        body = sanitize_body(body, max_chars=self.char_max + 1)

        words = count_words(body)
        chars = len(body)
        if words < self.word_min or words > self.word_max:
            self.logger.warning("summarizer rejected: model=%s reason=word count %s out of bounds", model, words)
            return None
        if chars < self.char_min or chars > self.char_max:
            self.logger.warning("summarizer rejected: model=%s reason=char count %s out of bounds", model, chars)
            return None
        return Summary(headline=headline, body=body)
