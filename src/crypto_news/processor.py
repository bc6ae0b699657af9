from __future__ import annotations

import logging
from typing import Optional

from .config import Settings
from .models import Article, ChannelMessage, ProcessOutcome, ProcessResult, Summary, utc_now_iso
from .store import STATUS_SKIPPED_NO_URL, RedisStore
from .summarizers.base import Summarizer
from .text import clean_headline, count_words, sanitize_body
from .urls import extract_url


class MessageProcessor:
    def __init__(
        self,
        settings: Settings,
        store: RedisStore,
        summarizer: Summarizer,
        logger: Optional[logging.Logger] = None,
    ):
        self.settings = settings
        self.store = store
        self.summarizer = summarizer
        self.logger = logger or logging.getLogger(__name__)

    def process(self, message: ChannelMessage, *, retry: bool = False) -> ProcessResult:
        """Run one channel message through lock, dedupe, summarize and store.

        Never raises for anything past the dedupe gate: unexpected errors are
        recorded as failures so a single bad message cannot stop a cycle.
        ``retry`` lets a message with a live failure record through the
        processed-id gate.
        """
        if message is None or not message.id:
            self.logger.warning("invalid message skipped: message=%r", message)
            return ProcessResult(message_id=0, outcome=ProcessOutcome.SKIPPED, reason="invalid message")

        msg_id = message.id
        with self.store.processing_lease(msg_id, self.settings.processing_lock_ttl_sec) as acquired:
            if not acquired:
                self.logger.info("message locked elsewhere: id=%s", msg_id)
                return ProcessResult(message_id=msg_id, outcome=ProcessOutcome.SKIPPED, reason="locked")

            if self.store.is_processed(msg_id) and not (retry and self.store.has_failure(msg_id)):
                return ProcessResult(message_id=msg_id, outcome=ProcessOutcome.SKIPPED, reason="already processed")

            try:
                return self._summarize_and_store(message)
            except Exception as exc:
                self.logger.exception("message processing failed: id=%s", msg_id)
                self._record_failure(msg_id, f"Critical error: {exc}")
                return ProcessResult(message_id=msg_id, outcome=ProcessOutcome.FAILED, reason=str(exc))

    def _summarize_and_store(self, message: ChannelMessage) -> ProcessResult:
        msg_id = message.id
        source_url = extract_url(message.text, message.entities)
        if not source_url:
            self.logger.info("message skipped: id=%s reason=no valid url", msg_id)
            self.store.mark_processed(msg_id, STATUS_SKIPPED_NO_URL)
            return ProcessResult(message_id=msg_id, outcome=ProcessOutcome.SKIPPED, reason="no url")

        raw_text = (message.text or "")[: self.settings.max_input_chars]
        self.logger.info("summarizing message: id=%s source=%s", msg_id, source_url)
        summary = self.summarizer.summarize(raw_text, source_url)

        body = sanitize_body(summary.body, max_chars=self.settings.max_body_chars) if summary else ""
        reason = self._rejection_reason(summary, body)
        if reason:
            self.logger.warning("invalid summary: id=%s reason=%s", msg_id, reason)
            self._record_failure(msg_id, f"Processing failed: {reason}")
            return ProcessResult(message_id=msg_id, outcome=ProcessOutcome.FAILED, reason=reason)

        api_id = self.store.next_api_id()
        article = Article(
            id=msg_id,
            api_id=api_id,
            headline=clean_headline(summary.headline),
            body=body,
            source=source_url,
            date=utc_now_iso(),
        )
        self.store.commit_article(article)
        self.logger.info("article stored: id=%s api_id=%s", msg_id, api_id)
        return ProcessResult(message_id=msg_id, outcome=ProcessOutcome.STORED, api_id=api_id)

    def _rejection_reason(self, summary: Optional[Summary], body: str) -> Optional[str]:
        if summary is None:
            return "summarizer returned nothing"
        if not clean_headline(summary.headline):
            return "missing headline"
        if not body:
            return "empty body"
        if len(body) < self.settings.min_body_chars:
            return f"body too short ({len(body)} chars)"
        words = count_words(body)
        if words < self.settings.min_body_words:
            return f"body too short ({words} words)"
        return None

    def _record_failure(self, message_id: int, reason: str) -> None:
        try:
            self.store.mark_failed(message_id, reason, self.settings.failure_ttl_sec)
        except Exception:
            self.logger.exception("could not record failure: id=%s", message_id)
