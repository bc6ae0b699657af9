from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class MessageEntity:
    kind: str
    url: Optional[str] = None


@dataclass(frozen=True)
class ChannelMessage:
    id: int
    text: str = ""
    entities: tuple[MessageEntity, ...] = ()


@dataclass(frozen=True)
class Summary:
    headline: str
    body: str


@dataclass(frozen=True)
class Article:
    id: int
    api_id: int
    headline: str
    body: str
    source: str
    date: str
    status: str = "processed"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "apiId": self.api_id,
            "headline": self.headline,
            "article": self.body,
            "source": self.source,
            "date": self.date,
            "status": self.status,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Article":
        return cls(
            id=int(data["id"]),
            api_id=int(data["apiId"]),
            headline=str(data.get("headline") or ""),
            body=str(data.get("article") or ""),
            source=str(data.get("source") or ""),
            date=str(data.get("date") or ""),
            status=str(data.get("status") or "processed"),
        )


class ProcessOutcome(str, Enum):
    STORED = "stored"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ProcessResult:
    message_id: int
    outcome: ProcessOutcome
    api_id: Optional[int] = None
    reason: Optional[str] = None

    @property
    def accounted_for(self) -> bool:
        return self.outcome in (ProcessOutcome.STORED, ProcessOutcome.SKIPPED)


@dataclass
class CycleStats:
    fetched: int = 0
    stored: int = 0
    skipped: int = 0
    failed: int = 0
    high_water_mark: int = 0

    def record(self, result: ProcessResult) -> None:
        if result.outcome is ProcessOutcome.STORED:
            self.stored += 1
        elif result.outcome is ProcessOutcome.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1


@dataclass(frozen=True)
class PriceQuote:
    symbol: str
    price: float
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        return {"symbol": self.symbol, "price": self.price, "timestamp": self.timestamp}
