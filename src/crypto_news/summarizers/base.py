from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from ..models import Summary


class Summarizer(ABC):
    name: str

    @abstractmethod
    def summarize(self, text: str, source_url: str) -> Optional[Summary]:
        raise NotImplementedError
