from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Optional
from urllib.parse import urlparse, urlunparse

from .models import MessageEntity

TEXT_URL_KIND = "text_url"
URL_RE = re.compile(
    r"https?://(?:www\.)?[-a-zA-Z0-9@:%._+~#=]{1,256}\.[a-zA-Z0-9()]{1,6}\b(?:[-a-zA-Z0-9()@:%_+.~#?&/=]*)",
    re.IGNORECASE,
)


def _valid_http_url(candidate: Optional[str]) -> Optional[str]:
    if not candidate:
        return None
    value = candidate.strip()
    try:
        parsed = urlparse(value)
        # Accessing .port validates the netloc and raises on garbage.
        parsed.port
    except ValueError:
        return None
    scheme = parsed.scheme.lower()
    if scheme not in {"http", "https"} or not parsed.hostname:
        return None
    return urlunparse(parsed._replace(scheme=scheme, netloc=parsed.netloc.lower(), path=parsed.path or "/"))


def extract_url(text: Optional[str], entities: Iterable[MessageEntity] = ()) -> Optional[str]:
    """Return the first usable http(s) link in a channel post, or None.

    A ``text_url`` entity wins over anything found in the text itself, and only
    the first such entity is considered.
    """
    try:
        link_entity = next((entity for entity in entities or () if entity.kind == TEXT_URL_KIND), None)
        if link_entity is not None:
            from_entity = _valid_http_url(link_entity.url)
            if from_entity:
                return from_entity

        for match in URL_RE.finditer(text or ""):
            found = _valid_http_url(match.group(0))
            if found:
                return found
    except Exception:
        return None
    return None
