from __future__ import annotations

import re
from typing import Optional

from bs4 import BeautifulSoup

HEADLINE_MAX_CHARS = 100
HEADLINE_STRIP_RE = re.compile(r"[*_~`\"']")
MARKDOWN_EMPHASIS_RE = re.compile(r"(\*\*|__|\*|_|`|~)")
PUNCTUATION_RE = re.compile(r"[^\w\s]|_")
ALLOWED_TAGS = {"p", "b", "i", "em", "strong", "a"}
ALLOWED_ATTRS = {"href", "target", "rel"}
FORBIDDEN_TAGS = {"script", "style"}
DEFAULT_BODY_MAX_CHARS = 5000


def clean_headline(headline: Optional[str], max_chars: int = HEADLINE_MAX_CHARS) -> str:
    return HEADLINE_STRIP_RE.sub("", headline or "").strip()[:max_chars]


def sanitize_body(content: Optional[str], max_chars: int = DEFAULT_BODY_MAX_CHARS) -> str:
    cleaned = MARKDOWN_EMPHASIS_RE.sub("", content or "")
    soup = BeautifulSoup(cleaned, "html.parser")

    for tag in soup.find_all(sorted(FORBIDDEN_TAGS)):
        tag.decompose()
    for tag in soup.find_all(True):
        if tag.name not in ALLOWED_TAGS:
            tag.unwrap()
        else:
            tag.attrs = {key: value for key, value in tag.attrs.items() if key in ALLOWED_ATTRS}

    return str(soup).strip()[:max_chars]


def count_words(text: Optional[str]) -> int:
    if not text:
        return 0
    return len([word for word in PUNCTUATION_RE.sub("", text).split() if word])


def preview(text: Optional[str], words: int = 20) -> str:
    if not text:
        return "[No Content]"
    parts = text.split()
    suffix = "..." if len(parts) > words else ""
    return " ".join(parts[:words]) + suffix
