"""Summarizer implementations and factory."""

from .base import Summarizer
from .factory import build_summarizer, register_summarizer

__all__ = ["Summarizer", "build_summarizer", "register_summarizer"]
