"""
gridrepo Shared Utilities — naming and content-type helpers used by the repository.
"""

from __future__ import annotations

import mimetypes
from functools import lru_cache

import inflect

DEFAULT_MIME_TYPE = "application/octet-stream"


@lru_cache(maxsize=1)
def _inflect_engine() -> inflect.engine:
    return inflect.engine()


def is_singular(word: str) -> bool:
    """True when ``word`` is not recognised as an English plural."""
    return _inflect_engine().singular_noun(word) is False


def pluralize(word: str) -> str:
    """
    Return the English plural of ``word``; words that are already plural
    come back unchanged.

    Examples:
        pluralize("document")  → "documents"
        pluralize("category")  → "categories"
        pluralize("images")    → "images"
    """
    if not word or not is_singular(word):
        return word
    return _inflect_engine().plural_noun(word)


def detect_mime_type(filename: str) -> str:
    """Detect MIME type from filename extension."""
    mime, _ = mimetypes.guess_type(filename)
    return mime or DEFAULT_MIME_TYPE
