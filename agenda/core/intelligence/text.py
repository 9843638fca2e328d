"""Text normalization shared by intent and entity extraction."""

import re
import unicodedata

_NON_WORD_RE = re.compile(r"[^\w\s]")
_ENTITY_STRIP_RE = re.compile(r"[^\w\s:/\-]")
_SPACES_RE = re.compile(r"\s+")


def strip_accents(text: str) -> str:
    """Remove combining accent marks (``mañana`` -> ``manana``)."""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_message(text: str) -> str:
    """Lowercase, strip accents and punctuation, collapse whitespace."""
    text = strip_accents(text.lower())
    text = _NON_WORD_RE.sub(" ", text)
    return _SPACES_RE.sub(" ", text).strip()


def normalize_for_entities(text: str) -> str:
    """Like ``normalize_message`` but keeps ``:``, ``/`` and ``-`` for times and dates."""
    text = strip_accents(text.lower())
    text = _ENTITY_STRIP_RE.sub(" ", text)
    return _SPACES_RE.sub(" ", text).strip()
