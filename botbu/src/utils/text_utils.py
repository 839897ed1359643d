"""
Bot Bu - Text Utilities
========================
Stateless helpers for text cleaning, query tokenisation and
user-facing source labels.
"""

from __future__ import annotations

import re
import unicodedata
from pathlib import Path


# Control characters (C0/C1) except \n, \r, \t, plus BOM / zero-width marks
_NON_PRINTABLE_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f\ufeff\u200b\u200c\u200d\u200e\u200f\u00ad\u2060\ufffe]")
_WHITESPACE_RE = re.compile(r"\s+")


def clean_text(text: str) -> str:
    """
    Sanitise raw document text before chunking.

    Steps:
        1. Unicode NFC normalisation.
        2. Strip non-printable / zero-width characters (BOM, soft hyphens,
           PDF extraction artifacts).
        3. Collapse runs of horizontal whitespace into a single space,
           *preserving* newlines.
        4. Strip every line and collapse 3+ blank lines to 2.
    """
    text = unicodedata.normalize("NFC", text)
    text = _NON_PRINTABLE_RE.sub("", text)
    text = re.sub(r"[^\S\n]+", " ", text)
    lines = [line.strip() for line in text.splitlines()]
    text = "\n".join(lines)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def tokenize_query(text: str, min_length: int = 3) -> list[str]:
    """
    Lowercase whitespace tokens of at least ``min_length`` characters.

    Duplicates are kept, so a repeated word counts once per occurrence.
    """
    return [word for word in _WHITESPACE_RE.split(text.lower()) if len(word) >= min_length]


# ── Source filename → user-facing label ───────────────────────────────
# Internal filenames are never shown to students.
_FRIENDLY_SOURCE_NAMES: dict[str, str] = {
    "DeleteLater": "University Staff Directory",
    "cs_exam_schedule": "Computer Science Exam Schedule",
    "department_contacts": "Department Contact Information",
    "dining_hours_policy": "Dining Services Information",
}

_DEFAULT_SOURCE_NAME = "Internal University Documents"
_DOCUMENT_SUFFIX_RE = re.compile(r"\.(txt|pdf|docx)$", re.IGNORECASE)


def friendly_source_name(filename: str) -> str:
    """
    Map an internal document filename to a sanitised label.

    Examples::

        "dining_hours_policy.txt" → "Dining Services Information"
        "secret_notes.pdf"        → "Internal University Documents"
    """
    base_name = _DOCUMENT_SUFFIX_RE.sub("", Path(filename).name)
    return _FRIENDLY_SOURCE_NAMES.get(base_name, _DEFAULT_SOURCE_NAME)
