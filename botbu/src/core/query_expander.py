"""
Bot Bu - Query Expander
========================
Rewrites a raw chat message into a better search string.

Follow-up questions such as "who teaches that one?" carry no course
number of their own, so retrieval would miss.  The expander injects
course tokens (``CS 515``, ``cs559A`` …) taken from the current message
and, when the message refers back to earlier turns, from recent history:

  • **singular** reference (``that``, ``it``, ``this``) → look back 2
    messages and keep only the most recently mentioned course.
  • **plural** reference (``all``, ``them``, ``these`` …) → look back 4
    messages and keep every distinct course, first-encounter order.
  • no reference but courses in the message → add the course tokens plus
    the hint words ``schedule timing location``.

Pure string transform: no I/O, never raises.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Protocol

from botbu.src.utils.logger import get_logger

logger = get_logger(__name__)

_COURSE_RE = re.compile(r"CS\s*\d{3}[A-Z]?", re.IGNORECASE)

SINGULAR_WORDS: frozenset[str] = frozenset({"that", "it", "this"})
PLURAL_WORDS: frozenset[str] = frozenset({"all", "others", "them", "these", "those"})

SINGULAR_LOOKBACK = 2
PLURAL_LOOKBACK = 4
COURSE_HINT_WORDS = "schedule timing location"


class HistoryMessage(Protocol):
    content: str


def extract_course_numbers(text: str) -> list[str]:
    """Course tokens exactly as written, in order of appearance."""
    return _COURSE_RE.findall(text)


def expand_query(message: str, history: Sequence[HistoryMessage] = ()) -> str:
    """
    Build the search query for ``message`` given prior conversation turns.

    ``history`` is ordered oldest → newest; only ``.content`` is read.
    """
    current_courses = extract_course_numbers(message)

    tokens = set(message.lower().split())
    is_singular = not SINGULAR_WORDS.isdisjoint(tokens)
    is_plural = not PLURAL_WORDS.isdisjoint(tokens)

    if (is_singular or is_plural) and history:
        lookback = SINGULAR_LOOKBACK if is_singular else PLURAL_LOOKBACK
        course_numbers = list(current_courses)
        for past in history[-lookback:]:
            course_numbers.extend(extract_course_numbers(past.content))

        if not course_numbers:
            return message

        unique_courses = list(dict.fromkeys(course_numbers))
        courses_to_use = unique_courses[-1:] if is_singular else unique_courses
        search_query = f"{' '.join(courses_to_use)} {message}"
        logger.debug("[EXPAND] %s reference → '%s'", "singular" if is_singular else "plural", search_query)
        return search_query

    if current_courses:
        search_query = f"{' '.join(current_courses)} {COURSE_HINT_WORDS} {message}"
        logger.debug("[EXPAND] course numbers → '%s'", search_query)
        return search_query

    return message
