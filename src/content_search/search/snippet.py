"""Highlight extraction for search results.

The highlight is the window of body text around the earliest whole-word
occurrence of any query token:

- the window opens a quarter of its length before the match,
- both edges are snapped to whitespace so no word is cut in half,
- when no query token occurs in the body the window is taken from the start.

Matches can optionally be marked with ``[[...]]`` (``plain``) or
``<mark>...</mark>`` (``html``, everything else escaped).
"""

from __future__ import annotations

from collections.abc import Collection
import html
import re
from typing import Literal

from content_search.search.normalizer import fold_text


HighlightStyle = Literal["none", "plain", "html"]

WORD_PATTERN = re.compile(r"[^\W_]+")
WHITESPACE_PATTERN = re.compile(r"\s")


def _folded(word: str) -> str:
    return fold_text(word).casefold()


def find_first_match(text: str, tokens: Collection[str]) -> re.Match[str] | None:
    """Return the earliest word in ``text`` whose folded form is a query token."""
    if not text or not tokens:
        return None
    for match in WORD_PATTERN.finditer(text):
        if _folded(match.group(0)) in tokens:
            return match
    return None


def _snap_start(text: str, start: int, limit: int) -> int:
    if start <= 0:
        return 0
    if WHITESPACE_PATTERN.match(text, start - 1):
        return start
    boundary = WHITESPACE_PATTERN.search(text, start, limit)
    if boundary is None:
        return start
    return boundary.end()


def _snap_end(text: str, end: int, floor: int) -> int:
    if end >= len(text):
        return len(text)
    if WHITESPACE_PATTERN.match(text, end):
        return end
    last_space = -1
    for match in WHITESPACE_PATTERN.finditer(text, floor, end):
        last_space = match.start()
    return last_space if last_space > floor else end


def extract_window(text: str, match_start: int, match_end: int, window: int) -> str:
    """Cut a ``window``-sized excerpt around ``[match_start, match_end)``."""
    if len(text) <= window:
        return text.strip()
    start = max(0, match_start - window // 4)
    start = _snap_start(text, start, match_start)
    end = min(len(text), start + window)
    end = _snap_end(text, end, max(match_end, start))
    return text[start:end].strip()


def mark_terms(snippet: str, tokens: Collection[str], style: HighlightStyle) -> str:
    """Wrap every whole-word occurrence of ``tokens`` in ``snippet``."""
    if style == "none":
        return snippet
    escape = html.escape if style == "html" else (lambda value: value)
    opener, closer = ("<mark>", "</mark>") if style == "html" else ("[[", "]]")

    pieces: list[str] = []
    cursor = 0
    for match in WORD_PATTERN.finditer(snippet):
        if _folded(match.group(0)) not in tokens:
            continue
        pieces.append(escape(snippet[cursor : match.start()]))
        pieces.append(f"{opener}{escape(match.group(0))}{closer}")
        cursor = match.end()
    pieces.append(escape(snippet[cursor:]))
    return "".join(pieces)


def build_highlight(
    body: str,
    tokens: Collection[str],
    *,
    window: int = 160,
    style: HighlightStyle = "none",
) -> str:
    if not body:
        return ""
    match = find_first_match(body, tokens)
    if match is None:
        snippet = extract_window(body, 0, 0, window)
    else:
        snippet = extract_window(body, match.start(), match.end(), window)
    return mark_terms(snippet, tokens, style)
