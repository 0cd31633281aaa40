"""Markup stripping and text normalization.

``strip_markup`` turns Markdown-flavoured content into readable plain text
(kept on the document for highlights), ``normalize`` turns any text into the
token sequence used as index keys, and ``normalize_phrase`` produces the
canonical form of a suggestion.

All three are pure and total: any string, including empty or malformed
markup, yields a (possibly empty) result and never raises.
"""

from __future__ import annotations

import re
import unicodedata

from content_search.search.analyzers import get_analyzer


_FENCED_CODE = re.compile(r"^[ \t]*(```|~~~)[^\n]*\n.*?(?:^[ \t]*\1[^\n]*$|\Z)", re.MULTILINE | re.DOTALL)
_INLINE_CODE = re.compile(r"(`+)(.+?)\1", re.DOTALL)
_IMAGE = re.compile(r"!\[([^\]]*)\]\([^)]*\)")
_LINK = re.compile(r"\[([^\]]+)\]\([^)]*\)")
_REFERENCE_LINK = re.compile(r"\[([^\]]+)\]\[[^\]]*\]")
_LINK_DEFINITION = re.compile(r"^[ \t]*\[[^\]]+\]:\s+\S+.*$", re.MULTILINE)
_AUTOLINK = re.compile(r"<((?:https?|mailto):[^>\s]+)>")
_HTML_TAG = re.compile(r"</?[A-Za-z][^>]*>")
_HEADING = re.compile(r"^[ \t]*#{1,6}[ \t]+(.*?)[ \t#]*$", re.MULTILINE)
_SETEXT_UNDERLINE = re.compile(r"^[ \t]*(?:=+|-{2,})[ \t]*$", re.MULTILINE)
_HORIZONTAL_RULE = re.compile(r"^[ \t]*([-*_])(?:[ \t]*\1){2,}[ \t]*$", re.MULTILINE)
_STRONG = re.compile(r"(\*\*|__)(?=\S)(.+?)(?<=\S)\1", re.DOTALL)
_STRIKE = re.compile(r"~~(?=\S)(.+?)(?<=\S)~~", re.DOTALL)
_EMPHASIS_STAR = re.compile(r"\*(?=\S)(.+?)(?<=\S)\*", re.DOTALL)
_EMPHASIS_UNDERSCORE = re.compile(r"(?<!\w)_(?=\S)(.+?)(?<=\S)_(?!\w)", re.DOTALL)
_BLOCKQUOTE = re.compile(r"^[ \t]*(?:>[ \t]?)+", re.MULTILINE)
_BULLET = re.compile(r"^[ \t]*[-*+][ \t]+(?:\[[ xX]\][ \t]+)?", re.MULTILINE)
_ORDERED = re.compile(r"^[ \t]*\d+[.)][ \t]+", re.MULTILINE)
_TABLE_SEPARATOR = re.compile(r"^[ \t]*\|?[ \t]*:?-{1,}:?[ \t]*(?:\|[ \t]*:?-{1,}:?[ \t]*)+\|?[ \t]*$", re.MULTILINE)
_TABLE_PIPE = re.compile(r"[ \t]*\|[ \t]*")
_WHITESPACE = re.compile(r"\s+")

_default_analyzer = get_analyzer("default")
_phrase_analyzer = get_analyzer("phrase")


def strip_markup(raw_markup: str) -> str:
    """Return the visible plain text of Markdown content.

    Fenced code blocks are dropped (an unclosed fence runs to the end of the
    input); inline code, emphasis, headings, quotes, list items and table cells
    keep their text; links and images are reduced to their label.
    """
    if not raw_markup:
        return ""
    if not isinstance(raw_markup, str):
        raw_markup = str(raw_markup)

    text = raw_markup.replace("\r\n", "\n").replace("\r", "\n")
    text = _FENCED_CODE.sub(" ", text)
    text = _INLINE_CODE.sub(lambda match: match.group(2), text)
    text = _IMAGE.sub(r"\1", text)
    text = _LINK.sub(r"\1", text)
    text = _REFERENCE_LINK.sub(r"\1", text)
    text = _LINK_DEFINITION.sub(" ", text)
    text = _AUTOLINK.sub(r"\1", text)
    text = _HTML_TAG.sub(" ", text)
    text = _HEADING.sub(r"\1", text)
    text = _HORIZONTAL_RULE.sub(" ", text)
    text = _SETEXT_UNDERLINE.sub(" ", text)
    text = _TABLE_SEPARATOR.sub(" ", text)
    text = _BLOCKQUOTE.sub("", text)
    text = _BULLET.sub("", text)
    text = _ORDERED.sub("", text)
    text = _STRONG.sub(r"\2", text)
    text = _STRIKE.sub(r"\1", text)
    text = _EMPHASIS_STAR.sub(r"\1", text)
    text = _EMPHASIS_UNDERSCORE.sub(r"\1", text)
    text = _TABLE_PIPE.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip()


def fold_text(text: str) -> str:
    """Unicode-normalize (NFKC) text so compatibility forms tokenize alike."""
    if not text:
        return ""
    return unicodedata.normalize("NFKC", text)


def tokenize(text: str) -> list[str]:
    """Tokenize already-plain text with the default analyzer."""
    if not text:
        return []
    return [token.text for token in _default_analyzer(fold_text(text)) if token.text]


def normalize(raw_markup: str) -> list[str]:
    """Strip markup, then split and case-fold into index tokens."""
    return tokenize(strip_markup(raw_markup))


def normalize_phrase(text: str) -> str:
    """Canonical text of a phrase: case-folded words joined by single spaces.

    Stopwords are kept so "the go blog" and "go blog" stay distinct suggestions.
    """
    if not text:
        return ""
    if not isinstance(text, str):
        text = str(text)
    return " ".join(token.text for token in _phrase_analyzer(fold_text(text)) if token.text)
