"""Text normalization for prompt insight selection.

Turns raw knowledge chunk text into clean single-line prose and extracts
keyword sets for overlap scoring. All helpers are pure and deterministic.
"""

import re
from collections.abc import Iterable

# Markdown structure (line anchored)
_FENCE_RE = re.compile(r"^[ \t]*(?:```|~~~).*$", re.MULTILINE)
_HR_RE = re.compile(r"^[ \t]{0,3}(?:[-*_][ \t]*){3,}$", re.MULTILINE)
_HEADING_RE = re.compile(r"^[ \t]{0,3}#{1,6}(?:[ \t]+|$)", re.MULTILINE)
_BLOCKQUOTE_RE = re.compile(r"^[ \t]{0,3}>[ \t]?", re.MULTILINE)
_LIST_MARKER_RE = re.compile(r"^[ \t]*(?:[-*+]|\d{1,3}[.)])[ \t]+", re.MULTILINE)

# Markdown inline markup
_IMAGE_RE = re.compile(r"!\[([^\]]*)\]\([^)]*\)")
_LINK_RE = re.compile(r"\[([^\]]+)\]\([^)]*\)")
_BOLD_RE = re.compile(r"(\*\*|__)(.+?)\1")
_ITALIC_RE = re.compile(r"(?<![\w*])\*(?!\s)(.+?)(?<!\s)\*(?![\w*])")
_INLINE_CODE_RE = re.compile(r"`([^`]*)`")

_WHITESPACE_RE = re.compile(r"\s+")
_NON_WORD_RE = re.compile(r"\W+")
# Any run of two or more dots or ellipsis characters (spaces allowed between them), or a lone …
_ELLIPSIS_RE = re.compile(r"(?:\s*[.…]){2,}|\s*…")
_SENTENCE_END_RE = re.compile(r"[.!?](?=\s|$)")
_LEADING_JUNK_RE = re.compile(r"^[\s.,;:\-–—]+")
_TRAILING_JUNK_RE = re.compile(r"[\s,;:\-–—(\[\"'/?]+$")

# A sentence cut must keep at least this share of the limit, else cut on a word
_MIN_SENTENCE_KEEP_RATIO = 0.5

TERMINAL_PUNCTUATION = (".", "!")


def strip_markdown(text: str) -> str:
    """
    Remove markdown structure tokens, keeping the prose.

    Drops fenced-code delimiter lines, horizontal rules, heading markers,
    blockquote markers and list markers, and unwraps links, images,
    emphasis and inline code.
    """
    if not text:
        return ""

    out = _FENCE_RE.sub("", text)
    out = _HR_RE.sub("", out)
    out = _HEADING_RE.sub("", out)
    out = _BLOCKQUOTE_RE.sub("", out)
    out = _LIST_MARKER_RE.sub("", out)
    out = _IMAGE_RE.sub(r"\1", out)
    out = _LINK_RE.sub(r"\1", out)
    out = _BOLD_RE.sub(r"\2", out)
    out = _ITALIC_RE.sub(r"\1", out)
    out = _INLINE_CODE_RE.sub(r"\1", out)
    return out


def collapse_whitespace(text: str) -> str:
    """Collapse every whitespace run (newlines included) into one space and trim."""
    if not text:
        return ""
    return _WHITESPACE_RE.sub(" ", text).strip()


def tokenize(text: str) -> list[str]:
    """Lowercase word tokens in their original order."""
    if not text:
        return []
    return [t for t in _NON_WORD_RE.split(text.lower()) if t]


def extract_keywords(text: str, stopword_set: Iterable[str], max_keywords: int) -> set[str]:
    """
    Extract up to max_keywords keywords from text.

    Tokens are lowercased, split on non-word boundaries, and filtered
    against the stopword set and a 2-character minimum. When more
    candidates exist than max_keywords, the first occurrences win.

    Args:
        text: Source text
        stopword_set: Words to ignore (case-insensitive)
        max_keywords: Maximum number of keywords to return

    Returns:
        Set of keywords
    """
    if max_keywords <= 0:
        return set()

    stopwords = {s.lower() for s in stopword_set}
    ordered: list[str] = []
    seen: set[str] = set()

    for token in tokenize(text):
        if len(token) < 2 or token in stopwords or token in seen:
            continue
        seen.add(token)
        ordered.append(token)
        if len(ordered) >= max_keywords:
            break

    return set(ordered)


def truncate_sentence(text: str, max_chars: int) -> str:
    """
    Clip text to max_chars without leaving truncation artifacts.

    Ellipses are removed. Text longer than the limit is cut at the last
    sentence boundary inside it, or at the last word boundary with a
    period appended. Non-empty output always ends in "." or "!" and never
    exceeds max_chars.

    Args:
        text: Single-line text (see collapse_whitespace)
        max_chars: Hard length limit

    Returns:
        Clipped text, or "" when nothing usable remains
    """
    if max_chars <= 0:
        return ""

    text = _ELLIPSIS_RE.sub(".", text or "")
    text = _LEADING_JUNK_RE.sub("", collapse_whitespace(text))
    if not text:
        return ""

    if len(text) <= max_chars:
        if text.endswith(TERMINAL_PUNCTUATION):
            return text
        if text.endswith("?"):
            stripped = text.rstrip("?").rstrip()
            if stripped:
                return stripped + "."

    if len(text) > max_chars:
        boundary = 0
        for match in _SENTENCE_END_RE.finditer(text):
            if match.end() > max_chars:
                break
            boundary = match.end()

        if boundary and boundary >= max_chars * _MIN_SENTENCE_KEEP_RATIO:
            cut = text[:boundary]
            if cut.endswith("?"):
                cut = cut[:-1] + "."
            return cut

    # Reserve one character for the appended period
    body = text if len(text) < max_chars else _cut_at_word(text, max_chars - 1)
    body = _TRAILING_JUNK_RE.sub("", body)
    if not body:
        return ""
    if body.endswith(TERMINAL_PUNCTUATION):
        return body
    return body + "."


def _cut_at_word(text: str, limit: int) -> str:
    if limit <= 0:
        return ""
    window = text[:limit]
    if len(text) > limit and not text[limit].isspace():
        idx = window.rfind(" ")
        if idx > 0:
            window = window[:idx]
    return window.rstrip()
