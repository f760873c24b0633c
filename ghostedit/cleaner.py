"""Output cleaner — turns raw model output into a displayable suggestion.

Pipeline:
1. Strip control/sentinel tokens leaked by the model
2. Strip a leading markdown code fence (unless writing markup)
3. Shape lines: single-line vs. block vs. short continuation
4. Trim trailing whitespace
5. Reject results that are not a meaningful suggestion
"""
import logging
import re
from typing import Optional

from ghostedit.context import Context

logger = logging.getLogger(__name__)

MARKUP_LANGUAGES = {"markdown", "md"}

_SENTINELS = [
    re.compile(r"<file_sep>"),
    re.compile(r"<\|file_sep\|>"),
    re.compile(r"<filename>"),
    re.compile(r"<gh_stars>"),
    re.compile(r"<\|endoftext\|>"),
    re.compile(r"<fim_[^>]+>"),
    re.compile(r"<\|fim_[^|]+\|>"),
    re.compile(r"<file_separator>"),
    re.compile(r"<\|file_separator\|>"),
]

_LEADING_FENCE = re.compile(r"^```[a-zA-Z0-9_+-]*\n")
_TRAILING_FENCE = re.compile(r"\n```\s*$")
_HINT_LINE = re.compile(r"^\s*(?://|#|--)\s*Fix:.*(?:\n|$)", re.MULTILINE)
_ALNUM = re.compile(r"[a-zA-Z0-9]")
_OPENING_TAG = re.compile(r"<[a-zA-Z][^<>]*>$")


def strip_sentinels(text: str) -> str:
    for pattern in _SENTINELS:
        text = pattern.sub("", text)
    return text


def strip_fences(text: str, language: str) -> str:
    if language in MARKUP_LANGUAGES:
        return text
    text = _LEADING_FENCE.sub("", text, count=1)
    return _TRAILING_FENCE.sub("", text, count=1)


def opens_block(line_prefix: str) -> bool:
    """Line before the cursor ends with an opening brace, paren or tag."""
    stripped = line_prefix.rstrip()
    if stripped.endswith("{") or stripped.endswith("("):
        return True
    return bool(_OPENING_TAG.search(stripped)) and not stripped.endswith("/>")


def shape_lines(text: str, context: Context, config) -> str:
    if context.diagnostic is not None:
        # Keep the fix verbatim, minus any echoed hint comment
        return _HINT_LINE.sub("", text)

    lines = text.split("\n")

    if context.line_suffix.strip() and lines[0].strip():
        return lines[0]

    if opens_block(context.line_prefix):
        limit = config.max_block_lines
    elif context.line_prefix.strip():
        limit = config.max_continuation_lines
    else:
        limit = config.max_blank_line_lines

    if len(lines) > limit:
        text = "\n".join(lines[:limit])
    return text


def is_meaningful(text: Optional[str]) -> bool:
    if not text or not text.strip():
        return False
    if len(text) < 2 and not _ALNUM.search(text):
        return False
    return True


def clean_completion(raw: str, context: Context, config) -> Optional[str]:
    """Return the displayable completion, or None if there is nothing worth showing."""
    if not raw:
        return None
    text = strip_sentinels(raw)
    text = strip_fences(text, context.language)
    text = shape_lines(text, context, config)
    text = text.rstrip()
    if not is_meaningful(text):
        logger.debug("Discarding non-meaningful completion: %r", raw[:50])
        return None
    return text
