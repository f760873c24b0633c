"""Context builder — bounded prefix/suffix window around the cursor."""
import logging
import re
from dataclasses import dataclass
from hashlib import blake2b
from typing import Iterable, Optional, Tuple

logger = logging.getLogger(__name__)

_PARTIAL_WORD = re.compile(r"([a-zA-Z_][a-zA-Z0-9_-]*)$")
_ALNUM = re.compile(r"[a-zA-Z0-9]")

_FILE_TYPES = {
    "js": "javascript",
    "jsx": "javascript",
    "ts": "typescript",
    "tsx": "typescript",
    "py": "python",
    "java": "java",
    "cpp": "cpp",
    "c": "c",
    "cs": "csharp",
    "go": "go",
    "rs": "rust",
    "rb": "ruby",
    "php": "php",
    "swift": "swift",
    "kt": "kotlin",
    "html": "html",
    "css": "css",
    "scss": "scss",
    "json": "json",
    "xml": "xml",
    "yaml": "yaml",
    "yml": "yaml",
    "md": "markdown",
    "sql": "sql",
    "sh": "bash",
    "bash": "bash",
}


def language_for_file(file_name: str) -> str:
    """Map a file name to a language tag by extension."""
    if not file_name or "." not in file_name:
        return "text"
    ext = file_name.rsplit(".", 1)[1].lower()
    return _FILE_TYPES.get(ext, ext)


@dataclass(frozen=True)
class Diagnostic:
    """A lint/compile message attached to a line range (0-based lines)."""
    line: int
    message: str
    severity: str = "error"
    end_line: Optional[int] = None

    def covers(self, line: int) -> bool:
        end = self.line if self.end_line is None else self.end_line
        return self.line <= line <= end


@dataclass(frozen=True)
class Context:
    prefix: str
    suffix: str
    language: str
    file_name: str
    line_prefix: str
    line_suffix: str
    partial_word: Optional[str] = None
    diagnostic: Optional[Diagnostic] = None

    def fingerprint(self, window: int = 500) -> str:
        """Digest of the bounded context used as the cache key."""
        h = blake2b(digest_size=16)
        h.update(self.prefix[-window:].encode("utf-8"))
        h.update(b"\x00")
        h.update(self.suffix.encode("utf-8"))
        return h.hexdigest()

    def cache_key(self, window: int = 500) -> Tuple[str, str]:
        return (self.fingerprint(window), self.language)


def is_mid_word(text: str, cursor: int) -> bool:
    """True when the cursor sits strictly between two alphanumeric chars."""
    if cursor <= 0 or cursor >= len(text):
        return False
    return bool(_ALNUM.match(text[cursor - 1]) and _ALNUM.match(text[cursor]))


def extract_partial_word(line_prefix: str) -> Optional[str]:
    match = _PARTIAL_WORD.search(line_prefix)
    return match.group(1) if match else None


class ContextBuilder:
    """Builds an immutable ``Context`` for one trigger."""

    def __init__(self, config):
        self.config = config

    def build(self, text: Optional[str], cursor: Optional[int], language: str = "text",
              file_name: str = "untitled",
              diagnostics: Iterable[Diagnostic] = ()) -> Optional[Context]:
        if text is None or cursor is None or not 0 <= cursor <= len(text):
            return None

        line_start = text.rfind("\n", 0, cursor) + 1
        line_end = text.find("\n", cursor)
        if line_end == -1:
            line_end = len(text)
        line_prefix = text[line_start:cursor]
        line_suffix = text[cursor:line_end]

        prefix = text[max(0, cursor - self.config.prefix_window):cursor]
        # Blank window on an empty line: look further back for history
        if not line_prefix.strip() and not prefix.strip():
            prefix = text[max(0, cursor - self.config.empty_line_prefix_window):cursor]

        suffix = text[cursor:cursor + self.config.suffix_window]

        line_no = text.count("\n", 0, cursor)
        diagnostic = None
        for diag in diagnostics:
            if diag.covers(line_no):
                diagnostic = diag
                break

        partial = extract_partial_word(line_prefix)
        if partial:
            logger.debug("Partial word: %r", partial)
        if diagnostic:
            logger.debug("Diagnostic on line %d: %s", line_no, diagnostic.message)

        return Context(
            prefix=prefix,
            suffix=suffix,
            language=language or "text",
            file_name=file_name or "untitled",
            line_prefix=line_prefix,
            line_suffix=line_suffix,
            partial_word=partial,
            diagnostic=diagnostic,
        )

    def from_surface(self, surface) -> Optional[Context]:
        if surface is None:
            return None
        return self.build(
            surface.get_text(),
            surface.get_cursor(),
            language=surface.language,
            file_name=surface.file_name,
            diagnostics=surface.diagnostics(),
        )
