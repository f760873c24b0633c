"""Chunk replacer — validates replacement candidates and applies them."""
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from ghostedit.chunks import ChunkSet, CodeChunk
from ghostedit.errors import FailureKind, Notice
from ghostedit.history import EditHistory, HistoryKind
from ghostedit.matcher import ReplacementCandidate, ReplacementMatcher
from ghostedit.surface import ORIGIN_ASSISTANT

logger = logging.getLogger(__name__)

_COLOR_REQUEST = re.compile(
    r"\b(colou?rs?|palette|theme|red|blue|green|pink|purple|orange|yellow|teal|dark mode|light mode)\b",
    re.IGNORECASE,
)
_HEX_COLOR = re.compile(r"#(?:[0-9a-fA-F]{8}|[0-9a-fA-F]{6}|[0-9a-fA-F]{3})\b")


class Verdict(Enum):
    APPLIED = "applied"
    UNCHANGED = "unchanged"
    COLORS_UNCHANGED = "colors_unchanged"
    TARGET_MISSING = "target_missing"
    NOT_OPEN = "not_open"


REJECTION_MESSAGES = {
    Verdict.UNCHANGED: ("The assistant returned the same code without changes. "
                        "Try being more specific about what changes you want."),
    Verdict.COLORS_UNCHANGED: ("No color values were changed. Try asking more specifically, "
                               "like \"change the primary color to #DC143C\"."),
    Verdict.TARGET_MISSING: "The target chunk is no longer in the working set; replacement discarded.",
}


def is_color_request(instruction: str) -> bool:
    return bool(instruction) and bool(_COLOR_REQUEST.search(instruction))


def hex_colors(text: str) -> List[str]:
    """Hex color literals in order of appearance, lower-cased."""
    return [c.lower() for c in _HEX_COLOR.findall(text)]


def validate(candidate: ReplacementCandidate, chunk: CodeChunk,
             instruction: str = "") -> Optional[Verdict]:
    """Return a rejection verdict, or None if the candidate may be applied."""
    original = chunk.text.strip()
    proposed = candidate.proposed_text.strip()
    if original == proposed:
        return Verdict.UNCHANGED
    if is_color_request(instruction) and hex_colors(original) == hex_colors(proposed):
        return Verdict.COLORS_UNCHANGED
    return None


@dataclass
class ReplacementOutcome:
    candidate: ReplacementCandidate
    verdict: Verdict
    chunk: Optional[CodeChunk] = None


@dataclass
class ReplacementReport:
    outcomes: List[ReplacementOutcome] = field(default_factory=list)
    unmatched: Optional[str] = None    # raw response shown when nothing matched

    @property
    def applied(self) -> List[ReplacementOutcome]:
        return [o for o in self.outcomes if o.verdict is Verdict.APPLIED]

    @property
    def rejected(self) -> List[ReplacementOutcome]:
        return [o for o in self.outcomes
                if o.verdict in (Verdict.UNCHANGED, Verdict.COLORS_UNCHANGED, Verdict.TARGET_MISSING)]


class ChunkReplacer:
    """Applies validated candidates to open documents.

    ``documents`` maps a file path to the live surface editing it; a
    chunk whose file is not in the map is reported, not applied.
    """

    def __init__(self, chunks: ChunkSet, documents: Dict[str, object],
                 history: Optional[EditHistory] = None,
                 notify: Optional[Callable[[Notice], None]] = None,
                 matcher: Optional[ReplacementMatcher] = None):
        self.chunks = chunks
        self.documents = documents
        self.history = history if history is not None else EditHistory()
        self._notify = notify or (lambda notice: logger.info("%s", notice.message))
        self.matcher = matcher or ReplacementMatcher()

    def process(self, response: str, instruction: str = "") -> ReplacementReport:
        report = ReplacementReport()
        candidates = self.matcher.match(response, self.chunks)
        if not candidates:
            logger.info("No code replacements detected in response")
            report.unmatched = response
            if len(self.chunks):
                self._notify(Notice("info", response, FailureKind.MATCH_FAILURE))
            return report

        for candidate in candidates:
            report.outcomes.append(self.apply(candidate, instruction))

        applied = len(report.applied)
        if applied:
            self._notify(Notice(
                "info",
                f"Applied {applied} code replacement{'' if applied == 1 else 's'}. "
                f"Use undo to revert if needed.",
            ))
        return report

    def apply(self, candidate: ReplacementCandidate, instruction: str = "") -> ReplacementOutcome:
        chunk = self.chunks.get(candidate.chunk_id)
        if chunk is None:
            return self._reject(candidate, None, Verdict.TARGET_MISSING)

        verdict = validate(candidate, chunk, instruction)
        if verdict is not None:
            return self._reject(candidate, chunk, verdict)

        surface = self.documents.get(chunk.file_path) if chunk.file_path else None
        if surface is None:
            logger.info("File %s is not open — replacement skipped", chunk.file_name)
            self._notify(Notice(
                "info",
                f"{chunk.location} is not open; proposed replacement:\n{candidate.proposed_text}",
            ))
            return ReplacementOutcome(candidate, Verdict.NOT_OPEN, chunk)

        self._replace_lines(surface, chunk, candidate.proposed_text)
        updated = self.chunks.update_text(chunk.id, candidate.proposed_text)
        self.history.record(
            HistoryKind.REPLACEMENT_APPLIED,
            chunk_id=chunk.id,
            file_path=chunk.file_path,
            lines=f"{chunk.start_line}-{chunk.end_line}",
            old_code=chunk.text,
            new_code=candidate.proposed_text,
            confidence=candidate.confidence,
        )
        logger.info("Replaced %s (%s)", chunk.location, candidate.confidence)
        return ReplacementOutcome(candidate, Verdict.APPLIED, updated)

    def _replace_lines(self, surface, chunk: CodeChunk, new_text: str):
        first = chunk.start_line - 1
        last = min(chunk.end_line - 1, surface.line_count() - 1)
        start = surface.line_start_offset(first)
        end = surface.line_start_offset(last) + len(surface.get_line(last))
        surface.replace_range(start, end, new_text, origin=ORIGIN_ASSISTANT)
        surface.refresh_lines(first, first + new_text.count("\n"))
        surface.mark_dirty()

    def _reject(self, candidate: ReplacementCandidate, chunk: Optional[CodeChunk],
                verdict: Verdict) -> ReplacementOutcome:
        logger.warning("Replacement for %s rejected: %s", candidate.chunk_id, verdict.value)
        self.history.record(
            HistoryKind.REPLACEMENT_REJECTED,
            chunk_id=candidate.chunk_id,
            reason=verdict.value,
            confidence=candidate.confidence,
        )
        kind = FailureKind.TARGET_MISSING if verdict is Verdict.TARGET_MISSING else FailureKind.NOOP
        self._notify(Notice("warning", REJECTION_MESSAGES[verdict], kind))
        return ReplacementOutcome(candidate, verdict, chunk)
