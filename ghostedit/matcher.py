"""Extraction & replacement matcher.

Turns a finished model response into replacement candidates for captured
chunks. Rules are tried in a fixed order:

1. Explicit index     ``REPLACE CHUNK 2:``
2. Explicit location  ``REPLACE style.css (Lines 3-9):``
3. Single-chunk fallback, only when exactly one chunk is captured and
   neither marker resolved anywhere in the response:
   a. the first fenced code block consistent with the chunk's category
   b. code-looking lines, if the prose claims the code was modified
"""
import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ghostedit.chunks import ChunkSet, CodeChunk

logger = logging.getLogger(__name__)

EXPLICIT_INDEX = "explicit-index"
EXPLICIT_LOCATION = "explicit-location"
SINGLE_CHUNK_FALLBACK = "single-chunk-fallback"

_HEADER = re.compile(
    r"(?:^[ \t>*#]*|(?<=[ \t:.!*]))REPLACE[ \t]+"
    r"(?:CHUNK[ \t]+(?P<index>\d+)"
    r"|(?P<file>[^\n(]+?)[ \t]*\(Lines?[ \t]+(?P<start>\d+)[ \t]*-[ \t]*(?P<end>\d+)\))"
    r"[ \t]*\**:\**[ \t]*",
    re.IGNORECASE | re.MULTILINE,
)
_FENCED_BODY = re.compile(r"^\s*```[\w+-]*[ \t]*\n(.*?)\n[ \t]*```", re.DOTALL)
_FENCED_BLOCK = re.compile(r"```[\w+-]*[ \t]*\n(.*?)\n[ \t]*```", re.DOTALL)
_MODIFICATION_CLAIM = re.compile(r"\b(refactored|updated|changed|modified|fixed)\b", re.IGNORECASE)
_LOOKS_LIKE_CODE = re.compile(r"(:root\s*\{|function\s+\w+|class\s+\w+|def\s+\w+|<[a-zA-Z]+|\.[\w-]+\s*\{)")
_HEADING = re.compile(r"^#{1,6}\s")
_LABEL = re.compile(r"^[A-Z][a-z\s]+:")
_MARKUP = re.compile(r"</?[a-zA-Z][\w-]*[\s>/]")
_DECLARATION = re.compile(r"\b(function|class|const|let|var|def|fn|func|interface|struct)\b")
_STYLE_TOKENS = (":root", "style", "color", "--")


@dataclass
class Block:
    """One declared replacement block in a response."""
    body: str
    index: Optional[int] = None       # as written in the marker (1-based)
    file_name: Optional[str] = None
    start_line: Optional[int] = None
    end_line: Optional[int] = None


@dataclass
class ReplacementCandidate:
    chunk_id: str
    file_name: str
    start_line: int
    end_line: int
    proposed_text: str
    confidence: str
    source: str = ""


def _strip_body_fence(body: str) -> str:
    match = _FENCED_BODY.match(body)
    if match:
        return match.group(1)
    return body


def split_blocks(response: str) -> List[Block]:
    """Find replacement markers in order; each body runs to the next marker."""
    headers = list(_HEADER.finditer(response))
    blocks = []
    for i, header in enumerate(headers):
        end = headers[i + 1].start() if i + 1 < len(headers) else len(response)
        body = _strip_body_fence(response[header.end():end]).strip()
        block = Block(body=body)
        if header.group("index"):
            block.index = int(header.group("index"))
        else:
            block.file_name = header.group("file").strip().strip("`*")
            block.start_line = int(header.group("start"))
            block.end_line = int(header.group("end"))
        blocks.append(block)
    return blocks


def categories(text: str) -> set:
    """Coarse structural categories used to check a fallback block."""
    lowered = text.lower()
    found = set()
    if any(tok in lowered for tok in _STYLE_TOKENS):
        found.add("style")
    if _MARKUP.search(text):
        found.add("markup")
    if _DECLARATION.search(text):
        found.add("declaration")
    return found


def is_intent_payload(text: str) -> bool:
    stripped = text.strip()
    return stripped.startswith("{") and ('"intent"' in stripped or '"tool"' in stripped)


def _candidate(chunk: CodeChunk, text: str, confidence: str, source: str) -> ReplacementCandidate:
    return ReplacementCandidate(
        chunk_id=chunk.id,
        file_name=chunk.file_name,
        start_line=chunk.start_line,
        end_line=chunk.end_line,
        proposed_text=text,
        confidence=confidence,
        source=source,
    )


class ExplicitIndexRule:
    confidence = EXPLICIT_INDEX

    def resolve(self, block: Block, chunks: ChunkSet) -> Optional[ReplacementCandidate]:
        if block.index is None:
            return None
        chunk = chunks.index(block.index - 1)
        if chunk is None:
            logger.debug("REPLACE CHUNK %d: no such chunk (%d captured)", block.index, len(chunks))
            return None
        return _candidate(chunk, block.body, self.confidence, "numbered")


class ExplicitLocationRule:
    confidence = EXPLICIT_LOCATION

    def resolve(self, block: Block, chunks: ChunkSet) -> Optional[ReplacementCandidate]:
        if block.file_name is None:
            return None
        chunk = chunks.find_location(block.file_name, block.start_line, block.end_line)
        if chunk is None:
            logger.debug("REPLACE %s (Lines %s-%s): no matching chunk",
                         block.file_name, block.start_line, block.end_line)
            return None
        return _candidate(chunk, block.body, self.confidence, "file-based")


class FencedBlockRule:
    """First fenced block structurally consistent with the only chunk."""

    def scan(self, response: str, chunk: CodeChunk) -> Optional[ReplacementCandidate]:
        wanted = categories(chunk.text)
        for match in _FENCED_BLOCK.finditer(response):
            content = match.group(1).strip()
            if is_intent_payload(content):
                logger.debug("Skipping JSON intent block")
                continue
            if wanted & categories(content):
                return _candidate(chunk, content, SINGLE_CHUNK_FALLBACK, "code-block")
            logger.debug("Skipping code block that doesn't match chunk type")
        return None


class ProseExtractionRule:
    """Keep code-looking lines when the prose claims the code was changed."""

    min_length = 10

    def scan(self, response: str, chunk: CodeChunk) -> Optional[ReplacementCandidate]:
        if not _MODIFICATION_CLAIM.search(response) or not _LOOKS_LIKE_CODE.search(response):
            return None

        code_lines = []
        in_code = False
        for line in response.split("\n"):
            lowered = line.lower()
            if (_HEADING.match(line) or "explanation" in lowered or "changes made" in lowered
                    or "refactored code" in lowered or line.strip().startswith("{")
                    or '"intent"' in line or line.strip().startswith("```")):
                in_code = False
                continue
            stripped = line.strip()
            if ((":root" in line or "<" in line or "{" in line) and '"' not in line
                    and stripped and not _LABEL.match(stripped)):
                in_code = True
            if in_code and stripped:
                code_lines.append(line)

        extracted = "\n".join(code_lines).strip()
        if len(extracted) <= self.min_length:
            return None
        return _candidate(chunk, extracted, SINGLE_CHUNK_FALLBACK, "extracted")


class ReplacementMatcher:
    def __init__(self, block_rules: Optional[Sequence] = None, fallbacks: Optional[Sequence] = None):
        self.block_rules = list(block_rules) if block_rules is not None else [
            ExplicitIndexRule(), ExplicitLocationRule(),
        ]
        self.fallbacks = list(fallbacks) if fallbacks is not None else [
            FencedBlockRule(), ProseExtractionRule(),
        ]

    def match(self, response: str, chunks: ChunkSet) -> List[ReplacementCandidate]:
        if not response or len(chunks) == 0:
            return []

        candidates = []
        for block in split_blocks(response):
            for rule in self.block_rules:
                candidate = rule.resolve(block, chunks)
                if candidate is not None:
                    candidates.append(candidate)
                    break

        if candidates or len(chunks) != 1:
            return candidates

        chunk = chunks.index(0)
        for rule in self.fallbacks:
            candidate = rule.scan(response, chunk)
            if candidate is not None:
                return [candidate]
        return []
