"""Captured code chunks — the assistant's working set for targeted edits."""
import logging
import time
from dataclasses import dataclass, field, replace
from typing import Iterator, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CodeChunk:
    id: str
    file_name: str
    file_path: str
    start_line: int     # 1-based, inclusive
    end_line: int       # 1-based, inclusive
    text: str           # snapshot taken at capture time
    captured_at: float = field(default_factory=time.time)

    @property
    def location(self) -> str:
        return f"{self.file_name} (Lines {self.start_line}-{self.end_line})"


class ChunkSet:
    """Ordered set of captured chunks, decoupled from the live documents."""

    def __init__(self):
        self._chunks: List[CodeChunk] = []
        self._counter = 0

    def capture(self, file_name: str, file_path: str, start_line: int, end_line: int,
                text: str) -> CodeChunk:
        self._counter += 1
        chunk = CodeChunk(
            id=f"chunk-{self._counter}",
            file_name=file_name or "Unknown File",
            file_path=file_path or "",
            start_line=start_line,
            end_line=end_line,
            text=text,
        )
        self._chunks.append(chunk)
        logger.info("Captured %s: %s", chunk.id, chunk.location)
        return chunk

    def get(self, chunk_id: str) -> Optional[CodeChunk]:
        for chunk in self._chunks:
            if chunk.id == chunk_id:
                return chunk
        return None

    def index(self, i: int) -> Optional[CodeChunk]:
        """0-based positional lookup."""
        if 0 <= i < len(self._chunks):
            return self._chunks[i]
        return None

    def find_location(self, file_name: str, start_line: int, end_line: int) -> Optional[CodeChunk]:
        for chunk in self._chunks:
            if (chunk.file_name == file_name and chunk.start_line == start_line
                    and chunk.end_line == end_line):
                return chunk
        return None

    def remove(self, chunk_id: str) -> bool:
        before = len(self._chunks)
        self._chunks = [c for c in self._chunks if c.id != chunk_id]
        removed = before != len(self._chunks)
        if removed:
            logger.info("Removed %s from working set", chunk_id)
        return removed

    def clear(self):
        self._chunks.clear()
        self._counter = 0

    def update_text(self, chunk_id: str, text: str) -> Optional[CodeChunk]:
        """Store new content for a chunk after a replacement was applied."""
        for i, chunk in enumerate(self._chunks):
            if chunk.id == chunk_id:
                end_line = chunk.start_line + text.count("\n")
                updated = replace(chunk, text=text, end_line=end_line)
                self._chunks[i] = updated
                return updated
        return None

    def __iter__(self) -> Iterator[CodeChunk]:
        return iter(list(self._chunks))

    def __len__(self):
        return len(self._chunks)
