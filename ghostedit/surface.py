"""Editor surface — the document/editor boundary the engine talks to.

The engine never touches a widget toolkit directly. It reads text and the
cursor, places bookmark-style markers with attached ghost widgets, and
replaces ranges through this interface. ``TextDocumentSurface`` is the
in-memory implementation used by the CLI and the tests; ``qt_surface``
binds the same interface to a Qt text widget.
"""
import logging
import os
from typing import Callable, List, Optional, Tuple

from ghostedit.context import Diagnostic, language_for_file

logger = logging.getLogger(__name__)

# Edit origins. Programmatic edits are tagged so the trigger ignores them.
ORIGIN_INPUT = "input"
ORIGIN_ASSISTANT = "assistant"


class Marker:
    """A bookmark at a document offset carrying an inline widget."""

    def __init__(self, offset: int, text: str, on_clear: Optional[Callable] = None):
        self.offset = offset
        self.text = text
        self.cleared = False
        self._on_clear = on_clear

    def clear(self):
        if self.cleared:
            return
        self.cleared = True
        if self._on_clear:
            self._on_clear(self)


class EditorSurface:
    """Interface consumed by the engine. Offsets are character indices."""

    file_path: str = ""
    language: str = "text"

    @property
    def file_name(self) -> str:
        return os.path.basename(self.file_path) if self.file_path else "untitled"

    def get_text(self) -> str:
        raise NotImplementedError

    def get_cursor(self) -> Optional[int]:
        raise NotImplementedError

    def set_cursor(self, offset: int):
        raise NotImplementedError

    def selection_range(self) -> Tuple[int, int]:
        raise NotImplementedError

    def replace_range(self, start: int, end: int, text: str, origin: str = ORIGIN_INPUT):
        raise NotImplementedError

    def add_marker(self, offset: int, text: str) -> Marker:
        raise NotImplementedError

    def diagnostics(self) -> List[Diagnostic]:
        return []

    def focus(self):
        pass

    def mark_dirty(self):
        pass

    def refresh_lines(self, first: int, last: int):
        pass

    def undo(self) -> bool:
        return False

    def redo(self) -> bool:
        return False

    def subscribe(self, on_change: Callable[[str], None], on_cursor: Callable[[], None]):
        raise NotImplementedError

    def unsubscribe(self, on_change: Callable[[str], None], on_cursor: Callable[[], None]):
        pass

    # Helpers built on get_text()

    def insert_text(self, offset: int, text: str, origin: str = ORIGIN_INPUT):
        self.replace_range(offset, offset, text, origin=origin)

    def line_count(self) -> int:
        return self.get_text().count("\n") + 1

    def get_line(self, line: int) -> str:
        """Return a 0-based line without its newline."""
        lines = self.get_text().split("\n")
        if 0 <= line < len(lines):
            return lines[line]
        return ""

    def line_start_offset(self, line: int) -> int:
        text = self.get_text()
        offset = 0
        for _ in range(line):
            nl = text.find("\n", offset)
            if nl == -1:
                return len(text)
            offset = nl + 1
        return offset

    def line_of_offset(self, offset: int) -> int:
        return self.get_text().count("\n", 0, offset)

    def selected_text(self) -> str:
        start, end = self.selection_range()
        return self.get_text()[start:end]


class TextDocumentSurface(EditorSurface):
    """In-memory surface with markers, diagnostics and a linear undo stack."""

    def __init__(self, text: str = "", file_path: str = "", language: Optional[str] = None,
                 cursor: Optional[int] = None):
        self.file_path = file_path
        self.language = language or language_for_file(file_path)
        self._text = text
        self._cursor = len(text) if cursor is None else cursor
        self._anchor = self._cursor  # selection anchor
        self._markers: List[Marker] = []
        self._diagnostics: List[Diagnostic] = []
        self._undo: List[Tuple[int, str, str]] = []  # (start, removed, inserted)
        self._redo: List[Tuple[int, str, str]] = []
        self._change_listeners: List[Callable[[str], None]] = []
        self._cursor_listeners: List[Callable[[], None]] = []
        self.dirty = False
        self.focused = False
        self.refreshed: List[Tuple[int, int]] = []

    # Text and cursor

    def get_text(self) -> str:
        return self._text

    def get_cursor(self) -> Optional[int]:
        return self._cursor

    def set_cursor(self, offset: int, anchor: Optional[int] = None):
        offset = max(0, min(offset, len(self._text)))
        self._cursor = offset
        self._anchor = offset if anchor is None else max(0, min(anchor, len(self._text)))
        for listener in list(self._cursor_listeners):
            listener()

    def select(self, start: int, end: int):
        self.set_cursor(end, anchor=start)

    def selection_range(self) -> Tuple[int, int]:
        return min(self._anchor, self._cursor), max(self._anchor, self._cursor)

    def type_text(self, text: str):
        """Simulate the user typing at the cursor."""
        self.replace_range(self._cursor, self._cursor, text, origin=ORIGIN_INPUT)

    def replace_range(self, start: int, end: int, text: str, origin: str = ORIGIN_INPUT):
        removed = self._text[start:end]
        self._apply(start, removed, text)
        self._undo.append((start, removed, text))
        self._redo.clear()
        self._emit_change(origin)

    def _apply(self, start: int, removed: str, inserted: str):
        self._text = self._text[:start] + inserted + self._text[start + len(removed):]
        delta = len(inserted) - len(removed)
        for marker in self._markers:
            if marker.offset > start:
                marker.offset = max(start, marker.offset + delta)
        if self._cursor >= start + len(removed):
            self._cursor += delta
        elif self._cursor > start:
            self._cursor = start + len(inserted)
        self._anchor = self._cursor

    def _emit_change(self, origin: str):
        for listener in list(self._change_listeners):
            listener(origin)

    def undo(self) -> bool:
        if not self._undo:
            return False
        start, removed, inserted = self._undo.pop()
        self._apply(start, inserted, removed)
        self._redo.append((start, removed, inserted))
        self._emit_change(ORIGIN_ASSISTANT)
        return True

    def redo(self) -> bool:
        if not self._redo:
            return False
        start, removed, inserted = self._redo.pop()
        self._apply(start, removed, inserted)
        self._undo.append((start, removed, inserted))
        self._emit_change(ORIGIN_ASSISTANT)
        return True

    # Markers

    def add_marker(self, offset: int, text: str) -> Marker:
        marker = Marker(offset, text, on_clear=self._remove_marker)
        self._markers.append(marker)
        return marker

    def _remove_marker(self, marker: Marker):
        if marker in self._markers:
            self._markers.remove(marker)

    @property
    def markers(self) -> List[Marker]:
        return list(self._markers)

    # Diagnostics and misc

    def set_diagnostics(self, diagnostics: List[Diagnostic]):
        self._diagnostics = list(diagnostics)

    def diagnostics(self) -> List[Diagnostic]:
        return list(self._diagnostics)

    def focus(self):
        self.focused = True

    def mark_dirty(self):
        self.dirty = True

    def refresh_lines(self, first: int, last: int):
        self.refreshed.append((first, last))

    def subscribe(self, on_change: Callable[[str], None], on_cursor: Callable[[], None]):
        self._change_listeners.append(on_change)
        self._cursor_listeners.append(on_cursor)

    def unsubscribe(self, on_change: Callable[[str], None], on_cursor: Callable[[], None]):
        if on_change in self._change_listeners:
            self._change_listeners.remove(on_change)
        if on_cursor in self._cursor_listeners:
            self._cursor_listeners.remove(on_cursor)
