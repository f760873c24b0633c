"""Qt binding of the editor surface (QPlainTextEdit).

Ghost text is a translucent QLabel placed on the editor viewport at the
anchor's cursor rectangle; it is not part of the document and never
enters the undo stack.
"""
import logging
from typing import Callable, List, Optional, Tuple

from PyQt5.QtCore import QEvent, QObject, Qt
from PyQt5.QtGui import QKeySequence, QTextCursor
from PyQt5.QtWidgets import QLabel, QPlainTextEdit

from ghostedit.context import Diagnostic, language_for_file
from ghostedit.surface import ORIGIN_ASSISTANT, ORIGIN_INPUT, EditorSurface, Marker

logger = logging.getLogger(__name__)

GHOST_STYLE = "color: rgba(128, 128, 128, 0.6); font-style: italic; background: transparent;"

_KEY_NAMES = {
    Qt.Key_Tab: "Tab",
    Qt.Key_Escape: "Escape",
    Qt.Key_Left: "Left",
    Qt.Key_Right: "Right",
    Qt.Key_Up: "Up",
    Qt.Key_Down: "Down",
    Qt.Key_Home: "Home",
    Qt.Key_End: "End",
    Qt.Key_PageUp: "PageUp",
    Qt.Key_PageDown: "PageDown",
}


def key_name(event) -> Optional[str]:
    """Engine-level name for a key event, or None if the engine ignores it."""
    if event.matches(QKeySequence.Undo):
        return "Undo"
    if event.matches(QKeySequence.Redo):
        return "Redo"
    if event.key() == Qt.Key_Space and event.modifiers() & Qt.ControlModifier:
        return "Trigger"
    if event.modifiers() & (Qt.ControlModifier | Qt.AltModifier):
        return None
    return _KEY_NAMES.get(event.key())


class _GhostMarker(Marker):
    def __init__(self, offset: int, text: str, label: QLabel, on_clear: Callable):
        super().__init__(offset, text, on_clear=on_clear)
        self.label = label


class _EditorEventFilter(QObject):
    """Routes keys and pointer presses to the surface before the editor sees them."""

    def __init__(self, surface: "QtEditorSurface"):
        super().__init__(surface.editor)
        self._surface = surface

    def eventFilter(self, obj, event):
        etype = event.type()
        if etype == QEvent.KeyPress:
            name = key_name(event)
            handler = self._surface.key_handler
            if name and handler is not None and handler(name):
                return True
        elif etype in (QEvent.MouseButtonPress, QEvent.MouseButtonRelease):
            handler = self._surface.pointer_handler
            if handler is not None:
                handler(etype == QEvent.MouseButtonPress)
        return False


class QtEditorSurface(EditorSurface):
    def __init__(self, editor: QPlainTextEdit, file_path: str = "", language: Optional[str] = None):
        self.editor = editor
        self.file_path = file_path
        self.language = language or language_for_file(file_path)
        self.key_handler: Optional[Callable[[str], bool]] = None
        self.pointer_handler: Optional[Callable[[bool], None]] = None

        self._markers: List[_GhostMarker] = []
        self._diagnostics: List[Diagnostic] = []
        self._change_listeners: List[Callable[[str], None]] = []
        self._cursor_listeners: List[Callable[[], None]] = []
        self._origin = ORIGIN_INPUT
        self._edit_mark: Optional[Tuple[int, int]] = None

        doc = editor.document()
        doc.contentsChange.connect(self._on_contents_change)
        editor.textChanged.connect(self._on_text_changed)
        editor.cursorPositionChanged.connect(self._on_cursor_changed)
        editor.verticalScrollBar().valueChanged.connect(self._reposition_markers)
        editor.horizontalScrollBar().valueChanged.connect(self._reposition_markers)

        self._filter = _EditorEventFilter(self)
        editor.installEventFilter(self._filter)
        editor.viewport().installEventFilter(self._filter)

    # Text and cursor

    def get_text(self) -> str:
        return self.editor.toPlainText()

    def get_cursor(self) -> Optional[int]:
        return self.editor.textCursor().position()

    def set_cursor(self, offset: int):
        cursor = self.editor.textCursor()
        cursor.setPosition(max(0, min(offset, self.editor.document().characterCount() - 1)))
        self.editor.setTextCursor(cursor)

    def selection_range(self) -> Tuple[int, int]:
        cursor = self.editor.textCursor()
        return cursor.selectionStart(), cursor.selectionEnd()

    def replace_range(self, start: int, end: int, text: str, origin: str = ORIGIN_INPUT):
        cursor = QTextCursor(self.editor.document())
        cursor.setPosition(start)
        cursor.setPosition(end, QTextCursor.KeepAnchor)
        self._origin = origin
        try:
            cursor.beginEditBlock()
            cursor.insertText(text)
            cursor.endEditBlock()
        finally:
            self._origin = ORIGIN_INPUT

    def undo(self) -> bool:
        if not self.editor.document().isUndoAvailable():
            return False
        self._origin = ORIGIN_ASSISTANT
        try:
            self.editor.undo()
        finally:
            self._origin = ORIGIN_INPUT
        return True

    def redo(self) -> bool:
        if not self.editor.document().isRedoAvailable():
            return False
        self._origin = ORIGIN_ASSISTANT
        try:
            self.editor.redo()
        finally:
            self._origin = ORIGIN_INPUT
        return True

    # Markers

    def add_marker(self, offset: int, text: str) -> Marker:
        label = QLabel(text, self.editor.viewport())
        label.setFont(self.editor.font())
        label.setStyleSheet(GHOST_STYLE)
        label.setAttribute(Qt.WA_TransparentForMouseEvents)
        label.setTextInteractionFlags(Qt.NoTextInteraction)
        marker = _GhostMarker(offset, text, label, on_clear=self._remove_marker)
        self._markers.append(marker)
        self._place(marker)
        label.show()
        return marker

    def _remove_marker(self, marker: _GhostMarker):
        if marker in self._markers:
            self._markers.remove(marker)
        marker.label.hide()
        marker.label.deleteLater()

    def _place(self, marker: _GhostMarker):
        cursor = QTextCursor(self.editor.document())
        cursor.setPosition(min(marker.offset, self.editor.document().characterCount() - 1))
        rect = self.editor.cursorRect(cursor)
        marker.label.adjustSize()
        marker.label.move(rect.right() + 1, rect.top())

    def _reposition_markers(self, *_):
        for marker in self._markers:
            self._place(marker)

    @property
    def markers(self) -> List[Marker]:
        return list(self._markers)

    # Diagnostics and misc

    def set_diagnostics(self, diagnostics: List[Diagnostic]):
        self._diagnostics = list(diagnostics)

    def diagnostics(self) -> List[Diagnostic]:
        return list(self._diagnostics)

    def focus(self):
        self.editor.setFocus()

    def mark_dirty(self):
        self.editor.document().setModified(True)

    def refresh_lines(self, first: int, last: int):
        self.editor.viewport().update()

    def subscribe(self, on_change: Callable[[str], None], on_cursor: Callable[[], None]):
        self._change_listeners.append(on_change)
        self._cursor_listeners.append(on_cursor)

    def unsubscribe(self, on_change: Callable[[str], None], on_cursor: Callable[[], None]):
        if on_change in self._change_listeners:
            self._change_listeners.remove(on_change)
        if on_cursor in self._cursor_listeners:
            self._cursor_listeners.remove(on_cursor)

    # Qt signal handlers

    def _on_contents_change(self, position: int, removed: int, added: int):
        delta = added - removed
        for marker in self._markers:
            if marker.offset > position:
                marker.offset = max(position, marker.offset + delta)

    def _on_text_changed(self):
        self._edit_mark = (self.editor.document().revision(), self.get_cursor())
        self._reposition_markers()
        for listener in list(self._change_listeners):
            listener(self._origin)

    def _on_cursor_changed(self):
        # The move an edit makes is reported through the change path; any
        # other position, even right after an edit, is a real cursor move
        mark = (self.editor.document().revision(), self.get_cursor())
        if mark == self._edit_mark:
            self._edit_mark = None
            return
        for listener in list(self._cursor_listeners):
            listener()
