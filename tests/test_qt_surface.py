"""Tests for the Qt editor surface (offscreen platform)."""
import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest

QtWidgets = pytest.importorskip("PyQt5.QtWidgets")

from PyQt5.QtCore import QEvent, Qt
from PyQt5.QtGui import QKeyEvent, QTextCursor

from ghostedit.surface import ORIGIN_ASSISTANT, ORIGIN_INPUT


_APP = None


def get_app():
    global _APP
    app = QtWidgets.QApplication.instance()
    if app is None:
        app = QtWidgets.QApplication(["test"])
    _APP = app  # keep a reference so the application is not garbage-collected
    return app


def make_surface(text="x = "):
    from ghostedit.qt_surface import QtEditorSurface
    get_app()
    editor = QtWidgets.QPlainTextEdit()
    editor.setPlainText(text)
    surface = QtEditorSurface(editor, file_path="/tmp/app.py")
    changes, moves = [], []
    surface.subscribe(changes.append, lambda: moves.append(surface.get_cursor()))
    return editor, surface, changes, moves


def test_text_and_language():
    editor, surface, changes, moves = make_surface("a\nb")
    assert surface.get_text() == "a\nb"
    assert surface.language == "python"
    assert surface.file_name == "app.py"
    assert surface.line_count() == 2


def test_replace_range_tags_origin():
    editor, surface, changes, moves = make_surface("x = ")
    surface.insert_text(4, "foo()", origin=ORIGIN_ASSISTANT)
    assert surface.get_text() == "x = foo()"
    assert changes == [ORIGIN_ASSISTANT]
    surface.replace_range(0, 1, "y")
    assert surface.get_text() == "y = foo()"
    assert changes == [ORIGIN_ASSISTANT, ORIGIN_INPUT]


def test_edit_and_cursor_listeners():
    editor, surface, changes, moves = make_surface("")
    editor.insertPlainText("abc")
    assert changes == [ORIGIN_INPUT]
    surface.set_cursor(1)
    assert moves[-1] == 1


def test_cursor_move_after_delete_is_reported():
    from PyQt5.QtTest import QTest
    editor, surface, changes, moves = make_surface("abc\ndef")
    surface.set_cursor(1)
    del moves[:]
    QTest.keyClick(editor, Qt.Key_Delete)
    assert surface.get_text() == "ac\ndef"
    assert changes == [ORIGIN_INPUT]
    surface.set_cursor(4)
    assert moves == [4]


def test_assistant_edit_below_cursor_keeps_next_move():
    editor, surface, changes, moves = make_surface("abc\ndef")
    surface.set_cursor(1)
    del moves[:]
    surface.replace_range(4, 7, "xyz", origin=ORIGIN_ASSISTANT)
    surface.set_cursor(5)
    assert moves == [5]


def test_selection_range():
    editor, surface, changes, moves = make_surface("hello world")
    cursor = editor.textCursor()
    cursor.setPosition(2)
    cursor.setPosition(7, QTextCursor.KeepAnchor)
    editor.setTextCursor(cursor)
    assert surface.selection_range() == (2, 7)
    assert surface.selected_text() == "llo w"


def test_marker_is_overlay_not_text():
    editor, surface, changes, moves = make_surface("x = ")
    marker = surface.add_marker(4, "foo()")
    assert surface.get_text() == "x = "
    assert marker.label.text() == "foo()"
    assert "italic" in marker.label.styleSheet()
    assert len(surface.markers) == 1
    marker.clear()
    assert surface.markers == []


def test_marker_follows_edits_before_it():
    editor, surface, changes, moves = make_surface("x = ")
    marker = surface.add_marker(4, "foo()")
    surface.insert_text(0, "# c\n")
    assert marker.offset == 8


def test_key_handler_consumes_tab():
    editor, surface, changes, moves = make_surface("x = ")
    keys = []

    def handler(name):
        keys.append(name)
        return name == "Tab"

    surface.key_handler = handler
    QtWidgets.QApplication.sendEvent(editor, QKeyEvent(QEvent.KeyPress, Qt.Key_Tab, Qt.NoModifier))
    assert keys == ["Tab"]
    assert surface.get_text() == "x = "


def test_undo_redo_tagged_as_assistant():
    editor, surface, changes, moves = make_surface("")
    surface.insert_text(0, "abc")
    assert surface.undo()
    assert surface.get_text() == ""
    assert changes[-1] == ORIGIN_ASSISTANT
    assert surface.redo()
    assert surface.get_text() == "abc"


if __name__ == '__main__':
    test_text_and_language()
    test_replace_range_tags_origin()
    test_edit_and_cursor_listeners()
    test_cursor_move_after_delete_is_reported()
    test_assistant_edit_below_cursor_keeps_next_move()
    test_selection_range()
    test_marker_is_overlay_not_text()
    test_marker_follows_edits_before_it()
    test_key_handler_consumes_tab()
    test_undo_redo_tagged_as_assistant()
    print("All Qt surface tests passed.")
