"""Tests for the ghost text presenter."""
import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from ghostedit.ghost import GhostTextPresenter
from ghostedit.history import EditHistory, HistoryKind
from ghostedit.surface import ORIGIN_ASSISTANT, TextDocumentSurface


class Generation:
    """Stands in for the streaming consumer's current-request check."""
    def __init__(self, current=1):
        self.current = current

    def is_current(self, request_id):
        return request_id == self.current


def make_presenter(text="def f():\n    "):
    surface = TextDocumentSurface(text, file_path="app.py")
    history = EditHistory()
    gen = Generation()
    return surface, GhostTextPresenter(surface, gen.is_current, history), gen, history


def test_show_places_single_marker():
    surface, presenter, gen, history = make_presenter()
    assert presenter.show("return 1", surface.get_cursor(), 1)
    assert len(surface.markers) == 1
    assert presenter.show("return 2", surface.get_cursor(), 1)
    presenter.clear()
    assert presenter.show("return 3", surface.get_cursor(), 1)
    assert len(surface.markers) == 1
    assert surface.markers[0].text == "return 3"
    assert history.count(HistoryKind.SUGGESTION_SHOWN) == 3


def test_ghost_is_not_document_text():
    surface, presenter, gen, history = make_presenter()
    before = surface.get_text()
    presenter.show("return 1", surface.get_cursor(), 1)
    assert surface.get_text() == before


def test_orphan_never_shown():
    surface, presenter, gen, history = make_presenter()
    assert not presenter.show("stale", surface.get_cursor(), 0)
    assert surface.markers == []
    assert not presenter.active


def test_orphan_dropped_after_supersede():
    surface, presenter, gen, history = make_presenter()
    presenter.show("return 1", surface.get_cursor(), 1)
    gen.current = 2
    assert presenter.drop_orphan()
    assert surface.markers == []
    assert presenter.accept() is None


def test_partial_update_keeps_anchor():
    surface, presenter, gen, history = make_presenter()
    anchor = surface.get_cursor()
    presenter.update("ret", 1, anchor=anchor)
    presenter.update("return", 1)
    assert presenter.suggestion.anchor == anchor
    assert len(surface.markers) == 1
    # partial previews are not recorded as shown suggestions
    assert history.count(HistoryKind.SUGGESTION_SHOWN) == 0


def test_accept_inserts_and_moves_cursor():
    surface, presenter, gen, history = make_presenter()
    origins = []
    surface.subscribe(origins.append, lambda: None)
    anchor = surface.get_cursor()
    text = "return 1\n\nx = 2"
    presenter.show(text, anchor, 1)

    new_cursor = presenter.accept()
    assert new_cursor == anchor + len(text)
    assert surface.get_cursor() == new_cursor
    assert surface.get_text() == "def f():\n    return 1\n\nx = 2"
    assert surface.markers == []
    assert surface.focused
    assert origins == [ORIGIN_ASSISTANT]
    assert history.last.kind is HistoryKind.SUGGESTION_ACCEPTED


def test_accept_without_suggestion():
    surface, presenter, gen, history = make_presenter()
    assert presenter.accept() is None
    assert surface.get_text() == "def f():\n    "


def test_empty_text_not_shown():
    surface, presenter, gen, history = make_presenter()
    assert not presenter.show("", 0, 1)
    assert surface.markers == []


if __name__ == '__main__':
    test_show_places_single_marker()
    test_ghost_is_not_document_text()
    test_orphan_never_shown()
    test_orphan_dropped_after_supersede()
    test_partial_update_keeps_anchor()
    test_accept_inserts_and_moves_cursor()
    test_accept_without_suggestion()
    test_empty_text_not_shown()
    print("All ghost text tests passed.")
