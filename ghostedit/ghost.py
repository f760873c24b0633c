"""Ghost text presenter — one non-committal inline preview per surface."""
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from ghostedit.history import EditHistory, HistoryKind
from ghostedit.surface import ORIGIN_ASSISTANT

logger = logging.getLogger(__name__)


@dataclass
class GhostSuggestion:
    anchor: int
    text: str
    request_id: int


class GhostTextPresenter:
    """Renders, withdraws and accepts the ghost suggestion.

    ``is_current`` tells whether a request id is still the active
    generation; suggestions from any other id are orphans and are never
    displayed.
    """

    def __init__(self, surface, is_current: Callable[[int], bool],
                 history: Optional[EditHistory] = None):
        self.surface = surface
        self._is_current = is_current
        self._history = history
        self._suggestion: Optional[GhostSuggestion] = None
        self._marker = None

    @property
    def suggestion(self) -> Optional[GhostSuggestion]:
        return self._suggestion

    @property
    def active(self) -> bool:
        return self._suggestion is not None

    def show(self, text: str, anchor: int, request_id: int, final: bool = True) -> bool:
        self.clear()
        if not text:
            return False
        if not self._is_current(request_id):
            logger.debug("Dropping orphaned suggestion from request %d", request_id)
            return False
        self._marker = self.surface.add_marker(anchor, text)
        self._suggestion = GhostSuggestion(anchor=anchor, text=text, request_id=request_id)
        if final and self._history is not None:
            self._history.record(HistoryKind.SUGGESTION_SHOWN, anchor=anchor, text=text,
                                 request_id=request_id)
        logger.debug("Showing ghost text: %r", text[:30])
        return True

    def update(self, text: str, request_id: int, anchor: Optional[int] = None,
               final: bool = False) -> bool:
        """Replace the previewed text in place (clear, then show)."""
        if anchor is None:
            if self._suggestion is not None:
                anchor = self._suggestion.anchor
            else:
                anchor = self.surface.get_cursor()
        return self.show(text, anchor, request_id, final=final)

    def clear(self):
        if self._marker is not None:
            self._marker.clear()
            self._marker = None
        self._suggestion = None

    def drop_orphan(self) -> bool:
        """Clear the suggestion if its request is no longer current."""
        if self._suggestion is not None and not self._is_current(self._suggestion.request_id):
            self.clear()
            return True
        return False

    def accept(self) -> Optional[int]:
        """Insert the suggestion at its anchor. Returns the new cursor offset."""
        if self.drop_orphan() or self._suggestion is None:
            return None
        suggestion = self._suggestion
        self.clear()

        self.surface.insert_text(suggestion.anchor, suggestion.text, origin=ORIGIN_ASSISTANT)
        new_cursor = suggestion.anchor + len(suggestion.text)
        self.surface.set_cursor(new_cursor)
        self.surface.focus()

        if self._history is not None:
            self._history.record(HistoryKind.SUGGESTION_ACCEPTED, anchor=suggestion.anchor,
                                 text=suggestion.text, request_id=suggestion.request_id)
        logger.info("Accepted completion (%d chars), cursor -> %d", len(suggestion.text), new_cursor)
        return new_cursor
