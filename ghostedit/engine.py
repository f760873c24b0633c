"""Completion engine — ties together trigger, context, cache, stream and ghost text."""
import asyncio
import logging
from typing import Optional

from ghostedit.api_client import InferenceBackend
from ghostedit.cache import CompletionCache
from ghostedit.cleaner import clean_completion
from ghostedit.config import Config
from ghostedit.context import ContextBuilder, is_mid_word
from ghostedit.ghost import GhostTextPresenter
from ghostedit.history import EditHistory, HistoryKind
from ghostedit.prompts import build_invocation
from ghostedit.streaming import StreamingConsumer
from ghostedit.surface import ORIGIN_ASSISTANT, EditorSurface
from ghostedit.trigger import InteractionMode, InteractionTracker, TriggerController

logger = logging.getLogger(__name__)

_NAVIGATION_KEYS = {
    "Left", "Right", "Up", "Down", "Home", "End", "PageUp", "PageDown",
}


class CompletionEngine:
    """Inline completion for one editor surface.

    The cache and history may be shared between engines; everything else
    (timer, active request, ghost marker) is owned per surface.
    """

    def __init__(self, config: Config, surface: EditorSurface, backend: InferenceBackend,
                 cache: Optional[CompletionCache] = None,
                 history: Optional[EditHistory] = None,
                 loop: Optional[asyncio.AbstractEventLoop] = None):
        self.config = config
        self.surface = surface
        self.backend = backend
        self.cache = cache if cache is not None else CompletionCache(config.cache_size)
        self.history = history if history is not None else EditHistory(config.history_size)
        self.cache.set_model(config.completion_model)

        self._builder = ContextBuilder(config)
        self._tracker = InteractionTracker()
        self._consumer = StreamingConsumer(backend, config)
        self._presenter = GhostTextPresenter(surface, self._consumer.is_current, self.history)
        self._trigger = TriggerController(
            config, self._invoke, should_invoke=self._cursor_between_words, loop=loop,
        )
        self.cache_hits = 0
        self.accepted = 0
        self.dismissed = 0
        self._closed = False

        surface.subscribe(self.on_change, self.on_cursor_activity)

    @property
    def trigger(self) -> TriggerController:
        return self._trigger

    @property
    def consumer(self) -> StreamingConsumer:
        return self._consumer

    @property
    def presenter(self) -> GhostTextPresenter:
        return self._presenter

    # Surface events

    def on_change(self, origin: str):
        if self._closed or origin == ORIGIN_ASSISTANT:
            return
        self._withdraw()
        self._trigger.notify(self._tracker.classify(0, typed=True))

    def on_cursor_activity(self):
        if self._closed:
            return
        # A cursor move is the side effect of every edit; only react when
        # the ghost anchor no longer matches the cursor.
        suggestion = self._presenter.suggestion
        if suggestion is not None and suggestion.anchor == self.surface.get_cursor():
            return
        self._withdraw()
        start, end = self.surface.selection_range()
        self._trigger.notify(self._tracker.classify(end - start))

    def on_pointer(self, pressed: bool):
        self._tracker.pointer(pressed)

    def on_key(self, key: str) -> bool:
        """Handle a key before the editor does. Returns True if consumed."""
        if key == "Tab":
            return self.accept()
        if key == "Escape":
            return self.dismiss()
        if key == "Trigger":
            self.trigger_now()
            return True
        if key == "Undo":
            self.undo()
            return True
        if key == "Redo":
            self.redo()
            return True
        if key in _NAVIGATION_KEYS:
            self._withdraw()
        return False

    # Commands

    def accept(self) -> bool:
        if not self._presenter.active:
            return False
        self._trigger.cancel()
        accepted = self._presenter.accept()
        # The accepted preview may still be streaming
        self._consumer.supersede()
        if accepted is None:
            return False
        self.accepted += 1
        return True

    def dismiss(self) -> bool:
        suggestion = self._presenter.suggestion
        self._trigger.cancel()
        self._consumer.supersede()
        if suggestion is None:
            return False
        self._presenter.clear()
        self.dismissed += 1
        self.history.record(HistoryKind.SUGGESTION_DISMISSED, anchor=suggestion.anchor,
                            text=suggestion.text)
        return True

    def trigger_now(self) -> bool:
        """Manual trigger: skip the debounce window and the mid-word guard."""
        return self._trigger.fire_now()

    def undo(self) -> bool:
        self._withdraw()
        if self.surface.undo():
            self.history.record(HistoryKind.UNDO, file=self.surface.file_name)
            return True
        return False

    def redo(self) -> bool:
        self._withdraw()
        if self.surface.redo():
            self.history.record(HistoryKind.REDO, file=self.surface.file_name)
            return True
        return False

    def set_model(self, model: str):
        self._withdraw()
        self.config.completion_model = model
        self.cache.set_model(model)
        logger.info("Completion model set to %s", model)

    def metrics(self) -> dict:
        return {
            "total_requests": self._consumer.total_requests,
            "cache_hits": self.cache_hits,
            "cache_size": len(self.cache),
            "avg_time_to_first_token": self._consumer.avg_time_to_first_token,
            "triggers_fired": self._trigger.fired,
            "accepted": self.accepted,
            "dismissed": self.dismissed,
            "model": self.config.completion_model,
        }

    def close(self):
        self._closed = True
        self._trigger.close()
        self._consumer.cancel()
        self._presenter.clear()
        self.surface.unsubscribe(self.on_change, self.on_cursor_activity)

    # Internals

    def _withdraw(self):
        """Clear the ghost text and abort the in-flight request."""
        self._consumer.supersede()
        self._presenter.clear()

    def _cursor_between_words(self) -> bool:
        cursor = self.surface.get_cursor()
        if cursor is None:
            return False
        return not is_mid_word(self.surface.get_text(), cursor)

    async def _invoke(self):
        context = self._builder.from_surface(self.surface)
        if context is None:
            logger.debug("No context available — skipping completion")
            return

        anchor = self.surface.get_cursor()
        model = self.config.completion_model
        self.history.record(HistoryKind.TRIGGER_FIRED, file=context.file_name,
                            cursor=anchor, model=model)

        key = context.cache_key(self.config.fingerprint_window)
        cached = self.cache.get(key)
        if cached is not None:
            self.cache_hits += 1
            request_id = self._consumer.supersede()
            logger.debug("Cache hit for %s", context.file_name)
            self._presenter.show(cached, anchor, request_id)
            return

        request = self._consumer.begin(context)
        invocation = build_invocation(context, model, self.config)

        def on_partial(req, buffer):
            if not self._consumer.is_current(req.id):
                return
            preview = clean_completion(buffer, req.context, self.config)
            if preview:
                self._presenter.update(preview, req.id, anchor=anchor)

        text = await self._consumer.consume(request, invocation, on_partial=on_partial)
        if text is None:
            self._presenter.drop_orphan()
            if self._consumer.is_current(request.id):
                self._presenter.clear()
            return

        self.cache.put(key, text)
        self._presenter.show(text, anchor, request.id, final=True)
