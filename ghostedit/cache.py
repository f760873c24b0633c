"""Completion cache — context fingerprint to previously shown suggestion."""
import logging
from collections import OrderedDict
from typing import Hashable, Optional

logger = logging.getLogger(__name__)


class CompletionCache:
    """Bounded, insertion-ordered cache. Oldest entry is dropped first."""

    def __init__(self, max_size: int = 50):
        self.max_size = max_size
        self._entries: "OrderedDict[Hashable, str]" = OrderedDict()
        self._model: Optional[str] = None

    def get(self, key: Hashable) -> Optional[str]:
        return self._entries.get(key)

    def put(self, key: Hashable, text: str):
        if key in self._entries:
            del self._entries[key]
        self._entries[key] = text
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    def clear(self):
        self._entries.clear()

    def set_model(self, model: str):
        """Entries never outlive a change of inference target."""
        if model != self._model:
            if self._entries:
                logger.debug("Model changed %r -> %r, dropping %d cached completions",
                             self._model, model, len(self._entries))
            self.clear()
            self._model = model

    @property
    def model(self) -> Optional[str]:
        return self._model

    def __len__(self):
        return len(self._entries)

    def __contains__(self, key):
        return key in self._entries
