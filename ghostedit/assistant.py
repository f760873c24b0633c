"""Assistant — chunk capture plus the instruction-driven replacement path."""
import logging
from typing import Callable, Dict, Optional

from ghostedit.api_client import CancelToken, InferenceBackend
from ghostedit.cache import CompletionCache
from ghostedit.chunks import ChunkSet, CodeChunk
from ghostedit.config import Config
from ghostedit.engine import CompletionEngine
from ghostedit.errors import FailureKind, InferenceError, Notice, failure_kind
from ghostedit.history import EditHistory
from ghostedit.prompts import build_chunk_invocation
from ghostedit.replacer import ChunkReplacer, ReplacementReport

logger = logging.getLogger(__name__)


class Assistant:
    """Holds the working set of chunks and the open documents.

    Documents are registered with ``attach`` so replacements can be
    re-resolved against the live surface at apply time. Every attached
    surface gets its own CompletionEngine; the cache and history are shared.
    """

    def __init__(self, config: Config, backend: InferenceBackend,
                 history: Optional[EditHistory] = None,
                 notify: Optional[Callable[[Notice], None]] = None):
        self.config = config
        self.backend = backend
        self.history = history if history is not None else EditHistory(config.history_size)
        self.cache = CompletionCache(config.cache_size)
        self.chunks = ChunkSet()
        self.documents: Dict[str, object] = {}
        self.engines: Dict[str, CompletionEngine] = {}
        self._notify = notify or self._log_notice
        self.replacer = ChunkReplacer(self.chunks, self.documents, self.history, self._notify)
        self._token: Optional[CancelToken] = None

    @staticmethod
    def _log_notice(notice: Notice):
        log = logger.warning if notice.level in ("warning", "error") else logger.info
        log("%s", notice.message)

    def attach(self, surface, loop=None) -> CompletionEngine:
        """Open a document: register it and start inline completion on it."""
        self._register(surface)
        engine = self.engines.get(surface.file_path)
        if engine is not None and engine.surface is surface:
            return engine
        if engine is not None:
            engine.close()
        engine = CompletionEngine(self.config, surface, self.backend,
                                  cache=self.cache, history=self.history, loop=loop)
        self.engines[surface.file_path] = engine
        logger.info("Attached %s", surface.file_name)
        return engine

    def detach(self, surface):
        if self.documents.get(surface.file_path) is surface:
            del self.documents[surface.file_path]
        engine = self.engines.get(surface.file_path)
        if engine is not None and engine.surface is surface:
            engine.close()
            del self.engines[surface.file_path]

    def _register(self, surface):
        self.documents[surface.file_path] = surface

    def capture_selection(self, surface) -> Optional[CodeChunk]:
        """Capture the full lines covered by the surface's selection."""
        start, end = surface.selection_range()
        if start == end:
            logger.debug("Nothing selected — no chunk captured")
            return None
        first = surface.line_of_offset(start)
        # A selection ending at column 0 does not include that line
        last = surface.line_of_offset(end)
        if last > first and end == surface.line_start_offset(last):
            last -= 1
        text = "\n".join(surface.get_line(i) for i in range(first, last + 1))
        if surface.file_path:
            self._register(surface)
        return self.chunks.capture(surface.file_name, surface.file_path, first + 1, last + 1, text)

    def remove_chunk(self, chunk_id: str) -> bool:
        return self.chunks.remove(chunk_id)

    def clear_chunks(self):
        self.chunks.clear()

    def cancel(self):
        if self._token is not None:
            self._token.cancel()
            self._token = None

    async def request_edit(self, instruction: str, model: Optional[str] = None) -> ReplacementReport:
        """Send the instruction with the working set and apply what comes back."""
        self.cancel()
        model = model or self.config.chat_model
        invocation = build_chunk_invocation(instruction, self.chunks, model, self.config)
        token = CancelToken()
        self._token = token
        logger.info("Requesting edit from %s with %d chunk(s)", model, len(self.chunks))
        try:
            response = await self.backend.generate(invocation, token)
        except InferenceError as e:
            kind = failure_kind(e)
            if kind is FailureKind.STALE:
                logger.debug("Edit request cancelled")
            else:
                self._notify(Notice("warning", f"Assistant request failed: {e}", kind))
            return ReplacementReport()
        finally:
            if self._token is token:
                self._token = None

        if token.cancelled:
            return ReplacementReport()
        if not response or not response.strip():
            self._notify(Notice("info", "The assistant returned an empty response.", FailureKind.EMPTY))
            return ReplacementReport()
        return self.replacer.process(response, instruction)

    def set_model(self, model: str):
        """Switch the completion model for every open document."""
        self.cache.set_model(model)
        if not self.engines:
            self.config.completion_model = model
        for engine in self.engines.values():
            engine.set_model(model)

    def set_chat_model(self, model: str):
        self.config.set("chat_model", model)
        logger.info("Chat model set to %s", model)

    def close(self):
        self.cancel()
        for engine in self.engines.values():
            engine.close()
        self.engines.clear()
