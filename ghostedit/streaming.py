"""Streaming consumer — owns the single active completion request.

Each request carries a generation id. Consumers compare against the
current generation before every state mutation, so tokens from a
superseded request are dropped even if they arrive after a newer request
started.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from ghostedit.api_client import CancelToken, InferenceBackend
from ghostedit.cleaner import clean_completion
from ghostedit.context import Context
from ghostedit.errors import FailureKind, InferenceError, failure_kind
from ghostedit.prompts import Invocation

logger = logging.getLogger(__name__)


@dataclass
class CompletionRequest:
    id: int
    context: Context
    token: CancelToken = field(default_factory=CancelToken)
    started_at: float = field(default_factory=time.monotonic)
    first_token_at: Optional[float] = None

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled


class StreamingConsumer:
    """Accumulates streamed tokens for the active request of one surface."""

    def __init__(self, backend: InferenceBackend, config):
        self.backend = backend
        self.config = config
        self._generation = 0
        self._active: Optional[CompletionRequest] = None
        self.total_requests = 0
        self.avg_time_to_first_token = 0.0

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def active(self) -> Optional[CompletionRequest]:
        return self._active

    def is_current(self, request_id: int) -> bool:
        return request_id == self._generation

    def supersede(self) -> int:
        """Invalidate the active request without starting a new one."""
        self.cancel()
        self._generation += 1
        return self._generation

    def begin(self, context: Context) -> CompletionRequest:
        """Start a new request; the previous one is aborted, not just ignored."""
        self.supersede()
        request = CompletionRequest(id=self._generation, context=context)
        self._active = request
        self.total_requests += 1
        return request

    def cancel(self):
        if self._active is not None:
            self._active.token.cancel()
            logger.debug("Cancelled request %d", self._active.id)
            self._active = None

    def _live(self, request: CompletionRequest) -> bool:
        return self.is_current(request.id) and not request.cancelled

    async def consume(self, request: CompletionRequest, invocation: Invocation,
                      on_partial: Optional[Callable[[CompletionRequest, str], None]] = None
                      ) -> Optional[str]:
        """Stream the request to completion and return the cleaned text.

        Returns None when the request was superseded, failed, or produced
        nothing worth showing. Transport errors never escape.
        """
        buffer = ""
        stream = self.backend.stream(invocation, request.token)
        try:
            async for piece in stream:
                if not self._live(request):
                    logger.debug("Discarding late tokens for request %d", request.id)
                    return None
                if request.first_token_at is None:
                    request.first_token_at = time.monotonic()
                    self._record_first_token(request.first_token_at - request.started_at)
                buffer += piece
                if on_partial is not None:
                    on_partial(request, buffer)
        except InferenceError as e:
            if failure_kind(e) is FailureKind.STALE:
                logger.debug("Completion request %d cancelled", request.id)
            else:
                logger.warning("Completion request %d failed: %s", request.id, e)
            return None
        except Exception as e:
            logger.error("Completion request %d error: %s", request.id, e)
            return None
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
            if self._active is request:
                self._active = None

        if not self._live(request):
            return None
        return clean_completion(buffer, request.context, self.config)

    def _record_first_token(self, elapsed: float):
        n = self.total_requests
        if n <= 0:
            return
        self.avg_time_to_first_token = (self.avg_time_to_first_token * (n - 1) + elapsed) / n
