"""API client — streams completions from a local Ollama endpoint."""
import asyncio
import json
import logging
import threading
from typing import AsyncIterator, Callable, List, Optional

import requests

from ghostedit.errors import InferenceUnavailable, RequestCancelled
from ghostedit.prompts import Invocation

logger = logging.getLogger(__name__)


class CancelToken:
    """Cancellation handle owned by one request.

    Callbacks registered with ``add_callback`` run exactly once, on the
    first ``cancel()``; a callback added after cancellation runs at once.
    """

    def __init__(self):
        self._cancelled = False
        self._callbacks: List[Callable[[], None]] = []
        self._lock = threading.Lock()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self):
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            callbacks, self._callbacks = self._callbacks, []
        for cb in callbacks:
            try:
                cb()
            except Exception as e:
                logger.debug("Cancel callback error: %s", e)

    def add_callback(self, cb: Callable[[], None]):
        with self._lock:
            if not self._cancelled:
                self._callbacks.append(cb)
                return
        cb()


class InferenceBackend:
    """Interface of the text-completion service."""

    def stream(self, invocation: Invocation, token: CancelToken) -> AsyncIterator[str]:
        raise NotImplementedError

    async def generate(self, invocation: Invocation, token: CancelToken) -> str:
        pieces = []
        async for piece in self.stream(invocation, token):
            pieces.append(piece)
        if token.cancelled:
            raise RequestCancelled("Request cancelled")
        return "".join(pieces)


class OllamaClient(InferenceBackend):
    """Client for a local Ollama server (``/api/generate``)."""

    def __init__(self, base_url: str = "http://localhost:11434", connect_timeout_ms: int = 3000):
        self.base_url = base_url.rstrip("/")
        self.connect_timeout_sec = connect_timeout_ms / 1000.0
        self._session = requests.Session()

    def _payload(self, invocation: Invocation, stream: bool) -> dict:
        payload = {
            "model": invocation.model,
            "prompt": invocation.prompt,
            "stream": stream,
            "options": invocation.options.to_ollama(invocation.stop),
        }
        if invocation.system:
            payload["system"] = invocation.system
        return payload

    def _open(self, invocation: Invocation, stream: bool) -> requests.Response:
        # Read timeout is left open: cancellation closes the response instead
        resp = self._session.post(
            f"{self.base_url}/api/generate",
            json=self._payload(invocation, stream),
            stream=stream,
            timeout=(self.connect_timeout_sec, None),
        )
        resp.raise_for_status()
        return resp

    def _unavailable(self, error: Exception) -> InferenceUnavailable:
        if isinstance(error, requests.Timeout):
            return InferenceUnavailable(f"Connection to {self.base_url} timed out")
        if isinstance(error, requests.ConnectionError):
            return InferenceUnavailable(f"Cannot reach {self.base_url} — is Ollama running?")
        return InferenceUnavailable(f"Inference request failed: {error}")

    async def stream(self, invocation: Invocation, token: CancelToken) -> AsyncIterator[str]:
        """Yield response pieces as they arrive.

        The blocking ``requests`` calls run in the default executor. The
        open response is registered on the token, so cancelling closes the
        connection and unblocks the pending read.
        """
        if token.cancelled:
            return
        loop = asyncio.get_running_loop()
        try:
            resp = await loop.run_in_executor(None, self._open, invocation, True)
        except requests.RequestException as e:
            raise self._unavailable(e) from e

        token.add_callback(resp.close)
        lines = resp.iter_lines(decode_unicode=True)
        try:
            while not token.cancelled:
                try:
                    line = await loop.run_in_executor(None, next, lines, None)
                except Exception as e:
                    if token.cancelled:
                        return
                    raise InferenceUnavailable(f"Stream interrupted: {e}") from e
                if line is None:
                    break
                if not line.strip():
                    continue
                try:
                    data = json.loads(line)
                except json.JSONDecodeError:
                    logger.debug("Failed to parse stream chunk: %r", line)
                    continue
                if data.get("error"):
                    raise InferenceUnavailable(str(data["error"]))
                piece = data.get("response")
                if piece:
                    yield piece
                if data.get("done"):
                    break
        finally:
            resp.close()

    async def generate(self, invocation: Invocation, token: CancelToken) -> str:
        """Single completed response (non-streaming)."""
        loop = asyncio.get_running_loop()

        def _run():
            resp = self._open(invocation, False)
            token.add_callback(resp.close)
            try:
                return resp.json()
            finally:
                resp.close()

        try:
            data = await loop.run_in_executor(None, _run)
        except (requests.RequestException, ValueError) as e:
            if token.cancelled:
                raise RequestCancelled("Request cancelled") from e
            raise self._unavailable(e) from e
        if token.cancelled:
            raise RequestCancelled("Request cancelled")

        text = self._extract_result(data)
        if text is None:
            raise InferenceUnavailable("Unexpected response format")
        return text

    def fetch_models(self) -> List[dict]:
        """Fetch available models.

        Queries GET /api/tags (Ollama), then GET /v1/models (OpenAI-compatible).

        Returns list of dicts with at least 'id' key, e.g.:
            [{"id": "codegemma:2b"}, ...]

        Returns empty list on failure.
        """
        for path in ("/api/tags", "/v1/models"):
            url = f"{self.base_url}{path}"
            try:
                resp = requests.get(url, timeout=max(self.connect_timeout_sec, 3.0))
                resp.raise_for_status()
                models = self._parse_models(resp.json())
                if models:
                    return models
            except requests.Timeout:
                logger.debug("Models request timed out at %s", url)
            except requests.ConnectionError:
                logger.debug("Models connection error — is the server running? URL: %s", url)
            except Exception as e:
                logger.debug("Models error at %s: %s", url, e)
        return []

    @staticmethod
    def _parse_models(data) -> List[dict]:
        # OpenAI-compatible: {"data": [{"id": "...", ...}, ...]}
        if isinstance(data, dict) and isinstance(data.get("data"), list):
            return [m for m in data["data"] if isinstance(m, dict) and "id" in m]

        # Ollama: {"models": [{"name": "...", ...}, ...]}
        if isinstance(data, dict) and isinstance(data.get("models"), list):
            result = []
            for m in data["models"]:
                if isinstance(m, str):
                    result.append({"id": m})
                elif isinstance(m, dict) and "id" in m:
                    result.append(m)
                elif isinstance(m, dict) and "name" in m:
                    result.append({"id": m["name"]})
            return result

        if isinstance(data, list):
            return [m for m in data if isinstance(m, dict) and "id" in m]

        logger.debug("Unexpected models response format: %s", type(data))
        return []

    @staticmethod
    def _extract_result(data) -> Optional[str]:
        """Extract generated text from a non-streaming response.

        Supports:
        - {"response": "..."}  (Ollama)
        - {"choices": [{"text": "..."}]} / {"choices": [{"message": {"content": "..."}}]}
        """
        if isinstance(data, str):
            return data
        if not isinstance(data, dict):
            return None

        for key in ("response", "text", "completion", "output"):
            if isinstance(data.get(key), str):
                return data[key]

        if isinstance(data.get("choices"), list):
            for choice in data["choices"]:
                if isinstance(choice, dict):
                    for key in ("text", "message", "content"):
                        if key in choice:
                            val = choice[key]
                            if isinstance(val, dict):
                                val = val.get("content", "")
                            if isinstance(val, str):
                                return val
        return None
