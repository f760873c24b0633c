"""Tests for chunk capture and the instruction-driven replacement path."""
import sys
import os
import asyncio
import tempfile
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from ghostedit.api_client import InferenceBackend
from ghostedit.assistant import Assistant
from ghostedit.config import Config
from ghostedit.errors import FailureKind, InferenceUnavailable, RequestCancelled, failure_kind
from ghostedit.history import HistoryKind
from ghostedit.surface import TextDocumentSurface

STYLE = ":root {\n  --primary-color: #111111;\n}\nbody { margin: 0; }\n"


def make_config():
    return Config(path=os.path.join(tempfile.mkdtemp(), "config.json"))


class MockChatBackend(InferenceBackend):
    def __init__(self, response="", error=None):
        self.response = response
        self.error = error
        self.invocations = []

    async def stream(self, invocation, token):
        self.invocations.append(invocation)
        if self.error is not None:
            raise self.error
        yield self.response


def make_assistant(response="", error=None):
    notices = []
    backend = MockChatBackend(response, error)
    assistant = Assistant(make_config(), backend, notify=notices.append)
    surface = TextDocumentSurface(STYLE, file_path="/site/style.css")
    return assistant, surface, backend, notices


def test_capture_full_lines():
    assistant, surface, backend, notices = make_assistant()
    surface.select(3, STYLE.index("}") + 1)
    chunk = assistant.capture_selection(surface)
    assert (chunk.start_line, chunk.end_line) == (1, 3)
    assert chunk.text == ":root {\n  --primary-color: #111111;\n}"
    assert chunk.file_name == "style.css"
    assert assistant.documents["/site/style.css"] is surface


def test_selection_ending_at_line_start():
    assistant, surface, backend, notices = make_assistant()
    surface.select(0, surface.line_start_offset(3))
    chunk = assistant.capture_selection(surface)
    assert (chunk.start_line, chunk.end_line) == (1, 3)


def test_empty_selection_captures_nothing():
    assistant, surface, backend, notices = make_assistant()
    assert assistant.capture_selection(surface) is None
    assert len(assistant.chunks) == 0


def test_request_edit_applies_replacement():
    response = "REPLACE CHUNK 1:\n```css\n:root {\n  --primary-color: #1e90ff;\n}\n```"
    assistant, surface, backend, notices = make_assistant(response)
    surface.select(0, STYLE.index("}") + 1)
    assistant.capture_selection(surface)

    report = asyncio.run(assistant.request_edit("make the primary color blue"))
    assert len(report.applied) == 1
    assert surface.get_text() == ":root {\n  --primary-color: #1e90ff;\n}\nbody { margin: 0; }\n"
    assert backend.invocations[0].model == "codellama:7b"
    assert "CHUNK 1: style.css (Lines 1-3)" in backend.invocations[0].prompt
    assert assistant.history.count(HistoryKind.REPLACEMENT_APPLIED) == 1


def test_request_edit_rejects_unchanged_colors():
    response = "REPLACE CHUNK 1:\n:root { --primary-color: #111111; }"
    assistant, surface, backend, notices = make_assistant(response)
    surface.select(0, STYLE.index("}") + 1)
    assistant.capture_selection(surface)

    report = asyncio.run(assistant.request_edit("make it red"))
    assert report.applied == []
    assert surface.get_text() == STYLE
    assert notices[-1].kind is FailureKind.NOOP


def test_request_edit_service_failure():
    assistant, surface, backend, notices = make_assistant(error=InferenceUnavailable("down"))
    surface.select(0, 5)
    assistant.capture_selection(surface)
    report = asyncio.run(assistant.request_edit("anything", model="llama3"))
    assert report.outcomes == []
    assert notices[-1].kind is FailureKind.TRANSIENT
    assert surface.get_text() == STYLE


def test_cancelled_request_is_silent():
    assistant, surface, backend, notices = make_assistant(error=RequestCancelled("superseded"))
    surface.select(0, 5)
    assistant.capture_selection(surface)
    report = asyncio.run(assistant.request_edit("anything"))
    assert report.outcomes == []
    assert notices == []


def test_failure_kinds():
    assert failure_kind(RequestCancelled("x")) is FailureKind.STALE
    assert failure_kind(InferenceUnavailable("x")) is FailureKind.TRANSIENT


def test_request_edit_empty_response():
    assistant, surface, backend, notices = make_assistant("   ")
    surface.select(0, 5)
    assistant.capture_selection(surface)
    asyncio.run(assistant.request_edit("anything"))
    assert notices[-1].kind is FailureKind.EMPTY


def test_detach_makes_document_unavailable():
    response = "REPLACE CHUNK 1:\n:root { --primary-color: #ff0000; }"
    assistant, surface, backend, notices = make_assistant(response)
    surface.select(0, 5)
    assistant.capture_selection(surface)
    assistant.detach(surface)
    report = asyncio.run(assistant.request_edit("make it red"))
    assert report.applied == []
    assert surface.get_text() == STYLE


def test_attach_shares_cache_between_engines():
    async def scenario():
        assistant, surface, backend, notices = make_assistant()
        other = TextDocumentSurface("x = 1\n", file_path="/site/app.py")
        first = assistant.attach(surface)
        second = assistant.attach(other)
        assert assistant.attach(surface) is first
        assert first is not second
        assert first.cache is second.cache is assistant.cache
        assert first.history is assistant.history
        assistant.cache.put(("k", "css"), "cached")
        assistant.set_model("starcoder2:3b")
        models = [first.config.completion_model, second.config.completion_model]
        size = len(assistant.cache)
        assistant.close()
        return assistant, models, size

    assistant, models, size = asyncio.run(scenario())
    assert models == ["starcoder2:3b", "starcoder2:3b"]
    assert size == 0
    assert assistant.engines == {}


def test_detach_closes_engine():
    async def scenario():
        assistant, surface, backend, notices = make_assistant()
        engine = assistant.attach(surface)
        assistant.detach(surface)
        surface.type_text("a")
        return assistant, engine

    assistant, engine = asyncio.run(scenario())
    assert assistant.engines == {}
    assert "/site/style.css" not in assistant.documents
    assert engine.trigger.fired == 0


def test_remove_and_clear_chunks():
    assistant, surface, backend, notices = make_assistant()
    surface.select(0, 5)
    chunk = assistant.capture_selection(surface)
    assert assistant.remove_chunk(chunk.id)
    assistant.capture_selection(surface)
    assistant.clear_chunks()
    assert len(assistant.chunks) == 0


if __name__ == '__main__':
    test_capture_full_lines()
    test_selection_ending_at_line_start()
    test_empty_selection_captures_nothing()
    test_request_edit_applies_replacement()
    test_request_edit_rejects_unchanged_colors()
    test_request_edit_service_failure()
    test_cancelled_request_is_silent()
    test_failure_kinds()
    test_request_edit_empty_response()
    test_detach_makes_document_unavailable()
    test_attach_shares_cache_between_engines()
    test_detach_closes_engine()
    test_remove_and_clear_chunks()
    print("All assistant tests passed.")
