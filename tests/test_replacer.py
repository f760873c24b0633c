"""Tests for candidate validation and chunk replacement."""
import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from ghostedit.chunks import ChunkSet
from ghostedit.errors import FailureKind
from ghostedit.history import EditHistory, HistoryKind
from ghostedit.matcher import EXPLICIT_INDEX, ReplacementCandidate
from ghostedit.replacer import (
    ChunkReplacer, Verdict, hex_colors, is_color_request, validate,
)
from ghostedit.surface import ORIGIN_ASSISTANT, TextDocumentSurface

CSS = ":root { --primary-color: #111111; }"


def make_replacer(text=CSS, path="/p/style.css", start=1, end=1, chunk_text=None, open_doc=True):
    surface = TextDocumentSurface(text, file_path=path)
    chunks = ChunkSet()
    chunk = chunks.capture(os.path.basename(path), path, start, end,
                           chunk_text if chunk_text is not None else text)
    notices = []
    history = EditHistory()
    documents = {path: surface} if open_doc else {}
    replacer = ChunkReplacer(chunks, documents, history, notices.append)
    return replacer, surface, chunk, notices, history


def candidate_for(chunk, text):
    return ReplacementCandidate(
        chunk_id=chunk.id, file_name=chunk.file_name, start_line=chunk.start_line,
        end_line=chunk.end_line, proposed_text=text, confidence=EXPLICIT_INDEX,
    )


def test_identical_replacement_rejected():
    replacer, surface, chunk, notices, history = make_replacer()
    report = replacer.process("REPLACE CHUNK 1:\n" + CSS, "make it blue")
    assert [o.verdict for o in report.outcomes] == [Verdict.UNCHANGED]
    assert surface.get_text() == CSS
    assert not surface.dirty
    assert history.count(HistoryKind.REPLACEMENT_REJECTED) == 1
    assert notices[-1].kind is FailureKind.NOOP
    assert "same code" in notices[-1].message


def test_reformatted_same_colors_rejected_for_color_request():
    replacer, surface, chunk, notices, history = make_replacer()
    proposed = ":root {\n  --primary-color: #111111;\n}"
    outcome = replacer.apply(candidate_for(chunk, proposed), "change the color to blue")
    assert outcome.verdict is Verdict.COLORS_UNCHANGED
    assert surface.get_text() == CSS
    assert "No color values were changed" in notices[-1].message


def test_reformatting_allowed_without_color_request():
    replacer, surface, chunk, notices, history = make_replacer()
    proposed = ":root {\n  --primary-color: #111111;\n}"
    outcome = replacer.apply(candidate_for(chunk, proposed), "format this nicely")
    assert outcome.verdict is Verdict.APPLIED
    assert surface.get_text() == proposed


def test_applied_replacement_updates_document_and_chunk():
    replacer, surface, chunk, notices, history = make_replacer()
    origins = []
    surface.subscribe(origins.append, lambda: None)
    report = replacer.process("REPLACE CHUNK 1:\n:root { --primary-color: #1E90FF; }", "make it blue")
    assert len(report.applied) == 1
    assert surface.get_text() == ":root { --primary-color: #1E90FF; }"
    assert surface.dirty
    assert surface.refreshed == [(0, 0)]
    assert origins == [ORIGIN_ASSISTANT]
    assert replacer.chunks.get(chunk.id).text == ":root { --primary-color: #1E90FF; }"
    entry = history.entries(HistoryKind.REPLACEMENT_APPLIED)[0]
    assert entry.payload["old_code"] == CSS
    assert entry.payload["confidence"] == EXPLICIT_INDEX
    assert "Applied 1 code replacement" in notices[-1].message


def test_replacement_covers_whole_lines():
    text = "a\nb\nc\nd"
    replacer, surface, chunk, notices, history = make_replacer(
        text=text, start=2, end=3, chunk_text="b\nc")
    outcome = replacer.apply(candidate_for(chunk, "B\nC\nX"))
    assert outcome.verdict is Verdict.APPLIED
    assert surface.get_text() == "a\nB\nC\nX\nd"
    assert outcome.chunk.end_line == 4
    assert surface.refreshed == [(1, 3)]


def test_chunk_removed_before_apply():
    replacer, surface, chunk, notices, history = make_replacer()
    replacer.chunks.remove(chunk.id)
    outcome = replacer.apply(candidate_for(chunk, ":root { --primary-color: #222222; }"))
    assert outcome.verdict is Verdict.TARGET_MISSING
    assert notices[-1].kind is FailureKind.TARGET_MISSING
    assert surface.get_text() == CSS


def test_document_not_open():
    replacer, surface, chunk, notices, history = make_replacer(open_doc=False)
    outcome = replacer.apply(candidate_for(chunk, ":root { --primary-color: #222222; }"))
    assert outcome.verdict is Verdict.NOT_OPEN
    assert "#222222" in notices[-1].message
    assert surface.get_text() == CSS


def test_unmatched_response_is_reported():
    replacer, surface, chunk, notices, history = make_replacer()
    replacer.chunks.capture("other.css", "/p/other.css", 1, 1, ".x {}")
    report = replacer.process("Blue would suit this design well.", "make it blue")
    assert report.outcomes == []
    assert report.unmatched == "Blue would suit this design well."
    assert notices[-1].kind is FailureKind.MATCH_FAILURE


def test_hex_colors():
    assert hex_colors("a: #FFF; b: #00ff00; c: #11223344") == ["#fff", "#00ff00", "#11223344"]
    assert hex_colors("no colors") == []


def test_is_color_request():
    assert is_color_request("make the header blue")
    assert is_color_request("Change the COLOR scheme")
    assert is_color_request("use a darker theme")
    assert not is_color_request("rename this function")
    assert not is_color_request("")


def test_validate_case_insensitive_colors():
    replacer, surface, chunk, notices, history = make_replacer()
    same = ":root { --primary-color: #111111 ; }"
    assert validate(candidate_for(chunk, same), chunk, "make it red") is Verdict.COLORS_UNCHANGED
    changed = ":root { --primary-color: #FF0000; }"
    assert validate(candidate_for(chunk, changed), chunk, "make it red") is None


if __name__ == '__main__':
    test_identical_replacement_rejected()
    test_reformatted_same_colors_rejected_for_color_request()
    test_reformatting_allowed_without_color_request()
    test_applied_replacement_updates_document_and_chunk()
    test_replacement_covers_whole_lines()
    test_chunk_removed_before_apply()
    test_document_not_open()
    test_unmatched_response_is_reported()
    test_hex_colors()
    test_is_color_request()
    test_validate_case_insensitive_colors()
    print("All replacer tests passed.")
