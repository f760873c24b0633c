"""Tests for prompt formatting and generation parameters."""
import sys
import os
import tempfile
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from ghostedit.chunks import ChunkSet
from ghostedit.config import Config
from ghostedit.context import ContextBuilder, Diagnostic
from ghostedit.prompts import (
    ModelFamily, STOP_SEQUENCES, build_chunk_invocation, build_chunk_prompt,
    build_invocation, comment_prefix,
)


def make_config():
    return Config(path=os.path.join(tempfile.mkdtemp(), "config.json"))


def test_family_detection():
    assert ModelFamily.detect("starcoder2:3b") is ModelFamily.STARCODER
    assert ModelFamily.detect("codegemma:2b") is ModelFamily.CODEGEMMA
    assert ModelFamily.detect("CodeGemma:7b-code") is ModelFamily.CODEGEMMA
    assert ModelFamily.detect("llama3") is ModelFamily.GENERIC
    assert ModelFamily.detect("") is ModelFamily.GENERIC


def test_codegemma_uses_fill_in_middle():
    config = make_config()
    ctx = ContextBuilder(config).build("def f():\n    return x\n", 9, language="python")
    inv = build_invocation(ctx, "codegemma:2b", config)
    assert inv.prompt == f"<fim_prefix>{ctx.prefix}<fim_suffix>{ctx.suffix}<fim_middle>"
    assert inv.stop == STOP_SEQUENCES[ModelFamily.CODEGEMMA]
    opts = inv.options.to_ollama(inv.stop)
    assert opts["num_predict"] == 30
    assert opts["temperature"] == 0.02
    assert opts["num_ctx"] == 2048


def test_starcoder_parameters():
    config = make_config()
    ctx = ContextBuilder(config).build("x = ", 4, language="python")
    inv = build_invocation(ctx, "starcoder2:3b", config)
    assert inv.prompt == "x = "
    assert inv.options.max_tokens == 50
    assert inv.options.temperature == 0.1
    assert inv.options.top_k == 40
    assert "<|endoftext|>" in inv.stop


def test_diagnostic_hint_in_prompt():
    config = make_config()
    ctx = ContextBuilder(config).build("def f(:", 7, language="python",
                                       diagnostics=[Diagnostic(line=0, message="invalid syntax")])
    inv = build_invocation(ctx, "starcoder2:3b", config)
    assert inv.prompt.endswith("\n# Fix: invalid syntax\n")

    js = ContextBuilder(config).build("let a = ;", 9, language="javascript",
                                      diagnostics=[Diagnostic(line=0, message="unexpected token")])
    assert "// Fix: unexpected token" in build_invocation(js, "llama3", config).prompt


def test_comment_prefix():
    assert comment_prefix("python") == "#"
    assert comment_prefix("sql") == "--"
    assert comment_prefix("css") == "//"


def test_chunk_prompt_lists_chunks():
    chunks = ChunkSet()
    chunks.capture("a.css", "/p/a.css", 1, 2, ".a {\n}")
    chunks.capture("b.css", "/p/b.css", 3, 4, ".b {\n}")
    prompt = build_chunk_prompt("make it red", chunks)
    assert "CHUNK 1: a.css (Lines 1-2)" in prompt
    assert "CHUNK 2: b.css (Lines 3-4)" in prompt
    assert "USER REQUEST: make it red" in prompt
    assert '"REPLACE a.css (Lines 1-2):"' in prompt


def test_chunk_invocation_parameters():
    chunks = ChunkSet()
    chunks.capture("a.css", "/p/a.css", 1, 1, ".a {}")
    inv = build_chunk_invocation("make it red", chunks, "codellama:7b", make_config())
    assert inv.system
    assert inv.options.max_tokens == 4096
    assert inv.options.context_tokens >= 8192
    assert inv.stop == []


if __name__ == '__main__':
    test_family_detection()
    test_codegemma_uses_fill_in_middle()
    test_starcoder_parameters()
    test_diagnostic_hint_in_prompt()
    test_comment_prefix()
    test_chunk_prompt_lists_chunks()
    test_chunk_invocation_parameters()
    print("All prompt tests passed.")
