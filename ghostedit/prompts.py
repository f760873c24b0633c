"""Model-family specific prompt formatting and generation parameters."""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Sequence

from ghostedit.context import Context


_HASH_COMMENT = {"python", "ruby", "bash", "yaml", "perl", "r", "toml"}
_SQL_COMMENT = {"sql", "lua", "haskell"}


class ModelFamily(Enum):
    STARCODER = "starcoder"
    CODEGEMMA = "codegemma"
    GENERIC = "generic"

    @classmethod
    def detect(cls, model: str) -> "ModelFamily":
        name = (model or "").lower()
        if "starcoder" in name:
            return cls.STARCODER
        if "codegemma" in name:
            return cls.CODEGEMMA
        return cls.GENERIC


# Fill-in-middle markers differ from plain continuation stops
STOP_SEQUENCES = {
    ModelFamily.STARCODER: ["<fim_suffix>", "<file_sep>", "<|endoftext|>", "\n\n\n", "</script>", "</style>"],
    ModelFamily.CODEGEMMA: ["<fim_suffix>", "<file_separator>", "\n\n", "</script>", "</style>"],
    ModelFamily.GENERIC: ["\n\n\n", "```", "</script>", "</style>", "<!--"],
}


@dataclass
class GenerationOptions:
    max_tokens: int = 30
    temperature: float = 0.02
    top_p: float = 0.95
    top_k: int = 20
    repeat_penalty: float = 1.0
    context_tokens: int = 2048

    def to_ollama(self, stop: Sequence[str]) -> dict:
        return {
            "num_predict": self.max_tokens,
            "temperature": self.temperature,
            "top_p": self.top_p,
            "top_k": self.top_k,
            "repeat_penalty": self.repeat_penalty,
            "num_ctx": self.context_tokens,
            "stop": list(stop),
        }


@dataclass
class Invocation:
    model: str
    prompt: str
    options: GenerationOptions = field(default_factory=GenerationOptions)
    stop: List[str] = field(default_factory=list)
    system: str = ""


def comment_prefix(language: str) -> str:
    if language in _HASH_COMMENT:
        return "#"
    if language in _SQL_COMMENT:
        return "--"
    return "//"


def fix_hint(context: Context) -> str:
    """Comment line carrying the diagnostic message as a hint."""
    if context.diagnostic is None:
        return ""
    return f"\n{comment_prefix(context.language)} Fix: {context.diagnostic.message}\n"


def generation_options(family: ModelFamily, context_tokens: int = 2048) -> GenerationOptions:
    if family is ModelFamily.STARCODER:
        return GenerationOptions(max_tokens=50, temperature=0.1, top_k=40,
                                 context_tokens=context_tokens)
    return GenerationOptions(max_tokens=30, temperature=0.02, top_k=20,
                             context_tokens=context_tokens)


def build_invocation(context: Context, model: str, config=None) -> Invocation:
    """Build the inference call for an autocomplete request."""
    family = ModelFamily.detect(model)
    if family is ModelFamily.CODEGEMMA:
        prompt = f"<fim_prefix>{context.prefix}<fim_suffix>{context.suffix}<fim_middle>"
    else:
        prompt = context.prefix + fix_hint(context)

    context_tokens = config.context_tokens if config is not None else 2048
    return Invocation(
        model=model,
        prompt=prompt,
        options=generation_options(family, context_tokens),
        stop=list(STOP_SEQUENCES[family]),
    )


CHUNK_SYSTEM_PROMPT = (
    "You are a code editing assistant. The user has selected code chunks and asks "
    "for a modification. You MUST actually change the code, not return the same code."
)


def build_chunk_prompt(instruction: str, chunks: Sequence) -> str:
    """Prompt for the chat/action path, listing the captured chunks."""
    chunks = list(chunks)
    parts = ["CONTEXT - You have access to these code chunks that the user has selected:", ""]
    for i, chunk in enumerate(chunks, 1):
        parts.append(f"CHUNK {i}: {chunk.file_name} (Lines {chunk.start_line}-{chunk.end_line})")
        parts.append("```")
        parts.append(chunk.text)
        parts.append("```")
        parts.append("")
    parts.append(f"USER REQUEST: {instruction}")
    parts.append("")
    parts.append("When you provide replacement code:")
    if chunks:
        first = chunks[0]
        parts.append(
            f'1. Clearly indicate which chunk you\'re replacing (e.g., "REPLACE CHUNK 1:" or '
            f'"REPLACE {first.file_name} (Lines {first.start_line}-{first.end_line}):")'
        )
    else:
        parts.append('1. Clearly indicate which chunk you\'re replacing (e.g., "REPLACE CHUNK 1:")')
    parts.append("2. Provide ONLY the replacement code after the indicator")
    parts.append("3. Do NOT include markdown formatting or explanations mixed with the code")
    return "\n".join(parts)


def build_chunk_invocation(instruction: str, chunks: Sequence, model: str, config=None) -> Invocation:
    context_tokens = config.context_tokens if config is not None else 2048
    return Invocation(
        model=model,
        prompt=build_chunk_prompt(instruction, chunks),
        options=GenerationOptions(max_tokens=4096, temperature=0.7, top_p=0.9, top_k=40,
                                  context_tokens=max(context_tokens, 8192)),
        stop=[],
        system=CHUNK_SYSTEM_PROMPT,
    )
