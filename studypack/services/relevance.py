"""Focus-phrase relevance scoring over a pack's chunks."""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass

DEFAULT_MAX_RELEVANT = 60
MIN_TOKEN_LENGTH = 3

# Runs of Unicode letters or digits (``\w`` minus underscore)
_TOKEN = re.compile(r"[^\W_]+")


@dataclass(frozen=True)
class ChunkRef:
    """A persisted chunk as used for grounding: its id and text."""
    id: str
    content: str


def tokenize(text: str) -> list[str]:
    """Lowercase alphanumeric tokens of at least three characters."""
    return [t for t in _TOKEN.findall(text.lower()) if len(t) >= MIN_TOKEN_LENGTH]


def score_chunk(content: str, focus_tokens: set[str]) -> int:
    """Count chunk tokens (with repetition) that appear in the focus set."""
    if not focus_tokens:
        return 0
    return sum(1 for token in tokenize(content) if token in focus_tokens)


def select_relevant_chunks(
    chunks: Sequence[ChunkRef],
    focus: str | None,
    limit: int = DEFAULT_MAX_RELEVANT,
) -> list[ChunkRef]:
    """Narrow ``chunks`` to those matching ``focus``, best first.

    Without a usable focus phrase the full set is returned in document order.
    If nothing matches, the full set is returned as well, so generation always
    has grounding material.
    """
    focus_tokens = set(tokenize(focus or ""))
    if not focus_tokens:
        return list(chunks)

    scored = [(score_chunk(c.content, focus_tokens), c) for c in chunks]
    matching = [(s, c) for s, c in scored if s > 0]
    # sorted() is stable, so ties keep document order
    matching.sort(key=lambda pair: pair[0], reverse=True)
    top = [c for _, c in matching[:limit]]
    return top if top else list(chunks)
