"""
Retrievers: the query interface the answer engine depends on.

Two strategies sit behind the same `Retriever.query(text)` call:

- SIMILARITY: plain nearest-neighbor ranking over every passage.
- SELF_QUERY: reads a playback window out of the query text
  ("... between offsets <lo> and <hi> ..."), restricts ranking to passages
  whose offset falls inside it, and falls back to plain ranking when the
  window matches nothing.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Protocol

from lecture_qa.services.retrieval.documents import Passage
from lecture_qa.services.retrieval.index import RetrievalIndex

WINDOW_BEFORE_MS = 3000
WINDOW_AFTER_MS = 30000

_OFFSET_WINDOW_PATTERN = re.compile(r"between offsets (\d+) and (\d+)", re.IGNORECASE)


class RetrievalStrategy(str, Enum):
    SELF_QUERY = "self_query"
    SIMILARITY = "similarity"

    @classmethod
    def parse(cls, value: str | RetrievalStrategy) -> RetrievalStrategy:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as e:
            options = ", ".join(s.value for s in cls)
            raise ValueError(
                f"Unknown retrieval strategy {value!r} (expected one of {options})"
            ) from e


class Retriever(Protocol):
    async def query(self, text: str) -> list[Passage]: ...


# -------------------------------------------------------------- #
# Time Window
# -------------------------------------------------------------- #


def time_window(timestamp_ms: int) -> tuple[int, int]:
    """Playback window around `timestamp_ms`, lower bound clamped at 0."""
    lower = timestamp_ms - WINDOW_BEFORE_MS if timestamp_ms > WINDOW_BEFORE_MS else 0
    return lower, timestamp_ms + WINDOW_AFTER_MS


def build_windowed_query(question: str, timestamp_ms: int) -> str:
    lower, upper = time_window(timestamp_ms)
    return (
        f"Before starting my question: Find between offsets {lower} and {upper}, "
        f"and my question is: {question}"
    )


def parse_offset_window(text: str) -> tuple[int, int] | None:
    match = _OFFSET_WINDOW_PATTERN.search(text)
    if not match:
        return None
    lower, upper = int(match.group(1)), int(match.group(2))
    if lower > upper:
        lower, upper = upper, lower
    return lower, upper


# -------------------------------------------------------------- #
# Retrievers
# -------------------------------------------------------------- #


class SimilarityRetriever:
    def __init__(self, index: RetrievalIndex, k: int = 4):
        self.index = index
        self.k = k

    async def query(self, text: str) -> list[Passage]:
        return await self.index.nearest_neighbors(text, self.k)


class SelfQueryRetriever:
    def __init__(self, index: RetrievalIndex, k: int = 4):
        self.index = index
        self.k = k

    async def query(self, text: str) -> list[Passage]:
        window = parse_offset_window(text)
        if window is not None:
            passages = await self.index.nearest_neighbors_in_window(text, *window, k=self.k)
            if passages:
                return passages
        return await self.index.nearest_neighbors(text, self.k)


def make_retriever(
    strategy: RetrievalStrategy | str, index: RetrievalIndex, k: int = 4
) -> Retriever:
    if RetrievalStrategy.parse(strategy) is RetrievalStrategy.SELF_QUERY:
        return SelfQueryRetriever(index, k)
    return SimilarityRetriever(index, k)
