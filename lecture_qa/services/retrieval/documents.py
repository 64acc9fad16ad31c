"""
Passages and the document store that holds them.

Transcript passages carry their playback offset/duration in milliseconds.
Slide passages are not time-indexed; their `offset` is the zero-based page
number and their `duration` is 0.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Iterator


class SourceKind(str, Enum):
    TRANSCRIPT = "transcript"
    SLIDE = "slide"


@dataclass(frozen=True)
class Passage:
    """Immutable unit of retrievable text."""

    text: str
    offset: int
    duration: int
    source_kind: SourceKind
    sequence_id: int

    @property
    def end(self) -> int:
        return self.offset + self.duration


# -------------------------------------------------------------- #
# Document Store
# -------------------------------------------------------------- #


class DocumentStore:
    """Ordered, append-only collection of passages."""

    def __init__(self, passages: Iterable[Passage] | None = None):
        self._passages: list[Passage] = list(passages or [])

    def in_window(self, lower_ms: int, upper_ms: int) -> list[int]:
        """Positions of passages whose offset lies in [lower_ms, upper_ms]."""
        return [
            position
            for position, passage in enumerate(self._passages)
            if lower_ms <= passage.offset <= upper_ms
        ]

    def __getitem__(self, position: int) -> Passage:
        return self._passages[position]

    def __len__(self) -> int:
        return len(self._passages)

    def __iter__(self) -> Iterator[Passage]:
        return iter(self._passages)


# -------------------------------------------------------------- #
# Ingestion Helpers
# -------------------------------------------------------------- #


def passages_from_segments(segments: Iterable[dict[str, Any]]) -> list[Passage]:
    """
    Convert transcript segments into transcript passages.

    Each segment is a dict with `text`, `offset` and `duration` (ms), the
    shape produced by common transcript fetchers. Blank segments are dropped;
    sequence ids follow the order of the remaining segments.

    Raises:
        ValueError: If a segment is missing `text` or `offset`.
    """
    passages: list[Passage] = []
    for segment in segments:
        if "text" not in segment or "offset" not in segment:
            raise ValueError("transcript segments need 'text' and 'offset' keys")

        text = str(segment["text"]).strip()
        if not text:
            continue

        passages.append(
            Passage(
                text=text,
                offset=int(segment["offset"]),
                duration=int(segment.get("duration", 0)),
                source_kind=SourceKind.TRANSCRIPT,
                sequence_id=len(passages),
            )
        )
    return passages


def split_text(text: str, chunk_size: int = 1000, chunk_overlap: int = 200) -> list[str]:
    """
    Split `text` into chunks of at most `chunk_size` characters.

    Consecutive chunks share up to `chunk_overlap` characters. Cuts prefer a
    paragraph break, then a line break, then a space, inside the second half
    of the window.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if not 0 <= chunk_overlap < chunk_size:
        raise ValueError("chunk_overlap must be in [0, chunk_size)")

    text = text.strip()
    if not text:
        return []

    chunks: list[str] = []
    start = 0
    while start < len(text):
        end = min(start + chunk_size, len(text))
        if end < len(text):
            window = text[start:end]
            for separator in ("\n\n", "\n", " "):
                cut = window.rfind(separator)
                if cut > chunk_size // 2:
                    end = start + cut
                    break

        chunk = text[start:end].strip()
        if chunk:
            chunks.append(chunk)
        if end >= len(text):
            break

        start = max(end - chunk_overlap, start + 1)

    return chunks


def passages_from_pages(
    pages: Iterable[str], chunk_size: int = 1000, chunk_overlap: int = 200
) -> list[Passage]:
    """Chunk page texts into slide passages, keeping the page number as offset."""
    passages: list[Passage] = []
    for page_number, page_text in enumerate(pages):
        for chunk in split_text(page_text, chunk_size, chunk_overlap):
            passages.append(
                Passage(
                    text=chunk,
                    offset=page_number,
                    duration=0,
                    source_kind=SourceKind.SLIDE,
                    sequence_id=len(passages),
                )
            )
    return passages
