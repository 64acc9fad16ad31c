"""Per-user session state: retrieval indices, chat memory and history."""

from __future__ import annotations

import asyncio
import base64
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, get_buffer_string

from lecture_qa.services.retrieval import (
    Passage,
    RetrievalIndex,
    Retriever,
    RetrievalStrategy,
    make_retriever,
    passages_from_pages,
)
from lecture_qa.services.retrieval.index import Embedder

SlidePageExtractor = Callable[[bytes], Awaitable[list[str]]]

EMPTY_MEMORY_PLACEHOLDER = "None"


# -------------------------------------------------------------- #
# History Entry
# -------------------------------------------------------------- #


@dataclass(frozen=True)
class HistoryEntry:
    """One answered question.

    Attributes:
        timestamp: Playback position in milliseconds when the question was asked
        question: The sanitized question text
        answer: The model answer, verbatim
        image_blob: Raw image bytes sent with the question, if any
    """

    timestamp: int
    question: str
    answer: str
    image_blob: bytes | None = None

    def to_json(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "question": self.question,
            "answer": self.answer,
            "image": base64.b64encode(self.image_blob).decode("ascii") if self.image_blob else None,
        }


# -------------------------------------------------------------- #
# Chat Memory
# -------------------------------------------------------------- #


class ChatMemory:
    """Bounded buffer of question/answer turns.

    Oldest turns are dropped first once `max_messages` is exceeded.
    """

    def __init__(self, max_messages: int = 50):
        self.max_messages = max_messages
        self._messages: list[BaseMessage] = []

    def load(self) -> list[tuple[str, str]]:
        """Return the stored (question, answer) pairs, oldest first."""
        pairs = []
        for human, ai in zip(self._messages[0::2], self._messages[1::2]):
            pairs.append((str(human.content), str(ai.content)))
        return pairs

    def save(self, question: str, answer: str) -> None:
        self._messages.extend([HumanMessage(content=question), AIMessage(content=answer)])
        if self.max_messages and len(self._messages) > self.max_messages:
            # drop whole turns so human/ai stay paired
            excess = len(self._messages) - self.max_messages
            excess += excess % 2
            self._messages = self._messages[excess:]

    def clear(self) -> None:
        self._messages = []

    def render(self) -> str:
        """Alternating `Human:` / `Assistant:` lines, or the placeholder when empty."""
        if not self._messages:
            return EMPTY_MEMORY_PLACEHOLDER
        return get_buffer_string(self._messages, human_prefix="Human", ai_prefix="Assistant")

    def __len__(self) -> int:
        return len(self._messages) // 2


# -------------------------------------------------------------- #
# Session Object
# -------------------------------------------------------------- #


@dataclass
class SessionOptions:
    retrieval_strategy: RetrievalStrategy = RetrievalStrategy.SELF_QUERY
    top_k: int = 4
    slide_chunk_size: int = 1000
    slide_chunk_overlap: int = 200
    max_memory_messages: int = 50


@dataclass
class Session:
    """Conversational and retrieval state for one user.

    `transcript_index` is set once `initialize` succeeds. `slide_index` is set
    only when slide bytes were supplied and indexing them succeeded.
    """

    user_id: str
    options: SessionOptions = field(default_factory=SessionOptions)
    transcript_index: RetrievalIndex | None = None
    slide_index: RetrievalIndex | None = None
    transcript_retriever: Retriever | None = None
    slide_retriever: Retriever | None = None
    chat_memory: ChatMemory = field(init=False)
    history: list[HistoryEntry] = field(default_factory=list)
    source_url: str = ""
    created_at: datetime = field(default_factory=datetime.now)
    last_active_at: float = field(default_factory=time.monotonic)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def __post_init__(self):
        self.chat_memory = ChatMemory(self.options.max_memory_messages)

    @property
    def is_initialized(self) -> bool:
        return self.transcript_index is not None

    def touch(self) -> None:
        self.last_active_at = time.monotonic()

    def idle_seconds(self) -> float:
        return time.monotonic() - self.last_active_at

    async def initialize(
        self,
        slide_bytes: bytes | None,
        transcript_passages: Sequence[Passage],
        source_url: str,
        embedder: Embedder,
        slide_extractor: SlidePageExtractor | None = None,
    ) -> list[str]:
        """
        (Re)build the session's indices; chat memory is reset, history is kept.

        Never raises. Returns a list of human-readable problems (empty when
        everything was indexed) so the caller can log them.
        """
        problems: list[str] = []

        self.chat_memory.clear()
        self.source_url = source_url
        self.touch()

        try:
            self.transcript_index = await RetrievalIndex.build(transcript_passages, embedder)
            self.transcript_retriever = make_retriever(
                self.options.retrieval_strategy, self.transcript_index, self.options.top_k
            )
        except Exception as e:
            self.transcript_index = None
            self.transcript_retriever = None
            problems.append(f"transcript index unavailable: {e}")

        self.slide_index = None
        self.slide_retriever = None
        if slide_bytes is not None:
            if slide_extractor is None:
                problems.append("slide bytes supplied but no slide extractor is configured")
            else:
                try:
                    pages = await slide_extractor(slide_bytes)
                    self.slide_index = await RetrievalIndex.build(
                        self._slide_passages(pages), embedder
                    )
                    # slides are not time-indexed
                    self.slide_retriever = make_retriever(
                        RetrievalStrategy.SIMILARITY, self.slide_index, self.options.top_k
                    )
                except Exception as e:
                    self.slide_index = None
                    problems.append(f"slide index unavailable: {e}")

        return problems

    def _slide_passages(self, pages: Iterable[str]) -> list[Passage]:
        return passages_from_pages(
            pages, self.options.slide_chunk_size, self.options.slide_chunk_overlap
        )

    def record(
        self, question: str, answer: str, timestamp: int, image_blob: bytes | None
    ) -> HistoryEntry:
        """Store a finished turn in chat memory and history."""
        self.chat_memory.save(question, answer)
        entry = HistoryEntry(
            timestamp=timestamp, question=question, answer=answer, image_blob=image_blob
        )
        self.history.append(entry)
        self.touch()
        return entry
