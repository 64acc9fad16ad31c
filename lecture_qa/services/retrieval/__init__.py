"""
Retrieval over transcript and slide passages.

Example usage:
    from lecture_qa.services.retrieval import (
        RetrievalIndex,
        RetrievalStrategy,
        build_windowed_query,
        make_retriever,
        passages_from_segments,
    )

    passages = passages_from_segments(segments)
    index = await RetrievalIndex.build(passages, gateway.embed)
    retriever = make_retriever(RetrievalStrategy.SELF_QUERY, index, k=4)
    hits = await retriever.query(build_windowed_query("What is a heap?", 10000))
"""

from lecture_qa.services.retrieval.documents import (
    DocumentStore,
    Passage,
    SourceKind,
    passages_from_pages,
    passages_from_segments,
    split_text,
)
from lecture_qa.services.retrieval.index import RetrievalError, RetrievalIndex, cosine_similarity
from lecture_qa.services.retrieval.retrievers import (
    Retriever,
    RetrievalStrategy,
    SelfQueryRetriever,
    SimilarityRetriever,
    build_windowed_query,
    make_retriever,
    parse_offset_window,
    time_window,
)

__all__ = [
    "DocumentStore",
    "Passage",
    "SourceKind",
    "passages_from_pages",
    "passages_from_segments",
    "split_text",
    "RetrievalError",
    "RetrievalIndex",
    "cosine_similarity",
    "Retriever",
    "RetrievalStrategy",
    "SelfQueryRetriever",
    "SimilarityRetriever",
    "build_windowed_query",
    "make_retriever",
    "parse_offset_window",
    "time_window",
]
