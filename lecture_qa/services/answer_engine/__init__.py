"""
Answer Engine Service.

Example usage:
    from lecture_qa.services.answer_engine import AnswerEngineManager
    from lecture_qa.services.retrieval import passages_from_segments

    engine = services.answer_engine
    await engine.initialize_context(
        slide_bytes=None,
        transcript_passages=passages_from_segments(segments),
        source_url="https://example.com/lecture.mp4",
        user_id="user-1",
    )
    answer = await engine.ask("What is the main topic?", 10000, "user-1")
    history = engine.get_history("user-1")
"""

from lecture_qa.services.answer_engine.manager import AnswerEngineManager

__all__ = ["AnswerEngineManager"]
