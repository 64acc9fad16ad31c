"""
Unit tests for the Answer Engine.

Tests cover:
- The never-raise contract and fixed replies
- Liveness short-circuit
- Windowed transcript retrieval and slide retrieval
- Prompt assembly (slides block, history, image and screenshot notes)
- Primary/backup model fallback
- History and memory bookkeeping
- Per-session serialization
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from lecture_qa.services.answer_engine import AnswerEngineManager, prompts
from lecture_qa.services.collaborators import NO_TEXT_DETECTED, OCR_UNAVAILABLE
from lecture_qa.services.retrieval import parse_offset_window
from lecture_qa.services.session_manager import SessionRegistryManager

# -------------------------------------------------------------- #
# Fixtures
# -------------------------------------------------------------- #


@pytest.fixture
def gateway(keyword_embedder):
    gateway = MagicMock()
    gateway.is_available = AsyncMock(return_value=True)
    gateway.chat = AsyncMock(return_value="model answer")
    gateway.generate = AsyncMock(return_value="backup answer")
    gateway.generate_with_retry = AsyncMock(return_value="completed")
    gateway.embed = keyword_embedder
    return gateway


@pytest.fixture
def temp_files():
    temp = MagicMock()
    temp.new_path = MagicMock(side_effect=lambda kind, name: f"/tmp/lecture-qa/{kind}/{name}")
    temp.save_image = AsyncMock(return_value="/tmp/lecture-qa/images/saved.png")
    temp.delete = AsyncMock(return_value=True)
    temp.sweep_stale = AsyncMock(return_value=0)
    return temp


@pytest.fixture
async def engine(mock_context, mock_services, gateway, temp_files):
    registry = SessionRegistryManager(context=mock_context, sweep_interval_s=0)
    await registry.on_start(mock_services)

    mock_services.session_registry = registry
    mock_services.model_gateway = gateway
    mock_services.temp_file_manager = temp_files
    mock_services.ocr_service = MagicMock(extract_text=AsyncMock(return_value="x^2 + y^2"))
    mock_services.screenshot_service = MagicMock(capture=AsyncMock(return_value="shot.png"))
    mock_services.slide_text_extractor = MagicMock(
        extract_pages=AsyncMock(return_value=["Heaps are complete binary trees."])
    )
    mock_services.lecture_schedule_manager = None

    manager = AnswerEngineManager(context=mock_context)
    await manager.on_start(mock_services)
    yield manager
    await manager.on_close()
    await registry.on_close()


@pytest.fixture
async def initialized_engine(engine, sample_passages):
    await engine.initialize_context(None, sample_passages, "https://v/lecture1.mp4", "user-1")
    return engine


def sent_prompt(gateway) -> str:
    return gateway.chat.call_args.args[0]


def spy_on_transcript_retriever(engine, user_id: str) -> AsyncMock:
    session = engine.services.session_registry.peek(user_id)
    real = session.transcript_retriever
    spy = AsyncMock(side_effect=real.query)
    session.transcript_retriever = MagicMock(query=spy)
    return spy


# -------------------------------------------------------------- #
# Contract Tests
# -------------------------------------------------------------- #


@pytest.mark.unit
class TestNeverRaises:
    async def test_empty_question_still_answers(self, initialized_engine):
        assert await initialized_engine.ask("", 0, "user-1") == "model answer"

    async def test_none_question_still_answers(self, initialized_engine):
        assert isinstance(await initialized_engine.ask(None, 0, "user-1"), str)

    async def test_registry_failure_becomes_technical_issue(self, engine):
        engine.services.session_registry = MagicMock(
            get=AsyncMock(side_effect=RuntimeError("boom"))
        )

        assert await engine.ask("q", 0, "user-1") == prompts.TECHNICAL_ISSUE

    async def test_liveness_failure_raising_becomes_technical_issue(
        self, initialized_engine, gateway
    ):
        gateway.is_available.side_effect = RuntimeError("probe crashed")

        assert await initialized_engine.ask("q", 0, "user-1") == prompts.TECHNICAL_ISSUE

    async def test_malformed_image_is_not_fatal(self, initialized_engine):
        initialized_engine.services.ocr_service.extract_text.side_effect = OSError("bad image")

        assert await initialized_engine.ask("q", 0, "user-1", b"\x00garbage") == "model answer"

    async def test_initialize_context_never_raises(self, engine, sample_passages):
        engine.services.session_registry = MagicMock(
            get=AsyncMock(side_effect=RuntimeError("boom"))
        )

        await engine.initialize_context(None, sample_passages, "u", "user-1")
        engine.services.logging_service.error.assert_called()


@pytest.mark.unit
class TestLiveness:
    async def test_unreachable_model_short_circuits(self, initialized_engine, gateway):
        gateway.is_available.return_value = False
        spy = spy_on_transcript_retriever(initialized_engine, "user-1")
        gateway.embed.reset_mock()

        answer = await initialized_engine.ask("What is a heap?", 10000, "user-1")

        assert answer == prompts.MODEL_UNREACHABLE
        spy.assert_not_awaited()
        gateway.embed.assert_not_awaited()
        gateway.chat.assert_not_awaited()
        assert initialized_engine.get_history("user-1") == []

    async def test_unreachable_model_skips_placeholder_indexing(self, engine, gateway):
        gateway.is_available.return_value = False

        assert await engine.ask("q", 0, "new-user") == prompts.MODEL_UNREACHABLE
        gateway.embed.assert_not_awaited()


# -------------------------------------------------------------- #
# Placeholder Context Tests
# -------------------------------------------------------------- #


@pytest.mark.unit
class TestPlaceholderContext:
    async def test_unknown_user_gets_placeholder_context(self, engine, gateway):
        answer = await engine.ask("What is this lecture about?", 0, "new-user")

        assert answer == "model answer"
        assert engine.get_source_url("new-user") == prompts.PLACEHOLDER_SOURCE_URL
        assert "This is a sample lecture content." in sent_prompt(gateway)

    async def test_placeholder_failure_returns_not_ready(self, engine, gateway):
        gateway.embed = AsyncMock(side_effect=ConnectionError("embeddings down"))

        assert await engine.ask("q", 0, "new-user") == prompts.CONTEXT_NOT_READY
        gateway.chat.assert_not_awaited()


# -------------------------------------------------------------- #
# Retrieval Tests
# -------------------------------------------------------------- #


@pytest.mark.unit
class TestRetrieval:
    async def test_windowed_query_bounds(self, initialized_engine, gateway):
        spy = spy_on_transcript_retriever(initialized_engine, "user-1")

        await initialized_engine.ask("What is the main topic?", 10000, "user-1")

        query = spy.call_args.args[0]
        assert parse_offset_window(query) == (7000, 40000)
        assert query.endswith("and my question is: What is the main topic?")
        assert "The main topic is heap sort" in sent_prompt(gateway)

    async def test_window_lower_bound_clamped(self, initialized_engine):
        spy = spy_on_transcript_retriever(initialized_engine, "user-1")

        await initialized_engine.ask("q", 1000, "user-1")

        assert parse_offset_window(spy.call_args.args[0]) == (0, 31000)

    async def test_transcript_failure_degrades_context(self, initialized_engine, gateway):
        session = initialized_engine.services.session_registry.peek("user-1")
        session.transcript_retriever = MagicMock(query=AsyncMock(side_effect=RuntimeError("x")))

        answer = await initialized_engine.ask("q", 0, "user-1")

        assert answer == "model answer"
        assert prompts.TRANSCRIPT_UNAVAILABLE in sent_prompt(gateway)

    async def test_empty_transcript_result(self, initialized_engine, gateway):
        session = initialized_engine.services.session_registry.peek("user-1")
        session.transcript_retriever = MagicMock(query=AsyncMock(return_value=[]))

        await initialized_engine.ask("q", 0, "user-1")

        assert f"{prompts.TRANSCRIPT_HEADER} {prompts.NO_TRANSCRIPT_FOUND}" in sent_prompt(gateway)


# -------------------------------------------------------------- #
# Prompt Assembly Tests
# -------------------------------------------------------------- #


@pytest.mark.unit
class TestPromptAssembly:
    async def test_no_slides_omits_slide_section(self, initialized_engine, gateway):
        await initialized_engine.ask("What is a heap?", 5000, "user-1")

        prompt = sent_prompt(gateway)
        assert prompts.SLIDES_HEADER not in prompt
        assert prompt.index(prompts.TRANSCRIPT_HEADER) < prompt.index(prompts.HISTORY_HEADER)
        assert f"{prompts.QUESTION_HEADER} What is a heap?" in prompt
        assert f"{prompts.HISTORY_HEADER} None" in prompt
        assert prompts.ANSWER_CUE in prompt
        assert prompt.endswith(prompts.NO_IMAGE)

    async def test_slides_section_present_when_slides_indexed(
        self, engine, gateway, sample_passages
    ):
        await engine.initialize_context(b"%PDF", sample_passages, "https://v", "user-1")

        await engine.ask("What is a heap?", 5000, "user-1")

        prompt = sent_prompt(gateway)
        assert prompts.SLIDES_HEADER in prompt
        assert "Heaps are complete binary trees." in prompt
        assert engine.has_slides("user-1") is True

    async def test_slide_retrieval_failure_keeps_section(self, engine, gateway, sample_passages):
        await engine.initialize_context(b"%PDF", sample_passages, "https://v", "user-1")
        session = engine.services.session_registry.peek("user-1")
        session.slide_retriever = MagicMock(query=AsyncMock(side_effect=RuntimeError("x")))

        await engine.ask("What is a heap?", 5000, "user-1")

        assert f"{prompts.SLIDES_HEADER} {prompts.SLIDES_UNAVAILABLE}" in sent_prompt(gateway)

    async def test_history_in_second_prompt(self, initialized_engine, gateway):
        gateway.chat.side_effect = ["first answer", "second answer"]

        await initialized_engine.ask("first question", 0, "user-1")
        await initialized_engine.ask("second question", 0, "user-1")

        assert "Human: first question\nAssistant: first answer" in sent_prompt(gateway)

    async def test_question_is_sanitized(self, initialized_engine):
        await initialized_engine.ask("  what\nis\nthis  ", 0, "user-1")

        assert initialized_engine.get_history("user-1")[0].question == "what is\nthis"


@pytest.mark.unit
class TestImages:
    async def test_ocr_text_added_and_image_saved(self, initialized_engine, gateway, temp_files):
        answer = await initialized_engine.ask("Explain this", 0, "user-1", b"png-bytes")

        assert answer == "model answer"
        assert "\nIMAGE TEXT CONTENT: x^2 + y^2\n" in sent_prompt(gateway)
        temp_files.save_image.assert_awaited_once_with("user-1", b"png-bytes")
        assert initialized_engine.get_history("user-1")[0].image_blob == b"png-bytes"

    @pytest.mark.parametrize(
        "ocr_result", ["", "   ", NO_TEXT_DETECTED, OCR_UNAVAILABLE, "Error extracting text: x"]
    )
    async def test_ocr_failures_get_neutral_note(self, initialized_engine, gateway, ocr_result):
        initialized_engine.services.ocr_service.extract_text.return_value = ocr_result

        await initialized_engine.ask("Explain this", 0, "user-1", b"png-bytes")

        assert prompts.IMAGE_NO_TEXT in sent_prompt(gateway)

    async def test_ocr_exception_gets_error_note(self, initialized_engine, gateway):
        initialized_engine.services.ocr_service.extract_text.side_effect = RuntimeError("crash")

        await initialized_engine.ask("Explain this", 0, "user-1", b"png-bytes")

        assert prompts.IMAGE_ERROR in sent_prompt(gateway)

    async def test_image_save_failure_is_not_fatal(self, initialized_engine, temp_files):
        temp_files.save_image.side_effect = OSError("disk full")

        assert await initialized_engine.ask("q", 0, "user-1", b"png") == "model answer"


@pytest.mark.unit
class TestScreenshots:
    async def test_slide_question_captures_and_deletes_screenshot(
        self, initialized_engine, gateway, temp_files
    ):
        capture = initialized_engine.services.screenshot_service.capture

        await initialized_engine.ask("What is on this slide?", 12000, "user-1")

        path = "/tmp/lecture-qa/screenshots/slide-user-1-12000.png"
        capture.assert_awaited_once_with("https://v/lecture1.mp4", 12000, path)
        temp_files.delete.assert_any_await(path)
        assert prompts.SCREENSHOT_NOTE in sent_prompt(gateway)

    async def test_screenshot_only_for_lowercase_slide(self, initialized_engine):
        await initialized_engine.ask("What is on this Slide?", 12000, "user-1")

        initialized_engine.services.screenshot_service.capture.assert_not_awaited()

    async def test_screenshot_failure_is_swallowed(self, initialized_engine, gateway, temp_files):
        initialized_engine.services.screenshot_service.capture.side_effect = RuntimeError("ffmpeg")

        answer = await initialized_engine.ask("explain the slide", 0, "user-1")

        assert answer == "model answer"
        assert prompts.SCREENSHOT_NOTE not in sent_prompt(gateway)
        temp_files.delete.assert_awaited()

    async def test_stale_temp_files_swept(self, initialized_engine, temp_files):
        await initialized_engine.ask("q", 0, "user-1")

        temp_files.sweep_stale.assert_awaited()


# -------------------------------------------------------------- #
# Model Fallback Tests
# -------------------------------------------------------------- #


@pytest.mark.unit
class TestModelFallback:
    async def test_backup_used_when_primary_fails(self, initialized_engine, gateway):
        gateway.chat.side_effect = RuntimeError("chat down")

        answer = await initialized_engine.ask("q", 0, "user-1")

        assert answer == "backup answer"
        gateway.generate.assert_awaited_once()
        assert initialized_engine.get_history("user-1")[0].answer == "backup answer"

    async def test_backup_not_used_when_primary_succeeds(self, initialized_engine, gateway):
        await initialized_engine.ask("q", 0, "user-1")

        gateway.generate.assert_not_awaited()

    async def test_both_fail_returns_apology_without_history(self, initialized_engine, gateway):
        gateway.chat.side_effect = RuntimeError("chat down")
        gateway.generate.side_effect = RuntimeError("generate down")

        answer = await initialized_engine.ask("q", 0, "user-1")

        assert answer == prompts.GENERATION_FAILED
        assert initialized_engine.get_history("user-1") == []


# -------------------------------------------------------------- #
# History Tests
# -------------------------------------------------------------- #


@pytest.mark.unit
class TestHistory:
    async def test_history_has_one_entry_per_answer(self, initialized_engine):
        for i in range(3):
            await initialized_engine.ask(f"question {i}", i * 1000, "user-1")

        history = initialized_engine.get_history("user-1")
        assert [entry.question for entry in history] == ["question 0", "question 1", "question 2"]
        assert [entry.timestamp for entry in history] == [0, 1000, 2000]

    async def test_reinitialize_preserves_history(self, initialized_engine, sample_passages):
        await initialized_engine.ask("q1", 0, "user-1")
        await initialized_engine.ask("q2", 0, "user-1")

        await initialized_engine.initialize_context(None, sample_passages, "https://v2", "user-1")

        assert len(initialized_engine.get_history("user-1")) == 2
        assert initialized_engine.get_source_url("user-1") == "https://v2"

    async def test_export_history_is_json_ready(self, initialized_engine):
        await initialized_engine.ask("Explain this", 4000, "user-1", b"\x89PNG")

        records = initialized_engine.export_history("user-1")

        assert records == [
            {
                "timestamp": 4000,
                "question": "Explain this",
                "answer": "model answer",
                "image": "iVBORw==",
            }
        ]
        assert initialized_engine.export_history("ghost") == []

    async def test_unknown_user_history_is_empty_and_not_created(self, engine):
        assert engine.get_history("ghost") == []
        assert engine.services.session_registry.peek("ghost") is None

    async def test_delete_session(self, initialized_engine):
        await initialized_engine.ask("q", 0, "user-1")

        assert await initialized_engine.delete_session("user-1") is True
        assert initialized_engine.get_history("user-1") == []
        assert await initialized_engine.delete_session("user-1") is False


@pytest.mark.unit
class TestShutdown:
    async def test_ask_rejected_while_shutting_down(self, initialized_engine, gateway):
        initialized_engine.context.is_shutting_down.return_value = True

        answer = await initialized_engine.ask("q", 0, "user-1")

        assert answer == prompts.TECHNICAL_ISSUE
        gateway.is_available.assert_not_awaited()
        gateway.chat.assert_not_awaited()
        assert initialized_engine.get_history("user-1") == []

    async def test_initialize_skipped_while_shutting_down(self, engine, sample_passages):
        engine.context.is_shutting_down.return_value = True

        await engine.initialize_context(None, sample_passages, "https://v", "user-1")

        assert engine.services.session_registry.peek("user-1") is None
        engine.services.logging_service.warning.assert_called()


@pytest.mark.unit
class TestSerialization:
    async def test_same_user_requests_do_not_interleave(self, initialized_engine, gateway):
        async def slow_chat(prompt):
            await asyncio.sleep(0.05)
            return f"answer {gateway.chat.await_count}"

        gateway.chat.side_effect = slow_chat

        await asyncio.gather(
            initialized_engine.ask("first", 0, "user-1"),
            initialized_engine.ask("second", 0, "user-1"),
        )

        second_prompt = gateway.chat.await_args_list[1].args[0]
        assert "Human: first" in second_prompt
        history = initialized_engine.get_history("user-1")
        assert [entry.question for entry in history] == ["first", "second"]

    async def test_unserialized_mode_runs_concurrently(self, initialized_engine, gateway):
        initialized_engine.serialize_session_requests = False

        async def slow_chat(prompt):
            await asyncio.sleep(0.05)
            return "answer"

        gateway.chat.side_effect = slow_chat

        await asyncio.gather(
            initialized_engine.ask("first", 0, "user-1"),
            initialized_engine.ask("second", 0, "user-1"),
        )

        second_prompt = gateway.chat.await_args_list[1].args[0]
        assert "Human: first" not in second_prompt
        assert len(initialized_engine.get_history("user-1")) == 2


# -------------------------------------------------------------- #
# Auxiliary Operation Tests
# -------------------------------------------------------------- #


@pytest.mark.unit
class TestAuxiliaryOperations:
    async def test_complete_uses_retry_helper(self, engine, gateway):
        assert await engine.complete("summarize") == "completed"
        gateway.generate_with_retry.assert_awaited_once_with("summarize")

    async def test_lectures_open_without_schedule(self, engine):
        assert await engine.is_lecture_available("3") is True

    async def test_lecture_check_delegates_to_schedule(self, engine):
        engine.services.lecture_schedule_manager = MagicMock(
            is_lecture_available=AsyncMock(return_value=False)
        )

        assert await engine.is_lecture_available("3") is False

    async def test_ask_question_alias(self, initialized_engine):
        assert await initialized_engine.ask_question("q", 0, "user-1") == "model answer"

    async def test_has_slides_false_without_slides(self, initialized_engine):
        assert initialized_engine.has_slides("user-1") is False
        assert initialized_engine.has_slides("ghost") is False
