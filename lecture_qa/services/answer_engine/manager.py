"""
Answer Engine.

Turns a learner's question into an answer grounded in the lecture:

1. resolve (or lazily create) the user's session
2. probe the model server; bail out with a fixed reply when it is down
3. make sure the session has a transcript index, falling back to a small
   placeholder context
4. retrieve transcript passages near the playback position, and slide
   passages when the session has slides
5. assemble the prompt with chat history, OCR text and a screenshot note
6. call the model (chat first, raw generate as backup)
7. record the turn in chat memory and history

`ask` never raises: every failure becomes degraded context or one of the
fixed replies in `prompts`.
"""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING, Any, Sequence

if TYPE_CHECKING:
    from lecture_qa.context import Context
    from lecture_qa.services.manager import ServicesManager

from lecture_qa.services.answer_engine import prompts
from lecture_qa.services.collaborators.ocr import is_ocr_failure
from lecture_qa.services.manager import BaseAnswerEngineService
from lecture_qa.services.retrieval import Passage, build_windowed_query, passages_from_segments
from lecture_qa.services.session_manager.session import HistoryEntry, Session
from lecture_qa.utils import sanitize_filename_part, truncate_for_log

# -------------------------------------------------------------- #
# Answer Engine Manager
# -------------------------------------------------------------- #


class AnswerEngineManager(BaseAnswerEngineService):
    """Session-scoped retrieval-augmented question answering."""

    def __init__(
        self,
        context: Context,
        serialize_session_requests: bool = True,
        sweep_temp_files_on_ask: bool = True,
    ):
        """
        Args:
            context: Application context
            serialize_session_requests: Run `ask`/`initialize_context` for the
                same user one at a time under the session lock
            sweep_temp_files_on_ask: Delete stale temp files at the end of each `ask`
        """
        super().__init__(context)
        self.serialize_session_requests = serialize_session_requests
        self.sweep_temp_files_on_ask = sweep_temp_files_on_ask

        # Statistics
        self._questions_answered = 0
        self._degraded_replies = 0

    # -------------------------------------------------------------- #
    # Manager Lifecycle
    # -------------------------------------------------------------- #

    async def on_start(self, services: ServicesManager) -> None:
        await super().on_start(services)
        if self.services:
            await self.services.logging_service.info(
                f"Answer Engine started (serialized sessions: {self.serialize_session_requests})"
            )

    async def on_close(self) -> None:
        if self.services:
            await self.services.logging_service.info(
                f"Answer Engine stopped. Answered: {self._questions_answered}, "
                f"degraded replies: {self._degraded_replies}"
            )

    # -------------------------------------------------------------- #
    # Public Operations
    # -------------------------------------------------------------- #

    async def initialize_context(
        self,
        slide_bytes: bytes | None,
        transcript_passages: Sequence[Passage],
        source_url: str,
        user_id: str,
    ) -> None:
        """(Re)build the user's retrieval context. Never raises."""
        if self.context.is_shutting_down():
            await self._log(
                "warning", f"Shutting down, not initializing context for user {user_id}"
            )
            return

        try:
            session = await self.services.session_registry.get(user_id)
            async with self._session_guard(session):
                await self._initialize_session(
                    session, slide_bytes, transcript_passages, source_url
                )
        except Exception as e:
            await self._log("error", f"Failed to initialize context for user {user_id}: {e}")

    async def ask(
        self,
        question: str,
        timestamp_ms: int,
        user_id: str,
        image_bytes: bytes | None = None,
    ) -> str:
        """Answer `question` asked at playback position `timestamp_ms`. Never raises."""
        if self.context.is_shutting_down():
            self._degraded_replies += 1
            await self._log("warning", f"Shutting down, rejecting question from user {user_id}")
            return prompts.TECHNICAL_ISSUE

        try:
            question = prompts.sanitize_question(question)
            session = await self.services.session_registry.get(user_id)
            await self._log(
                "info",
                f"Question from {user_id} at {timestamp_ms}ms: {truncate_for_log(question)}",
            )
            async with self._session_guard(session):
                return await self._answer(session, question, int(timestamp_ms), image_bytes)
        except Exception as e:
            self._degraded_replies += 1
            await self._log("error", f"Error processing question for user {user_id}: {e}")
            return prompts.TECHNICAL_ISSUE

    async def ask_question(
        self,
        question: str,
        timestamp_ms: int,
        user_id: str,
        image_bytes: bytes | None = None,
    ) -> str:
        return await self.ask(question, timestamp_ms, user_id, image_bytes)

    def get_history(self, user_id: str) -> list[HistoryEntry]:
        """The user's history in completion order; empty for unknown users."""
        session = self.services.session_registry.peek(user_id)
        return list(session.history) if session else []

    def export_history(self, user_id: str) -> list[dict[str, Any]]:
        """JSON-ready history records (image bytes base64-encoded) for external exporters."""
        return [entry.to_json() for entry in self.get_history(user_id)]

    async def delete_session(self, user_id: str) -> bool:
        return await self.services.session_registry.remove(user_id)

    def get_source_url(self, user_id: str) -> str:
        session = self.services.session_registry.peek(user_id)
        return session.source_url if session else ""

    def has_slides(self, user_id: str) -> bool:
        session = self.services.session_registry.peek(user_id)
        return bool(session and session.slide_index is not None)

    async def complete(self, prompt: str) -> str:
        """Standalone (non-chat) completion through the retry helper."""
        return await self.services.model_gateway.generate_with_retry(prompt)

    async def is_lecture_available(self, lecture_id: str) -> bool:
        """Lectures are open when no schedule is configured."""
        schedule = self.services.lecture_schedule_manager
        if schedule is None:
            return True
        return await schedule.is_lecture_available(lecture_id)

    # -------------------------------------------------------------- #
    # Answer Pipeline
    # -------------------------------------------------------------- #

    async def _answer(
        self, session: Session, question: str, timestamp_ms: int, image_bytes: bytes | None
    ) -> str:
        gateway = self.services.model_gateway

        # probe first so an unreachable server never triggers embedding calls
        if not await gateway.is_available():
            self._degraded_replies += 1
            await self._log("warning", "Model server unavailable, returning fallback reply")
            return prompts.MODEL_UNREACHABLE

        if not session.is_initialized:
            await self._log(
                "warning", f"No context for user {session.user_id}, using placeholder context"
            )
            await self._initialize_session(
                session,
                None,
                passages_from_segments(prompts.PLACEHOLDER_SEGMENTS),
                prompts.PLACEHOLDER_SOURCE_URL,
            )
            if not session.is_initialized:
                self._degraded_replies += 1
                return prompts.CONTEXT_NOT_READY

        transcript_context = await self._transcript_context(session, question, timestamp_ms)
        slides_context = None
        if session.slide_index is not None:
            slides_context = await self._slides_context(session, question)

        prompt = prompts.build_prompt(
            transcript_context=transcript_context,
            chat_history=session.chat_memory.render(),
            question=question,
            slides_context=slides_context,
        )
        prompt += await self._image_note(session.user_id, image_bytes)
        if "slide" in question:
            prompt += await self._screenshot_note(session, timestamp_ms)

        if self.sweep_temp_files_on_ask:
            await self._sweep_temp_files()

        answer = await self._generate(prompt)
        if answer is None:
            self._degraded_replies += 1
            return prompts.GENERATION_FAILED

        session.record(question, answer, timestamp_ms, image_bytes)
        self._questions_answered += 1
        return answer

    async def _initialize_session(
        self,
        session: Session,
        slide_bytes: bytes | None,
        transcript_passages: Sequence[Passage],
        source_url: str,
    ) -> None:
        extractor = self.services.slide_text_extractor
        problems = await session.initialize(
            slide_bytes,
            transcript_passages,
            source_url,
            embedder=self.services.model_gateway.embed,
            slide_extractor=extractor.extract_pages if extractor else None,
        )
        for problem in problems:
            await self._log("warning", f"Session {session.user_id}: {problem}")

        await self._log(
            "info",
            f"Initialized context for user {session.user_id}: "
            f"{len(transcript_passages)} transcript passage(s), "
            f"slides: {session.slide_index is not None}",
        )

    async def _transcript_context(self, session: Session, question: str, timestamp_ms: int) -> str:
        try:
            if session.transcript_retriever is None:
                raise RuntimeError("transcript retriever is not initialized")
            passages = await session.transcript_retriever.query(
                build_windowed_query(question, timestamp_ms)
            )
        except Exception as e:
            await self._log("error", f"Transcript retrieval failed for {session.user_id}: {e}")
            return prompts.TRANSCRIPT_UNAVAILABLE

        if not passages:
            return prompts.NO_TRANSCRIPT_FOUND
        return prompts.format_passages(passages)

    async def _slides_context(self, session: Session, question: str) -> str:
        try:
            if session.slide_retriever is None:
                raise RuntimeError("slide retriever is not initialized")
            passages = await session.slide_retriever.query(question)
        except Exception as e:
            await self._log("error", f"Slide retrieval failed for {session.user_id}: {e}")
            return prompts.SLIDES_UNAVAILABLE

        if not passages:
            return prompts.NO_SLIDES_FOUND
        return prompts.format_passages(passages)

    async def _image_note(self, user_id: str, image_bytes: bytes | None) -> str:
        if not image_bytes:
            return prompts.NO_IMAGE

        ocr = self.services.ocr_service
        try:
            text = await ocr.extract_text(image_bytes) if ocr else ""
            if is_ocr_failure(text):
                note = prompts.IMAGE_NO_TEXT
            else:
                note = prompts.IMAGE_TEXT_TEMPLATE.format(text=text.strip())
        except Exception as e:
            await self._log("error", f"OCR processing failed for {user_id}: {e}")
            note = prompts.IMAGE_ERROR

        try:
            await self.services.temp_file_manager.save_image(user_id, image_bytes)
        except Exception as e:
            await self._log("warning", f"Failed to save image for {user_id}: {e}")

        return note

    async def _screenshot_note(self, session: Session, timestamp_ms: int) -> str:
        screenshots = self.services.screenshot_service
        if screenshots is None:
            return ""

        temp_files = self.services.temp_file_manager
        path = temp_files.new_path(
            "screenshots", f"slide-{sanitize_filename_part(session.user_id)}-{timestamp_ms}.png"
        )
        try:
            await screenshots.capture(session.source_url, timestamp_ms, path)
            return prompts.SCREENSHOT_NOTE
        except Exception as e:
            await self._log("warning", f"Failed to capture screenshot for {session.user_id}: {e}")
            return ""
        finally:
            await temp_files.delete(path)

    async def _sweep_temp_files(self) -> None:
        try:
            await self.services.temp_file_manager.sweep_stale()
        except Exception as e:
            await self._log("warning", f"Error cleaning up temp files: {e}")

    async def _generate(self, prompt: str) -> str | None:
        """Chat call first, raw generate as backup; None when both fail."""
        gateway = self.services.model_gateway
        try:
            return await gateway.chat(prompt)
        except Exception as primary_error:
            await self._log("warning", f"Primary chat call failed, trying backup: {primary_error}")

        try:
            return await gateway.generate(prompt)
        except Exception as backup_error:
            await self._log("error", f"Both model approaches failed: {backup_error}")
            return None

    # -------------------------------------------------------------- #
    # Helpers
    # -------------------------------------------------------------- #

    def _session_guard(self, session: Session):
        if self.serialize_session_requests:
            return session.lock
        return contextlib.nullcontext()

    async def _log(self, level: str, message: str) -> None:
        if self.services:
            await getattr(self.services.logging_service, level)(message)
