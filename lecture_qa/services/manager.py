from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Sequence

if TYPE_CHECKING:
    from lecture_qa.context import Context
    from lecture_qa.services.retrieval import Passage
    from lecture_qa.services.session_manager.session import HistoryEntry, Session


# -------------------------------------------------------------- #
# Services Manager Class
# -------------------------------------------------------------- #


class ServicesManager:
    """Manager for handling multiple service instances."""

    def __init__(
        self,
        context: Context,
        logging_service: BaseAsyncLoggingService,
        temp_file_manager: BaseTempFileServiceManager,
        model_gateway: BaseModelGatewayService,
        session_registry: BaseSessionRegistryService,
        answer_engine: BaseAnswerEngineService,
        slide_text_extractor: BaseSlideTextExtractorService | None = None,
        ocr_service: BaseOCRService | None = None,
        screenshot_service: BaseScreenshotService | None = None,
        lecture_schedule_manager: BaseLectureScheduleService | None = None,
    ):
        self.context = context

        self.logging_service = logging_service

        # file handling
        self.temp_file_manager = temp_file_manager

        # model access
        self.model_gateway = model_gateway

        # external extractors
        self.slide_text_extractor = slide_text_extractor
        self.ocr_service = ocr_service
        self.screenshot_service = screenshot_service

        # conversational core
        self.session_registry = session_registry
        self.answer_engine = answer_engine

        # lecture unlock schedule
        self.lecture_schedule_manager = lecture_schedule_manager

    async def initialize_all(self) -> None:
        """Initialize all service managers."""

        # Logging
        await self.logging_service.on_start(self)

        # Files
        await self.temp_file_manager.on_start(self)

        # Model gateway
        await self.model_gateway.on_start(self)

        # Extractors
        if self.slide_text_extractor:
            await self.slide_text_extractor.on_start(self)
        if self.ocr_service:
            await self.ocr_service.on_start(self)
        if self.screenshot_service:
            await self.screenshot_service.on_start(self)

        # Sessions and answering
        await self.session_registry.on_start(self)
        await self.answer_engine.on_start(self)

        # Lecture schedule
        if self.lecture_schedule_manager:
            await self.lecture_schedule_manager.on_start(self)

    async def shutdown_all(self, timeout: float = 30.0) -> None:
        """
        Gracefully shutdown all service managers.

        Args:
            timeout: Maximum time in seconds to wait for services to shutdown (default: 30s)
        """
        import asyncio

        await self.logging_service.info("=" * 60)
        await self.logging_service.info("Starting graceful shutdown of all services...")

        if self.context:
            self.context.mark_shutdown_started()
            await self.logging_service.info("✓ Shutdown flag set - no new operations will start")

        try:
            # Phase 1: Stop background pollers
            await self.logging_service.info("Phase 1: Stopping lecture schedule polling...")
            if self.lecture_schedule_manager:
                await asyncio.wait_for(
                    self.lecture_schedule_manager.on_close(), timeout=timeout * 0.1
                )
                await self.logging_service.info("✓ Lecture schedule stopped")

            # Phase 2: Drain answering and drop sessions
            await self.logging_service.info("Phase 2: Closing answer engine and sessions...")
            await asyncio.wait_for(self.answer_engine.on_close(), timeout=timeout * 0.3)
            await asyncio.wait_for(self.session_registry.on_close(), timeout=timeout * 0.2)
            await self.logging_service.info("✓ Sessions closed")

            # Phase 3: Extractors and model gateway
            await self.logging_service.info("Phase 3: Closing extractors and model gateway...")
            for service in (self.screenshot_service, self.ocr_service, self.slide_text_extractor):
                if service:
                    await service.on_close()
            await asyncio.wait_for(self.model_gateway.on_close(), timeout=timeout * 0.1)
            await self.logging_service.info("✓ Model gateway closed")

            # Phase 4: Temp files
            await self.logging_service.info("Phase 4: Closing temp file manager...")
            await self.temp_file_manager.on_close()
            await self.logging_service.info("✓ Temp file manager closed")

            await self.logging_service.info("✓ Graceful shutdown completed successfully")
            await self.logging_service.info("=" * 60)

        except asyncio.TimeoutError:
            await self.logging_service.error(
                f"⚠️  Shutdown timeout exceeded ({timeout}s) - forcing shutdown"
            )
        except Exception as e:
            await self.logging_service.error(f"⚠️  Error during shutdown: {e}")
        finally:
            # Logging goes last so every message above gets flushed
            await self.logging_service.on_close()


# -------------------------------------------------------------- #
# Base Manager Class
# -------------------------------------------------------------- #


class Manager(ABC):
    """Base class for all manager services."""

    def __init__(self, context: Context):
        self.context = context
        self.services: ServicesManager | None = None

    # -------------------------------------------------------------- #
    # Manager Methods
    # -------------------------------------------------------------- #

    async def on_start(self, services: ServicesManager) -> None:
        """Actions to perform on manager start."""
        self.services = services

    async def on_close(self) -> None:
        """Actions to perform on manager close."""
        pass


# -------------------------------------------------------------- #
# Specialized Manager Classes
# -------------------------------------------------------------- #


class BaseAsyncLoggingService(Manager):
    """Specialized manager for async logging services."""

    def __init__(self, context):
        super().__init__(context)

    @abstractmethod
    async def log(self, message: str) -> None:
        """Log a message."""
        pass

    @abstractmethod
    async def debug(self, message: str) -> None:
        """Log a debug message."""
        pass

    @abstractmethod
    async def info(self, message: str) -> None:
        """Log an info message."""
        pass

    @abstractmethod
    async def warning(self, message: str) -> None:
        """Log a warning message."""
        pass

    @abstractmethod
    async def error(self, message: str) -> None:
        """Log an error message."""
        pass

    @abstractmethod
    async def critical(self, message: str) -> None:
        """Log a critical message."""
        pass


class BaseTempFileServiceManager(Manager):
    """Specialized manager for request-scoped temporary files."""

    def __init__(self, context):
        super().__init__(context)

    @abstractmethod
    def get_storage_path(self) -> str:
        """Get the temp storage root."""
        pass

    @abstractmethod
    def new_path(self, kind: str, filename: str) -> str:
        """Build a path inside the scoped directory for `kind`."""
        pass

    @abstractmethod
    async def save_image(self, user_id: str, data: bytes) -> str | None:
        """Persist raw image bytes for audit, best-effort."""
        pass

    @abstractmethod
    async def delete(self, path: str) -> bool:
        """Delete a temp file if it exists."""
        pass

    @abstractmethod
    async def sweep_stale(self, max_age_s: int | None = None) -> int:
        """Delete temp files older than the age threshold."""
        pass


class BaseModelGatewayService(Manager):
    """Specialized manager for the remote generation/embedding service."""

    def __init__(self, context):
        super().__init__(context)

    @abstractmethod
    async def is_available(self) -> bool:
        """Lightweight liveness probe."""
        pass

    @abstractmethod
    async def chat(self, prompt: str) -> str:
        """Structured-message generation (primary path)."""
        pass

    @abstractmethod
    async def generate(self, prompt: str) -> str:
        """Raw-prompt streamed generation (backup path)."""
        pass

    @abstractmethod
    async def generate_with_retry(self, prompt: str) -> str:
        """Standalone generation with retries; never raises."""
        pass

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Embed a text; never raises."""
        pass


class BaseSlideTextExtractorService(Manager):
    """Specialized manager for slide deck text extraction."""

    def __init__(self, context):
        super().__init__(context)

    @abstractmethod
    async def extract_pages(self, data: bytes) -> list[str]:
        """Return the text of each page, in page order."""
        pass


class BaseOCRService(Manager):
    """Specialized manager for image text extraction."""

    def __init__(self, context):
        super().__init__(context)

    @abstractmethod
    async def extract_text(self, data: bytes) -> str:
        """Return extracted text or a failure sentinel string."""
        pass


class BaseScreenshotService(Manager):
    """Specialized manager for capturing a video frame."""

    def __init__(self, context):
        super().__init__(context)

    @abstractmethod
    async def capture(self, url: str, timestamp_ms: int, output_path: str) -> str:
        """Capture the frame at `timestamp_ms` into `output_path`."""
        pass


class BaseSessionRegistryService(Manager):
    """Specialized manager for the per-user session map."""

    def __init__(self, context):
        super().__init__(context)

    @abstractmethod
    async def get(self, user_id: str) -> Session:
        """Return the user's session, creating it on first use."""
        pass

    @abstractmethod
    def peek(self, user_id: str) -> Session | None:
        """Look up a session without creating one."""
        pass

    @abstractmethod
    async def remove(self, user_id: str) -> bool:
        """Remove the user's session; True if one existed."""
        pass


class BaseAnswerEngineService(Manager):
    """Specialized manager for session-scoped question answering."""

    def __init__(self, context):
        super().__init__(context)

    @abstractmethod
    async def initialize_context(
        self,
        slide_bytes: bytes | None,
        transcript_passages: Sequence[Passage],
        source_url: str,
        user_id: str,
    ) -> None:
        """(Re)build the user's retrieval context."""
        pass

    @abstractmethod
    async def ask(
        self, question: str, timestamp_ms: int, user_id: str, image_bytes: bytes | None = None
    ) -> str:
        """Answer a question; never raises."""
        pass

    @abstractmethod
    def get_history(self, user_id: str) -> list[HistoryEntry]:
        """The user's answered questions in order."""
        pass


class BaseLectureScheduleService(Manager):
    """Specialized manager for lecture unlock times."""

    def __init__(self, context):
        super().__init__(context)

    @abstractmethod
    async def is_lecture_available(self, lecture_id: str) -> bool:
        """True once the lecture has been unlocked."""
        pass

    @abstractmethod
    async def get_lectures_availability(self) -> list[dict[str, Any]]:
        """Availability summary of every lecture."""
        pass
