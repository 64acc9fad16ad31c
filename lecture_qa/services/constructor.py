from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from lecture_qa.context import Context

from lecture_qa.config import Settings
from lecture_qa.services.answer_engine import AnswerEngineManager
from lecture_qa.services.collaborators import OCRService, ScreenshotService, SlideTextExtractor
from lecture_qa.services.lecture_schedule import LectureScheduleManager
from lecture_qa.services.logger import AsyncLoggingService
from lecture_qa.services.manager import ServicesManager
from lecture_qa.services.model_gateway import ModelGatewayManager
from lecture_qa.services.retrieval import RetrievalStrategy
from lecture_qa.services.session_manager import SessionOptions, SessionRegistryManager
from lecture_qa.services.temp_file_manager import TempFileManagerService

# -------------------------------------------------------------- #
# Constructor for Dynamic Creation of Services Manager
# -------------------------------------------------------------- #


def construct_services_manager(
    context: "Context",
    settings: Settings | None = None,
    log_file: str | None = None,
    enable_lecture_schedule: bool = True,
) -> ServicesManager:
    """Construct the services manager from settings.

    Args:
        context: Context instance; receives the settings and the services manager
        settings: Runtime settings (defaults to `Settings.from_env()`)
        log_file: Specific log file name (optional, otherwise timestamped)
        enable_lecture_schedule: Start the lecture unlock poller
    """
    settings = settings or Settings.from_env()
    context.set_settings(settings)

    logging_service = AsyncLoggingService(
        context=context,
        log_dir=settings.log_dir,
        log_file=log_file,
    )

    temp_file_manager = TempFileManagerService(
        context=context,
        storage_path=settings.temp_storage_path,
        max_age_s=settings.temp_file_max_age_s,
        sweep_interval_s=settings.session_sweep_interval_s,
    )

    model_gateway = ModelGatewayManager(
        context=context,
        host=settings.ollama_url,
        generation_model=settings.generation_model,
        embedding_model=settings.embedding_model,
        embedding_dim=settings.embedding_dim,
        timeout_ms=settings.request_timeout_ms,
        liveness_timeout_ms=settings.liveness_timeout_ms,
    )

    session_registry = SessionRegistryManager(
        context=context,
        options=SessionOptions(
            retrieval_strategy=RetrievalStrategy.parse(settings.retrieval_strategy),
            top_k=settings.retrieval_top_k,
            slide_chunk_size=settings.slide_chunk_size,
            slide_chunk_overlap=settings.slide_chunk_overlap,
        ),
        idle_ttl_s=settings.session_idle_ttl_s,
        sweep_interval_s=settings.session_sweep_interval_s,
    )

    answer_engine = AnswerEngineManager(
        context=context,
        serialize_session_requests=settings.serialize_session_requests,
    )

    lecture_schedule_manager = None
    if enable_lecture_schedule:
        lecture_schedule_manager = LectureScheduleManager(
            context=context,
            lectures_file_path=settings.lectures_file_path,
            test_mode=settings.lecture_test_mode,
        )

    services_manager = ServicesManager(
        context=context,
        logging_service=logging_service,
        temp_file_manager=temp_file_manager,
        model_gateway=model_gateway,
        session_registry=session_registry,
        answer_engine=answer_engine,
        slide_text_extractor=SlideTextExtractor(context),
        ocr_service=OCRService(context, tesseract_path=settings.tesseract_path),
        screenshot_service=ScreenshotService(context, ffmpeg_path=settings.ffmpeg_path),
        lecture_schedule_manager=lecture_schedule_manager,
    )
    context.set_services_manager(services_manager)
    return services_manager
