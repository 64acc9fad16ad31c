# Main File

import asyncio
import sys

from lecture_qa.config import Settings
from lecture_qa.context import Context
from lecture_qa.services.constructor import construct_services_manager
from lecture_qa.services.retrieval import passages_from_segments

# -------------------------------------------------------------- #
# Demo Lecture
# -------------------------------------------------------------- #

DEMO_SOURCE_URL = "https://example.com/videos/lecture1.mp4"

DEMO_SEGMENTS = [
    {
        "text": "Welcome to the first lecture on machine learning.",
        "offset": 0,
        "duration": 5000,
    },
    {
        "text": "Supervised learning fits a model to labelled examples.",
        "offset": 5000,
        "duration": 5000,
    },
    {
        "text": "The main topic today is the difference between training and test error.",
        "offset": 10000,
        "duration": 5000,
    },
]


async def main():
    question = " ".join(sys.argv[1:]) or "What is the main topic?"

    # We need to print to console initially since logging service isn't set up yet
    print("=" * 40)
    print("Syncing services...")

    context = Context()
    settings = Settings.from_env()
    services_manager = construct_services_manager(context, settings)
    await services_manager.initialize_all()

    logger = services_manager.logging_service
    await logger.info("[OK] Initialized all services.")

    engine = services_manager.answer_engine
    try:
        await engine.initialize_context(
            slide_bytes=None,
            transcript_passages=passages_from_segments(DEMO_SEGMENTS),
            source_url=DEMO_SOURCE_URL,
            user_id="demo-user",
        )
        answer = await engine.ask(question, 10000, "demo-user")
        await logger.info(f"Answer: {answer}")
        await logger.info(f"History entries: {len(engine.get_history('demo-user'))}")
    finally:
        await services_manager.shutdown_all(timeout=30.0)


if __name__ == "__main__":
    asyncio.run(main())
