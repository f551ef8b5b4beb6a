"""
FastAPI application for the Student Tutor Relay.

Students ask questions on Telegram, an AI drafts answers, teachers approve or
edit them on Slack, and approved answers go back to the student and into a
Google Sheets archive. This module builds the workflow services at startup and
exposes the Slack callbacks, health checks and metrics.
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from prometheus_fastapi_instrumentator import Instrumentator
from prometheus_fastapi_instrumentator import metrics as instrumentator_metrics

from tutor_relay.channels.messaging.telegram_channel import TelegramMessagingChannel
from tutor_relay.channels.review.slack_channel import SlackReviewChannel
from tutor_relay.core.config import get_settings
from tutor_relay.core.error_handlers import (
    base_exception_handler,
    unhandled_exception_handler,
)
from tutor_relay.core.exceptions import BaseAppException
from tutor_relay.routes import archive, health, slack
from tutor_relay.services.answering.answer_generator import AnswerGenerator
from tutor_relay.services.answering.image_text_extractor import MockImageTextExtractor
from tutor_relay.services.archival.sheets_archive import GoogleSheetsArchive
from tutor_relay.services.records.question_repository import QuestionRepository
from tutor_relay.services.tutoring.dead_letter import DeadLetterLog
from tutor_relay.services.tutoring.orchestrator import TutorOrchestrator

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger("tutor_relay.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Application startup...")
    settings = get_settings()
    app.state.settings = settings

    missing = settings.missing_credentials()
    if missing:
        if settings.is_production:
            raise RuntimeError(
                f"Missing required credentials in production: {', '.join(missing)}"
            )
        logger.warning(f"Running without credentials: {', '.join(missing)}")

    settings.ensure_data_dirs()

    repository = QuestionRepository(settings.QUESTION_DB_PATH)
    await repository.initialize()

    answer_generator = AnswerGenerator(settings)
    review_channel = SlackReviewChannel(settings)
    messaging_channel = TelegramMessagingChannel(settings)
    sheets_archive = GoogleSheetsArchive(settings)

    dead_letter = DeadLetterLog(settings.DEAD_LETTER_FILE_PATH)
    orchestrator = TutorOrchestrator(
        repository=repository,
        answer_generator=answer_generator,
        image_extractor=MockImageTextExtractor(settings.DEBUG_IMAGE_DIR_PATH),
        review_channel=review_channel,
        messaging_channel=messaging_channel,
        archive=sheets_archive,
        dead_letter=dead_letter,
        settings=settings,
    )

    app.state.repository = repository
    app.state.messaging_channel = messaging_channel
    app.state.archive = sheets_archive
    app.state.orchestrator = orchestrator
    app.state.dead_letter = dead_letter

    inbound_task = None
    if settings.TELEGRAM_BOT_TOKEN:
        await messaging_channel.start()
        inbound_task = asyncio.create_task(orchestrator.run_inbound_loop())
    else:
        logger.warning("TELEGRAM_BOT_TOKEN not set, Telegram polling disabled")

    logger.info("Application startup complete")

    yield

    # Shutdown
    logger.info("Application shutdown...")
    if inbound_task is not None:
        inbound_task.cancel()
        try:
            await inbound_task
        except asyncio.CancelledError:
            pass
    await orchestrator.drain()
    await messaging_channel.stop()
    await answer_generator.close()
    logger.info("Application shutdown complete")


app = FastAPI(
    title=get_settings().PROJECT_NAME,
    description="Relays student questions to an AI tutor with teacher review",
    lifespan=lifespan,
)

# Set up Prometheus metrics
# /metrics is served by the endpoint below, not by the instrumentator
instrumentator = Instrumentator(
    should_group_status_codes=False,
    should_ignore_untemplated=True,
    should_respect_env_var=False,
    excluded_handlers=["/health", "/health/live", "/health/ready", "/metrics"],
)
instrumentator.add(instrumentator_metrics.default())
instrumentator.instrument(app)


@app.get("/metrics", include_in_schema=False)
async def metrics(request: Request):
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(slack.router)
app.include_router(archive.router)

# Register exception handlers
app.add_exception_handler(BaseAppException, base_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(Exception, unhandled_exception_handler)
