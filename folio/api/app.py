"""
FastAPI application for the Folio translation pipeline.

Kickoff endpoints acknowledge immediately; translation runs in the
background and clients poll the status endpoints for results.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from folio.config import get_settings
from folio.core.errors import KickoffValidationError, NotFoundError
from folio.core.models import TranslationStatus
from folio.i18n.languages import LANGUAGE_NAMES, SUPPORTED_LANGUAGES, get_language_name, is_rtl
from folio.i18n.segmenter import reassemble
from folio.integrations.sentry import init_sentry
from folio.logging_config import configure_logging
from folio.pipeline import TranslationPipeline

logger = logging.getLogger(__name__)


# =============================================================================
# App State
# =============================================================================


class AppState:
    """Application state - initialized at startup."""

    pipeline: TranslationPipeline


state = AppState()


# =============================================================================
# Lifespan
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize and cleanup app resources."""
    settings = get_settings()
    configure_logging(settings.log_level)

    # Initialize error tracking (Sentry)
    if init_sentry(settings):
        logger.info("Sentry error tracking enabled")

    state.pipeline = TranslationPipeline(settings=settings)

    logger.info(
        "Folio API starting in %s mode (translator: %s)",
        settings.environment, state.pipeline.translator.name,
    )

    yield

    logger.info("Folio API shutting down, waiting for %d task(s)", state.pipeline.runner.active)
    await state.pipeline.runner.shutdown()


# =============================================================================
# App Setup
# =============================================================================


app = FastAPI(
    title="Folio API",
    description="Multi-language translation pipeline for long-form documents",
    version="0.1.0",
    lifespan=lifespan,
)


# CORS
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Dependencies
# =============================================================================


def get_pipeline() -> TranslationPipeline:
    return state.pipeline


# =============================================================================
# Request/Response Models
# =============================================================================


class TranslateUnitRequest(BaseModel):
    content_unit_id: str
    languages: list[str]
    retranslate: bool = False


class TranslateBookRequest(BaseModel):
    languages: list[str] | None = None


class TranslateBooksRequest(BaseModel):
    book_ids: list[str]
    languages: list[str] | None = None


class KickoffResponse(BaseModel):
    accepted: bool
    job_id: str | None = None
    book_id: str | None = None
    units: int = 0
    languages: list[str] = []
    message: str = ""


class BudgetUpdateRequest(BaseModel):
    ceiling_usd: float | None = None
    alert_threshold_pct: float | None = None


def _ack_response(ack) -> KickoffResponse:
    return KickoffResponse(
        accepted=ack.accepted,
        job_id=ack.job_id,
        book_id=ack.book_id,
        units=ack.units,
        languages=ack.languages,
        message=ack.message,
    )


# =============================================================================
# Health Check
# =============================================================================


@app.get("/health")
async def health_check(pipeline: TranslationPipeline = Depends(get_pipeline)):
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "folio-api",
        "background_tasks": pipeline.runner.active,
    }


# =============================================================================
# Kickoff
# =============================================================================


@app.post("/translations", response_model=KickoffResponse, status_code=202)
async def translate_unit(
    request: TranslateUnitRequest,
    pipeline: TranslationPipeline = Depends(get_pipeline),
):
    """
    Start translating one chapter.

    Returns as soon as the job is created; poll
    /content/{content_unit_id}/translations or /jobs/{job_id} for results.
    """
    try:
        ack = await pipeline.kickoff.kickoff_unit(
            request.content_unit_id,
            request.languages,
            retranslate=request.retranslate,
        )
    except KickoffValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _ack_response(ack)


@app.post("/books/{book_id}/translations", response_model=KickoffResponse, status_code=202)
async def translate_book(
    book_id: str,
    request: TranslateBookRequest,
    pipeline: TranslationPipeline = Depends(get_pipeline),
):
    """Start translating every chapter of a book that is not yet complete."""
    try:
        ack = await pipeline.kickoff.kickoff_book(book_id, request.languages)
    except KickoffValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _ack_response(ack)


@app.post("/translations/bulk", status_code=202)
async def translate_books(
    request: TranslateBooksRequest,
    pipeline: TranslationPipeline = Depends(get_pipeline),
):
    """Kick off several books; unknown or finished books don't stop the batch."""
    try:
        acks = await pipeline.kickoff.kickoff_books(request.book_ids, request.languages)
    except KickoffValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    results = [_ack_response(ack) for ack in acks]
    return {
        "results": results,
        "started": sum(1 for r in results if r.job_id),
        "skipped": sum(1 for r in results if r.accepted and not r.job_id),
        "rejected": sum(1 for r in results if not r.accepted),
    }


# =============================================================================
# Status
# =============================================================================


@app.get("/content/{content_unit_id}/translations")
async def list_unit_translations(
    content_unit_id: str,
    pipeline: TranslationPipeline = Depends(get_pipeline),
):
    """Per-language status for one chapter."""
    unit = await pipeline.catalog.get_unit(content_unit_id)
    if not unit:
        raise HTTPException(status_code=404, detail="Content unit not found")

    records = await pipeline.store.list_for_unit(content_unit_id)
    return {
        "content_unit_id": content_unit_id,
        "translations": [
            {
                "language": r.language,
                "status": r.status.value,
                "error": r.error,
                "attempts": r.attempts,
                "completed_at": r.completed_at,
            }
            for r in records
        ],
    }


@app.get("/content/{content_unit_id}/translations/{language}")
async def get_unit_translation(
    content_unit_id: str,
    language: str,
    pipeline: TranslationPipeline = Depends(get_pipeline),
):
    """One chapter in one language, reassembled when completed."""
    unit = await pipeline.catalog.get_unit(content_unit_id)
    if not unit:
        raise HTTPException(status_code=404, detail="Content unit not found")

    record = await pipeline.store.get(content_unit_id, language)
    if not record:
        raise HTTPException(status_code=404, detail="Translation not requested")

    document = None
    if record.status == TranslationStatus.COMPLETED:
        segments = await pipeline.catalog.segments(unit)
        document = reassemble(segments, record.segments)

    return {
        "content_unit_id": content_unit_id,
        "language": record.language,
        "status": record.status.value,
        "error": record.error,
        "document": document,
        "direction": "rtl" if is_rtl(record.language) else "ltr",
        "usage": record.usage.model_dump() if record.usage else None,
        "completed_at": record.completed_at,
    }


@app.get("/jobs/{job_id}")
async def get_job(
    job_id: str,
    pipeline: TranslationPipeline = Depends(get_pipeline),
):
    """Job summary with per-unit/per-language failures."""
    try:
        summary = await pipeline.progress.job_summary(job_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return summary


# =============================================================================
# Budget
# =============================================================================


@app.get("/budget")
async def get_budget(pipeline: TranslationPipeline = Depends(get_pipeline)):
    """Current month's budget."""
    period = await pipeline.ledger.current_period()
    return period.snapshot()


@app.patch("/budget")
async def update_budget(
    request: BudgetUpdateRequest,
    pipeline: TranslationPipeline = Depends(get_pipeline),
):
    """Change the monthly ceiling and/or alert threshold."""
    try:
        period = await pipeline.ledger.update(
            ceiling_usd=request.ceiling_usd,
            alert_threshold_pct=request.alert_threshold_pct,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return period.snapshot()


@app.get("/budget/history")
async def budget_history(pipeline: TranslationPipeline = Depends(get_pipeline)):
    """All budget periods, newest first."""
    periods = await pipeline.ledger.list_periods()
    return {"periods": [p.snapshot() for p in periods]}


@app.get("/budget/alerts")
async def list_budget_alerts(
    include_resolved: bool = False,
    pipeline: TranslationPipeline = Depends(get_pipeline),
):
    alerts = await pipeline.ledger.list_alerts(include_resolved=include_resolved)
    return {"alerts": alerts, "count": len(alerts)}


@app.post("/budget/alerts/{alert_id}/resolve")
async def resolve_budget_alert(
    alert_id: str,
    pipeline: TranslationPipeline = Depends(get_pipeline),
):
    try:
        alert = await pipeline.ledger.resolve_alert(alert_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return alert


# =============================================================================
# Progress
# =============================================================================


@app.get("/progress")
async def get_dashboard(pipeline: TranslationPipeline = Depends(get_pipeline)):
    """Global stats, budget and active jobs in one call."""
    return await pipeline.progress.dashboard()


@app.get("/progress/books/{book_id}")
async def get_book_progress(
    book_id: str,
    languages: str | None = None,
    pipeline: TranslationPipeline = Depends(get_pipeline),
):
    """
    Chapter completion for a book.

    `languages` is a comma-separated list; defaults to the configured
    target languages.
    """
    codes = [c.strip() for c in languages.split(",") if c.strip()] if languages else None
    try:
        return await pipeline.progress.book_progress(book_id, codes)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


# =============================================================================
# Maintenance
# =============================================================================


@app.post("/maintenance/recover")
async def recover(
    resume: bool = False,
    pipeline: TranslationPipeline = Depends(get_pipeline),
):
    """Reset stuck translations and close abandoned jobs."""
    return await pipeline.recovery.run(resume=resume)


# =============================================================================
# Languages
# =============================================================================


@app.get("/languages")
async def list_languages():
    """List all supported target languages."""
    settings = get_settings()
    return {
        "source": {
            "code": settings.source_language,
            "name": LANGUAGE_NAMES.get(settings.source_language, settings.source_language),
        },
        "languages": [
            {
                "code": code,
                "name": get_language_name(code),
                "rtl": is_rtl(code),
            }
            for code in SUPPORTED_LANGUAGES
        ],
        "defaults": settings.default_target_languages_list,
    }
