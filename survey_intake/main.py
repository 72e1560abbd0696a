"""FastAPI application factory for the survey intake adapter.

Wires cross-cutting concerns (logging, request ids, problem+json handlers,
CORS) around the core pipeline and mounts the API routers under /api/v1.
The embedding layer supplies the questionnaire catalogs and may inject a
ready-made pipeline; otherwise one is built from configuration over the SQL
store.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Iterable, Optional, Union

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from survey_intake.config import AppConfig, load_config
from survey_intake.db.base import get_engine
from survey_intake.db.migrations_runner import apply_migrations
from survey_intake.http.problem import (
    handle_http_exception,
    handle_request_validation_error,
    handle_submission_error,
    handle_unexpected_error,
)
from survey_intake.http.request_id import RequestIdMiddleware
from survey_intake.logging_setup import configure_logging
from survey_intake.logic.errors import SubmissionError
from survey_intake.logic.idempotency import IdempotencyCache
from survey_intake.logic.repository_submissions import SqlRecordStore
from survey_intake.logic.resilience import ResilientExecutor, RetryOptions
from survey_intake.logic.submission_pipeline import SubmissionPipeline
from survey_intake.logic.submission_validation import SubmissionValidator
from survey_intake.models.questionnaire import QuestionCatalog
from survey_intake.routes import api_router

logger = logging.getLogger(__name__)

CatalogSource = Union[Dict[str, QuestionCatalog], Iterable[QuestionCatalog]]


def build_pipeline(config: AppConfig) -> SubmissionPipeline:
    """Assemble the SQL-backed pipeline described by ``config``."""
    engine = get_engine(config.database.dsn)
    applied = apply_migrations(engine)
    if applied:
        logger.info("startup_migrations_applied files=%s", applied)
    executor = ResilientExecutor(
        cache=IdempotencyCache(ttl_seconds=config.idempotency.ttl_seconds),
        default_options=RetryOptions.from_config(config.retry),
    )
    validator = SubmissionValidator(config.validation, config.business_rules)
    return SubmissionPipeline(SqlRecordStore(engine), validator, executor, drafts=config.drafts)


def _catalog_index(catalogs: Optional[CatalogSource]) -> Dict[str, QuestionCatalog]:
    if catalogs is None:
        return {}
    if isinstance(catalogs, dict):
        return dict(catalogs)
    return {c.questionnaire_id: c for c in catalogs}


def create_app(
    config: Optional[AppConfig] = None,
    *,
    pipeline: Optional[SubmissionPipeline] = None,
    catalogs: Optional[CatalogSource] = None,
) -> FastAPI:
    configure_logging()
    resolved_pipeline = pipeline or build_pipeline(config or load_config())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        # Drop cached results and counters with the process
        app.state.pipeline.executor.clear()
        logger.info("app_shutdown executor_cleared=true")

    app = FastAPI(title="Survey Intake", lifespan=lifespan)
    app.state.pipeline = resolved_pipeline
    app.state.catalogs = _catalog_index(catalogs)

    app.add_exception_handler(SubmissionError, handle_submission_error)
    app.add_exception_handler(HTTPException, handle_http_exception)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["Content-Type", "Idempotency-Key", "X-Volunteer-Id", "X-Tenant-Id", "X-Request-Id"],
        expose_headers=["X-Request-Id", "Retry-After"],
    )

    @app.get("/health", include_in_schema=False)
    def health() -> dict:
        return {"status": "ok", "catalogs": len(app.state.catalogs)}

    app.include_router(api_router, prefix="/api/v1")
    return app


__all__ = ["create_app", "build_pipeline"]
