"""APIRouter registration for the survey intake adapter."""

from __future__ import annotations

from fastapi import APIRouter

from survey_intake.routes.submissions import router as submissions_router

api_router = APIRouter()
api_router.include_router(submissions_router, tags=["Submissions", "Drafts"])

__all__ = ["api_router"]
