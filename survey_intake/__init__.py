"""Survey intake core: answer validation engine and resilient submission pipeline.

The validation layer (`survey_intake.logic.submission_validation`) checks a
submission against a read-only questionnaire catalog. The pipeline
(`survey_intake.logic.submission_pipeline`) persists drafts and final records
through a retrying, idempotent executor. The FastAPI adapter in
`survey_intake.main` is optional and is not imported here.
"""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
