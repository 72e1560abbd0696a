"""Configuration utilities for the survey intake core.

This module loads application configuration with the following rules:
- Primary source: `survey_intake_config.json` at the project root.
- Overrides: environment variables, then optional text files under `config/`.
- Validation: Pydantic models enforce required fields and value constraints.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator


CONFIG_DIR = Path("config")
ROOT_CONFIG = Path("survey_intake_config.json")
logger = logging.getLogger(__name__)


def _read_config_file(rel_path: str) -> Optional[str]:
    path = CONFIG_DIR / rel_path
    try:
        if path.exists():
            return path.read_text(encoding="utf-8").strip()
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Failed to read override %s: %s", path, e)
        return None
    return None


def _env(key: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(key, default)


class DatabaseConfig(BaseModel):
    dsn: str

    @field_validator("dsn")
    @classmethod
    def dsn_must_be_non_empty(cls, v: str) -> str:
        if not isinstance(v, str) or not v.strip():
            raise ValueError("database.dsn must be a non-empty string")
        return v


class RetryConfig(BaseModel):
    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=1.0, ge=0)
    multiplier: float = Field(default=2.0, ge=1)
    max_delay: float = Field(default=30.0, ge=0)


class IdempotencyConfig(BaseModel):
    ttl_seconds: float = Field(default=600.0, gt=0)


class ValidationConfig(BaseModel):
    max_text_length: int = Field(default=10_000, gt=0)
    min_long_text_length: int = Field(default=10, ge=0)
    min_age_years: int = Field(default=18, ge=0)
    max_age_years: int = Field(default=120, gt=0)
    min_respondent_name_length: int = Field(default=2, ge=1)


class DraftConfig(BaseModel):
    cleanup_older_than_days: int = Field(default=7, ge=0)
    keep_recent: int = Field(default=3, ge=0)


class BusinessRuleSettings(BaseModel):
    """Question ids and tokens the cross-field rules read.

    Defaults match the voter consultation questionnaire; other questionnaires
    override them through configuration.
    """

    birth_date_question: str = "birth_date"
    age_range_question: str = "age_range"
    # gate question -> dependent follow-up question
    dependent_fields: Dict[str, str] = Field(default_factory=lambda: {"leans_to_party": "which_party"})
    not_applicable_sentinel: str = "N/A"
    yes_tokens: List[str] = Field(default_factory=lambda: ["si", "sí", "yes", "y", "true"])
    no_tokens: List[str] = Field(default_factory=lambda: ["no", "n", "false"])
    # voting history question -> election year
    voting_history: Dict[str, int] = Field(
        default_factory=lambda: {"voted_2016": 2016, "voted_2020": 2020, "voted_2024": 2024}
    )
    transportation_need_question: str = "needs_transportation"
    transportation_available_question: str = "has_transportation"
    contact_questions: List[str] = Field(default_factory=lambda: ["email", "phone"])
    voting_frequency_question: str = "voting_frequency"
    never_voted_tokens: List[str] = Field(default_factory=lambda: ["never", "nunca"])
    intends_to_vote_question: str = "intends_to_vote"


class AppConfig(BaseModel):
    database: DatabaseConfig
    retry: RetryConfig = Field(default_factory=RetryConfig)
    idempotency: IdempotencyConfig = Field(default_factory=IdempotencyConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    drafts: DraftConfig = Field(default_factory=DraftConfig)
    business_rules: BusinessRuleSettings = Field(default_factory=BusinessRuleSettings)


def _read_json_file(path: Path) -> dict:
    try:
        if path.exists():
            return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.error("Failed to read JSON config %s: %s", path, e)
    return {}


def load_config() -> AppConfig:
    """Load configuration with validation.

    Precedence (highest first):
    1) Environment variables
    2) Text files in `config/` (optional)
    3) survey_intake_config.json at project root (primary base)
    4) Safe defaults for development
    """

    base = _read_json_file(ROOT_CONFIG)

    def _base(path: str, default: Optional[str] = None) -> Optional[str]:
        cur: object = base
        for key in path.split("."):
            if not isinstance(cur, dict) or key not in cur:
                return default
            cur = cur[key]
        return str(cur) if cur is not None else default

    def _pick(env_key: str, file_key: str, base_key: str, default: str) -> str:
        return str(_env(env_key) or _read_config_file(file_key) or _base(base_key, default)).strip()

    dsn = _env("DATABASE_URL") or _read_config_file("database.url") or _base("database.dsn") or "sqlite+pysqlite:///:memory:"

    try:
        retry = RetryConfig(
            max_attempts=int(_pick("RETRY_MAX_ATTEMPTS", "retry.max_attempts", "retry.max_attempts", "3")),
            base_delay=float(_pick("RETRY_BASE_DELAY", "retry.base_delay", "retry.base_delay", "1.0")),
            multiplier=float(_pick("RETRY_MULTIPLIER", "retry.multiplier", "retry.multiplier", "2.0")),
            max_delay=float(_pick("RETRY_MAX_DELAY", "retry.max_delay", "retry.max_delay", "30.0")),
        )
        idempotency = IdempotencyConfig(
            ttl_seconds=float(_pick("IDEMPOTENCY_TTL_SECONDS", "idempotency.ttl_seconds", "idempotency.ttl_seconds", "600")),
        )
        validation = ValidationConfig(
            max_text_length=int(_pick("VALIDATION_MAX_TEXT_LENGTH", "validation.max_text_length", "validation.max_text_length", "10000")),
            min_long_text_length=int(_pick("VALIDATION_MIN_LONG_TEXT", "validation.min_long_text_length", "validation.min_long_text_length", "10")),
            min_age_years=int(_pick("VALIDATION_MIN_AGE_YEARS", "validation.min_age_years", "validation.min_age_years", "18")),
            max_age_years=int(_pick("VALIDATION_MAX_AGE_YEARS", "validation.max_age_years", "validation.max_age_years", "120")),
            min_respondent_name_length=int(
                _pick("VALIDATION_MIN_NAME_LENGTH", "validation.min_respondent_name_length", "validation.min_respondent_name_length", "2")
            ),
        )
        drafts = DraftConfig(
            cleanup_older_than_days=int(_pick("DRAFT_CLEANUP_DAYS", "drafts.cleanup_older_than_days", "drafts.cleanup_older_than_days", "7")),
            keep_recent=int(_pick("DRAFT_KEEP_RECENT", "drafts.keep_recent", "drafts.keep_recent", "3")),
        )
        rules_raw = base.get("business_rules") if isinstance(base.get("business_rules"), dict) else {}
        cfg = AppConfig(
            database=DatabaseConfig(dsn=dsn),
            retry=retry,
            idempotency=idempotency,
            validation=validation,
            drafts=drafts,
            business_rules=BusinessRuleSettings.model_validate(rules_raw),
        )
        return cfg
    except (PydanticValidationError, ValueError) as e:
        logger.error("Invalid application configuration: %s", e)
        raise


__all__ = [
    "AppConfig",
    "DatabaseConfig",
    "RetryConfig",
    "IdempotencyConfig",
    "ValidationConfig",
    "DraftConfig",
    "BusinessRuleSettings",
    "load_config",
]
