"""Database bootstrap utilities.

Convenience imports for engine construction and the migrations runner that
applies the packaged SQL files. The DB layer stays minimal and does not leak
ORM models into the pipeline.
"""

from survey_intake.db.base import dispose_engine, get_engine, make_engine
from survey_intake.db.migrations_runner import apply_migrations

__all__ = [
    "get_engine",
    "make_engine",
    "dispose_engine",
    "apply_migrations",
]
