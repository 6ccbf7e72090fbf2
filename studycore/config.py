"""
Configuration for the study tracker.

Values come from the environment (a local .env file is loaded first).
The scheduling core never reads these; callers build a StudySettings once
and pass it explicitly into every scheduling call.
"""

from __future__ import annotations
import os
from pathlib import Path

from dotenv import load_dotenv
from sqlalchemy.engine import make_url

from studycore.fsrs.constants import DEFAULT_DESIRED_RETENTION, DEFAULT_INTERVALS
from studycore.schemas import StudySettings

# Load environment variables
load_dotenv()


DEFAULT_DATABASE_URL = "sqlite:///data/study.db"


def is_test_mode() -> bool:
    """Check if running in test mode."""
    return os.getenv("TEST_MODE", "false").lower() == "true"


def get_database_url() -> str:
    """
    Get the database URL from environment variables.

    Uses TEST_MODE env var to determine which database to connect to: in
    test mode the database name gets a 'test_' prefix, so
    sqlite:///data/study.db becomes sqlite:///data/test_study.db.

    Returns:
        SQLAlchemy connection string
    """
    base_url = os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)
    if not is_test_mode():
        return base_url

    url = make_url(base_url)
    if not url.database or url.database == ":memory:":
        return base_url

    path = Path(url.database)
    test_name = path.with_name(f"test_{path.name}")
    database = str(test_name) if url.get_backend_name() == "sqlite" else test_name.name
    return url.set(database=database).render_as_string(hide_password=False)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def _env_intervals(name: str) -> list[int]:
    raw = os.getenv(name)
    if not raw:
        return list(DEFAULT_INTERVALS)
    try:
        return [int(part) for part in raw.split(",") if part.strip()]
    except ValueError:
        raise ValueError(f"{name} must be a comma-separated list of days, got {raw!r}")


def load_settings() -> StudySettings:
    """
    Build study settings from the environment.

    Environment:
        DESIRED_RETENTION: Target recall probability (default 0.9)
        USE_FSRS: Adaptive scheduling on/off (default true)
        CRAM_MODE: Halve legacy intervals (default false)
        REVIEW_INTERVALS: Comma-separated legacy interval table

    Raises:
        ValueError: If a variable cannot be parsed or fails validation
    """
    retention = os.getenv("DESIRED_RETENTION")
    return StudySettings(
        intervals=_env_intervals("REVIEW_INTERVALS"),
        cram_mode=_env_bool("CRAM_MODE", False),
        use_fsrs=_env_bool("USE_FSRS", True),
        desired_retention=float(retention) if retention else DEFAULT_DESIRED_RETENTION,
    )
