from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)


def _env_candidates() -> list[Path]:
    """.env files in lookup order: ENV_PATH, backend/api/.env, then the working directory."""
    candidates = []
    if os.getenv("ENV_PATH"):
        candidates.append(Path(os.environ["ENV_PATH"]))
    candidates.append(Path(__file__).resolve().parents[1] / ".env")
    candidates.append(Path.cwd() / ".env")
    return candidates


def _load_env_once() -> None:
    for path in _env_candidates():
        if path.exists():
            load_dotenv(path, override=False)
            return


def database_url() -> str:
    _load_env_once()

    db_url = os.getenv("DATABASE_URL") or os.getenv("DB_URL")
    if not db_url:
        tried = ", ".join(str(p) for p in _env_candidates())
        raise RuntimeError(
            "DATABASE_URL is not set. Ensure it exists in backend/api/.env or set ENV_PATH.\n"
            f"Tried: {tried}"
        )
    return db_url


_engine: Engine | None = None


def get_engine() -> Engine:
    global _engine

    if _engine is not None:
        return _engine

    db_url = database_url()
    _engine = create_engine(db_url, pool_pre_ping=True, future=True)
    logger.info("Database engine created (dialect=%s)", _engine.dialect.name)
    return _engine


def db_ping(engine: Engine) -> None:
    """Raises if the database cannot answer a trivial query."""
    with engine.connect() as conn:
        conn.execute(text("SELECT 1")).scalar_one()
