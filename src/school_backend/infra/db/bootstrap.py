from __future__ import annotations

import logging
from typing import Optional

from src.school_backend.config import settings
from src.school_backend.infra.db.models import Base
from src.school_backend.infra.db.session import create_sqlalchemy_engine, create_sqlalchemy_session_factory
from src.school_backend.infra.db.sql_repositories import build_sql_repositories
from src.school_backend.infra.db.wiring import set_repositories

logger = logging.getLogger(__name__)


def init_sql_repositories(database_url: Optional[str] = None) -> bool:
    """Optionally switch the in-memory repositories to SQL-backed implementations.

    Called from the application startup hook. If USE_SQL_REPOS is not enabled
    or DATABASE_URL is not configured, this is a no-op and the in-memory
    repositories remain active. Returns whether the switch happened.
    """

    if not settings.use_sql_repos:
        return False

    db_url = database_url or settings.database_url
    if not db_url:
        # Misconfigured: requested SQL repos but no database URL. Leave
        # in-memory repos in place.
        logger.warning("USE_SQL_REPOS is enabled but DATABASE_URL is not set; keeping in-memory repositories")
        return False

    engine = create_sqlalchemy_engine(db_url)

    # Create tables if they do not exist. In a real deployment this should be
    # handled by migrations.
    Base.metadata.create_all(engine)

    set_repositories(build_sql_repositories(create_sqlalchemy_session_factory(engine)))
    logger.info("SQL-backed repositories enabled")
    return True
