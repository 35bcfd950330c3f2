from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from .config import get_settings

Base = declarative_base()


@lru_cache(maxsize=1)
def get_session_factory() -> sessionmaker | None:
    """
    Build the process-wide session factory, or None when DATABASE_URL is unset.

    The engine is created lazily so importing models never requires a
    reachable database.
    """
    settings = get_settings()
    if not settings.DATABASE_URL:
        return None
    engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)
