"""Engine and session factory configuration."""

from functools import lru_cache
import logging

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from pim_transfer.core.config import get_settings
from pim_transfer.db.base import Base

logger = logging.getLogger(__name__)


@lru_cache
def get_engine() -> Engine:
    """Build the process-wide engine on first use."""
    settings = get_settings()
    if settings.database_url.startswith("sqlite"):
        return create_engine(
            settings.database_url,
            echo=settings.database_echo,
            connect_args={"check_same_thread": False},
        )
    # pool_pre_ping and pool_recycle keep long-running worker connections healthy
    return create_engine(
        settings.database_url,
        echo=settings.database_echo,
        poolclass=QueuePool,
        pool_pre_ping=True,
        pool_recycle=1800,
        pool_size=5,
        max_overflow=10,
        connect_args={
            "connect_timeout": 10,
            "keepalives": 1,
            "keepalives_idle": 30,
            "keepalives_interval": 10,
            "keepalives_count": 5,
        },
    )


@lru_cache
def get_session_factory() -> sessionmaker[Session]:
    return sessionmaker(bind=get_engine(), autoflush=False, expire_on_commit=False)


def init_db(engine: Engine | None = None) -> None:
    """Create every table known to the models package."""
    import pim_transfer.db.models  # noqa: F401  registers mappers

    engine = engine or get_engine()
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ensured")

