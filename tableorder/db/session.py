"""Database session management for the SQL-backed document store."""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from tableorder.core.config import settings


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine, handling SQLite's threading restriction."""
    connect_args = {}
    pool_config = {}

    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
        pool_config = {
            "pool_pre_ping": True,
            "pool_recycle": 1800,  # Recycle connections every 30 minutes
        }
    else:
        pool_config = {
            "pool_size": 5,
            "max_overflow": 10,
            "pool_pre_ping": True,
            "pool_recycle": 3600,
        }

    return create_engine(
        database_url,
        connect_args=connect_args,
        echo=echo,
        **pool_config,
    )


engine = build_engine(settings.database_url, echo=False)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
