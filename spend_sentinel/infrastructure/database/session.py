"""Database engine and session factory"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from spend_sentinel.config import settings
from spend_sentinel.infrastructure.database.models import Base


def create_session_factory(database_url: str | None = None, create_tables: bool = True) -> sessionmaker:
    """Build a session factory, creating the state table on first use"""
    url = database_url or settings.database_url
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    engine = create_engine(
        url,
        pool_pre_ping=True,  # Verify connections before using
        connect_args=connect_args,
    )
    if create_tables:
        Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
