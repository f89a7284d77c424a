"""SQLAlchemy ORM models for persisted subsystem state"""

from sqlalchemy import Column, DateTime, JSON, Text
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class StateDocument(Base):
    """One JSON state document per subsystem (recurring, mandates, budgets, ...)"""

    __tablename__ = "state_document"

    name = Column(Text, primary_key=True)
    payload = Column(JSON, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
