"""Data access layer for subsystem state documents"""

from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from spend_sentinel.domain.exceptions import StorageError
from spend_sentinel.infrastructure.database.models import StateDocument
from spend_sentinel.infrastructure.storage import Document


class SqlStateStore:
    """StateStore backed by the ``state_document`` table"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def load(self, name: str) -> Optional[Document]:
        """Fetch a stored document, or None when the subsystem never saved"""
        try:
            with self.session_factory() as db:
                row = db.get(StateDocument, name)
                if row is None:
                    return None
                payload = row.payload
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to load state document {name!r}: {e}") from e

        if not isinstance(payload, dict):
            raise StorageError(f"State document {name!r} does not hold an object")
        return payload

    def save(self, name: str, document: Document) -> None:
        """Insert or replace a document in one transaction"""
        try:
            with self.session_factory() as db:
                db.merge(StateDocument(name=name, payload=document))
                db.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to save state document {name!r}: {e}") from e
