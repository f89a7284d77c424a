"""Shared persistence plumbing for the stateful subsystems"""

import logging
from datetime import date, datetime, time
from typing import Optional

from pydantic import ValidationError

from spend_sentinel.config import Settings, settings as default_settings
from spend_sentinel.domain.exceptions import StorageError
from spend_sentinel.infrastructure.observability.metrics import record_storage_failure
from spend_sentinel.infrastructure.storage import Document, MemoryStore, StateStore
from spend_sentinel.services.observers import FinanceObserver

logger = logging.getLogger(__name__)


class PersistentComponent:
    """
    Base for subsystems that own one state document.

    Subclasses set ``document_name`` and implement ``_restore`` / ``_snapshot``.
    State is read once at construction; an absent or corrupt document leaves
    the subsystem empty. Saves are best-effort: failures are logged and the
    in-memory state stays authoritative.
    """

    document_name = ""

    def __init__(
        self,
        store: Optional[StateStore] = None,
        observer: Optional[FinanceObserver] = None,
        config: Optional[Settings] = None,
    ):
        self.store = store if store is not None else MemoryStore()
        self.observer = observer or FinanceObserver()
        self.config = config or default_settings
        self._load()

    def _restore(self, document: Document) -> None:
        raise NotImplementedError

    def _snapshot(self) -> Document:
        raise NotImplementedError

    def _load(self) -> None:
        try:
            document = self.store.load(self.document_name)
            self._restore(document or {})
        except (StorageError, ValidationError, KeyError, TypeError) as e:
            record_storage_failure("load")
            logger.warning(
                f"Failed to load {self.document_name} state, starting empty: {e}",
                extra={"document": self.document_name},
            )
            self._reset()

    def _reset(self) -> None:
        """Drop any partially restored state"""
        self._restore({})

    def _persist(self) -> None:
        try:
            self.store.save(self.document_name, self._snapshot())
        except StorageError as e:
            record_storage_failure("save")
            logger.warning(f"Failed to save {self.document_name} state: {e}", extra={"document": self.document_name})


def today_or(today: Optional[date]) -> date:
    return today or date.today()


def now_or(now: Optional[datetime]) -> datetime:
    return now or datetime.now()


def moment_for(today: Optional[date]) -> datetime:
    """Timestamp for records raised on a pinned day (midnight), else the current time"""
    return datetime.combine(today, time.min) if today is not None else datetime.now()
