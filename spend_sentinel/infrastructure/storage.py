"""Storage port for subsystem state documents, with file and in-memory adapters"""

import copy
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from spend_sentinel.domain.exceptions import StorageError

Document = Dict[str, Any]


class StateStore(Protocol):
    """
    Load/save one JSON-compatible document per subsystem.

    ``load`` returns None when nothing was stored yet and raises StorageError
    when stored state is unreadable. ``save`` raises StorageError on failure.
    Callers must serialize access (single writer per document).
    """

    def load(self, name: str) -> Optional[Document]:
        ...

    def save(self, name: str, document: Document) -> None:
        ...


class JsonFileStore:
    """One ``<name>.json`` file per document, replaced atomically on save"""

    def __init__(self, data_dir: str | Path):
        self.data_dir = Path(data_dir)

    def path_for(self, name: str) -> Path:
        return self.data_dir / f"{name}.json"

    def load(self, name: str) -> Optional[Document]:
        path = self.path_for(name)
        if not path.exists():
            return None
        try:
            document = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise StorageError(f"Unreadable state file {path}: {e}") from e
        if not isinstance(document, dict):
            raise StorageError(f"State file {path} does not hold an object")
        return document

    def save(self, name: str, document: Document) -> None:
        path = self.path_for(name)
        tmp_name = None
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            # Write-then-rename so readers never see a half-written file
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=self.data_dir, prefix=f".{name}.", suffix=".tmp", delete=False
            ) as tmp:
                tmp_name = tmp.name
                json.dump(document, tmp, indent=2)
            os.replace(tmp_name, path)
        except (OSError, TypeError, ValueError) as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageError(f"Failed to write state file {path}: {e}") from e


class MemoryStore:
    """Dict-backed store for tests and hosts that do not persist state"""

    def __init__(self, documents: Optional[Dict[str, Document]] = None):
        self.documents: Dict[str, Document] = dict(documents or {})

    def load(self, name: str) -> Optional[Document]:
        document = self.documents.get(name)
        return copy.deepcopy(document) if document is not None else None

    def save(self, name: str, document: Document) -> None:
        self.documents[name] = copy.deepcopy(document)
