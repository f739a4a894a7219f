"""Persistence for list documents and the list index.

Documents are stored whole. A write either leaves the previous file or the new
one in place, never a mix, because the JSON is written to a temporary file in
the same directory and then moved over the target.
"""

from __future__ import annotations

import json
import logging as std_logging
import os
import re
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from .errors import ListNotFoundError
from .models import ListRecord, utc_timestamp

logger = std_logging.getLogger("stagedo.storage")

INDEX_FILE = "lists.json"
_SAFE_ID = re.compile(r"^[A-Za-z0-9_-]+$")


class DocumentStore(Protocol):
    def load(self, list_id: str) -> Optional[Dict[str, Any]]:
        ...

    def save(self, list_id: str, document: Dict[str, Any]) -> None:
        ...

    def delete(self, list_id: str) -> bool:
        ...


def _check_id(list_id: str) -> str:
    if not list_id or not _SAFE_ID.match(list_id):
        raise ValueError(f"Invalid list id: {list_id!r}")
    return list_id


def write_json_atomic(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    data = json.dumps(payload, indent=2, ensure_ascii=False)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(data)
        os.replace(tmp_name, path)
    except OSError:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def read_json(path: Path) -> Optional[Any]:
    """Parsed content of ``path``; ``None`` when missing or unreadable."""
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning(f"Ignoring unreadable document {path}: {e}")
        return None


class JsonFileStore:
    """One ``<list_id>.json`` file per list under ``base_dir``."""

    def __init__(self, base_dir: Path | str):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, list_id: str) -> Path:
        return self.base_dir / f"{_check_id(list_id)}.json"

    def load(self, list_id: str) -> Optional[Dict[str, Any]]:
        data = read_json(self.path_for(list_id))
        if data is not None and not isinstance(data, dict):
            logger.warning(f"Document for list {list_id} is not an object, ignoring it")
            return None
        return data

    def save(self, list_id: str, document: Dict[str, Any]) -> None:
        write_json_atomic(self.path_for(list_id), document)

    def delete(self, list_id: str) -> bool:
        path = self.path_for(list_id)
        if not path.exists():
            return False
        path.unlink()
        return True


class MemoryStore:
    """In-process store; documents are kept as serialised JSON strings."""

    def __init__(self):
        self._docs: Dict[str, str] = {}

    def load(self, list_id: str) -> Optional[Dict[str, Any]]:
        raw = self._docs.get(list_id)
        return None if raw is None else json.loads(raw)

    def save(self, list_id: str, document: Dict[str, Any]) -> None:
        self._docs[list_id] = json.dumps(document, ensure_ascii=False)

    def delete(self, list_id: str) -> bool:
        return self._docs.pop(list_id, None) is not None


class ListIndex:
    """The list of lists, kept in ``lists.json``. Newest list first.

    Changes are read-modify-write of the whole index, serialised by one lock.
    """

    def __init__(self, path: Optional[Path | str] = None):
        self.path = Path(path) if path is not None else None
        self._memory: List[ListRecord] = []
        self._lock = threading.Lock()

    def all(self) -> List[ListRecord]:
        if self.path is None:
            return list(self._memory)
        data = read_json(self.path)
        if not isinstance(data, list):
            return []
        records = [ListRecord.from_dict(row) for row in data if isinstance(row, dict)]
        return [r for r in records if r is not None]

    def _write(self, records: List[ListRecord]) -> None:
        if self.path is None:
            self._memory = list(records)
            return
        write_json_atomic(self.path, [r.to_dict() for r in records])

    def get(self, list_id: str) -> ListRecord:
        for record in self.all():
            if record.list_id == list_id:
                return record
        raise ListNotFoundError(f"List '{list_id}' not found.")

    def add(self, record: ListRecord) -> ListRecord:
        with self._lock:
            records = [r for r in self.all() if r.list_id != record.list_id]
            records.insert(0, record)
            self._write(records)
        return record

    def touch(self, list_id: str) -> None:
        with self._lock:
            records = self.all()
            for record in records:
                if record.list_id == list_id:
                    record.updated_at = utc_timestamp()
                    self._write(records)
                    return

    def remove(self, list_id: str) -> bool:
        with self._lock:
            records = self.all()
            kept = [r for r in records if r.list_id != list_id]
            if len(kept) == len(records):
                return False
            self._write(kept)
        return True
