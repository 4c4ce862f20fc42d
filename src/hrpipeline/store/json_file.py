"""JSON snapshot store used by the CLI."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Callable

import structlog

from ..schemas import Application, OutboxTask, TestCombination, TestLibraryEntry, TestSubmission
from .memory import InMemoryStore

_TABLES = (
    ("applications", "_applications", Application),
    ("combinations", "_combinations", TestCombination),
    ("submissions", "_submissions", TestSubmission),
    ("library", "_library", TestLibraryEntry),
    ("outbox", "_tasks", OutboxTask),
)


class JsonFileStore(InMemoryStore):
    """In-memory store that rewrites a JSON snapshot after every write."""

    def __init__(self, path: Path, *, now_provider: Callable[[], datetime] | None = None) -> None:
        super().__init__(now_provider=now_provider)
        self._path = path
        self._logger = structlog.get_logger(__name__)
        if path.exists():
            self._load()

    def _load(self) -> None:
        try:
            data = json.loads(self._path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid state file {self._path}: {exc}") from exc
        for key, attr, model in _TABLES:
            table = getattr(self, attr)
            for raw in data.get(key, []):
                row = model.model_validate(raw)
                table[row.id] = row
        self._logger.debug("store.loaded", path=str(self._path))

    def _commit(self) -> None:
        snapshot = {
            key: [row.model_dump(mode="json", by_alias=True) for row in getattr(self, attr).values()]
            for key, attr, _ in _TABLES
        }
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(snapshot, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp_path.replace(self._path)
