"""Bounded per-preset log of previously chosen template options."""

from __future__ import annotations

import logging
from typing import Dict, List

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from models import SelectionHistoryEntry
from services.database import session_scope
from services.record_store import StorageUnavailable

HISTORY_LIMIT = 5


def _logger():
    try:
        return current_app.logger
    except RuntimeError:
        return logging.getLogger("services.selection_history")


class SqlHistoryStore:
    """History persistence backed by the ``selection_history`` table."""

    def load_all(self) -> Dict[str, List[str]]:
        try:
            with session_scope() as session:
                rows = session.query(SelectionHistoryEntry).all()
                return {row.preset_name: list(row.entries or []) for row in rows}
        except SQLAlchemyError as exc:
            raise StorageUnavailable(f"Could not read selection history: {exc}") from exc

    def save(self, preset_name: str, entries: List[str]) -> None:
        try:
            with session_scope() as session:
                row = session.get(SelectionHistoryEntry, preset_name)
                if row is None:
                    row = SelectionHistoryEntry(preset_name=preset_name)
                    session.add(row)
                row.entries = list(entries)
        except SQLAlchemyError as exc:
            raise StorageUnavailable(f"Could not save selection history for {preset_name!r}: {exc}") from exc


class SelectionHistory:
    """In-memory cache of recent selections, written through to a store.

    History is advisory: persistence failures are logged and never raised.
    """

    def __init__(self, store, limit: int = HISTORY_LIMIT) -> None:
        self._store = store
        self._limit = limit
        self._cache: Dict[str, List[str]] = {}

    def add_selection(self, preset_name: str, text: str) -> None:
        self._ensure_loaded()
        entries = [text, *self._cache.get(preset_name, [])][: self._limit]
        self._cache[preset_name] = entries
        try:
            self._store.save(preset_name, entries)
        except StorageUnavailable as exc:
            _logger().warning("Selection history not persisted: %s", exc)

    def get_history(self, preset_name: str) -> List[str]:
        """Return up to ``limit`` entries, most recent first."""
        self._ensure_loaded()
        return list(self._cache.get(preset_name, [])[: self._limit])

    def _ensure_loaded(self) -> None:
        if self._cache:
            return
        try:
            loaded = self._store.load_all()
        except StorageUnavailable as exc:
            _logger().warning("Selection history unavailable: %s", exc)
            return
        self._cache = {name: list(entries)[: self._limit] for name, entries in loaded.items()}
