"""Durable storage for preset overlay records."""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from models import PresetRecord
from services.database import session_scope
from services.presets import PresetError


class StorageUnavailable(RuntimeError):
    """Raised when the overlay record store cannot be read or written."""


class RecordCorrupt(PresetError):
    """Raised when a persisted record does not have a usable shape."""


class RecordType(str, Enum):
    MODIFICATION = "modification"
    DELETION = "deletion"
    NEW = "new"


_ID_PREFIXES = {
    RecordType.MODIFICATION: "modified",
    RecordType.DELETION: "deleted",
    RecordType.NEW: "new",
}


def record_id(record_type: RecordType, preset_name: str) -> str:
    """Return the stable id of the record of ``record_type`` for a preset."""
    return f"{_ID_PREFIXES[record_type]}_{preset_name}"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class OverlayRecord:
    """One modification, deletion or new-preset record."""

    type: RecordType
    name: str
    data: Optional[Dict[str, Any]] = None
    timestamp: int = 0

    @property
    def id(self) -> str:
        return record_id(self.type, self.name)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "OverlayRecord":
        """Validate a persisted record dict."""
        if not isinstance(raw, Mapping):
            raise RecordCorrupt("Record is not an object.")
        try:
            record_type = RecordType(raw.get("type"))
        except ValueError as exc:
            raise RecordCorrupt(f"Unknown record type {raw.get('type')!r}.") from exc

        name = raw.get("name")
        if not isinstance(name, str) or not name:
            raise RecordCorrupt("Record has no preset name.")

        data = raw.get("data")
        if record_type is not RecordType.DELETION and not isinstance(data, Mapping):
            raise RecordCorrupt(f"{record_type.value} record for {name!r} has no data.")

        timestamp = raw.get("timestamp") or 0
        if not isinstance(timestamp, (int, float)):
            raise RecordCorrupt(f"Record for {name!r} has a non-numeric timestamp.")

        return cls(
            type=record_type,
            name=name,
            data=dict(data) if isinstance(data, Mapping) else None,
            timestamp=int(timestamp),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "name": self.name,
            "data": self.data,
            "timestamp": self.timestamp,
        }


class SqlRecordStore:
    """Overlay record store backed by the ``preset_records`` table.

    Every SQLAlchemy failure surfaces as :class:`StorageUnavailable`.
    """

    def read_all(self) -> List[Dict[str, Any]]:
        """Bulk-read every record as a raw dict, oldest first."""
        try:
            with session_scope() as session:
                rows = session.query(PresetRecord).order_by(PresetRecord.timestamp, PresetRecord.id).all()
                return [row.to_dict() for row in rows]
        except SQLAlchemyError as exc:
            raise StorageUnavailable(f"Could not read preset records: {exc}") from exc

    def upsert(self, record: OverlayRecord) -> None:
        """Insert or replace the record with the same id."""
        try:
            with session_scope() as session:
                row = session.get(PresetRecord, record.id)
                if row is None:
                    row = PresetRecord(id=record.id)
                    session.add(row)
                row.type = record.type.value
                row.name = record.name
                row.data = record.data
                row.timestamp = record.timestamp
        except SQLAlchemyError as exc:
            raise StorageUnavailable(f"Could not save preset record {record.id}: {exc}") from exc

    def delete(self, record_ids: Iterable[str]) -> None:
        ids = list(record_ids)
        if not ids:
            return
        try:
            with session_scope() as session:
                session.query(PresetRecord).filter(PresetRecord.id.in_(ids)).delete(synchronize_session=False)
        except SQLAlchemyError as exc:
            raise StorageUnavailable(f"Could not delete preset records: {exc}") from exc

    def delete_types(self, record_types: Iterable[RecordType]) -> None:
        values = [record_type.value for record_type in record_types]
        try:
            with session_scope() as session:
                session.query(PresetRecord).filter(PresetRecord.type.in_(values)).delete(synchronize_session=False)
        except SQLAlchemyError as exc:
            raise StorageUnavailable(f"Could not delete preset records: {exc}") from exc

    def clear(self) -> None:
        try:
            with session_scope() as session:
                session.query(PresetRecord).delete(synchronize_session=False)
        except SQLAlchemyError as exc:
            raise StorageUnavailable(f"Could not clear preset records: {exc}") from exc
