"""Database models."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict

from sqlalchemy import BigInteger, Column, DateTime, Integer, JSON, String

from services.database import Base


class PresetRecord(Base):
    """A user-authored overlay record layered on top of the base catalog."""

    __tablename__ = "preset_records"

    id = Column(String(300), primary_key=True)
    type = Column(String(16), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    data = Column(JSON, nullable=True)
    timestamp = Column(BigInteger, nullable=False, default=0)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the record in the persisted wire shape."""
        return {
            "id": self.id,
            "type": self.type,
            "name": self.name,
            "data": self.data,
            "timestamp": self.timestamp,
        }


class ImportedPreset(Base):
    """A preset selected from an external catalog file."""

    __tablename__ = "imported_presets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    position = Column(Integer, nullable=False, default=0)
    preset = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class SelectionHistoryEntry(Base):
    """Most-recent-first option choices for one preset."""

    __tablename__ = "selection_history"

    preset_name = Column(String(255), primary_key=True)
    entries = Column(JSON, nullable=False, default=list)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
