"""Import presets from an external catalog file into the imported list."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from models import ImportedPreset
from services.database import session_scope
from services.presets import CatalogError, Preset, PresetError, load_catalog_file
from services.record_store import StorageUnavailable


def _logger():
    try:
        return current_app.logger
    except RuntimeError:
        return logging.getLogger("services.preset_import")


class SqlImportStore:
    """Imported-preset list backed by the ``imported_presets`` table."""

    def load(self) -> List[Dict[str, Any]]:
        try:
            with session_scope() as session:
                rows = session.query(ImportedPreset).order_by(ImportedPreset.position, ImportedPreset.id).all()
                return [dict(row.preset) for row in rows]
        except SQLAlchemyError as exc:
            raise StorageUnavailable(f"Could not read imported presets: {exc}") from exc

    def replace(self, presets: Iterable[Dict[str, Any]]) -> None:
        """Clear the table and store ``presets`` in order."""
        try:
            with session_scope() as session:
                session.query(ImportedPreset).delete(synchronize_session=False)
                for position, preset in enumerate(presets):
                    session.add(ImportedPreset(position=position, preset=dict(preset)))
        except SQLAlchemyError as exc:
            raise StorageUnavailable(f"Could not save imported presets: {exc}") from exc


@dataclass
class ImportResult:
    success: bool
    message: str
    updated: int = 0
    new: int = 0
    total: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "updated": self.updated,
            "new": self.new,
            "total": self.total,
        }


class PresetImporter:
    """Keeps the imported-preset list and merges new selections into it."""

    def __init__(self, store) -> None:
        self._store = store
        self._imported: Optional[List[Preset]] = None

    def imported(self) -> List[Preset]:
        if self._imported is None:
            presets = []
            try:
                raw_presets = self._store.load()
            except StorageUnavailable as exc:
                _logger().warning("Imported presets unavailable: %s", exc)
                raw_presets = []
            for raw in raw_presets:
                try:
                    presets.append(Preset.from_dict(raw, internal=True))
                except PresetError as exc:
                    _logger().warning("Skipping corrupt imported preset: %s", exc)
            self._imported = presets
        return list(self._imported)

    def preset_status(self, preset: Preset) -> Optional[str]:
        """Return ``"new"``, ``"updated"`` or ``None`` relative to the imported list."""
        for existing in self.imported():
            if existing.name == preset.name:
                return "updated" if existing.message != preset.message else None
        return "new"

    @staticmethod
    def filter_presets(presets: Iterable[Preset], text: str) -> List[Preset]:
        needle = (text or "").strip().lower()
        if not needle:
            return list(presets)
        return [preset for preset in presets if needle in preset.name.lower()]

    def available(self, path: Path) -> List[Preset]:
        return load_catalog_file(path)

    def import_presets(self, selected: Iterable[Preset]) -> ImportResult:
        """Replace same-name imported presets and append the rest."""
        selected = list(selected)
        if not selected:
            return ImportResult(success=False, message="No presets selected")

        merged: Dict[str, Preset] = {preset.name: preset for preset in self.imported()}
        updated_count = 0
        new_count = 0
        for preset in selected:
            if preset.name in merged:
                updated_count += 1
            else:
                new_count += 1
            merged[preset.name] = preset

        all_imported = list(merged.values())
        self._save(all_imported)
        total = len(all_imported)

        if updated_count and new_count:
            message = f"Updated {updated_count}, imported {new_count} new. Total: {total}"
        elif updated_count:
            message = f"Updated {updated_count} preset(s). Total: {total}"
        else:
            message = f"Imported {new_count} new preset(s). Total: {total}"

        return ImportResult(success=True, message=message, updated=updated_count, new=new_count, total=total)

    def import_from_file(self, path: Path, names: Iterable[str]) -> ImportResult:
        try:
            available = self.available(path)
        except CatalogError as exc:
            return ImportResult(success=False, message=str(exc))
        if not available:
            return ImportResult(success=False, message="No presets found in catalog file")
        wanted = set(names)
        return self.import_presets(preset for preset in available if preset.name in wanted)

    def delete_preset(self, name: str) -> bool:
        presets = self.imported()
        remaining = [preset for preset in presets if preset.name != name]
        if len(remaining) == len(presets):
            return False
        self._save(remaining)
        return True

    def clear(self) -> None:
        self._save([])

    def _save(self, presets: List[Preset]) -> None:
        self._imported = list(presets)
        try:
            self._store.replace(_wire_dict(preset) for preset in presets)
        except StorageUnavailable as exc:
            _logger().warning("Imported presets not persisted: %s", exc)


def _wire_dict(preset: Preset) -> Dict[str, Any]:
    data = preset.to_dict()
    data.pop("internal", None)
    return data


def load_base_catalog(importer: PresetImporter, factory_path: Path) -> List[Preset]:
    """Imported presets when any exist, otherwise the factory catalog."""
    imported = importer.imported()
    if imported:
        return imported
    try:
        return load_catalog_file(factory_path)
    except CatalogError as exc:
        _logger().warning("Factory preset catalog unavailable: %s", exc)
        return []
