"""Layer user modification, deletion and new-preset records over a base catalog."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Collection, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from flask import current_app

from services.presets import Preset, PresetError
from services.record_store import (
    OverlayRecord,
    RecordCorrupt,
    RecordType,
    StorageUnavailable,
    now_ms,
    record_id,
)


class PresetNotFound(PresetError):
    """Raised when an edit targets a preset missing from the resolved catalog."""


def _logger():
    try:
        return current_app.logger
    except RuntimeError:
        return logging.getLogger("services.overlay_store")


def _place(working: List[Tuple[Preset, Optional[str]]], preset: Preset, source: Optional[str] = None) -> None:
    """Append ``preset``, first removing any entry that already uses its name."""
    for index, (existing, _) in enumerate(working):
        if existing.name == preset.name:
            _logger().debug("Preset %r declared again; replacing earlier entry.", preset.name)
            del working[index]
            break
    working.append((preset, source))


def merge_presets(
    base: Iterable[Preset],
    modifications: Mapping[str, Mapping[str, Any]],
    deletions: Collection[str],
    new_presets: Sequence[Preset],
) -> List[Preset]:
    """Return the resolved catalog for a base list and a set of user records.

    Deleted base presets are dropped (deletion beats modification), surviving
    ones receive their patch, then new presets replace any same-name entry and
    are appended in the given order. Patches without a base match are ignored.
    """
    return [preset for preset, _ in _merge_with_sources(base, modifications, deletions, new_presets)]


def _merge_with_sources(
    base: Iterable[Preset],
    modifications: Mapping[str, Mapping[str, Any]],
    deletions: Collection[str],
    new_presets: Sequence[Preset],
) -> List[Tuple[Preset, Optional[str]]]:
    """Merge as ``merge_presets`` does, pairing each preset with its base name.

    The base name is ``None`` for user-authored presets.
    """
    working: List[Tuple[Preset, Optional[str]]] = []

    for preset in base:
        base_name = preset.name
        if base_name in deletions:
            continue
        patch = modifications.get(base_name)
        if patch is not None:
            try:
                preset = preset.with_patch(patch)
            except PresetError as exc:
                _logger().warning("Skipping malformed modification for %r: %s", base_name, exc)
        _place(working, preset, base_name)

    for preset in new_presets:
        _place(working, replace(preset, internal=False) if preset.internal else preset)

    return working


class PresetRepository:
    """Base catalog plus overlay records, persisted through a record store.

    The store needs ``read_all``, ``upsert``, ``delete``, ``delete_types`` and
    ``clear``. Writes update the in-memory records first; a store failure is
    logged and the in-memory state stays authoritative for this session.
    """

    def __init__(self, store, base: Iterable[Preset] = ()) -> None:
        self._store = store
        self._base: List[Preset] = list(base)
        self._records: Dict[str, OverlayRecord] = {}
        self._last_timestamp = 0

    @property
    def records(self) -> List[OverlayRecord]:
        return list(self._records.values())

    def load(self, base: Optional[Iterable[Preset]] = None) -> List[Preset]:
        """Read every record from the store and return the merged catalog."""
        if base is not None:
            self._base = list(base)

        try:
            raw_records = self._store.read_all()
        except StorageUnavailable as exc:
            _logger().warning("Preset record store unavailable; using in-memory records: %s", exc)
            return self.merged_catalog()

        records: Dict[str, OverlayRecord] = {}
        for raw in raw_records:
            try:
                record = OverlayRecord.from_dict(raw)
            except RecordCorrupt as exc:
                _logger().warning("Skipping corrupt preset record %r: %s", _raw_id(raw), exc)
                continue
            records.pop(record.id, None)
            records[record.id] = record
            self._last_timestamp = max(self._last_timestamp, record.timestamp)

        self._records = records
        return self.merged_catalog()

    def merged_catalog(self) -> List[Preset]:
        return [preset for preset, _ in self._merged_with_sources()]

    def _merged_with_sources(self) -> List[Tuple[Preset, Optional[str]]]:
        modifications: Dict[str, Mapping[str, Any]] = {}
        deletions = set()
        new_records: List[OverlayRecord] = []
        for record in self._records.values():
            if record.type is RecordType.MODIFICATION:
                modifications[record.name] = record.data or {}
            elif record.type is RecordType.DELETION:
                deletions.add(record.name)
            else:
                new_records.append(record)

        new_presets = []
        for record in sorted(new_records, key=lambda item: item.timestamp):
            try:
                new_presets.append(Preset.from_dict({**(record.data or {}), "name": record.name}, internal=False))
            except PresetError as exc:
                _logger().warning("Skipping corrupt new preset %r: %s", record.name, exc)

        return _merge_with_sources(self._base, modifications, deletions, new_presets)

    def get(self, name: str) -> Optional[Preset]:
        for preset in self.merged_catalog():
            if preset.name == name:
                return preset
        return None

    def apply_modification(self, name: str, patch: Mapping[str, Any]) -> List[Preset]:
        """Record an edit of the named preset."""
        current = self._require(name)
        updated = current.with_patch(patch)

        if current.internal:
            base_name = self._base_name_for(name)
            previous = self._records.get(record_id(RecordType.MODIFICATION, base_name))
            merged_patch = {**((previous.data or {}) if previous else {}), **dict(patch)}
            self._write(OverlayRecord(RecordType.MODIFICATION, base_name, merged_patch, self._next_timestamp()))
        else:
            previous = self._records[record_id(RecordType.NEW, name)]
            if updated.name != name:
                self._remove([previous.id])
            self._write(OverlayRecord(RecordType.NEW, updated.name, updated.to_dict(), previous.timestamp))

        return self.merged_catalog()

    def apply_deletion(self, name: str) -> List[Preset]:
        """Hide a factory preset, or drop a user-authored one entirely.

        A factory preset that the user-authored one had replaced is hidden as
        well, so the name is gone from the catalog afterwards.
        """
        current = self._require(name)
        if not current.internal:
            self._remove([record_id(RecordType.NEW, name)])
        base_name = self._visible_base_name(name)
        if base_name is not None:
            self._write(OverlayRecord(RecordType.DELETION, base_name, None, self._next_timestamp()))
        return self.merged_catalog()

    def apply_new(self, preset: Preset) -> List[Preset]:
        """Add a user-authored preset; a same-name entry is replaced and the new one goes last."""
        preset = replace(preset, internal=False)
        record = OverlayRecord(RecordType.NEW, preset.name, preset.to_dict(), self._next_timestamp())
        self._remove([record.id])
        self._write(record)
        return self.merged_catalog()

    def reset_preset(self, name: str) -> List[Preset]:
        """Drop the modification and deletion records of one factory preset."""
        base_name = self._base_name_for(name)
        self._remove([record_id(RecordType.MODIFICATION, base_name), record_id(RecordType.DELETION, base_name)])
        return self.merged_catalog()

    def reset_factory(self) -> List[Preset]:
        """Drop every modification and deletion record, keeping new presets."""
        kept = {key: record for key, record in self._records.items() if record.type is RecordType.NEW}
        self._records = kept
        try:
            self._store.delete_types([RecordType.MODIFICATION, RecordType.DELETION])
        except StorageUnavailable as exc:
            _logger().warning("Could not persist factory reset: %s", exc)
        return self.merged_catalog()

    def clear_all(self) -> List[Preset]:
        self._records = {}
        try:
            self._store.clear()
        except StorageUnavailable as exc:
            _logger().warning("Could not persist preset record clear: %s", exc)
        return self.merged_catalog()

    def _require(self, name: str) -> Preset:
        preset = self.get(name)
        if preset is None:
            raise PresetNotFound(f"Preset {name!r} not found.")
        return preset

    def _visible_base_name(self, name: str) -> Optional[str]:
        for preset, source in self._merged_with_sources():
            if preset.name == name:
                return source
        return None

    def _base_name_for(self, name: str) -> str:
        """Map a resolved name back to the base preset it came from.

        Hidden presets are matched through their patches, the last base
        declaration winning as it does in the merge.
        """
        visible = self._visible_base_name(name)
        if visible is not None:
            return visible
        for preset in reversed(self._base):
            record = self._records.get(record_id(RecordType.MODIFICATION, preset.name))
            patch = (record.data or {}) if record else {}
            if patch.get("name", preset.name) == name:
                return preset.name
        return name

    def _next_timestamp(self) -> int:
        self._last_timestamp = max(now_ms(), self._last_timestamp + 1)
        return self._last_timestamp

    def _write(self, record: OverlayRecord) -> None:
        self._records.pop(record.id, None)
        self._records[record.id] = record
        try:
            self._store.upsert(record)
        except StorageUnavailable as exc:
            _logger().warning("Could not persist preset record %s: %s", record.id, exc)

    def _remove(self, ids: Iterable[str]) -> None:
        ids = list(ids)
        for key in ids:
            self._records.pop(key, None)
        try:
            self._store.delete(ids)
        except StorageUnavailable as exc:
            _logger().warning("Could not delete preset records %s: %s", ", ".join(ids), exc)


def _raw_id(raw: Any) -> Any:
    if isinstance(raw, Mapping):
        return raw.get("id")
    return None
