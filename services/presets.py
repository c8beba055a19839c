"""Preset value type and catalog wire format."""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple


class PresetError(ValueError):
    """Raised when preset data does not match the wire format."""


class CatalogError(RuntimeError):
    """Raised when a preset catalog file cannot be loaded."""


@dataclass(frozen=True)
class PresetOption:
    """One entry of a structured option list."""

    id: str
    text: str

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "text": self.text}


@dataclass(frozen=True)
class Preset:
    """A named template instruction plus its metadata."""

    name: str
    message: str
    category: Tuple[str, ...] = ()
    options: Tuple[PresetOption, ...] = ()
    randomize_options: bool = False
    internal: bool = True

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], *, internal: Optional[bool] = None) -> "Preset":
        """Build a preset from its wire-format dict."""
        if not isinstance(data, Mapping):
            raise PresetError("Preset must be a JSON object.")

        name = data.get("name")
        message = data.get("message")
        if not isinstance(name, str) or not name.strip():
            raise PresetError("Preset name is required.")
        if not isinstance(message, str):
            raise PresetError(f"Preset {name!r} has no message.")

        if internal is None:
            internal = bool(data.get("internal", True))

        return cls(
            name=name,
            message=message,
            category=_parse_category(data.get("category", ())),
            options=_parse_options(data.get("options") or ()),
            randomize_options=bool(data.get("randomizeOptions", data.get("randomize_options", False))),
            internal=internal,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the catalog wire format."""
        data: Dict[str, Any] = {
            "name": self.name,
            "message": self.message,
            "category": list(self.category),
            "randomizeOptions": self.randomize_options,
            "internal": self.internal,
        }
        if self.options:
            data["options"] = [option.to_dict() for option in self.options]
        return data

    def with_patch(self, patch: Mapping[str, Any]) -> "Preset":
        """Shallow-merge patch fields onto this preset; patch values win.

        Unknown keys are ignored and ``internal`` can never be patched.
        """
        if not isinstance(patch, Mapping):
            raise PresetError("Preset patch must be a JSON object.")

        changes: Dict[str, Any] = {}
        if "name" in patch:
            name = patch["name"]
            if not isinstance(name, str) or not name.strip():
                raise PresetError("Patched preset name must be a non-empty string.")
            changes["name"] = name
        if "message" in patch:
            if not isinstance(patch["message"], str):
                raise PresetError("Patched message must be a string.")
            changes["message"] = patch["message"]
        if "category" in patch:
            changes["category"] = _parse_category(patch["category"])
        if "options" in patch:
            changes["options"] = _parse_options(patch["options"] or ())
        for key in ("randomizeOptions", "randomize_options"):
            if key in patch:
                changes["randomize_options"] = bool(patch[key])
        return replace(self, **changes)


def _parse_category(value: Any) -> Tuple[str, ...]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple, set, frozenset)):
        raise PresetError("Preset category must be a list of strings.")
    seen: List[str] = []
    for item in value:
        if not isinstance(item, str):
            raise PresetError("Preset category must be a list of strings.")
        if item not in seen:
            seen.append(item)
    return tuple(seen)


def _parse_options(value: Iterable[Any]) -> Tuple[PresetOption, ...]:
    if not isinstance(value, (list, tuple)):
        raise PresetError("Preset options must be a list.")
    options = []
    for index, item in enumerate(value):
        if isinstance(item, PresetOption):
            options.append(item)
            continue
        if not isinstance(item, Mapping) or not isinstance(item.get("text"), str):
            raise PresetError(f"Option {index} must be an object with a text field.")
        option_id = item.get("id")
        options.append(PresetOption(id=str(option_id) if option_id is not None else f"{index + 1:03d}", text=item["text"]))
    return tuple(options)


def is_catalog_entry(data: Any) -> bool:
    """Return True when a raw dict carries the fields a catalog entry needs."""
    return (
        isinstance(data, dict)
        and bool(data.get("name"))
        and bool(data.get("message"))
        and isinstance(data.get("category"), list)
    )


def load_catalog_file(path: Path) -> List[Preset]:
    """Load a wire-format catalog, keeping valid entries sorted by name."""
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise CatalogError(f"Could not load preset catalog {path}: {exc}") from exc

    if not isinstance(raw, list):
        raise CatalogError(f"Preset catalog {path} must contain a JSON array.")

    presets = []
    for entry in raw:
        if not is_catalog_entry(entry):
            continue
        try:
            presets.append(Preset.from_dict(entry, internal=True))
        except PresetError:
            continue
    return sorted(presets, key=lambda preset: preset.name.casefold())


def presets_to_dicts(presets: Iterable[Preset]) -> List[Dict[str, Any]]:
    return [preset.to_dict() for preset in presets]

