import json

import pytest

from services.preset_import import PresetImporter, SqlImportStore, load_base_catalog
from services.presets import CatalogError, Preset, load_catalog_file


class StubImportStore:
    def __init__(self, presets=None):
        self.presets = [dict(preset) for preset in presets or []]

    def load(self):
        return [dict(preset) for preset in self.presets]

    def replace(self, presets):
        self.presets = [dict(preset) for preset in presets]


def _preset(name, message="m"):
    return Preset(name=name, message=message, category=("Cat",))


def test_load_catalog_file_filters_and_sorts(test_storage):
    presets = load_catalog_file(test_storage["PRESETS_PATH"])

    assert [preset.name for preset in presets] == ["Alpha", "Beta", "Gamma"]
    assert all(preset.internal for preset in presets)
    assert presets[1].options[1].text == "Far future"


def test_load_catalog_file_sorts_case_insensitively(tmp_path):
    path = tmp_path / "presets.json"
    path.write_text(
        json.dumps(
            [
                {"name": "banana", "message": "b", "category": []},
                {"name": "Apple", "message": "a", "category": []},
                {"name": "", "message": "empty name", "category": []},
                {"name": "No message", "message": "", "category": []},
            ]
        ),
        encoding="utf-8",
    )

    assert [preset.name for preset in load_catalog_file(path)] == ["Apple", "banana"]


def test_load_catalog_file_errors(tmp_path):
    with pytest.raises(CatalogError):
        load_catalog_file(tmp_path / "missing.json")

    path = tmp_path / "object.json"
    path.write_text(json.dumps({"name": "not a list"}), encoding="utf-8")
    with pytest.raises(CatalogError):
        load_catalog_file(path)


def test_import_counts_new_and_updated():
    store = StubImportStore([{"name": "Alpha", "message": "old", "category": ["Cat"]}])
    importer = PresetImporter(store)

    result = importer.import_presets([_preset("Alpha", "new text"), _preset("Beta")])

    assert result.success is True
    assert (result.updated, result.new, result.total) == (1, 1, 2)
    assert result.message == "Updated 1, imported 1 new. Total: 2"
    assert [preset["name"] for preset in store.presets] == ["Alpha", "Beta"]
    assert store.presets[0]["message"] == "new text"
    assert "internal" not in store.presets[0]


def test_import_messages_for_single_kind():
    importer = PresetImporter(StubImportStore())

    assert importer.import_presets([_preset("A")]).message == "Imported 1 new preset(s). Total: 1"
    assert importer.import_presets([_preset("A")]).message == "Updated 1 preset(s). Total: 1"

    empty = importer.import_presets([])
    assert empty.success is False
    assert empty.message == "No presets selected"


def test_preset_status_and_filter():
    importer = PresetImporter(StubImportStore([{"name": "Alpha", "message": "same", "category": []}]))

    assert importer.preset_status(_preset("Alpha", "same")) is None
    assert importer.preset_status(_preset("Alpha", "changed")) == "updated"
    assert importer.preset_status(_preset("Beta")) == "new"

    presets = [_preset("Alpha"), _preset("Alphabet"), _preset("Beta")]
    assert [preset.name for preset in importer.filter_presets(presets, " ALPHA ")] == ["Alpha", "Alphabet"]
    assert importer.filter_presets(presets, "") == presets


def test_delete_and_clear():
    store = StubImportStore([{"name": "Alpha", "message": "a", "category": []}, {"name": "Beta", "message": "b", "category": []}])
    importer = PresetImporter(store)

    assert importer.delete_preset("Alpha") is True
    assert importer.delete_preset("Alpha") is False
    assert [preset["name"] for preset in store.presets] == ["Beta"]

    importer.clear()
    assert store.presets == []
    assert importer.imported() == []


def test_import_from_file_selects_by_name(test_storage):
    importer = PresetImporter(StubImportStore())

    result = importer.import_from_file(test_storage["PRESETS_PATH"], ["Beta", "Unknown"])

    assert result.success is True
    assert [preset.name for preset in importer.imported()] == ["Beta"]


def test_import_from_missing_file_reports_failure(tmp_path):
    result = PresetImporter(StubImportStore()).import_from_file(tmp_path / "missing.json", ["Alpha"])

    assert result.success is False
    assert "Could not load preset catalog" in result.message


def test_base_catalog_prefers_imported_list(test_storage):
    factory_path = test_storage["PRESETS_PATH"]

    assert [p.name for p in load_base_catalog(PresetImporter(StubImportStore()), factory_path)] == ["Alpha", "Beta", "Gamma"]

    importer = PresetImporter(StubImportStore([{"name": "Imported", "message": "i", "category": []}]))
    assert [p.name for p in load_base_catalog(importer, factory_path)] == ["Imported"]

    assert load_base_catalog(PresetImporter(StubImportStore()), factory_path.parent / "nope.json") == []


def test_sql_import_store_keeps_order():
    PresetImporter(SqlImportStore()).import_presets([_preset("Zeta"), _preset("Alpha")])

    assert [preset.name for preset in PresetImporter(SqlImportStore()).imported()] == ["Zeta", "Alpha"]
