"""API blueprint for the camera UI."""

from __future__ import annotations

import io
from typing import Any, Dict, Mapping

from flask import Blueprint, Response, current_app, jsonify, request, send_file

from services.gemini_client import GeminiClient, GeminiClientError
from services.image_processing import ImageProcessingError, capture_to_png
from services.overlay_store import PresetNotFound, PresetRepository
from services.preset_import import PresetImporter, SqlImportStore, load_base_catalog
from services.presets import CatalogError, Preset, PresetError, presets_to_dicts
from services.prompt_engine import PromptSettings, resolve_prompt, wall_clock_seed
from services.record_store import SqlRecordStore

api_bp = Blueprint("api", __name__, url_prefix="/api")


def _gemini_client() -> GeminiClient:
    config = current_app.config
    return GeminiClient(
        api_key=config["GEMINI_API_KEY"],
        model=config["GEMINI_MODEL"],
        endpoint=config.get("GEMINI_ENDPOINT", "https://generativelanguage.googleapis.com/v1beta"),
        timeout=int(config.get("GEMINI_TIMEOUT", 60)),
    )


def _importer() -> PresetImporter:
    return PresetImporter(SqlImportStore())


def _repository() -> PresetRepository:
    repository = PresetRepository(SqlRecordStore())
    repository.load(load_base_catalog(_importer(), current_app.config["PRESETS_PATH"]))
    return repository


def _history():
    return current_app.extensions["selection_history"]


def _default_settings() -> PromptSettings:
    config = current_app.config
    return PromptSettings.from_mapping(
        {
            "master_prompt_enabled": config.get("MASTER_PROMPT_ENABLED", False),
            "master_prompt_text": config.get("MASTER_PROMPT_TEXT", ""),
            "aspect_ratio": config.get("ASPECT_RATIO", "none"),
        }
    )


def _seed(data: Mapping[str, Any]) -> int:
    value = data.get("seed")
    if value not in (None, ""):
        return int(value)
    provider = current_app.config.get("SEED_PROVIDER") or wall_clock_seed
    return int(provider())


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise PresetError("Request body must be a JSON object.")
    return data


def _catalog_response(presets) -> Response:
    return jsonify(presets_to_dicts(presets))


@api_bp.errorhandler(PresetNotFound)
def handle_not_found(exc: PresetNotFound):
    return jsonify({"error": str(exc)}), 404


@api_bp.errorhandler(PresetError)
def handle_bad_preset(exc: PresetError):
    return jsonify({"error": str(exc)}), 400


@api_bp.get("/health")
def health_check() -> Response:
    """Return application health status."""
    return jsonify({"status": "ok"})


@api_bp.get("/presets")
def list_presets() -> Response:
    """Return the resolved preset catalog."""
    return _catalog_response(_repository().merged_catalog())


@api_bp.post("/presets")
def create_preset():
    """Add a user-authored preset."""
    preset = Preset.from_dict(_json_body(), internal=False)
    return _catalog_response(_repository().apply_new(preset)), 201


@api_bp.post("/presets/reset-factory")
def reset_factory() -> Response:
    """Drop every edit and deletion of factory presets."""
    return _catalog_response(_repository().reset_factory())


@api_bp.post("/presets/clear")
def clear_presets() -> Response:
    """Drop every user record, including user-authored presets."""
    return _catalog_response(_repository().clear_all())


@api_bp.get("/presets/<name>")
def get_preset(name: str) -> Response:
    preset = _repository().get(name)
    if preset is None:
        raise PresetNotFound(f"Preset {name!r} not found.")
    return jsonify(preset.to_dict())


@api_bp.patch("/presets/<name>")
def modify_preset(name: str) -> Response:
    """Apply a partial edit to a preset."""
    return _catalog_response(_repository().apply_modification(name, _json_body()))


@api_bp.delete("/presets/<name>")
def delete_preset(name: str) -> Response:
    return _catalog_response(_repository().apply_deletion(name))


@api_bp.post("/presets/<name>/reset")
def reset_preset(name: str) -> Response:
    """Restore one factory preset to its catalog version."""
    return _catalog_response(_repository().reset_preset(name))


@api_bp.get("/presets/<name>/history")
def preset_history(name: str) -> Response:
    return jsonify({"preset": name, "history": _history().get_history(name)})


@api_bp.post("/prompts/resolve")
def resolve() -> Response:
    """Resolve a preset into the prompt that a capture would send."""
    data = _json_body()
    name = data.get("preset")
    preset = _repository().get(name) if name else None
    if preset is None:
        raise PresetNotFound(f"Preset {name!r} not found.")

    try:
        seed = _seed(data)
    except (TypeError, ValueError):
        return jsonify({"error": "Seed must be an integer."}), 400

    manual_choice = data.get("manual_choice")
    if manual_choice is not None and not isinstance(manual_choice, str):
        return jsonify({"error": "manual_choice must be a string."}), 400

    prompt = resolve_prompt(
        preset,
        PromptSettings.from_mapping(data, _default_settings()),
        seed,
        manual_choice=manual_choice,
        history=_history(),
    )
    return jsonify({"preset": preset.name, "seed": seed, "prompt": prompt})


@api_bp.get("/imports/available")
def available_imports():
    """List catalog-file presets with their import status."""
    importer = _importer()
    try:
        presets = importer.available(current_app.config["PRESETS_PATH"])
    except CatalogError as exc:
        return jsonify({"error": str(exc)}), 404
    presets = importer.filter_presets(presets, request.args.get("filter", ""))
    return jsonify(
        [{**preset.to_dict(), "status": importer.preset_status(preset)} for preset in presets]
    )


@api_bp.post("/imports")
def import_presets():
    """Import the named presets from the catalog file."""
    names = _json_body().get("names")
    if not isinstance(names, list):
        return jsonify({"error": "names must be a list of preset names."}), 400
    result = _importer().import_from_file(current_app.config["PRESETS_PATH"], names)
    return jsonify(result.to_dict()), 200 if result.success else 400


@api_bp.delete("/imports/<name>")
def delete_import(name: str):
    if not _importer().delete_preset(name):
        return jsonify({"error": f"Imported preset {name!r} not found."}), 404
    return jsonify({"deleted": name})


@api_bp.post("/captures")
def submit_capture():
    """Transform a captured photo with the selected preset."""
    name = (request.form.get("preset") or "").strip()
    preset = _repository().get(name) if name else None
    if preset is None:
        return jsonify({"error": f"Preset {name!r} not found."}), 404

    try:
        seed = _seed(request.form)
    except (TypeError, ValueError):
        return jsonify({"error": "Seed must be an integer."}), 400

    prompt = resolve_prompt(
        preset,
        PromptSettings.from_mapping(request.form, _default_settings()),
        seed,
        manual_choice=request.form.get("manual_choice") or None,
        history=_history(),
    )

    try:
        image_bytes = capture_to_png(request.files.get("image"))
        result = _gemini_client().transform_image(image_bytes, prompt)
    except ImageProcessingError as exc:
        return jsonify({"error": str(exc)}), 400
    except GeminiClientError as exc:
        current_app.logger.warning("Image transform failed for preset %r: %s", preset.name, exc)
        return jsonify({"error": str(exc)}), 502
    except Exception as exc:  # noqa: BLE001
        current_app.logger.exception("Unhandled error during capture: %s", exc)
        return jsonify({"error": "Unexpected server error."}), 500

    response = send_file(io.BytesIO(result), mimetype="image/png")
    response.headers["X-Prompt-Seed"] = str(seed)
    return response
