"""Reduce a preset template to the exact instruction sent to the image service."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from flask import current_app

from services import prompt_parser
from services.presets import Preset
from services.prompt_parser import PatternUnmatched, StructuredChoice

ASPECT_RATIOS = ("none", "1:1", "16:9")

# The image service only returns square images; 16:9 is simulated with letterboxing.
ASPECT_SUFFIXES = {
    "1:1": "Generate the output as a square image with a 1:1 aspect ratio.",
    "16:9": (
        "Generate the output as a square image, placing the scene in a horizontal 16:9 band "
        "with solid black bars filling the top and bottom so it reads as a letterboxed 16:9 frame."
    ),
}


@dataclass
class PromptSettings:
    """User settings applied on top of a preset template."""

    master_prompt_enabled: bool = False
    master_prompt_text: str = ""
    aspect_ratio: str = "none"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], defaults: Optional["PromptSettings"] = None) -> "PromptSettings":
        """Overlay request/config values onto ``defaults``."""
        base = defaults or cls()
        aspect_ratio = str(data.get("aspect_ratio", base.aspect_ratio) or "none")
        if aspect_ratio not in ASPECT_RATIOS:
            aspect_ratio = "none"
        return cls(
            master_prompt_enabled=_as_bool(data.get("master_prompt_enabled", base.master_prompt_enabled)),
            master_prompt_text=str(data.get("master_prompt_text", base.master_prompt_text) or ""),
            aspect_ratio=aspect_ratio,
        )


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _logger():
    try:
        return current_app.logger
    except RuntimeError:
        return logging.getLogger("services.prompt_engine")


def wall_clock_seed() -> int:
    """Default seed provider: capture time in epoch milliseconds."""
    return int(time.time() * 1000)


def _record(history, preset_name: str, text: str) -> None:
    if history is None:
        return
    try:
        history.add_selection(preset_name, text)
    except Exception as exc:  # noqa: BLE001
        _logger().warning("Could not record selection for %r: %s", preset_name, exc)


def resolve_legacy(message: str, seed: int, *, preset_name: str = "", history=None) -> str:
    """Collapse even/odd and modulo directives embedded in ``message``."""
    if not prompt_parser.has_selection_keywords(message):
        return message

    lines = message.split("\n")

    parity = prompt_parser.parse_parity(lines)
    if parity is not None:
        labeled = parity.labeled_text(seed)
        if labeled is not None:
            lines = prompt_parser.selected_option_block(labeled)
        else:
            discarded = set(parity.discarded_lines(seed))
            lines = [line for index, line in enumerate(lines) if index not in discarded]

    picks = []
    # Later blocks first so earlier line numbers stay valid.
    for block in reversed(prompt_parser.parse_modulo(lines)):
        try:
            text = block.select(seed)
        except PatternUnmatched as exc:
            _logger().debug("Leaving modulo block in %r untouched: %s", preset_name, exc)
            continue
        lines[block.start : block.end + 1] = prompt_parser.selected_option_block(text)
        picks.append(text)

    for text in reversed(picks):
        _record(history, preset_name, text)

    return prompt_parser.cleanup("\n".join(lines))


def resolve_prompt(
    preset: Preset,
    settings: PromptSettings,
    seed: int,
    manual_choice: Optional[str] = None,
    history=None,
) -> str:
    """Return the final instruction string for ``preset``.

    The master prompt is appended after the template and is never parsed for
    directives. Structured options take precedence over the legacy directives
    embedded in the message. Failures degrade to the unprocessed template.
    """
    master = ""
    if settings.master_prompt_enabled and settings.master_prompt_text.strip():
        master = " " + settings.master_prompt_text

    try:
        if preset.options:
            choice = StructuredChoice(options=preset.options, randomize=preset.randomize_options)
            chosen = choice.select(seed, manual_choice)
            _record(history, preset.name, chosen)
            text = preset.message + master + "\n\n" + chosen
        else:
            text = resolve_legacy(preset.message, seed, preset_name=preset.name, history=history) + master
    except Exception as exc:  # noqa: BLE001
        _logger().exception("Prompt resolution failed for %r: %s", preset.name, exc)
        text = preset.message + master

    suffix = ASPECT_SUFFIXES.get(settings.aspect_ratio)
    if suffix:
        text = f"{text} {suffix}"
    return text
