"""Line tokenizer for seeded selections embedded in preset templates.

Two legacy conventions are recognised inside free text:

* even/odd clauses, either as bullets (``- If the last digit is even: ...``)
  or as a labeled block (``If Option A: ...`` / ``If Option B: ...``, where
  option A is the even branch);
* modulo-indexed lists: a line naming the seed granularity and ``modulo N``
  followed by ``- <index>: <text>`` entries.

Parsing is a single forward scan over lines using plain string operations so
running time stays linear in the template length.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, List, Optional, Sequence, Tuple

from services.presets import PresetOption

SELECTION_KEYWORDS = (
    "random",
    "select",
    "selection",
    "choose",
    "modulo",
    "last digit",
    "last two digits",
    "last three digits",
)

SELECTED_OPTION_NOTE = "(Automatically selected using random seed)"

ORPHAN_INSTRUCTION_PREFIXES = (
    "if none is specified",
    "if none are specified",
    "if no option is specified",
    "if no option is selected",
    "otherwise select",
    "otherwise, select",
    "otherwise choose",
    "otherwise, choose",
)

_BULLETS = ("-", "*", "•")
_PARITY_SUBJECTS = {"digit", "digits", "seed", "number"}


class PatternUnmatched(LookupError):
    """Raised when a recognised block has no entry for the computed index."""


class DirectiveKind(str, Enum):
    EVEN_ODD = "even_odd"
    MODULO = "modulo"
    STRUCTURED_OPTIONS = "structured_options"


class Granularity(str, Enum):
    LAST_DIGIT = "last_digit"
    LAST_TWO_DIGITS = "last_two_digits"
    LAST_THREE_DIGITS = "last_three_digits"

    @property
    def divisor(self) -> int:
        return {"last_digit": 10, "last_two_digits": 100, "last_three_digits": 1000}[self.value]

    def value_of(self, seed: int) -> int:
        return seed % self.divisor


def has_selection_keywords(text: str) -> bool:
    """Cheap negative fast path: False means no legacy directive can be present."""
    lowered = text.lower()
    return any(keyword in lowered for keyword in SELECTION_KEYWORDS)


def selected_option_block(text: str) -> List[str]:
    return [f"SELECTED OPTION: {text}", SELECTED_OPTION_NOTE]


@dataclass(frozen=True)
class ParityClause:
    line_index: int
    parity: str


@dataclass(frozen=True)
class ParityChoice:
    """Even/odd branches found in a template."""

    kind: ClassVar[DirectiveKind] = DirectiveKind.EVEN_ODD

    clauses: Tuple[ParityClause, ...] = ()
    labeled: Optional[Tuple[str, str]] = None

    @staticmethod
    def parity_of(seed: int) -> str:
        return "even" if (seed % 10) % 2 == 0 else "odd"

    def labeled_text(self, seed: int) -> Optional[str]:
        if self.labeled is None:
            return None
        option_a, option_b = self.labeled
        return option_a if self.parity_of(seed) == "even" else option_b

    def discarded_lines(self, seed: int) -> List[int]:
        parity = self.parity_of(seed)
        return [clause.line_index for clause in self.clauses if clause.parity != parity]


@dataclass(frozen=True)
class ModuloChoice:
    """A ``modulo N`` instruction with its indexed entries, spanning ``start..end`` lines."""

    kind: ClassVar[DirectiveKind] = DirectiveKind.MODULO

    start: int
    end: int
    granularity: Granularity
    modulus: int
    entries: Tuple[Tuple[int, str], ...]

    def selection_index(self, seed: int) -> int:
        return self.granularity.value_of(seed) % self.modulus

    def select(self, seed: int) -> str:
        index = self.selection_index(seed)
        for entry_index, text in self.entries:
            if entry_index == index:
                return text
        raise PatternUnmatched(f"No entry with index {index} (modulo {self.modulus}).")


@dataclass(frozen=True)
class StructuredChoice:
    """An explicit option list attached to a preset."""

    kind: ClassVar[DirectiveKind] = DirectiveKind.STRUCTURED_OPTIONS

    options: Tuple[PresetOption, ...]
    randomize: bool

    def select(self, seed: int, manual_choice: Optional[str] = None) -> str:
        if self.randomize:
            return self.options[random.Random(seed).randrange(len(self.options))].text
        if manual_choice is not None and manual_choice != "":
            manual_choice = str(manual_choice)
            for option in self.options:
                if option.id == manual_choice:
                    return option.text
            return manual_choice
        return self.options[0].text


def _strip_bullet(line: str) -> Tuple[bool, str]:
    stripped = line.strip()
    if stripped[:1] in _BULLETS:
        return True, stripped[1:].strip()
    return False, stripped


def _words(text: str) -> List[str]:
    cleaned = "".join(char if char.isalnum() else " " for char in text.lower())
    return cleaned.split()


def _parity_clause(index: int, line: str) -> Optional[ParityClause]:
    bulleted, body = _strip_bullet(line)
    head, colon, tail = body.partition(":")
    if not colon or not tail.strip() or len(head) > 120:
        return None
    words = _words(head)
    if not words:
        return None
    if not bulleted and words[0] != "if":
        return None
    has_even = "even" in words
    has_odd = "odd" in words
    if has_even == has_odd:
        return None
    if _PARITY_SUBJECTS.isdisjoint(words):
        return None
    return ParityClause(line_index=index, parity="even" if has_even else "odd")


def _option_label(line: str) -> Optional[Tuple[str, str]]:
    _, body = _strip_bullet(line)
    head, colon, tail = body.partition(":")
    if not colon:
        return None
    words = _words(head)
    if words in (["if", "option", "a"], ["option", "a"]):
        return "a", tail.strip()
    if words in (["if", "option", "b"], ["option", "b"]):
        return "b", tail.strip()
    return None


def parse_parity(lines: Sequence[str]) -> Optional[ParityChoice]:
    """Find even/odd branches; ``None`` when the template has none."""
    branches = {}
    clauses: List[ParityClause] = []
    index = 0
    while index < len(lines):
        label = _option_label(lines[index])
        if label is not None:
            key, text = label
            parts = [text] if text else []
            index += 1
            while index < len(lines) and lines[index].strip() and _option_label(lines[index]) is None:
                parts.append(lines[index].strip())
                index += 1
            branches.setdefault(key, "\n".join(parts))
            continue
        clause = _parity_clause(index, lines[index])
        if clause is not None:
            clauses.append(clause)
        index += 1

    labeled = None
    if branches.get("a") and branches.get("b"):
        labeled = (branches["a"], branches["b"])
    if labeled is None and not clauses:
        return None
    return ParityChoice(clauses=tuple(clauses), labeled=labeled)


def _granularity(line: str) -> Optional[Granularity]:
    lowered = line.lower()
    if "last three digits" in lowered:
        return Granularity.LAST_THREE_DIGITS
    if "last two digits" in lowered:
        return Granularity.LAST_TWO_DIGITS
    if "last digit" in lowered:
        return Granularity.LAST_DIGIT
    if "random seed" in lowered:
        return Granularity.LAST_TWO_DIGITS
    return None


def _modulus(line: str) -> Optional[int]:
    lowered = line.lower()
    position = lowered.find("modulo")
    while position != -1:
        before = lowered[position - 1] if position > 0 else " "
        cursor = position + len("modulo")
        if not before.isalnum():
            while cursor < len(lowered) and lowered[cursor] in " \t":
                cursor += 1
            digits_end = cursor
            while digits_end < len(lowered) and lowered[digits_end].isdigit():
                digits_end += 1
            if digits_end > cursor:
                return int(lowered[cursor:digits_end])
        position = lowered.find("modulo", cursor)
    return None


def parse_entry(line: str) -> Optional[Tuple[int, str]]:
    """Parse a ``- <index>: <text>`` list line."""
    stripped = line.strip()
    if not stripped.startswith("-"):
        return None
    rest = stripped[1:].lstrip()
    digits_end = 0
    while digits_end < len(rest) and rest[digits_end].isdigit():
        digits_end += 1
    if digits_end == 0:
        return None
    after = rest[digits_end:].lstrip()
    if not after.startswith(":"):
        return None
    text = after[1:].strip()
    if not text:
        return None
    return int(rest[:digits_end]), text


def parse_modulo(lines: Sequence[str]) -> List[ModuloChoice]:
    """Find every modulo-indexed list block, in template order."""
    blocks: List[ModuloChoice] = []
    index = 0
    while index < len(lines):
        modulus = _modulus(lines[index])
        if modulus is None:
            index += 1
            continue

        start = index
        granularity = _granularity(lines[index])
        if granularity is None:
            previous = index - 1
            while previous >= 0 and not lines[previous].strip():
                previous -= 1
            if previous >= 0:
                granularity = _granularity(lines[previous])
                start = previous

        cursor = index + 1
        while cursor < len(lines) and not lines[cursor].strip():
            cursor += 1
        entries = []
        while cursor < len(lines):
            entry = parse_entry(lines[cursor])
            if entry is None:
                break
            entries.append(entry)
            cursor += 1

        if granularity is None or modulus <= 0 or not entries:
            index += 1
            continue

        blocks.append(
            ModuloChoice(
                start=start,
                end=cursor - 1,
                granularity=granularity,
                modulus=modulus,
                entries=tuple(entries),
            )
        )
        index = cursor
    return blocks


def _is_caps_header(line: str) -> bool:
    stripped = line.strip()
    if not stripped.endswith(":") or len(stripped) > 80:
        return False
    head = stripped[:-1].strip()
    return any(char.isalpha() for char in head) and head == head.upper() and ":" not in head


def cleanup(text: str) -> str:
    """Drop orphaned instructions and empty all-caps headers, then squeeze blank runs."""
    lines = [
        line
        for line in text.split("\n")
        if not _strip_bullet(line)[1].lower().startswith(ORPHAN_INSTRUCTION_PREFIXES)
    ]

    kept_reversed: List[str] = []
    next_is_header_or_end = True
    for line in reversed(lines):
        if not line.strip():
            kept_reversed.append(line)
            continue
        if _is_caps_header(line):
            if next_is_header_or_end:
                continue
            next_is_header_or_end = True
        else:
            next_is_header_or_end = False
        kept_reversed.append(line)
    lines = list(reversed(kept_reversed))

    squeezed: List[str] = []
    blank_run: List[str] = []
    for line in lines:
        if not line.strip():
            blank_run.append(line)
            continue
        squeezed.extend(blank_run if len(blank_run) < 3 else [""])
        blank_run = []
        squeezed.append(line)
    squeezed.extend(blank_run if len(blank_run) < 3 else [""])
    return "\n".join(squeezed)
