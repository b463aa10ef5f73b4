"""Tag collections: parsing, normalisation and derivation from file names."""

from __future__ import annotations

import csv
import io
import logging
import re
from typing import Iterable, Protocol

log = logging.getLogger(__name__)

COMMENT = "COMMENT"
INITIAL_KEY = "INITIALKEY"
ALBUM = "ALBUM"
DATE = "DATE"
TRACK_NUMBER = "TRACKNUMBER"
COMPOSER = "COMPOSER"
TITLE = "TITLE"
DESCRIPTION = "DESCRIPTION"
ENCODER = "ENCODER"
ENCODER_NAME = "drTags"

_BLOCKED_KEYS = frozenset(
    {
        "ENCODING",
        "ENCODER",
        "COMPATIBLE_BRANDS",
        "MINOR_VERSION",
        "MAJOR_BRAND",
        "CREATION_TIME",
    }
)

_NOTES = {
    "ля": "A",
    "си": "B",
    "до": "C",
    "ре": "D",
    "ми": "E",
    "фа": "F",
    "соль": "G",
}

_SUFFIXES = (
    ("-дубль-диез", "##"),
    ("-дубль-бемоль", "bb"),
    ("-диез", "#"),
    ("-бемоль", "b"),
)

_INT_RE = re.compile(r"[+-]?[0-9]+")
_INT64_MAX = 2**63 - 1


class _RowLike(Protocol):
    def value(self, key: str) -> str: ...


def _norm_key(key: str) -> str:
    return key.upper().strip()


def _is_int(text: str) -> bool:
    if not _INT_RE.fullmatch(text):
        return False
    return -_INT64_MAX - 1 <= int(text) <= _INT64_MAX


def _first_field(text: str, what: str) -> str:
    fields = text.split()
    if not fields:
        raise ValueError(f"no {what} in {text!r}")
    return fields[0]


def _first_csv_record(text: str) -> list[str]:
    reader = csv.reader(io.StringIO(text), strict=False)
    try:
        return next((row for row in reader if row), [])
    except csv.Error:
        return []


class Tags(dict):
    """Mapping of upper-case tag names to lists of values."""

    def _copy(self) -> Tags:
        return Tags({key: list(values) for key, values in self.items()})

    def _replace(self, other: dict) -> None:
        self.clear()
        self.update(other)

    def format(self, slash: bool) -> str:
        """Render as key=value lines; with slash, values of one key share a line."""
        lines: list[str] = []
        for key, values in self.items():
            if slash:
                lines.append(f"{key}={'/'.join(values)}")
            else:
                lines.extend(f"{key}={value}" for value in values)
        return "\n".join(lines)

    def show(self, title: str, slash: bool) -> None:
        """Print the tags under a logged title; nothing when title or tags are empty."""
        if not title or not self:
            return
        if title != " ":
            log.info(title)
        print(self.format(slash))
        print()
        print()

    def add(self, title: str, other: dict) -> None:
        """Merge other into these tags; an empty value list in other clears the key."""
        merged = Tags(other)._copy()
        merged.fix_keys()
        merged.fix_values()
        merged.show(title, True)
        for key, values in self.items():
            if key in merged and not merged[key]:
                continue
            merged.setdefault(key, []).extend(values)
        merged.fix_values()
        self._replace(merged)

    def set(self, title: str, other: dict) -> None:
        """Replace the values of every key that other holds."""
        incoming = Tags(other)._copy()
        incoming.fix_keys()
        incoming.fix_values()
        incoming.show(title, True)
        for key, values in incoming.items():
            self.set_values(key, *values)
        self.fix_values()

    def fix_values(self) -> None:
        """Normalise keys and drop duplicate values; comments are left untouched."""
        fixed: dict[str, list[str]] = {}
        for key, values in self.items():
            key = _norm_key(key)
            if key == COMMENT:
                fixed[key] = values
                continue
            seen: set[str] = set()
            uniques: list[str] = []
            for value in values:
                value = value.strip()
                if value in seen:
                    continue
                seen.add(value)
                uniques.append(value)
            fixed[key] = uniques
        self._replace(fixed)

    def fix_keys(self) -> None:
        """Merge keys differing by case or surrounding space and drop technical keys."""
        fixed: dict[str, list[str]] = {}
        for key, values in self.items():
            key = _norm_key(key)
            if key in _BLOCKED_KEYS:
                continue
            if key in fixed and not fixed[key]:
                continue
            fixed.setdefault(key, []).extend(values)
        self._replace(fixed)

    def drop_empty(self) -> None:
        """Remove keys that have no values."""
        self._replace({key: values for key, values in self.items() if values})

    def values_of(self, key: str) -> list[str] | None:
        """Values of key, or None when the key is absent."""
        return self.get(_norm_key(key))

    def set_values(self, key: str, *values: str) -> None:
        """Set key to values split on '/', dropping blanks except in comments."""
        key = _norm_key(key)
        if not key:
            return
        result: list[str] = []
        for value in values:
            for part in value.split("/"):
                part = part.strip()
                if part or key == COMMENT:
                    result.append(part)
        self[key] = result
        self.fix_values()

    def value_or_default(self, key: str, value: str) -> str:
        """Return the key's values joined by '/', or store and return value if absent."""
        existing = self.values_of(key)
        if existing is None:
            self.set_values(key, value)
            return value
        return "/".join(existing)

    def add_initial_key(self, title: str) -> None:
        """Derive INITIALKEY from a title unless the tag is already present."""
        if INITIAL_KEY in self:
            return
        key = initial_key(title)
        if key is not None:
            self.set_values("initialkey", key)

    def parse(self, album: str, file: str) -> None:
        """Fill album, date, track number, composer, title and key from names."""
        album = self.value_or_default(ALBUM, album)
        if self.values_of(DATE) is None:
            date = _first_field(album, "date in album")
            if _is_int(date):
                if len(date) > 7:
                    self.set_values(DATE, date[:4], date[:8])
                else:
                    self.set_values(DATE, date[:4])

        title = file.removeprefix(album).strip()
        track_number = _first_field(title, "track number")
        if _is_int(track_number):
            title = title.removeprefix(track_number).strip()
            if self.values_of(TRACK_NUMBER) is None:
                self.set_values(TRACK_NUMBER, track_number)
            composer = _first_field(title, "composer")
            if composer != title:
                title = title.removeprefix(composer).strip()
                if self.values_of(COMPOSER) is None:
                    self.set_values(COMPOSER, composer)

        title = self.value_or_default(TITLE, title)
        self.add_initial_key(title)

    def apply_row(self, file: str, row: _RowLike, *keys: str) -> None:
        """Take tags from the named columns of a metadata row."""
        for key in keys:
            value = row.value(key)
            if not value:
                continue
            if key in ("Description", "Keywords"):
                if key == "Description":
                    value = value.replace("\n", ",")
                if "=" not in value:
                    continue
                self.set("", new_tags(value))
            elif key == "Comments":
                self.set_values(COMMENT, value)

    def prepared_for_write(self) -> Tags:
        """Drop empty keys, join multi-line fields and stamp the encoder."""
        self.drop_empty()
        for key in (DESCRIPTION, COMMENT):
            values = self.values_of(key)
            if values is not None:
                self.set_values(key, "\n".join(values))
        self.set_values(ENCODER, ENCODER_NAME)
        return self


def new_tags(*args: str) -> Tags:
    """Build tags from 'key=value' strings; each string may hold several CSV fields.

    A field without '=' is another value of the previous key (COMMENT at first).
    """
    tags = Tags()
    previous = COMMENT
    for text in args:
        for field in _first_csv_record(text):
            parts = field.split("=")
            if len(parts) < 2:
                key, values = previous, parts
            else:
                key = _norm_key(parts[0])
                previous = key
                values = parts[1:]
            for value in values:
                tags.setdefault(key, []).extend(v.strip() for v in value.split("/"))
    return tags


def _note_and_accidental(fields: list[str], index: int) -> tuple[str, str] | None:
    before = index - 1
    if before < 0:
        return None
    word = fields[before]
    half = ""
    if word in ("диез", "бемоль"):
        half = "#" if word == "диез" else "b"
        before -= 1
        if before < 0:
            return None
        note = fields[before]
    else:
        note = word
        for suffix, accidental in _SUFFIXES:
            if word.endswith(suffix):
                half = accidental
                note = word.removesuffix(suffix)
                break
    if note == "дубль":
        before -= 1
        if before < 0:
            return None
        half += half
        note = fields[before]
    return note, half


def initial_key(title: str) -> str | None:
    """Musical key named in a Russian title, e.g. 'соль минор' -> 'Gm'; None if absent."""
    fields = title.lower().split()
    for index, word in enumerate(fields):
        if word not in ("минор", "мажор"):
            continue
        found = _note_and_accidental(fields, index)
        if found is None:
            return None
        note, half = found
        letter = _NOTES.get(note)
        if letter is None:
            return None
        return letter + half + ("m" if word == "минор" else "")
    return None