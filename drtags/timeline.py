"""DaVinci Resolve timeline results: conversion to alac/flac/mp3 and tagging."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from .media import MediaError, is_media_file, probe, probe_audio, run, write_tags
from .tags import Tags, new_tags

log = logging.getLogger(__name__)


@dataclass
class Row:
    """A metadata CSV row addressed by the column names of the header."""

    header: list[str]
    values: list[str] = field(default_factory=list)
    _index: dict[str, int] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.header:
            raise ValueError("empty CSV header")
        self._index = {name: i for i, name in enumerate(self.header)}
        for i, name in enumerate(self.header):
            log.debug("%d %s", i, name)

    def value(self, key: str) -> str:
        """Value of column key, or an empty string."""
        i = self._index.get(key)
        if i is None or i >= len(self.values):
            return ""
        return self.values[i]

    def show(self, key: str) -> None:
        """Print key=value when the column has a value."""
        value = self.value(key)
        if value:
            print(f"{key}={value}")


@dataclass
class TimelineResult:
    """A tagged output file kept for tags entered later on the console."""

    album: str
    title: str
    path: Path
    tags: Tags


def is_newer(first: str | os.PathLike, second: str | os.PathLike) -> bool:
    """True when second is missing or first was modified after it."""
    try:
        second_time = os.stat(second).st_mtime
    except OSError:
        return True
    try:
        return os.stat(first).st_mtime > second_time
    except OSError:
        return False


def find_result(directory: str | os.PathLike, name: str) -> Path | None:
    """The timeline render: .mov, then .mp4, then .alac.mov."""
    base = Path(directory)
    for suffix in (".mov", ".mp4", ".alac.mov"):
        candidate = base / f"{name}{suffix}"
        if is_media_file(candidate):
            return candidate
    return None


def _convert(result: Path, directory: Path, alac: str, flac: str, mp3: str) -> None:
    flac_args = ["-vn", "-compression_level", "12", "-y", flac]
    mp3_args = ["-vn", "-q", "0", "-joint_stereo", "0", "-y", mp3]
    if result.name == alac:
        log.info("Результат в %s. Создаём mp3, flac", alac)
        try:
            rc = run("ffmpeg", directory, "-hide_banner", "-v", "error", "-i", alac,
                     *flac_args, *mp3_args)
        except MediaError as exc:
            log.error("Не удалось создать файлы flac, mp3 %s", exc)
            return
        if rc != 0:
            log.error("Не удалось создать файлы flac, mp3, код завершения %d", rc)
        return

    log.info("Результат в %s. Создаём alac.mov, mp3, flac", result.name)
    try:
        rc = run("ffmpeg", directory, "-hide_banner", "-v", "error", "-i", result.name,
                 "-c:v", "copy", "-c:a", "alac", "-y", alac, *flac_args, *mp3_args)
    except MediaError as exc:
        log.error("Не удалось создать файлы alac.mov, flac, mp3 %s", exc)
        return
    if rc != 0:
        log.error("Не удалось создать файлы alac.mov, flac, mp3, код завершения %d", rc)
        return
    try:
        result.unlink()
        log.info("Удаляем %s", result)
    except OSError as exc:
        log.error("Удаляем %s %s", result, exc)


def process_timeline(
    tags: Tags,
    album: str,
    directory: str | os.PathLike,
    name: str,
    cli_tags: Sequence[str],
) -> list[TimelineResult]:
    """Convert a timeline render, tag its outputs and return them for later tagging.

    Outputs are returned only when no tags were given on the command line.
    """
    base = Path(directory)
    alac, flac, mp3 = f"{name}.alac.mov", f"{name}.flac", f"{name}.mp3"
    result = find_result(base, name)
    if result is None:
        log.warning("Нет результата в mov c lpcm %s", base / f"{name}.mov")
        log.warning("Нет результата в mp4 c flac %s", base / f"{name}.mp4")
        log.warning("Нет результата в mov c alac %s", base / alac)
        return []

    if any(is_newer(result, base / other) for other in (mp3, flac, alac)):
        _convert(result, base, alac, flac, mp3)
    else:
        log.info("Файлы flac, mp3 моложе чем %s", result)

    has_cli = "=" in " ".join(cli_tags)
    if has_cli:
        tags.set("Тэги из командной строки", new_tags(*cli_tags))
    tags.parse(album, name)

    recorded: list[TimelineResult] = []
    for position, output in enumerate((base / alac, base / flac, base / mp3)):
        if not is_media_file(output):
            continue
        if not has_cli:
            snapshot = Tags({key: list(values) for key, values in tags.items()})
            recorded.append(TimelineResult(album, name, output, snapshot))
        if tags:
            try:
                write_tags(output, tags)
            except MediaError as exc:
                log.error("Ошибка записи тэгов %s", exc)
        if position == 0:
            probe(output.parent, output.name)
        else:
            probe_audio(output, True)
    return recorded