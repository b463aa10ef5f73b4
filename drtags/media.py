"""Running ffmpeg/ffprobe and reading or writing tags and audio properties."""

from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from .tags import ENCODER, Tags

log = logging.getLogger(__name__)

_MP4_LIKE = frozenset({".mov", ".mp4", ".m4a"})

# Names ffmpeg uses for some common tags.
_TO_FFMPEG = {
    "TRACKNUMBER": "track",
    "ALBUMARTIST": "album_artist",
    "DISCNUMBER": "disc",
}
_FROM_FFMPEG = {value: key for key, value in _TO_FFMPEG.items()}


class MediaError(Exception):
    """A media tool could not be run or reported a failure."""


@dataclass(frozen=True)
class AudioProperties:
    """Audio stream properties: bitrate in kbit/s, length in seconds, sample rate in Hz."""

    bitrate: int = 0
    length: float = 0.0
    sample_rate: int = 0


def quote_args(binary: str, args: Iterable[str]) -> str:
    """Command line for display; arguments holding spaces are quoted."""
    return " ".join([binary, *(f'"{arg}"' if " " in arg else arg for arg in args)])


def _locate(binary: str) -> str:
    path = shutil.which(binary)
    if path is None:
        raise MediaError(f"{binary} not found")
    if os.path.realpath(path) == os.path.realpath(sys.argv[0]):
        raise MediaError(f"{binary} resolves to this program")
    return path


def run(binary: str, root: str | os.PathLike, *args: str) -> int:
    """Run an external tool in directory root and return its exit code."""
    path = _locate(binary)
    if Path(binary).name != "ffprobe":
        log.info(quote_args(path, args))
    try:
        completed = subprocess.run([path, *args], cwd=os.fspath(root), check=False)
    except OSError as exc:
        raise MediaError(f"cannot run {binary}: {exc}") from exc
    return completed.returncode


def _probe_json(*args: str) -> dict:
    path = _locate("ffprobe")
    cmd = [path, "-hide_banner", "-v", "error", *args, "-of", "json"]
    try:
        completed = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            check=False,
        )
    except OSError as exc:
        raise MediaError(f"cannot run ffprobe: {exc}") from exc
    if completed.returncode != 0:
        message = (completed.stderr or "").strip() or f"exit code {completed.returncode}"
        raise MediaError(message)
    try:
        data = json.loads(completed.stdout or "{}")
    except json.JSONDecodeError as exc:
        raise MediaError(f"unreadable ffprobe output: {exc}") from exc
    if not isinstance(data, dict):
        raise MediaError("unexpected ffprobe output")
    return data


def probe(directory: str | os.PathLike, base: str) -> None:
    """Print codec, bitrate and size of every stream of a file."""
    try:
        rc = run(
            "ffprobe",
            directory,
            "-hide_banner",
            "-v",
            "error",
            "-show_entries",
            "stream=codec_name,bit_rate,sample_fmt,coded_width,coded_height",
            "-of",
            "default=noprint_wrappers=1",
            base,
        )
    except MediaError as exc:
        log.error("ошибка %s ffprobe", exc)
        return
    if rc != 0:
        log.error("ошибка: код завершения ffprobe %d", rc)


def probe_video(directory: str | os.PathLike, base: str) -> None:
    """Print bitrate and duration of the first video stream."""
    try:
        rc = run(
            "ffprobe",
            directory,
            "-hide_banner",
            "-v",
            "error",
            "-select_streams",
            "v:0",
            "-show_entries",
            "stream=bit_rate,duration",
            "-of",
            "default=noprint_wrappers=1",
            base,
        )
    except MediaError as exc:
        log.error("bit_rate=? %s ffprobe", exc)
        return
    if rc != 0:
        log.error("bit_rate=? код завершения ffprobe %d", rc)


def is_media_file(path: str | os.PathLike) -> bool:
    """True for an existing regular file that is not empty."""
    try:
        info = os.stat(path)
    except OSError:
        return False
    return not os.path.isdir(path) and info.st_size > 0


def _to_int(value) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def _to_float(value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def read_properties(path: str | os.PathLike) -> AudioProperties:
    """Bitrate, length and sample rate of the first audio stream."""
    data = _probe_json(
        "-select_streams",
        "a:0",
        "-show_entries",
        "stream=bit_rate,sample_rate,duration:format=bit_rate,duration",
        os.fspath(path),
    )
    streams = data.get("streams") or []
    if not streams:
        raise MediaError(f"no audio stream in {os.fspath(path)}")
    stream = streams[0]
    container = data.get("format") or {}
    bit_rate = _to_int(stream.get("bit_rate")) or _to_int(container.get("bit_rate"))
    length = _to_float(stream.get("duration")) or _to_float(container.get("duration"))
    return AudioProperties(
        bitrate=bit_rate // 1000,
        length=length,
        sample_rate=_to_int(stream.get("sample_rate")),
    )


def _format_duration(seconds: float) -> str:
    millis = round(seconds * 1000)
    if millis < 1000:
        return f"{millis}ms"
    hours, rest = divmod(millis, 3_600_000)
    minutes, rest = divmod(rest, 60_000)
    secs = f"{rest / 1000:.3f}".rstrip("0").rstrip(".")
    text = ""
    if hours:
        text += f"{hours}h"
    if hours or minutes:
        text += f"{minutes}m"
    return f"{text}{secs}s"


def probe_audio(path: str | os.PathLike, sample_rate: bool) -> None:
    """Print audio bitrate, duration and optionally sample rate of a media file."""
    if not is_media_file(path):
        return
    try:
        props = read_properties(path)
    except MediaError as exc:
        log.warning("a_bit_rate=? %s", exc)
        return
    if props.bitrate > 0:
        print(f"a_bit_rate={props.bitrate * 1000}")
    if props.length > 0:
        print(f"a_duration={_format_duration(props.length)}")
    if sample_rate and props.sample_rate > 0:
        print(f"a_sample_rate={props.sample_rate}")


def read_tags(path: str | os.PathLike) -> Tags:
    """Tags stored in a media file; empty when they cannot be read."""
    try:
        data = _probe_json("-show_entries", "format_tags:stream_tags", os.fspath(path))
    except MediaError as exc:
        log.warning("Ошибка чтения тэгов %s", exc)
        return Tags()
    found = (data.get("format") or {}).get("tags") or {}
    if not found:
        for stream in data.get("streams") or []:
            if stream.get("tags"):
                found = stream["tags"]
                break
    tags = Tags()
    for key, value in found.items():
        name = _FROM_FFMPEG.get(key.lower(), key)
        tags.setdefault(name, []).append(str(value))
    tags.fix_keys()
    tags.fix_values()
    return tags


def write_tags(path: str | os.PathLike, tags: Tags) -> bool:
    """Replace all tags of a file with tags; False when nothing had to change."""
    target = Path(path)
    if not is_media_file(target):
        raise MediaError(f"not a media file: {target}")
    tags.prepared_for_write()
    tags.show(f"Пишем тэги в {target}", False)

    desired = Tags({key: list(values) for key, values in tags.items() if key != ENCODER})
    desired.fix_values()
    if read_tags(target) == desired:
        log.info("Тэги в %s не изменились", target)
        return False

    temporary = target.with_name(f".{target.name}.drtags{target.suffix}")
    args = [
        "-hide_banner",
        "-v",
        "error",
        "-i",
        target.name,
        "-map",
        "0",
        "-c",
        "copy",
        "-map_metadata",
        "-1",
    ]
    if target.suffix.lower() in _MP4_LIKE:
        args += ["-movflags", "use_metadata_tags"]
    for key, values in tags.items():
        name = _TO_FFMPEG.get(key, key.lower())
        args += ["-metadata", f"{name}={'/'.join(values)}"]
    args += ["-y", temporary.name]

    rc = run("ffmpeg", target.parent, *args)
    if rc != 0:
        temporary.unlink(missing_ok=True)
        raise MediaError(f"ffmpeg exit code {rc} while writing tags to {target}")
    try:
        os.replace(temporary, target)
    except OSError as exc:
        raise MediaError(f"cannot replace {target}: {exc}") from exc
    return True