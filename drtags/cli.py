"""Command line: tag media files and DaVinci Resolve timeline renders."""

from __future__ import annotations

import codecs
import csv
import io
import logging
import os
import subprocess
import sys
from pathlib import Path
from typing import Iterable, Sequence, TextIO

from .media import (
    MediaError,
    is_media_file,
    probe,
    probe_audio,
    probe_video,
    read_tags,
    run,
    write_tags,
)
from .tags import Tags, new_tags
from .timeline import Row, TimelineResult, process_timeline

log = logging.getLogger(__name__)

_FF_NAMES = ("ffmpeg", "ffprobe")
_YES = frozenset({"y", "yes", "д", "да"})
_TAG_COLUMNS = ("Description", "Keywords", "Comments")

_HELP = """\
drtags file [...fileN] [tag1=val1 [...tagN=valN]]
Где file...fileN это медиафайлы или файлы .csv от DaVinci Resolve c Description или Keywords в которых указаны тэги.
Если в файле "\\2025\\20250227 Классный концерт\\02.csv" есть таймлайн
"20250227 Классный концерт 02 Шопен Баллада для фортепиано № 1 соль минор" и клипы с несжатым звуком в
"\\2025\\20250227 Классный концерт 02 Шопен Баллада для фортепиано № 1 соль минор.mov" или
"\\2025\\20250227 Классный концерт 02 Шопен Баллада для фортепиано № 1 соль минор.mp4"
то после запуска "drtags 02.csv" вместо них создадутся файлы:
"20250227 Классный концерт 02 Шопен Баллада для фортепиано № 1 соль минор.alac.mov"
"20250227 Классный концерт 02 Шопен Баллада для фортепиано № 1 соль минор.flac"
"20250227 Классный концерт 02 Шопен Баллада для фортепиано № 1 соль минор.mp3"
с тэгами:
Date=20250227
Album=20250227 Классный концерт
TrackNumber=02
Composer=Шопен
Title=Баллада для фортепиано № 1 соль минор
InitialKey=Gm
Для знаков при ключе используется английская нотация где си мажор как B, си-бемоль минор как Bbm, до-диез мажор как C#.
В Description или Keywords таймлайна для классики можно указать:
Composer=Фридерик Шопен
MovementNumber=Если части произведения то их номера
Movement=Если части произведения то их названия
Artist=Иван Петров
AlbumArtist=Остальные исполнители кроме солиста
Conductor=Руководители солиста или оркестра или концертмейстер
Genre=Classical
InvolvedPeople=Остальные люди и группы причастные к выступлению
Lyricist=Авторы текста и переводчики
Arranger=Авторы переложения или оранжировки
Subtitle=Подзаголовок например Патетическая соната
Work=Авторские публикации или каталоги как BWV или opus posthumum как Op. 21
Grouping=Группировки например для музыкальных форм как Баллады для фортепиано
Если тэг один а значений несколько просто повторяйте строчки.
Так пишем в Keywords или Description:
Artist=Иван Петров
Artist=Пётр Сидоров
Или через / в Description:
MovementNumber=1/2
Или с новой строки в Description:
Movement=Скерцо
Адажио
Если Comments таймлайна не пуст то он запишется в тэг Comment.
Если в командной строке нет тэгов то их можно ввести в консоли.
Если в консольном вводе строка не начинается с тэга то это значение к предыдущему тэгу:
Artist=Иван Петров
Пётр Сидоров
Если в консольном вводе первая строка не начинается с тэга то это значение к тэгу Comment
Завершай консольный ввод пустой строкой. Чтоб ввести пустую строку в Comment введи /
Чтоб убрать все значения тэга X введи X=. Чтоб убрать значения всех тэгов введи =
"""


def split_path(path: str) -> tuple[str, str, str, str]:
    """Split a/b/c.D into ('a/b', 'b', '.d', 'c'): directory, album, extension, title."""
    out = os.path.dirname(path)
    album = os.path.basename(out)
    base = os.path.basename(path)
    dot = base.rfind(".")
    ext = base[dot:] if dot >= 0 else ""
    title = base[: len(base) - len(ext)]
    return out, album, ext.lower(), title


def help_text() -> str:
    """Usage text of the command."""
    return _HELP


def split_arguments(args: Iterable[str]) -> tuple[list[str], list[str]]:
    """Split arguments into leading media files (absolute paths) and the rest."""
    args = list(args)
    files: list[str] = []
    for arg in args:
        path = os.path.abspath(arg)
        if not is_media_file(path):
            break
        files.append(path)
    return files, args[len(files):]


def _decode_utf16(data: bytes) -> str:
    if data.startswith(codecs.BOM_UTF16_LE):
        return data[len(codecs.BOM_UTF16_LE):].decode("utf-16-le", errors="replace")
    if data.startswith(codecs.BOM_UTF16_BE):
        return data[len(codecs.BOM_UTF16_BE):].decode("utf-16-be", errors="replace")
    return data.decode("utf-16-le", errors="replace")


def read_csv_rows(path: str | os.PathLike) -> list[Row]:
    """Data rows of a UTF-16 metadata CSV, addressed by its header.

    Blank lines are skipped, as are rows whose field count differs from the header.
    """
    text = _decode_utf16(Path(path).read_bytes()).replace("\r\n", "\n")
    records = (record for record in csv.reader(io.StringIO(text, newline="")) if record)
    header = next(records, None)
    if header is None:
        raise ValueError(f"Ошибка разбора заголовка {os.fspath(path)}")
    rows: list[Row] = []
    for line, record in enumerate(records, start=2):
        if len(record) != len(header):
            log.warning("Ошибка разбора строки %d %s", line, record)
            continue
        rows.append(Row(header, record))
    return rows


def _show_clip(row: Row, name: str, directory: str) -> Tags:
    clip_path = os.path.join(directory, name)
    audio = row.value("Resolution") == ""
    file_tags = Tags()
    file_tags.apply_row(name, row, *_TAG_COLUMNS)
    file_tags.show(("Аудио " if audio else "Видео ") + clip_path, True)
    if not file_tags:
        file_tags.add("", read_tags(clip_path))
    if audio:
        probe_audio(clip_path, False)
    else:
        probe_video(directory, name)
        for column in ("Resolution", "Frame Rate", "Video Codec"):
            row.show(column)
    for column in ("Audio Bit Depth", "Audio Sample Rate", "Audio Codec"):
        row.show(column)
    return file_tags


def process_csv(path: str, cli_tags: Sequence[str]) -> list[TimelineResult]:
    """Show the clips of a metadata CSV and convert and tag its timeline renders."""
    out, album, _, _ = split_path(path)
    out = os.path.dirname(out)
    rows = read_csv_rows(path)
    log.info("Результаты в %s", out)
    csv_tags = Tags()
    results: list[TimelineResult] = []
    for row in rows:
        name = row.value("File Name")
        directory = row.value("Clip Directory")
        if directory:
            if row.value("Duration TC") == "00:00:00:01":
                continue
            csv_tags.add("", _show_clip(row, name, directory))
            continue
        timeline_tags = Tags()
        timeline_tags.apply_row(name, row, *_TAG_COLUMNS)
        results.extend(process_timeline(timeline_tags, album, out, name, cli_tags))
    csv_tags.show(f"Тэги из {path}", False)
    return results


def read_console_lines(stream: TextIO) -> list[str]:
    """Complete non-blank lines up to the first blank line or end of input."""
    lines: list[str] = []
    for line in stream:
        if not line.endswith("\n"):
            break
        line = line.strip()
        if not line:
            break
        lines.append(line)
    return lines


def ask_yes(prompt: str, stream: TextIO) -> bool:
    """Ask a question and read the answer; only y, yes, д or да agree."""
    log.info("%s? y|yes|д|да", prompt)
    answer = stream.readline()
    if not answer.endswith("\n"):
        return False
    return answer.strip().lower() in _YES


def _is_admin() -> bool:
    try:
        with open(r"\\.\PHYSICALDRIVE0", "rb"):
            return True
    except OSError:
        return False


def _run_elevated_mklink(old: str, new: str, hard: bool) -> bool:
    option = "/h " if hard else ""
    command = f'/c mklink {option}"{new}" "{old}"'.replace("'", "''")
    script = f"Start-Process -FilePath cmd -Verb RunAs -Wait -ArgumentList '{command}'"
    try:
        completed = subprocess.run(
            ["powershell", "-NoProfile", "-Command", script],
            cwd=os.getcwd(),
            check=False,
        )
    except OSError as exc:
        log.error("Error run mklink as Administrator: %s", exc)
        return False
    if completed.returncode != 0:
        log.error("Error run mklink as Administrator: exit code %d", completed.returncode)
        return False
    return True


def make_link(old: str | os.PathLike, new: str | os.PathLike, hard: bool) -> bool:
    """Link new to old on Windows, elevating mklink when needed; elsewhere does nothing.

    Returns True when the link was made.
    """
    if sys.platform != "win32":
        return False
    kind = "hard" if hard else "symbolic"
    try:
        if hard:
            os.link(old, new)
        else:
            os.symlink(old, new)
        return True
    except OSError as exc:
        log.error("Error creating %s link: %s", kind, exc)
    if _is_admin():
        return False
    return _run_elevated_mklink(os.fspath(old), os.fspath(new), hard)


def _rename(program: Path, source: Path, target: Path) -> None:
    if is_media_file(source):
        try:
            os.rename(source, target)
            log.info("%s ~> %s", source, target)
        except OSError as exc:
            log.error("%s ~> %s %s", source, target, exc)
    elif not is_media_file(target):
        log.info("%s ~> %s %s", program, target, make_link(program, target, True))


def _swap() -> None:
    if sys.platform != "win32":
        return
    appdata = os.environ.get("APPDATA")
    if not appdata or not sys.argv or not sys.argv[0]:
        return
    program = Path(sys.argv[0]).resolve()
    desktop = Path.home() / "Desktop" / program.name
    send_to = Path(appdata) / "Microsoft" / "Windows" / "SendTo" / program.name
    if is_media_file(desktop):
        if ask_yes("Переместить drTags в меню Отправить", sys.stdin):
            _rename(program, desktop, send_to)
        else:
            _rename(program, send_to, desktop)
    elif ask_yes(
        "Переместить drTags на рабочий стол чтоб на него можно было бросать файлы "
        "для тэггирования",
        sys.stdin,
    ):
        _rename(program, send_to, desktop)
    else:
        _rename(program, desktop, send_to)


def _show_help() -> None:
    print(help_text(), end="")
    _swap()


def _link_hints() -> None:
    if not sys.argv or not sys.argv[0]:
        return
    program = Path(sys.argv[0]).resolve()
    for tool in _FF_NAMES:
        candidate = program.with_name(tool + program.suffix)
        if is_media_file(candidate):
            continue
        if sys.platform == "win32":
            log.info("Можно сделать ссылку 'mklink \"%s\" \"%s\"'", candidate, program)
        else:
            log.info("Можно сделать ссылку 'ln -s \"%s\" \"%s\"'", program, candidate)


def run_as_ff(name: str, args: Sequence[str]) -> int:
    """Run ffmpeg or ffprobe in the directory of the input given after -i."""
    args = list(args)
    try:
        position: int | None = args.index("-i") + 1
    except ValueError:
        position = None
    if position is None or position >= len(args):
        root = os.getcwd()
    else:
        log.info(
            "Все файлы для %s должны быть на том же диске что и infile %s",
            name,
            args[position],
        )
        source = os.path.abspath(args[position])
        root = os.path.dirname(source)
        args[position] = os.path.relpath(source, root)
        log.info("Имя infile %s", args[position])
    log.info("Каталог с infile %s", root)
    return run(name, root, *args)


def _tag_file(path: str, cli_tags: Sequence[str], has_cli: bool) -> None:
    _, album, _, title = split_path(path)
    file_tags = Tags()
    file_tags.add(f"Тэги из {path}", read_tags(path))
    if has_cli:
        file_tags.set("Тэги из командной строки", new_tags(*cli_tags))
    file_tags.parse(album, title)
    if file_tags:
        write_tags(path, file_tags)
    probe(os.path.dirname(path), os.path.basename(path))
    probe_audio(path, True)


def _apply_console(files: Sequence[str], results: Sequence[TimelineResult],
                   lines: Sequence[str]) -> int:
    rc = 0
    for path in files:
        _, album, ext, title = split_path(path)
        if ext == ".csv":
            continue
        tags = read_tags(path)
        tags.set("Консольный ввод", new_tags(*lines))
        try:
            tags.parse(album, title)
            write_tags(path, tags)
        except (MediaError, ValueError) as exc:
            log.error("Ошибка записи тэгов %s", exc)
            rc = 1
    for result in results:
        tags = result.tags
        tags.set("Консольный ввод", new_tags(*lines))
        try:
            tags.parse(result.album, result.title)
            write_tags(result.path, tags)
        except (MediaError, ValueError) as exc:
            log.error("Ошибка записи тэгов %s", exc)
            rc = 1
    return rc


def _run(args: list[str]) -> int:
    program = Path(sys.argv[0]).stem.lower() if sys.argv and sys.argv[0] else ""
    if program in _FF_NAMES:
        try:
            return run_as_ff(program, args)
        except MediaError as exc:
            log.error("%s", exc)
            return 1

    _link_hints()
    if not args:
        _show_help()
        return 0

    files, cli_tags = split_arguments(args)
    if not files:
        _show_help()
        return 0
    has_cli = "=" in " ".join(cli_tags)

    rc = 0
    results: list[TimelineResult] = []
    for path in files:
        if split_path(path)[2] == ".csv":
            try:
                results.extend(process_csv(path, cli_tags))
            except (OSError, ValueError) as exc:
                log.error("Ошибка разбора %s: %s", path, exc)
                return 1
            continue
        try:
            _tag_file(path, cli_tags, has_cli)
        except (MediaError, ValueError) as exc:
            log.error("Ошибка %s: %s", path, exc)
            rc = 1

    if has_cli or cli_tags:
        return rc

    print("Введи тэг=значение:")
    lines = read_console_lines(sys.stdin)
    if lines:
        rc = _apply_console(files, results, lines) or rc
    return rc


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point; returns the exit status."""
    logging.basicConfig(level=logging.INFO, format="%(filename)s:%(lineno)d: %(message)s")
    args = list(sys.argv[1:] if argv is None else argv)
    try:
        return _run(args)
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())