import codecs
import io
import os
import sys

import pytest

from drtags import cli


def _write_csv(path, text):
    path.write_bytes(codecs.BOM_UTF16_LE + text.encode("utf-16-le"))


def _fake_tool(directory, name):
    script = directory / name
    script.write_text(
        "#!/bin/sh\n"
        'pwd -P > "$DRTAGS_FAKE_OUT"\n'
        'for a in "$@"; do echo "$a" >> "$DRTAGS_FAKE_OUT"; done\n'
        "exit 3\n"
    )
    script.chmod(0o755)
    return script


def test_split_path_parts():
    path = os.path.join("root", "My Album", "track.FLAC")
    out, album, ext, title = cli.split_path(path)
    assert out == os.path.join("root", "My Album")
    assert album == "My Album"
    assert ext == ".flac"
    assert title == "track"


def test_split_path_keeps_inner_dots():
    out, album, ext, title = cli.split_path(os.path.join("a", "b", "x.alac.mov"))
    assert (ext, title) == (".mov", "x.alac")


def test_split_path_without_extension():
    _, _, ext, title = cli.split_path(os.path.join("a", "b", "clip"))
    assert ext == ""
    assert title == "clip"


def test_help_text_lists_tags():
    text = cli.help_text()
    assert "InitialKey=Gm" in text
    assert "Composer=Шопен" in text
    assert text.startswith("drtags file")


def test_split_arguments(tmp_path):
    first = tmp_path / "a.mp3"
    second = tmp_path / "b.flac"
    first.write_bytes(b"x")
    second.write_bytes(b"y")
    files, rest = cli.split_arguments([str(first), str(second), "artist=Me", str(first)])
    assert files == [str(first), str(second)]
    assert rest == ["artist=Me", str(first)]


def test_split_arguments_stops_at_empty_file(tmp_path):
    empty = tmp_path / "empty.mp3"
    empty.write_bytes(b"")
    full = tmp_path / "full.mp3"
    full.write_bytes(b"z")
    files, rest = cli.split_arguments([str(empty), str(full)])
    assert files == []
    assert rest == [str(empty), str(full)]


def test_read_csv_rows(tmp_path):
    path = tmp_path / "meta.csv"
    _write_csv(
        path,
        'File Name,Clip Directory,Description\r\n'
        'one.mov,/clips,"Artist=A\nB"\r\n'
        '\r\n'
        'broken,row\r\n'
        'two,,Genre=Classical\r\n',
    )
    rows = cli.read_csv_rows(path)
    assert [row.value("File Name") for row in rows] == ["one.mov", "two"]
    assert rows[0].value("Description") == "Artist=A\nB"
    assert rows[1].value("Clip Directory") == ""
    assert rows[1].value("Missing") == ""


def test_read_csv_rows_without_bom(tmp_path):
    path = tmp_path / "meta.csv"
    path.write_bytes("File Name\nx\n".encode("utf-16-le"))
    rows = cli.read_csv_rows(path)
    assert [row.value("File Name") for row in rows] == ["x"]


def test_read_csv_rows_empty_file(tmp_path):
    path = tmp_path / "meta.csv"
    path.write_bytes(codecs.BOM_UTF16_LE)
    with pytest.raises(ValueError):
        cli.read_csv_rows(path)


def test_process_csv_without_renders(tmp_path):
    album = tmp_path / "20250227 Concert"
    album.mkdir()
    path = album / "02.csv"
    _write_csv(
        path,
        "File Name,Clip Directory,Duration TC,Resolution,Description\r\n"
        "pic.png,/clips,00:00:00:01,1920x1080,\r\n"
        "20250227 Concert 02 Bach Suite,,00:10:00:00,1920x1080,Genre=Classical\r\n",
    )
    assert cli.process_csv(str(path), []) == []


def test_read_console_lines_stops_at_blank():
    stream = io.StringIO("artist=A\nB\n\nlater=x\n")
    assert cli.read_console_lines(stream) == ["artist=A", "B"]


def test_read_console_lines_drops_unterminated_line():
    stream = io.StringIO("a=1\nb=2")
    assert cli.read_console_lines(stream) == ["a=1"]


@pytest.mark.parametrize("answer", ["y\n", "YES\n", " да \n", "д\n"])
def test_ask_yes_agrees(answer):
    assert cli.ask_yes("Move", io.StringIO(answer)) is True


@pytest.mark.parametrize("answer", ["n\n", "\n", "", "yes"])
def test_ask_yes_refuses(answer):
    assert cli.ask_yes("Move", io.StringIO(answer)) is False


def test_make_link_does_nothing_elsewhere(tmp_path, monkeypatch):
    monkeypatch.setattr(sys, "platform", "linux")
    old = tmp_path / "old.bin"
    old.write_bytes(b"data")
    new = tmp_path / "new.bin"
    assert cli.make_link(old, new, True) is False
    assert not new.exists()


def test_make_link_hard_on_windows(tmp_path, monkeypatch):
    monkeypatch.setattr(sys, "platform", "win32")
    old = tmp_path / "old.bin"
    old.write_bytes(b"data")
    new = tmp_path / "new.bin"
    assert cli.make_link(old, new, True) is True
    assert new.read_bytes() == b"data"
    assert os.path.samefile(old, new)


def test_run_as_ff_moves_to_input_directory(tmp_path, monkeypatch):
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    _fake_tool(bin_dir, "ffprobe")
    record = tmp_path / "record.txt"
    monkeypatch.setenv("DRTAGS_FAKE_OUT", str(record))
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")
    media_dir = tmp_path / "media"
    media_dir.mkdir()
    source = media_dir / "song.flac"
    source.write_bytes(b"x")

    rc = cli.run_as_ff("ffprobe", ["-v", "error", "-i", str(source)])

    assert rc == 3
    lines = record.read_text().splitlines()
    assert os.path.realpath(lines[0]) == os.path.realpath(media_dir)
    assert lines[1:] == ["-v", "error", "-i", "song.flac"]


def test_run_as_ff_without_input_uses_cwd(tmp_path, monkeypatch):
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    _fake_tool(bin_dir, "ffmpeg")
    record = tmp_path / "record.txt"
    monkeypatch.setenv("DRTAGS_FAKE_OUT", str(record))
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")
    work = tmp_path / "work"
    work.mkdir()
    monkeypatch.chdir(work)

    rc = cli.run_as_ff("ffmpeg", ["-version"])

    assert rc == 3
    lines = record.read_text().splitlines()
    assert os.path.realpath(lines[0]) == os.path.realpath(work)
    assert lines[1:] == ["-version"]


def test_main_without_arguments_prints_help(capsys):
    assert cli.main([]) == 0
    assert "InitialKey=Gm" in capsys.readouterr().out


def test_main_without_media_files_prints_help(tmp_path, capsys):
    missing = tmp_path / "missing.mp3"
    assert cli.main([str(missing), "artist=A"]) == 0
    assert "Composer=" in capsys.readouterr().out