# drtags

`drtags` writes tags into media files and turns DaVinci Resolve timeline
renders into `.alac.mov`, `.flac` and `.mp3` files. The tags come from the
timeline name, from its Description, Keywords and Comments columns, and from
the command line or the console.

It is meant for concert recordings, classical ones above all: the timeline
name carries the date, album, track number, composer and title, and a key
named in the title (for example "соль минор") becomes the `InitialKey` tag
(`Gm`).

## Requirements

`ffmpeg` and `ffprobe` must be on `PATH`. They do the conversion, the probing
of streams and the reading and writing of tags.

## Installation

```
pip install .
```

## Usage

```
drt file [...fileN] [tag1=val1 [...tagN=valN]]
```

The leading arguments that name existing, non-empty files are the files to
work on; everything after them is taken as tags. Each file is either a media
file or a `.csv` metadata file written by DaVinci Resolve (UTF-16). Run `drt`
with no arguments to see the full help.

### Timelines listed in a metadata CSV

If `\2025\20250227 Классный концерт\02.csv` lists the timeline
`20250227 Классный концерт 02 Шопен Баллада для фортепиано № 1 соль минор`
and its render lies in the folder above the CSV as `.mov` or `.mp4`, then

```
drt 02.csv
```

creates `.alac.mov`, `.flac` and `.mp3` files of that name, removes the
`.mov` or `.mp4` render once they are made, and tags them with:

```
Date=2025/20250227
Album=20250227 Классный концерт
TrackNumber=02
Composer=Шопен
Title=Баллада для фортепиано № 1 соль минор
InitialKey=Gm
```

Conversion is skipped when the outputs are newer than the render. Tags such as
`Composer=`, `Artist=`, `Conductor=`, `Genre=`, `Work=` or `Movement=` can be
given in the timeline's Description or Keywords, one per line or separated by
`/`. The timeline's Comments become the `Comment` tag. Clips listed in the CSV
are shown with their tags and stream details but are not changed.

### Tags from the command line or the console

```
drt concert.flac "Artist=Иван Петров" Genre=Classical
```

Without tags on the command line, `drt` asks for `tag=value` lines on the
console. A line that does not start with a tag adds a value to the previous
tag, or to `Comment` if it is the first line. An empty line ends the input;
enter `/` for an empty `Comment`. `X=` clears tag `X`.

### Using the library

`drtags.tags` holds the `Tags` mapping and `new_tags()`, which parses
`key=value` strings, and `initial_key()`, which finds a key such as
`си-бемоль минор` (`Bbm`) in a title. `drtags.media` wraps `ffmpeg` and
`ffprobe` (`read_tags`, `write_tags`, `read_properties`, `probe_audio`), and
`drtags.timeline.process_timeline` converts and tags one timeline render.

## What it does not do

Tags are read and written through `ffmpeg`; writing rewrites the whole file
with stream copy. There is no built-in tag library and no bundled `ffmpeg`:
without the tools on `PATH`, nothing can be converted, probed or tagged.