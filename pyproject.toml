[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "drtags"
version = "0.1.0"
description = "Tag media files and turn DaVinci Resolve timeline renders into ALAC, FLAC and MP3 files"
requires-python = ">=3.10"
dependencies = []
keywords = ["tags", "metadata", "ffmpeg", "flac", "mp3", "alac", "davinci-resolve", "classical-music"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: End Users/Desktop",
    "Natural Language :: Russian",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Multimedia :: Sound/Audio :: Conversion",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
drt = "drtags.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["drtags"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
