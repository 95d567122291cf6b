"""Gzip compression of backup data directories, WAL directories and single files."""

from __future__ import annotations

import gzip
import logging
import os
import shutil
import zlib
from pathlib import Path
from typing import Union

PathLike = Union[str, "os.PathLike[str]"]

GZIP_SUFFIX = ".gz"
PARTIAL_SUFFIX = ".partial"
MIN_LEVEL = 1
MAX_LEVEL = 9
DEFAULT_LEVEL = 3

_BUFFER_LENGTH = 8192

_log = logging.getLogger(__name__)


class CompressionError(Exception):
    """Raised when a file cannot be compressed or decompressed."""


def clamp_level(level: int) -> int:
    """Limit a compression level to the range gzip accepts, 1 to 9."""
    return max(MIN_LEVEL, min(MAX_LEVEL, level))


def _compress(source: Path, target: Path, level: int) -> None:
    try:
        with open(source, "rb") as fin, gzip.open(target, "wb", compresslevel=level) as fout:
            shutil.copyfileobj(fin, fout, _BUFFER_LENGTH)
    except OSError as exc:
        raise CompressionError(f"could not compress {source}: {exc}") from exc


def _decompress(source: Path, target: Path) -> None:
    try:
        with gzip.open(source, "rb") as fin, open(target, "wb") as fout:
            shutil.copyfileobj(fin, fout, _BUFFER_LENGTH)
    except (OSError, EOFError, zlib.error) as exc:
        target.unlink(missing_ok=True)
        raise CompressionError(f"could not decompress {source}: {exc}") from exc
    source.unlink(missing_ok=True)


def _entries(directory: Path) -> list[os.DirEntry]:
    try:
        with os.scandir(directory) as it:
            return sorted(it, key=lambda entry: entry.name)
    except OSError:
        return []


def _compress_in_place(directory: Path, name: str, level: int) -> Path | None:
    source = directory / name
    if not source.exists():
        return None
    target = directory / (name + GZIP_SUFFIX)
    try:
        _compress(source, target, level)
    except CompressionError:
        _log.error("Gzip: Could not compress %s/%s", directory, name)
        raise
    source.unlink(missing_ok=True)
    return target


def gzip_data(directory: PathLike, level: int = DEFAULT_LEVEL) -> list[Path]:
    """Compress every file below ``directory`` that is not already gzipped.

    Originals are removed. Returns the compressed files written; a directory
    that cannot be opened yields nothing.
    """
    directory = Path(directory)
    level = clamp_level(level)
    written: list[Path] = []
    for entry in _entries(directory):
        if entry.is_dir(follow_symlinks=False):
            written.extend(gzip_data(directory / entry.name, level))
        elif not entry.name.endswith(GZIP_SUFFIX):
            target = _compress_in_place(directory, entry.name, level)
            if target is not None:
                written.append(target)
    return written


def gzip_wal(directory: PathLike, level: int = DEFAULT_LEVEL) -> list[Path]:
    """Compress the finished WAL segments directly inside ``directory``.

    Gzipped and partial segments and anything that is not a regular file are
    left alone. Returns the compressed files written.
    """
    directory = Path(directory)
    level = clamp_level(level)
    written: list[Path] = []
    for entry in _entries(directory):
        if not entry.is_file(follow_symlinks=False):
            continue
        if entry.name.endswith((GZIP_SUFFIX, PARTIAL_SUFFIX)):
            continue
        target = _compress_in_place(directory, entry.name, level)
        if target is not None:
            written.append(target)
    return written


def gunzip_data(directory: PathLike) -> list[Path]:
    """Decompress every gzipped file below ``directory``, removing the archives.

    Returns the decompressed files written.
    """
    directory = Path(directory)
    written: list[Path] = []
    for entry in _entries(directory):
        if entry.is_dir(follow_symlinks=False):
            written.extend(gunzip_data(directory / entry.name))
        elif entry.name.endswith(GZIP_SUFFIX):
            source = directory / entry.name
            target = directory / entry.name[: -len(GZIP_SUFFIX)]
            try:
                _decompress(source, target)
            except CompressionError:
                _log.error("Gzip: Could not decompress %s/%s", directory, entry.name)
                raise
            written.append(target)
    return written


def gzip_file(source: PathLike, target: PathLike, level: int = DEFAULT_LEVEL) -> Path:
    """Compress ``source`` into ``target`` and remove ``source``."""
    source = Path(source)
    target = Path(target)
    _compress(source, target, clamp_level(level))
    source.unlink(missing_ok=True)
    return target