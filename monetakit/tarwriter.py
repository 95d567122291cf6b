"""Writing of tar archives from files and directory trees."""

from __future__ import annotations

import errno
import os
import stat
from pathlib import Path
from typing import BinaryIO, Optional, Union

from monetakit.tarheader import BLOCK_SIZE, LNKTYPE, TarHeader

PathLike = Union[str, "os.PathLike[str]"]

_FILE_MODE = 0o644


class TarWriter:
    """Append files and trees to a tar archive, recording hard links once."""

    def __init__(self, path: PathLike) -> None:
        self.path = os.fspath(path)
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, _FILE_MODE)
        self._file: BinaryIO = os.fdopen(fd, "wb")
        self._seen: dict[tuple[int, int], str] = {}

    @property
    def closed(self) -> bool:
        return self._file.closed

    def add_tree(self, realdir: PathLike, savedir: Optional[PathLike] = None) -> None:
        """Add ``realdir`` and, when it is a directory, everything below it.

        Members are named below ``savedir`` when it is given, otherwise by
        their path on disk.
        """
        realdir = os.fsdecode(realdir)
        save = os.fsdecode(savedir) if savedir is not None else None

        self.add_file(realdir, save)

        try:
            entries = sorted(os.listdir(realdir))
        except NotADirectoryError:
            return

        for entry in entries:
            realpath = f"{realdir}/{entry}"
            savepath = f"{save}/{entry}" if save is not None else None
            if stat.S_ISDIR(os.lstat(realpath).st_mode):
                self.add_tree(realpath, savepath)
            else:
                self.add_file(realpath, savepath)

    def add_file(self, realname: PathLike, savename: Optional[PathLike] = None) -> None:
        """Add one file system entry, stored as ``savename`` or its own path."""
        realname = os.fsdecode(realname)
        name = os.fsdecode(savename) if savename is not None else realname

        st = os.lstat(realname)
        header = TarHeader.from_stat(st)
        header.set_path(name)

        key = (st.st_dev, st.st_ino)
        first = self._seen.get(key)
        if first is not None:
            header.typeflag = LNKTYPE
            header.set_link(first)
        else:
            self._seen[key] = name

        if header.is_symlink():
            header.set_link(os.readlink(realname))

        for block in header.blocks():
            self._file.write(block)

        if header.is_regular():
            self._write_contents(realname, header.size)

    def _write_contents(self, realname: str, size: int) -> None:
        with open(realname, "rb") as source:
            remaining = size
            while remaining > BLOCK_SIZE:
                chunk = source.read(BLOCK_SIZE)
                if len(chunk) != BLOCK_SIZE:
                    raise OSError(errno.EINVAL, "file shrank while archiving", realname)
                self._file.write(chunk)
                remaining -= BLOCK_SIZE
            if remaining > 0:
                chunk = source.read(remaining)
                self._file.write(chunk.ljust(BLOCK_SIZE, b"\0"))

    def close(self) -> None:
        if not self._file.closed:
            self._file.close()

    def __enter__(self) -> "TarWriter":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


def archive_directory(source: PathLike, target: PathLike) -> Path:
    """Write the tree at ``source`` into the archive ``target`` rooted at ``.``."""
    with TarWriter(target) as writer:
        writer.add_tree(source, ".")
    return Path(target)