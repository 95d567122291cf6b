"""Tar header blocks in the GNU ustar layout, with long name and link records."""

from __future__ import annotations

import os
import stat
from collections.abc import Iterator
from dataclasses import dataclass, replace
from typing import Any, Optional, Union

try:
    import grp
    import pwd
except ImportError:  # pragma: no cover - platforms without a user database
    grp = None
    pwd = None

BLOCK_SIZE = 512
NAME_LENGTH = 100
USER_LENGTH = 32

REGTYPE = "0"
AREGTYPE = "\0"
LNKTYPE = "1"
SYMTYPE = "2"
CHRTYPE = "3"
BLKTYPE = "4"
DIRTYPE = "5"
FIFOTYPE = "6"
CONTTYPE = "7"
GNU_LONGNAME_TYPE = "L"
GNU_LONGLINK_TYPE = "K"

LONG_LINK_NAME = b"././@LongLink"
MAGIC = b"ustar "
VERSION = b" \0"

_ULONG_MASK = 0xFFFF_FFFF_FFFF_FFFF
_CHECKSUM_OFFSET = 148
_CHECKSUM_LENGTH = 8

PathText = Union[str, bytes, "os.PathLike[str]", "os.PathLike[bytes]"]


def int_to_oct(num: int, length: int) -> bytes:
    """Right-aligned octal, a space and NUL padding, in a field of ``length`` bytes."""
    if length < 2:
        raise ValueError(f"field length too small: {length}")
    text = f"{num & _ULONG_MASK:>{length - 2}o} ".encode("ascii")[: length - 1]
    return text.ljust(length, b"\0")


def int_to_oct_nonull(num: int, length: int) -> bytes:
    """Right-aligned octal ending in a space, with no NUL, in ``length`` bytes."""
    if length < 1:
        raise ValueError(f"field length too small: {length}")
    text = f"{num & _ULONG_MASK:>{length - 1}o}".encode("ascii")[: length - 1]
    return text + b" "


def header_checksum(block: bytes) -> int:
    """Sum of the header bytes, counting the checksum field as spaces."""
    if len(block) != BLOCK_SIZE:
        raise ValueError(f"a header block is {BLOCK_SIZE} bytes, not {len(block)}")
    field = block[_CHECKSUM_OFFSET : _CHECKSUM_OFFSET + _CHECKSUM_LENGTH]
    return sum(block) - sum(field) + _CHECKSUM_LENGTH * ord(" ")


def _type_for_mode(mode: int) -> str:
    if stat.S_ISLNK(mode):
        return SYMTYPE
    if stat.S_ISREG(mode):
        return REGTYPE
    if stat.S_ISDIR(mode):
        return DIRTYPE
    if stat.S_ISCHR(mode):
        return CHRTYPE
    if stat.S_ISBLK(mode):
        return BLKTYPE
    if stat.S_ISFIFO(mode) or stat.S_ISSOCK(mode):
        return FIFOTYPE
    return AREGTYPE


def _user_name(uid: int) -> bytes:
    if pwd is None:
        return b""
    try:
        name = pwd.getpwuid(uid).pw_name
    except KeyError:
        return b""
    return os.fsencode(name)[: USER_LENGTH - 1]


def _group_name(gid: int) -> bytes:
    if grp is None:
        return b""
    try:
        name = grp.getgrgid(gid).gr_name
    except KeyError:
        return b""
    return os.fsencode(name)[: USER_LENGTH - 1]


def _put(block: bytearray, offset: int, length: int, value: bytes) -> None:
    value = value[:length]
    block[offset : offset + len(value)] = value


@dataclass
class TarHeader:
    """One archive member's header; ``blocks`` gives the bytes to write."""

    name: bytes = b""
    mode: int = 0
    uid: int = 0
    gid: int = 0
    size: int = 0
    mtime: int = 0
    typeflag: str = AREGTYPE
    linkname: bytes = b""
    uname: bytes = b""
    gname: bytes = b""
    devmajor: Optional[int] = None
    devminor: Optional[int] = None
    prefix: bytes = b""
    gnu_longname: Optional[bytes] = None
    gnu_longlink: Optional[bytes] = None

    @classmethod
    def from_stat(cls, st: Any) -> "TarHeader":
        """Build a header from the result of ``os.lstat``."""
        mode = st.st_mode
        header = cls(typeflag=_type_for_mode(mode))

        if stat.S_ISCHR(mode) or stat.S_ISBLK(mode):
            header.devmajor = os.major(st.st_rdev)
            header.devminor = os.minor(st.st_rdev)

        header.uid = st.st_uid
        header.uname = _user_name(st.st_uid)
        header.gid = st.st_gid
        header.gname = _group_name(st.st_gid)

        if stat.S_ISSOCK(mode):
            mode = (mode & ~stat.S_IFSOCK) | stat.S_IFIFO
        header.mode = mode
        header.mtime = int(st.st_mtime)
        header.size = st.st_size if stat.S_ISREG(st.st_mode) else 0
        return header

    def set_path(self, pathname: PathText) -> None:
        """Set the member name, using a long-name record beyond 99 bytes."""
        raw = os.fsencode(pathname)
        self.gnu_longname = None
        suffix = b"/" if not raw.endswith(b"/") and self.is_directory() else b""
        if len(raw) > NAME_LENGTH - 1:
            self.gnu_longname = raw
            self.name = raw[:NAME_LENGTH]
        else:
            self.name = (raw + suffix)[: NAME_LENGTH - 1]

    def set_link(self, linkname: PathText) -> None:
        """Set the link target, using a long-link record beyond 99 bytes."""
        raw = os.fsencode(linkname)
        if len(raw) > NAME_LENGTH - 1:
            self.gnu_longlink = raw
            self.linkname = LONG_LINK_NAME
        else:
            self.linkname = raw[: NAME_LENGTH - 1]
            self.gnu_longlink = None

    def is_regular(self) -> bool:
        return self.typeflag in (REGTYPE, AREGTYPE, CONTTYPE) or (
            stat.S_ISREG(self.mode) and self.typeflag != LNKTYPE
        )

    def is_symlink(self) -> bool:
        return self.typeflag == SYMTYPE or stat.S_ISLNK(self.mode)

    def is_directory(self) -> bool:
        return (
            self.typeflag == DIRTYPE
            or stat.S_ISDIR(self.mode)
            or (self.typeflag == AREGTYPE and self.name.endswith(b"/"))
        )

    def to_block(self) -> bytes:
        """The 512-byte header block with magic and checksum filled in."""
        block = bytearray(BLOCK_SIZE)
        _put(block, 0, 100, self.name)
        _put(block, 100, 8, int_to_oct(self.mode, 8))
        _put(block, 108, 8, int_to_oct(self.uid, 8))
        _put(block, 116, 8, int_to_oct(self.gid, 8))
        _put(block, 124, 12, int_to_oct_nonull(self.size, 12))
        _put(block, 136, 12, int_to_oct_nonull(self.mtime, 12))
        _put(block, 156, 1, self.typeflag.encode("latin-1"))
        _put(block, 157, 100, self.linkname)
        _put(block, 257, 6, MAGIC)
        _put(block, 263, 2, VERSION)
        _put(block, 265, 32, self.uname)
        _put(block, 297, 32, self.gname)
        if self.devmajor is not None:
            _put(block, 329, 8, int_to_oct(self.devmajor, 8))
        if self.devminor is not None:
            _put(block, 337, 8, int_to_oct(self.devminor, 8))
        _put(block, 345, 155, self.prefix)
        _put(
            block,
            _CHECKSUM_OFFSET,
            _CHECKSUM_LENGTH,
            int_to_oct(header_checksum(bytes(block)), _CHECKSUM_LENGTH),
        )
        return bytes(block)

    def _extension(self, flag: str, data: bytes) -> Iterator[bytes]:
        yield replace(self, typeflag=flag, size=len(data)).to_block()
        for start in range(0, len(data), BLOCK_SIZE):
            yield data[start : start + BLOCK_SIZE].ljust(BLOCK_SIZE, b"\0")

    def blocks(self) -> Iterator[bytes]:
        """Yield the long-link, long-name and header blocks in write order."""
        if self.gnu_longlink is not None:
            yield from self._extension(GNU_LONGLINK_TYPE, self.gnu_longlink)
        if self.gnu_longname is not None:
            yield from self._extension(GNU_LONGNAME_TYPE, self.gnu_longname)
        yield self.to_block()