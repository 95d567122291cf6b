import os
import tarfile

import pytest

from monetakit.tarheader import BLOCK_SIZE
from monetakit.tarwriter import TarWriter, archive_directory


def _members(path):
    with tarfile.open(path, "r:") as archive:
        return {member.name: member for member in archive.getmembers()}


def _contents(path, name):
    with tarfile.open(path, "r:") as archive:
        return archive.extractfile(name).read()


@pytest.fixture
def tree(tmp_path):
    src = tmp_path / "src"
    (src / "sub").mkdir(parents=True)
    (src / "a.txt").write_bytes(b"alpha")
    (src / "sub" / "b.bin").write_bytes(bytes(range(256)) * 3)
    return src


def test_archive_directory_round_trip(tree, tmp_path):
    target = archive_directory(tree, tmp_path / "out.tar")
    members = _members(target)
    assert set(members) == {".", "./a.txt", "./sub", "./sub/b.bin"}
    assert members["."].isdir()
    assert members["./sub"].isdir()
    assert _contents(target, "./a.txt") == b"alpha"
    assert _contents(target, "./sub/b.bin") == bytes(range(256)) * 3


def test_archive_is_block_aligned(tree, tmp_path):
    target = archive_directory(tree, tmp_path / "out.tar")
    assert os.path.getsize(target) % BLOCK_SIZE == 0


def test_header_magic(tree, tmp_path):
    target = archive_directory(tree, tmp_path / "out.tar")
    assert target.read_bytes()[257:263] == b"ustar "


@pytest.mark.parametrize("size", [0, 1, BLOCK_SIZE, BLOCK_SIZE + 1, 10 * BLOCK_SIZE - 3])
def test_file_contents_round_trip(tmp_path, size):
    data = bytes((i * 7) % 251 for i in range(size))
    source = tmp_path / "data"
    source.write_bytes(data)
    target = tmp_path / "one.tar"
    with TarWriter(target) as writer:
        writer.add_file(source, "data")
    members = _members(target)
    assert members["data"].size == size
    assert _contents(target, "data") == data


def test_single_small_file_has_no_trailer(tmp_path):
    source = tmp_path / "small"
    source.write_bytes(b"0123456789")
    target = tmp_path / "small.tar"
    with TarWriter(target) as writer:
        writer.add_file(source, "small")
    assert os.path.getsize(target) == 2 * BLOCK_SIZE


def test_hard_link_stored_once(tmp_path):
    src = tmp_path / "src"
    src.mkdir()
    (src / "a").write_bytes(b"shared")
    os.link(src / "a", src / "b")
    target = archive_directory(src, tmp_path / "links.tar")
    members = _members(target)
    assert members["./a"].isfile()
    assert members["./b"].islnk()
    assert members["./b"].linkname == "./a"


def test_symlink_target_recorded(tmp_path):
    src = tmp_path / "src"
    src.mkdir()
    (src / "real").write_bytes(b"x")
    os.symlink("real", src / "link")
    target = archive_directory(src, tmp_path / "sym.tar")
    members = _members(target)
    assert members["./link"].issym()
    assert members["./link"].linkname == "real"


def test_long_names_round_trip(tmp_path):
    src = tmp_path / "src"
    deep = src / ("d" * 120)
    deep.mkdir(parents=True)
    (deep / ("f" * 80)).write_bytes(b"deep")
    target = archive_directory(src, tmp_path / "long.tar")
    long_file = "./" + "d" * 120 + "/" + "f" * 80
    members = _members(target)
    assert "./" + "d" * 120 in members
    assert long_file in members
    assert _contents(target, long_file) == b"deep"


def test_add_tree_on_regular_file(tmp_path):
    source = tmp_path / "plain"
    source.write_bytes(b"plain")
    target = tmp_path / "plain.tar"
    with TarWriter(target) as writer:
        writer.add_tree(source, "plain")
    assert list(_members(target)) == ["plain"]


def test_add_file_without_savename_uses_real_path(tmp_path):
    source = tmp_path / "named"
    source.write_bytes(b"named")
    target = tmp_path / "named.tar"
    with TarWriter(target) as writer:
        writer.add_file(source)
    assert list(_members(target)) == [str(source)]


def test_add_tree_without_savedir_uses_real_paths(tree, tmp_path):
    target = tmp_path / "real.tar"
    with TarWriter(target) as writer:
        writer.add_tree(tree)
    names = set(_members(target))
    assert f"{tree}/a.txt" in names
    assert f"{tree}/sub/b.bin" in names


def test_missing_file_raises(tmp_path):
    with TarWriter(tmp_path / "x.tar") as writer:
        with pytest.raises(FileNotFoundError):
            writer.add_file(tmp_path / "missing")


def test_context_manager_closes(tmp_path):
    source = tmp_path / "f"
    source.write_bytes(b"f")
    with TarWriter(tmp_path / "c.tar") as writer:
        assert writer.closed is False
    assert writer.closed is True
    with pytest.raises(ValueError):
        writer.add_file(source, "f")


def test_archive_directory_overwrites_existing(tree, tmp_path):
    target = tmp_path / "out.tar"
    target.write_bytes(b"\xff" * (50 * BLOCK_SIZE))
    archive_directory(tree, target)
    assert "./a.txt" in _members(target)
    assert os.path.getsize(target) < 50 * BLOCK_SIZE