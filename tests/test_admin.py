import base64
import os
import stat

import pytest

from monetakit import admin
from monetakit.admin import (
    CHARS,
    AdminError,
    generate_password,
    is_valid_key,
    list_users,
    main,
    remove_user,
    write_master_key,
)


@pytest.fixture(autouse=True)
def _not_root(monkeypatch):
    monkeypatch.setattr(os, "getuid", lambda: 1000, raising=False)


@pytest.fixture
def users_file(tmp_path):
    path = tmp_path / "users.conf"
    path.write_text("alice:AAAA\nbob:BBBB\ncarol:CCCC\n", encoding="utf-8")
    return path


def test_is_valid_key_rejects_missing_and_short():
    assert is_valid_key(None) is False
    assert is_valid_key("secret") is False


def test_is_valid_key_accepts_ascii_of_eight():
    assert is_valid_key("password") is True


def test_is_valid_key_rejects_non_ascii():
    non_ascii = "\u00e9" * 10
    assert is_valid_key(non_ascii) is False


@pytest.mark.parametrize("length", [0, 1, 8, 64, 200])
def test_generate_password_length_and_alphabet(length):
    generated = generate_password(length)
    assert len(generated) == length
    assert set(generated) <= set(CHARS)


def test_generate_password_default_length():
    assert len(generate_password()) == admin.DEFAULT_PASSWORD_LENGTH


def test_generate_password_negative_length():
    with pytest.raises(ValueError):
        generate_password(-1)


def test_write_master_key_round_trip(tmp_path):
    password = "password"
    key_path = write_master_key(password, tmp_path)
    assert key_path == tmp_path / ".pgmoneta" / "master.key"
    assert base64.b64decode(key_path.read_text()) == b"password"
    assert stat.S_IMODE(key_path.stat().st_mode) == 0o600
    assert stat.S_IMODE(key_path.parent.stat().st_mode) == 0o700


def test_write_master_key_overwrites(tmp_path):
    first = "password"
    write_master_key(first, tmp_path)
    generated = generate_password(16)
    key_path = write_master_key(generated, tmp_path)
    assert base64.b64decode(key_path.read_text()).decode() == generated


def test_write_master_key_invalid_key(tmp_path):
    password = "secret"
    with pytest.raises(AdminError):
        write_master_key(password, tmp_path)


def test_write_master_key_wrong_directory_permissions(tmp_path):
    directory = tmp_path / ".pgmoneta"
    directory.mkdir()
    directory.chmod(0o755)
    password = "password"
    with pytest.raises(AdminError, match="0700"):
        write_master_key(password, tmp_path)


def test_write_master_key_wrong_file_permissions(tmp_path):
    directory = tmp_path / ".pgmoneta"
    directory.mkdir(mode=0o700)
    directory.chmod(0o700)
    key_file = directory / "master.key"
    key_file.write_text("x")
    key_file.chmod(0o644)
    password = "password"
    with pytest.raises(AdminError, match="0600"):
        write_master_key(password, tmp_path)


def test_write_master_key_prompts_until_valid(tmp_path, monkeypatch):
    answers = iter(["secret", "password"])
    monkeypatch.setattr(admin.getpass, "getpass", lambda prompt="": next(answers))
    key_path = write_master_key(None, tmp_path)
    assert base64.b64decode(key_path.read_text()) == b"password"


def test_list_users(users_file):
    assert list_users(users_file) == ["alice", "bob", "carol"]


def test_list_users_missing_file(tmp_path):
    with pytest.raises(AdminError):
        list_users(tmp_path / "absent.conf")


def test_remove_user(users_file):
    remove_user(users_file, "bob")
    assert users_file.read_text(encoding="utf-8") == "alice:AAAA\ncarol:CCCC\n"
    assert not users_file.with_name("users.conf.tmp").exists()


def test_remove_user_not_found_leaves_file(users_file):
    before = users_file.read_text(encoding="utf-8")
    with pytest.raises(AdminError, match="not found"):
        remove_user(users_file, "dave")
    assert users_file.read_text(encoding="utf-8") == before
    assert not users_file.with_name("users.conf.tmp").exists()


def test_remove_user_missing_file(tmp_path):
    with pytest.raises(AdminError):
        remove_user(tmp_path / "absent.conf", "alice")


def test_main_list_users(users_file, capsys):
    assert main(["-f", str(users_file), "list-users"]) == 0
    assert capsys.readouterr().out.splitlines() == ["alice", "bob", "carol"]


def test_main_remove_user(users_file):
    assert main(["-f", str(users_file), "-U", "alice", "remove-user"]) == 0
    assert list_users(users_file) == ["bob", "carol"]


def test_main_remove_unknown_user(users_file, capsys):
    assert main(["-f", str(users_file), "-U", "dave", "remove-user"]) == 1
    assert "Error for remove-user" in capsys.readouterr().out


def test_main_missing_file_argument(capsys):
    assert main(["list-users"]) == 1
    assert "Missing file argument" in capsys.readouterr().out


def test_main_unknown_command_prints_usage(capsys):
    assert main(["frobnicate"]) == 1
    assert "Usage:" in capsys.readouterr().out


def test_main_no_arguments(capsys):
    assert main([]) == 1
    assert "Usage:" in capsys.readouterr().out


def test_main_version(capsys):
    assert main(["-V"]) == 1
    assert capsys.readouterr().out.strip() == f"pgmoneta-admin {admin.VERSION}"


def test_main_master_key(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    assert main(["-P", "password", "master-key"]) == 0
    key_path = tmp_path / ".pgmoneta" / "master.key"
    assert base64.b64decode(key_path.read_text()) == b"password"


def test_main_master_key_generated(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    assert main(["-g", "-l", "20", "master-key"]) == 0
    key_path = tmp_path / ".pgmoneta" / "master.key"
    decoded = base64.b64decode(key_path.read_text()).decode()
    assert len(decoded) == 20
    assert set(decoded) <= set(CHARS)


def test_main_master_key_invalid(tmp_path, monkeypatch, capsys):
    monkeypatch.setenv("HOME", str(tmp_path))
    assert main(["-P", "secret", "master-key"]) == 1
    assert "Error for master key" in capsys.readouterr().out


def test_main_refuses_root(monkeypatch, users_file, capsys):
    monkeypatch.setattr(os, "getuid", lambda: 0, raising=False)
    assert main(["-f", str(users_file), "list-users"]) == 1
    assert "root" in capsys.readouterr().out