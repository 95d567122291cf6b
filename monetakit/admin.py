"""Administration of the master key and of the users file."""

from __future__ import annotations

import argparse
import base64
import getpass
import os
import re
import secrets
import stat
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Optional, Union

PathLike = Union[str, "os.PathLike[str]"]

VERSION = "0.1.0"
DEFAULT_PASSWORD_LENGTH = 64
MINIMUM_KEY_LENGTH = 8

CHARS = (
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    "abcdefghijklmnopqrstuvwxyz"
    "0123456789"
    "!@#$%^&*()-_=+[{]}\\|;:"
    "'\",<.>/?"
)

_KEY_DIRECTORY = ".pgmoneta"
_KEY_FILE = "master.key"
_GROUP_OTHER = stat.S_IRWXG | stat.S_IRWXO
_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


class AdminError(Exception):
    """Raised when an administration command cannot be carried out."""


def is_valid_key(key: Optional[str]) -> bool:
    """True for an ASCII-only key of at least eight characters."""
    if key is None or len(key) < MINIMUM_KEY_LENGTH:
        return False
    return key.isascii()


def generate_password(length: int = DEFAULT_PASSWORD_LENGTH) -> str:
    """A random password of ``length`` characters drawn from the printable set."""
    if length < 0:
        raise ValueError(f"password length must not be negative: {length}")
    return "".join(secrets.choice(CHARS) for _ in range(length))


def _home_directory(home: Optional[PathLike]) -> Path:
    if home is not None:
        return Path(home)
    try:
        return Path.home()
    except (RuntimeError, KeyError) as exc:
        raise AdminError("No home directory for user running pgmoneta") from exc


def _prepare_key_directory(directory: Path) -> None:
    try:
        st = directory.stat()
    except FileNotFoundError:
        directory.mkdir(mode=stat.S_IRWXU)
        return
    mode = st.st_mode
    if not (stat.S_ISDIR(mode) and mode & stat.S_IRWXU and not mode & _GROUP_OTHER):
        raise AdminError("Wrong permissions for ~/.pgmoneta (must be 0700)")


def _check_key_file(path: Path) -> None:
    try:
        st = path.stat()
    except FileNotFoundError:
        return
    mode = st.st_mode
    if not (
        stat.S_ISREG(mode)
        and mode & (stat.S_IRUSR | stat.S_IWUSR)
        and not mode & _GROUP_OTHER
    ):
        raise AdminError("Wrong permissions for ~/.pgmoneta/master.key (must be 0600)")


def _prompt_master_key() -> str:
    while True:
        key = getpass.getpass("Master key: ")
        if is_valid_key(key):
            return key


def write_master_key(password: Optional[str] = None, home: Optional[PathLike] = None) -> Path:
    """Store ``password`` base64 encoded as the master key under ``home``.

    Prompts for the key when none is given. Returns the key file's path.
    """
    directory = _home_directory(home) / _KEY_DIRECTORY
    _prepare_key_directory(directory)

    key_path = directory / _KEY_FILE
    _check_key_file(key_path)

    if password is None:
        password = _prompt_master_key()
    elif not is_valid_key(password):
        raise AdminError("Invalid master key")

    encoded = base64.b64encode(password.encode("ascii")).decode("ascii")
    try:
        fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="ascii") as handle:
            handle.write(encoded)
    except OSError as exc:
        raise AdminError(
            f"Could not write to master key file '{key_path}' due to {exc.strerror}"
        ) from exc
    os.chmod(key_path, stat.S_IRUSR | stat.S_IWUSR)
    return key_path


def _username(line: str) -> str:
    return line.lstrip(":").split(":", 1)[0].rstrip("\r\n")


def _read_lines(path: Path) -> list[str]:
    try:
        with open(path, "r", encoding="utf-8", newline="") as handle:
            return handle.readlines()
    except OSError as exc:
        raise AdminError(f"{path} not found") from exc


def list_users(path: PathLike) -> list[str]:
    """The user names in a users file, in file order."""
    names = (_username(line) for line in _read_lines(Path(path)))
    return [name for name in names if name]


def remove_user(path: PathLike, username: str) -> None:
    """Remove every entry for ``username`` from a users file."""
    if not username:
        raise AdminError("No user name given")
    path = Path(path)
    lines = _read_lines(path)
    kept = [line for line in lines if _username(line) != username]
    if len(kept) == len(lines):
        raise AdminError(f"User '{username}' not found")

    temporary = path.with_name(path.name + ".tmp")
    try:
        with open(temporary, "w", encoding="utf-8", newline="") as handle:
            handle.writelines(kept)
        os.replace(temporary, path)
    except OSError as exc:
        temporary.unlink(missing_ok=True)
        raise AdminError(
            f"Could not write to temporary user file '{temporary}' due to {exc.strerror}"
        ) from exc


def _usage() -> str:
    return "\n".join(
        [
            f"pgmoneta-admin {VERSION}",
            "  Administration utility for pgmoneta",
            "",
            "Usage:",
            "  pgmoneta-admin [ -f FILE ] [ COMMAND ] ",
            "",
            "Options:",
            "  -f, --file FILE         Set the path to a user file",
            "  -U, --user USER         Set the user name",
            "  -P, --password PASSWORD Set the password for the user",
            "  -g, --generate          Generate a password",
            "  -l, --length            Password length",
            "  -V, --version           Display version information",
            "  -?, --help              Display help",
            "",
            "Commands:",
            "  master-key              Create or update the master key",
            "  remove-user             Remove a user",
            "  list-users              List all users",
        ]
    )


class _Parser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        raise AdminError(message)


def _atoi(text: str) -> int:
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else 0


def _build_parser() -> _Parser:
    parser = _Parser(prog="pgmoneta-admin", add_help=False)
    parser.add_argument("-f", "--file", dest="file")
    parser.add_argument("-U", "--user", dest="user")
    parser.add_argument("-P", "--password", dest="password")
    parser.add_argument("-g", "--generate", action="store_true")
    parser.add_argument("-l", "--length", type=_atoi, default=DEFAULT_PASSWORD_LENGTH)
    parser.add_argument("-V", "--version", action="store_true")
    parser.add_argument("-?", "--help", dest="help", action="store_true")
    parser.add_argument("commands", nargs="*")
    return parser


def _prompt_username() -> str:
    while True:
        try:
            name = input("User name: ")
        except EOFError as exc:
            raise AdminError("No user name given") from exc
        if name:
            return name


def _is_root() -> bool:
    getuid = getattr(os, "getuid", None)
    return getuid is not None and getuid() == 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the administration command line; returns the exit code."""
    args_list = list(sys.argv[1:] if argv is None else argv)

    try:
        options = _build_parser().parse_args(args_list)
    except AdminError:
        print(_usage())
        return 1

    if options.version:
        print(f"pgmoneta-admin {VERSION}")
        return 1
    if options.help:
        print(_usage())
        return 1

    if _is_root():
        print("pgmoneta: Using the root account is not allowed")
        return 1

    command = args_list[-1] if args_list else None

    if command == "master-key":
        password = options.password
        if password is None and options.generate:
            password = generate_password(options.length)
        try:
            write_master_key(password)
        except AdminError as exc:
            print(exc)
            print("Error for master key")
            return 1
        return 0

    if command in ("remove-user", "list-users"):
        if options.file is None:
            print("Missing file argument")
            return 1
        try:
            if command == "list-users":
                for name in list_users(options.file):
                    print(name)
            else:
                username = options.user or _prompt_username()
                remove_user(options.file, username)
        except AdminError as exc:
            print(exc)
            print(f"Error for {command}")
            return 1
        return 0

    print(_usage())
    return 1


if __name__ == "__main__":
    sys.exit(main())