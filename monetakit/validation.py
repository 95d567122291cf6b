"""Validation of a read configuration and hot transfer of a reloaded one."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable

from monetakit.configuration import Configuration, Server

_log = logging.getLogger(__name__)

_RESERVED_NAMES = ("pgmoneta", "all")
_MINIMUM_BACKLOG = 16

# Settings that only take effect after a restart; a reload reports them.
_RESTART_SETTINGS = (
    "base_dir",
    "log_type",
    "log_path",
    "log_mode",
    "pidfile",
    "libev",
    "hugepage",
    "unix_socket_dir",
)

# Settings that a reload copies over directly.
_TRANSFERRED_SETTINGS = (
    "host",
    "metrics",
    "management",
    "pgsql_dir",
    "compression_type",
    "compression_level",
    "retention",
    "link",
    "log_level",
    "tls",
    "tls_cert_file",
    "tls_key_file",
    "tls_ca_file",
    "blocking_timeout",
    "authentication_timeout",
    "buffer_size",
    "keep_alive",
    "nodelay",
    "non_blocking",
    "backlog",
)


class ValidationError(Exception):
    """Raised when a configuration is not usable."""


def _require_directory(path: str, name: str, missing: str) -> None:
    if not path:
        raise ValidationError(f"pgmoneta: {missing}")
    if not os.path.isdir(path):
        raise ValidationError(f"pgmoneta: {name} is not a directory ({path})")


def _validate_server(server: Server, names: set[str]) -> None:
    if server.name in _RESERVED_NAMES:
        raise ValidationError(f"pgmoneta: {server.name} is a reserved word for a host")
    if not server.host:
        raise ValidationError(f"pgmoneta: No host defined for {server.name}")
    if server.port == 0:
        raise ValidationError(f"pgmoneta: No port defined for {server.name}")
    if not server.username:
        raise ValidationError(f"pgmoneta: No user defined for {server.name}")
    if not server.backup_slot:
        _log.debug("pgmoneta: No backup slot defined for %s", server.name)
    if not server.wal_slot:
        _log.debug("pgmoneta: No WAL slot defined for %s", server.name)
    if server.follow and server.follow not in names:
        raise ValidationError(f"pgmoneta: Invalid follow value for {server.name}")


def validate_configuration(config: Configuration) -> None:
    """Check the main configuration, correcting retention and backlog in place."""
    if not config.host:
        raise ValidationError("pgmoneta: No host defined")

    _require_directory(config.unix_socket_dir, "unix_socket_dir", "No unix_socket_dir defined")
    _require_directory(config.base_dir, "base_dir", "No base directory defined")
    _require_directory(config.pgsql_dir, "pgsql_dir", "No PostgreSQL directory defined")

    config.retention = max(config.retention, 0)
    config.backlog = max(config.backlog, _MINIMUM_BACKLOG)

    if not config.servers:
        raise ValidationError("pgmoneta: No servers defined")

    names = {server.name for server in config.servers}
    for server in config.servers:
        _validate_server(server, names)


def validate_users_configuration(config: Configuration, usernames: Iterable[str]) -> None:
    """Check that users exist and that every server's user is among them."""
    known = set(usernames)
    if not known:
        raise ValidationError("pgmoneta: No users defined")
    for server in config.servers:
        if server.username not in known:
            raise ValidationError(
                f"pgmoneta: Unknown user ('{server.username}') defined for {server.name}"
            )


def validate_admins_configuration(config: Configuration, number_of_admins: int) -> list[str]:
    """Return (and log) warnings about management and admin settings that disagree."""
    warnings = []
    if config.management > 0 and number_of_admins == 0:
        warnings.append("pgmoneta: Remote management enabled, but no admins are defined")
    elif config.management == 0 and number_of_admins > 0:
        warnings.append("pgmoneta: Remote management disabled, but admins are defined")
    for message in warnings:
        _log.warning(message)
    return warnings


def _format(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(int(value)) if hasattr(value, "__index__") else str(value)


def _restart_required(name: str, existing: object, new: object) -> bool:
    if existing != new:
        _log.info(
            "Restart required for %s - Existing %s New %s", name, _format(existing), _format(new)
        )
        return True
    return False


def _copy_server(source: Server) -> Server:
    # Runtime state and the synchronous flag start cleared in the live copy.
    return Server(
        name=source.name,
        host=source.host,
        port=source.port,
        username=source.username,
        backup_slot=source.backup_slot,
        wal_slot=source.wal_slot,
        follow=source.follow,
        retention=source.retention,
        wal_streaming=source.wal_streaming,
    )


def transfer_configuration(config: Configuration, reload: Configuration) -> list[str]:
    """Copy reloadable settings from ``reload`` into ``config``.

    Returns the names of the changed settings that need a restart; those are
    left unchanged in ``config``.
    """
    restart = [
        name
        for name in _RESTART_SETTINGS
        if _restart_required(name, getattr(config, name), getattr(reload, name))
    ]

    for name in _TRANSFERRED_SETTINGS:
        setattr(config, name, getattr(reload, name))

    servers = []
    for source in reload.servers:
        copy = _copy_server(source)
        if _restart_required("synchronous", copy.synchronous, source.synchronous):
            if "synchronous" not in restart:
                restart.append("synchronous")
        servers.append(copy)
    config.servers = servers

    return restart