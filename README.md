# monetakit

Helpers for looking after a PostgreSQL backup store:

- `monetakit.configuration` reads a `pgmoneta.conf`-style configuration file into a `Configuration` object.
- `monetakit.validation` checks a configuration and carries a reloaded one over into a live one.
- `monetakit.tarheader` and `monetakit.tarwriter` write directory trees into ustar/GNU tar archives.
- `monetakit.gzip_compression` compresses and decompresses data directories, WAL directories and single files.
- `monetakit.delete` works out how a backup is to be deleted and which WAL segments are outdated.
- `monetakit.admin` manages the master key and the users file, and is installed as the `monetakit-admin` command.

The package has no dependencies beyond the standard library.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Configuration

```python
from monetakit.configuration import read_configuration, ConfigurationError
from monetakit.validation import validate_configuration, ValidationError

try:
    config = read_configuration("/etc/pgmoneta/pgmoneta.conf")
    validate_configuration(config)
except (ConfigurationError, ValidationError) as exc:
    print(f"invalid configuration: {exc}")
```

`read_configuration` starts from the defaults held by `Configuration` (zstd
compression at level 3, retention 7, backlog 16, and so on) and raises
`ConfigurationError` when the file cannot be read. The `[pgmoneta]` section holds
the main settings; every other section is a `Server` with `host`, `port`, `user`,
`backup_slot`, `wal_slot`, `follow`, `synchronous` and `retention`. Lines starting
with `#` or `;` are comments. Settings that are not understood are logged and
collected in `config.unknown` as `(section, key, value)` tuples.

The value parsers are available on their own: `as_int`, `as_bool` (raising
`ValueError`), and `as_logging_type`, `as_logging_level`, `as_logging_mode`,
`as_hugepage` and `as_compression`, which fall back to a default.

`validate_configuration` raises `ValidationError` for a missing host, missing
or non-directory `unix_socket_dir`, `base_dir` or `pgsql_dir`, no servers, a
server named `pgmoneta` or `all`, a server without host, port or user, or a
`follow` naming an unknown server. It raises a negative retention to 0 and a
backlog below 16 to 16.

`validate_users_configuration(config, usernames)` checks that every server's user
is among the given names. `validate_admins_configuration(config, number_of_admins)`
returns warnings when remote management and admins disagree.

`transfer_configuration(config, reload)` copies the reloadable settings and the
server list into `config` and returns the names of changed settings that only a
restart applies (`base_dir`, `log_type`, `log_path`, `log_mode`, `pidfile`,
`libev`, `hugepage`, `unix_socket_dir`, `synchronous`); those are left as they were.

## Archiving a directory

```python
from monetakit.tarwriter import archive_directory

archive_directory("/backups/primary/20240101120000/data", "/tmp/primary.tar")
```

Members are stored below `.`. For finer control use `TarWriter` as a context
manager with `add_tree(realdir, savedir)` and `add_file(realname, savename)`.
Directory entries are added in name order, hard links are recorded once, and
names or link targets longer than 99 bytes get GNU long-name or long-link records.
`TarHeader` builds the individual 512-byte header blocks.

## Compression

```python
from monetakit.gzip_compression import gzip_data, gunzip_data, gzip_file

gzip_data("/backups/primary/20240101120000/data", level=6)
gunzip_data("/backups/primary/20240101120000/data")
gzip_file("/tmp/primary.tar", "/tmp/primary.tar.gz")
```

- `gzip_data` compresses every file below a directory that does not already end in `.gz`.
- `gzip_wal` compresses the regular files directly in a directory, skipping `.gz` and `.partial` files.
- `gunzip_data` decompresses every `.gz` file below a directory.
- `gzip_file` compresses one file into a target.

Originals are removed after success. Each function returns the paths it wrote and
raises `CompressionError` when a file cannot be processed. Levels are clamped to
1–9 by `clamp_level`.

## Deleting backups

```python
from monetakit.delete import Backup, plan_delete, outdated_wal_files

backups = [Backup("20240101000000"), Backup("20240102000000")]
plan = plan_delete(backups, "oldest")
print(plan.label, plan.action, plan.next_label, plan.action.relinks)
```

The identifier may be a backup label, `oldest`, `newest` or `latest`;
`BackupNotFoundError` is raised when nothing matches. `DeleteAction` tells whether
the backup is in between two valid ones, the oldest or latest valid one, the only
valid one, or invalid, and `relinks` says whether its files must first be relinked
into `next_label`. `outdated_wal_files(backups, wal_files, oldest_backup_wal_files)`
returns the leading WAL segments that no backup still needs.

## Administration

```
monetakit-admin master-key
monetakit-admin -g -l 32 master-key
monetakit-admin -f users.conf list-users
monetakit-admin -f users.conf -U alice remove-user
```

The command is the last argument. Options:

- `-f, --file FILE` path to a users file
- `-U, --user USER` user name (prompted for when missing)
- `-P, --password PASSWORD` the master key to store
- `-g, --generate` generate the master key
- `-l, --length N` length of a generated key (default 64)
- `-V, --version` show the version
- `-?, --help` show help

A master key must be at least eight ASCII characters; without `-P` or `-g` it is
prompted for. It is stored base64 encoded in `~/.pgmoneta/master.key`, and that
directory and file must be accessible only by their owner. The command refuses to
run as root. The same operations are available as `write_master_key`,
`list_users`, `remove_user`, `generate_password` and `is_valid_key`, raising
`AdminError` on failure.

## What the package does not do

- It does not take backups, restore them, or stream WAL; it has no server and no
  network client.
- It does not encrypt passwords, so there is no command to add or update users,
  and users and admins files are not read; only listing and removing entries is supported.
- It compresses with gzip only; zstd and lz4 can be chosen in the configuration
  but are not implemented here.
- `plan_delete` and `outdated_wal_files` decide what to do but do not touch the file system.