[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "monetakit"
version = "0.1.0"
description = "Configuration, tar archiving, gzip compression and retention helpers for PostgreSQL backup stores"
requires-python = ">=3.10"
dependencies = []
keywords = ["postgresql", "backup", "archive", "tar", "gzip", "retention", "wal"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database",
    "Topic :: System :: Archiving :: Backup",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
monetakit-admin = "monetakit.admin:main"

[tool.hatch.build.targets.wheel]
packages = ["monetakit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
