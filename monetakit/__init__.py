"""Configuration, tar archiving, gzip compression, retention and administration helpers for PostgreSQL backup stores."""

__version__ = "0.1.0"