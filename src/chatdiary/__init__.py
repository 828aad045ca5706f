"""chatdiary: local-first journal persistence with portable backups."""

__version__ = "0.2.0"
