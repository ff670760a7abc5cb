"""Utilities (logging, retry, patterns, file utilities)"""
from .logging import log, vlog, warn, set_verbose
from .retry import retried
from .ignore_patterns import load_ignore_patterns, is_ignored
from .file_utils import relative_posix, is_syncable

__all__ = [
    "log", "vlog", "warn", "set_verbose",
    "retried",
    "load_ignore_patterns", "is_ignored",
    "relative_posix", "is_syncable",
]
