"""
File utilities (relative paths, stat helpers)
"""
import os
import stat
from pathlib import Path


def relative_posix(root: Path, path) -> str:
    """Slash-separated path of *path* relative to *root*, no leading separator."""
    rel = os.path.relpath(os.fspath(path), os.fspath(root))
    if rel == os.curdir:
        return ""
    return rel.replace(os.sep, "/")


def is_syncable(st: os.stat_result) -> bool:
    """Regular files and symlinks are mirrored; sockets, fifos and devices are not."""
    return stat.S_ISREG(st.st_mode) or stat.S_ISLNK(st.st_mode)
