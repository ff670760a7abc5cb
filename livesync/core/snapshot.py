"""
In-memory snapshots of a directory tree (local or remote)
"""
import os
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional


@dataclass(frozen=True)
class FileInfo:
    """Size + whole-second mtime; two files are the same version iff both match."""
    size: int = 0
    mod_time: int = 0

    @classmethod
    def from_stat(cls, st: os.stat_result) -> "FileInfo":
        return cls(size=st.st_size, mod_time=int(st.st_mtime))


class SnapshotStore:
    """
    Lock-guarded mapping {rel_posix_path: FileInfo}.

    Every read and write takes the lock; nothing here performs I/O while
    holding it. Code that needs two stores at once (the diff) must take
    the local store first, then the remote one.
    """

    def __init__(self, name: str = "snapshot"):
        self.name = name
        self._lock = threading.Lock()
        self._files: dict[str, FileInfo] = {}

    @contextmanager
    def locked(self) -> Iterator[dict[str, FileInfo]]:
        """Hold the lock and expose the underlying dict for the with-block."""
        with self._lock:
            yield self._files

    def get(self, rel: str) -> Optional[FileInfo]:
        with self._lock:
            return self._files.get(rel)

    def set(self, rel: str, info: FileInfo):
        with self._lock:
            self._files[rel] = info

    def remove(self, rel: str) -> bool:
        with self._lock:
            return self._files.pop(rel, None) is not None

    def remove_tree(self, rel: str) -> int:
        """Drop *rel* and every entry below it; returns the number removed."""
        prefix = rel.rstrip("/") + "/"
        with self._lock:
            doomed = [k for k in self._files if k == rel or k.startswith(prefix)]
            for k in doomed:
                del self._files[k]
        return len(doomed)

    def replace(self, files: dict[str, FileInfo]):
        fresh = dict(files)
        with self._lock:
            self._files = fresh

    def copy(self) -> dict[str, FileInfo]:
        with self._lock:
            return dict(self._files)

    def __contains__(self, rel: str) -> bool:
        with self._lock:
            return rel in self._files

    def __len__(self) -> int:
        with self._lock:
            return len(self._files)

    def __repr__(self):
        return f"SnapshotStore({self.name!r}, {len(self)} file(s))"
