"""
Snapshot comparison: which local files must be pushed
"""
from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePosixPath

from .snapshot import FileInfo, SnapshotStore


class DiffKind(Enum):
    MISSING_REMOTE = "missing-remote"
    DIFFERENT = "different"


@dataclass(frozen=True)
class DiffEntry:
    kind: DiffKind
    path: str
    local: FileInfo
    remote: FileInfo = FileInfo()


@dataclass(frozen=True)
class SyncJob:
    """Everything a worker needs to push one file."""
    local_base: Path
    rel_path: str
    remote_base: PurePosixPath

    @property
    def local_path(self) -> Path:
        return self.local_base / self.rel_path

    @property
    def remote_path(self) -> str:
        return str(self.remote_base / self.rel_path)


def compute_diff(local: SnapshotStore, remote: SnapshotStore) -> list[DiffEntry]:
    """
    Compare local against remote.

    Returns one MISSING_REMOTE entry per local path absent remotely and one
    DIFFERENT entry per local path whose size or mtime differs. Paths that
    only exist remotely are left alone: this is a one-way mirror and remote
    deletions are not part of it.
    """
    diffs: list[DiffEntry] = []
    with local.locked() as l_files, remote.locked() as r_files:
        for rel, l_info in l_files.items():
            r_info = r_files.get(rel)
            if r_info is None:
                diffs.append(DiffEntry(DiffKind.MISSING_REMOTE, rel, l_info))
            elif r_info != l_info:
                diffs.append(DiffEntry(DiffKind.DIFFERENT, rel, l_info, r_info))
    return diffs


def jobs_for(diffs: list[DiffEntry], local_base: Path, remote_base: PurePosixPath) -> list[SyncJob]:
    return [SyncJob(local_base, d.path, remote_base) for d in diffs]


def summarize(diffs: list[DiffEntry]) -> dict[DiffKind, int]:
    counts = {kind: 0 for kind in DiffKind}
    for d in diffs:
        counts[d.kind] += 1
    return counts
