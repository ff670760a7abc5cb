"""
Remote listing: one `find` round-trip per sync pass
"""
import shlex
from pathlib import PurePosixPath

from ..core.snapshot import FileInfo
from ..core.ssh_manager import SSHManager
from ..utils.logging import vlog
from ..utils.retry import retried


def listing_command(remote_root: PurePosixPath) -> str:
    """
    Shell command printing `<rel-path> <size> <mtime.fraction>` per file.
    The root is created first so a brand-new target lists as empty.
    """
    root = shlex.quote(str(remote_root))
    return (
        f"mkdir -p {root} && cd {root} && "
        r"find . \( -type f -o -type l \) -printf '%P %s %T@\n'"
    )


def parse_listing(content: str) -> dict[str, FileInfo]:
    """Parse `find -printf '%P %s %T@'` output; malformed lines are skipped."""
    result: dict[str, FileInfo] = {}
    for line in content.splitlines():
        # split from the right so names containing spaces survive
        parts = line.rstrip("\r\n").rsplit(None, 2)
        if len(parts) != 3:
            continue
        rel_path, size_raw, mtime_raw = parts
        rel_path = rel_path.strip()
        if not rel_path:
            continue
        try:
            result[rel_path] = FileInfo(size=int(size_raw), mod_time=int(float(mtime_raw)))
        except ValueError:
            continue
    return result


@retried
def list_remote(mgr: SSHManager, remote_root: PurePosixPath) -> dict[str, FileInfo]:
    """Fetch a fresh remote snapshot."""
    out, _ = mgr.exec(listing_command(remote_root), timeout=300)
    files = parse_listing(out)
    vlog(f"[scan] {len(files)} remote file(s) under {remote_root}")
    return files
