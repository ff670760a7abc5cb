"""
Per-file push: what one worker does for one SyncJob
"""
import os
import posixpath
import shlex
import stat

import paramiko

from ..core.diff import SyncJob
from ..core.ssh_manager import DirCache, SSHManager
from ..utils.logging import log, vlog, warn


def ensure_remote_dir(sftp: paramiko.SFTPClient, path: str, cache: DirCache):
    """mkdir -p over SFTP. Safe to race with other workers creating the same tree."""
    if not path or path == "/" or path in cache:
        return
    try:
        attrs = sftp.stat(path)
    except FileNotFoundError:
        attrs = None
    if attrs is not None:
        if not stat.S_ISDIR(attrs.st_mode or 0):
            raise NotADirectoryError(f"remote path exists and is not a directory: {path}")
        cache.add(path)
        return

    ensure_remote_dir(sftp, posixpath.dirname(path), cache)
    try:
        sftp.mkdir(path)
        vlog(f"  [MKDIR] {path}")
    except OSError:
        # another worker may have won the race; only fail if it is still missing
        if not stat.S_ISDIR(sftp.stat(path).st_mode or 0):
            raise
    cache.add(path)


def remove_remote(sftp: paramiko.SFTPClient, path: str) -> bool:
    """Delete a remote file or link; a missing path is not an error."""
    try:
        sftp.remove(path)
        return True
    except FileNotFoundError:
        return False


def is_remote_link(sftp: paramiko.SFTPClient, path: str) -> bool:
    try:
        attrs = sftp.lstat(path)
    except FileNotFoundError:
        return False
    return stat.S_ISLNK(attrs.st_mode or 0)


def _push_symlink(mgr: SSHManager, sftp: paramiko.SFTPClient, job: SyncJob,
                  st: os.stat_result, cache: DirCache):
    target = os.readlink(job.local_path)
    remote = job.remote_path
    ensure_remote_dir(sftp, posixpath.dirname(remote), cache)
    remove_remote(sftp, remote)
    sftp.symlink(target, remote)
    # SFTP utime follows links; align the link's own mtime so the next diff matches
    mtime = int(st.st_mtime)
    try:
        mgr.exec(f"touch -h -d @{mtime} {shlex.quote(remote)}", timeout=30)
    except RuntimeError as exc:
        warn(f"  [LINK] could not set mtime on {remote}: {exc}")
    log(f"  [LINK ✓] {job.rel_path} -> {target}")


def sync_file(mgr: SSHManager, job: SyncJob, cache: DirCache):
    """
    Push one file:
      symlink  → recreate the link remotely, no bytes copied
      file     → mkdir -p parent, replace a remote link if one is in the way,
                 stream contents, set remote mtime to local mtime
    Raises on any failure; the caller logs and moves on.
    """
    st = os.lstat(job.local_path)
    remote = job.remote_path
    with mgr.channel() as sftp:
        if stat.S_ISLNK(st.st_mode):
            _push_symlink(mgr, sftp, job, st, cache)
            return

        ensure_remote_dir(sftp, posixpath.dirname(remote), cache)
        if is_remote_link(sftp, remote):
            # putfo and utime follow links; writing now would clobber the link's target
            remove_remote(sftp, remote)
            vlog(f"  [UNLINK] {remote}")
        with open(job.local_path, "rb") as f:
            sftp.putfo(f, remote, confirm=True)
        sftp.utime(remote, (int(st.st_atime), int(st.st_mtime)))
    log(f"  [PUSH ✓] {job.rel_path} ({st.st_size} B)")
