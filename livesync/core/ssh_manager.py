"""
SSH connection manager: one authenticated session, a bounded pool of SFTP channels
"""
import os
import queue
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

import paramiko

from .. import config as _cfg
from ..config import SSHConfig
from ..errors import TransportError
from ..utils.logging import log, vlog
from .diff import SyncJob

# exec_command sessions allowed alongside the SFTP pool
_EXEC_SESSIONS = 2


class DirCache:
    """
    Remote directories known to exist. Only a hint: creating a directory
    must still tolerate it already being there, and someone else may have
    removed it since we looked.
    """

    def __init__(self):
        self._dirs: set[str] = set()
        self._lock = threading.Lock()

    def __contains__(self, path: str) -> bool:
        with self._lock:
            return path in self._dirs

    def add(self, path: str):
        with self._lock:
            self._dirs.add(path)

    def clear(self):
        with self._lock:
            self._dirs.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._dirs)


class SSHManager:
    """
    Wraps paramiko SSHClient + a pool of SFTPClients.
    Reconnects when the session drops between operations.
    Sends SSH keep-alives to reduce mid-transfer drops.

    At most `channels` SFTP sessions are ever open. They outlive the worker
    threads that borrow them, so a pass reuses the previous pass's channels:

        with mgr.channel() as sftp:
            sftp.putfo(...)
    """

    def __init__(self, cfg: SSHConfig, channels: Optional[int] = None):
        self.cfg = cfg
        self.dir_cache = DirCache()
        self.max_channels = max(1, channels if channels is not None else _cfg.SFTP_CHANNELS)
        self._ssh: Optional[paramiko.SSHClient] = None
        self._connect_lock = threading.Lock()
        self._generation = 0
        self._slots = threading.BoundedSemaphore(self.max_channels)
        self._exec_slots = threading.BoundedSemaphore(_EXEC_SESSIONS)
        self._idle: "queue.LifoQueue[tuple[int, paramiko.SFTPClient]]" = queue.LifoQueue()
        self._sftp_clients: list[paramiko.SFTPClient] = []
        self._sftp_lock = threading.Lock()

    # ── connection ─────────────────────────────────────────────────────────

    def connect(self):
        """Open the session. Any failure is a TransportError."""
        with self._connect_lock:
            if self._is_active():
                return
            self._close_quietly()

            cfg = self.cfg
            log(f"[SSH] connecting to {cfg.user}@{cfg.host}:{cfg.port} …")
            client = paramiko.SSHClient()
            try:
                client.load_system_host_keys()
                if cfg.known_hosts_path and os.path.isfile(cfg.known_hosts_path):
                    client.load_host_keys(cfg.known_hosts_path)
            except (OSError, paramiko.SSHException) as exc:
                raise TransportError(f"cannot load known hosts {cfg.known_hosts_path}: {exc}") from exc
            client.set_missing_host_key_policy(paramiko.RejectPolicy())

            kw: dict = dict(hostname=cfg.host, port=cfg.port, username=cfg.user,
                            timeout=20, banner_timeout=30, auth_timeout=30)
            if cfg.uses_password:
                kw.update(password=cfg.password, look_for_keys=False, allow_agent=False)
            elif cfg.key_path:
                if not os.path.isfile(cfg.key_path):
                    raise TransportError(f"private key not found: {cfg.key_path}")
                kw["key_filename"] = cfg.key_path

            try:
                client.connect(**kw)
            except paramiko.AuthenticationException as exc:
                client.close()
                raise TransportError(f"authentication failed for {cfg.user}@{cfg.host}: {exc}") from exc
            except (OSError, paramiko.SSHException) as exc:
                client.close()
                raise TransportError(f"cannot connect to {cfg.host}:{cfg.port}: {exc}") from exc

            # Keep-alive: send a NOP every 30s
            client.get_transport().set_keepalive(30)

            self._ssh = client
            self._generation += 1
            log("[SSH] connected ✓")

    def _is_active(self) -> bool:
        if self._ssh is None:
            return False
        transport = self._ssh.get_transport()
        return transport is not None and transport.is_active()

    def _close_quietly(self):
        with self._sftp_lock:
            clients, self._sftp_clients = self._sftp_clients, []
            while True:
                try:
                    self._idle.get_nowait()
                except queue.Empty:
                    break
        for sftp in clients:
            self._close_channel(sftp)
        if self._ssh is not None:
            self._ssh.close()
        self._ssh = None

    def disconnect(self):
        with self._connect_lock:
            self._close_quietly()
        log("[SSH] disconnected.")

    def ensure_connected(self):
        """Call before any remote operation."""
        if not self._is_active():
            self.connect()

    # ── raw exec ────────────────────────────────────────────────────────────

    def exec(self, cmd: str, timeout: int = 60) -> tuple[str, str]:
        """Run a command; return (stdout, stderr). Raises on non-zero exit."""
        self.ensure_connected()
        with self._exec_slots:
            _, stdout, stderr = self._ssh.exec_command(cmd, timeout=timeout)
            out = stdout.read().decode("utf-8", errors="replace")
            err = stderr.read().decode("utf-8", errors="replace")
            rc = stdout.channel.recv_exit_status()
        if rc != 0:
            raise RuntimeError(f"remote command exited {rc}: {cmd!r}\nstderr: {err.strip()}")
        return out, err

    # ── sftp pool ───────────────────────────────────────────────────────────

    @property
    def open_channels(self) -> int:
        with self._sftp_lock:
            return len(self._sftp_clients)

    @staticmethod
    def _close_channel(sftp: paramiko.SFTPClient):
        try:
            sftp.close()
        except (OSError, EOFError, paramiko.SSHException):
            pass

    def _discard(self, sftp: paramiko.SFTPClient):
        with self._sftp_lock:
            if sftp in self._sftp_clients:
                self._sftp_clients.remove(sftp)
        self._close_channel(sftp)

    def _checkout(self) -> tuple[int, paramiko.SFTPClient]:
        self.ensure_connected()
        while True:
            try:
                generation, sftp = self._idle.get_nowait()
            except queue.Empty:
                break
            channel = sftp.get_channel()
            if generation == self._generation and channel is not None and not channel.closed:
                return generation, sftp
            # opened on a previous session or dropped by the server
            self._discard(sftp)

        generation = self._generation
        sftp = self._ssh.open_sftp()
        with self._sftp_lock:
            self._sftp_clients.append(sftp)
            count = len(self._sftp_clients)
        vlog(f"[SSH] opened SFTP channel {count}/{self.max_channels}")
        return generation, sftp

    @contextmanager
    def channel(self) -> Iterator[paramiko.SFTPClient]:
        """Borrow an SFTP channel; blocks while all of them are in use."""
        with self._slots:
            generation, sftp = self._checkout()
            try:
                yield sftp
            finally:
                if generation == self._generation:
                    self._idle.put((generation, sftp))
                else:
                    self._discard(sftp)

    def begin_pass(self):
        """Forget cached directories so each pass re-checks the remote tree."""
        self.dir_cache.clear()

    def sync_file(self, job: SyncJob):
        """Push one local file (or symlink) to its remote location."""
        from ..operations.transfer import sync_file

        sync_file(self, job, self.dir_cache)
