"""Core functionality"""
from .snapshot import FileInfo, SnapshotStore
from .diff import DiffEntry, DiffKind, SyncJob, compute_diff
from .watcher import FileSystemWatcher, WatchEvent
from .collector import EventCollector, SyncTrigger
from .ssh_manager import SSHManager
from .uploader import PassResult, UploadScheduler

__all__ = [
    "FileInfo", "SnapshotStore",
    "DiffEntry", "DiffKind", "SyncJob", "compute_diff",
    "FileSystemWatcher", "WatchEvent",
    "EventCollector", "SyncTrigger",
    "SSHManager",
    "PassResult", "UploadScheduler",
]
