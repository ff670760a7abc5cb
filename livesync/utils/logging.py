"""
Logging utilities for livesync
"""
import threading
from datetime import datetime

_verbose = False
_print_lock = threading.Lock()


def set_verbose(verbose: bool):
    """Set the verbose flag"""
    global _verbose
    _verbose = verbose


def is_verbose() -> bool:
    return _verbose


def log(msg: str):
    """Log a message with timestamp"""
    ts = datetime.now().strftime("%H:%M:%S")
    # workers, the watcher and the collector all log concurrently
    with _print_lock:
        print(f"[{ts}] {msg}", flush=True)


def vlog(msg: str):
    """Log a verbose message (only if verbose mode is enabled)"""
    if _verbose:
        log(msg)


def warn(msg: str):
    """Log a warning message"""
    log(f"⚠  {msg}")
