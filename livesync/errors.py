"""
Exception types raised by livesync
"""


class LiveSyncError(Exception):
    """Base class for errors that stop livesync from starting."""


class ConfigError(LiveSyncError):
    """Missing or invalid configuration."""


class WatcherError(LiveSyncError):
    """The local file-system watch could not be set up."""


class ScanError(LiveSyncError):
    """A directory could not be scanned or registered for notifications."""


class TransportError(LiveSyncError):
    """The SSH session could not be established or authenticated."""
