"""livesync: one-way live mirror of a local tree to a remote host over SSH"""

__version__ = "0.3.0"
