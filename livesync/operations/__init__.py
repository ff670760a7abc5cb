"""Remote operations (listing, per-file push)"""
from .scanner import list_remote, parse_listing, listing_command
from .transfer import sync_file, ensure_remote_dir, remove_remote, is_remote_link

__all__ = [
    "list_remote", "parse_listing", "listing_command",
    "sync_file", "ensure_remote_dir", "remove_remote", "is_remote_link",
]
