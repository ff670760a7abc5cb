"""
Configuration constants for livesync
"""
import os
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Optional

# ══════════════════════════════════════════════════════════════════════════════
#  DEFAULTS  ── overridden by YAML config or apply_profile()
# ══════════════════════════════════════════════════════════════════════════════

SSH_HOST: Optional[str] = None
SSH_PORT = 22
SSH_USER: Optional[str] = None
SSH_KEY_PATH: Optional[str] = str(Path.home() / ".ssh" / "id_rsa")
SSH_PASSWORD: Optional[str] = None  # when set, password auth replaces key auth
KNOWN_HOSTS_PATH: Optional[str] = str(Path.home() / ".ssh" / "known_hosts")

LOCAL_ROOT: Optional[Path] = None
REMOTE_ROOT: Optional[PurePosixPath] = None

STIGNORE_FILE = ".stignore"
PROJECT_FILE = ".livesync"

# Retry settings (remote listing only; uploads are retried by the next pass)
RETRY_MAX = 3
RETRY_BASE_DELAY = 1.0  # seconds; doubles each attempt

# Event collection
DEBOUNCE_DELAY = 0.5  # quiet period after the last event
MAX_DELAY = 3.0  # upper bound between first pending event and a pass
OVERFLOW_THRESHOLD = 1000  # distinct pending paths that force a pass
EVENT_QUEUE_SIZE = 10000

# Upload pool
WORKER_COUNT = 50
JOB_QUEUE_SIZE = 100
SFTP_CHANNELS = 8  # pooled SFTP sessions shared by all workers; sshd MaxSessions defaults to 10


@dataclass(frozen=True)
class SSHConfig:
    """Connection parameters handed to the transport."""
    user: str
    host: str
    port: int = 22
    password: Optional[str] = None
    key_path: Optional[str] = None
    known_hosts_path: Optional[str] = None

    @property
    def uses_password(self) -> bool:
        return bool(self.password)

    def __repr__(self):
        # never print the password
        auth = "password" if self.uses_password else f"key={self.key_path}"
        return f"SSHConfig({self.user}@{self.host}:{self.port}, {auth})"


def ssh_config() -> SSHConfig:
    """Snapshot the current module-level connection settings."""
    from .errors import ConfigError

    missing = [name for name, value in (("user", SSH_USER), ("server", SSH_HOST)) if not value]
    if missing:
        raise ConfigError(f"missing required setting(s): {', '.join(missing)}")
    return SSHConfig(
        user=SSH_USER,
        host=SSH_HOST,
        port=int(SSH_PORT),
        password=SSH_PASSWORD or None,
        key_path=None if SSH_PASSWORD else SSH_KEY_PATH,
        known_hosts_path=KNOWN_HOSTS_PATH,
    )


# ══════════════════════════════════════════════════════════════════════════════
#  GLOBAL CONFIG FILE  ── $XDG_CONFIG_HOME/livesync/config.yaml
# ══════════════════════════════════════════════════════════════════════════════

def get_global_config_dir() -> Path:
    """Return the global config directory for livesync."""
    xdg = os.environ.get("XDG_CONFIG_HOME", "")
    if xdg:
        return Path(xdg) / "livesync"
    if os.name == "nt":
        appdata = os.environ.get("APPDATA", "")
        if appdata:
            return Path(appdata) / "livesync"
    return Path.home() / ".config" / "livesync"


def load_global_config() -> dict:
    """Load global config from the livesync config directory."""
    import yaml

    cfg_path = get_global_config_dir() / "config.yaml"
    if not cfg_path.is_file():
        return {}
    try:
        with cfg_path.open("r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError):
        return {}


# ══════════════════════════════════════════════════════════════════════════════
#  PROJECT CONFIG FILE  ── .livesync (searched upward)
# ══════════════════════════════════════════════════════════════════════════════

def find_project_file(start: Optional[Path] = None) -> Optional[Path]:
    """
    Search upward from *start* (default: cwd) for a .livesync YAML file.
    Returns the Path if found, or None if no .livesync exists in any parent.
    """
    current = (start or Path.cwd()).resolve()
    while True:
        candidate = current / PROJECT_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            return None
        current = parent


def load_project_file(path: Path) -> dict:
    """Parse a .livesync YAML file and return its contents as a dict."""
    import yaml

    from .errors import ConfigError

    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"{path}: invalid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a mapping at top level")
    return data


def get_profile(data: dict, profile_name: str = "default") -> dict:
    """
    Extract a named profile from a .livesync or config.yaml data dict.
    Falls back to the first profile if the named one is not found.
    Returns a flat profile dict merged with top-level defaults.
    """
    defaults = data.get("defaults", {}) or {}
    profiles = data.get("profiles", []) or []
    if not profiles:
        return defaults.copy()
    profile = next((p for p in profiles if p.get("name") == profile_name), None)
    if profile is None:
        profile = profiles[0]
    merged = defaults.copy()
    merged.update(profile)
    return merged


# ══════════════════════════════════════════════════════════════════════════════
#  APPLY PROFILE  ── mutates module-level variables
# ══════════════════════════════════════════════════════════════════════════════

def apply_profile(profile: dict):
    """
    Apply a profile dict to the module-level config variables.
    Supports keys: server, port, user, ssh_key, ssh_password, known_hosts,
                   local_root, remote_root, base_remote (prepended to
                   remote_root if remote_root is relative), workers,
                   sftp_channels, debounce, max_delay.
    Keys whose value is None are ignored, so CLI overrides can be passed as-is.
    """
    global SSH_HOST, SSH_PORT, SSH_USER, SSH_KEY_PATH, SSH_PASSWORD, KNOWN_HOSTS_PATH
    global LOCAL_ROOT, REMOTE_ROOT, WORKER_COUNT, SFTP_CHANNELS, DEBOUNCE_DELAY, MAX_DELAY

    profile = {k: v for k, v in profile.items() if v is not None}

    if "server" in profile:
        SSH_HOST = str(profile["server"])
    if "port" in profile:
        SSH_PORT = int(profile["port"])
    if "user" in profile:
        SSH_USER = str(profile["user"])
    elif "username" in profile:
        SSH_USER = str(profile["username"])
    if "ssh_key" in profile:
        SSH_KEY_PATH = str(Path(profile["ssh_key"]).expanduser()) if profile["ssh_key"] else None
    if "ssh_password" in profile:
        SSH_PASSWORD = str(profile["ssh_password"]) if profile["ssh_password"] else None
    if "known_hosts" in profile:
        KNOWN_HOSTS_PATH = str(Path(profile["known_hosts"]).expanduser()) if profile["known_hosts"] else None
    if "local_root" in profile:
        LOCAL_ROOT = Path(profile["local_root"]).expanduser().resolve()
    if "remote_root" in profile:
        rr = str(profile["remote_root"])
        base = str(profile.get("base_remote", "")).rstrip("/")
        if base and not rr.startswith("/"):
            rr = f"{base}/{rr}"
        REMOTE_ROOT = PurePosixPath(rr)
    if "workers" in profile:
        WORKER_COUNT = max(1, int(profile["workers"]))
    if "sftp_channels" in profile:
        SFTP_CHANNELS = max(1, int(profile["sftp_channels"]))
    if "debounce" in profile:
        DEBOUNCE_DELAY = float(profile["debounce"])
    if "max_delay" in profile:
        MAX_DELAY = float(profile["max_delay"])
