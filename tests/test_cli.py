"""
Integration tests for livesync CLI behavior and profile loading.

Tests:
  - .livesync discovery: searching parent directories upward
  - config loading: apply_profile / ssh_config mutate and read module variables
  - livesync init: creates a valid .livesync YAML, refuses overwrite without --force
  - startup errors: missing settings exit non-zero with a message
"""
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path, PurePosixPath


# ── Helpers ───────────────────────────────────────────────────────────────────

REPO_ROOT = Path(__file__).parent.parent


def run_livesync(*args, cwd=None, input_text="", home=None):
    """Run the livesync CLI and return (returncode, stdout, stderr)."""
    env = {**os.environ, "PYTHONPATH": str(REPO_ROOT)}
    if home is not None:
        # keep the user's real global config out of the way
        env["XDG_CONFIG_HOME"] = str(Path(home) / "config")
        env["HOME"] = str(home)
    result = subprocess.run(
        [sys.executable, "-m", "livesync", *args],
        cwd=str(cwd or REPO_ROOT),
        capture_output=True,
        text=True,
        input=input_text,
        env=env,
        timeout=60,
    )
    return result.returncode, result.stdout, result.stderr


def reset_config():
    import livesync.config as cfg
    cfg.SSH_HOST = None
    cfg.SSH_PORT = 22
    cfg.SSH_USER = None
    cfg.SSH_PASSWORD = None
    cfg.SSH_KEY_PATH = str(Path.home() / ".ssh" / "id_rsa")
    cfg.KNOWN_HOSTS_PATH = str(Path.home() / ".ssh" / "known_hosts")
    cfg.LOCAL_ROOT = None
    cfg.REMOTE_ROOT = None
    cfg.WORKER_COUNT = 50
    cfg.DEBOUNCE_DELAY = 0.5
    cfg.MAX_DELAY = 3.0


# ── Tests: .livesync discovery ────────────────────────────────────────────────

class TestFindProjectFile(unittest.TestCase):
    """Tests for find_project_file() — upward search through parent directories."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmpdir.name).resolve()

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_find_in_same_directory(self):
        from livesync.config import find_project_file
        (self.root / ".livesync").write_text("profiles: []\n", encoding="utf-8")
        self.assertEqual(find_project_file(self.root), self.root / ".livesync")

    def test_find_in_parent_directory(self):
        from livesync.config import find_project_file
        (self.root / ".livesync").write_text("profiles: []\n", encoding="utf-8")
        subdir = self.root / "a" / "b" / "c"
        subdir.mkdir(parents=True)
        self.assertEqual(find_project_file(subdir), self.root / ".livesync")

    def test_finds_nearest_file(self):
        from livesync.config import find_project_file
        (self.root / ".livesync").write_text("profiles: []\n", encoding="utf-8")
        sub_a = self.root / "a"
        sub_a.mkdir()
        (sub_a / ".livesync").write_text("profiles: []\n", encoding="utf-8")
        deep = sub_a / "b" / "c"
        deep.mkdir(parents=True)
        self.assertEqual(find_project_file(deep), sub_a / ".livesync")


# ── Tests: config loading ─────────────────────────────────────────────────────

class TestLoadProfile(unittest.TestCase):
    """Tests for load_project_file, apply_profile and ssh_config."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmpdir.name)
        reset_config()

    def tearDown(self):
        reset_config()
        self.tmpdir.cleanup()

    def _write(self, content):
        p = self.root / ".livesync"
        p.write_text(content, encoding="utf-8")
        return p

    def test_load_profile_basic(self):
        import livesync.config as cfg
        p = self._write(
            "profiles:\n"
            "  - name: default\n"
            "    server: myhost.example.com\n"
            "    port: 2222\n"
            "    user: dev\n"
            "    local_root: /tmp/local\n"
            "    remote_root: /remote/path\n"
        )
        cfg.apply_profile(cfg.get_profile(cfg.load_project_file(p), "default"))
        self.assertEqual(cfg.SSH_HOST, "myhost.example.com")
        self.assertEqual(cfg.SSH_PORT, 2222)
        self.assertEqual(cfg.REMOTE_ROOT, PurePosixPath("/remote/path"))

    def test_load_profile_with_base_remote(self):
        import livesync.config as cfg
        p = self._write(
            "profiles:\n"
            "  - name: default\n"
            "    server: host\n"
            "    remote_root: projects/myrepo\n"
            "defaults:\n"
            "  base_remote: /home/user\n"
        )
        cfg.apply_profile(cfg.get_profile(cfg.load_project_file(p), "default"))
        self.assertEqual(cfg.REMOTE_ROOT, PurePosixPath("/home/user/projects/myrepo"))

    def test_get_profile_by_name_and_fallback(self):
        import livesync.config as cfg
        p = self._write(
            "profiles:\n"
            "  - name: dev\n"
            "    server: dev.example.com\n"
            "  - name: prod\n"
            "    server: prod.example.com\n"
        )
        data = cfg.load_project_file(p)
        self.assertEqual(cfg.get_profile(data, "prod")["server"], "prod.example.com")
        self.assertEqual(cfg.get_profile(data, "nonexistent")["server"], "dev.example.com")

    def test_none_values_do_not_override(self):
        import livesync.config as cfg
        cfg.apply_profile({"server": "a.example.com", "port": 2200})
        cfg.apply_profile({"server": None, "port": None, "user": "me"})
        self.assertEqual((cfg.SSH_HOST, cfg.SSH_PORT, cfg.SSH_USER), ("a.example.com", 2200, "me"))

    def test_ssh_config_key_auth_by_default(self):
        import livesync.config as cfg
        cfg.apply_profile({"server": "h", "user": "u", "ssh_key": "/keys/id_ed25519"})
        c = cfg.ssh_config()
        self.assertFalse(c.uses_password)
        self.assertEqual(c.key_path, "/keys/id_ed25519")
        self.assertEqual(c.port, 22)

    def test_ssh_config_password_replaces_key(self):
        import livesync.config as cfg
        cfg.apply_profile({"server": "h", "user": "u", "ssh_password": "hunter2"})
        c = cfg.ssh_config()
        self.assertTrue(c.uses_password)
        self.assertIsNone(c.key_path)
        self.assertNotIn("hunter2", repr(c))

    def test_ssh_config_requires_user_and_server(self):
        import livesync.config as cfg
        from livesync.errors import ConfigError
        with self.assertRaises(ConfigError):
            cfg.ssh_config()

    def test_invalid_yaml_is_a_config_error(self):
        import livesync.config as cfg
        from livesync.errors import ConfigError
        p = self._write("profiles: [unclosed\n")
        with self.assertRaises(ConfigError):
            cfg.load_project_file(p)


# ── Tests: livesync init ──────────────────────────────────────────────────────

class TestInitCommand(unittest.TestCase):
    """Tests for the 'livesync init' subcommand."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.cwd = Path(self.tmpdir.name) / "project"
        self.cwd.mkdir()
        self.home = Path(self.tmpdir.name) / "home"
        self.home.mkdir()

    def tearDown(self):
        self.tmpdir.cleanup()

    def _init(self, *extra):
        return run_livesync(
            "init", "--server", "myhost.com", "--user", "dev",
            "--remote", "/srv/projects/test", *extra,
            cwd=self.cwd, home=self.home,
        )

    def test_init_creates_valid_yaml(self):
        import yaml
        rc, out, err = self._init("--port", "2222")
        self.assertEqual(rc, 0, msg=f"stderr: {err}")
        data = yaml.safe_load((self.cwd / ".livesync").read_text(encoding="utf-8"))
        profile = data["profiles"][0]
        self.assertEqual(profile["server"], "myhost.com")
        self.assertEqual(profile["port"], 2222)
        self.assertEqual(profile["user"], "dev")
        self.assertEqual(profile["remote_root"], "/srv/projects/test")
        self.assertTrue((self.cwd / ".stignore").exists())

    def test_init_refuses_overwrite(self):
        (self.cwd / ".livesync").write_text("profiles: []\n", encoding="utf-8")
        rc, out, err = self._init()
        self.assertNotEqual(rc, 0)
        self.assertIn("already exists", err)

    def test_init_force_overwrites(self):
        (self.cwd / ".livesync").write_text("profiles: []\n", encoding="utf-8")
        rc, out, err = self._init("--force")
        self.assertEqual(rc, 0, msg=f"stderr: {err}")
        self.assertIn("myhost.com", (self.cwd / ".livesync").read_text(encoding="utf-8"))

    def test_init_dry_run_does_not_write(self):
        rc, out, err = self._init("--dry-run")
        self.assertEqual(rc, 0, msg=f"stderr: {err}")
        self.assertFalse((self.cwd / ".livesync").exists())
        self.assertFalse((self.cwd / ".stignore").exists())
        self.assertIn("dry-run", out)

    def test_init_without_user_fails(self):
        rc, out, err = run_livesync("init", "--server", "h", "--remote", "/r",
                                    cwd=self.cwd, home=self.home)
        self.assertNotEqual(rc, 0)
        self.assertIn("user", err)


# ── Tests: startup errors ─────────────────────────────────────────────────────

class TestStartupErrors(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.cwd = Path(self.tmpdir.name)

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_sync_without_local_path(self):
        rc, out, err = run_livesync("sync", "--remote", "/r", "-u", "u", "-s", "h",
                                    cwd=self.cwd, home=self.cwd)
        self.assertEqual(rc, 1)
        self.assertIn("no local path", err)

    def test_watch_without_server(self):
        rc, out, err = run_livesync("watch", "--local", str(self.cwd), "--remote", "/r", "-u", "u",
                                    cwd=self.cwd, home=self.cwd)
        self.assertEqual(rc, 1)
        self.assertIn("server", err)

    def test_no_command_prints_help(self):
        rc, out, err = run_livesync(cwd=self.cwd, home=self.cwd)
        self.assertEqual(rc, 1)
        self.assertIn("watch", out)


if __name__ == "__main__":
    unittest.main()
