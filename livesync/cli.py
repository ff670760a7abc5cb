#!/usr/bin/env python3
"""
livesync  -  one-way live mirror of a local tree to an SSH host
===============================================================

Subcommands:
  init      Create a .livesync config file in the current directory.
  watch     Mirror continuously: push new/changed files as activity settles.
  sync      Run a single push pass and exit.
  status    Show what the next pass would push, without pushing.

Connection and path settings come from the nearest .livesync profile and
can be overridden on the command line.

Run 'livesync <subcommand> --help' for more details.
"""
import sys
import argparse
from pathlib import Path


STIGNORE_TEMPLATE = """# Paths matching these patterns are never pushed
.git/**
**/node_modules/**
**/__pycache__/**
**/*.pyc
*.swp
.DS_Store
.idea/**
.vscode/**
"""


def _fail(msg: str):
    print(f"error: {msg}", file=sys.stderr)
    sys.exit(1)


# ── init ─────────────────────────────────────────────────────────────────────

def cmd_init(args):
    """Create a .livesync profile file in the current directory."""
    from livesync import config as _cfg

    target = Path.cwd() / _cfg.PROJECT_FILE

    if target.exists() and not args.force:
        print(f"error: {_cfg.PROJECT_FILE} already exists in {Path.cwd()}", file=sys.stderr)
        print("Use --force to overwrite.", file=sys.stderr)
        sys.exit(1)

    g_defaults = _cfg.load_global_config().get("defaults", {}) or {}

    local_root = str(Path(args.local or Path.cwd()).expanduser())

    remote_root = args.remote
    if not remote_root:
        base_remote = g_defaults.get("base_remote", "")
        name = Path.cwd().name
        default_rr = f"{str(base_remote).rstrip('/')}/{name}" if base_remote else name
        if sys.stdin.isatty():
            entered = input(f"Remote path [{default_rr}]: ").strip()
            remote_root = entered or default_rr
        else:
            remote_root = default_rr

    server = args.server or g_defaults.get("server")
    if not args.server and sys.stdin.isatty():
        val = input(f"Server hostname [{server or ''}]: ").strip()
        server = val or server
    if not server:
        _fail("a server is required (--server).")

    user = args.user or g_defaults.get("user")
    if not args.user and sys.stdin.isatty():
        val = input(f"SSH user [{user or ''}]: ").strip()
        user = val or user
    if not user:
        _fail("a user is required (--user).")

    port = args.port or int(g_defaults.get("port", 22))

    def _yq(value: str) -> str:
        """Wrap a string in YAML single quotes, escaping embedded single quotes."""
        return "'" + str(value).replace("'", "''") + "'"

    lines = [
        "# .livesync: livesync project configuration",
        "#",
        "# profiles: list of mirror targets for this project.",
        "# remote_root is relative to base_remote when it does not start with '/'.",
        "profiles:",
        f"  - name: {args.profile}",
        f"    server: {_yq(server)}",
        f"    port: {port}",
        f"    user: {_yq(user)}",
        f"    local_root: {_yq(local_root.replace(chr(92), '/'))}",
        f"    remote_root: {_yq(remote_root)}",
    ]
    if args.ssh_key:
        lines.append(f"    ssh_key: {_yq(args.ssh_key)}")
    if args.known_hosts:
        lines.append(f"    known_hosts: {_yq(args.known_hosts)}")
    if g_defaults.get("base_remote"):
        lines += [
            "defaults:",
            f"  base_remote: {_yq(g_defaults['base_remote'])}",
        ]

    content = "\n".join(lines) + "\n"
    stignore_path = Path.cwd() / _cfg.STIGNORE_FILE

    if args.dry_run:
        print(f"[dry-run] Would write {target}:")
        print(content)
        if not stignore_path.exists():
            print(f"[dry-run] Would write {stignore_path}:")
            print(STIGNORE_TEMPLATE)
        return

    target.write_text(content, encoding="utf-8")
    print(f"Created {target}")

    if not stignore_path.exists():
        stignore_path.write_text(STIGNORE_TEMPLATE, encoding="utf-8")
        print(f"Created {stignore_path}")
    elif args.verbose:
        print(f"{stignore_path} already exists; not modified.")

    if args.verbose:
        print(content)


# ── shared setup for watch / sync / status ──────────────────────────────────

def _configure(args):
    """
    Merge global defaults, the nearest .livesync profile and CLI flags into
    livesync.config, then validate. Returns the applied profile name.
    """
    import livesync.config as _cfg
    from livesync.utils.logging import set_verbose

    set_verbose(args.verbose)

    g_defaults = _cfg.load_global_config().get("defaults", {}) or {}
    _cfg.apply_profile(g_defaults)

    project = _cfg.find_project_file()
    profile = {}
    if project is not None:
        if args.verbose:
            print(f"[config] Using {project}")
        profile = _cfg.get_profile(_cfg.load_project_file(project), args.profile)
        _cfg.apply_profile(profile)

    _cfg.apply_profile({
        "local_root": args.local,
        "remote_root": args.remote,
        "user": args.user,
        "server": args.server,
        "port": args.port,
        "ssh_password": args.password,
        "ssh_key": args.ssh_key,
        "known_hosts": args.known_hosts,
        "workers": args.workers,
    })

    if _cfg.LOCAL_ROOT is None:
        _fail("no local path: pass --local or run 'livesync init'.")
    if not _cfg.LOCAL_ROOT.is_dir():
        _fail(f"local path is not a directory: {_cfg.LOCAL_ROOT}")
    if _cfg.REMOTE_ROOT is None:
        _fail("no remote path: pass --remote or run 'livesync init'.")
    return profile.get("name", args.profile)


def _build_syncer():
    import livesync.config as _cfg
    from livesync.core.sync_engine import Syncer

    return Syncer(_cfg.LOCAL_ROOT, _cfg.REMOTE_ROOT, _cfg.ssh_config())


# ── watch ────────────────────────────────────────────────────────────────────

def cmd_watch(args):
    """Mirror continuously until interrupted."""
    import livesync.config as _cfg
    from livesync.errors import LiveSyncError
    from livesync.utils.logging import log

    _configure(args)

    print(f"\n{'=' * 64}")
    print(f"  Watch  {_cfg.LOCAL_ROOT}")
    print(f"   →   {_cfg.SSH_USER}@{_cfg.SSH_HOST}:{_cfg.SSH_PORT}:{_cfg.REMOTE_ROOT}")
    print(f"{'=' * 64}\n")

    try:
        syncer = _build_syncer()
    except LiveSyncError as exc:
        _fail(str(exc))
    try:
        syncer.run()
    except KeyboardInterrupt:
        print()
        log("Interrupted by user, stopping.")
    except LiveSyncError as exc:
        _fail(str(exc))
    finally:
        syncer.close()


# ── sync ─────────────────────────────────────────────────────────────────────

def cmd_sync(args):
    """Run one pass and exit; exit code 1 if any file failed."""
    from livesync.errors import LiveSyncError

    _configure(args)
    try:
        syncer = _build_syncer()
    except LiveSyncError as exc:
        _fail(str(exc))
    try:
        result = syncer.sync_once()
    except LiveSyncError as exc:
        _fail(str(exc))
    finally:
        syncer.close()

    print()
    print(f"{'─' * 64}")
    print(" SUMMARY")
    print(f"  To push  : {result.jobs}")
    print(f"  Pushed   : {result.uploaded}")
    print(f"  Failed   : {result.failed}")
    print(f"  Elapsed  : {result.elapsed:.2f}s")
    print(f"{'─' * 64}")
    if not result.ok:
        sys.exit(1)


# ── status ────────────────────────────────────────────────────────────────────

def cmd_status(args):
    """List pending pushes."""
    import livesync.config as _cfg
    from livesync.core.diff import DiffKind
    from livesync.errors import LiveSyncError

    name = _configure(args)
    try:
        syncer = _build_syncer()
    except LiveSyncError as exc:
        _fail(str(exc))
    try:
        diffs = syncer.pending()
    except LiveSyncError as exc:
        _fail(str(exc))
    finally:
        syncer.close()

    print(f"\nProfile : {name}")
    print(f"Local   : {_cfg.LOCAL_ROOT}  ({len(syncer.local)} file(s))")
    print(f"Remote  : {_cfg.SSH_USER}@{_cfg.SSH_HOST}:{_cfg.SSH_PORT}:{_cfg.REMOTE_ROOT}"
          f"  ({len(syncer.remote)} file(s))")
    if not diffs:
        print("\nIn sync ✓")
        return
    print(f"\n{len(diffs)} file(s) to push:")
    for d in sorted(diffs, key=lambda e: e.path):
        tag = "new " if d.kind is DiffKind.MISSING_REMOTE else "diff"
        print(f"  [{tag}] {d.path}")


# ── main ──────────────────────────────────────────────────────────────────────

def _add_connection_args(p: argparse.ArgumentParser):
    p.add_argument("--profile", metavar="NAME", default="default",
                   help="Profile to use (default: default)")
    p.add_argument("-l", "--local", metavar="PATH", help="Local directory to mirror")
    p.add_argument("-r", "--remote", metavar="PATH", help="Remote directory to mirror into")
    p.add_argument("-u", "--user", metavar="NAME", help="SSH user")
    p.add_argument("-s", "--server", metavar="HOST", help="Remote host name or address")
    p.add_argument("-o", "--port", type=int, metavar="N", help="SSH port (default: 22)")
    p.add_argument("-p", "--password", metavar="SECRET",
                   help="Use password authentication instead of a key")
    p.add_argument("--ssh-key", metavar="PATH", help="Private key (default: ~/.ssh/id_rsa)")
    p.add_argument("--known-hosts", metavar="PATH",
                   help="Known hosts file (default: ~/.ssh/known_hosts)")
    p.add_argument("-w", "--workers", type=int, metavar="N",
                   help="Parallel uploads per pass (default: 50)")
    p.add_argument("-v", "--verbose", action="store_true", help="Show every event and file")


def main():
    """CLI entry point for livesync"""
    parser = argparse.ArgumentParser(
        prog="livesync",
        description="One-way live mirror of a local tree to an SSH host",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    # ── init ──────────────────────────────────────────────────────────────────
    init_p = subparsers.add_parser(
        "init",
        help="Create a .livesync config file in the current directory",
        description="Create a .livesync YAML config file for this project.",
    )
    init_p.add_argument("--local", metavar="PATH",
                        help="Local root directory (default: current directory)")
    init_p.add_argument("--remote", metavar="PATH",
                        help="Remote root path (relative to base_remote or absolute)")
    init_p.add_argument("--server", metavar="HOST", help="Remote server hostname or IP")
    init_p.add_argument("--user", metavar="NAME", help="SSH username")
    init_p.add_argument("--port", type=int, metavar="N", help="SSH port (default: 22)")
    init_p.add_argument("--ssh-key", metavar="PATH", help="Private key to authenticate with")
    init_p.add_argument("--known-hosts", metavar="PATH", help="Known hosts file")
    init_p.add_argument("--profile", metavar="NAME", default="default",
                        help="Profile name to create (default: default)")
    init_p.add_argument("--force", action="store_true", help="Overwrite existing .livesync")
    init_p.add_argument("-n", "--dry-run", action="store_true",
                        help="Preview without writing files")
    init_p.add_argument("-v", "--verbose", action="store_true", help="Show extra output")

    # ── watch / sync / status ─────────────────────────────────────────────────
    watch_p = subparsers.add_parser(
        "watch",
        help="Mirror continuously, pushing changes as activity settles",
        description="Watch the local tree and push new or changed files.",
    )
    _add_connection_args(watch_p)

    sync_p = subparsers.add_parser(
        "sync",
        help="Run a single push pass and exit",
        description="Scan, list the remote, push what differs, exit.",
    )
    _add_connection_args(sync_p)

    status_p = subparsers.add_parser(
        "status",
        help="Show what the next pass would push",
        description="Scan, list the remote and print pending pushes.",
    )
    _add_connection_args(status_p)

    args = parser.parse_args()

    if args.command == "init":
        cmd_init(args)
    elif args.command == "watch":
        cmd_watch(args)
    elif args.command == "sync":
        cmd_sync(args)
    elif args.command == "status":
        cmd_status(args)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
