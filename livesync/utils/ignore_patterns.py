"""
Ignore patterns handling (.stignore file parsing)
"""
import re
from pathlib import Path
from .. import config as _cfg


def _compile_pattern(raw: str):
    """Compile a .stignore pattern into a regex"""
    p = raw.strip()
    if not p or p.startswith("#"):
        return None
    anchored = p.startswith("/")
    if anchored:
        p = p[1:]
    p = p.rstrip("/")
    if not p:
        return None
    escaped = re.escape(p)
    escaped = escaped.replace(r"\*\*", "§DS§")
    escaped = escaped.replace(r"\*", "[^/]*")
    escaped = escaped.replace(r"\?", "[^/]")
    escaped = escaped.replace("§DS§", ".*")
    escaped = ("^" if anchored else r"(^|.*/)") + escaped
    try:
        return re.compile(escaped + r"(/.*)?$")
    except re.error:
        return None


def compile_patterns(lines) -> list:
    """Compile an iterable of raw pattern lines, dropping blanks and comments"""
    patterns = []
    for line in lines:
        c = _compile_pattern(line)
        if c:
            patterns.append(c)
    return patterns


def load_ignore_patterns(root: Path) -> list:
    """Load ignore patterns from the .stignore file in *root*"""
    f = Path(root) / _cfg.STIGNORE_FILE
    if not f.is_file():
        return []
    return compile_patterns(f.read_text(encoding="utf-8", errors="replace").splitlines())


def is_ignored(rel_path: str, patterns: list) -> bool:
    """Check if a path matches any ignore pattern"""
    if not patterns:
        return False
    norm = rel_path.replace("\\", "/")
    return any(p.search(norm) for p in patterns)
