"""
Core utilities for the Syntropy manager.
"""
import logging
import os
import re
import shutil
import sys
import tempfile
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Generator, Optional, Tuple

from .errors import PathTraversalError

logger = logging.getLogger(__name__)

# A clock is any zero-argument callable returning an aware UTC datetime.
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock."""
    return datetime.now(timezone.utc)

def is_windows() -> bool:
    """Return True if running on Windows."""
    return sys.platform == "win32"

def host_os() -> str:
    """Return the host OS as one of windows, linux, darwin (or the raw platform)."""
    if sys.platform == "win32":
        return "windows"
    if sys.platform.startswith("linux"):
        return "linux"
    return sys.platform

def normalize_arch(machine: str) -> str:
    """Map platform.machine() spellings onto amd64/386/arm64/arm."""
    m = machine.lower()
    aliases = {
        "x86_64": "amd64",
        "amd64": "amd64",
        "i386": "386",
        "i686": "386",
        "x86": "386",
        "aarch64": "arm64",
        "arm64": "arm64",
    }
    if m in aliases:
        return aliases[m]
    if m.startswith("armv") or m == "arm":
        return "arm"
    return m


# Versions

_NUM_RE = re.compile(r"\d+")

def version_key(version: str) -> Tuple[int, ...]:
    """Numeric components of a version string: '1.1.1w' -> (1, 1, 1)."""
    parts = []
    for piece in version.strip().lstrip("vV").split("."):
        m = _NUM_RE.match(piece)
        if not m:
            break
        parts.append(int(m.group()))
    return tuple(parts)

def compare_versions(current: str, required: str) -> int:
    """
    Semver-style comparison. Returns -1, 0 or 1.
    Missing trailing components count as zero, so 10.0 == 10.0.0.
    """
    a, b = version_key(current), version_key(required)
    width = max(len(a), len(b))
    a = a + (0,) * (width - len(a))
    b = b + (0,) * (width - len(b))
    return (a > b) - (a < b)

def is_version_compatible(current: str, required: str) -> bool:
    """True when current >= required. Unknown or unparseable versions are compatible."""
    if not current or current == "unknown" or not required:
        return True
    if not version_key(current) or not version_key(required):
        return True
    return compare_versions(current, required) >= 0

def parse_version_output(output: str) -> str:
    """
    Pull a version out of a tool's --version output.
    First a dotted token (after stripping a leading 'v' and trailing punctuation),
    then a bare integer token, else 'unknown'.
    """
    for line in output.splitlines():
        for token in line.split():
            cleaned = token.lstrip("vV").rstrip(",;:()[]")
            if "." in cleaned and len(cleaned) >= 3 and cleaned[0].isdigit():
                return cleaned
    for line in output.splitlines():
        for token in line.split():
            cleaned = token.strip(",;:()[]")
            if cleaned.isdigit():
                return cleaned
    return "unknown"


# Filesystem

def validate_path(path: str | Path, base_dir: str | Path) -> Path:
    """
    Resolve a path and ensure it falls strictly under base_dir to prevent directory traversal.
    """
    resolved_path = Path(path).resolve()
    resolved_base = Path(base_dir).resolve()
    if resolved_path == resolved_base or not resolved_path.is_relative_to(resolved_base):
        raise PathTraversalError(f"Path '{path}' escapes base directory '{base_dir}'.")
    return resolved_path

def is_strictly_under(path: str, base: str) -> bool:
    """Lexical check (no filesystem access) that path is a descendant of base."""
    if not path or not base:
        return False
    p = Path(os.path.normpath(path))
    b = Path(os.path.normpath(base))
    return p != b and p.is_relative_to(b)

def atomic_write(path: Path, data: bytes, mode: Optional[int] = None) -> None:
    """
    Write data to <path>.tmp, fsync, then rename over path.
    A reader never sees a partially written file. mode is the creation mode
    of the temp file and is narrowed by the umask.
    """
    tmp = path.with_name(path.name + ".tmp")
    fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode if mode is not None else 0o644)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise

def secure_shred_file(path: Path) -> None:
    """Overwrite a file with random bytes and remove it."""
    if not path.is_file():
        return
    try:
        size = path.stat().st_size
        with path.open("r+b") as f:
            f.write(os.urandom(size))
            f.flush()
            os.fsync(f.fileno())
    except OSError as e:
        logger.warning("could not overwrite %s before removal: %s", path, e)
    path.unlink(missing_ok=True)

def owner_only(path: Path) -> bool:
    """True when group/other permission bits are clear (always True on Windows)."""
    if is_windows():
        return True
    return (path.stat().st_mode & 0o077) == 0

@contextmanager
def secure_temp_dir(prefix: str = "syntropy_") -> Generator[Path, None, None]:
    """Provide a private temporary directory that is removed on exit."""
    temp_dir = Path(tempfile.mkdtemp(prefix=prefix))
    try:
        if not is_windows():
            temp_dir.chmod(0o700)
        yield temp_dir
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

def human_size(nbytes: int) -> str:
    """Convert bytes to a human-readable string (e.g. 1.2 MiB)."""
    if nbytes == 0:
        return "0 B"
    suffixes = ["B", "KiB", "MiB", "GiB", "TiB", "PiB"]
    size = float(nbytes)
    i = 0
    while size >= 1024 and i < len(suffixes) - 1:
        size /= 1024.0
        i += 1
    if i == 0:
        return f"{int(size)} {suffixes[i]}"
    return f"{size:.1f} {suffixes[i]}"
