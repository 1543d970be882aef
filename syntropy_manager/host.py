"""
Host inspection seam. Probes never touch the OS directly; they ask a HostInspector.
Tests substitute a fake with fixed answers.
"""
import logging
import os
import platform
import shutil
import subprocess
import sys
import tempfile
import time
from pathlib import Path
from typing import List, NamedTuple, Optional, Protocol, Sequence, Union

import httpx

from .utils import host_os, normalize_arch

logger = logging.getLogger(__name__)

GIB = 1024 ** 3


class CommandResult(NamedTuple):
    ok: bool
    stdout: str = ""
    stderr: str = ""


class HostInspector(Protocol):
    """Everything the probes need to know about the machine they run on."""

    def os_name(self) -> str: ...
    def os_version(self) -> str: ...
    def distro_id(self) -> str: ...
    def architecture(self) -> str: ...
    def kernel_version(self) -> str: ...
    def is_admin(self) -> bool: ...
    def home_dir(self) -> Optional[Path]: ...
    def temp_dir(self) -> str: ...
    def exists(self, path: str) -> bool: ...
    def disk_free_gb(self, path: Path) -> float: ...
    def disk_total_gb(self, path: Path) -> float: ...
    def has_internet(self) -> bool: ...
    def cpu_count(self) -> int: ...
    def cpu_model(self) -> str: ...
    def memory_gb(self) -> tuple[float, float]: ...
    def load_average(self) -> List[float]: ...
    def run(self, command: Union[str, Sequence[str]], timeout: Optional[float] = None) -> CommandResult: ...
    def network_rtt_ms(self, url: str) -> Optional[float]: ...


def _read_os_release() -> dict:
    info = {}
    path = Path("/etc/os-release")
    if not path.exists():
        return info
    for line in path.read_text(encoding="utf-8", errors="replace").splitlines():
        if "=" in line:
            k, v = line.split("=", 1)
            info[k.strip()] = v.strip().strip('"')
    return info


class SystemHostInspector:
    """HostInspector backed by the running machine."""

    def __init__(self, connectivity_url: str = "https://www.google.com", command_timeout: float = 5.0):
        self.connectivity_url = connectivity_url
        self.command_timeout = command_timeout

    def os_name(self) -> str:
        return host_os()

    def os_version(self) -> str:
        name = self.os_name()
        if name == "linux":
            return _read_os_release().get("VERSION_ID", "")
        if name == "darwin":
            return platform.mac_ver()[0]
        if name == "windows":
            return platform.version()
        return platform.release()

    def distro_id(self) -> str:
        if self.os_name() != "linux":
            return ""
        return _read_os_release().get("ID", "").lower()

    def architecture(self) -> str:
        return normalize_arch(platform.machine())

    def kernel_version(self) -> str:
        return platform.release()

    def is_admin(self) -> bool:
        if sys.platform == "win32":
            import ctypes
            try:
                return bool(ctypes.windll.shell32.IsUserAnAdmin())
            except OSError:
                return False
        return os.geteuid() == 0

    def home_dir(self) -> Optional[Path]:
        try:
            return Path.home()
        except RuntimeError:
            return None

    def temp_dir(self) -> str:
        return tempfile.gettempdir()

    def exists(self, path: str) -> bool:
        return Path(path).exists()

    def disk_free_gb(self, path: Path) -> float:
        total, used, free = shutil.disk_usage(_existing_parent(path))
        return free / GIB

    def disk_total_gb(self, path: Path) -> float:
        total, used, free = shutil.disk_usage(_existing_parent(path))
        return total / GIB

    def has_internet(self) -> bool:
        try:
            httpx.head(self.connectivity_url, timeout=3.0, follow_redirects=False)
            return True
        except httpx.HTTPError as e:
            logger.debug("connectivity probe to %s failed: %s", self.connectivity_url, e)
            return False

    def cpu_count(self) -> int:
        return os.cpu_count() or 1

    def cpu_model(self) -> str:
        cpuinfo = Path("/proc/cpuinfo")
        if cpuinfo.exists():
            for line in cpuinfo.read_text(encoding="utf-8", errors="replace").splitlines():
                if line.startswith("model name"):
                    return line.split(":", 1)[1].strip()
        return platform.processor()

    def memory_gb(self) -> tuple[float, float]:
        """(total, available) in GiB; zeros when the platform gives no answer."""
        meminfo = Path("/proc/meminfo")
        if meminfo.exists():
            values = {}
            for line in meminfo.read_text(encoding="utf-8").splitlines():
                parts = line.split()
                if len(parts) >= 2 and parts[1].isdigit():
                    values[parts[0].rstrip(":")] = int(parts[1]) * 1024
            total = values.get("MemTotal", 0)
            available = values.get("MemAvailable", values.get("MemFree", 0))
            return total / GIB, available / GIB
        if sys.platform == "darwin":
            res = self.run(["sysctl", "-n", "hw.memsize"])
            if res.ok and res.stdout.strip().isdigit():
                return int(res.stdout.strip()) / GIB, 0.0
        return 0.0, 0.0

    def load_average(self) -> List[float]:
        if hasattr(os, "getloadavg"):
            return list(os.getloadavg())
        return []

    def run(self, command: Union[str, Sequence[str]], timeout: Optional[float] = None) -> CommandResult:
        """Run a command; a string goes through the OS shell."""
        try:
            proc = subprocess.run(
                command,
                shell=isinstance(command, str),
                capture_output=True,
                text=True,
                timeout=timeout or self.command_timeout,
            )
        except (OSError, subprocess.SubprocessError) as e:
            return CommandResult(False, "", str(e))
        return CommandResult(proc.returncode == 0, proc.stdout, proc.stderr)

    def network_rtt_ms(self, url: str) -> Optional[float]:
        start = time.perf_counter()
        try:
            httpx.head(url, timeout=5.0)
        except httpx.HTTPError as e:
            logger.debug("rtt probe to %s failed: %s", url, e)
            return None
        return (time.perf_counter() - start) * 1000


def _existing_parent(path: Path) -> Path:
    p = Path(path)
    while not p.exists() and p != p.parent:
        p = p.parent
    return p
