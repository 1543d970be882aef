"""
Environment probe: OS identity, privileges, home directory, disk and connectivity.
"""
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, List, Optional

from ..models import Category, EnvironmentInfo, Risk, Severity, ValidationRequest
from ..host import HostInspector
from ..utils import Clock, compare_versions, utc_now
from .base import ValidationFragment, auto_fix, finding, request_os

logger = logging.getLogger(__name__)

CAPABILITIES: Dict[str, List[str]] = {
    "windows": ["windows_service", "powershell", "registry", "event_log", "wmi"],
    "linux": ["systemd_service", "bash", "cron", "logrotate", "iptables"],
    "darwin": ["launchd_service", "zsh", "cron", "log_rotation", "pfctl"],
}
SUPPORTED_DISTROS = ("ubuntu", "debian", "centos", "rhel", "fedora")
MIN_DISK_GB = 1.0
MIN_WINDOWS_VERSION = "10.0"
MIN_MACOS_VERSION = "10.15"


class EnvironmentProbe:
    name = "environment"

    def __init__(self, host: HostInspector, clock: Clock = utc_now, home_dir: Optional[Path] = None):
        self.host = host
        self.clock = clock
        self.home_dir = home_dir

    def run(self, request: ValidationRequest, cancel: threading.Event) -> ValidationFragment:
        fragment = ValidationFragment(probe=self.name)
        host_name = self.host.os_name()
        os_name = request_os(request, host_name)
        local = os_name == host_name

        if os_name not in CAPABILITIES:
            fragment.environment = EnvironmentInfo(os=os_name)
            fragment.add(finding(
                self.clock, "UNSUPPORTED_OS",
                f"Unsupported operating system: {os_name or 'unknown'}",
                Severity.ERROR, Category.ENVIRONMENT,
                field="os", expected=sorted(CAPABILITIES), actual=os_name,
                suggestion="Use Windows, Linux or macOS",
            ))
            return fragment

        info = self._describe(os_name, request, local)
        fragment.environment = info

        if os_name == "windows":
            self._check_windows(info, local, fragment)
        elif os_name == "linux":
            self._check_linux(info, local, fragment)
        else:
            self._check_darwin(info, fragment)

        if cancel.is_set():
            fragment.cancelled = True
            return fragment
        if local:
            self._check_home(info, fragment)

        if cancel.is_set():
            fragment.cancelled = True
            return fragment
        self._check_disk(info, request, local, fragment)

        if cancel.is_set():
            fragment.cancelled = True
            return fragment
        if not request.options.skip_optional:
            self._check_internet(info, request, local, fragment)
        return fragment

    def _describe(self, os_name: str, request: ValidationRequest, local: bool) -> EnvironmentInfo:
        snap = request.environment if request.environment is not None and request.environment.os else None
        if snap is not None:
            info = snap.model_copy(deep=True)
            info.os = os_name
        else:
            info = EnvironmentInfo(os=os_name, has_admin_rights=self.host.is_admin())

        if local:
            info.os_version = info.os_version or self.host.os_version()
            info.architecture = info.architecture or self.host.architecture()
            info.kernel_version = info.kernel_version or self.host.kernel_version()
            info.temp_dir = info.temp_dir or self.host.temp_dir()
            if not info.home_dir:
                home = self.home_dir or self.host.home_dir()
                info.home_dir = str(home) if home else ""

        info.path_separator = "\\" if os_name == "windows" else "/"
        info.capabilities = list(CAPABILITIES[os_name])
        return info

    def _check_windows(self, info: EnvironmentInfo, local: bool, fragment: ValidationFragment) -> None:
        if not info.os_version:
            fragment.add(finding(
                self.clock, "UNKNOWN_WINDOWS_VERSION", "Could not determine Windows version",
                Severity.WARNING, Category.ENVIRONMENT, field="os_version",
            ))
        elif compare_versions(info.os_version, MIN_WINDOWS_VERSION) < 0:
            fragment.add(finding(
                self.clock, "UNSUPPORTED_WINDOWS_VERSION",
                f"Windows {info.os_version} is older than {MIN_WINDOWS_VERSION}",
                Severity.WARNING, Category.ENVIRONMENT,
                field="os_version", expected=MIN_WINDOWS_VERSION, actual=info.os_version,
                suggestion="Upgrade to Windows 10 or later",
            ))

        if not info.has_admin_rights:
            fragment.add(finding(
                self.clock, "INSUFFICIENT_PRIVILEGES", "Administrator privileges are required",
                Severity.ERROR, Category.ENVIRONMENT, field="has_admin_rights", expected=True, actual=False,
                fix=auto_fix(manual="Run the setup from an elevated (Administrator) prompt", risk=Risk.MEDIUM),
            ))

        if local:
            res = self.host.run(["powershell", "-NoProfile", "-Command", "$PSVersionTable.PSVersion.ToString()"])
            if res.ok:
                info.powershell_ver = res.stdout.strip()
            else:
                fragment.add(finding(
                    self.clock, "POWERSHELL_NOT_FOUND", "PowerShell is not available",
                    Severity.ERROR, Category.ENVIRONMENT,
                    fix=auto_fix(manual="Install Windows Management Framework 5.1", risk=Risk.MEDIUM),
                ))

    def _check_linux(self, info: EnvironmentInfo, local: bool, fragment: ValidationFragment) -> None:
        if local:
            distro = self.host.distro_id()
            if distro and distro not in SUPPORTED_DISTROS:
                fragment.add(finding(
                    self.clock, "UNSUPPORTED_LINUX_DISTRO", f"Linux distribution '{distro}' is not officially supported",
                    Severity.WARNING, Category.ENVIRONMENT,
                    field="distribution", expected=list(SUPPORTED_DISTROS), actual=distro,
                ))
        if not info.has_admin_rights:
            fragment.add(finding(
                self.clock, "NON_ROOT_USER", "Running without root privileges; service installation may fail",
                Severity.WARNING, Category.ENVIRONMENT, field="has_admin_rights",
                fix=auto_fix(command="sudo syntropy setup", manual="Re-run the setup with sudo", risk=Risk.MEDIUM),
            ))

    def _check_darwin(self, info: EnvironmentInfo, fragment: ValidationFragment) -> None:
        if not info.os_version:
            fragment.add(finding(
                self.clock, "UNKNOWN_MACOS_VERSION", "Could not determine macOS version",
                Severity.WARNING, Category.ENVIRONMENT, field="os_version",
            ))
        elif compare_versions(info.os_version, MIN_MACOS_VERSION) < 0:
            fragment.add(finding(
                self.clock, "OLD_MACOS_VERSION", f"macOS {info.os_version} is older than {MIN_MACOS_VERSION}",
                Severity.WARNING, Category.ENVIRONMENT,
                field="os_version", expected=MIN_MACOS_VERSION, actual=info.os_version,
                suggestion="Upgrade to macOS Catalina or later",
            ))
        if not info.has_admin_rights:
            fragment.add(finding(
                self.clock, "NON_ADMIN_USER", "Running without administrator privileges",
                Severity.WARNING, Category.ENVIRONMENT, field="has_admin_rights",
                fix=auto_fix(command="sudo syntropy setup", manual="Re-run the setup with sudo", risk=Risk.MEDIUM),
            ))

    def _check_home(self, info: EnvironmentInfo, fragment: ValidationFragment) -> None:
        if not info.home_dir:
            fragment.add(finding(
                self.clock, "USER_HOME_ERROR", "Could not determine the user home directory",
                Severity.ERROR, Category.ENVIRONMENT, field="home_dir",
            ))
            return
        target = Path(info.home_dir) / ".syntropy"
        try:
            target.mkdir(mode=0o700, parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(dir=target, prefix=".probe_"):
                pass
        except OSError as e:
            logger.info("home directory %s not writable: %s", target, e)
            fragment.add(finding(
                self.clock, "HOME_DIR_NOT_WRITABLE", f"Cannot write to {target}",
                Severity.ERROR, Category.STORAGE, field="home_dir", actual=str(target),
                fix=auto_fix(
                    command="chmod 755 ~/.syntropy",
                    manual="Ensure the .syntropy directory in your home is owned by and writable for your user",
                    risk=Risk.LOW,
                ),
            ))

    def _check_disk(self, info: EnvironmentInfo, request: ValidationRequest, local: bool, fragment: ValidationFragment) -> None:
        gb = info.available_disk_gb
        if gb <= 0 and local:
            try:
                gb = self.host.disk_free_gb(Path(info.home_dir or info.temp_dir or os.curdir))
            except OSError as e:
                logger.warning("disk usage lookup failed: %s", e)
                gb = 0.0
        info.available_disk_gb = round(gb, 2)
        if gb < MIN_DISK_GB:
            fragment.add(finding(
                self.clock, "INSUFFICIENT_DISK_SPACE",
                f"At least {MIN_DISK_GB:.1f} GB of free disk space is required ({gb:.2f} GB available)",
                Severity.ERROR, Category.STORAGE,
                field="available_disk_gb", expected=MIN_DISK_GB, actual=round(gb, 2),
                suggestion="Free up disk space",
            ))

    def _check_internet(self, info: EnvironmentInfo, request: ValidationRequest, local: bool, fragment: ValidationFragment) -> None:
        snap = request.environment
        if snap is not None and snap.os:
            online = snap.has_internet
        elif local:
            online = self.host.has_internet()
        else:
            online = False
        info.has_internet = online
        if not online:
            fragment.add(finding(
                self.clock, "NO_INTERNET_CONNECTIVITY", "No internet connectivity detected",
                Severity.WARNING, Category.NETWORK, field="has_internet", expected=True, actual=False,
                suggestion="Check network settings; updates and remote features will be unavailable",
            ))
