"""
Compatibility probe: static OS/architecture/interface tables plus known issues and workarounds.
Pure and data-driven; the only host access is the OS/arch fallback when no snapshot is sent.
"""
import threading
from typing import Dict, List

from ..host import HostInspector
from ..models import (
    Category,
    Compatibility,
    Feature,
    KnownIssue,
    Risk,
    Severity,
    ValidationRequest,
    Workaround,
)
from ..utils import Clock, normalize_arch, utc_now
from .base import ValidationFragment, auto_fix, finding, request_os

SUPPORTED_OS = ["windows", "linux", "darwin"]
MIN_OS_VERSION = {
    "windows": "10.0.1903",
    "linux": "4.15.0",
    "darwin": "10.15.0",
}
RECOMMENDED_OS = ["windows", "ubuntu", "darwin"]
SUPPORTED_ARCHITECTURES = ["amd64", "386", "arm64", "arm"]

INTERFACE_MATRIX: Dict[str, Dict[str, bool]] = {
    "windows": {"cli": True, "web": True, "desktop": True, "mobile": False},
    "linux": {"cli": True, "web": True, "desktop": True, "mobile": False},
    "darwin": {"cli": True, "web": True, "desktop": True, "mobile": True},
}

ARCH_FEATURES = {
    "amd64": "x86_64_support",
    "arm64": "arm64_support",
    "arm": "arm_support",
    "386": "x86_support",
}

INTERFACE_CAPABILITIES = {
    "cli": "command_line",
    "web": "browser_support",
    "desktop": "native_app",
    "mobile": "mobile_app",
}

KNOWN_ISSUES: List[KnownIssue] = [
    KnownIssue(
        id="WINDOWS_POWERSHELL_VERSION",
        description="PowerShell version 5.1 or higher is required on Windows",
        severity="medium", os="windows", version="all",
        workaround="Install Windows Management Framework 5.1 or later",
    ),
    # Matches every Linux host. "high" maps to an error, so validate_all on
    # Linux never reports valid; a setup only runs the environment probe.
    KnownIssue(
        id="LINUX_SYSTEMD_REQUIRED",
        description="Systemd is required for service management on Linux",
        severity="high", os="linux", version="all",
        workaround="Use a Linux distribution with systemd support",
    ),
    KnownIssue(
        id="DARWIN_XCODE_REQUIRED",
        description="Xcode Command Line Tools are required on macOS",
        severity="medium", os="darwin", version="all",
        workaround="Install Xcode Command Line Tools: xcode-select --install",
    ),
    KnownIssue(
        id="MOBILE_IOS_VERSION",
        description="iOS 12.0 or higher is required for mobile interface",
        severity="medium", os="darwin", version="mobile",
        workaround="Update iOS to version 12.0 or later",
    ),
]

WORKAROUNDS: List[Workaround] = [
    Workaround(
        id="WINDOWS_POWERSHELL_UPDATE",
        description="Update PowerShell to version 5.1 or higher",
        os="windows", version="all",
        command="Install-Module -Name PowerShellGet -Force -AllowClobber",
        script='powershell -Command "Install-Module -Name PowerShellGet -Force"',
        manual="Download and install Windows Management Framework 5.1 from Microsoft",
        risk=Risk.LOW,
    ),
    Workaround(
        id="LINUX_SYSTEMD_ENABLE",
        description="Enable systemd support",
        os="linux", version="all",
        command="systemctl --version",
        manual="Ensure systemd is installed and running",
        risk=Risk.LOW,
    ),
    Workaround(
        id="DARWIN_XCODE_INSTALL",
        description="Install Xcode Command Line Tools",
        os="darwin", version="all",
        command="xcode-select --install",
        manual="Run 'xcode-select --install' in Terminal",
        risk=Risk.LOW,
    ),
    Workaround(
        id="MOBILE_IOS_UPDATE",
        description="Update iOS to supported version",
        os="darwin", version="mobile",
        manual="Update iOS through Settings > General > Software Update",
        risk=Risk.MEDIUM,
    ),
]

# known issue id -> workaround id
ISSUE_WORKAROUNDS = {
    "WINDOWS_POWERSHELL_VERSION": "WINDOWS_POWERSHELL_UPDATE",
    "LINUX_SYSTEMD_REQUIRED": "LINUX_SYSTEMD_ENABLE",
    "DARWIN_XCODE_REQUIRED": "DARWIN_XCODE_INSTALL",
    "MOBILE_IOS_VERSION": "MOBILE_IOS_UPDATE",
}

ISSUE_SEVERITY = {
    "high": Severity.ERROR,
    "critical": Severity.CRITICAL,
}


def _matches(row_os: str, row_version: str, os_name: str, interface: str) -> bool:
    return row_os in ("all", os_name) and row_version in ("all", interface)


class CompatibilityProbe:
    name = "compatibility"

    def __init__(self, host: HostInspector, clock: Clock = utc_now):
        self.host = host
        self.clock = clock

    def run(self, request: ValidationRequest, cancel: threading.Event) -> ValidationFragment:
        fragment = ValidationFragment(probe=self.name)
        os_name = request_os(request, self.host.os_name())
        interface = request.interface.value
        snap = request.environment
        if snap is not None and snap.os:
            arch = normalize_arch(snap.architecture) if snap.architecture else ""
        else:
            arch = self.host.architecture()

        section = Compatibility(
            supported_os=list(SUPPORTED_OS),
            min_os_version=dict(MIN_OS_VERSION),
            recommended_os=list(RECOMMENDED_OS),
            architecture=list(SUPPORTED_ARCHITECTURES),
        )
        fragment.compatibility = section

        if os_name not in SUPPORTED_OS:
            fragment.add(finding(
                self.clock, "UNSUPPORTED_OS", f"Operating system '{os_name or 'unknown'}' is not supported",
                Severity.ERROR, Category.COMPATIBILITY,
                field="os", expected=list(SUPPORTED_OS), actual=os_name,
            ))
            return fragment
        fragment.features.append(f"{os_name}_support")

        if arch and arch not in SUPPORTED_ARCHITECTURES:
            fragment.add(finding(
                self.clock, "UNSUPPORTED_ARCHITECTURE", f"Architecture '{arch}' may not be fully supported",
                Severity.WARNING, Category.COMPATIBILITY,
                field="architecture", expected=list(SUPPORTED_ARCHITECTURES), actual=arch,
            ))
        elif arch:
            fragment.features.append(ARCH_FEATURES[arch])

        if cancel.is_set():
            fragment.cancelled = True
            return fragment

        supported = INTERFACE_MATRIX[os_name].get(interface, False)
        if not supported:
            fragment.add(finding(
                self.clock, "INTERFACE_COMPATIBILITY_WARNING",
                f"Interface '{interface}' may have limited compatibility on {os_name}",
                Severity.WARNING, Category.COMPATIBILITY, field="interface", actual=interface,
            ))
        fragment.features.append(f"{interface}_interface")
        fragment.capabilities.append(INTERFACE_CAPABILITIES[interface])
        section.optional_features = [
            Feature(name=f"{iface}_interface", description=f"{iface} client support", available=ok, enabled=ok)
            for iface, ok in INTERFACE_MATRIX[os_name].items()
        ]

        section.known_issues = [i for i in KNOWN_ISSUES if _matches(i.os, i.version, os_name, interface)]
        section.workarounds = [w for w in WORKAROUNDS if _matches(w.os, w.version, os_name, interface)]
        by_id = {w.id: w for w in section.workarounds}

        for issue in section.known_issues:
            fix = None
            w = by_id.get(ISSUE_WORKAROUNDS.get(issue.id, ""))
            if w is not None:
                fix = auto_fix(command=w.command, script=w.script, manual=w.manual or issue.workaround, risk=w.risk)
            elif issue.workaround:
                fix = auto_fix(manual=issue.workaround)
            fragment.add(finding(
                self.clock, issue.id, issue.description,
                ISSUE_SEVERITY.get(issue.severity, Severity.WARNING), Category.COMPATIBILITY,
                suggestion=issue.workaround, fix=fix,
            ))
        return fragment
