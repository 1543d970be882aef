"""
Dependencies probe: per-OS required/optional tools, detection and version classification.
"""
import logging
import threading
from pathlib import PurePath
from typing import Dict, List, NamedTuple, Tuple

from ..host import HostInspector
from ..models import AutoFixInfo, Category, Dependency, Risk, Severity, ValidationRequest
from ..utils import Clock, is_version_compatible, parse_version_output, utc_now
from .base import ValidationFragment, auto_fix, finding, request_os

logger = logging.getLogger(__name__)


class DependencySpec(NamedTuple):
    name: str
    version: str
    check_cmd: str
    install_cmd: str
    path: str
    required: bool
    binary: str


DEPENDENCIES: Dict[str, List[DependencySpec]] = {
    "windows": [
        DependencySpec("PowerShell", "5.1.0", 'powershell -Command "$PSVersionTable.PSVersion.ToString()"',
                       "Install PowerShell from Microsoft Store or download from Microsoft",
                       "", True, "powershell"),
        DependencySpec("Windows Management Framework", "5.1.0", 'powershell -Command "$PSVersionTable.PSVersion.ToString()"',
                       "Download and install WMF 5.1 from Microsoft", "", True, "powershell"),
        DependencySpec("Microsoft Visual C++ Redistributable", "2019",
                       'reg query "HKEY_LOCAL_MACHINE\\SOFTWARE\\Microsoft\\VisualStudio\\14.0\\VC\\Runtimes\\x64"',
                       "Download and install Visual C++ Redistributable from Microsoft", "", True, ""),
    ],
    "linux": [
        DependencySpec("systemd", "230", "systemctl --version",
                       "sudo apt-get install systemd (Ubuntu/Debian) or sudo yum install systemd (RHEL/CentOS)",
                       "/bin/systemctl", True, "systemctl"),
        DependencySpec("curl", "7.0", "curl --version",
                       "sudo apt-get install curl (Ubuntu/Debian) or sudo yum install curl (RHEL/CentOS)",
                       "/usr/bin/curl", True, "curl"),
        DependencySpec("wget", "1.0", "wget --version",
                       "sudo apt-get install wget (Ubuntu/Debian) or sudo yum install wget (RHEL/CentOS)",
                       "/usr/bin/wget", True, "wget"),
        DependencySpec("openssl", "1.1.0", "openssl version",
                       "sudo apt-get install openssl (Ubuntu/Debian) or sudo yum install openssl (RHEL/CentOS)",
                       "/usr/bin/openssl", True, "openssl"),
    ],
    "darwin": [
        DependencySpec("Xcode Command Line Tools", "12.0", "xcode-select -p", "xcode-select --install",
                       "/usr/bin/xcode-select", True, "xcode-select"),
        DependencySpec("Homebrew", "3.0", "brew --version",
                       '/bin/bash -c "$(curl -fsSL https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh)"',
                       "/usr/local/bin/brew", False, "brew"),
        DependencySpec("curl", "7.0", "curl --version", "brew install curl", "/usr/bin/curl", True, "curl"),
    ],
}

OPTIONAL_EVERYWHERE: List[DependencySpec] = [
    DependencySpec("Docker", "20.0", "docker --version", "Install Docker Desktop", "", False, "docker"),
    DependencySpec("Git", "2.0", "git --version", "Install Git from official website", "", False, "git"),
    DependencySpec("Node.js", "16.0", "node --version", "Install Node.js from official website", "", False, "node"),
]

VERSION_FLAGS = ("--version", "-version", "-v", "--help")


def feature_name(dep_name: str) -> str:
    return dep_name.lower().replace(" ", "_").replace(".", "") + "_support"


class DependenciesProbe:
    name = "dependencies"

    def __init__(self, host: HostInspector, clock: Clock = utc_now, command_timeout: float = 5.0):
        self.host = host
        self.clock = clock
        self.command_timeout = command_timeout

    def specs_for(self, os_name: str, skip_optional: bool = False) -> List[DependencySpec]:
        specs = DEPENDENCIES.get(os_name, []) + OPTIONAL_EVERYWHERE
        if skip_optional:
            specs = [s for s in specs if s.required]
        return specs

    def run(self, request: ValidationRequest, cancel: threading.Event) -> ValidationFragment:
        fragment = ValidationFragment(probe=self.name)
        host_name = self.host.os_name()
        os_name = request_os(request, host_name)
        if os_name not in DEPENDENCIES:
            return fragment
        if os_name != host_name:
            # Tools of a foreign machine cannot be detected from here.
            fragment.add(finding(
                self.clock, "DEPENDENCY_CHECK_SKIPPED",
                f"Dependencies for {os_name} cannot be checked from a {host_name} host",
                Severity.INFO, Category.DEPENDENCIES, field="os", actual=os_name,
            ))
            return fragment

        for spec in self.specs_for(os_name, request.options.skip_optional):
            if cancel.is_set():
                fragment.cancelled = True
                break
            dep = self.check(spec)
            fragment.dependencies.append(dep)
            self._report(spec, dep, fragment)
        return fragment

    def detect(self, spec: DependencySpec) -> Tuple[bool, str]:
        """(installed, version). Check command, then known path, then version flags."""
        if spec.check_cmd:
            res = self.host.run(spec.check_cmd, timeout=self.command_timeout)
            if res.ok:
                return True, parse_version_output(res.stdout or res.stderr)
        if spec.path and PurePath(spec.path).is_absolute() and self.host.exists(spec.path):
            return True, "unknown"
        if spec.binary:
            for flag in VERSION_FLAGS:
                res = self.host.run([spec.binary, flag], timeout=self.command_timeout)
                if res.ok:
                    return True, parse_version_output(res.stdout or res.stderr)
        return False, ""

    def check(self, spec: DependencySpec) -> Dependency:
        base = dict(
            name=spec.name,
            version=spec.version,
            required=spec.required,
            installable=bool(spec.install_cmd),
            install_cmd=spec.install_cmd,
            check_cmd=spec.check_cmd,
            path=spec.path,
        )
        try:
            installed, version = self.detect(spec)
        except OSError as e:
            logger.error("failed to check dependency %s: %s", spec.name, e)
            return Dependency(status="error", current="unknown", **base)
        if not installed:
            return Dependency(status="missing", current="not installed", **base)
        status = "installed" if is_version_compatible(version, spec.version) else "outdated"
        return Dependency(status=status, current=version, **base)

    def _report(self, spec: DependencySpec, dep: Dependency, fragment: ValidationFragment) -> None:
        if dep.status == "installed":
            fragment.features.append(feature_name(spec.name))
            return
        if dep.status == "outdated":
            if spec.required:
                fragment.add(finding(
                    self.clock, "DEPENDENCY_OUTDATED",
                    f"Dependency '{spec.name}' version {dep.current} is outdated, required: {spec.version}",
                    Severity.WARNING, Category.DEPENDENCIES,
                    field=spec.name, expected=spec.version, actual=dep.current,
                    fix=self._fix(spec, f"Update {spec.name} to version {spec.version} or later", Risk.MEDIUM),
                ))
            return
        if dep.status == "missing":
            if spec.required:
                fragment.add(finding(
                    self.clock, "REQUIRED_DEPENDENCY_MISSING",
                    f"Required dependency '{spec.name}' is not installed",
                    Severity.ERROR, Category.DEPENDENCIES,
                    field=spec.name, expected=f"installed ({spec.version})", actual="not installed",
                    fix=self._fix(spec, f"Install {spec.name} version {spec.version} or later", Risk.LOW),
                ))
            else:
                fragment.add(finding(
                    self.clock, "OPTIONAL_DEPENDENCY_MISSING",
                    f"Optional dependency '{spec.name}' is not installed",
                    Severity.INFO, Category.DEPENDENCIES,
                    field=spec.name, expected=f"installed ({spec.version})", actual="not installed",
                    fix=self._fix(spec, f"Install {spec.name} version {spec.version} or later for enhanced functionality", Risk.LOW),
                ))

    @staticmethod
    def _fix(spec: DependencySpec, manual: str, risk: Risk) -> AutoFixInfo:
        return auto_fix(command=spec.install_cmd, manual=manual, risk=risk)
