"""
OS service integration: systemd user units, launchd agents and Windows Task Scheduler XML.
"""
import logging
import sys
from pathlib import Path
from typing import Optional, Protocol
from xml.sax.saxutils import escape

from .utils import atomic_write

logger = logging.getLogger(__name__)

SERVICE_NAME = "syntropy-manager"
LAUNCHD_LABEL = "io.syntropy.manager"


def serve_command(home: Path) -> str:
    return f"{sys.executable} -m syntropy_manager.cli serve --home {home}"


def generate_systemd_unit(home: Path) -> str:
    """Generate systemd user .service content."""
    return f"""[Unit]
Description=Syntropy node manager
After=network.target

[Service]
Type=simple
ExecStart={serve_command(home)}
Restart=on-failure
RestartSec=30
StandardOutput=journal
StandardError=journal
SyslogIdentifier={SERVICE_NAME}

[Install]
WantedBy=default.target
"""


def generate_launchd_plist(home: Path) -> str:
    args = "\n".join(
        f"    <string>{escape(part)}</string>"
        for part in [sys.executable, "-m", "syntropy_manager.cli", "serve", "--home", str(home)]
    )
    logs = home / ".syntropy" / "logs"
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN" "http://www.apple.com/DTDs/PropertyList-1.0.dtd">
<plist version="1.0">
<dict>
  <key>Label</key>
  <string>{LAUNCHD_LABEL}</string>
  <key>ProgramArguments</key>
  <array>
{args}
  </array>
  <key>RunAtLoad</key>
  <true/>
  <key>KeepAlive</key>
  <true/>
  <key>StandardOutPath</key>
  <string>{escape(str(logs / "service.out.log"))}</string>
  <key>StandardErrorPath</key>
  <string>{escape(str(logs / "service.err.log"))}</string>
</dict>
</plist>
"""


def generate_windows_task_xml(home: Path) -> str:
    """Generate an XML definition for Windows Task Scheduler (schtasks.exe)."""
    return f"""<?xml version="1.0" encoding="UTF-16"?>
<Task version="1.2" xmlns="http://schemas.microsoft.com/windows/2004/02/mit/task">
  <RegistrationInfo>
    <Description>Syntropy node manager</Description>
  </RegistrationInfo>
  <Triggers>
    <LogonTrigger>
      <Enabled>true</Enabled>
    </LogonTrigger>
  </Triggers>
  <Principals>
    <Principal>
      <LogonType>InteractiveToken</LogonType>
      <RunLevel>LeastPrivilege</RunLevel>
    </Principal>
  </Principals>
  <Settings>
    <MultipleInstancesPolicy>IgnoreNew</MultipleInstancesPolicy>
    <DisallowStartIfOnBatteries>false</DisallowStartIfOnBatteries>
    <StopIfGoingOnBatteries>false</StopIfGoingOnBatteries>
    <ExecutionTimeLimit>PT0S</ExecutionTimeLimit>
    <RestartOnFailure>
      <Interval>PT1M</Interval>
      <Count>3</Count>
    </RestartOnFailure>
  </Settings>
  <Actions Context="Author">
    <Exec>
      <Command>{escape(sys.executable)}</Command>
      <Arguments>-m syntropy_manager.cli serve --home {escape(str(home))}</Arguments>
    </Exec>
  </Actions>
</Task>"""


class ServiceInstaller(Protocol):
    def unit_path(self, home: Path) -> Optional[Path]: ...
    def install(self, home: Path) -> Path: ...
    def uninstall(self, home: Path) -> bool: ...
    def is_installed(self, home: Path) -> bool: ...


class FileServiceInstaller:
    """
    Writes the service definition for the target OS under the user's home.
    Registration with the service manager (systemctl --user enable, launchctl load,
    schtasks /Create /XML) is left to the operator.
    """

    def __init__(self, os_name: str):
        self.os_name = os_name

    def unit_path(self, home: Path) -> Optional[Path]:
        if self.os_name == "linux":
            return home / ".config" / "systemd" / "user" / f"{SERVICE_NAME}.service"
        if self.os_name == "darwin":
            return home / "Library" / "LaunchAgents" / f"{LAUNCHD_LABEL}.plist"
        if self.os_name == "windows":
            return home / ".syntropy" / "service" / f"{SERVICE_NAME}-task.xml"
        return None

    def render(self, home: Path) -> str:
        if self.os_name == "linux":
            return generate_systemd_unit(home)
        if self.os_name == "darwin":
            return generate_launchd_plist(home)
        return generate_windows_task_xml(home)

    def install(self, home: Path) -> Path:
        path = self.unit_path(home)
        if path is None:
            raise OSError(f"Service installation is not supported on '{self.os_name}'.")
        encoding = "utf-16" if self.os_name == "windows" else "utf-8"
        path.parent.mkdir(parents=True, exist_ok=True)
        atomic_write(path, self.render(home).encode(encoding), mode=0o644)
        logger.info("service definition written to %s", path)
        return path

    def uninstall(self, home: Path) -> bool:
        path = self.unit_path(home)
        if path is None or not path.exists():
            return False
        path.unlink()
        logger.info("service definition removed: %s", path)
        return True

    def is_installed(self, home: Path) -> bool:
        path = self.unit_path(home)
        return path is not None and path.exists()
