import sys
from pathlib import Path

import pytest

from syntropy_manager.service import (
    FileServiceInstaller,
    generate_launchd_plist,
    generate_systemd_unit,
    generate_windows_task_xml,
)


def test_systemd_unit():
    unit = generate_systemd_unit(Path("/home/u"))
    assert f"ExecStart={sys.executable} -m syntropy_manager.cli serve --home /home/u" in unit
    assert "Restart=on-failure" in unit
    assert "WantedBy=default.target" in unit

def test_launchd_plist_escapes_paths():
    plist = generate_launchd_plist(Path("/Users/a&b"))
    assert "<string>io.syntropy.manager</string>" in plist
    assert "<string>/Users/a&amp;b</string>" in plist
    assert "/Users/a&amp;b/.syntropy/logs/service.err.log" in plist

def test_windows_task_xml():
    xml = generate_windows_task_xml(Path("C:/Users/u"))
    assert xml.startswith('<?xml version="1.0" encoding="UTF-16"?>')
    assert "<LogonTrigger>" in xml
    assert "serve --home C:/Users/u" in xml

@pytest.mark.parametrize("os_name, relative", [
    ("linux", ".config/systemd/user/syntropy-manager.service"),
    ("darwin", "Library/LaunchAgents/io.syntropy.manager.plist"),
    ("windows", ".syntropy/service/syntropy-manager-task.xml"),
])
def test_unit_paths(tmp_path: Path, os_name, relative):
    assert FileServiceInstaller(os_name).unit_path(tmp_path) == tmp_path / relative

def test_install_and_uninstall(tmp_path: Path):
    installer = FileServiceInstaller("linux")
    assert not installer.is_installed(tmp_path)
    assert installer.uninstall(tmp_path) is False

    path = installer.install(tmp_path)
    assert installer.is_installed(tmp_path)
    assert path.read_text(encoding="utf-8") == generate_systemd_unit(tmp_path)
    # Never wider than 0644; the umask may narrow it further.
    assert path.stat().st_mode & 0o777 | 0o644 == 0o644

    assert installer.uninstall(tmp_path) is True
    assert not path.exists()

def test_windows_definition_is_utf16(tmp_path: Path):
    path = FileServiceInstaller("windows").install(tmp_path)
    assert path.read_bytes()[:2] in (b"\xff\xfe", b"\xfe\xff")
    assert "<Task" in path.read_text(encoding="utf-16")

def test_unsupported_os_cannot_install(tmp_path: Path):
    installer = FileServiceInstaller("haiku")
    assert installer.unit_path(tmp_path) is None
    with pytest.raises(OSError):
        installer.install(tmp_path)
    assert not installer.is_installed(tmp_path)
