import itertools
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import pytest

from syntropy_manager.api.deps import Services
from syntropy_manager.backups import ConfigService, FileBackupStore
from syntropy_manager.config import Settings
from syntropy_manager.crypto import generate_rsa_keypair, public_key_pem
from syntropy_manager.factory import ConfigFactory
from syntropy_manager.history import SetupHistory
from syntropy_manager.host import CommandResult
from syntropy_manager.probes import (
    CompatibilityProbe,
    DependenciesProbe,
    EnvironmentProbe,
    PerformanceProbe,
    SecurityProbe,
)
from syntropy_manager.service import FileServiceInstaller
from syntropy_manager.setup import SetupOrchestrator
from syntropy_manager.templates import TemplateProvider
from syntropy_manager.validation import ValidationService

FIXED_NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_NOW


def step_timer(step: float = 0.001):
    """Deterministic perf_counter replacement: every call advances by step seconds."""
    counter = itertools.count(0.0, step)
    return lambda: next(counter)


class FakeHost:
    """HostInspector with fixed answers. Commands are looked up by their joined text."""

    def __init__(
        self,
        home: Path,
        os_name: str = "linux",
        version: str = "22.04",
        distro: str = "ubuntu",
        arch: str = "amd64",
        admin: bool = False,
        disk_gb: float = 100.0,
        internet: bool = True,
        cpu: int = 4,
        memory: tuple = (16.0, 8.0),
        commands: Optional[Dict[str, CommandResult]] = None,
        paths: Sequence[str] = (),
        rtt: Optional[float] = 5.0,
    ):
        self.home = home
        self._os = os_name
        self._version = version
        self._distro = distro
        self._arch = arch
        self._admin = admin
        self._disk = disk_gb
        self._internet = internet
        self._cpu = cpu
        self._memory = memory
        self.commands = dict(commands or {})
        self.paths = set(paths)
        self._rtt = rtt
        self.calls: List[str] = []

    def os_name(self) -> str:
        return self._os

    def os_version(self) -> str:
        return self._version

    def distro_id(self) -> str:
        return self._distro

    def architecture(self) -> str:
        return self._arch

    def kernel_version(self) -> str:
        return "6.1.0"

    def is_admin(self) -> bool:
        return self._admin

    def home_dir(self) -> Optional[Path]:
        return self.home

    def temp_dir(self) -> str:
        return str(self.home)

    def exists(self, path: str) -> bool:
        return path in self.paths

    def disk_free_gb(self, path: Path) -> float:
        return self._disk

    def disk_total_gb(self, path: Path) -> float:
        return self._disk * 2

    def has_internet(self) -> bool:
        return self._internet

    def cpu_count(self) -> int:
        return self._cpu

    def cpu_model(self) -> str:
        return "Fake CPU @ 3.0GHz"

    def memory_gb(self) -> tuple:
        return self._memory

    def load_average(self) -> List[float]:
        return [0.1, 0.2, 0.3]

    def run(self, command: Union[str, Sequence[str]], timeout: Optional[float] = None) -> CommandResult:
        key = command if isinstance(command, str) else " ".join(command)
        self.calls.append(key)
        return self.commands.get(key, CommandResult(False, "", "not found"))

    def network_rtt_ms(self, url: str) -> Optional[float]:
        return self._rtt


LINUX_TOOLS = {
    "systemctl --version": CommandResult(True, "systemd 249 (249.11-0ubuntu3)\n+PAM +AUDIT"),
    "curl --version": CommandResult(True, "curl 7.81.0 (x86_64-pc-linux-gnu) libcurl/7.81.0"),
    "wget --version": CommandResult(True, "GNU Wget 1.21.2 built on linux-gnu."),
    "openssl version": CommandResult(True, "OpenSSL 3.0.2 15 Mar 2022"),
}


@pytest.fixture(scope="session")
def owner_key():
    return generate_rsa_keypair()


@pytest.fixture
def keygen(owner_key):
    return lambda: (owner_key, public_key_pem(owner_key))


@pytest.fixture
def home(tmp_path: Path) -> Path:
    h = tmp_path / "home"
    h.mkdir()
    return h


@pytest.fixture
def host(home: Path) -> FakeHost:
    return FakeHost(home, commands=LINUX_TOOLS)


@pytest.fixture
def settings(home: Path) -> Settings:
    return Settings(home_dir=home, probe_timeout=30)


@pytest.fixture
def factory(keygen) -> ConfigFactory:
    return ConfigFactory(fixed_clock, keygen)


@pytest.fixture
def history(settings: Settings) -> SetupHistory:
    return SetupHistory(settings.logs_dir / "setup_history.jsonl", fixed_clock)


@pytest.fixture
def store(settings: Settings) -> FileBackupStore:
    return FileBackupStore(settings.backups_dir)


@pytest.fixture
def config_service(factory, store, history, settings) -> ConfigService:
    return ConfigService(factory, store, history, fixed_clock, home_dir=settings.home_dir)


def make_probes(host, settings: Settings):
    return {
        "environment": EnvironmentProbe(host, fixed_clock, home_dir=settings.home_dir),
        "security": SecurityProbe(host, fixed_clock),
        "performance": PerformanceProbe(host, fixed_clock, timer=step_timer()),
        "compatibility": CompatibilityProbe(host, fixed_clock),
        "dependencies": DependenciesProbe(host, fixed_clock),
    }


@pytest.fixture
def validation(host, settings) -> ValidationService:
    return ValidationService(settings, host, fixed_clock, probes=make_probes(host, settings))


class PassphraseVault:
    """Stands in for the OS keyring."""

    def __init__(self):
        self.stored: Dict[str, str] = {}

    def store(self, user_id: str, interface: str) -> str:
        value = f"pass-{interface}-{user_id or 'default'}"
        self.stored[f"{interface}:{user_id}"] = value
        return value

    def lookup(self, user_id: str, interface: str) -> Optional[str]:
        return self.stored.get(f"{interface}:{user_id}")

    def forget(self, user_id: str, interface: str) -> None:
        self.stored.pop(f"{interface}:{user_id}", None)


@pytest.fixture
def vault() -> PassphraseVault:
    return PassphraseVault()


@pytest.fixture
def orchestrator(settings, host, config_service, history, factory, vault) -> SetupOrchestrator:
    return SetupOrchestrator(
        settings, host, config_service, history, FileServiceInstaller(host.os_name()), fixed_clock, factory,
        store_passphrase=vault.store, forget_passphrase=vault.forget, load_passphrase=vault.lookup,
    )


@pytest.fixture
def services(settings, validation, config_service, orchestrator) -> Services:
    return Services(
        settings=settings,
        validation=validation,
        configs=config_service,
        setup=orchestrator,
        templates=TemplateProvider(),
    )
