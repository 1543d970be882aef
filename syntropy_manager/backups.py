"""
Configuration backups: the BackupStore protocol, a gzip-JSON filesystem store,
and the ConfigService operations built on top of it (generate, backup, restore, list).
"""
import gzip
import logging
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Tuple

from pydantic import ValidationError

from . import crypto
from .config import (
    apply_secure_permissions,
    dump_config_yaml,
    load_config_file,
    manager_config_path,
    resolve_home,
    syntropy_dir,
)
from .errors import (
    BackupError,
    BackupNotFoundError,
    ConfigError,
    InvalidBackupError,
    InvalidRequestError,
    RestoreError,
)
from .factory import ConfigFactory
from .history import SetupHistory
from .models import (
    BackupFilter,
    ConfigBackup,
    ConfigRequest,
    ConfigRestoreRequest,
    ConfigSummary,
    Pagination,
    RestoreOutcome,
    SetupConfig,
    SortOptions,
    ValidationResult,
)
from .utils import Clock, atomic_write, utc_now, validate_path

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".json.gz"


class BackupStore(Protocol):
    def put(self, backup: ConfigBackup) -> str: ...
    def get(self, backup_id: str) -> ConfigBackup: ...
    def list(
        self,
        filter: BackupFilter,
        pagination: Pagination,
        sort: SortOptions,
    ) -> Tuple[List[ConfigSummary], int]: ...


def config_fingerprint(config: SetupConfig) -> Tuple[int, str]:
    """(size in bytes, SHA-256 hex) of the canonical JSON of a config."""
    payload = crypto.canonical_json(config.model_dump(mode="json"))
    return len(payload), crypto.compute_sha256(payload)


def summarize(backup: ConfigBackup) -> ConfigSummary:
    config = backup.config
    return ConfigSummary(
        id=backup.id,
        name=backup.name,
        type="backup",
        interface=str(backup.metadata.get("interface", "")),
        environment=config.metadata.environment if config else "",
        version=config.metadata.version if config else "",
        created_at=backup.timestamp,
        updated_at=backup.timestamp,
        size=backup.size,
        checksum=backup.checksum,
        status="active",
    )


class FileBackupStore:
    """One gzip-compressed JSON document per backup under a single directory."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self._lock = threading.Lock()

    def _path(self, backup_id: str) -> Path:
        if not backup_id or "/" in backup_id or "\\" in backup_id:
            raise InvalidRequestError(f"Invalid backup id '{backup_id}'.")
        return validate_path(self.directory / f"{backup_id}{BACKUP_SUFFIX}", self.directory)

    def exists(self, backup_id: str) -> bool:
        return self._path(backup_id).exists()

    def put(self, backup: ConfigBackup) -> str:
        path = self._path(backup.id)
        data = gzip.compress(backup.model_dump_json().encode("utf-8"))
        with self._lock:
            try:
                self.directory.mkdir(parents=True, exist_ok=True)
                atomic_write(path, data, mode=0o600)
                apply_secure_permissions(path)
            except OSError as e:
                raise BackupError(f"Failed to write backup '{backup.id}': {e}") from e
        logger.info("stored backup %s (%d bytes compressed)", backup.id, len(data))
        return backup.id

    def get(self, backup_id: str) -> ConfigBackup:
        path = self._path(backup_id)
        with self._lock:
            if not path.exists():
                raise BackupNotFoundError(f"Backup '{backup_id}' not found.")
            try:
                raw = gzip.decompress(path.read_bytes())
            except (OSError, EOFError) as e:
                raise InvalidBackupError(f"Backup '{backup_id}' is unreadable: {e}") from e
        try:
            return ConfigBackup.model_validate_json(raw)
        except ValidationError as e:
            raise InvalidBackupError(f"Backup '{backup_id}' is malformed: {e}") from e

    def _load_all(self) -> List[ConfigBackup]:
        backups = []
        if not self.directory.exists():
            return backups
        for path in sorted(self.directory.glob(f"*{BACKUP_SUFFIX}")):
            try:
                backups.append(ConfigBackup.model_validate_json(gzip.decompress(path.read_bytes())))
            except (OSError, EOFError, ValidationError) as e:
                logger.warning("skipping unreadable backup %s: %s", path.name, e)
        return backups

    def list(
        self,
        filter: Optional[BackupFilter] = None,
        pagination: Optional[Pagination] = None,
        sort: Optional[SortOptions] = None,
    ) -> Tuple[List[ConfigSummary], int]:
        filter = filter or BackupFilter()
        pagination = pagination or Pagination()
        sort = sort or SortOptions()

        with self._lock:
            backups = self._load_all()

        def keep(b: ConfigBackup) -> bool:
            meta = b.metadata
            if filter.interface and meta.get("interface") != filter.interface:
                return False
            if filter.user_id and meta.get("user_id") != filter.user_id:
                return False
            if filter.session_id and meta.get("session_id") != filter.session_id:
                return False
            return True

        summaries = [summarize(b) for b in backups if keep(b)]
        summaries.sort(key=lambda s: (getattr(s, sort.field), s.id), reverse=sort.order == "desc")
        total = len(summaries)
        start = (pagination.page - 1) * pagination.page_size
        return summaries[start:start + pagination.page_size], total


class ConfigService:
    """Generate, validate, back up and restore setup configurations."""

    def __init__(
        self,
        factory: ConfigFactory,
        store: BackupStore,
        history: SetupHistory,
        clock: Clock = utc_now,
        home_dir: Optional[Path] = None,
    ):
        self.factory = factory
        self.store = store
        self.history = history
        self.clock = clock
        # Restores only ever write this home's manager.yaml.
        self.home_dir = Path(home_dir) if home_dir is not None else resolve_home()

    def generate(self, request: ConfigRequest) -> SetupConfig:
        config = self.factory.build(request)
        logger.info("generated configuration interface=%s user_id=%s", request.interface.value, request.user_id)
        return config

    def validate(self, request: ConfigRequest) -> ValidationResult:
        return self.factory.validate_config(request.config)

    def create_backup(self, request: ConfigRequest) -> ConfigBackup:
        config = request.config or self._custom_config(request.custom_data)
        if config is None:
            config = self.factory.build(request)
        return self.backup_config(
            config,
            interface=request.interface.value,
            user_id=request.user_id,
            session_id=request.session_id,
            encrypted=request.options.encrypt,
        )

    def backup_config(
        self,
        config: SetupConfig,
        interface: str,
        user_id: str = "",
        session_id: str = "",
        encrypted: bool = False,
        description: str = "",
    ) -> ConfigBackup:
        now = self.clock()
        size, checksum = config_fingerprint(config)
        backup = ConfigBackup(
            id=self._new_id(interface, now),
            name=f"Configuration backup for {interface}",
            description=description or f"Automatic backup created on {now.isoformat()}",
            config=config,
            timestamp=now,
            size=size,
            checksum=checksum,
            encrypted=encrypted,
            compressed=True,
            metadata={
                "interface": interface,
                "user_id": user_id,
                "session_id": session_id,
                "created_by": "config_service",
            },
        )
        self.store.put(backup)
        logger.info("configuration backup created id=%s size=%d interface=%s", backup.id, size, interface)
        return backup

    def restore(self, request: ConfigRestoreRequest) -> RestoreOutcome:
        started = time.perf_counter()
        backup = self.store.get(request.backup_id)
        target = manager_config_path(self.home_dir)
        config = self._check_backup(backup, target)
        interface = str(backup.metadata.get("interface", config.interface.type))
        warnings: List[str] = []

        owner_key = Path(config.owner_key.path) if config.owner_key.path else None
        if owner_key is not None and not owner_key.exists():
            warnings.append(f"Owner key file {owner_key} referenced by the backup does not exist")

        pre_backup = None
        if request.options.backup and target.exists() and not request.options.dry_run:
            current = self._read_current(target)
            if current is None:
                warnings.append(f"Current configuration at {target} could not be read; no pre-restore backup taken")
            else:
                pre_backup = self.backup_config(
                    current, interface=interface, user_id=request.user_id, session_id=request.session_id,
                    description=f"Pre-restore backup before applying {backup.id}",
                )

        if request.options.dry_run:
            logger.info("dry-run restore of %s to %s", backup.id, target)
            return RestoreOutcome(config=config, backup=None, warnings=warnings,
                                  config_path=str(target), dry_run=True)

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            atomic_write(target, dump_config_yaml(config).encode("utf-8"))
        except OSError as e:
            self.history.record("restore", "failed", interface=interface, user_id=request.user_id,
                                duration=time.perf_counter() - started, config_path=str(target), detail=str(e))
            raise RestoreError(f"Failed to write restored configuration to {target}: {e}") from e

        self.history.record("restore", "success", interface=interface, user_id=request.user_id,
                            duration=time.perf_counter() - started, config_path=str(target),
                            detail=f"restored from {backup.id}")
        logger.info("configuration restored from %s to %s", backup.id, target)
        return RestoreOutcome(config=config, backup=pre_backup, warnings=warnings, config_path=str(target))

    def list_backups(
        self,
        filter: BackupFilter,
        pagination: Pagination,
        sort: SortOptions,
    ) -> Tuple[List[ConfigSummary], int]:
        return self.store.list(filter, pagination, sort)

    # Internals

    def _new_id(self, interface: str, now: datetime) -> str:
        base = f"backup_{interface}_{int(now.timestamp())}"
        exists = getattr(self.store, "exists", None)
        if exists is None or not exists(base):
            return base
        n = 1
        while exists(f"{base}_{n}"):
            n += 1
        return f"{base}_{n}"

    def _check_backup(self, backup: ConfigBackup, target: Path) -> SetupConfig:
        config = backup.config
        if config is None:
            raise InvalidBackupError(f"Backup '{backup.id}' carries no configuration.")
        _, checksum = config_fingerprint(config)
        if not backup.checksum or not crypto.secure_compare(checksum, backup.checksum):
            raise InvalidBackupError(f"Backup '{backup.id}' failed checksum verification.")
        if Path(config.manager.home_dir) != syntropy_dir(self.home_dir):
            raise InvalidBackupError(
                f"Backup '{backup.id}' belongs to manager home {config.manager.home_dir}, not {syntropy_dir(self.home_dir)}."
            )
        if Path(config.manager.default_paths.manager_config) != target:
            raise InvalidBackupError(f"Backup '{backup.id}' points its config somewhere other than {target}.")
        return config

    @staticmethod
    def _custom_config(custom_data: Dict[str, Any]) -> Optional[SetupConfig]:
        raw = custom_data.get("config")
        if raw is None:
            return None
        try:
            return SetupConfig.model_validate(raw)
        except ValidationError as e:
            raise InvalidRequestError(f"custom_data.config is not a valid configuration: {e}") from e

    @staticmethod
    def _read_current(path: Path) -> Optional[SetupConfig]:
        try:
            return load_config_file(path)
        except ConfigError as e:
            logger.warning("could not read current configuration %s: %s", path, e)
            return None
