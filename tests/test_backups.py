import gzip
from datetime import timedelta
from pathlib import Path

import pytest

from syntropy_manager.backups import ConfigService, config_fingerprint
from syntropy_manager.config import load_config_file, verify_config_yaml
from syntropy_manager.errors import BackupNotFoundError, InvalidBackupError, InvalidRequestError
from syntropy_manager.factory import with_checksum
from syntropy_manager.models import (
    BackupFilter,
    ConfigBackup,
    ConfigRequest,
    ConfigRestoreRequest,
    EnvironmentInfo,
    InterfaceType,
    Pagination,
    RestoreOptions,
    SortOptions,
)

from .conftest import FIXED_NOW


def ticking_clock():
    state = {"n": 0}

    def clock():
        state["n"] += 1
        return FIXED_NOW + timedelta(seconds=state["n"])

    return clock


@pytest.fixture
def home_config(factory, home):
    return factory.build(ConfigRequest(environment=EnvironmentInfo(os="linux", home_dir=str(home))))


def test_backup_of_request_config(config_service, store, home_config):
    backup = config_service.create_backup(ConfigRequest(config=home_config, user_id="u", session_id="s"))
    assert backup.id == f"backup_cli_{int(FIXED_NOW.timestamp())}"
    assert backup.compressed
    assert (backup.size, backup.checksum) == config_fingerprint(home_config)
    assert backup.metadata == {"interface": "cli", "user_id": "u", "session_id": "s", "created_by": "config_service"}
    assert store.get(backup.id).config == home_config

def test_backup_ids_do_not_collide(config_service, home_config):
    first = config_service.create_backup(ConfigRequest(config=home_config))
    second = config_service.create_backup(ConfigRequest(config=home_config))
    assert second.id == f"{first.id}_1"

def test_backup_from_custom_data(config_service, home_config):
    request = ConfigRequest(interface=InterfaceType.WEB, custom_data={"config": home_config.model_dump(mode="json")})
    backup = config_service.create_backup(request)
    assert backup.id.startswith("backup_web_")
    assert backup.config == home_config

    with pytest.raises(InvalidRequestError):
        config_service.create_backup(ConfigRequest(custom_data={"config": {"manager": "nope"}}))

def test_backup_without_config_generates_one(config_service):
    backup = config_service.create_backup(ConfigRequest(environment=EnvironmentInfo(os="linux", home_dir="/home/t")))
    assert backup.config.manager.home_dir == "/home/t/.syntropy"

def test_store_rejects_bad_ids_and_files(store, settings):
    with pytest.raises(BackupNotFoundError):
        store.get("backup_cli_0")
    with pytest.raises(InvalidRequestError):
        store.get("../../etc/passwd")
    settings.backups_dir.mkdir(parents=True)
    (settings.backups_dir / "backup_cli_1.json.gz").write_bytes(b"not gzip")
    with pytest.raises(InvalidBackupError):
        store.get("backup_cli_1")
    (settings.backups_dir / "backup_cli_2.json.gz").write_bytes(gzip.compress(b'{"id": "x"}'))
    with pytest.raises(InvalidBackupError):
        store.get("backup_cli_2")

def test_backup_files_are_private(config_service, settings, home_config):
    backup = config_service.create_backup(ConfigRequest(config=home_config))
    path = settings.backups_dir / f"{backup.id}.json.gz"
    assert path.stat().st_mode & 0o777 == 0o600

def test_list_filters_sorts_and_pages(factory, store, history, home_config, home):
    service = ConfigService(factory, store, history, ticking_clock(), home_dir=home)
    ids = []
    for interface, user in [("cli", "a"), ("web", "a"), ("cli", "b"), ("cli", "a")]:
        ids.append(service.backup_config(home_config, interface=interface, user_id=user).id)

    page, total = service.list_backups(BackupFilter(), Pagination(), SortOptions())
    assert total == 4
    assert [s.id for s in page] == list(reversed(ids))

    page, total = service.list_backups(BackupFilter(interface="cli", user_id="a"), Pagination(), SortOptions(order="asc"))
    assert total == 2
    assert [s.id for s in page] == [ids[0], ids[3]]
    assert page[0].type == "backup"
    assert page[0].environment == "linux"

    page, total = service.list_backups(BackupFilter(), Pagination(page=2, page_size=3), SortOptions(order="asc"))
    assert total == 4
    assert [s.id for s in page] == [ids[3]]

def test_list_skips_unreadable_files(store, settings, config_service, home_config):
    config_service.create_backup(ConfigRequest(config=home_config))
    (settings.backups_dir / "broken.json.gz").write_bytes(b"garbage")
    page, total = store.list()
    assert total == 1

def test_restore_writes_verified_config(config_service, history, home_config):
    backup = config_service.create_backup(ConfigRequest(config=home_config, user_id="u"))
    outcome = config_service.restore(ConfigRestoreRequest(backup_id=backup.id, user_id="u"))
    target = outcome.config_path
    assert target == home_config.manager.default_paths.manager_config
    with open(target, encoding="utf-8") as f:
        assert verify_config_yaml(f.read(), home_config.metadata.checksum)
    assert outcome.backup is None
    assert any("does not exist" in w for w in outcome.warnings)
    entry = history.entries(interface="cli")[0]
    assert (entry.action, entry.status) == ("restore", "success")

def test_restore_takes_pre_restore_backup(config_service, store, home_config, factory, home):
    first = config_service.create_backup(ConfigRequest(config=home_config))
    config_service.restore(ConfigRestoreRequest(backup_id=first.id))

    newer = factory.build(ConfigRequest(
        interface=InterfaceType.CLI,
        environment=EnvironmentInfo(os="linux", home_dir=str(home), architecture="arm64"),
    ))
    second = config_service.create_backup(ConfigRequest(config=newer))
    outcome = config_service.restore(ConfigRestoreRequest(backup_id=second.id, options=RestoreOptions(backup=True)))
    assert outcome.backup is not None
    assert outcome.backup.config == home_config
    assert load_config_file(home / ".syntropy" / "config" / "manager.yaml") == newer

def test_restore_dry_run_writes_nothing(config_service, home_config):
    backup = config_service.create_backup(ConfigRequest(config=home_config))
    outcome = config_service.restore(ConfigRestoreRequest(backup_id=backup.id, options=RestoreOptions(dry_run=True)))
    assert outcome.dry_run
    assert not Path(outcome.config_path).exists()

def test_restore_rejects_tampered_backup(config_service, store, home_config):
    backup = config_service.create_backup(ConfigRequest(config=home_config))
    tampered = ConfigBackup(**{**backup.model_dump(), "id": "tampered", "checksum": "0" * 64})
    store.put(tampered)
    with pytest.raises(InvalidBackupError):
        config_service.restore(ConfigRestoreRequest(backup_id="tampered"))

def test_restore_unknown_backup(config_service):
    with pytest.raises(BackupNotFoundError):
        config_service.restore(ConfigRestoreRequest(backup_id="backup_cli_42"))

def _relocate(config, manager_config):
    paths = config.manager.default_paths.model_copy(update={"manager_config": manager_config})
    return with_checksum(config.model_copy(update={"manager": config.manager.model_copy(update={"default_paths": paths})}))

def test_restore_only_writes_the_managed_home(config_service, factory, home, home_config, tmp_path):
    elsewhere = tmp_path / "elsewhere"
    foreign = factory.build(ConfigRequest(environment=EnvironmentInfo(os="linux", home_dir=str(elsewhere))))
    foreign = _relocate(foreign, str(elsewhere / ".syntropy" / "evil.yaml"))
    backup = config_service.create_backup(ConfigRequest(config=foreign))
    with pytest.raises(InvalidBackupError):
        config_service.restore(ConfigRestoreRequest(backup_id=backup.id))
    assert not elsewhere.exists()

    sideways = _relocate(home_config, str(home / ".syntropy" / "evil.yaml"))
    backup = config_service.create_backup(ConfigRequest(config=sideways))
    with pytest.raises(InvalidBackupError):
        config_service.restore(ConfigRestoreRequest(backup_id=backup.id))
    assert not (home / ".syntropy" / "evil.yaml").exists()
    assert not (home / ".syntropy" / "config" / "manager.yaml").exists()
