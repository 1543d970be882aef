"""
Settings, on-disk layout, YAML persistence and passphrase storage for the Syntropy manager.
"""
import logging
import secrets
import stat
import sys
from pathlib import Path
from typing import Optional

import keyring
import yaml
from keyring.errors import PasswordDeleteError
from pydantic import Field, ValidationError

from .crypto import verify_checksum
from .errors import ConfigError
from .models import FrozenModel, SetupConfig

logger = logging.getLogger(__name__)

APP_NAME = "syntropy-manager"
SYNTROPY_DIR_NAME = ".syntropy"
MANAGER_CONFIG_NAME = "manager.yaml"
OWNER_KEY_NAME = "owner.key"
OWNER_PUB_NAME = "owner.key.pub"
DIRECTORY_NAMES = ("config", "keys", "logs", "cache", "backups")


class Settings(FrozenModel):
    """Process-wide settings. Built once by the CLI or the app factory."""
    home_dir: Path = Field(default_factory=Path.home)
    log_level: str = "info"
    api_host: str = "127.0.0.1"
    api_port: int = 8080
    connectivity_url: str = "https://www.google.com"
    network_probe_url: str = ""
    probe_timeout: int = 30
    command_timeout: float = 5.0

    @property
    def syntropy_dir(self) -> Path:
        return syntropy_dir(self.home_dir)

    @property
    def backups_dir(self) -> Path:
        return self.syntropy_dir / "backups"

    @property
    def logs_dir(self) -> Path:
        return self.syntropy_dir / "logs"


def resolve_home(candidate: str = "") -> Path:
    """User-supplied home, else the OS user home, else /tmp."""
    if candidate:
        return Path(candidate)
    try:
        return Path.home()
    except RuntimeError:
        return Path("/tmp")

def syntropy_dir(home: Path | str) -> Path:
    return Path(home) / SYNTROPY_DIR_NAME

def manager_config_path(home: Path | str) -> Path:
    return syntropy_dir(home) / "config" / MANAGER_CONFIG_NAME

def apply_secure_permissions(path: Path) -> None:
    """Apply chmod 600 equivalent permissions to a file."""
    if sys.platform != "win32":
        # Owner read/write only
        path.chmod(stat.S_IRUSR | stat.S_IWUSR)


# YAML

def dump_config_yaml(config: SetupConfig) -> str:
    """Canonical YAML for a SetupConfig (indent 2, schema key order)."""
    return yaml.safe_dump(
        config.model_dump(mode="json"),
        indent=2,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
    )

def load_config_yaml(text: str) -> SetupConfig:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Configuration is not valid YAML: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("Configuration YAML must be a mapping.")
    try:
        return SetupConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Configuration does not match the schema: {e}") from e

def load_config_file(path: Path) -> SetupConfig:
    """Load the manager config from disk."""
    if not path.exists():
        raise ConfigError(f"Configuration file '{path}' does not exist.")
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read '{path}': {e}") from e
    return load_config_yaml(text)

def verify_config_yaml(text: str, checksum: str) -> bool:
    """
    True when text is the canonical serialization of a config whose
    checksum (embedded and recomputed) equals the given one.
    """
    try:
        config = load_config_yaml(text)
    except ConfigError:
        return False
    if config.metadata.checksum != checksum:
        return False
    if dump_config_yaml(config) != text:
        return False
    return verify_checksum(config.model_dump(mode="json"), checksum)


# Owner key passphrase

def passphrase_ref(user_id: str, interface: str) -> str:
    return f"owner_key_{interface}_{user_id or 'default'}"

def generate_key_passphrase(user_id: str, interface: str) -> str:
    """
    Generate an owner-key passphrase and store it in the OS keyring.
    Raises ConfigError when the keyring is unusable; the key is never written unprotected.
    """
    value = secrets.token_urlsafe(32)
    try:
        keyring.set_password(APP_NAME, passphrase_ref(user_id, interface), value)
    except Exception as e:
        raise ConfigError(f"Failed to store owner key passphrase in OS keyring: {e}") from e
    return value

def get_key_passphrase(user_id: str, interface: str) -> Optional[str]:
    """Retrieve the owner-key passphrase for a given user/interface."""
    try:
        return keyring.get_password(APP_NAME, passphrase_ref(user_id, interface))
    except Exception as e:
        logger.warning("keyring lookup failed: %s", e)
        return None

def delete_key_passphrase(user_id: str, interface: str) -> None:
    try:
        keyring.delete_password(APP_NAME, passphrase_ref(user_id, interface))
    except PasswordDeleteError:
        pass
    except Exception as e:
        logger.warning("keyring delete failed: %s", e)
