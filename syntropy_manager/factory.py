"""
ConfigFactory: builds a complete SetupConfig (with a fresh owner key) from a request.
"""
import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from cryptography.hazmat.primitives.asymmetric import rsa

from . import crypto
from .config import (
    MANAGER_CONFIG_NAME,
    OWNER_KEY_NAME,
    OWNER_PUB_NAME,
    resolve_home,
    syntropy_dir,
)
from .errors import CryptoError
from .models import (
    Category,
    ConfigMetadata,
    DatabaseConfig,
    DefaultPaths,
    EnvironmentConfig,
    EnvironmentInfo,
    InterfaceConfig,
    ManagerConfig,
    ManagerDirectories,
    NetworkConfig,
    OwnerKey,
    Risk,
    SecurityConfig,
    SetupConfig,
    Severity,
    ValidationItem,
    ValidationResult,
)
from .probes.base import auto_fix
from .utils import Clock, is_strictly_under, utc_now

logger = logging.getLogger(__name__)

KeyGenerator = Callable[[], Tuple[rsa.RSAPrivateKey, str]]

CONFIG_VERSION = "1.0.0"
API_ENDPOINT = "http://localhost:8080"
INTERFACE_PERMISSIONS = ["read_config", "write_config", "manage_keys", "access_network"]
ALLOWED_IPS = ["127.0.0.1", "::1"]


class ConfigFactory:
    """
    Pure builder: the only inputs are the request, the clock and the key generator.
    Nothing touches the filesystem.
    """

    def __init__(self, clock: Clock = utc_now, keygen: KeyGenerator = crypto.generate_owner_key):
        self.clock = clock
        self.keygen = keygen

    def build(self, request, now: Optional[datetime] = None) -> SetupConfig:
        config, _ = self.build_with_key(request, now)
        return config

    def build_with_key(self, request, now: Optional[datetime] = None) -> Tuple[SetupConfig, Optional[rsa.RSAPrivateKey]]:
        """
        Build the config and return it with the private half of the owner key.
        The private key is None when key generation failed; the config then
        carries an empty OwnerKey.
        """
        now = now or self.clock()
        env: EnvironmentInfo = request.environment or EnvironmentInfo()
        interface = request.interface.value
        home = resolve_home(env.home_dir)
        root = syntropy_dir(home)

        directories = ManagerDirectories(
            config=str(root / "config"),
            keys=str(root / "keys"),
            logs=str(root / "logs"),
            cache=str(root / "cache"),
            backups=str(root / "backups"),
        )
        paths = DefaultPaths(
            manager_config=str(Path(directories.config) / MANAGER_CONFIG_NAME),
            owner_key=str(Path(directories.keys) / OWNER_KEY_NAME),
            owner_pub=str(Path(directories.keys) / OWNER_PUB_NAME),
        )
        manager = ManagerConfig(
            home_dir=str(root),
            log_level="info",
            api_endpoint=API_ENDPOINT,
            directories=directories,
            default_paths=paths,
            database=DatabaseConfig(type="sqlite", name=str(root / "syntropy.db"), ssl_mode="disable"),
        )

        private_key = None
        owner_key = OwnerKey()
        try:
            private_key, public_pem = self.keygen()
            owner_key = OwnerKey(
                type="RSA",
                algorithm="RSA",
                path=paths.owner_key,
                public_key=public_pem,
                created_at=now,
                size=private_key.key_size,
            )
        except CryptoError as e:
            logger.error("owner key generation failed: %s", e)

        config = SetupConfig(
            manager=manager,
            owner_key=owner_key,
            environment=EnvironmentConfig(
                os=env.os,
                architecture=env.architecture,
                home_dir=env.home_dir or str(home),
                variables=dict(env.environment_vars),
                features=list(env.features),
            ),
            interface=InterfaceConfig(
                type=interface,
                theme="default",
                language="en",
                settings={"auto_update": True, "notifications": True, "log_level": "info"},
                permissions=list(INTERFACE_PERMISSIONS),
            ),
            security=SecurityConfig(
                encryption_algorithm="AES-256-GCM",
                key_rotation_days=90,
                allowed_ips=list(ALLOWED_IPS),
                ssl_enabled=True,
                cert_path=str(root / "certs" / "server.crt"),
            ),
            network=NetworkConfig(
                port=8080,
                host="localhost",
                endpoints=[API_ENDPOINT],
                timeout=30,
                retries=3,
                compression=True,
            ),
            metadata=ConfigMetadata(
                version=CONFIG_VERSION,
                created_at=now,
                updated_at=now,
                created_by=request.user_id,
                interface=interface,
                environment=env.os,
            ),
        )
        return with_checksum(config), private_key

    @staticmethod
    def check_invariants(config: SetupConfig) -> List[str]:
        """Problems that make a config unusable for setup. Empty means sound."""
        problems = []
        if not is_strictly_under(config.manager.default_paths.manager_config, config.manager.home_dir):
            problems.append("manager config path is not under the manager home directory")
        if not config.owner_key.path:
            problems.append("owner key path is empty")
        if not crypto.is_public_key_pem(config.owner_key.public_key):
            problems.append("owner public key is missing or not a PUBLIC KEY PEM")
        if "PRIVATE KEY" in config.model_dump_json():
            problems.append("config contains private key material")
        if not crypto.verify_checksum(config.model_dump(mode="json"), config.metadata.checksum):
            problems.append("metadata checksum does not match the config")
        return problems

    def validate_config(self, config: Optional[SetupConfig]) -> ValidationResult:
        result = ValidationResult(timestamp=self.clock(), interface=config.interface.type if config else "")

        def add(code, message, severity, field="", fix=None):
            result.add(ValidationItem(
                code=code, message=message, severity=severity, category=Category.CONFIGURATION,
                field=field or None, fixable=fix is not None, auto_fix=fix, timestamp=self.clock(),
            ))

        if config is None:
            add("NULL_CONFIG", "Configuration is null", Severity.ERROR,
                fix=auto_fix(command="syntropy-manager setup", manual="Generate a configuration first"))
            return result.seal()

        if not config.manager.home_dir:
            add("MISSING_HOME_DIR", "Manager home directory is required", Severity.ERROR, "manager.home_dir")
        if not config.manager.log_level:
            add("MISSING_LOG_LEVEL", "Log level is not set; 'info' will be used", Severity.WARNING, "manager.log_level")
        if not config.owner_key.path:
            add("MISSING_KEY_PATH", "Owner key path is required", Severity.ERROR, "owner_key.path")
        if not config.owner_key.public_key:
            add("MISSING_PUBLIC_KEY", "Owner public key is required", Severity.ERROR, "owner_key.public_key")
        if not config.security.encryption_algorithm:
            add("MISSING_ENCRYPTION_ALGORITHM", "Encryption algorithm is not set", Severity.WARNING,
                "security.encryption_algorithm",
                fix=auto_fix(manual="Set security.encryption_algorithm to AES-256-GCM", risk=Risk.LOW))
        if not config.network.port:
            add("MISSING_PORT", "Network port is not set", Severity.WARNING, "network.port",
                fix=auto_fix(manual="Set network.port to 8080", risk=Risk.LOW))
        checksum = config.metadata.checksum
        if checksum and not crypto.verify_checksum(config.model_dump(mode="json"), checksum):
            add("INVALID_CHECKSUM", "Configuration checksum does not match its content", Severity.ERROR,
                "metadata.checksum")
        return result.seal()


def with_checksum(config: SetupConfig, updated_at: Optional[datetime] = None) -> SetupConfig:
    """Return a copy of config whose metadata.checksum covers everything else."""
    metadata = config.metadata
    if updated_at is not None:
        metadata = metadata.model_copy(update={"updated_at": updated_at})
    unsealed = config.model_copy(update={"metadata": metadata.model_copy(update={"checksum": ""})})
    checksum = crypto.config_checksum(unsealed.model_dump(mode="json"))
    return unsealed.model_copy(update={"metadata": unsealed.metadata.model_copy(update={"checksum": checksum})})
