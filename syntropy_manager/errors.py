"""
Custom exception hierarchy for the Syntropy manager.
"""
from typing import Any, Optional


class SyntropyError(Exception):
    """Base exception for all syntropy manager errors."""
    code = "INTERNAL_ERROR"
    status_code = 500

class InvalidRequestError(SyntropyError):
    code = "INVALID_REQUEST"
    status_code = 400

class ConflictError(SyntropyError):
    code = "CONFLICT"
    status_code = 409

class SetupExistsError(ConflictError):
    code = "SETUP_EXISTS"

class NotFoundError(SyntropyError):
    code = "NOT_FOUND"
    status_code = 404

class BackupNotFoundError(NotFoundError):
    code = "BACKUP_NOT_FOUND"

class TemplateNotFoundError(NotFoundError):
    code = "TEMPLATE_NOT_FOUND"

class SetupNotFoundError(NotFoundError):
    code = "SETUP_NOT_FOUND"

class ProbeError(SyntropyError):
    """A probe could not complete its contract (not a finding)."""
    code = "VALIDATION_FAILED"

    def __init__(self, probe: str, message: str):
        super().__init__(f"{probe} probe failed: {message}")
        self.probe = probe

class SetupError(SyntropyError):
    """A setup step failed. Carries the step name and the partial config."""
    code = "SETUP_FAILED"

    def __init__(self, step: str, message: str, config: Optional[Any] = None):
        super().__init__(f"setup step '{step}' failed: {message}")
        self.step = step
        self.config = config

class BackupError(SyntropyError):
    code = "BACKUP_FAILED"

class InvalidBackupError(BackupError):
    code = "INVALID_BACKUP"
    status_code = 400

class RestoreError(BackupError):
    code = "RESTORE_FAILED"

class CryptoError(SyntropyError):
    pass

class KeyGenerationError(CryptoError):
    pass

class KeySerializationError(CryptoError):
    pass

class ConfigError(SyntropyError):
    pass

class PathTraversalError(InvalidRequestError):
    pass
