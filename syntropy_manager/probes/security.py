"""
Security probe: cryptographic smoke tests and file permission enforcement.

Each step records a boolean on the security section; a failing step emits an
error with a stable code and the probe moves on to the next step.
"""
import logging
import os
import secrets
import tempfile
import threading
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from .. import crypto
from ..errors import CryptoError
from ..host import HostInspector
from ..models import Category, Risk, SecurityCheck, Severity, ValidationRequest
from ..utils import Clock, utc_now
from .base import ValidationFragment, auto_fix, finding

logger = logging.getLogger(__name__)

TEST_PLAINTEXT = b"syntropy security validation test data"
ENTROPY_SAMPLE = 32
MAX_ZERO_RATIO = 0.25


class SecurityProbe:
    name = "security"

    def __init__(self, host: HostInspector, clock: Clock = utc_now):
        self.host = host
        self.clock = clock

    def run(self, request: ValidationRequest, cancel: threading.Event) -> ValidationFragment:
        fragment = ValidationFragment(probe=self.name)
        section = SecurityCheck()
        fragment.security = section

        steps = (
            self._check_encryption,
            self._check_secure_random,
            self._check_key_generation,
            self._check_file_permissions,
        )
        for step in steps:
            if cancel.is_set():
                fragment.cancelled = True
                return fragment
            step(section, fragment)

        self._check_network_security(section)
        section.recommendations.extend([
            "Keep the owner private key in keys/owner.key with owner-only permissions",
            "Rotate the owner key every 90 days",
            "Enable passphrase encryption for the owner key on shared machines",
        ])
        section.compliance = ["Basic security practices implemented"]
        logger.info(
            "security probe: encryption=%s random=%s keygen=%s files=%s",
            section.encryption_available, section.secure_random,
            section.key_generation, section.file_permissions,
        )
        return fragment

    def _error(self, fragment: ValidationFragment, code: str, message: str, detail: str = "") -> None:
        fragment.add(finding(
            self.clock, code, f"{message}: {detail}" if detail else message,
            Severity.ERROR, Category.SECURITY,
        ))

    def _check_encryption(self, section: SecurityCheck, fragment: ValidationFragment) -> None:
        try:
            key = crypto.generate_rsa_keypair()
        except CryptoError as e:
            self._error(fragment, "ENCRYPTION_FAILED", "Failed to generate RSA key for encryption test", str(e))
            return
        try:
            ciphertext = crypto.oaep_encrypt(key.public_key(), TEST_PLAINTEXT)
        except CryptoError as e:
            self._error(fragment, "ENCRYPTION_TEST_FAILED", "Encryption test failed", str(e))
            return
        try:
            plaintext = crypto.oaep_decrypt(key, ciphertext)
        except CryptoError as e:
            self._error(fragment, "DECRYPTION_TEST_FAILED", "Decryption test failed", str(e))
            return
        if plaintext != TEST_PLAINTEXT:
            self._error(fragment, "ENCRYPTION_INTEGRITY_FAILED", "Encryption/decryption data integrity test failed")
            return
        section.encryption_available = True
        section.recommendations.append("RSA encryption is available and working correctly")

    def _check_secure_random(self, section: SecurityCheck, fragment: ValidationFragment) -> None:
        try:
            sample = secrets.token_bytes(ENTROPY_SAMPLE)
        except (OSError, NotImplementedError) as e:
            self._error(fragment, "SECURE_RANDOM_FAILED", "Secure random number generation failed", str(e))
            return
        zeros = sample.count(0)
        if zeros > ENTROPY_SAMPLE * MAX_ZERO_RATIO:
            section.secure_random = False
            fragment.add(finding(
                self.clock, "POOR_ENTROPY", "Random number generator may have poor entropy",
                Severity.WARNING, Category.SECURITY,
                expected=f"<= {int(ENTROPY_SAMPLE * MAX_ZERO_RATIO)} zero bytes", actual=zeros,
                suggestion="Check the system entropy source",
            ))
            return
        section.secure_random = True
        section.recommendations.append("Secure random number generation is working correctly")

    def _check_key_generation(self, section: SecurityCheck, fragment: ValidationFragment) -> None:
        try:
            key = crypto.generate_rsa_keypair()
        except CryptoError as e:
            self._error(fragment, "KEY_GENERATION_FAILED", "RSA key generation failed", str(e))
            return
        try:
            der = key.private_bytes(
                encoding=serialization.Encoding.DER,
                format=serialization.PrivateFormat.PKCS8,
                encryption_algorithm=serialization.NoEncryption(),
            )
        except (ValueError, TypeError) as e:
            self._error(fragment, "KEY_SERIALIZATION_FAILED", "Key serialization failed", str(e))
            return
        # PEM steps go through the same helpers that write owner.key.
        try:
            pem = crypto.private_key_pem(key)
        except CryptoError as e:
            self._error(fragment, "PEM_ENCODING_FAILED", "PEM encoding failed", str(e))
            return
        try:
            decoded = crypto.load_private_key_pem(pem)
        except CryptoError as e:
            self._error(fragment, "PEM_DECODING_FAILED", "PEM decoding failed", str(e))
            return
        try:
            parsed = serialization.load_der_private_key(der, password=None)
        except (ValueError, TypeError) as e:
            self._error(fragment, "KEY_PARSING_FAILED", "Key parsing failed", str(e))
            return
        if not isinstance(parsed, rsa.RSAPrivateKey):
            self._error(fragment, "INVALID_KEY_TYPE", "Generated key is not RSA type")
            return
        if parsed.private_numbers() != decoded.private_numbers():
            self._error(fragment, "KEY_PARSING_FAILED", "PEM and DER encodings decode to different keys")
            return
        section.key_generation = True
        section.recommendations.append("RSA key generation and management is working correctly")

    def _check_file_permissions(self, section: SecurityCheck, fragment: ValidationFragment) -> None:
        if self.host.os_name() == "windows":
            # POSIX mode bits carry no meaning on NTFS.
            section.file_permissions = True
            return
        tmp_dir = Path(self.host.temp_dir() or tempfile.gettempdir())
        path = tmp_dir / f"syntropy_security_test_{secrets.token_hex(8)}"
        try:
            try:
                fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            except OSError as e:
                self._error(fragment, "FILE_CREATION_FAILED",
                            "Failed to create test file with secure permissions", str(e))
                return
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(b"test")
            except OSError as e:
                self._error(fragment, "FILE_WRITE_FAILED", "Failed to write to test file", str(e))
                return
            try:
                mode = path.stat().st_mode & 0o777
            except OSError as e:
                self._error(fragment, "FILE_STAT_FAILED", "Failed to get file information", str(e))
                return
            if mode & 0o077:
                fragment.add(finding(
                    self.clock, "INSECURE_FILE_PERMISSIONS",
                    f"File permissions {oct(mode)} are too permissive",
                    Severity.WARNING, Category.SECURITY,
                    field="file_permissions", expected="0o600", actual=oct(mode),
                    suggestion="Set a umask of 077 for the service user",
                    fix=auto_fix(command=f"chmod 600 {path}", manual="Restrict the file to its owner", risk=Risk.LOW),
                ))
                return
            section.file_permissions = True
        finally:
            path.unlink(missing_ok=True)

    def _check_network_security(self, section: SecurityCheck) -> None:
        # TLS verification is on for every outbound httpx call the manager makes.
        section.network_security = True
