"""
Top-level crypto module owning all security-critical operations.
RSA owner keys, OAEP round-trips, PEM handling and canonical config checksums.
"""
import hashlib
import hmac
import json
import os
from typing import Any, Optional, Tuple

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import CryptoError, KeyGenerationError, KeySerializationError

RSA_KEY_SIZE = 2048
RSA_PUBLIC_EXPONENT = 65537
NONCE_LEN = 12

OAEP = padding.OAEP(
    mgf=padding.MGF1(algorithm=hashes.SHA256()),
    algorithm=hashes.SHA256(),
    label=None,
)


def compute_sha256(data: bytes) -> str:
    """Compute the SHA-256 hash of raw bytes."""
    hasher = hashlib.sha256()
    hasher.update(data)
    return hasher.hexdigest()

def secure_compare(a: str, b: str) -> bool:
    """Constant-time comparison to prevent timing attacks."""
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))

def generate_rsa_keypair(bits: int = RSA_KEY_SIZE) -> rsa.RSAPrivateKey:
    """Generate an RSA private key."""
    try:
        return rsa.generate_private_key(public_exponent=RSA_PUBLIC_EXPONENT, key_size=bits)
    except Exception as e:
        raise KeyGenerationError(f"RSA key generation failed: {e}") from e

def public_key_pem(private_key: rsa.RSAPrivateKey) -> str:
    """SubjectPublicKeyInfo PEM ('-----BEGIN PUBLIC KEY-----')."""
    try:
        return private_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode("ascii")
    except Exception as e:
        raise KeySerializationError(f"Public key serialization failed: {e}") from e

def private_key_pem(private_key: rsa.RSAPrivateKey, passphrase: Optional[bytes] = None) -> bytes:
    """PKCS#8 PEM of the private key, encrypted when a passphrase is given."""
    if passphrase:
        encryption: serialization.KeySerializationEncryption = serialization.BestAvailableEncryption(passphrase)
    else:
        encryption = serialization.NoEncryption()
    try:
        return private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=encryption,
        )
    except Exception as e:
        raise KeySerializationError(f"Private key serialization failed: {e}") from e

def load_private_key_pem(data: bytes, passphrase: Optional[bytes] = None) -> rsa.RSAPrivateKey:
    """Parse a PEM private key and require it to be RSA."""
    try:
        key = serialization.load_pem_private_key(data, password=passphrase)
    except Exception as e:
        raise KeySerializationError(f"Private key parsing failed: {e}") from e
    if not isinstance(key, rsa.RSAPrivateKey):
        raise KeySerializationError("Private key is not an RSA key.")
    return key

def is_public_key_pem(pem: str) -> bool:
    """True when pem parses as a PUBLIC KEY block."""
    if not pem or not pem.startswith("-----BEGIN PUBLIC KEY-----"):
        return False
    try:
        serialization.load_pem_public_key(pem.encode("ascii"))
        return True
    except ValueError:
        return False

def oaep_encrypt(public_key: rsa.RSAPublicKey, plaintext: bytes) -> bytes:
    try:
        return public_key.encrypt(plaintext, OAEP)
    except Exception as e:
        raise CryptoError(f"OAEP encryption failed: {e}") from e

def oaep_decrypt(private_key: rsa.RSAPrivateKey, ciphertext: bytes) -> bytes:
    try:
        return private_key.decrypt(ciphertext, OAEP)
    except Exception as e:
        raise CryptoError(f"OAEP decryption failed: {e}") from e

def aesgcm_encrypt(data: bytes, key: bytes) -> bytes:
    """
    Encrypt data using AES-256-GCM.
    Returns: nonce (12 bytes) + ciphertext + tag
    """
    try:
        nonce = os.urandom(NONCE_LEN)
        return nonce + AESGCM(key).encrypt(nonce, data, None)
    except Exception as e:
        raise CryptoError(f"Encryption failed: {e}") from e


# Checksums

def canonical_json(data: Any) -> bytes:
    """Deterministic JSON: sorted keys, no whitespace, UTF-8."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str).encode("utf-8")

def config_checksum(config_data: dict) -> str:
    """
    SHA-256 hex over the canonical serialization of a config dict,
    excluding metadata.checksum itself.
    """
    data = json.loads(json.dumps(config_data, default=str))
    data.get("metadata", {}).pop("checksum", None)
    return compute_sha256(canonical_json(data))

def verify_checksum(config_data: dict, expected: str) -> bool:
    if not expected:
        return False
    return secure_compare(config_checksum(config_data), expected)

def generate_owner_key() -> Tuple[rsa.RSAPrivateKey, str]:
    """Generate the owner key pair; returns (private key, public PEM)."""
    key = generate_rsa_keypair()
    return key, public_key_pem(key)
