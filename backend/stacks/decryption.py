"""
Decryption backends for secret files committed to a stack repository.

A backend takes the absolute path of an encrypted file in the working copy
and returns its plaintext. Calls are blocking; the stack runs them in a
worker thread while it holds the repository lock.
"""
import logging
import subprocess
from pathlib import Path
from typing import Optional, Protocol

from config.settings import AppConfig
from utils.encryption import decrypt_bytes

logger = logging.getLogger(__name__)

__all__ = [
    'Decryptor',
    'DecryptionError',
    'SopsDecryptor',
    'FernetDecryptor',
    'get_decryptor',
]


class DecryptionError(RuntimeError):
    """Raised when an encrypted file cannot be decrypted."""
    pass


class Decryptor(Protocol):
    def decrypt(self, path: Path) -> bytes:
        ...


class SopsDecryptor:
    """Decrypts SOPS-encrypted files with the sops CLI."""

    def __init__(self, sops_binary: Optional[str] = None, timeout: int = 60):
        self.sops_binary = sops_binary or AppConfig.SOPS_BINARY
        self.timeout = timeout

    def decrypt(self, path: Path) -> bytes:
        """
        Run `sops --decrypt` on a file.

        Raises:
            DecryptionError: If sops is missing, times out, or fails
        """
        try:
            result = subprocess.run(
                [self.sops_binary, '--decrypt', str(path)],
                capture_output=True,
                timeout=self.timeout
            )
        except FileNotFoundError:
            raise DecryptionError(f"sops binary not found: {self.sops_binary}")
        except subprocess.TimeoutExpired:
            raise DecryptionError(f"sops timed out decrypting {path.name}")

        if result.returncode != 0:
            stderr = result.stderr.decode('utf-8', errors='replace').strip() if result.stderr else ''
            raise DecryptionError(f"could not decrypt {path.name}: {stderr or 'sops failed'}")

        logger.debug(f"Decrypted {path.name} with sops")
        return result.stdout


class FernetDecryptor:
    """Decrypts files holding a Fernet token (see utils.encryption)."""

    def __init__(self, key_path: Optional[str] = None):
        self.key_path = key_path or AppConfig.ENCRYPTION_KEY_FILE

    def decrypt(self, path: Path) -> bytes:
        """
        Raises:
            DecryptionError: If the file is unreadable or the token is invalid
        """
        try:
            token = path.read_bytes()
        except OSError as e:
            raise DecryptionError(f"could not read {path.name}: {e}")

        try:
            return decrypt_bytes(token, self.key_path)
        except (ValueError, IOError) as e:
            raise DecryptionError(f"could not decrypt {path.name}: {e}")


def get_decryptor(backend: Optional[str] = None) -> Decryptor:
    """
    Build the decryption backend named by STACKSYNC_DECRYPTION_BACKEND.

    Raises:
        ValueError: If the backend name is unknown
    """
    backend = backend or AppConfig.DECRYPTION_BACKEND
    if backend == 'sops':
        return SopsDecryptor()
    if backend == 'fernet':
        return FernetDecryptor()
    raise ValueError(f"Unknown decryption backend: {backend}")
