"""
Encryption utilities for secret files committed to git.

Uses Fernet symmetric encryption. A secret file encrypted this way holds a
single Fernet token; the key lives outside the repository in
STACKSYNC_ENCRYPTION_KEY_FILE and is generated on first use.

Security Note:
    Anyone holding both the repository and the key file can recover every
    secret. Keep the key on the deployment host only.
"""

import os
import logging
from typing import Optional
from cryptography.fernet import Fernet, InvalidToken

from config.paths import ENCRYPTION_KEY_FILE

logger = logging.getLogger(__name__)


def _get_or_create_key(key_path: Optional[str] = None) -> bytes:
    """
    Load existing encryption key or generate a new one.

    Args:
        key_path: Key file location, defaults to STACKSYNC_ENCRYPTION_KEY_FILE

    Returns:
        bytes: Fernet encryption key

    Raises:
        IOError: If key file cannot be read or created
    """
    key_path = key_path or ENCRYPTION_KEY_FILE

    if os.path.exists(key_path):
        try:
            with open(key_path, 'rb') as f:
                key = f.read().strip()
                logger.debug(f"Loaded encryption key from {key_path}")
                return key
        except OSError as e:
            logger.error(f"Failed to read encryption key from {key_path}: {e}")
            raise IOError(f"Cannot read encryption key: {e}")

    try:
        key = Fernet.generate_key()

        key_dir = os.path.dirname(key_path)
        if key_dir:
            os.makedirs(key_dir, exist_ok=True)

        # Write key with restrictive permissions
        with open(key_path, 'wb') as f:
            f.write(key)

        # Set file permissions to 600 (owner read/write only)
        os.chmod(key_path, 0o600)

        logger.info(f"Generated new encryption key at {key_path}")
        return key

    except OSError as e:
        logger.error(f"Failed to generate or save encryption key: {e}")
        raise IOError(f"Cannot create encryption key: {e}")


def encrypt_bytes(plaintext: bytes, key_path: Optional[str] = None) -> bytes:
    """
    Encrypt secret content into a Fernet token.

    Used by operators to prepare secret files before committing them.

    Args:
        plaintext: Secret content
        key_path: Optional key file override

    Returns:
        bytes: Fernet token (URL-safe base64)

    Raises:
        ValueError: If plaintext is empty
        IOError: If encryption key cannot be loaded
    """
    if not plaintext:
        raise ValueError("Cannot encrypt empty content")

    fernet = Fernet(_get_or_create_key(key_path))
    token = fernet.encrypt(plaintext)
    logger.debug("Content encrypted successfully")
    return token


def decrypt_bytes(token: bytes, key_path: Optional[str] = None) -> bytes:
    """
    Decrypt a Fernet token back into secret content.

    Args:
        token: Fernet token as read from the secret file
        key_path: Optional key file override

    Returns:
        bytes: Decrypted content

    Raises:
        ValueError: If the token is empty or cannot be decrypted with the key
        IOError: If encryption key cannot be loaded
    """
    token = token.strip() if token else token
    if not token:
        raise ValueError("Cannot decrypt empty content")

    fernet = Fernet(_get_or_create_key(key_path))
    try:
        plaintext = fernet.decrypt(token)
    except InvalidToken:
        logger.error("Failed to decrypt content: invalid token (key mismatch or corrupted data)")
        raise ValueError("Cannot decrypt content: invalid encryption token")

    logger.debug("Content decrypted successfully")
    return plaintext
