"""
Configuration Management for StackSync
Centralizes all environment-based configuration and settings
"""

import os
import logging
from logging.handlers import RotatingFileHandler

VALID_DECRYPTION_BACKENDS = ('sops', 'fernet')
VALID_LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


def setup_logging(level: str = None):
    """Configure application logging with rotation"""
    from .paths import LOG_DIR

    level = (level or AppConfig.LOG_LEVEL).upper()

    # Create logs directory with secure permissions
    os.makedirs(LOG_DIR, mode=0o700, exist_ok=True)

    root_logger = logging.getLogger()

    # Close and clear any existing handlers to ensure our logging
    # configuration is used and prevent file descriptor leaks
    for handler in root_logger.handlers[:]:  # Copy list to avoid modification during iteration
        handler.close()
        root_logger.removeHandler(handler)

    root_logger.setLevel(level)

    # Console handler for stdout
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    console_handler.setFormatter(console_formatter)

    # File handler with rotation for application logs
    # Max 10MB per file, keep 14 backups
    file_handler = RotatingFileHandler(
        os.path.join(LOG_DIR, 'stacksync.log'),
        maxBytes=10*1024*1024,  # 10MB
        backupCount=14,  # Keep 14 old files
        encoding='utf-8'
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(console_formatter)

    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)


class AppConfig:
    """Main application configuration"""

    from .paths import (
        REPOS_DIR as DEFAULT_REPOS_DIR,
        CONFIG_FILE as DEFAULT_CONFIG_FILE,
        ENCRYPTION_KEY_FILE as DEFAULT_ENCRYPTION_KEY_FILE,
    )

    # Files and directories
    REPOS_DIR = DEFAULT_REPOS_DIR
    CONFIG_FILE = DEFAULT_CONFIG_FILE

    # Logging
    LOG_LEVEL = os.getenv('STACKSYNC_LOG_LEVEL', 'INFO')

    # Seconds between reconciliation cycles (consumed by the scheduler)
    UPDATE_INTERVAL = int(os.getenv('STACKSYNC_UPDATE_INTERVAL', 120))

    # Secret decryption
    DECRYPTION_BACKEND = os.getenv('STACKSYNC_DECRYPTION_BACKEND', 'sops')
    SOPS_BINARY = os.getenv('STACKSYNC_SOPS_BINARY', 'sops')
    ENCRYPTION_KEY_FILE = DEFAULT_ENCRYPTION_KEY_FILE

    # Git subprocess timeouts (seconds)
    GIT_CLONE_TIMEOUT = int(os.getenv('STACKSYNC_GIT_CLONE_TIMEOUT', 600))
    GIT_TIMEOUT = int(os.getenv('STACKSYNC_GIT_TIMEOUT', 300))

    @classmethod
    def validate(cls):
        """Validate configuration"""
        if cls.UPDATE_INTERVAL < 1:
            raise ValueError(f"Update interval must be at least 1 second: {cls.UPDATE_INTERVAL}")

        if cls.DECRYPTION_BACKEND not in VALID_DECRYPTION_BACKENDS:
            raise ValueError(
                f"Invalid decryption backend: {cls.DECRYPTION_BACKEND} "
                f"(expected one of {', '.join(VALID_DECRYPTION_BACKENDS)})"
            )

        if cls.LOG_LEVEL.upper() not in VALID_LOG_LEVELS:
            raise ValueError(f"Invalid log level: {cls.LOG_LEVEL}")

        if cls.GIT_TIMEOUT < 1 or cls.GIT_CLONE_TIMEOUT < 1:
            raise ValueError("Git timeouts must be at least 1 second")

        return True
