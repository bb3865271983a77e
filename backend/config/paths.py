"""
Centralized path configuration for StackSync
Ensures all modules use consistent, volume-mounted paths
"""

import os

# Base paths - these MUST use absolute paths to the volume mount
# The /app/data directory is mounted as a volume in Docker
DATA_DIR = os.getenv('STACKSYNC_DATA_DIR', '/app/data')

# For development/testing outside Docker
if not os.path.exists('/app') and 'STACKSYNC_DATA_DIR' not in os.environ:
    # Running locally, use relative paths
    DATA_DIR = './data'

# Working copies of tracked repositories, one directory per repo name
REPOS_DIR = os.getenv('STACKSYNC_REPOS_DIR', os.path.join(DATA_DIR, 'repos'))

# Repositories and stacks definition
CONFIG_FILE = os.getenv('STACKSYNC_CONFIG_FILE', os.path.join(DATA_DIR, 'stacks.yaml'))

# Fernet key used by the fernet decryption backend
ENCRYPTION_KEY_FILE = os.getenv('STACKSYNC_ENCRYPTION_KEY_FILE', os.path.join(DATA_DIR, 'encryption.key'))

LOG_DIR = os.path.join(DATA_DIR, 'logs')
