"""
Stack reconciliation for git-tracked swarm stacks.

This module provides:
- SwarmStack: Resolves a compose file at a branch or tag, discovers and rotates secrets
- StackCoordinator: Runs cycles and hands changed stacks to a Deployer
- discover_secrets(): Secret files referenced by a compose file
- Decryption backends (sops, fernet) and the docker-backed object store
- Loader for the stacks configuration file
"""
from stacks.errors import (
    StackError,
    StackFileError,
    ComposeParseError,
    SecretDiscoveryError,
    RotationError,
)
from stacks.compose_parser import ComposeParser
from stacks.secrets import discover_secrets
from stacks.decryption import (
    DecryptionError,
    SopsDecryptor,
    FernetDecryptor,
    get_decryptor,
)
from stacks.object_store import DockerObjectStore
from stacks.state_machine import StackState, StackStateMachine
from stacks.stack import (
    RefAttr,
    RotationResult,
    StackUpdate,
    SwarmStack,
)
from stacks.coordinator import StackCoordinator, StackStatus
from stacks.loader import load_config, init_repos, init_stacks

__all__ = [
    # stack exports
    'SwarmStack',
    'RefAttr',
    'RotationResult',
    'StackUpdate',
    'StackState',
    'StackStateMachine',
    'StackCoordinator',
    'StackStatus',
    # parsing and discovery
    'ComposeParser',
    'discover_secrets',
    # collaborators
    'DecryptionError',
    'SopsDecryptor',
    'FernetDecryptor',
    'get_decryptor',
    'DockerObjectStore',
    # loader
    'load_config',
    'init_repos',
    'init_stacks',
    # errors
    'StackError',
    'StackFileError',
    'ComposeParseError',
    'SecretDiscoveryError',
    'RotationError',
]
