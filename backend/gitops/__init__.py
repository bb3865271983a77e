"""
Git repository synchronization for tracked stacks.

This module provides:
- StackRepo: One shared working copy per repository, guarded by a lock
- GitCredential: HTTPS basic auth or SSH key for a repository
- Error types for clone, authentication, checkout, pull, fetch and HEAD failures
"""
from gitops.errors import (
    GitNotAvailableError,
    RepoError,
    CloneError,
    AuthenticationError,
    CheckoutError,
    PullError,
    FetchError,
    HeadResolutionError,
    is_auth_failure,
)
from gitops.repo import (
    GitCredential,
    StackRepo,
    REVISION_LENGTH,
)

__all__ = [
    # repo exports
    'GitCredential',
    'StackRepo',
    'REVISION_LENGTH',
    # errors exports
    'GitNotAvailableError',
    'RepoError',
    'CloneError',
    'AuthenticationError',
    'CheckoutError',
    'PullError',
    'FetchError',
    'HeadResolutionError',
    'is_auth_failure',
]
