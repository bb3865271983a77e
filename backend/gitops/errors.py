"""
Error types raised by repository synchronization.

Every error carries the repository name plus the ref it was working on, so
a log line is actionable without the surrounding call context.
"""
import re
from typing import Optional

__all__ = [
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

# stderr fragments git prints when the remote rejected (or never received)
# credentials. With GIT_TERMINAL_PROMPT=0 a missing credential surfaces as
# "terminal prompts disabled" / "could not read Username".
_AUTH_FAILURE_PATTERNS = re.compile(
    r'authentication failed'
    r'|authentication required'
    r'|could not read username'
    r'|could not read password'
    r'|terminal prompts disabled'
    r'|http basic: access denied'
    r'|invalid username or password'
    r'|permission denied \(publickey'
    r'|the requested url returned error: 40[13]',
    re.IGNORECASE,
)

AUTH_FAILED_MESSAGE = "authentication failed"


def is_auth_failure(stderr: Optional[str]) -> bool:
    """Return True if git's stderr reports rejected or missing credentials."""
    if not stderr:
        return False
    return bool(_AUTH_FAILURE_PATTERNS.search(stderr))


class GitNotAvailableError(RuntimeError):
    """Raised when git is not installed or not accessible."""
    pass


class RepoError(RuntimeError):
    """Base class for failures on a tracked repository."""

    def __init__(self, message: str, repo_name: str):
        super().__init__(message)
        self.repo_name = repo_name


class CloneError(RepoError):
    """Repository could not be cloned or an existing clone could not be opened."""
    pass


class AuthenticationError(RepoError):
    """
    The remote rejected the configured credentials.

    git reports this as a generic "authentication required" condition even
    when credentials were sent, which reads like a missing-config problem to
    an operator. This error states plainly that authentication failed.
    """

    def __init__(self, message: str, repo_name: str, operation: str, ref: Optional[str] = None):
        super().__init__(message, repo_name)
        self.operation = operation
        self.ref = ref


class CheckoutError(RepoError):
    def __init__(self, message: str, repo_name: str, ref: str):
        super().__init__(message, repo_name)
        self.ref = ref


class PullError(RepoError):
    def __init__(self, message: str, repo_name: str, branch: str):
        super().__init__(message, repo_name)
        self.branch = branch


class FetchError(RepoError):
    def __init__(self, message: str, repo_name: str, tag: str):
        super().__init__(message, repo_name)
        self.tag = tag


class HeadResolutionError(RepoError):
    def __init__(self, message: str, repo_name: str, ref: str):
        super().__init__(message, repo_name)
        self.ref = ref
