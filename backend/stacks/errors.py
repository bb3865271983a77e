"""
Error types raised while reconciling a stack.

A failure aborts the current cycle of one stack only; the coordinator
records it and the next scheduled cycle starts over.
"""
from typing import Optional

__all__ = [
    'StackError',
    'StackFileError',
    'ComposeParseError',
    'SecretDiscoveryError',
    'RotationError',
]


class StackError(RuntimeError):
    """Base class for stack reconciliation failures."""

    def __init__(self, message: str, stack_name: Optional[str] = None):
        super().__init__(message)
        self.stack_name = stack_name


class StackFileError(StackError):
    """Compose or values file missing from the working copy."""
    pass


class ComposeParseError(StackError):
    """Raised when compose file cannot be parsed"""
    pass


class SecretDiscoveryError(StackError):
    """The secrets section of the compose file has an unexpected shape."""
    pass


class RotationError(StackError):
    """Rotating a secret or config failed; nothing was applied for the stack."""

    def __init__(
        self,
        message: str,
        stack_name: Optional[str] = None,
        object_name: Optional[str] = None,
        kind: Optional[str] = None
    ):
        super().__init__(message, stack_name)
        self.object_name = object_name
        self.kind = kind
