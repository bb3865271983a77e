"""
Reconciliation cycle state machine for stacks.

State Flow (one cycle):
    idle -> synchronizing -> parsing -> discovering_secrets -> rotating -> resolved
    any non-terminal state -> failed

`resolved` and `failed` end the cycle. The next cycle calls reset(), which
puts the stack back to idle; nothing else carries over between cycles.

Usage:
    sm = StackStateMachine()
    sm.reset(stack)
    sm.transition(stack, StackState.SYNCHRONIZING)
    ...
    sm.fail(stack, error)
"""

from datetime import datetime, timezone
from enum import Enum
import logging

logger = logging.getLogger(__name__)


class StackState(str, Enum):
    """Stages of a stack reconciliation cycle."""
    IDLE = "idle"
    SYNCHRONIZING = "synchronizing"
    PARSING = "parsing"
    DISCOVERING_SECRETS = "discovering_secrets"
    ROTATING = "rotating"
    RESOLVED = "resolved"
    FAILED = "failed"


class StackStateMachine:
    """
    Enforces valid cycle transitions on a stack.

    The stack object needs `name`, `state`, `state_changed_at` and
    `last_error` attributes.
    """

    VALID_TRANSITIONS = {
        StackState.IDLE: [StackState.SYNCHRONIZING, StackState.FAILED],
        StackState.SYNCHRONIZING: [StackState.PARSING, StackState.FAILED],
        StackState.PARSING: [StackState.DISCOVERING_SECRETS, StackState.FAILED],
        StackState.DISCOVERING_SECRETS: [StackState.ROTATING, StackState.FAILED],
        StackState.ROTATING: [StackState.RESOLVED, StackState.FAILED],
        StackState.RESOLVED: [],  # Terminal for the cycle
        StackState.FAILED: [],  # Terminal for the cycle
    }

    def can_transition(self, from_state: StackState, to_state: StackState) -> bool:
        """
        Check if a state transition is valid.

        Examples:
            >>> sm = StackStateMachine()
            >>> sm.can_transition(StackState.IDLE, StackState.SYNCHRONIZING)
            True
            >>> sm.can_transition(StackState.IDLE, StackState.RESOLVED)
            False
        """
        if from_state not in self.VALID_TRANSITIONS:
            logger.warning(f"Invalid from_state: {from_state}")
            return False
        return to_state in self.VALID_TRANSITIONS[from_state]

    def transition(self, stack, to_state: StackState) -> bool:
        """
        Move a stack to a new state with validation.

        Returns:
            True if transition succeeded, False if invalid
        """
        from_state = stack.state

        if not self.can_transition(from_state, to_state):
            logger.error(
                f"Invalid state transition for stack {stack.name}: "
                f"{from_state.value} -> {to_state.value}"
            )
            return False

        stack.state = to_state
        stack.state_changed_at = datetime.now(timezone.utc)
        logger.debug(f"Stack {stack.name} transitioned: {from_state.value} -> {to_state.value}")
        return True

    def fail(self, stack, error: Exception) -> bool:
        """Move a stack to failed and remember why."""
        stack.last_error = str(error)
        return self.transition(stack, StackState.FAILED)

    def reset(self, stack) -> None:
        """Start a new cycle from idle."""
        stack.state = StackState.IDLE
        stack.state_changed_at = datetime.now(timezone.utc)
        stack.last_error = None
