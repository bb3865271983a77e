"""
Hands reconciled stacks to the deployer.

The coordinator owns the only state that survives a cycle: the last
revision each stack was deployed at. A stack whose revision did not move is
not handed to the deployer again. Scheduling (timer, timeouts, retries)
belongs to the caller.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol

from stacks.stack import StackUpdate, SwarmStack

logger = logging.getLogger(__name__)


class Deployer(Protocol):
    async def deploy(self, update: StackUpdate) -> None:
        ...


@dataclass
class StackStatus:
    """Last known outcome for one stack."""
    ref_key: str
    ref_value: str
    repo_url: str
    revision: Optional[str] = None
    error: Optional[str] = None
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "ref_key": self.ref_key,
            "ref_value": self.ref_value,
            "repo_url": self.repo_url,
            "revision": self.revision,
            "error": self.error,
            "updated_at": self.updated_at.isoformat(),
        }


class StackCoordinator:
    """Runs reconciliation cycles for a set of stacks."""

    def __init__(self, stacks: List[SwarmStack], deployer: Deployer):
        self.stacks = {stack.name: stack for stack in stacks}
        self.deployer = deployer
        self._deployed_revisions: Dict[str, str] = {}
        self._status: Dict[str, StackStatus] = {}

    async def reconcile(self, stack: SwarmStack) -> Optional[StackUpdate]:
        """
        Run one cycle for a stack.

        Returns:
            The update handed to the deployer, or None if the stack failed or
            its revision has not changed since the last successful deploy
        """
        ref_key, ref_value = stack.ref_attr()
        status = StackStatus(ref_key=ref_key, ref_value=ref_value, repo_url=stack.repo.url)
        self._status[stack.name] = status

        try:
            update = await stack.refresh()
            status.revision = update.revision

            if self._deployed_revisions.get(stack.name) == update.revision:
                logger.debug(f"Stack {stack.name} unchanged at revision {update.revision}")
                return None

            logger.info(f"Deploying stack {stack.name} ({ref_key}={ref_value}) at revision {update.revision}")
            await self.deployer.deploy(update)
            self._deployed_revisions[stack.name] = update.revision
            return update
        except Exception as e:
            # One broken stack must never stop the others
            status.error = str(e)
            logger.error(f"Failed to reconcile stack {stack.name} ({ref_key}={ref_value}): {e}")
            return None
        finally:
            status.updated_at = datetime.now(timezone.utc)

    async def reconcile_all(self) -> Dict[str, Optional[StackUpdate]]:
        """
        Run one cycle for every stack concurrently.

        Stacks sharing a repository serialize on its lock; others run in parallel.
        """
        names = list(self.stacks)
        results = await asyncio.gather(*(self.reconcile(self.stacks[name]) for name in names))
        return dict(zip(names, results))

    def get_status(self) -> Dict[str, dict]:
        """Snapshot of the last cycle's outcome per stack."""
        return {name: status.to_dict() for name, status in self._status.items()}
