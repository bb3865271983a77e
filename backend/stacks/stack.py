"""
Swarm stack reconciliation.

A SwarmStack resolves one compose file at a pinned branch or tag of a shared
StackRepo and produces a StackUpdate for the deployer. One call to refresh()
is one reconciliation cycle:

    1. synchronize the working copy to the stack's ref (tag wins over branch)
    2. read and parse the compose file (plus optional values file)
    3. discover SOPS-encrypted secret files
    4. rotate secrets and configs whose content changed

Steps 1-3 and the file reads of step 4 happen under the repository lock, so
every byte read belongs to the revision that was checked out. Object-store
calls happen after the lock is released.

Rotation is compute-then-commit: every object's content and digest is
computed before anything is created, and references in the compose data are
only rewritten once every versioned object exists. A failure at any point
leaves the compose data untouched.
"""
import asyncio
import hashlib
import logging
import posixpath
from collections import namedtuple
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from gitops.repo import StackRepo
from stacks.compose_parser import (
    OBJECT_KINDS,
    ComposeParser,
    ComposeShapeError,
    get_string,
    is_external,
)
from stacks.decryption import DecryptionError, Decryptor
from stacks.errors import ComposeParseError, RotationError, SecretDiscoveryError, StackFileError
from stacks.object_store import ObjectStore
from stacks.secrets import discover_secrets, resolve_object_file
from stacks.state_machine import StackState, StackStateMachine

logger = logging.getLogger(__name__)

__all__ = [
    'RefAttr',
    'RotationPlan',
    'RotationResult',
    'StackUpdate',
    'SwarmStack',
]

# Digest characters appended to a rotated object's name
OBJECT_DIGEST_LENGTH = 8

RefAttr = namedtuple('RefAttr', ['key', 'value'])


@dataclass
class RotationPlan:
    """A secret/config whose content has been read but not yet applied."""
    kind: str
    object_name: str
    versioned_name: str
    digest: str
    data: bytes = field(repr=False)
    labels: Dict[str, str] = field(default_factory=dict)


@dataclass
class RotationResult:
    """Outcome of rotating one secret/config."""
    kind: str
    object_name: str
    versioned_name: str
    digest: str
    created: bool  # False if the versioned object already existed


@dataclass
class StackUpdate:
    """Resolved stack handed to the deployer."""
    stack_name: str
    revision: str
    ref_key: str
    ref_value: str
    compose_file: str
    compose: Dict[str, Any]
    sops_files: List[str] = field(default_factory=list)
    rotations: List[RotationResult] = field(default_factory=list)
    options: Dict[str, Any] = field(default_factory=dict)


class SwarmStack:
    """
    One deployable stack tracked from git.

    Args:
        name: Stack name
        repo: Shared repository the compose file lives in
        branch: Branch to follow (ignored for resolution when tag is set)
        tag: Tag to pin to
        compose_file: Repository-relative path of the compose file
        sops_files: Repository-relative secret files to decrypt with the decryptor
        values_file: Repository-relative YAML file of ${VAR} substitutions
        discover_secrets: Also treat every file-backed secret as encrypted
        options: Deployment options passed through to the deployer untouched
        decryptor: Backend used for encrypted secret files
        object_store: Where versioned secrets/configs are created
    """

    def __init__(
        self,
        name: str,
        repo: StackRepo,
        branch: str,
        tag: str,
        compose_file: str,
        sops_files: Optional[List[str]] = None,
        values_file: Optional[str] = None,
        discover_secrets: bool = False,
        options: Optional[Dict[str, Any]] = None,
        decryptor: Optional[Decryptor] = None,
        object_store: Optional[ObjectStore] = None,
    ):
        self.name = name
        self.repo = repo
        self.branch = branch
        self.tag = tag
        self.compose_file = compose_file
        self.sops_files = list(sops_files or [])
        self.values_file = values_file
        self.discover_secrets = discover_secrets
        self.options = dict(options or {})
        self.decryptor = decryptor
        self.object_store = object_store

        self.parser = ComposeParser()
        self.state_machine = StackStateMachine()
        self.state = StackState.IDLE
        self.state_changed_at: Optional[datetime] = None
        self.last_error: Optional[str] = None

    def ref_attr(self) -> RefAttr:
        """The ref this stack resolves to: ('tag', tag) if a tag is set, else ('branch', branch)."""
        if self.tag:
            return RefAttr('tag', self.tag)
        return RefAttr('branch', self.branch)

    def _label(self) -> str:
        key, value = self.ref_attr()
        return f"stack={self.name} {key}={value}"

    def _snapshot(self):
        if self.tag:
            return self.repo.tag_snapshot(self.tag)
        return self.repo.branch_snapshot(self.branch)

    async def refresh(self) -> StackUpdate:
        """
        Run one reconciliation cycle.

        Returns:
            StackUpdate with the revision, the compose data (object
            references already pointing at rotated objects) and rotation results

        Raises:
            RepoError: Synchronization failed (see gitops.errors)
            StackFileError: Compose or values file missing
            ComposeParseError: Compose or values file malformed
            SecretDiscoveryError: Secrets section malformed
            RotationError: A secret/config could not be rotated
        """
        sm = self.state_machine
        sm.reset(self)
        ref_key, ref_value = self.ref_attr()

        try:
            sm.transition(self, StackState.SYNCHRONIZING)
            async with self._snapshot() as revision:
                logger.debug(f"[{self._label()}] synchronized to revision {revision}")

                sm.transition(self, StackState.PARSING)
                compose = self._read_compose()

                sm.transition(self, StackState.DISCOVERING_SECRETS)
                sops_files = self._collect_sops_files(compose)

                sm.transition(self, StackState.ROTATING)
                plans = []
                for kind in OBJECT_KINDS:
                    plans.extend(
                        await self._plan_rotation(self._get_objects(compose, kind), kind, sops_files)
                    )

            rotations = await self._commit_rotation(compose, plans)
            sm.transition(self, StackState.RESOLVED)
        except Exception as e:
            sm.fail(self, e)
            raise

        logger.info(f"[{self._label()}] resolved at revision {revision}")
        return StackUpdate(
            stack_name=self.name,
            revision=revision,
            ref_key=ref_key,
            ref_value=ref_value,
            compose_file=self.compose_file,
            compose=compose,
            sops_files=sops_files,
            rotations=rotations,
            options=dict(self.options),
        )

    def parse_stack_string(self, content, variables: Optional[Dict[str, str]] = None) -> dict:
        """
        Parse compose text into a dict.

        Raises:
            ComposeParseError: With the stack name attached
        """
        try:
            return self.parser.parse(content, variables)
        except ComposeParseError as e:
            raise ComposeParseError(
                f"could not parse compose file {self.compose_file} of stack {self.name}: {e}",
                self.name
            ) from e

    def _read_compose(self) -> dict:
        content = self.repo.read_bytes(self.compose_file)
        if content is None:
            raise StackFileError(
                f"could not read compose file {self.compose_file} of stack {self.name}",
                self.name
            )

        variables = None
        if self.values_file:
            raw_values = self.repo.read_bytes(self.values_file)
            if raw_values is None:
                raise StackFileError(
                    f"could not read values file {self.values_file} of stack {self.name}",
                    self.name
                )
            try:
                variables = self.parser.parse_values(raw_values)
            except ComposeParseError as e:
                raise ComposeParseError(
                    f"could not parse values file {self.values_file} of stack {self.name}: {e}",
                    self.name
                ) from e

        return self.parse_stack_string(content, variables)

    def _configured_sops_files(self) -> List[str]:
        return [posixpath.normpath(path) for path in self.sops_files]

    def _collect_sops_files(self, compose: dict) -> List[str]:
        """
        Configured SOPS files plus, if enabled, every discovered secret file.

        Raises:
            SecretDiscoveryError: With the stack name attached
        """
        files = self._configured_sops_files()
        if self.discover_secrets:
            try:
                discovered = discover_secrets(compose, self.compose_file)
            except SecretDiscoveryError as e:
                raise SecretDiscoveryError(f"stack {self.name}: {e}", self.name) from e
            for path in discovered:
                if path not in files:
                    files.append(path)
        return files

    def _get_objects(self, compose: dict, kind: str) -> dict:
        try:
            return self.parser.get_objects(compose, kind)
        except ComposeShapeError as e:
            raise RotationError(
                f"could not rotate {kind} of stack {self.name}: {e}",
                self.name,
                kind=kind
            )

    async def rotate_objects(self, objects: Dict[str, Any], kind: str) -> List[RotationResult]:
        """
        Rotate the secrets or configs in `objects`.

        The working copy is synchronized to the stack's ref first and object
        files are read under the same lock hold. External entries are
        skipped entirely. Other file-backed entries are read (secrets in the
        stack's SOPS set are decrypted), versioned by content digest,
        created in the object store if missing, and then rewritten in place
        to reference the versioned object.

        Args:
            objects: The compose file's top-level secrets or configs mapping
            kind: 'secrets' or 'configs'

        Returns:
            One RotationResult per rotated entry

        Raises:
            RepoError: Synchronization failed
            SecretDiscoveryError: Discovery enabled and a secret entry is malformed
            RotationError: Unknown kind, objects not a mapping, or any entry
                           failed; no entry is rewritten in that case
        """
        if kind not in OBJECT_KINDS:
            raise RotationError(
                f"unknown object kind {kind} in stack {self.name}",
                self.name,
                kind=kind
            )
        objects = self._get_objects({kind: objects}, kind)

        if kind == 'secrets':
            sops_files = self._collect_sops_files({'secrets': objects})
        else:
            sops_files = self._configured_sops_files()

        async with self._snapshot() as revision:
            logger.debug(f"[{self._label()}] rotating {kind} at revision {revision}")
            plans = await self._plan_rotation(objects, kind, sops_files)
        return await self._commit_rotation({kind: objects}, plans)

    async def _plan_rotation(
        self,
        objects: Dict[str, Any],
        kind: str,
        sops_files: List[str]
    ) -> List[RotationPlan]:
        """Read and digest every rotatable entry. Caller holds the repo lock."""
        if kind not in OBJECT_KINDS:
            raise RotationError(
                f"unknown object kind {kind} in stack {self.name}",
                self.name,
                kind=kind
            )

        plans = []
        for object_name, entry in objects.items():
            if is_external(entry):
                logger.debug(f"[{self._label()}] skipping external {kind[:-1]} {object_name}")
                continue
            if entry is None:
                continue
            if not isinstance(entry, dict):
                raise RotationError(
                    f"could not rotate {kind[:-1]} {object_name} of stack {self.name}: entry must be a mapping",
                    self.name,
                    object_name=object_name,
                    kind=kind
                )
            try:
                file_path = get_string(entry, 'file')
            except ComposeShapeError as e:
                raise RotationError(
                    f"could not rotate {kind[:-1]} {object_name} of stack {self.name}: {e}",
                    self.name,
                    object_name=object_name,
                    kind=kind
                )
            if not file_path:
                # environment/content backed objects are left to the deployer
                continue

            repo_path = resolve_object_file(self.compose_file, file_path)
            encrypted = kind == 'secrets' and repo_path in sops_files
            data = await self._read_object(repo_path, object_name, kind, encrypted)

            digest = hashlib.sha256(data).hexdigest()
            plans.append(RotationPlan(
                kind=kind,
                object_name=object_name,
                versioned_name=f"{self.name}_{object_name}-{digest[:OBJECT_DIGEST_LENGTH]}",
                digest=digest,
                data=data,
                labels={
                    'com.docker.stack.namespace': self.name,
                    'io.stacksync.object': object_name,
                    'io.stacksync.digest': digest,
                },
            ))
        return plans

    async def _read_object(self, repo_path: str, object_name: str, kind: str, encrypted: bool) -> bytes:
        def fail(reason: str) -> RotationError:
            return RotationError(
                f"could not rotate {kind[:-1]} {object_name} of stack {self.name}: {reason}",
                self.name,
                object_name=object_name,
                kind=kind
            )

        # Also rejects traversal and symlinks before the decryptor sees the path
        data = self.repo.read_bytes(repo_path)
        if data is None:
            raise fail(f"could not read {repo_path}")
        if not encrypted:
            return data

        if self.decryptor is None:
            raise fail("no decryption backend configured")
        try:
            return await asyncio.to_thread(self.decryptor.decrypt, self.repo.get_file_path(repo_path))
        except DecryptionError as e:
            raise fail(str(e)) from e

    async def _commit_rotation(self, compose: Dict[str, Any], plans: List[RotationPlan]) -> List[RotationResult]:
        """Create missing versioned objects, then repoint every reference at once."""
        if not plans:
            return []

        if self.object_store is None:
            raise RotationError(
                f"could not rotate objects of stack {self.name}: no object store configured",
                self.name
            )

        results = []
        for plan in plans:
            try:
                exists = await asyncio.to_thread(self.object_store.exists, plan.kind, plan.versioned_name)
                if not exists:
                    await asyncio.to_thread(
                        self.object_store.create,
                        plan.kind,
                        plan.versioned_name,
                        plan.data,
                        plan.labels
                    )
            except Exception as e:
                raise RotationError(
                    f"could not create {plan.kind[:-1]} {plan.versioned_name} of stack {self.name}: {e}",
                    self.name,
                    object_name=plan.object_name,
                    kind=plan.kind
                ) from e

            if not exists:
                logger.info(f"[{self._label()}] rotated {plan.kind[:-1]} {plan.object_name} -> {plan.versioned_name}")
            results.append(RotationResult(
                kind=plan.kind,
                object_name=plan.object_name,
                versioned_name=plan.versioned_name,
                digest=plan.digest,
                created=not exists,
            ))

        for plan in plans:
            compose[plan.kind][plan.object_name] = {'name': plan.versioned_name, 'external': True}

        return results
