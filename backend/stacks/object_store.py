"""
Access to swarm secrets and configs.

Swarm objects are immutable: a changed secret is never updated in place, a
new object with a content-derived name supersedes it. The store only needs
to answer "does this name exist" and "create this name".
"""
import logging
from typing import Dict, Optional, Protocol

import docker
from docker import DockerClient

logger = logging.getLogger(__name__)

__all__ = [
    'ObjectStore',
    'DockerObjectStore',
]


class ObjectStore(Protocol):
    def exists(self, kind: str, name: str) -> bool:
        ...

    def create(self, kind: str, name: str, data: bytes, labels: Dict[str, str]) -> str:
        ...


class DockerObjectStore:
    """ObjectStore backed by the Docker Engine API of a swarm manager."""

    def __init__(self, client: Optional[DockerClient] = None):
        self._client = client

    @property
    def client(self) -> DockerClient:
        # Connect lazily so constructing stacks never needs a daemon
        if self._client is None:
            self._client = docker.from_env()
        return self._client

    def _collection(self, kind: str):
        if kind == 'secrets':
            return self.client.secrets
        if kind == 'configs':
            return self.client.configs
        raise ValueError(f"Unknown object kind: {kind}")

    def exists(self, kind: str, name: str) -> bool:
        """
        Check whether a secret/config with exactly this name exists.

        The API's name filter matches prefixes, so results are compared
        against the full name.
        """
        objects = self._collection(kind).list(filters={'name': name})
        return any(obj.name == name for obj in objects)

    def create(self, kind: str, name: str, data: bytes, labels: Dict[str, str]) -> str:
        """
        Create a secret/config.

        Returns:
            ID of the created object
        """
        obj = self._collection(kind).create(name=name, data=data, labels=labels)
        logger.info(f"Created {kind[:-1]} {name}")
        return obj.id
