"""
Builds repositories and stacks from the stacks file.

Each repository is cloned (or reopened) exactly once per process and shared
by all stacks that reference it.
"""
import asyncio
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import ValidationError

from config.settings import AppConfig
from gitops.errors import GitNotAvailableError, RepoError
from gitops.repo import StackRepo
from models.config_models import StacksConfig
from stacks.decryption import Decryptor
from stacks.object_store import ObjectStore
from stacks.stack import SwarmStack

logger = logging.getLogger(__name__)


def load_config(path: Optional[str] = None) -> StacksConfig:
    """
    Read and validate the stacks file.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is not valid YAML or fails validation
    """
    path = path or AppConfig.CONFIG_FILE
    with open(path, 'r', encoding='utf-8') as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML syntax in {path}: {e}")

    try:
        return StacksConfig.model_validate(data or {})
    except ValidationError as e:
        raise ValueError(f"Invalid stacks config {path}: {e}")


def resolve_repo_paths(config: StacksConfig, repos_dir: Optional[str] = None) -> Dict[str, Path]:
    """
    Working copy path per repository.

    Raises:
        ValueError: If two repositories would share a working copy
    """
    repos_dir = repos_dir or AppConfig.REPOS_DIR
    paths = {}
    seen = {}
    for name, repo in config.repos.items():
        path = Path(repo.path) if repo.path else Path(repos_dir) / name
        key = os.path.normpath(str(path.absolute()))
        if key in seen:
            raise ValueError(f"Repos {seen[key]} and {name} use the same path {path}")
        seen[key] = name
        paths[name] = path
    return paths


async def init_repos(config: StacksConfig, repos_dir: Optional[str] = None) -> Dict[str, StackRepo]:
    """
    Clone or open every configured repository.

    A repository that fails to initialize is logged and left out; stacks
    in other repositories are unaffected.

    Raises:
        GitNotAvailableError: If git is not installed
        ValueError: If two repositories share a path
    """
    repos_dir = repos_dir or AppConfig.REPOS_DIR
    paths = resolve_repo_paths(config, repos_dir)
    os.makedirs(repos_dir, mode=0o700, exist_ok=True)
    names = list(config.repos)

    results = await asyncio.gather(
        *(
            StackRepo.create(name, str(paths[name]), config.repos[name].url, config.repos[name].to_credential())
            for name in names
        ),
        return_exceptions=True
    )

    repos = {}
    for name, result in zip(names, results):
        if isinstance(result, GitNotAvailableError):
            raise result
        if isinstance(result, RepoError):
            logger.error(f"Failed to initialize repo {name}: {result}")
            continue
        if isinstance(result, BaseException):
            raise result
        repos[name] = result
    return repos


def init_stacks(
    config: StacksConfig,
    repos: Dict[str, StackRepo],
    decryptor: Optional[Decryptor] = None,
    object_store: Optional[ObjectStore] = None
) -> List[SwarmStack]:
    """Create a SwarmStack per configured stack whose repository is available."""
    stacks = []
    for name, stack_config in config.stacks.items():
        repo = repos.get(stack_config.repo)
        if repo is None:
            logger.error(f"Skipping stack {name}: repo {stack_config.repo} is not available")
            continue
        stacks.append(SwarmStack(
            name=name,
            repo=repo,
            branch=stack_config.branch or '',
            tag=stack_config.tag or '',
            compose_file=stack_config.compose_file,
            sops_files=stack_config.sops_files,
            values_file=stack_config.values_file,
            discover_secrets=stack_config.discover_secrets,
            options=stack_config.options,
            decryptor=decryptor,
            object_store=object_store,
        ))
    return stacks
