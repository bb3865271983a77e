"""
Configuration models for tracked repositories and stacks.

Pydantic models for the stacks file (STACKSYNC_CONFIG_FILE):

    repos:
      infra:
        url: https://git.example.com/org/infra.git
        auth_type: https
        username: deploy
        password: <token>
    stacks:
      web:
        repo: infra
        branch: main
        compose_file: stacks/web/docker-compose.yaml
        discover_secrets: true

Security:
    - URL validation prevents injection into git arguments
    - Ref names validated so they can never be read as git options
    - Compose and secret paths must stay inside the repository
"""

import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from gitops.repo import GitCredential


# =============================================================================
# Shared Validation Helpers
# =============================================================================

_VALID_URL_PREFIXES = ('https://', 'http://', 'git@', 'ssh://', 'file://')
_DANGEROUS_URL_CHARS = (';', '|', '&', '$', '`', '\n', '\r')
_STACK_NAME_PATTERN = re.compile(r'^[a-zA-Z0-9][a-zA-Z0-9_.-]*$')


def _validate_name(v: str) -> str:
    """Validate repo/stack names (also used as directory and object name prefixes)."""
    if not v:
        raise ValueError('Name cannot be empty')
    if not _STACK_NAME_PATTERN.match(v):
        raise ValueError(f"Invalid name '{v}': use letters, digits, '_', '.', '-'")
    return v


def _validate_ssh_key(v: Optional[str]) -> Optional[str]:
    """Validate SSH private key format (PEM)."""
    if v is None:
        return None
    v = v.strip()
    if not v:
        return None
    if not v.startswith('-----BEGIN') or '-----END' not in v:
        raise ValueError('SSH private key must be in PEM format')
    return v + '\n'


def _validate_url(v: str) -> str:
    """Validate git repository URL."""
    v = v.strip()
    if not v:
        raise ValueError('Repository URL cannot be empty')
    if not any(v.startswith(prefix) for prefix in _VALID_URL_PREFIXES):
        raise ValueError('Repository URL must start with https://, http://, git@, ssh:// or file://')
    if ' ' in v:
        raise ValueError('Repository URL cannot contain spaces')
    if any(c in v for c in _DANGEROUS_URL_CHARS):
        raise ValueError('Repository URL contains invalid characters')
    return v


def _validate_ref(v: Optional[str], kind: str) -> Optional[str]:
    """Validate git branch or tag name. Empty means unset."""
    if v is None:
        return None
    v = v.strip()
    if not v:
        return None
    if v.startswith('-') or v.startswith('.'):
        raise ValueError(f'{kind} name cannot start with - or .')
    if '..' in v:
        raise ValueError(f'{kind} name cannot contain ..')
    if v.endswith('.lock') or v.endswith('/'):
        raise ValueError(f'{kind} name cannot end with .lock or /')
    if not re.match(r'^[a-zA-Z0-9/_.+-]+$', v):
        raise ValueError(f'{kind} name contains invalid characters')
    return v


def _validate_repo_path(v: str, what: str) -> str:
    """Validate a repository-relative file path."""
    v = v.strip()
    if not v:
        raise ValueError(f'{what} cannot be empty')
    if v.startswith('/') or '\\' in v:
        raise ValueError(f'{what} must be a relative POSIX path')
    if '..' in v.split('/'):
        raise ValueError(f'{what} cannot contain ..')
    return v


# =============================================================================
# Repository and Stack Models
# =============================================================================


class RepoConfig(BaseModel):
    """A tracked git repository."""
    url: str = Field(..., min_length=1, max_length=500)
    auth_type: str = Field(default='none', pattern='^(none|https|ssh)$')
    username: Optional[str] = Field(None, max_length=200)
    password: Optional[str] = Field(None, max_length=500)
    ssh_private_key: Optional[str] = Field(None, max_length=10000)
    # Working copy location, defaults to <STACKSYNC_REPOS_DIR>/<name>
    path: Optional[str] = None

    @field_validator('url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        return _validate_url(v)

    @field_validator('ssh_private_key')
    @classmethod
    def validate_ssh_key(cls, v: Optional[str]) -> Optional[str]:
        return _validate_ssh_key(v)

    @model_validator(mode='after')
    def validate_auth(self) -> 'RepoConfig':
        if self.auth_type == 'https' and not (self.username and self.password):
            raise ValueError('https auth requires username and password')
        if self.auth_type == 'ssh' and not self.ssh_private_key:
            raise ValueError('ssh auth requires ssh_private_key')
        return self

    def to_credential(self) -> Optional[GitCredential]:
        """Credential for StackRepo, None for anonymous access."""
        if self.auth_type == 'none':
            return None
        return GitCredential(
            auth_type=self.auth_type,
            username=self.username,
            password=self.password,
            ssh_private_key=self.ssh_private_key,
        )


class StackConfig(BaseModel):
    """
    A stack tracked at a branch or tag.

    If both branch and tag are set the tag is used; the branch is kept
    for inspection only.
    """
    repo: str = Field(..., min_length=1, max_length=100)
    branch: Optional[str] = Field(None, max_length=200)
    tag: Optional[str] = Field(None, max_length=200)
    compose_file: str = Field(..., min_length=1, max_length=500)
    sops_files: List[str] = Field(default_factory=list)
    discover_secrets: bool = False
    values_file: Optional[str] = Field(None, max_length=500)
    # Passed through to the deployer (pin_image_digests, name_prefix, ...)
    options: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('branch')
    @classmethod
    def validate_branch(cls, v: Optional[str]) -> Optional[str]:
        return _validate_ref(v, 'Branch')

    @field_validator('tag')
    @classmethod
    def validate_tag(cls, v: Optional[str]) -> Optional[str]:
        return _validate_ref(v, 'Tag')

    @field_validator('compose_file')
    @classmethod
    def validate_compose_file(cls, v: str) -> str:
        return _validate_repo_path(v, 'Compose file')

    @field_validator('values_file')
    @classmethod
    def validate_values_file(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return _validate_repo_path(v, 'Values file')

    @field_validator('sops_files')
    @classmethod
    def validate_sops_files(cls, v: List[str]) -> List[str]:
        return [_validate_repo_path(path, 'SOPS file') for path in v]

    @model_validator(mode='after')
    def validate_ref(self) -> 'StackConfig':
        if not self.branch and not self.tag:
            raise ValueError('Stack needs a branch or a tag')
        return self


class StacksConfig(BaseModel):
    """Top-level stacks file."""
    repos: Dict[str, RepoConfig] = Field(default_factory=dict)
    stacks: Dict[str, StackConfig] = Field(default_factory=dict)

    @field_validator('repos', 'stacks')
    @classmethod
    def validate_names(cls, v: dict) -> dict:
        for name in v:
            _validate_name(name)
        return v

    @model_validator(mode='after')
    def validate_repo_references(self) -> 'StacksConfig':
        for stack_name, stack in self.stacks.items():
            if stack.repo not in self.repos:
                raise ValueError(f"Stack {stack_name} references unknown repo {stack.repo}")
        return self
