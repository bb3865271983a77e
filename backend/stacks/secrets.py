"""
Discovery of secret files referenced by a compose file.
"""
import posixpath
from typing import List

from stacks.compose_parser import ComposeShapeError, get_mapping, get_string, is_external
from stacks.errors import SecretDiscoveryError


def resolve_object_file(compose_path: str, file_path: str) -> str:
    """
    Repository-relative path of a file referenced from a compose file.

    Compose resolves `file:` against the directory holding the compose
    file, not the repository root.
    """
    compose_dir = posixpath.dirname(compose_path)
    return posixpath.normpath(posixpath.join(compose_dir, file_path))


def discover_secrets(compose: dict, compose_path: str) -> List[str]:
    """
    List the files backing the non-external secrets of a compose file.

    Args:
        compose: Parsed compose data
        compose_path: Repository-relative path of the compose file

    Returns:
        Repository-relative paths, in the order the secrets are declared

    Raises:
        SecretDiscoveryError: If the secrets section has an unexpected shape
    """
    try:
        secrets = get_mapping(compose, 'secrets')
    except ComposeShapeError as e:
        raise SecretDiscoveryError(f"could not discover secrets in {compose_path}: {e}")

    files = []
    for name, entry in secrets.items():
        if entry is None or is_external(entry):
            continue
        if not isinstance(entry, dict):
            raise SecretDiscoveryError(
                f"could not discover secrets in {compose_path}: secret {name} must be a mapping"
            )
        try:
            file_path = get_string(entry, 'file')
        except ComposeShapeError as e:
            raise SecretDiscoveryError(
                f"could not discover secrets in {compose_path}: secret {name}: {e}"
            )
        if file_path:
            files.append(resolve_object_file(compose_path, file_path))
    return files
