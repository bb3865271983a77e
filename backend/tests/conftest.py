"""
Shared pytest fixtures for StackSync tests.

Fixtures provided:
- git_result: Factory for fake CompletedProcess results of git commands
- stack_repo: StackRepo over an empty tmp directory (never clones)
- working_copy: Helper writing files into the stack_repo working copy
- mock_object_store: ObjectStore mock where nothing exists yet
- mock_decryptor: Decryptor mock prefixing content with 'decrypted:'
- synced_repo: Mocks stack_repo branch/tag synchronization
"""

import os
import sys
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from gitops.repo import StackRepo


@pytest.fixture
def git_result():
    """Build a result object shaped like subprocess.CompletedProcess."""
    def _make(returncode: int = 0, stdout: str = '', stderr: str = ''):
        result = MagicMock()
        result.returncode = returncode
        result.stdout = stdout
        result.stderr = stderr
        return result
    return _make


@pytest.fixture
def stack_repo(tmp_path):
    """StackRepo wrapping tmp_path/repo without cloning anything."""
    path = tmp_path / "repo"
    path.mkdir()
    return StackRepo("test", str(path), "https://git.example.com/org/stacks.git")


@pytest.fixture
def working_copy(stack_repo):
    """Write files (str or bytes) into the stack_repo working copy."""
    def _write(relative_path: str, content):
        target = stack_repo.path / relative_path
        target.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            target.write_bytes(content)
        else:
            target.write_text(content)
        return target
    return _write


@pytest.fixture
def mock_object_store():
    """
    Mock ObjectStore with no pre-existing objects.

    create() returns a fake object ID.
    """
    store = MagicMock()
    store.exists = MagicMock(return_value=False)
    store.create = MagicMock(return_value="obj123")
    return store


@pytest.fixture
def mock_decryptor():
    """Mock Decryptor returning b'decrypted:' + file content."""
    decryptor = MagicMock()
    decryptor.decrypt = MagicMock(side_effect=lambda path: b"decrypted:" + path.read_bytes())
    return decryptor


@pytest.fixture
def synced_repo(stack_repo):
    """
    stack_repo whose branch/tag synchronization is mocked out.

    Yields (sync_branch, sync_tag) AsyncMocks returning fixed revisions.
    """
    with patch.object(stack_repo, '_sync_branch', new_callable=AsyncMock, return_value="a1b2c3d4") as sync_branch, \
            patch.object(stack_repo, '_sync_tag', new_callable=AsyncMock, return_value="ffee0011") as sync_tag:
        yield sync_branch, sync_tag
