"""
Unit tests for git error classification.
"""

import pytest

from gitops.errors import AuthenticationError, CheckoutError, RepoError, is_auth_failure


class TestIsAuthFailure:
    """Tests for is_auth_failure()"""

    @pytest.mark.parametrize("stderr", [
        "fatal: Authentication failed for 'https://github.com/org/repo.git/'",
        "fatal: could not read Username for 'https://github.com': terminal prompts disabled",
        "remote: HTTP Basic: Access denied",
        "git@github.com: Permission denied (publickey).",
        "fatal: unable to access 'https://x/': The requested URL returned error: 403",
        "authentication required",
    ])
    def test_detects_auth_signatures(self, stderr):
        """Should classify credential rejections as authentication failures"""
        assert is_auth_failure(stderr) is True

    @pytest.mark.parametrize("stderr", [
        "fatal: repository 'https://github.com/org/missing.git/' not found",
        "fatal: couldn't find remote ref refs/tags/v9",
        "",
        None,
    ])
    def test_ignores_other_failures(self, stderr):
        """Should not classify unrelated failures as authentication failures"""
        assert is_auth_failure(stderr) is False


class TestErrorContext:
    """Tests for error context attributes"""

    def test_authentication_error_is_repo_error(self):
        """AuthenticationError should carry repo, operation and ref"""
        error = AuthenticationError("could not pull main branch in infra repo: authentication failed",
                                    "infra", operation="pull", ref="main")
        assert isinstance(error, RepoError)
        assert error.repo_name == "infra"
        assert error.operation == "pull"
        assert error.ref == "main"

    def test_checkout_error_carries_ref(self):
        error = CheckoutError("could not checkout tag v1 in infra: bad ref", "infra", "v1")
        assert error.ref == "v1"
        assert error.repo_name == "infra"
