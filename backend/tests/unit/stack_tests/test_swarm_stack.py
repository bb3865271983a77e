"""
Unit tests for SwarmStack basics.

Tests verify:
- Ref resolution (tag wins over branch, tag stored verbatim)
- External secrets/configs are never touched
- Secret discovery through a stack's compose file
"""

import pytest

from stacks.secrets import discover_secrets
from stacks.stack import RefAttr, SwarmStack


def make_stack(repo, branch="main", tag="", **kwargs):
    return SwarmStack(
        name="web",
        repo=repo,
        branch=branch,
        tag=tag,
        compose_file="stacks/docker-compose.yaml",
        **kwargs
    )


class TestRefAttr:
    """Tests for ref_attr()"""

    def test_branch_only(self, stack_repo):
        assert make_stack(stack_repo, branch="main").ref_attr() == RefAttr('branch', 'main')

    def test_tag_only(self, stack_repo):
        """A tag-only stack keeps an empty branch and the tag verbatim"""
        stack = make_stack(stack_repo, branch="", tag="v1.2.3")

        assert stack.branch == ""
        assert stack.tag == "v1.2.3"
        assert stack.ref_attr() == RefAttr('tag', 'v1.2.3')

    def test_tag_wins_over_branch(self, stack_repo):
        """Should resolve to the tag when both are set"""
        stack = make_stack(stack_repo, branch="main", tag="v2")

        key, value = stack.ref_attr()
        assert (key, value) == ('tag', 'v2')
        assert stack.branch == "main"


class TestExternalObjects:
    """External entries produce zero object-store calls and stay unchanged"""

    @pytest.fixture(autouse=True)
    def synced(self, synced_repo):
        return synced_repo

    @pytest.mark.asyncio
    async def test_external_secrets_untouched(self, stack_repo, mock_object_store):
        stack = make_stack(stack_repo, object_store=mock_object_store)
        secrets = {
            'shared': {'external': True},
            'legacy': {'external': {'name': 'legacy_v1'}},
        }
        before = {name: dict(entry) for name, entry in secrets.items()}

        results = await stack.rotate_objects(secrets, 'secrets')

        assert results == []
        assert secrets == before
        mock_object_store.exists.assert_not_called()
        mock_object_store.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_external_configs_untouched(self, stack_repo, mock_object_store):
        stack = make_stack(stack_repo, object_store=mock_object_store)
        configs = {'nginx_conf': {'external': True}}

        results = await stack.rotate_objects(configs, 'configs')

        assert results == []
        assert configs == {'nginx_conf': {'external': True}}
        mock_object_store.exists.assert_not_called()
        mock_object_store.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_external_without_object_store(self, stack_repo):
        """Nothing to rotate means no object store is needed"""
        stack = make_stack(stack_repo)
        assert await stack.rotate_objects({'shared': {'external': True}}, 'secrets') == []


class TestStackSecretDiscovery:
    """Secret discovery from a parsed stack file"""

    def test_discovers_secret_next_to_compose(self, stack_repo):
        stack = make_stack(stack_repo)
        compose = stack.parse_stack_string(
            "services:\n"
            "  web:\n"
            "    image: nginx\n"
            "secrets:\n"
            "  secret:\n"
            "    file: secrets/secret.yaml\n"
        )

        assert discover_secrets(compose, stack.compose_file) == ["stacks/secrets/secret.yaml"]

    def test_discovers_secret_in_parent_directory(self, stack_repo):
        stack = SwarmStack(
            name="web",
            repo=stack_repo,
            branch="main",
            tag="",
            compose_file="stacks/app/docker-compose.yaml",
        )
        compose = stack.parse_stack_string(
            "services:\n"
            "  web:\n"
            "    image: nginx\n"
            "secrets:\n"
            "  secret:\n"
            "    file: ../x.yaml\n"
        )

        assert discover_secrets(compose, stack.compose_file) == ["stacks/x.yaml"]

    def test_parse_error_names_stack(self, stack_repo):
        from stacks.errors import ComposeParseError

        stack = make_stack(stack_repo)
        with pytest.raises(ComposeParseError) as exc_info:
            stack.parse_stack_string("services: {}\n")

        assert exc_info.value.stack_name == "web"
        assert "stacks/docker-compose.yaml" in str(exc_info.value)
