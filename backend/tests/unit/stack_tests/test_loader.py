"""
Unit tests for loading repositories and stacks from the stacks file.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from gitops.errors import AuthenticationError, GitNotAvailableError
from gitops.repo import StackRepo
from stacks.loader import init_repos, init_stacks, load_config, resolve_repo_paths

STACKS_FILE = """
repos:
  infra:
    url: https://git.example.com/org/infra.git
    auth_type: https
    username: deploy
    password: token
  apps:
    url: git@git.example.com:org/apps.git
stacks:
  web:
    repo: infra
    branch: main
    compose_file: stacks/web/docker-compose.yaml
    discover_secrets: true
  api:
    repo: apps
    tag: v1.2.3
    compose_file: api/docker-compose.yaml
    sops_files:
      - api/secrets/db.yaml
"""


@pytest.fixture
def stacks_file(tmp_path):
    path = tmp_path / "stacks.yaml"
    path.write_text(STACKS_FILE)
    return str(path)


class TestLoadConfig:
    def test_loads_repos_and_stacks(self, stacks_file):
        config = load_config(stacks_file)

        assert set(config.repos) == {"infra", "apps"}
        assert config.stacks["web"].branch == "main"
        assert config.stacks["api"].tag == "v1.2.3"
        assert config.stacks["api"].branch is None

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "stacks.yaml"
        path.write_text("repos: [unclosed\n")

        with pytest.raises(ValueError, match="Invalid YAML"):
            load_config(str(path))

    def test_validation_failure(self, tmp_path):
        path = tmp_path / "stacks.yaml"
        path.write_text("stacks:\n  web:\n    repo: missing\n    branch: main\n    compose_file: a.yaml\n")

        with pytest.raises(ValueError, match="unknown repo missing"):
            load_config(str(path))


class TestResolveRepoPaths:
    def test_defaults_under_repos_dir(self, stacks_file, tmp_path):
        paths = resolve_repo_paths(load_config(stacks_file), str(tmp_path / "repos"))
        assert paths["infra"] == tmp_path / "repos" / "infra"

    def test_duplicate_paths_rejected(self, stacks_file, tmp_path):
        config = load_config(stacks_file)
        config.repos["apps"].path = str(tmp_path / "repos" / "infra")

        with pytest.raises(ValueError, match="use the same path"):
            resolve_repo_paths(config, str(tmp_path / "repos"))


class TestInitRepos:
    @pytest.mark.asyncio
    async def test_failed_repo_is_skipped(self, stacks_file, tmp_path):
        """A repo that fails to clone is left out, the rest are returned"""
        config = load_config(stacks_file)

        async def fake_create(name, path, url, credential=None):
            if name == "apps":
                raise AuthenticationError("could not clone repo apps: authentication failed", "apps", "clone")
            return StackRepo(name, path, url, credential)

        with patch.object(StackRepo, 'create', side_effect=fake_create):
            repos = await init_repos(config, str(tmp_path / "repos"))

        assert list(repos) == ["infra"]
        assert repos["infra"].credential.username == "deploy"

    @pytest.mark.asyncio
    async def test_git_missing_is_fatal(self, stacks_file, tmp_path):
        config = load_config(stacks_file)

        with patch.object(StackRepo, 'create', new_callable=AsyncMock, side_effect=GitNotAvailableError("Git not found")):
            with pytest.raises(GitNotAvailableError):
                await init_repos(config, str(tmp_path / "repos"))


class TestInitStacks:
    def test_builds_stacks_for_available_repos(self, stacks_file, tmp_path):
        config = load_config(stacks_file)
        infra = StackRepo("infra", str(tmp_path / "infra"), "https://git.example.com/org/infra.git")
        store = MagicMock()

        stacks = init_stacks(config, {"infra": infra}, object_store=store)

        assert [s.name for s in stacks] == ["web"]
        web = stacks[0]
        assert web.repo is infra
        assert web.branch == "main"
        assert web.tag == ""
        assert web.discover_secrets is True
        assert web.object_store is store

    def test_tag_stack(self, stacks_file, tmp_path):
        config = load_config(stacks_file)
        repos = {
            name: StackRepo(name, str(tmp_path / name), repo.url)
            for name, repo in config.repos.items()
        }

        api = {s.name: s for s in init_stacks(config, repos)}["api"]

        assert api.branch == ""
        assert api.ref_attr() == ("tag", "v1.2.3")
        assert api.sops_files == ["api/secrets/db.yaml"]

    def test_stacks_share_repo_instance(self, tmp_path):
        """Two stacks in one repo get the same StackRepo (and lock)"""
        path = tmp_path / "stacks.yaml"
        path.write_text(
            "repos:\n"
            "  infra:\n"
            "    url: https://git.example.com/org/infra.git\n"
            "stacks:\n"
            "  web:\n"
            "    repo: infra\n"
            "    branch: main\n"
            "    compose_file: web.yaml\n"
            "  web-staging:\n"
            "    repo: infra\n"
            "    branch: staging\n"
            "    compose_file: web.yaml\n"
        )
        config = load_config(str(path))
        infra = StackRepo("infra", str(tmp_path / "infra"), "https://git.example.com/org/infra.git")

        stacks = init_stacks(config, {"infra": infra})

        assert stacks[0].repo is stacks[1].repo
