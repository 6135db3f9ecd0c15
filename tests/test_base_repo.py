"""Unit tests for base repository selection."""

from unittest.mock import MagicMock

import pytest
from conftest import FakeAuthConfig, IdentityTranslator, git_remote

from bbcli.base_repo import (
    AmbiguousBaseRepoError,
    ResolvedRemotes,
    repo_override,
    resolve_base_repo,
)
from bbcli.remotes import Remote
from bbcli.repo import Repository, RepoParseError
from bbcli.resolver import NoRemotesError, RemoteResolver


def _remote(name, workspace, slug="slug", host="bitbucket.org", resolved=""):
    return Remote(name=name, repo=Repository(host, workspace, slug), resolved=resolved)


@pytest.mark.unit
class TestRepoOverride:
    """Tests for repo_override."""

    def test_flag_wins(self, monkeypatch):
        monkeypatch.setenv("BB_REPO", "env/repo")
        assert repo_override("flag/repo") == "flag/repo"

    def test_env_fallback(self, monkeypatch):
        monkeypatch.setenv("BB_REPO", "  env/repo ")
        assert repo_override() == "env/repo"

    def test_unset(self):
        assert repo_override() == ""


@pytest.mark.unit
class TestResolveBaseRepo:
    """Tests for resolve_base_repo."""

    def test_single_remote_on_single_host(self):
        """Test the single-remote working copy on its only authenticated host."""
        resolver = RemoteResolver(
            MagicMock(return_value=[git_remote("origin", "https://x.org/w/r.git")]),
            MagicMock(return_value=FakeAuthConfig(hosts=["x.org"], default=("x.org", "hosts"))),
            translator=IdentityTranslator(),
        )

        repo = resolve_base_repo("", resolver.resolve, can_prompt=True)

        assert (repo.host, repo.workspace, repo.slug) == ("x.org", "w", "r")

    def test_env_override_ignores_remotes(self, monkeypatch):
        monkeypatch.setenv("BB_REPO", "h/ws/slug")
        resolve_remotes = MagicMock(side_effect=NoRemotesError())

        repo = resolve_base_repo(repo_override(), resolve_remotes, can_prompt=True)

        assert (repo.host, repo.workspace, repo.slug) == ("h", "ws", "slug")
        resolve_remotes.assert_not_called()

    def test_override_uses_fallback_host(self):
        repo = resolve_base_repo("ws/slug", MagicMock(), False, fallback_host="bb.example.com")
        assert repo.qualified_name == "bb.example.com/ws/slug"

    def test_invalid_override(self):
        with pytest.raises(RepoParseError):
            resolve_base_repo("not-a-repo", MagicMock(), False)

    def test_empty_remote_list(self):
        with pytest.raises(NoRemotesError):
            resolve_base_repo("", lambda: [], True)

    def test_resolution_error_propagates(self):
        with pytest.raises(NoRemotesError):
            resolve_base_repo("", MagicMock(side_effect=NoRemotesError()), True)

    def test_base_hint_wins(self):
        remotes = [_remote("upstream", "team"), _remote("origin", "me", resolved="base")]
        repo = resolve_base_repo("", lambda: remotes, True)
        assert repo.workspace == "me"

    def test_base_hint_beats_earlier_name_hint(self):
        remotes = [
            _remote("upstream", "team", resolved="other/thing"),
            _remote("origin", "me", resolved="base"),
        ]
        assert resolve_base_repo("", lambda: remotes, True).workspace == "me"

    def test_name_hint_uses_remote_host(self):
        remotes = [
            _remote("upstream", "team", host="bb.example.com", resolved="forked/project"),
            _remote("origin", "me"),
        ]
        repo = resolve_base_repo("", lambda: remotes, True)
        assert repo.qualified_name == "bb.example.com/forked/project"

    def test_malformed_hint(self):
        remotes = [_remote("origin", "me", resolved="garbage"), _remote("upstream", "team")]
        with pytest.raises(RepoParseError):
            resolve_base_repo("", lambda: remotes, True)

    def test_no_prompt_takes_first(self):
        remotes = [_remote("upstream", "team"), _remote("origin", "me")]
        assert resolve_base_repo("", lambda: remotes, False).workspace == "team"

    def test_ambiguous_when_prompting_possible(self):
        remotes = [_remote("upstream", "team"), _remote("origin", "me")]
        with pytest.raises(AmbiguousBaseRepoError, match="bb repo set-default"):
            resolve_base_repo("", lambda: remotes, True)


@pytest.mark.unit
class TestResolvedRemotes:
    """Tests for ResolvedRemotes."""

    def test_base_repo_with_override(self):
        resolved = ResolvedRemotes([_remote("origin", "me")], base_override="team/slug")
        assert resolved.base_repo(can_prompt=False).workspace == "team"

    def test_remote_for_repo(self):
        resolved = ResolvedRemotes([_remote("upstream", "team"), _remote("origin", "me")])
        remote = resolved.remote_for_repo(Repository("bitbucket.org", "me", "slug"))
        assert remote.name == "origin"

    def test_remote_for_unknown_repo(self):
        resolved = ResolvedRemotes([_remote("origin", "me")])
        with pytest.raises(LookupError):
            resolved.remote_for_repo(Repository("bitbucket.org", "other", "slug"))
