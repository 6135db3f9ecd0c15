"""Base repository selection.

Determines the single repository a repo-scoped command targets: an explicit
override, a remote marked with ``bb repo set-default``, or the first
resolved remote.
"""

import os
from collections.abc import Callable

from bbcli.logger import get_logger
from bbcli.remotes import Remote, find_by_repo
from bbcli.repo import Repository
from bbcli.resolver import NoRemotesError

logger = get_logger(__name__)

BB_REPO = "BB_REPO"

RESOLVED_BASE = "base"


class AmbiguousBaseRepoError(Exception):
    """Several remotes qualify and none has been chosen as the default."""

    def __init__(self) -> None:
        super().__init__(
            "No default remote repository has been set. "
            "Please run `bb repo set-default` to select a default remote repository."
        )


def repo_override(flag_value: str | None = None) -> str:
    """Return the -R/--repo value, falling back to the BB_REPO environment variable."""
    if flag_value:
        return flag_value
    return os.environ.get(BB_REPO, "").strip()


def resolve_base_repo(
    override: str | None,
    resolve_remotes: Callable[[], list[Remote]],
    can_prompt: bool,
    fallback_host: str | None = None,
) -> Repository:
    """Select the base repository.

    Args:
        override: Explicit repository (flag or BB_REPO). When set, remotes are
                  never read.
        resolve_remotes: Returns the resolved, ordered remotes
        can_prompt: Whether the caller could ask the user to choose
        fallback_host: Host for overrides given as WORKSPACE/SLUG

    Returns:
        The base Repository.

    Raises:
        RepoParseError: If the override or a stored hint is malformed.
        RemoteResolutionError: If remotes cannot be resolved.
        AmbiguousBaseRepoError: If several remotes qualify and the user could
            be prompted to choose.
    """
    if override:
        logger.debug(f"Using repository override {override}")
        return Repository.from_full_name(override, fallback_host)

    remotes = resolve_remotes()
    if not remotes:
        raise NoRemotesError()

    for remote in remotes:
        if remote.resolved == RESOLVED_BASE:
            return remote.repo

    for remote in remotes:
        if remote.resolved:
            hinted = Repository.from_full_name(remote.resolved, remote.host)
            # The hint names a workspace and slug; the host is always the remote's own
            return Repository(remote.host, hinted.workspace, hinted.slug)

    if not can_prompt or len(remotes) == 1:
        return remotes[0].repo

    raise AmbiguousBaseRepoError()


class ResolvedRemotes:
    """Resolved remotes together with an optional base override."""

    def __init__(self, remotes: list[Remote], base_override: str | None = None):
        self.remotes = remotes
        self.base_override = base_override

    def base_repo(self, can_prompt: bool) -> Repository:
        return resolve_base_repo(self.base_override, lambda: self.remotes, can_prompt)

    def remote_for_repo(self, repo: Repository) -> Remote:
        """Find the git remote that points at repo.

        Raises:
            LookupError: If no remote points at repo.
        """
        return find_by_repo(self.remotes, repo)
