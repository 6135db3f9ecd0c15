"""Git remotes mapped to Bitbucket repositories."""

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import SplitResult

from bbcli.git_client import GitRemote
from bbcli.logger import get_logger
from bbcli.repo import Repository, RepoParseError, is_same

logger = get_logger(__name__)

# Higher scores sort first
_REMOTE_NAME_SCORES = {
    "upstream": 3,
    "bitbucket": 2,
    "origin": 1,
}


class Translator(Protocol):
    def translate(self, url: SplitResult) -> SplitResult: ...


@dataclass(frozen=True)
class Remote:
    """A git remote that points at a Bitbucket repository.

    Attributes:
        name: Git remote name
        repo: Repository the remote points at
        resolved: Resolution hint: "", "base", or a WORKSPACE/SLUG name
    """

    name: str
    repo: Repository
    resolved: str = ""

    @property
    def host(self) -> str:
        return self.repo.host

    @property
    def workspace(self) -> str:
        return self.repo.workspace

    @property
    def slug(self) -> str:
        return self.repo.slug


def remote_sort_key(remote: Remote) -> tuple[int, str]:
    """Sort key: upstream, bitbucket, origin first, then alphabetical by name."""
    name = remote.name.lower()
    return (-_REMOTE_NAME_SCORES.get(name, 0), name)


def sort_remotes(remotes: Iterable[Remote]) -> list[Remote]:
    return sorted(remotes, key=remote_sort_key)


def filter_by_hosts(remotes: Iterable[Remote], hosts: Iterable[str]) -> list[Remote]:
    """Keep remotes whose host is in hosts (case-insensitive), preserving order."""
    wanted = {h.lower() for h in hosts}
    return [r for r in remotes if r.host.lower() in wanted]


def find_by_name(remotes: Iterable[Remote], *names: str) -> Remote:
    """Return the first remote matching one of names, in names order. "*" matches any.

    Raises:
        LookupError: If no remote matches.
    """
    remotes = list(remotes)
    for name in names:
        for remote in remotes:
            if remote.name == name or name == "*":
                return remote
    raise LookupError("no matching remote found")


def find_by_repo(remotes: Iterable[Remote], repo: Repository) -> Remote:
    """Return the first remote pointing at repo.

    Raises:
        LookupError: If no remote matches.
    """
    for remote in remotes:
        if is_same(remote.repo, repo):
            return remote
    raise LookupError(f"no matching remote found; looking for {repo.full_name}")


def translate_remotes(git_remotes: Iterable[GitRemote], translator: Translator) -> list[Remote]:
    """Map git remotes to Bitbucket repositories.

    The fetch URL is tried first, then the push URL. Remotes whose URLs do not
    describe a WORKSPACE/SLUG repository are dropped.
    """
    remotes = []
    for git_remote in git_remotes:
        repo = None
        for url in (git_remote.fetch_url, git_remote.push_url):
            if url is None:
                continue
            try:
                repo = Repository.from_url(translator.translate(url))
                break
            except RepoParseError:
                continue
        if repo is None:
            logger.debug(f"Skipping remote {git_remote.name}: not a repository URL")
            continue
        remotes.append(Remote(name=git_remote.name, repo=repo, resolved=git_remote.resolved))
    return remotes
