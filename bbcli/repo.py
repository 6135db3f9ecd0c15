"""Repository identity for bbcli.

A repository is identified by the triple (host, workspace, slug). This module
parses that triple from the forms users and git remotes produce and formats it
back into names and URLs.
"""

from dataclasses import dataclass
from urllib.parse import SplitResult, urlsplit

from bbcli.instance import DEFAULT_INSTANCE

GIT_SUFFIX = ".git"


class RepoParseError(ValueError):
    """Raised when a repository name or URL cannot be parsed."""

    pass


def _normalize_repo_host(hostname: str) -> str:
    hostname = hostname.lower()
    if hostname.startswith("www."):
        hostname = hostname[len("www.") :]
    return hostname


@dataclass(frozen=True, eq=False)
class Repository:
    """An immutable reference to a Bitbucket repository.

    The host is stored lower-cased with any leading "www." removed. Workspace
    and slug compare case-insensitively. A slug never ends in ".git", since
    that suffix marks a clone URL and is stripped when parsing one.

    Attributes:
        host: Bitbucket hostname (e.g. "bitbucket.org")
        workspace: Owning workspace
        slug: Repository slug
    """

    host: str
    workspace: str
    slug: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "host", _normalize_repo_host(self.host))
        if self.slug.lower().endswith(GIT_SUFFIX):
            raise RepoParseError(f"invalid repository slug: {self.slug}")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Repository):
            return NotImplemented
        return is_same(self, other)

    def __hash__(self) -> int:
        return hash((self.host, self.workspace.lower(), self.slug.lower()))

    @property
    def full_name(self) -> str:
        """The "WORKSPACE/SLUG" form."""
        return f"{self.workspace}/{self.slug}"

    @property
    def qualified_name(self) -> str:
        """The "HOST/WORKSPACE/SLUG" form."""
        return f"{self.host}/{self.workspace}/{self.slug}"

    @classmethod
    def from_full_name(cls, name: str, fallback_host: str | None = None) -> "Repository":
        """Parse a repository from one of its textual forms.

        Accepts:
            - WORKSPACE/SLUG (uses fallback_host, default bitbucket.org)
            - HOST/WORKSPACE/SLUG
            - https://HOST/WORKSPACE/SLUG[.git]

        Args:
            name: The repository string to parse
            fallback_host: Host for values that don't include one

        Returns:
            The parsed Repository.

        Raises:
            RepoParseError: If the value is not in a recognized format.
        """
        if name.startswith(("https://", "http://")):
            return cls.from_url(name)

        host = fallback_host or DEFAULT_INSTANCE.hostname
        parts = name.split("/", 3)
        if len(parts) == 2:
            workspace, slug = parts
        elif len(parts) == 3:
            host, workspace, slug = parts
        else:
            raise RepoParseError(
                f"invalid repository format: {name} (expected [HOST/]WORKSPACE/REPO_SLUG)"
            )

        if not host or not workspace or not slug:
            raise RepoParseError(
                f"invalid repository format: {name} (expected [HOST/]WORKSPACE/REPO_SLUG)"
            )
        return cls(host, workspace, slug)

    @classmethod
    def from_url(cls, url: str | SplitResult) -> "Repository":
        """Parse a repository from a web or git remote URL.

        Raises:
            RepoParseError: If the URL has no hostname or a path other than
                /WORKSPACE/SLUG.
        """
        parsed = urlsplit(url) if isinstance(url, str) else url
        if not parsed.hostname:
            raise RepoParseError("no hostname detected")

        parts = parsed.path.strip("/").split("/", 2)
        if len(parts) != 2 or not all(parts):
            raise RepoParseError(f"invalid path: {parsed.path}")

        slug = parts[1]
        if slug.lower().endswith(GIT_SUFFIX):
            slug = slug[: -len(GIT_SUFFIX)]
        if not slug:
            raise RepoParseError(f"invalid path: {parsed.path}")
        return cls(parsed.hostname, parts[0], slug)

    def url(self, path: str = "") -> str:
        """Web URL for the repository, optionally extended with a sub-path."""
        base = f"{DEFAULT_INSTANCE.host_prefix(self.host)}{self.workspace}/{self.slug}"
        if path:
            return f"{base}/{path.lstrip('/')}"
        return base

    def remote_url(self, protocol: str = "https") -> str:
        """Clone URL for the repository over "ssh" or "https"."""
        if protocol == "ssh":
            return f"git@{self.host}:{self.workspace}/{self.slug}.git"
        return f"{DEFAULT_INSTANCE.host_prefix(self.host)}{self.workspace}/{self.slug}.git"

    def __str__(self) -> str:
        return self.qualified_name


def is_same(a: Repository, b: Repository) -> bool:
    """Compare two repositories, ignoring case in workspace and slug."""
    return (
        a.workspace.lower() == b.workspace.lower()
        and a.slug.lower() == b.slug.lower()
        and _normalize_repo_host(a.host) == _normalize_repo_host(b.host)
    )
