"""Remote resolution for bbcli.

Turns the local git remotes into an ordered list of Bitbucket repositories
the user is authenticated to, honouring the BB_HOST override.
"""

from collections.abc import Callable
from typing import Protocol

from bbcli.auth_config import BB_HOST, SOURCE_DEFAULT
from bbcli.git_client import GitRemote, SSHTranslator
from bbcli.instance import DEFAULT_INSTANCE, Instance
from bbcli.logger import get_logger
from bbcli.remotes import Remote, Translator, filter_by_hosts, sort_remotes, translate_remotes
from bbcli.utils.once import Once

logger = get_logger(__name__)


class HostConfig(Protocol):
    def hosts(self) -> list[str]: ...

    def default_host(self) -> tuple[str, str]: ...

    def has_env_token(self) -> bool: ...


class RemoteResolutionError(Exception):
    """Base exception for remote resolution errors."""

    pass


class NoRemotesError(RemoteResolutionError):
    """The repository has no git remotes."""

    def __init__(self) -> None:
        super().__init__("no git remotes found")


class NoAuthenticatedHostsError(RemoteResolutionError):
    """No host has stored credentials."""

    def __init__(self) -> None:
        super().__init__("could not find any host configurations")


class HostOverrideMismatchError(RemoteResolutionError):
    """No remote points at the host named by the environment override."""

    def __init__(self, source: str):
        super().__init__(
            "none of the git remotes configured for this repository correspond to the "
            f"{source} environment variable. Try adding a matching remote or unsetting the variable"
        )
        self.source = source


class EnvTokenHostAmbiguousError(RemoteResolutionError):
    """Credentials come only from an environment token and no host was named."""

    def __init__(self) -> None:
        super().__init__(
            f"set the {BB_HOST} environment variable to specify which Bitbucket host to use"
        )


class NoKnownHostRemotesError(RemoteResolutionError):
    """No remote points at a host the user is authenticated to."""

    def __init__(self) -> None:
        super().__init__(
            "none of the git remotes configured for this repository point to a known "
            "Bitbucket host. To tell bb about a new Bitbucket host, please use `bb auth login`"
        )


def _dedupe_hosts(hosts: list[str]) -> list[str]:
    seen: set[str] = set()
    result = []
    for host in hosts:
        if host and host.lower() not in seen:
            seen.add(host.lower())
            result.append(host)
    return result


def resolve_remotes(
    git_remotes: list[GitRemote],
    auth_config: HostConfig,
    translator: Translator,
    instance: Instance = DEFAULT_INSTANCE,
) -> list[Remote]:
    """Resolve git remotes to the repositories a command may target.

    Args:
        git_remotes: Remotes as reported by git
        auth_config: Source of authenticated hosts and the default host
        translator: SSH alias translator applied to remote URLs
        instance: Bitbucket instance providing the public hostname

    Returns:
        Remotes on known hosts, ordered by remote name precedence.

    Raises:
        RemoteResolutionError: If no usable remote remains.
    """
    if not git_remotes:
        raise NoRemotesError()

    remotes = translate_remotes(git_remotes, translator)

    authed_hosts = auth_config.hosts()
    if not authed_hosts:
        raise NoAuthenticatedHostsError()

    default_host, source = auth_config.default_host()
    hosts = _dedupe_hosts([*authed_hosts, default_host, instance.hostname])

    resolved = filter_by_hosts(sort_remotes(remotes), hosts)

    # A config-file default host falls back to all known hosts when nothing
    # matches; the BB_HOST environment override never falls back.
    if source != SOURCE_DEFAULT:
        on_default = filter_by_hosts(resolved, [default_host])
        if source == BB_HOST or on_default:
            resolved = on_default

    if not resolved:
        if source == BB_HOST:
            raise HostOverrideMismatchError(source)
        if auth_config.has_env_token():
            raise EnvTokenHostAmbiguousError()
        raise NoKnownHostRemotesError()

    logger.debug(f"Resolved remotes: {', '.join(f'{r.name}={r.repo}' for r in resolved)}")
    return resolved


class RemoteResolver:
    """Resolves remotes once and remembers the outcome.

    Repeated calls to resolve() on the same instance return the cached list,
    or re-raise the cached error, without reading git again.
    """

    def __init__(
        self,
        read_remotes: Callable[[], list[GitRemote]],
        get_auth_config: Callable[[], HostConfig],
        translator: Translator | None = None,
        instance: Instance = DEFAULT_INSTANCE,
    ):
        self._read_remotes = read_remotes
        self._get_auth_config = get_auth_config
        self._translator = translator
        self._instance = instance
        self._result: Once[list[Remote]] = Once(self._resolve)

    def _resolve(self) -> list[Remote]:
        git_remotes = self._read_remotes()
        if not git_remotes:
            raise NoRemotesError()
        return resolve_remotes(
            git_remotes,
            self._get_auth_config(),
            self._translator or SSHTranslator(),
            self._instance,
        )

    def resolve(self) -> list[Remote]:
        return self._result.get()
