"""Factory wiring configuration, HTTP clients, git and remote resolution.

A Factory is built once per command invocation. Configuration files are
loaded at most once per factory; remote resolution happens at most once per
resolver.
"""

import sys

from bbcli import __version__
from bbcli.api_client import Client
from bbcli.auth_config import AuthConfig
from bbcli.base_repo import repo_override, resolve_base_repo
from bbcli.config import Config, config_dir, is_debug_enabled, load_config
from bbcli.git_client import GitClient, SSHTranslator
from bbcli.http_client import HTTPClient, new_http_client
from bbcli.remotes import Remote
from bbcli.repo import Repository
from bbcli.resolver import RemoteResolver
from bbcli.utils.once import Once


class Factory:
    """Lazily builds the collaborators commands depend on."""

    def __init__(self, app_version: str = __version__, git_client: GitClient | None = None):
        self.app_version = app_version
        self._config: Once[Config] = Once(lambda: load_config(config_dir()))
        self._auth_config: Once[AuthConfig] = Once(self._load_auth_config)
        self._git_client = git_client or GitClient()
        self._translator = SSHTranslator()
        self._resolver: RemoteResolver | None = None

    def config(self) -> Config:
        return self._config.get()

    def _load_auth_config(self) -> AuthConfig:
        cfg = self.config()
        return AuthConfig.load(cfg.hosts_path, instance=cfg.instance)

    def auth_config(self) -> AuthConfig:
        return self._auth_config.get()

    def git_client(self) -> GitClient:
        return self._git_client

    def http_client(self, verbose: bool = False) -> HTTPClient:
        """HTTP client with default headers and credentials for the request host.

        Request tracing is enabled by verbose, or by BB_DEBUG/DEBUG. A debug
        value containing "api" turns on verbose header tracing.
        """
        cfg = self.config()
        debug, debug_value = is_debug_enabled()
        return new_http_client(
            config=self.auth_config(),
            app_version=self.app_version,
            log=sys.stderr,
            verbose=verbose or "api" in debug_value.lower(),
            debug=debug,
            colorize=sys.stderr.isatty(),
            timeout=cfg.http_timeout,
            instance=cfg.instance,
        )

    def plain_http_client(self, verbose: bool = False) -> HTTPClient:
        """HTTP client without default headers or automatic credentials."""
        cfg = self.config()
        debug, debug_value = is_debug_enabled()
        return new_http_client(
            config=None,
            app_version=self.app_version,
            log=sys.stderr,
            verbose=verbose or "api" in debug_value.lower(),
            debug=debug,
            colorize=sys.stderr.isatty(),
            skip_default_headers=True,
            timeout=cfg.http_timeout,
            instance=cfg.instance,
        )

    def api_client(self, verbose: bool = False) -> Client:
        return Client(self.http_client(verbose=verbose), instance=self.config().instance)

    def remote_resolver(self) -> RemoteResolver:
        """Build a fresh resolver over this factory's git client and auth config."""
        return RemoteResolver(
            read_remotes=self._git_client.remotes,
            get_auth_config=self.auth_config,
            translator=self._translator,
            instance=self.config().instance,
        )

    def remotes(self) -> list[Remote]:
        """Resolved remotes, computed at most once per factory."""
        if self._resolver is None:
            self._resolver = self.remote_resolver()
        return self._resolver.resolve()

    def can_prompt(self) -> bool:
        if self.config().prompt_disabled:
            return False
        return sys.stdin.isatty() and sys.stdout.isatty()

    def base_repo(self, override: str | None = None) -> Repository:
        """Resolve the repository a repo-scoped command targets.

        Args:
            override: Value of the -R/--repo flag. BB_REPO is used when unset.
        """
        return resolve_base_repo(
            repo_override(override),
            self.remotes,
            self.can_prompt(),
            fallback_host=self.config().default_hostname,
        )
