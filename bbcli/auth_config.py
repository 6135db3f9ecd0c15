"""Authentication configuration for bbcli.

This module provides read-only access to the credentials bb knows about:
host entries from <config_dir>/hosts.yml plus tokens supplied through
environment variables. Writing credentials belongs to the login flow and is
not handled here.

hosts.yml layout:

    bitbucket.org:
      user: alice@example.com
      users:
        alice@example.com:
          token: ATBB...
        bob@example.com:
          token: ATBB...
"""

import os
from pathlib import Path

import yaml

from bbcli.instance import DEFAULT_INSTANCE, Instance
from bbcli.logger import get_logger, register_secret

logger = get_logger(__name__)

BB_HOST = "BB_HOST"
BB_TOKEN = "BB_TOKEN"
BB_ENTERPRISE_TOKEN = "BB_ENTERPRISE_TOKEN"

# Source tags reported alongside tokens and the default host
SOURCE_HOSTS_FILE = "hosts.yml"
SOURCE_HOSTS = "hosts"
SOURCE_DEFAULT = "default"


class AuthConfigError(Exception):
    """Base exception for authentication configuration errors."""

    pass


class AuthConfigLoadError(AuthConfigError):
    """Error loading the hosts file."""

    pass


class AuthConfig:
    """Read-only view of configured Bitbucket hosts and credentials.

    Environment tokens take precedence over tokens in the hosts file:
    BB_TOKEN applies to the public instance, BB_ENTERPRISE_TOKEN to any
    other host. Both are expected in "email:api_token" form.
    """

    def __init__(
        self,
        hosts_data: dict[str, dict] | None = None,
        environ: dict[str, str] | None = None,
        instance: Instance = DEFAULT_INSTANCE,
    ):
        """Initialize the auth config.

        Args:
            hosts_data: Parsed hosts.yml content, keyed by hostname
            environ: Environment mapping (defaults to os.environ)
            instance: Bitbucket instance used to recognize the public host
        """
        self.instance = instance
        self._environ = os.environ if environ is None else environ
        self._hosts: dict[str, dict] = {}
        for host, entry in (hosts_data or {}).items():
            self._hosts[instance.normalize_hostname(str(host))] = entry or {}

        for host in self._hosts:
            for user in self.users_for_host(host):
                register_secret(self._user_token(host, user))
        for name in (BB_TOKEN, BB_ENTERPRISE_TOKEN):
            register_secret(self._env(name))

    @classmethod
    def load(cls, hosts_path: Path, instance: Instance = DEFAULT_INSTANCE) -> "AuthConfig":
        """Load the auth config from a hosts file.

        A missing file is not an error; it yields a config with no file hosts.

        Raises:
            AuthConfigLoadError: If the file cannot be read or parsed.
        """
        if not hosts_path.exists():
            logger.debug(f"Hosts file not found at {hosts_path}")
            return cls(instance=instance)

        try:
            with open(hosts_path, encoding="utf-8") as f:
                raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise AuthConfigLoadError(f"Failed to parse {hosts_path}: {e}") from e
        except OSError as e:
            raise AuthConfigLoadError(f"Failed to read {hosts_path}: {e}") from e

        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise AuthConfigLoadError(f"{hosts_path} must contain a mapping of hostnames")
        for host, entry in raw.items():
            if entry is not None and not isinstance(entry, dict):
                raise AuthConfigLoadError(f"Invalid entry for host '{host}' in {hosts_path}")

        logger.debug(f"Loaded {len(raw)} host(s) from {hosts_path}")
        return cls(raw, instance=instance)

    def _env(self, name: str) -> str:
        return self._environ.get(name, "").strip()

    def _user_token(self, host: str, user: str) -> str:
        users = self._hosts.get(host, {}).get("users") or {}
        entry = users.get(user) or {}
        token = str(entry.get("token") or "")
        if not token:
            return ""
        return f"{user}:{token}"

    def hosts(self) -> list[str]:
        """Return hosts with credentials, in a stable order."""
        hosts = list(self._hosts)
        if self._env(BB_TOKEN) and self.instance.hostname not in hosts:
            hosts.append(self.instance.hostname)
        env_host = self._env(BB_HOST)
        if self._env(BB_ENTERPRISE_TOKEN) and env_host:
            env_host = self.instance.normalize_hostname(env_host)
            if env_host not in hosts:
                hosts.append(env_host)
        return hosts

    def default_host(self) -> tuple[str, str]:
        """Return the default host and where it came from.

        Returns:
            (BB_HOST value, "BB_HOST") when the environment override is set,
            (host, "hosts") when exactly one host is configured, otherwise
            (public instance host, "default").
        """
        env_host = self._env(BB_HOST)
        if env_host:
            return self.instance.normalize_hostname(env_host), BB_HOST

        hosts = self.hosts()
        if len(hosts) == 1:
            return hosts[0], SOURCE_HOSTS
        return self.instance.hostname, SOURCE_DEFAULT

    def active_token(self, hostname: str) -> tuple[str, str]:
        """Return the active credential for a host and its source.

        Returns:
            ("user:token", source) or ("", "") if no credential is known.
        """
        host = self.instance.normalize_hostname(hostname)

        env_name = BB_TOKEN if self.instance.is_default(host) else BB_ENTERPRISE_TOKEN
        if token := self._env(env_name):
            return token, env_name

        user = self.active_user(host)
        if user:
            token = self._user_token(host, user)
            if token:
                return token, SOURCE_HOSTS_FILE
        return "", ""

    def active_user(self, hostname: str) -> str:
        """Return the active user for a host from the hosts file, or ""."""
        host = self.instance.normalize_hostname(hostname)
        entry = self._hosts.get(host, {})
        user = str(entry.get("user") or "")
        if not user:
            users = self.users_for_host(host)
            if len(users) == 1:
                user = users[0]
        return user

    def users_for_host(self, hostname: str) -> list[str]:
        """Return the users registered for a host in the hosts file."""
        host = self.instance.normalize_hostname(hostname)
        users = self._hosts.get(host, {}).get("users") or {}
        return [str(u) for u in users]

    def token_for_user(self, hostname: str, user: str) -> str:
        """Return the "user:token" credential for a specific user, or ""."""
        return self._user_token(self.instance.normalize_hostname(hostname), user)

    def has_env_token(self) -> bool:
        """Return True if any credential comes from an environment variable."""
        return bool(self._env(BB_TOKEN) or self._env(BB_ENTERPRISE_TOKEN))
