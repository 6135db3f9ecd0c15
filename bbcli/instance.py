"""Bitbucket instance helpers.

Normalizes hostnames and derives the REST and web URL prefixes for a host.
The well-known public hostname is carried by an ``Instance`` value so that
alternate deployments can be exercised without patching module constants.
"""

from dataclasses import dataclass

DEFAULT_HOSTNAME = "bitbucket.org"
DEFAULT_API_VERSION = "2.0"

# Prefixes stripped from hostnames before credential lookup
_STRIPPED_PREFIXES = ("api.", "www.")


@dataclass(frozen=True)
class Instance:
    """A Bitbucket deployment.

    Attributes:
        hostname: Hostname of the well-known public instance (e.g. "bitbucket.org")
        api_version: REST API version segment used in URL prefixes
    """

    hostname: str = DEFAULT_HOSTNAME
    api_version: str = DEFAULT_API_VERSION

    def normalize_hostname(self, hostname: str) -> str:
        """Lower-case a hostname and strip leading "api." and "www." prefixes.

        Prefixes are stripped repeatedly, so the result is stable under a
        second call: normalize_hostname(normalize_hostname(h)) == normalize_hostname(h).

        Args:
            hostname: Hostname as found in a URL or config file

        Returns:
            The normalized hostname.
        """
        hostname = hostname.lower()
        stripped = True
        while stripped:
            stripped = False
            for prefix in _STRIPPED_PREFIXES:
                if hostname.startswith(prefix):
                    hostname = hostname[len(prefix) :]
                    stripped = True
        return hostname

    def is_default(self, hostname: str) -> bool:
        """Return True if hostname refers to the public instance."""
        return self.normalize_hostname(hostname) == self.normalize_hostname(self.hostname)

    def rest_prefix(self, hostname: str) -> str:
        """Return the REST API base URL for a hostname.

        The public instance always maps to https://api.<public host>/<version>/.
        Any other host follows the same https://api.<host>/<version>/ pattern,
        reserved for self-hosted deployments.
        """
        if self.is_default(hostname):
            return f"https://api.{self.normalize_hostname(self.hostname)}/{self.api_version}/"
        return f"https://api.{hostname}/{self.api_version}/"

    def host_prefix(self, hostname: str) -> str:
        """Return the web URL prefix for a hostname."""
        return f"https://{hostname}/"


DEFAULT_INSTANCE = Instance()


def normalize_hostname(hostname: str) -> str:
    """Normalize a hostname using the default instance rules."""
    return DEFAULT_INSTANCE.normalize_hostname(hostname)


def hostname_validator(hostname: str) -> None:
    """Validate a user-supplied Bitbucket hostname.

    Raises:
        ValueError: If the hostname is empty or looks like a URL or host:port.
    """
    if len(hostname.strip()) < 1:
        raise ValueError("a value is required")
    if "/" in hostname or ":" in hostname:
        raise ValueError("invalid hostname")
