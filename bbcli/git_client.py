"""
Git remote access for bbcli.

Reads the remotes of the current repository with the git executable,
including the "bb-resolved" hint that ``bb repo set-default`` stores in git
config, and translates SSH host aliases to real hostnames.
"""

import re
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import SplitResult, urlsplit

from bbcli.logger import get_logger

logger = get_logger(__name__)

RESOLVED_CONFIG_KEY = "bb-resolved"

# "origin\thttps://bitbucket.org/ws/repo.git (fetch)"
_REMOTE_LINE_RE = re.compile(r"^(\S+)\s+(\S+)\s+\((fetch|push)\)$")

# scp-like syntax: [user@]host:path, as long as no slash precedes the colon
_SCP_LIKE_RE = re.compile(r"^(?:[^@/:]+@)?[^@/:]+:(?!//)")


class GitError(Exception):
    """Raised when a git command fails."""

    def __init__(self, message: str, stderr: str = ""):
        super().__init__(message)
        self.stderr = stderr


@dataclass
class GitRemote:
    """A git remote as configured in the local repository.

    Attributes:
        name: Remote name (e.g. "origin")
        fetch_url: Parsed fetch URL, if any
        push_url: Parsed push URL, if any
        resolved: Value of remote.<name>.bb-resolved ("" if unset)
    """

    name: str
    fetch_url: SplitResult | None = None
    push_url: SplitResult | None = None
    resolved: str = ""


def is_url(raw: str) -> bool:
    """Return True if raw looks like a git URL (scheme or scp-like syntax)."""
    return "://" in raw or bool(_SCP_LIKE_RE.match(raw))


def parse_remote_url(raw: str) -> SplitResult:
    """Parse a git remote URL.

    scp-like values such as "git@bitbucket.org:ws/repo.git" become
    "ssh://git@bitbucket.org/ws/repo.git". The "git+ssh" and "ssh+git"
    schemes are treated as "ssh".

    Raises:
        ValueError: If raw is not a URL.
    """
    if "://" not in raw:
        if not _SCP_LIKE_RE.match(raw):
            raise ValueError(f"not a git URL: {raw}")
        host_part, _, path = raw.partition(":")
        raw = f"ssh://{host_part}/{path.lstrip('/')}"

    parsed = urlsplit(raw)
    if parsed.scheme in ("git+ssh", "ssh+git"):
        parsed = parsed._replace(scheme="ssh")
    return parsed


def parse_remotes(output: str) -> list[GitRemote]:
    """Parse `git remote -v` output into GitRemote entries, preserving order."""
    remotes: dict[str, GitRemote] = {}
    for line in output.splitlines():
        match = _REMOTE_LINE_RE.match(line.strip())
        if not match:
            continue
        name, raw_url, kind = match.groups()
        remote = remotes.setdefault(name, GitRemote(name=name))

        try:
            url = parse_remote_url(raw_url)
        except ValueError:
            logger.debug(f"Ignoring unparseable URL for remote {name}: {raw_url}")
            continue

        if kind == "fetch":
            remote.fetch_url = url
        else:
            remote.push_url = url
    return list(remotes.values())


class SSHTranslator:
    """Rewrites SSH URLs whose host is an alias in the user's SSH config.

    Uses `ssh -G <alias>` to read the effective hostname. Results are cached
    per alias. If ssh is not available, URLs are returned unchanged.
    """

    def __init__(self, ssh_command: str = "ssh"):
        self.ssh_command = ssh_command
        self._cache: dict[str, str] = {}
        self._lock = threading.Lock()
        self._ssh_missing = False

    def translate(self, url: SplitResult) -> SplitResult:
        if url.scheme != "ssh" or not url.hostname:
            return url

        hostname = self._resolve(url.hostname)
        if hostname == url.hostname:
            return url

        netloc = hostname
        if url.username:
            netloc = f"{url.username}@{hostname}"
        return url._replace(netloc=netloc)

    def _resolve(self, alias: str) -> str:
        with self._lock:
            if alias in self._cache:
                return self._cache[alias]
            if self._ssh_missing:
                return alias

            hostname = alias
            try:
                result = subprocess.run(
                    [self.ssh_command, "-G", alias],
                    capture_output=True,
                    text=True,
                    check=True,
                    timeout=5,
                )
                for line in result.stdout.splitlines():
                    key, _, value = line.partition(" ")
                    if key.lower() == "hostname" and value:
                        hostname = value.strip().lower()
                        break
            except FileNotFoundError:
                logger.debug("ssh not found; SSH host aliases will not be translated")
                self._ssh_missing = True
            except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
                logger.debug(f"ssh -G {alias} failed: {e}")

            self._cache[alias] = hostname
            return hostname


class GitClient:
    """Runs git commands in a working directory."""

    def __init__(self, cwd: str | Path | None = None, git_command: str = "git"):
        self.cwd = cwd
        self.git_command = git_command

    def _run(self, args: list[str], check: bool = True) -> subprocess.CompletedProcess[str]:
        """
        Run a git command.

        Raises:
            GitError: If git is missing, or the command fails and check=True
        """
        cmd = [self.git_command] + args
        logger.debug(f"Running git command: {' '.join(cmd)}")
        try:
            return subprocess.run(cmd, cwd=self.cwd, capture_output=True, text=True, check=check)
        except FileNotFoundError as e:
            raise GitError("git executable not found; please install git") from e
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or "").strip()
            raise GitError(f"git {' '.join(args)} failed: {stderr}", stderr=stderr) from e

    def remotes(self) -> list[GitRemote]:
        """Return the repository's remotes with their resolution hints.

        Raises:
            GitError: If the working directory is not a git repository.
        """
        result = self._run(["remote", "-v"])
        remotes = parse_remotes(result.stdout)

        hints = self._run(
            ["config", "--get-regexp", rf"^remote\..*\.{RESOLVED_CONFIG_KEY}$"], check=False
        )
        # Exit code 1 means no matching keys
        if hints.returncode not in (0, 1):
            raise GitError(f"git config failed: {hints.stderr.strip()}", stderr=hints.stderr)

        by_name = {r.name: r for r in remotes}
        for line in hints.stdout.splitlines():
            key, _, value = line.partition(" ")
            name = key[len("remote.") : -len(f".{RESOLVED_CONFIG_KEY}")]
            if name in by_name:
                by_name[name].resolved = value.strip()
        return remotes

    def set_remote_resolution(self, name: str, resolution: str) -> None:
        """Store a resolution hint on a remote."""
        self._run(["config", "--add", f"remote.{name}.{RESOLVED_CONFIG_KEY}", resolution])

    def unset_remote_resolution(self, name: str) -> None:
        """Remove all resolution hints from a remote. Missing hints are ignored."""
        result = self._run(
            ["config", "--unset-all", f"remote.{name}.{RESOLVED_CONFIG_KEY}"], check=False
        )
        # Exit code 5 means the key did not exist
        if result.returncode not in (0, 5):
            raise GitError(
                f"git config --unset-all failed: {result.stderr.strip()}", stderr=result.stderr
            )
