"""CLI entry point for bbcli.

Subcommands:
    bb api <endpoint>       - Make an authenticated API request
    bb auth status          - Show authentication status for each host
    bb repo set-default     - Choose the default repository for this directory
"""

from __future__ import annotations

import argparse
import base64
import json
import sys
from typing import Any

import requests

from bbcli import __version__
from bbcli.api_client import (
    HTTPError,
    current_login_name,
    handle_http_error,
    is_unauthorized,
    next_page_url,
)
from bbcli.auth_config import SOURCE_HOSTS_FILE, AuthConfigError
from bbcli.base_repo import RESOLVED_BASE, AmbiguousBaseRepoError
from bbcli.config import ConfigError
from bbcli.factory import Factory
from bbcli.git_client import GitError
from bbcli.http_client import ACCEPT, AUTHORIZATION, CONTENT_TYPE, JSON_MEDIA_TYPE
from bbcli.logger import get_logger, setup_logging
from bbcli.remotes import find_by_repo
from bbcli.repo import Repository, RepoParseError
from bbcli.resolver import RemoteResolutionError

logger = get_logger(__name__)

# Errors reported to the user as a single line rather than a traceback
USER_ERRORS = (
    AmbiguousBaseRepoError,
    AuthConfigError,
    ConfigError,
    GitError,
    HTTPError,
    RemoteResolutionError,
    RepoParseError,
    requests.RequestException,
)


def build_factory() -> Factory:
    """Create the Factory used by commands."""
    return Factory(__version__)


# =============================================================================
# bb api
# =============================================================================


def parse_fields(raw_fields: list[str], typed_fields: list[str]) -> dict[str, Any]:
    """Build a JSON object from -f key=value and -F key=json-value pairs.

    Raises:
        ValueError: If a field is not in key=value form.
    """
    params: dict[str, Any] = {}
    for field in raw_fields:
        key, sep, value = field.partition("=")
        if not sep:
            raise ValueError(f"invalid field format: {field}")
        params[key] = value

    for field in typed_fields:
        key, sep, value = field.partition("=")
        if not sep:
            raise ValueError(f"invalid field format: {field}")
        try:
            params[key] = json.loads(value)
        except ValueError:
            params[key] = value
    return params


def parse_headers(raw_headers: list[str]) -> dict[str, str]:
    """Parse -H "key: value" arguments.

    Raises:
        ValueError: If a header is not in key:value form.
    """
    headers = {}
    for header in raw_headers:
        key, sep, value = header.partition(":")
        if not sep:
            raise ValueError(f"invalid header format: {header}")
        headers[key.strip()] = value.strip()
    return headers


def _read_input(path: str) -> bytes:
    if path == "-":
        return sys.stdin.buffer.read()
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as e:
        raise ValueError(f"failed to open input file: {e}") from e


def _print_body(content: bytes) -> None:
    try:
        print(json.dumps(json.loads(content), indent=2))
    except ValueError:
        print(content.decode("utf-8", errors="replace"))


def cmd_api(args: argparse.Namespace, factory: Factory) -> int:
    hostname = args.hostname
    if not hostname:
        hostname, _ = factory.auth_config().default_host()

    path = args.endpoint
    if "{workspace}" in path or "{repo_slug}" in path:
        repo = factory.base_repo(args.repo)
        path = path.replace("{workspace}", repo.workspace).replace("{repo_slug}", repo.slug)
        if not args.hostname:
            hostname = repo.host

    client = factory.api_client(verbose=args.verbose)
    if path.startswith(("http://", "https://")):
        url = path
    else:
        url = client.rest_url(hostname, path)

    body: bytes | None = None
    if args.input:
        body = _read_input(args.input)
    elif args.raw_field or args.field:
        body = json.dumps(parse_fields(args.raw_field, args.field)).encode("utf-8")

    method = (args.method or ("POST" if body is not None else "GET")).upper()
    extra_headers = parse_headers(args.header)

    while True:
        headers = {ACCEPT: JSON_MEDIA_TYPE}
        if body is not None:
            headers[CONTENT_TYPE] = JSON_MEDIA_TYPE
        headers.update(extra_headers)

        response = client.http.request(method, url, data=body, headers=headers)
        if not 200 <= response.status_code < 300:
            raise handle_http_error(response)

        if not args.silent:
            _print_body(response.content)

        if not args.paginate:
            break
        url = next_page_url(response.content)
        if not url:
            break
        # Pagination never resends the request body
        body = None
        method = "GET"

    return 0


# =============================================================================
# bb auth status
# =============================================================================


def _verify_user(factory: Factory, hostname: str, token: str) -> str:
    """Verify a credential that is not the host's active one.

    The Authorization header is set explicitly, so the plain client sends it
    as-is.

    Raises:
        HTTPError: If the API rejects the credential.
    """
    client = factory.plain_http_client()
    encoded = base64.b64encode(token.encode("utf-8")).decode("ascii")
    url = factory.api_client().rest_url(hostname, "user")
    response = client.request(
        "GET",
        url,
        headers={ACCEPT: JSON_MEDIA_TYPE, AUTHORIZATION: f"Basic {encoded}"},
    )
    if not 200 <= response.status_code < 300:
        raise handle_http_error(response)
    user = response.json()
    return user.get("username", "") if isinstance(user, dict) else ""


def cmd_auth_status(args: argparse.Namespace, factory: Factory) -> int:
    auth = factory.auth_config()

    hosts = [args.hostname] if args.hostname else auth.hosts()
    if not hosts:
        print(
            "You are not logged into any Bitbucket hosts. To log in, run: bb auth login",
            file=sys.stderr,
        )
        return 1

    client = factory.api_client()
    failed = False
    for host in hosts:
        print(host)
        token, source = auth.active_token(host)
        active_user = auth.active_user(host)

        if not token:
            print(f"  X No credentials found for {host}")
            failed = True
        else:
            try:
                login = current_login_name(client, host)
                print(f"  ✓ Logged in to {host} account {login} ({source})")
            except HTTPError as e:
                failed = True
                if is_unauthorized(e):
                    print(f"  X Failed to log in to {host} using token ({source})")
                    print("  - The token is invalid")
                else:
                    print(f"  X Failed to verify {host}: {e}")
            except requests.RequestException as e:
                failed = True
                print(f"  X Could not reach {host}: {e}")

        for user in auth.users_for_host(host):
            if user == active_user and source == SOURCE_HOSTS_FILE:
                continue
            user_token = auth.token_for_user(host, user)
            if not user_token:
                failed = True
                print(f"  X Account {user} (inactive): no token stored")
                continue
            try:
                _verify_user(factory, host, user_token)
                print(f"  - Account {user} (inactive)")
            except HTTPError as e:
                failed = True
                reason = "invalid token" if is_unauthorized(e) else str(e)
                print(f"  X Account {user} (inactive): {reason}")

    return 1 if failed else 0


# =============================================================================
# bb repo set-default
# =============================================================================


def cmd_repo_set_default(args: argparse.Namespace, factory: Factory) -> int:
    git = factory.git_client()

    if args.unset:
        # Hints may live on remotes that no longer resolve to a known host
        for git_remote in git.remotes():
            git.unset_remote_resolution(git_remote.name)
        print("✓ Unset the default repository for the current directory")
        return 0

    remotes = factory.remotes()

    if args.view:
        for remote in remotes:
            if remote.resolved == RESOLVED_BASE:
                print(remote.repo.full_name)
                return 0
        for remote in remotes:
            if remote.resolved:
                print(remote.resolved)
                return 0
        print(
            "no default repository has been set; use `bb repo set-default` to select one",
            file=sys.stderr,
        )
        return 1

    target = args.repository or args.repo
    if not target:
        if len(remotes) != 1:
            raise ValueError("a repository argument is required when several remotes qualify")
        target = remotes[0].repo.qualified_name

    selected = Repository.from_full_name(target, remotes[0].host)

    for git_remote in git.remotes():
        git.unset_remote_resolution(git_remote.name)

    try:
        remote = find_by_repo(remotes, selected)
        git.set_remote_resolution(remote.name, RESOLVED_BASE)
    except LookupError:
        primary = remotes[0]
        if selected.host != primary.host:
            raise ValueError(
                f"{selected} is not on {primary.host}, the host of remote {primary.name}"
            ) from None
        git.set_remote_resolution(primary.name, selected.full_name)

    print(f"✓ Set {selected.full_name} as the default repository for the current directory")
    return 0


# =============================================================================
# Entry point
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bb",
        description="Work with Bitbucket from the command line.",
    )
    parser.add_argument("--version", action="version", version=f"bb {__version__}")
    subparsers = parser.add_subparsers(dest="command")

    api_parser = subparsers.add_parser("api", help="Make an authenticated API request")
    api_parser.add_argument("endpoint", help="API path (e.g. repositories/{workspace}/{repo_slug})")
    api_parser.add_argument("--hostname", help="The Bitbucket hostname for the request")
    api_parser.add_argument("-X", "--method", help="The HTTP method for the request")
    api_parser.add_argument(
        "-f", "--raw-field", action="append", default=[], help="Add a string parameter"
    )
    api_parser.add_argument(
        "-F", "--field", action="append", default=[], help="Add a parameter with a JSON value"
    )
    api_parser.add_argument(
        "-H", "--header", action="append", default=[], help="Add a HTTP request header"
    )
    api_parser.add_argument("--input", help='File to use as the request body ("-" for stdin)')
    api_parser.add_argument(
        "--paginate", action="store_true", help="Fetch all pages of results"
    )
    api_parser.add_argument("--silent", action="store_true", help="Do not print the response")
    api_parser.add_argument(
        "--verbose", action="store_true", help="Include the HTTP request and response trace"
    )
    api_parser.add_argument("-R", "--repo", help="Select a repository as [HOST/]WORKSPACE/REPO")
    api_parser.set_defaults(func=cmd_api)

    auth_parser = subparsers.add_parser("auth", help="Authenticate bb with Bitbucket")
    auth_sub = auth_parser.add_subparsers(dest="auth_command", required=True)
    status_parser = auth_sub.add_parser("status", help="Show authentication status")
    status_parser.add_argument("--hostname", help="Check only a specific hostname")
    status_parser.set_defaults(func=cmd_auth_status)

    repo_parser = subparsers.add_parser("repo", help="Work with repositories")
    repo_sub = repo_parser.add_subparsers(dest="repo_command", required=True)
    set_default_parser = repo_sub.add_parser(
        "set-default", help="Set the default repository for the current directory"
    )
    set_default_parser.add_argument("repository", nargs="?", help="[HOST/]WORKSPACE/REPO")
    set_default_parser.add_argument("-R", "--repo", help="Select a repository")
    set_default_parser.add_argument(
        "-v", "--view", action="store_true", help="View the current default repository"
    )
    set_default_parser.add_argument(
        "-u", "--unset", action="store_true", help="Unset the current default repository"
    )
    set_default_parser.set_defaults(func=cmd_repo_set_default)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the bb CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(0)

    factory = build_factory()

    try:
        config = factory.config()
        setup_logging(log_file=config.log_file)
        exit_code = args.func(args, factory)
    except USER_ERRORS as e:
        logger.debug(f"{args.command} failed", exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        sys.exit(1)
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(130)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
