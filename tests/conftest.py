"""Pytest configuration and shared fixtures."""

import json
import os
from urllib.parse import urlsplit

import pytest
import requests
from hypothesis import settings

from bbcli.git_client import GitRemote
from bbcli.http_client import OutgoingRequest

# Configure Hypothesis profiles for different environments
settings.register_profile("ci", max_examples=100, deadline=None)
settings.register_profile("dev", max_examples=50, deadline=None)
settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "dev"))

# Environment variables that change how bb resolves hosts and credentials
BB_ENV_VARS = (
    "BB_HOST",
    "BB_TOKEN",
    "BB_ENTERPRISE_TOKEN",
    "BB_REPO",
    "BB_DEBUG",
    "DEBUG",
    "BB_CONFIG_DIR",
    "BB_DEFAULT_HOST",
    "BB_HTTP_TIMEOUT",
    "BB_PROMPT_DISABLED",
    "BB_LOG_FILE",
)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "hypothesis: marks property-based tests using Hypothesis",
    )


@pytest.fixture(autouse=True)
def clean_bb_env(monkeypatch):
    """Keep the developer's own bb environment out of every test."""
    for name in BB_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # load_config() writes LOG_LEVEL; monkeypatch restores it afterwards
    monkeypatch.setenv("LOG_LEVEL", "WARNING")


def make_response(
    status_code=200,
    body=b"",
    headers=None,
    url="https://api.bitbucket.org/2.0/",
    request=None,
):
    """Build a real requests.Response without touching the network."""
    response = requests.Response()
    response.status_code = status_code
    if isinstance(body, (dict, list)):
        body = json.dumps(body).encode("utf-8")
    elif isinstance(body, str):
        body = body.encode("utf-8")
    response._content = body
    response._content_consumed = True
    response.headers.update(headers or {})
    response.url = url
    response.request = request
    response.reason = ""
    return response


class FakeTransport:
    """Innermost transport that records requests and replays canned responses.

    ``responses`` may be a list of responses (returned in order) or a
    callable taking the OutgoingRequest.
    """

    def __init__(self, responses=None):
        self.responses = responses if responses is not None else []
        self.requests: list[OutgoingRequest] = []

    def round_trip(self, request):
        # Snapshot headers as seen by the network
        self.requests.append(request)
        request.sent_headers = dict(request.prepared.headers)
        if callable(self.responses):
            response = self.responses(request)
        elif self.responses:
            response = self.responses.pop(0)
        else:
            response = make_response(200, b"{}")
        response.request = request.prepared
        response.url = request.prepared.url
        return response


class FakeAuthConfig:
    """In-memory stand-in for AuthConfig."""

    def __init__(self, hosts=None, default=("bitbucket.org", "default"), tokens=None, env_token=False):
        self._hosts = list(hosts or [])
        self._default = default
        self._tokens = dict(tokens or {})
        self._env_token = env_token
        self.token_lookups: list[str] = []

    def hosts(self):
        return list(self._hosts)

    def default_host(self):
        return self._default

    def has_env_token(self):
        return self._env_token

    def active_token(self, hostname):
        self.token_lookups.append(hostname)
        token = self._tokens.get(hostname, "")
        return (token, "hosts.yml") if token else ("", "")


def git_remote(name, url, resolved="", push_url=None):
    """Build a GitRemote from raw URL strings."""
    return GitRemote(
        name=name,
        fetch_url=urlsplit(url) if url else None,
        push_url=urlsplit(push_url) if push_url else None,
        resolved=resolved,
    )


class IdentityTranslator:
    def translate(self, url):
        return url


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def fake_auth_config():
    return FakeAuthConfig(
        hosts=["bitbucket.org"],
        tokens={"bitbucket.org": "alice@example.com:secret-token"},
    )


@pytest.fixture
def config_dir(tmp_path, monkeypatch):
    """Point BB_CONFIG_DIR at an empty temporary directory."""
    directory = tmp_path / "bb"
    directory.mkdir()
    monkeypatch.setenv("BB_CONFIG_DIR", str(directory))
    return directory
