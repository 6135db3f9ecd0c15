"""Unit tests for the auth config module."""

import pytest
import yaml

from bbcli.auth_config import (
    AuthConfig,
    AuthConfigError,
    AuthConfigLoadError,
)
from bbcli.instance import Instance
from bbcli.logger import get_masking_filter

HOSTS = {
    "bitbucket.org": {
        "user": "alice@example.com",
        "users": {
            "alice@example.com": {"token": "alice-token"},
            "bob@example.com": {"token": "bob-token"},
        },
    },
    "bb.example.com": {
        "users": {"carol@example.com": {"token": "carol-token"}},
    },
}


@pytest.mark.unit
class TestAuthConfigLoad:
    """Tests for AuthConfig.load."""

    def test_missing_file(self, tmp_path):
        config = AuthConfig.load(tmp_path / "hosts.yml")
        assert config.hosts() == []

    def test_loads_hosts(self, tmp_path):
        path = tmp_path / "hosts.yml"
        path.write_text(yaml.safe_dump(HOSTS, sort_keys=False))

        config = AuthConfig.load(path)

        assert config.hosts() == ["bitbucket.org", "bb.example.com"]

    def test_empty_file(self, tmp_path):
        path = tmp_path / "hosts.yml"
        path.write_text("")
        assert AuthConfig.load(path).hosts() == []

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "hosts.yml"
        path.write_text("bitbucket.org: [unclosed")
        with pytest.raises(AuthConfigLoadError, match="Failed to parse"):
            AuthConfig.load(path)

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "hosts.yml"
        path.write_text("- bitbucket.org\n")
        with pytest.raises(AuthConfigLoadError, match="must contain a mapping"):
            AuthConfig.load(path)

    def test_invalid_host_entry(self, tmp_path):
        path = tmp_path / "hosts.yml"
        path.write_text("bitbucket.org: just-a-string\n")
        with pytest.raises(AuthConfigError, match="Invalid entry for host"):
            AuthConfig.load(path)

    def test_host_keys_are_normalized(self, tmp_path):
        path = tmp_path / "hosts.yml"
        path.write_text(yaml.safe_dump({"API.Bitbucket.org": HOSTS["bitbucket.org"]}))
        assert AuthConfig.load(path).hosts() == ["bitbucket.org"]


@pytest.mark.unit
class TestHosts:
    """Tests for hosts and default_host."""

    def test_bb_token_adds_public_host(self):
        config = AuthConfig(environ={"BB_TOKEN": "me:tok"})
        assert config.hosts() == ["bitbucket.org"]

    def test_enterprise_token_needs_bb_host(self):
        assert AuthConfig(environ={"BB_ENTERPRISE_TOKEN": "me:tok"}).hosts() == []

        config = AuthConfig(environ={"BB_ENTERPRISE_TOKEN": "me:tok", "BB_HOST": "bb.example.com"})
        assert config.hosts() == ["bb.example.com"]

    def test_default_host_from_env(self):
        config = AuthConfig(HOSTS, environ={"BB_HOST": "WWW.Example.com"})
        assert config.default_host() == ("example.com", "BB_HOST")

    def test_default_host_single_host(self):
        config = AuthConfig({"bb.example.com": HOSTS["bb.example.com"]}, environ={})
        assert config.default_host() == ("bb.example.com", "hosts")

    def test_default_host_implicit(self):
        assert AuthConfig(HOSTS, environ={}).default_host() == ("bitbucket.org", "default")
        assert AuthConfig(environ={}).default_host() == ("bitbucket.org", "default")

    def test_custom_instance(self):
        config = AuthConfig(environ={"BB_TOKEN": "me:tok"}, instance=Instance(hostname="bb.test"))
        assert config.hosts() == ["bb.test"]
        assert config.default_host() == ("bb.test", "hosts")


@pytest.mark.unit
class TestTokens:
    """Tests for credential lookup."""

    def test_active_token_from_file(self):
        config = AuthConfig(HOSTS, environ={})
        assert config.active_token("bitbucket.org") == ("alice@example.com:alice-token", "hosts.yml")

    def test_active_token_normalizes_host(self):
        config = AuthConfig(HOSTS, environ={})
        assert config.active_token("api.bitbucket.org")[0] == "alice@example.com:alice-token"

    def test_single_user_is_active(self):
        config = AuthConfig(HOSTS, environ={})
        assert config.active_user("bb.example.com") == "carol@example.com"
        assert config.active_token("bb.example.com")[0] == "carol@example.com:carol-token"

    def test_env_token_wins_for_public_host(self):
        config = AuthConfig(HOSTS, environ={"BB_TOKEN": "env:token"})
        assert config.active_token("bitbucket.org") == ("env:token", "BB_TOKEN")
        assert config.active_token("bb.example.com")[1] == "hosts.yml"

    def test_enterprise_token_for_other_hosts(self):
        config = AuthConfig(HOSTS, environ={"BB_ENTERPRISE_TOKEN": "ent:token"})
        assert config.active_token("bb.example.com") == ("ent:token", "BB_ENTERPRISE_TOKEN")
        assert config.active_token("bitbucket.org")[1] == "hosts.yml"

    def test_unknown_host(self):
        assert AuthConfig(HOSTS, environ={}).active_token("nowhere.test") == ("", "")

    def test_users_and_tokens(self):
        config = AuthConfig(HOSTS, environ={})
        assert config.users_for_host("bitbucket.org") == ["alice@example.com", "bob@example.com"]
        assert config.token_for_user("bitbucket.org", "bob@example.com") == "bob@example.com:bob-token"
        assert config.token_for_user("bitbucket.org", "nobody") == ""

    def test_has_env_token(self):
        assert not AuthConfig(HOSTS, environ={}).has_env_token()
        assert AuthConfig(environ={"BB_ENTERPRISE_TOKEN": "x:y"}).has_env_token()

    def test_tokens_are_registered_for_masking(self):
        AuthConfig(HOSTS, environ={"BB_TOKEN": "env-user:env-secret"})
        masking = get_masking_filter()
        assert masking._mask_value("token=alice@example.com:alice-token") == "token=<REDACTED>"
        assert "env-secret" not in masking._mask_value("env-user:env-secret")
