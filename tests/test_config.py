from pathlib import Path

import pytest

from tradehub.config import DEFAULT_DB_PATH, load_settings
from tradehub.errors import ConfigError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in (
        "TRADEHUB_DB_PATH",
        "TRADEHUB_ACCOUNT",
        "TRADEHUB_METADATA_TIMEOUT",
        "TRADEHUB_IPFS_GATEWAY",
    ):
        monkeypatch.delenv(var, raising=False)


def test_yaml_settings(tmp_path):
    config = tmp_path / "tradehub.yaml"
    config.write_text(
        "db_path: /tmp/market.db\n"
        "account: alice\n"
        "token_symbol: KWH\n"
        "metadata_timeout: 2.5\n"
    )

    settings = load_settings(config)

    assert settings.db_path == Path("/tmp/market.db")
    assert settings.account == "alice"
    assert settings.token_symbol == "KWH"
    assert settings.metadata_timeout == 2.5


def test_environment_overrides_yaml(tmp_path, monkeypatch):
    config = tmp_path / "tradehub.yaml"
    config.write_text("account: alice\n")
    monkeypatch.setenv("TRADEHUB_ACCOUNT", "bob")
    monkeypatch.setenv("TRADEHUB_DB_PATH", str(tmp_path / "env.db"))

    settings = load_settings(config)

    assert settings.account == "bob"
    assert settings.db_path == tmp_path / "env.db"


def test_empty_file_uses_defaults(tmp_path):
    config = tmp_path / "tradehub.yaml"
    config.write_text("")

    settings = load_settings(config)

    assert settings.db_path == DEFAULT_DB_PATH
    assert settings.account is None


def test_missing_explicit_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_settings(tmp_path / "nope.yaml")


@pytest.mark.parametrize("content", ["metadata_timeout: soon\n", "metadata_timeout: 0\n", "- a\n- b\n"])
def test_invalid_settings(tmp_path, content):
    config = tmp_path / "tradehub.yaml"
    config.write_text(content)

    with pytest.raises(ConfigError):
        load_settings(config)
