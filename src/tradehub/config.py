"""Settings loaded from config/tradehub.yaml and the environment."""

import os
from dataclasses import dataclass
from pathlib import Path

import yaml
from dotenv import load_dotenv

from .errors import ConfigError
from .hub import DEFAULT_NAME, DEFAULT_SYMBOL

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config" / "tradehub.yaml"
DEFAULT_DB_PATH = Path.home() / ".local" / "share" / "tradehub" / "tradehub.db"
DEFAULT_IPFS_GATEWAY = "https://ipfs.io/ipfs/"


@dataclass
class Settings:
    """Runtime settings for the CLI and persistence layer."""

    db_path: Path = DEFAULT_DB_PATH
    account: str | None = None  # default caller for CLI commands
    token_name: str = DEFAULT_NAME
    token_symbol: str = DEFAULT_SYMBOL
    metadata_timeout: float = 15.0
    ipfs_gateway: str = DEFAULT_IPFS_GATEWAY


def _read_yaml(path: Path) -> dict:
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Could not parse {path}: {e}")
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping")
    return data


def _as_float(value, key: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be a number, got {value!r}")


def load_settings(config_path: Path | None = None) -> Settings:
    """Build settings from YAML, then apply environment overrides.

    An explicit ``config_path`` must exist; the default file is optional.
    Environment variables (TRADEHUB_DB_PATH, TRADEHUB_ACCOUNT,
    TRADEHUB_METADATA_TIMEOUT, TRADEHUB_IPFS_GATEWAY) win over the file.
    """
    load_dotenv()

    if config_path is not None and not Path(config_path).exists():
        raise ConfigError(f"Config file not found: {config_path}")
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    data = _read_yaml(path) if path.exists() else {}

    settings = Settings()
    if data.get("db_path"):
        settings.db_path = Path(data["db_path"]).expanduser()
    if data.get("account"):
        settings.account = str(data["account"])
    if data.get("token_name"):
        settings.token_name = str(data["token_name"])
    if data.get("token_symbol"):
        settings.token_symbol = str(data["token_symbol"])
    if "metadata_timeout" in data:
        settings.metadata_timeout = _as_float(data["metadata_timeout"], "metadata_timeout")
    if data.get("ipfs_gateway"):
        settings.ipfs_gateway = str(data["ipfs_gateway"])

    if os.environ.get("TRADEHUB_DB_PATH"):
        settings.db_path = Path(os.environ["TRADEHUB_DB_PATH"]).expanduser()
    if os.environ.get("TRADEHUB_ACCOUNT"):
        settings.account = os.environ["TRADEHUB_ACCOUNT"]
    if os.environ.get("TRADEHUB_METADATA_TIMEOUT"):
        settings.metadata_timeout = _as_float(
            os.environ["TRADEHUB_METADATA_TIMEOUT"], "TRADEHUB_METADATA_TIMEOUT"
        )
    if os.environ.get("TRADEHUB_IPFS_GATEWAY"):
        settings.ipfs_gateway = os.environ["TRADEHUB_IPFS_GATEWAY"]

    if settings.metadata_timeout <= 0:
        raise ConfigError("metadata_timeout must be positive")
    return settings
