"""Configuration for ga4-cli.

The OAuth client id and secret are resolved once at startup, in order:

1. ``CLIENT_ID`` / ``CLIENT_SECRET`` (or ``GOOGLE_CLIENT_ID`` /
   ``GOOGLE_CLIENT_SECRET``) in the environment
2. a ``.env`` file, loaded without overriding the environment
3. the ``ga4:`` section of ``~/.ga4-cli/config.yaml``
"""
import logging
import os
import shutil
from dataclasses import dataclass
from typing import Optional

import yaml
from dotenv import find_dotenv, load_dotenv

from .errors import MissingConfiguration

logger = logging.getLogger(__name__)

CONFIG_DIR = os.path.join(os.path.expanduser("~"), ".ga4-cli")
CONFIG_FILE = os.path.join(CONFIG_DIR, "config.yaml")
TOKEN_FILE = os.path.join(CONFIG_DIR, "token.json")
ERROR_LOG_FILE = os.path.join(CONFIG_DIR, "errors.log")

CLIENT_ID_VARS = ("CLIENT_ID", "GOOGLE_CLIENT_ID")
CLIENT_SECRET_VARS = ("CLIENT_SECRET", "GOOGLE_CLIENT_SECRET")


@dataclass(frozen=True)
class Config:
    client_id: Optional[str]
    client_secret: Optional[str]
    token_path: str = TOKEN_FILE
    property_id: Optional[str] = None

    def require_client(self):
        """Raise MissingConfiguration unless both OAuth secrets are set."""
        missing = []
        if not self.client_id:
            missing.append("CLIENT_ID")
        if not self.client_secret:
            missing.append("CLIENT_SECRET")
        if missing:
            raise MissingConfiguration(
                f"{' and '.join(missing)} must be set in the environment, "
                f"a .env file, or {CONFIG_FILE}"
            )


def ensure_config_dir(path=CONFIG_DIR):
    if not os.path.exists(path):
        os.makedirs(path, exist_ok=True)


def _first_env(names):
    for name in names:
        value = os.environ.get(name)
        if value and value.strip():
            return value.strip()
    return None


def read_config_file(path=CONFIG_FILE):
    """Return the ``ga4`` section of a YAML config file, or {} if absent."""
    if not os.path.exists(path):
        return {}
    with open(path, "r") as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Invalid config: {path} is not a mapping")
    section = raw.get("ga4") or {}
    if not isinstance(section, dict):
        raise ValueError('Invalid config: "ga4" must be a mapping')
    return section


def load_config(env_file=None, config_path=CONFIG_FILE, token_path=TOKEN_FILE):
    """Resolve the process-wide Config.

    Absent secrets are not an error here; the Authenticator raises
    MissingConfiguration when it actually needs them.
    """
    if env_file:
        load_dotenv(env_file, override=False)
    else:
        load_dotenv(find_dotenv(usecwd=True), override=False)

    file_cfg = read_config_file(config_path)

    client_id = _first_env(CLIENT_ID_VARS) or file_cfg.get("client_id")
    client_secret = _first_env(CLIENT_SECRET_VARS) or file_cfg.get("client_secret")
    property_id = os.environ.get("GA4_PROPERTY_ID") or file_cfg.get("property_id")

    logger.debug(
        "Config resolved (client_id=%s, config_file=%s)",
        "set" if client_id else "missing",
        config_path if file_cfg else "none",
    )
    return Config(
        client_id=client_id,
        client_secret=client_secret,
        token_path=token_path,
        property_id=str(property_id) if property_id else None,
    )


def init_config(config_path, target=CONFIG_FILE):
    """Validate a YAML config file and install it as the user config."""
    resolved = os.path.normpath(os.path.abspath(config_path))
    if not os.path.exists(resolved):
        raise FileNotFoundError(f"Config file not found: {resolved}")

    section = read_config_file(resolved)
    if not section:
        raise ValueError('Invalid config: missing "ga4" section')
    for key in ("client_id", "client_secret"):
        if not section.get(key):
            raise ValueError(f'Invalid config: missing "ga4.{key}"')

    ensure_config_dir(os.path.dirname(target))
    shutil.copy(resolved, target)
    return section
