"""Configuration loading module.

This module handles:
- Loading account credentials from a JSON config file
- Overriding credentials from environment variables
- Parsing and validating the scan interval
"""

import json
import logging
import os
import re
from dataclasses import dataclass
from typing import Mapping, Optional

# Configure module logger
logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "/config.json"
DEFAULT_INTERVAL = "30m"
MIN_INTERVAL_SECONDS = 10

# Config file key -> environment variable override
ENV_OVERRIDES = {
    "accountNumber": "OVO_ACCOUNT_NUMBER",
    "username": "OVO_USERNAME",
    "password": "OVO_PASSWORD",
}

_DURATION_UNITS = {
    "ms": 0.001,
    "s": 1,
    "m": 60,
    "h": 3600,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")


class ConfigError(Exception):
    """Exception raised for missing or invalid configuration."""
    pass


@dataclass(frozen=True)
class AccountInfo:
    """OVO account number and login credentials.

    Attributes:
        account_number: Account whose supply points are scanned
        username: Login username (email)
        password: Login password
    """
    account_number: str
    username: str
    password: str

    def __repr__(self) -> str:
        return f"AccountInfo(account_number={self.account_number!r}, username={self.username!r})"


def load_config(path: str, environ: Optional[Mapping[str, str]] = None) -> AccountInfo:
    """Load account credentials from a JSON config file.

    The file holds an object with accountNumber, username and password.
    Each field can be overridden by OVO_ACCOUNT_NUMBER, OVO_USERNAME and
    OVO_PASSWORD.

    Args:
        path: Path to the JSON config file
        environ: Environment to read overrides from (default: os.environ)

    Returns:
        AccountInfo with all fields populated

    Raises:
        ConfigError: If the file cannot be read or a field is missing
    """
    if environ is None:
        environ = os.environ

    logger.info(f"Loading config from {path}")
    try:
        with open(path, "r") as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigError(f"Failed to read config {path}: {e}")
    except ValueError as e:
        raise ConfigError(f"Failed to decode config {path}: {e}")

    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must contain a JSON object")

    values = {}
    for key, env_name in ENV_OVERRIDES.items():
        value = environ.get(env_name) or data.get(key) or ""
        if not isinstance(value, str):
            value = str(value)
        if not value:
            raise ConfigError(f"Config {key} is missing")
        values[key] = value

    return AccountInfo(
        account_number=values["accountNumber"],
        username=values["username"],
        password=values["password"],
    )


def parse_interval(text: str) -> float:
    """Parse a duration such as 30m, 1h30m or 45s into seconds.

    Raises:
        ConfigError: If the text is not a valid duration or is shorter
            than MIN_INTERVAL_SECONDS
    """
    text = (text or "").strip()
    if not text or _DURATION_PART.sub("", text):
        raise ConfigError(f"Invalid interval: {text!r}")

    seconds = sum(
        float(amount) * _DURATION_UNITS[unit]
        for amount, unit in _DURATION_PART.findall(text)
    )
    if seconds < MIN_INTERVAL_SECONDS:
        raise ConfigError(f"Update interval must be at least {MIN_INTERVAL_SECONDS} seconds")
    return seconds
