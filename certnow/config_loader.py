"""
Configuration loading, validation, and parsing.

Settings come from an optional YAML file and are then overridden by
command-line options. Positional run arguments (domain, email, profile,
region, secret) are never read from the file.
"""

import os
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .exceptions import ConfigurationError
from .logger import get_logger


# ACME directory URLs
LETSENCRYPT_PRODUCTION_URL = "https://acme-v02.api.letsencrypt.org/directory"
LETSENCRYPT_STAGING_URL = "https://acme-staging-v02.api.letsencrypt.org/directory"
BUYPASS_PRODUCTION_URL = "https://api.buypass.com/acme/directory"
BUYPASS_STAGING_URL = "https://api.test4.buypass.no/acme/directory"

DEFAULT_CONFIG_FILE = "certnow.yaml"
PLACEHOLDER_VALUE = "NotGenerated"


class RenewalMode(Enum):
    """Whether an existing certificate is inspected before reissuing."""
    FRESHNESS_CHECK = "freshness_check"
    ALWAYS = "always"


class CaMode(Enum):
    """
    Which ACME endpoint a certificate request goes to.

    SPLIT sends wildcard requests to Let's Encrypt and single-name requests
    to the alternate server (Buypass). UNIFIED sends everything to the
    default endpoint.
    """
    SPLIT = "split"
    UNIFIED = "unified"


@dataclass
class Settings:
    """Global settings."""
    renewal_mode: RenewalMode = RenewalMode.FRESHNESS_CHECK
    ca_mode: CaMode = CaMode.SPLIT
    expiration_threshold_days: int = 30
    work_dir: str = "."
    cleanup_after_upload: bool = True
    ignore_file: str = ".gitignore"
    letsencrypt_server: str = LETSENCRYPT_PRODUCTION_URL
    alternate_server: str = BUYPASS_PRODUCTION_URL
    use_staging: bool = False
    certbot_timeout: int = 300
    required_executables: List[str] = field(default_factory=lambda: ["certbot"])
    secret_description: str = "Wildcard certificate for {domain}"

    @property
    def default_server(self) -> str:
        """ACME endpoint used for wildcard requests and in unified mode."""
        if self.use_staging:
            return LETSENCRYPT_STAGING_URL
        return self.letsencrypt_server

    @property
    def split_server(self) -> str:
        """ACME endpoint for single-name requests in split mode."""
        if self.use_staging:
            return BUYPASS_STAGING_URL
        return self.alternate_server


@dataclass
class RunArguments:
    """Positional arguments of a single renewal run."""
    domain: str
    email: str
    aws_profile: str
    aws_region: str
    secret_name: str
    extra_args: str = ""


@dataclass
class Config:
    """Root configuration object."""
    run: RunArguments
    settings: Settings = field(default_factory=Settings)


def _expand_env_vars(value: Any) -> Any:
    """
    Expand ${VAR_NAME} references in string values.

    Unknown variables are left untouched.
    """
    if isinstance(value, str):
        def replace(match):
            return os.environ.get(match.group(1), match.group(0))

        return re.sub(r"\$\{([^}]+)\}", replace, value)

    elif isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}

    elif isinstance(value, list):
        return [_expand_env_vars(item) for item in value]

    return value


def _parse_enum(enum_cls, raw: Any, key: str):
    if isinstance(raw, enum_cls):
        return raw
    try:
        return enum_cls(str(raw).lower())
    except ValueError:
        valid = ", ".join(m.value for m in enum_cls)
        raise ConfigurationError(f"Invalid {key} '{raw}'. Must be one of: {valid}")


def _parse_bool(raw: Any, key: str) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str) and raw.lower() in ("true", "yes", "1", "on"):
        return True
    if isinstance(raw, str) and raw.lower() in ("false", "no", "0", "off"):
        return False
    raise ConfigurationError(f"Setting '{key}' must be a boolean, got '{raw}'")


def parse_settings(data: Dict[str, Any]) -> Settings:
    """
    Parse and validate the settings section.

    Args:
        data: Raw settings data from YAML (or overrides)

    Returns:
        Settings instance

    Raises:
        ConfigurationError: If a value is invalid
    """
    defaults = Settings()

    try:
        threshold = int(data.get("expiration_threshold_days", defaults.expiration_threshold_days))
        timeout = int(data.get("certbot_timeout", defaults.certbot_timeout))
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid numeric setting: {e}")

    required = data.get("required_executables", defaults.required_executables)
    if isinstance(required, str):
        required = [required]

    settings = Settings(
        renewal_mode=_parse_enum(
            RenewalMode, data.get("renewal_mode", defaults.renewal_mode), "renewal_mode"
        ),
        ca_mode=_parse_enum(CaMode, data.get("ca_mode", defaults.ca_mode), "ca_mode"),
        expiration_threshold_days=threshold,
        work_dir=str(data.get("work_dir", defaults.work_dir)),
        cleanup_after_upload=_parse_bool(
            data.get("cleanup_after_upload", defaults.cleanup_after_upload),
            "cleanup_after_upload",
        ),
        ignore_file=str(data.get("ignore_file", defaults.ignore_file)),
        letsencrypt_server=data.get("letsencrypt_server", defaults.letsencrypt_server),
        alternate_server=data.get("alternate_server", defaults.alternate_server),
        use_staging=_parse_bool(data.get("use_staging", defaults.use_staging), "use_staging"),
        certbot_timeout=timeout,
        required_executables=list(required),
        secret_description=data.get("secret_description", defaults.secret_description),
    )

    if settings.expiration_threshold_days < 1:
        raise ConfigurationError("expiration_threshold_days must be at least 1")
    if settings.expiration_threshold_days > 90:
        raise ConfigurationError("expiration_threshold_days should not exceed 90")
    if settings.certbot_timeout < 1:
        raise ConfigurationError("certbot_timeout must be a positive number of seconds")
    for key in ("letsencrypt_server", "alternate_server"):
        if not str(getattr(settings, key)).startswith("https://"):
            raise ConfigurationError(f"{key} must start with https://")

    return settings


def load_settings(config_path: Optional[str]) -> Settings:
    """
    Load settings from a YAML file.

    When no path is given, certnow.yaml in the current directory is used if
    it exists, otherwise the built-in defaults apply.

    Args:
        config_path: Path to the configuration file, or None

    Returns:
        Validated Settings instance

    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid
    """
    logger = get_logger()

    if config_path is None:
        if not Path(DEFAULT_CONFIG_FILE).exists():
            logger.debug("No configuration file, using default settings")
            return Settings()
        config_path = DEFAULT_CONFIG_FILE

    path = Path(config_path)

    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    if path.suffix not in (".yaml", ".yml"):
        raise ConfigurationError(
            f"Configuration file must be YAML (.yaml or .yml): {config_path}"
        )

    try:
        with open(path, "r") as f:
            raw_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file: {e}")
    except IOError as e:
        raise ConfigurationError(f"Failed to read configuration file: {e}")

    if not raw_data:
        raise ConfigurationError("Configuration file is empty")
    if not isinstance(raw_data, dict) or "settings" not in raw_data:
        raise ConfigurationError("Missing 'settings' section in configuration")

    data = _expand_env_vars(raw_data)
    settings = parse_settings(data.get("settings") or {})

    logger.info(f"Loaded configuration from {config_path}")
    logger.debug(f"  Renewal mode: {settings.renewal_mode.value}")
    logger.debug(f"  CA mode: {settings.ca_mode.value}")

    return settings


def apply_overrides(settings: Settings, overrides: Dict[str, Any]) -> Settings:
    """
    Apply command-line overrides on top of loaded settings.

    Keys with a None value are ignored. The merged result is validated again.

    Args:
        settings: Settings loaded from file
        overrides: Mapping of setting name to override value

    Returns:
        New validated Settings instance
    """
    merged = dict(vars(settings))
    for key, value in overrides.items():
        if value is not None:
            merged[key] = value
    return parse_settings(merged)
