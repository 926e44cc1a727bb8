"""
certnow: DNS-01 certificate issuance into AWS Secrets Manager.

This package contains:
- route53: Route53 hosted zone lookup
- secretstore: Secrets Manager bootstrap, lookup and upload
- certbot: Certbot issuance wrapper
- config_loader: Settings loading and validation
- helpers: Domain, validity, prerequisite and cleanup helpers
- exceptions: Error taxonomy with exit codes
- logger: Centralized logging setup
"""

from .logger import setup_logger, get_logger
from .config_loader import (
    load_settings,
    Config,
    Settings,
    RunArguments,
    RenewalMode,
    CaMode,
)
from .exceptions import (
    CertNowError,
    UsageError,
    MissingDependencyError,
    ConfigurationError,
    ZoneNotFoundError,
    Route53Error,
    SecretStoreError,
    CertbotError,
    CleanupError,
)
from .route53 import Route53Client, HostedZone, find_hosted_zone
from .secretstore import SecretsManagerClient, StoredCertificate, build_secret_value
from .certbot import run_certbot, build_domain_set, CertificateArtifacts
from .helpers import is_fresh, get_certificate_expiry, cleanup_artifacts

__version__ = "1.0.0"

__all__ = [
    # Logger
    "setup_logger",
    "get_logger",
    # Config
    "load_settings",
    "Config",
    "Settings",
    "RunArguments",
    "RenewalMode",
    "CaMode",
    # Errors
    "CertNowError",
    "UsageError",
    "MissingDependencyError",
    "ConfigurationError",
    "ZoneNotFoundError",
    "Route53Error",
    "SecretStoreError",
    "CertbotError",
    "CleanupError",
    # Route53
    "Route53Client",
    "HostedZone",
    "find_hosted_zone",
    # Secrets Manager
    "SecretsManagerClient",
    "StoredCertificate",
    "build_secret_value",
    # Certbot
    "run_certbot",
    "build_domain_set",
    "CertificateArtifacts",
    # Helpers
    "is_fresh",
    "get_certificate_expiry",
    "cleanup_artifacts",
]
