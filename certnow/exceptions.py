"""
Error taxonomy for a renewal run.

Every error is fatal to the run. Each class carries the process exit code
that main() returns for it.
"""

from typing import Optional


class CertNowError(Exception):
    """Base class for all certnow errors."""

    exit_code = 1


class UsageError(CertNowError):
    """Raised when the command line is malformed."""
    pass


class MissingDependencyError(CertNowError):
    """Raised when a required executable or cloud profile cannot be resolved."""
    pass


class ConfigurationError(CertNowError):
    """Raised when configuration is invalid or missing."""

    exit_code = 2


class ZoneNotFoundError(CertNowError):
    """Raised when no hosted zone owns the requested domain."""

    def __init__(self, domain: str, base_domain: Optional[str] = None):
        self.domain = domain
        self.base_domain = base_domain
        message = f"No Route53 hosted zone for {domain} found"
        if base_domain and base_domain != domain:
            message += f" (also tried base domain {base_domain})"
        super().__init__(message)


class Route53Error(CertNowError):
    """Raised when listing hosted zones fails."""
    pass


class SecretStoreError(CertNowError):
    """Raised when a Secrets Manager operation fails."""
    pass


class CertbotError(CertNowError):
    """
    Raised when Certbot operations fail.

    When certbot itself exits non-zero, its return code becomes the exit code
    of the run.
    """

    def __init__(self, message: str, returncode: Optional[int] = None):
        super().__init__(message)
        self.returncode = returncode
        if returncode and returncode > 0:
            self.exit_code = returncode


class CleanupError(CertNowError):
    """Raised when local artifacts cannot be cleaned up after an upload."""
    pass
