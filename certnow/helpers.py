"""
Common utility functions.

Domain name handling, certificate validity checks, prerequisite checks and
local artifact cleanup.
"""

import re
import shutil
import textwrap
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional, Union

import boto3
from botocore.exceptions import ProfileNotFound
from cryptography import x509

from .exceptions import CleanupError, MissingDependencyError
from .logger import get_logger


WILDCARD_PREFIX = "*."

INSTALL_HINTS = {
    "certbot": "pip install certbot certbot-dns-route53",
}

_PEM_BLOCK = re.compile(
    r"(-----BEGIN [A-Z0-9 ]+-----)(.*?)(-----END [A-Z0-9 ]+-----)", re.DOTALL
)


def is_wildcard(domain: str) -> bool:
    """Check if a domain is a wildcard pattern."""
    return "*" in domain


def strip_wildcard(domain: str) -> str:
    """Remove a leading "*." label from a domain."""
    if domain.startswith(WILDCARD_PREFIX):
        return domain[len(WILDCARD_PREFIX):]
    return domain


def get_base_domain(domain: str) -> str:
    """
    Get the base domain (last two labels) of a domain.

    Examples:
        >>> get_base_domain("api.eu.example.com")
        'example.com'
        >>> get_base_domain("example.com")
        'example.com'
    """
    labels = [label for label in strip_wildcard(domain).split(".") if label]
    return ".".join(labels[-2:])


def normalize_pem(text: str) -> str:
    """
    Restore line breaks in PEM data written by the space-collapsing uploader.

    Older uploads replaced every newline with a space, which leaves PEM
    that cryptography refuses to parse. Text that already contains line
    breaks is returned unchanged.

    Args:
        text: PEM text, possibly space-collapsed

    Returns:
        PEM text with one header line, 64-column body lines and a footer per block
    """
    if "\n" in text.strip():
        return text

    blocks = []
    for begin, body, end in _PEM_BLOCK.findall(text):
        lines = textwrap.wrap("".join(body.split()), 64)
        blocks.append("\n".join([begin, *lines, end]) + "\n")

    return "".join(blocks) if blocks else text


def get_certificate_expiry(pem: Union[str, bytes]) -> datetime:
    """
    Extract the expiry date from PEM certificate data.

    Only the first certificate of a bundle is considered.

    Args:
        pem: PEM certificate text or bytes

    Returns:
        Certificate expiry datetime (timezone-aware UTC)

    Raises:
        ValueError: If the data is not a PEM certificate
    """
    if isinstance(pem, bytes):
        pem = pem.decode("ascii")
    cert = x509.load_pem_x509_certificate(normalize_pem(pem).encode("ascii"))
    return cert.not_valid_after_utc


def days_remaining(expires_on: datetime, now: Optional[datetime] = None) -> float:
    """
    Calculate days remaining until expiration.

    Args:
        expires_on: Certificate expiration datetime
        now: Reference time (defaults to the current UTC time)

    Returns:
        Days remaining, fractional, negative if expired
    """
    if expires_on.tzinfo is None:
        expires_on = expires_on.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return (expires_on - now) / timedelta(days=1)


def is_fresh(
    expires_on: Optional[datetime],
    threshold_days: int = 30,
    now: Optional[datetime] = None,
) -> bool:
    """
    Check if a certificate has at least threshold_days of validity left.

    Args:
        expires_on: Certificate expiration datetime, None if unknown
        threshold_days: Minimum remaining validity in days
        now: Reference time (defaults to the current UTC time)

    Returns:
        True if the certificate does not need to be reissued yet
    """
    if expires_on is None:
        return False
    return days_remaining(expires_on, now) >= threshold_days


def format_expiration_status(expires_on: Optional[datetime], threshold_days: int = 30) -> str:
    """
    Format a human-readable expiration status.

    Args:
        expires_on: Certificate expiration datetime
        threshold_days: Days threshold for "expiring" status

    Returns:
        Formatted status string
    """
    if expires_on is None:
        return "Unknown expiration"

    days = int(days_remaining(expires_on))

    if days < 0:
        return f"EXPIRED ({abs(days)} days ago)"
    elif days == 0:
        return "EXPIRES TODAY"
    elif days < threshold_days:
        return f"EXPIRING in {days} day{'s' if days != 1 else ''}"
    else:
        return f"Valid ({days} days remaining)"


def check_prerequisites(executables: List[str], aws_profile: str) -> dict:
    """
    Check that the external tools and the AWS profile can be resolved.

    Args:
        executables: Executable names that must be on PATH
        aws_profile: AWS profile name that must exist in the local config

    Returns:
        Mapping of executable name to resolved path

    Raises:
        MissingDependencyError: If an executable or the profile is missing
    """
    logger = get_logger()
    resolved = {}

    for name in executables:
        path = shutil.which(name)
        if not path:
            hint = INSTALL_HINTS.get(name)
            message = f"{name} could not be found! Please install {name} and try again."
            if hint:
                message += f" Install with: {hint}"
            raise MissingDependencyError(message)
        logger.debug(f"Found {name}: {path}")
        resolved[name] = path

    try:
        boto3.session.Session(profile_name=aws_profile)
    except ProfileNotFound:
        raise MissingDependencyError(
            f"AWS profile '{aws_profile}' could not be found! "
            "Configure it with 'aws configure --profile' and try again."
        )

    return resolved


def read_ignore_file(ignore_file: Path) -> List[str]:
    """
    Read the path patterns listed in an ignore file.

    Blank lines, comments and negation patterns are skipped. Leading and
    trailing slashes are dropped.
    """
    logger = get_logger()
    entries = []

    for line in ignore_file.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("!"):
            logger.warning(f"Skipping negated ignore pattern: {line}")
            continue
        entry = line.strip("/")
        if entry:
            entries.append(entry)

    return entries


def cleanup_artifacts(work_dir: str, ignore_file: str) -> List[Path]:
    """
    Delete every local path listed in the ignore file.

    Entries are resolved relative to the work directory and may be glob
    patterns. Entries that resolve outside the work directory are refused.

    Args:
        work_dir: Directory certbot wrote its files to
        ignore_file: Ignore file path, relative paths resolve against the
            current directory

    Returns:
        The paths that were removed

    Raises:
        CleanupError: If the ignore file does not exist
    """
    logger = get_logger()
    root = Path(work_dir).resolve()
    ignore_path = Path(ignore_file).resolve()

    if not ignore_path.is_file():
        raise CleanupError(
            f"Ignore file not found: {ignore_path}. "
            "Certificate was uploaded but local artifacts were not removed."
        )

    removed = []
    for entry in read_ignore_file(ignore_path):
        for target in sorted(root.glob(entry)):
            if not target.exists() and not target.is_symlink():
                # already removed with a parent directory
                continue
            resolved = target.resolve()
            if resolved == root or root not in resolved.parents:
                logger.warning(f"Refusing to delete path outside work dir: {target}")
                continue
            if resolved == ignore_path:
                continue

            if target.is_dir() and not target.is_symlink():
                shutil.rmtree(target)
            else:
                target.unlink()
            logger.debug(f"Removed {target}")
            removed.append(target)

    return removed
