"""
Certbot issuance wrapper.

Runs "certbot certonly" with the Route53 DNS-01 authenticator. The DNS
challenge record is written with the same AWS profile and region used for
the zone lookup.
"""

import os
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from .config_loader import LETSENCRYPT_PRODUCTION_URL, CaMode, Settings
from .exceptions import CertbotError
from .helpers import WILDCARD_PREFIX, is_wildcard, strip_wildcard
from .logger import get_logger


@dataclass
class CertificateArtifacts:
    """Paths of the PEM files certbot writes for a lineage."""
    cert: str
    privkey: str
    chain: str
    fullchain: str

    @classmethod
    def for_domain(cls, work_dir: str, domain: str) -> "CertificateArtifacts":
        """Artifact paths under <work_dir>/live/<domain>/."""
        live_dir = Path(work_dir) / "live" / strip_wildcard(domain)
        return cls(
            cert=str(live_dir / "cert.pem"),
            privkey=str(live_dir / "privkey.pem"),
            chain=str(live_dir / "chain.pem"),
            fullchain=str(live_dir / "fullchain.pem"),
        )

    def missing(self) -> List[str]:
        """Return the artifact paths that do not exist on disk."""
        return [p for p in (self.cert, self.privkey, self.chain, self.fullchain)
                if not Path(p).is_file()]


def build_domain_set(domain: str) -> List[str]:
    """
    Get the names to request for a domain.

    A wildcard domain requests both the bare domain and its wildcard form.

    Examples:
        >>> build_domain_set("*.example.com")
        ['example.com', '*.example.com']
        >>> build_domain_set("example.com")
        ['example.com']
    """
    if is_wildcard(domain):
        base = strip_wildcard(domain)
        return [base, f"{WILDCARD_PREFIX}{base}"]
    return [domain]


def select_server(domain: str, settings: Settings) -> Optional[str]:
    """
    Pick the ACME directory URL for a request.

    Returns None when certbot should use the default endpoint, which is
    Let's Encrypt production unless staging or a custom URL is configured.
    """
    if settings.ca_mode == CaMode.SPLIT and not is_wildcard(domain):
        return settings.split_server
    if settings.default_server != LETSENCRYPT_PRODUCTION_URL:
        return settings.default_server
    return None


def build_certbot_command(
    certbot_path: str,
    domain: str,
    email: str,
    settings: Settings,
    extra_args: str = "",
) -> List[str]:
    """
    Build the certbot command line.

    Args:
        certbot_path: Path to the certbot executable
        domain: Requested domain, possibly a wildcard
        email: ACME account contact email
        settings: Global settings
        extra_args: Free-form arguments appended verbatim

    Returns:
        The argument list
    """
    work_dir = str(settings.work_dir)

    cmd = [
        certbot_path, "certonly",
        "--dns-route53",
        "--preferred-challenges", "dns",
        "--email", email,
        "--agree-tos",
        "--no-eff-email",
        "--non-interactive",
        "--config-dir", work_dir,
        "--work-dir", work_dir,
        "--logs-dir", work_dir,
    ]

    server = select_server(domain, settings)
    if server:
        cmd.extend(["--server", server])

    cmd.extend(["--domain", ",".join(build_domain_set(domain))])
    cmd.append("-q")

    if extra_args:
        cmd.extend(shlex.split(extra_args))

    return cmd


def run_certbot(
    certbot_path: str,
    domain: str,
    email: str,
    aws_profile: str,
    aws_region: str,
    settings: Settings,
    extra_args: str = "",
) -> CertificateArtifacts:
    """
    Run certbot to issue a certificate.

    Args:
        certbot_path: Path to the certbot executable
        domain: Requested domain, possibly a wildcard
        email: ACME account contact email
        aws_profile: AWS profile used by the Route53 authenticator
        aws_region: AWS region used by the Route53 authenticator
        settings: Global settings
        extra_args: Free-form arguments appended verbatim

    Returns:
        CertificateArtifacts with the paths of the issued PEM files

    Raises:
        CertbotError: If certbot fails or the expected files are missing
    """
    logger = get_logger()

    Path(settings.work_dir).mkdir(parents=True, exist_ok=True)

    if is_wildcard(domain):
        logger.info("Wildcard domain detected. Using Let's Encrypt...")
    elif settings.ca_mode == CaMode.SPLIT:
        logger.info("Wildcard domain not detected. Using BuyPass...")
    else:
        logger.info("Wildcard domain not detected. Using Let's Encrypt...")

    cmd = build_certbot_command(certbot_path, domain, email, settings, extra_args)

    env: Dict[str, str] = os.environ.copy()
    env["AWS_PROFILE"] = aws_profile
    env["AWS_DEFAULT_REGION"] = aws_region

    logger.debug(f"Running: {shlex.join(cmd)}")

    try:
        result = subprocess.run(
            cmd,
            env=env,
            capture_output=True,
            text=True,
            timeout=settings.certbot_timeout,
        )
    except subprocess.TimeoutExpired:
        raise CertbotError(f"Certbot timed out after {settings.certbot_timeout}s")
    except OSError as e:
        raise CertbotError(f"Failed to start certbot: {e}")

    if result.returncode != 0:
        logger.error(f"Certbot stderr: {result.stderr}")
        raise CertbotError(
            f"Certbot failed with exit status {result.returncode}",
            returncode=result.returncode,
        )

    if result.stdout:
        logger.debug(f"Certbot stdout: {result.stdout}")

    artifacts = CertificateArtifacts.for_domain(settings.work_dir, domain)
    missing = artifacts.missing()
    if missing:
        raise CertbotError(f"Certificate files not found: {', '.join(missing)}")

    return artifacts
