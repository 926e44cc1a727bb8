#!/usr/bin/env python3
"""
Route53 DNS-01 Certificate Renewal into AWS Secrets Manager - Main Entry Point.

Issues (or renews) a certificate for a domain with Certbot, validating it
through a Route53 hosted zone, and stores the PEM material as a JSON secret
in AWS Secrets Manager.

Usage:
    python main.py [options] <domain> <email> <aws_profile> <aws_region> <aws_secret_name> [<certbot args> ...]

    Options go before the domain. Everything after the secret name is passed
    to certbot unchanged.

    # Wildcard certificate (example.com + *.example.com) from Let's Encrypt
    python main.py '*.example.com' ops@example.com prod eu-west-1 certs/example

    # Always reissue, even if the stored certificate is still valid
    python main.py --no-freshness-check example.com ops@example.com prod eu-west-1 certs/example

    # Arguments after the secret name go to certbot
    python main.py example.com ops@example.com prod eu-west-1 certs/example --dry-run
"""

import argparse
import json
import shlex
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from certnow.certbot import build_domain_set, run_certbot
from certnow.config_loader import (
    CaMode,
    Config,
    RenewalMode,
    RunArguments,
    apply_overrides,
    load_settings,
)
from certnow.exceptions import CertNowError, ConfigurationError, UsageError
from certnow.helpers import (
    check_prerequisites,
    cleanup_artifacts,
    format_expiration_status,
    get_certificate_expiry,
    is_fresh,
)
from certnow.logger import get_logger, setup_logger
from certnow.route53 import Route53Client
from certnow.secretstore import SecretsManagerClient, upload_certificate


USAGE = "certnow [options] <domain> <email> <aws_profile> <aws_region> <aws_secret_name> [<extra_certbot_args> ...]"


class RenewalStatus(Enum):
    """Outcome of a renewal run."""
    RENEWED = "renewed"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class RenewalResult:
    """Result of a renewal run."""
    domain: str
    secret_name: str
    status: RenewalStatus
    message: str
    domains: Optional[List[str]] = None
    expires_on: Optional[datetime] = None
    secret_created: bool = False
    removed_paths: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "domain": self.domain,
            "secret_name": self.secret_name,
            "status": self.status.value.upper(),
            "message": self.message,
            "domains": self.domains,
            "expires_on": self.expires_on.isoformat() if self.expires_on else None,
            "secret_created": self.secret_created,
            "removed_paths": self.removed_paths,
        }


@dataclass
class ExecutionSummary:
    """Execution summary for a run, printed with --json-summary."""
    started_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    completed_at: Optional[str] = None
    renewal_mode: str = RenewalMode.FRESHNESS_CHECK.value
    ca_mode: str = CaMode.SPLIT.value
    success: bool = True
    exit_code: int = 0
    result: Optional[RenewalResult] = None
    errors: List[str] = field(default_factory=list)

    def add_error(self, error: str, exit_code: int = 1) -> None:
        """Record a fatal error."""
        self.errors.append(error)
        self.success = False
        self.exit_code = exit_code

    def finalize(self) -> None:
        """Mark execution as complete."""
        self.completed_at = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "renewal_mode": self.renewal_mode,
            "ca_mode": self.ca_mode,
            "success": self.success,
            "exit_code": self.exit_code,
            "result": self.result.to_dict() if self.result else None,
            "errors": self.errors,
        }

    def to_json(self, indent: int = 2) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)


class ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that reports usage errors with exit status 1."""

    def error(self, message: str):
        raise UsageError(f"{self.prog}: error: {message}")


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Raises:
        UsageError: If the arguments are malformed
    """
    parser = ArgumentParser(
        prog="certnow",
        usage=USAGE,
        description="Issue a certificate via Route53 DNS-01 and store it in AWS Secrets Manager",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s '*.example.com' ops@example.com prod eu-west-1 certs/example
  %(prog)s example.com ops@example.com prod eu-west-1 certs/example --key-type ecdsa
  %(prog)s --ca-mode unified example.com ops@example.com prod eu-west-1 certs/example
  %(prog)s --staging example.com ops@example.com prod eu-west-1 certs/example --dry-run

certnow options must come before <domain>; everything after <aws_secret_name>
is passed to certbot unchanged.
        """,
    )

    parser.add_argument("domain", help="Domain, optionally a wildcard such as '*.example.com'")
    parser.add_argument("email", help="Contact email for the ACME account")
    parser.add_argument("aws_profile", help="AWS profile used for Route53 and Secrets Manager")
    parser.add_argument("aws_region", help="AWS region")
    parser.add_argument("secret_name", help="Secrets Manager secret name")
    parser.add_argument(
        "extra_args",
        nargs=argparse.REMAINDER,
        help="Additional certbot arguments, everything after the secret name is passed through",
    )

    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to YAML settings file (default: certnow.yaml if present)",
    )
    parser.add_argument(
        "--freshness-check",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Skip issuance while the stored certificate is still valid (default: on)",
    )
    parser.add_argument(
        "--threshold",
        type=int,
        default=None,
        help="Minimum remaining validity in days for a stored certificate (default: 30)",
    )
    parser.add_argument(
        "--ca-mode",
        choices=[m.value for m in CaMode],
        default=None,
        help="'split': non-wildcard requests go to BuyPass; 'unified': all go to Let's Encrypt",
    )
    parser.add_argument(
        "--work-dir",
        type=str,
        default=None,
        help="Certbot config/work/logs directory (default: current directory)",
    )
    parser.add_argument(
        "--cleanup",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Delete the paths listed in the ignore file after upload (default: on)",
    )
    parser.add_argument(
        "--ignore-file",
        type=str,
        default=None,
        help="File listing the local paths to delete (default: .gitignore)",
    )
    parser.add_argument(
        "--staging",
        action="store_true",
        default=None,
        help="Use the staging endpoints (Let's Encrypt, and Buypass in split mode)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose/debug logging",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored output",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Also write log output to this file",
    )
    parser.add_argument(
        "--json-summary",
        action="store_true",
        help="Output machine-readable JSON summary at the end of execution",
    )

    return parser.parse_args(argv)


def join_extra_args(extra: List[str]) -> str:
    """
    Turn the pass-through arguments back into a single certbot argument string.

    A single quoted argument such as "--key-type ecdsa" is kept as written
    so it is split into words later. Other arguments are shell-quoted.
    """
    if extra and extra[0] == "--":
        extra = extra[1:]
    return " ".join(arg if any(c.isspace() for c in arg) else shlex.quote(arg) for arg in extra)


def build_config(args: argparse.Namespace) -> Config:
    """
    Build the run configuration from parsed arguments.

    Settings are loaded from the YAML file first, then overridden by options.
    """
    settings = load_settings(args.config)

    renewal_mode = None
    if args.freshness_check is not None:
        renewal_mode = RenewalMode.FRESHNESS_CHECK if args.freshness_check else RenewalMode.ALWAYS

    settings = apply_overrides(settings, {
        "renewal_mode": renewal_mode,
        "expiration_threshold_days": args.threshold,
        "ca_mode": args.ca_mode,
        "work_dir": args.work_dir,
        "cleanup_after_upload": args.cleanup,
        "ignore_file": args.ignore_file,
        "use_staging": args.staging,
    })

    return Config(
        run=RunArguments(
            domain=args.domain.strip(),
            email=args.email.strip(),
            aws_profile=args.aws_profile,
            aws_region=args.aws_region,
            secret_name=args.secret_name,
            extra_args=join_extra_args(args.extra_args or []),
        ),
        settings=settings,
    )


def check_stored_certificate(
    secrets: SecretsManagerClient,
    secret_name: str,
    threshold_days: int,
) -> Optional[datetime]:
    """
    Inspect the certificate already stored in the secret.

    Args:
        secrets: SecretsManagerClient instance
        secret_name: Name of the secret
        threshold_days: Minimum remaining validity in days

    Returns:
        The stored certificate's expiry if it is still fresh, otherwise None
    """
    logger = get_logger()

    stored = secrets.get_certificate(secret_name)
    if stored.is_placeholder:
        logger.info("No certificate stored yet.")
        return None

    try:
        expires_on = get_certificate_expiry(stored.certificate)
    except ValueError as e:
        logger.warning(f"Stored certificate could not be parsed, reissuing: {e}")
        return None

    logger.info(f"Stored certificate: {format_expiration_status(expires_on, threshold_days)}")

    if is_fresh(expires_on, threshold_days):
        return expires_on
    return None


def renew_certificate(
    config: Config,
    route53: Optional[Route53Client] = None,
    secrets: Optional[SecretsManagerClient] = None,
) -> RenewalResult:
    """
    Run the full renewal sequence for one domain.

    Stages: prerequisites, zone lookup, secret bootstrap (with optional
    freshness short-circuit), issuance, upload, cleanup. Any stage failure
    raises and aborts the run; the secret is only written after a
    successful issuance.

    Args:
        config: Run configuration
        route53: Optional Route53Client (created from the profile if omitted)
        secrets: Optional SecretsManagerClient (created from the profile if omitted)

    Returns:
        RenewalResult with RENEWED or SKIPPED status

    Raises:
        CertNowError: On any fatal error
    """
    logger = get_logger()
    run = config.run
    settings = config.settings
    total = 6 if settings.cleanup_after_upload else 5

    logger.stage(1, total, "Checking prerequisites")
    tools = check_prerequisites(settings.required_executables, run.aws_profile)
    certbot_path = tools.get("certbot", "certbot")

    route53 = route53 or Route53Client(run.aws_profile, run.aws_region)
    secrets = secrets or SecretsManagerClient(run.aws_profile, run.aws_region)

    logger.stage(2, total, f"Checking if Route53 hosted zone for {run.domain} exists")
    zone = route53.resolve_zone(run.domain)
    logger.success(f"Found hosted zone {zone.name} ({zone.id})")

    logger.stage(3, total, f"Checking if secret {run.secret_name} exists in Secrets Manager")
    created = secrets.ensure_secret(
        run.secret_name,
        settings.secret_description.format(domain=run.domain),
    )

    if not created and settings.renewal_mode == RenewalMode.FRESHNESS_CHECK:
        expires_on = check_stored_certificate(
            secrets, run.secret_name, settings.expiration_threshold_days
        )
        if expires_on is not None:
            logger.success(
                f"Certificate is valid for at least {settings.expiration_threshold_days} "
                "more days, nothing to do"
            )
            return RenewalResult(
                domain=run.domain,
                secret_name=run.secret_name,
                status=RenewalStatus.SKIPPED,
                message="Certificate still valid",
                expires_on=expires_on,
            )

    domains = build_domain_set(run.domain)
    logger.stage(4, total, f"Generating certificate for {', '.join(domains)}")
    artifacts = run_certbot(
        certbot_path=certbot_path,
        domain=run.domain,
        email=run.email,
        aws_profile=run.aws_profile,
        aws_region=run.aws_region,
        settings=settings,
        extra_args=run.extra_args,
    )
    new_expiry = get_certificate_expiry(Path(artifacts.cert).read_bytes())
    logger.success(f"Certificate generated, expires {new_expiry.isoformat()}")

    logger.stage(5, total, "Uploading certificate to AWS Secrets Manager")
    upload = upload_certificate(secrets, run.secret_name, artifacts)
    logger.success(f"Certificate uploaded (version {upload.get('version_id')})")

    removed = []
    if settings.cleanup_after_upload:
        logger.stage(6, total, "Cleaning up")
        removed = [str(p) for p in cleanup_artifacts(settings.work_dir, settings.ignore_file)]
        logger.success(f"Removed {len(removed)} local path(s)")

    return RenewalResult(
        domain=run.domain,
        secret_name=run.secret_name,
        status=RenewalStatus.RENEWED,
        message="Successfully renewed",
        domains=domains,
        expires_on=new_expiry,
        secret_created=created,
        removed_paths=removed,
    )


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point.

    Exit Codes:
        0 - Certificate renewed, or still valid
        1 - Usage, dependency, zone or secret store error
        2 - Configuration error
        n - Certbot's own exit status when issuance fails

    Returns:
        Exit code
    """
    try:
        args = parse_arguments(argv)
    except UsageError as e:
        print(str(e), file=sys.stderr)
        print(f"Usage: {USAGE}", file=sys.stderr)
        return e.exit_code

    logger = setup_logger(
        verbose=args.verbose,
        use_colors=not args.no_color,
        log_file=args.log_file,
    )
    logger.section(f"Certificate renewal for {args.domain}")

    summary = ExecutionSummary()

    try:
        config = build_config(args)
        summary.renewal_mode = config.settings.renewal_mode.value
        summary.ca_mode = config.settings.ca_mode.value

        summary.result = renew_certificate(config)
        logger.success("Done!")

    except ConfigurationError as e:
        error_msg = f"Configuration error: {e}"
        logger.failure(error_msg)
        summary.add_error(error_msg, e.exit_code)

    except CertNowError as e:
        logger.failure(str(e))
        summary.add_error(str(e), e.exit_code)

    except Exception as e:
        error_msg = f"Fatal error: {e}"
        logger.failure(error_msg)
        summary.add_error(error_msg)
        if args.verbose:
            import traceback
            traceback.print_exc()

    if not summary.success:
        summary.result = RenewalResult(
            domain=args.domain,
            secret_name=args.secret_name,
            status=RenewalStatus.FAILED,
            message=summary.errors[-1],
        )

    summary.finalize()
    if args.json_summary:
        print(summary.to_json())

    return summary.exit_code


def run() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
