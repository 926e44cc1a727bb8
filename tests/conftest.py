"""Pytest fixtures for the certnow test suite."""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import boto3
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from certnow.config_loader import Config, RunArguments, Settings
from certnow.logger import setup_logger
from certnow.route53 import HostedZone, Route53Client
from certnow.secretstore import SecretsManagerClient


def make_certificate(days_valid: int, common_name: str = "example.com") -> Tuple[str, str]:
    """Create a self-signed certificate and key as PEM text.

    The certificate expires days_valid days from now (may be negative, down
    to -89).
    """
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(timezone.utc)

    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=90))
        .not_valid_after(now + timedelta(days=days_valid))
        .add_extension(
            x509.SubjectAlternativeName([x509.DNSName(common_name)]), critical=False
        )
        .sign(key, hashes.SHA256())
    )

    cert_pem = cert.public_bytes(serialization.Encoding.PEM).decode("ascii")
    key_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode("ascii")
    return cert_pem, key_pem


def write_artifacts(work_dir: Path, domain: str, days_valid: int = 90) -> Dict[str, str]:
    """Write the four PEM files certbot would produce for a domain."""
    cert_pem, key_pem = make_certificate(days_valid, domain.replace("*.", ""))
    chain_pem, _ = make_certificate(365, "Test Intermediate")

    live_dir = work_dir / "live" / domain.replace("*.", "")
    live_dir.mkdir(parents=True, exist_ok=True)
    contents = {
        "cert.pem": cert_pem,
        "privkey.pem": key_pem,
        "chain.pem": chain_pem,
        "fullchain.pem": cert_pem + chain_pem,
    }
    for filename, text in contents.items():
        (live_dir / filename).write_text(text)
    return contents


class FakeRoute53(Route53Client):
    """Route53Client serving a fixed list of zones."""

    def __init__(self, zone_names: List[str]):
        super().__init__(profile="test", region="eu-west-1")
        self.zones = [
            HostedZone(id=f"Z{i:012d}", name=name) for i, name in enumerate(zone_names)
        ]
        self.calls = 0

    def list_hosted_zones(self) -> List[HostedZone]:
        self.calls += 1
        return list(self.zones)


class FakeSecretsManager(SecretsManagerClient):
    """SecretsManagerClient backed by a dictionary."""

    def __init__(self, secrets: Optional[Dict[str, str]] = None):
        super().__init__(profile="test", region="eu-west-1")
        self.secrets = dict(secrets or {})
        self.descriptions: Dict[str, str] = {}
        self.puts: List[Tuple[str, str]] = []
        self.creates: List[str] = []

    def exists(self, name: str) -> bool:
        return name in self.secrets

    def create(self, name: str, description: str, value: str):
        self.creates.append(name)
        self.secrets[name] = value
        self.descriptions[name] = description
        return {"arn": f"arn:aws:secretsmanager:eu-west-1:123456789012:secret:{name}", "name": name}

    def get(self, name: str) -> str:
        return self.secrets[name]

    def put(self, name: str, value: str):
        self.puts.append((name, value))
        self.secrets[name] = value
        return {"arn": None, "version_id": f"v{len(self.puts)}"}

    def stored(self, name: str) -> dict:
        return json.loads(self.secrets[name])


@pytest.fixture(autouse=True)
def logger():
    """Configure a plain debug logger for every test."""
    return setup_logger(verbose=True, use_colors=False)


@pytest.fixture
def aws_session() -> boto3.session.Session:
    """A boto3 session with dummy credentials, for use with Stubber."""
    return boto3.session.Session(
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
        region_name="eu-west-1",
    )


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Default settings with the work dir and an empty ignore file in a temporary directory."""
    ignore_file = tmp_path / ".gitignore"
    ignore_file.touch()
    return Settings(work_dir=str(tmp_path), ignore_file=str(ignore_file))


@pytest.fixture
def make_config(settings: Settings):
    """Factory for a run configuration."""

    def _make(domain: str = "*.example.com", extra_args: str = "", **overrides) -> Config:
        for key, value in overrides.items():
            setattr(settings, key, value)
        return Config(
            run=RunArguments(
                domain=domain,
                email="ops@example.com",
                aws_profile="prod",
                aws_region="eu-west-1",
                secret_name="certs/example",
                extra_args=extra_args,
            ),
            settings=settings,
        )

    return _make
