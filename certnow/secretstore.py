"""
AWS Secrets Manager operations.

The certificate lives in a single secret whose value is a JSON object with
the keys certificate, private_key, chain and full_chain.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .config_loader import PLACEHOLDER_VALUE
from .exceptions import SecretStoreError
from .logger import get_logger


PLACEHOLDER_SECRET = {
    "certificate": PLACEHOLDER_VALUE,
    "private_key": PLACEHOLDER_VALUE,
}


@dataclass
class StoredCertificate:
    """
    Certificate material read back from a secret.
    """
    certificate: str = ""
    private_key: str = ""
    chain: Optional[str] = None
    full_chain: Optional[str] = None

    @classmethod
    def from_secret_string(cls, value: str) -> "StoredCertificate":
        """
        Parse a secret value.

        Values that are not a JSON object yield an empty record, which
        counts as a placeholder.
        """
        try:
            data = json.loads(value)
        except (TypeError, ValueError):
            return cls()
        if not isinstance(data, dict):
            return cls()

        return cls(
            certificate=data.get("certificate") or "",
            private_key=data.get("private_key") or "",
            chain=data.get("chain"),
            full_chain=data.get("full_chain"),
        )

    @property
    def is_placeholder(self) -> bool:
        """True when no real certificate and key have been stored yet."""
        for value in (self.certificate, self.private_key):
            if not value.strip() or value.strip() == PLACEHOLDER_VALUE:
                return True
        return False


def build_secret_value(
    cert_path: str,
    key_path: str,
    chain_path: Optional[str] = None,
    fullchain_path: Optional[str] = None,
) -> str:
    """
    Build the JSON secret value from PEM files on disk.

    Newlines are escaped by the JSON encoder, so the PEM text decodes back
    byte for byte.

    Args:
        cert_path: Path to the certificate file
        key_path: Path to the private key file
        chain_path: Optional path to the intermediate chain file
        fullchain_path: Optional path to the full chain file

    Returns:
        JSON string for the secret
    """
    data: Dict[str, Any] = {
        "certificate": Path(cert_path).read_text(),
        "private_key": Path(key_path).read_text(),
    }
    if chain_path:
        data["chain"] = Path(chain_path).read_text()
    if fullchain_path:
        data["full_chain"] = Path(fullchain_path).read_text()

    return json.dumps(data)


class SecretsManagerClient:
    """
    Client for AWS Secrets Manager.

    Every botocore failure is reported as SecretStoreError.
    """

    def __init__(self, profile: str, region: str, session: Optional[boto3.session.Session] = None):
        self.profile = profile
        self.region = region
        self.logger = get_logger()
        self._session = session
        self._client = None

    @property
    def client(self):
        """Get the secretsmanager client, creating it if necessary."""
        if self._client is None:
            session = self._session or boto3.session.Session(
                profile_name=self.profile, region_name=self.region
            )
            self._client = session.client("secretsmanager")
        return self._client

    def exists(self, name: str) -> bool:
        """
        Check whether a secret exists.

        Args:
            name: Secret name or ARN

        Returns:
            True if the secret exists
        """
        try:
            self.client.describe_secret(SecretId=name)
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ResourceNotFoundException":
                return False
            raise SecretStoreError(f"Failed to describe secret {name}: {e}")
        except BotoCoreError as e:
            raise SecretStoreError(f"Failed to describe secret {name}: {e}")

    def create(self, name: str, description: str, value: str) -> Dict[str, Any]:
        """
        Create a secret with an initial value.

        Returns:
            Dictionary with the new secret's ARN and name
        """
        try:
            response = self.client.create_secret(
                Name=name,
                Description=description,
                SecretString=value,
            )
        except (ClientError, BotoCoreError) as e:
            raise SecretStoreError(f"Failed to create secret {name}: {e}")

        self.logger.debug(f"Created secret {response.get('ARN', name)}")
        return {"arn": response.get("ARN"), "name": response.get("Name", name)}

    def get(self, name: str) -> str:
        """
        Fetch the current string value of a secret.

        Returns:
            The secret string (empty if the secret only has a binary value)
        """
        try:
            response = self.client.get_secret_value(SecretId=name)
        except (ClientError, BotoCoreError) as e:
            raise SecretStoreError(f"Failed to read secret {name}: {e}")
        return response.get("SecretString") or ""

    def put(self, name: str, value: str) -> Dict[str, Any]:
        """
        Store a new value for a secret.

        Returns:
            Dictionary with the secret's ARN and new version id
        """
        try:
            response = self.client.put_secret_value(SecretId=name, SecretString=value)
        except (ClientError, BotoCoreError) as e:
            raise SecretStoreError(f"Failed to write secret {name}: {e}")

        return {"arn": response.get("ARN"), "version_id": response.get("VersionId")}

    def ensure_secret(self, name: str, description: str) -> bool:
        """
        Create the secret with placeholder values unless it exists.

        Args:
            name: Secret name
            description: Description for a newly created secret

        Returns:
            True if the secret was created by this call
        """
        if self.exists(name):
            self.logger.info(f"Secret {name} already exists.")
            return False

        self.logger.info(f"Secret {name} does not exist. Creating...")
        self.create(name, description, json.dumps(PLACEHOLDER_SECRET))
        self.logger.success(f"Secret {name} created")
        return True

    def get_certificate(self, name: str) -> StoredCertificate:
        """Read and parse the certificate currently stored in a secret."""
        return StoredCertificate.from_secret_string(self.get(name))


def upload_certificate(client: SecretsManagerClient, secret_name: str, artifacts) -> Dict[str, Any]:
    """
    Upload certificate artifacts to a secret.

    Args:
        client: SecretsManagerClient instance
        secret_name: Name of the secret to overwrite
        artifacts: CertificateArtifacts with the PEM file paths

    Returns:
        Dictionary with the secret's ARN and new version id
    """
    value = build_secret_value(
        cert_path=artifacts.cert,
        key_path=artifacts.privkey,
        chain_path=artifacts.chain,
        fullchain_path=artifacts.fullchain,
    )
    return client.put(secret_name, value)
