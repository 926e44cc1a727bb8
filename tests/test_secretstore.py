"""Unit tests for the Secrets Manager client and secret value encoding."""

import json

import pytest
from botocore.stub import ANY, Stubber

from certnow.certbot import CertificateArtifacts
from certnow.exceptions import SecretStoreError
from certnow.secretstore import (
    PLACEHOLDER_SECRET,
    SecretsManagerClient,
    StoredCertificate,
    build_secret_value,
    upload_certificate,
)

from conftest import FakeSecretsManager, make_certificate, write_artifacts


SECRET_NAME = "certs/example"
SECRET_ARN = "arn:aws:secretsmanager:eu-west-1:123456789012:secret:certs/example-AbCdEf"
VERSION_ID = "EXAMPLE1-90ab-cdef-fedc-ba987EXAMPLE"


@pytest.fixture
def secrets(aws_session):
    client = SecretsManagerClient("prod", "eu-west-1", session=aws_session)
    with Stubber(client.client) as stubber:
        client.stubber = stubber
        yield client
        stubber.assert_no_pending_responses()


class TestSecretsManagerClient:
    """Tests for SecretsManagerClient against a stubbed boto3 client."""

    def test_exists(self, secrets):
        secrets.stubber.add_response(
            "describe_secret",
            {"ARN": SECRET_ARN, "Name": SECRET_NAME},
            {"SecretId": SECRET_NAME},
        )

        assert secrets.exists(SECRET_NAME) is True

    def test_does_not_exist(self, secrets):
        secrets.stubber.add_client_error(
            "describe_secret",
            service_error_code="ResourceNotFoundException",
            http_status_code=400,
        )

        assert secrets.exists(SECRET_NAME) is False

    def test_exists_other_error(self, secrets):
        secrets.stubber.add_client_error(
            "describe_secret",
            service_error_code="AccessDeniedException",
            http_status_code=400,
        )

        with pytest.raises(SecretStoreError, match="Failed to describe secret"):
            secrets.exists(SECRET_NAME)

    def test_ensure_secret_creates_placeholder(self, secrets):
        secrets.stubber.add_client_error(
            "describe_secret",
            service_error_code="ResourceNotFoundException",
            http_status_code=400,
        )
        secrets.stubber.add_response(
            "create_secret",
            {"ARN": SECRET_ARN, "Name": SECRET_NAME, "VersionId": VERSION_ID},
            {
                "Name": SECRET_NAME,
                "Description": "Wildcard certificate for *.example.com",
                "SecretString": json.dumps(PLACEHOLDER_SECRET),
            },
        )

        created = secrets.ensure_secret(SECRET_NAME, "Wildcard certificate for *.example.com")

        assert created is True

    def test_ensure_secret_existing(self, secrets):
        secrets.stubber.add_response(
            "describe_secret",
            {"ARN": SECRET_ARN, "Name": SECRET_NAME},
            {"SecretId": SECRET_NAME},
        )

        assert secrets.ensure_secret(SECRET_NAME, "unused") is False

    def test_get_certificate(self, secrets):
        cert_pem, key_pem = make_certificate(60)
        secrets.stubber.add_response(
            "get_secret_value",
            {
                "ARN": SECRET_ARN,
                "Name": SECRET_NAME,
                "VersionId": VERSION_ID,
                "SecretString": json.dumps({"certificate": cert_pem, "private_key": key_pem}),
            },
            {"SecretId": SECRET_NAME},
        )

        stored = secrets.get_certificate(SECRET_NAME)

        assert stored.certificate == cert_pem
        assert stored.private_key == key_pem
        assert stored.chain is None
        assert not stored.is_placeholder

    def test_put(self, secrets):
        secrets.stubber.add_response(
            "put_secret_value",
            {"ARN": SECRET_ARN, "Name": SECRET_NAME, "VersionId": VERSION_ID},
            {"SecretId": SECRET_NAME, "SecretString": "{}"},
        )

        result = secrets.put(SECRET_NAME, "{}")

        assert result == {"arn": SECRET_ARN, "version_id": VERSION_ID}

    def test_put_failure(self, secrets):
        secrets.stubber.add_client_error(
            "put_secret_value",
            service_error_code="InternalServiceError",
            http_status_code=500,
        )

        with pytest.raises(SecretStoreError, match="Failed to write secret"):
            secrets.put(SECRET_NAME, "{}")

    def test_upload_certificate_sends_built_value(self, secrets, tmp_path):
        write_artifacts(tmp_path, "example.com")
        artifacts = CertificateArtifacts.for_domain(str(tmp_path), "example.com")
        secrets.stubber.add_response(
            "put_secret_value",
            {"ARN": SECRET_ARN, "Name": SECRET_NAME, "VersionId": VERSION_ID},
            {"SecretId": SECRET_NAME, "SecretString": ANY},
        )

        result = upload_certificate(secrets, SECRET_NAME, artifacts)

        assert result["version_id"] == VERSION_ID


def test_upload_certificate_stores_all_four_files(tmp_path):
    contents = write_artifacts(tmp_path, "*.example.com")
    artifacts = CertificateArtifacts.for_domain(str(tmp_path), "*.example.com")
    store = FakeSecretsManager({SECRET_NAME: json.dumps(PLACEHOLDER_SECRET)})

    upload_certificate(store, SECRET_NAME, artifacts)

    assert store.stored(SECRET_NAME) == {
        "certificate": contents["cert.pem"],
        "private_key": contents["privkey.pem"],
        "chain": contents["chain.pem"],
        "full_chain": contents["fullchain.pem"],
    }


class TestStoredCertificate:
    """Tests for parsing stored secret values."""

    def test_placeholder(self):
        stored = StoredCertificate.from_secret_string(json.dumps(PLACEHOLDER_SECRET))
        assert stored.is_placeholder

    def test_empty_values(self):
        stored = StoredCertificate.from_secret_string('{"certificate": "", "private_key": ""}')
        assert stored.is_placeholder

    def test_missing_key_counts_as_placeholder(self):
        stored = StoredCertificate.from_secret_string('{"certificate": "-----BEGIN"}')
        assert stored.is_placeholder

    def test_not_json(self):
        assert StoredCertificate.from_secret_string("not json").is_placeholder

    def test_json_list(self):
        assert StoredCertificate.from_secret_string("[1, 2]").is_placeholder

    def test_full_record(self):
        value = json.dumps({
            "certificate": "C",
            "private_key": "K",
            "chain": "CH",
            "full_chain": "FC",
        })

        stored = StoredCertificate.from_secret_string(value)

        assert (stored.chain, stored.full_chain) == ("CH", "FC")
        assert not stored.is_placeholder


class TestBuildSecretValue:
    """Tests for the secret value encoding."""

    def test_pem_round_trips_byte_identical(self, tmp_path):
        contents = write_artifacts(tmp_path, "example.com")
        live = tmp_path / "live" / "example.com"

        value = build_secret_value(
            cert_path=str(live / "cert.pem"),
            key_path=str(live / "privkey.pem"),
            chain_path=str(live / "chain.pem"),
            fullchain_path=str(live / "fullchain.pem"),
        )
        decoded = json.loads(value)

        assert "\n" not in value
        assert decoded["certificate"] == contents["cert.pem"]
        assert decoded["private_key"] == contents["privkey.pem"]
        assert decoded["chain"] == contents["chain.pem"]
        assert decoded["full_chain"] == contents["fullchain.pem"]
        assert decoded["certificate"].encode() == (live / "cert.pem").read_bytes()

    def test_space_collapsing_is_lossy(self):
        """Replacing newlines with spaces does not survive a round trip."""
        cert_pem, _ = make_certificate(30)
        collapsed = json.dumps({"certificate": cert_pem.replace("\n", " ")})

        assert json.loads(collapsed)["certificate"] != cert_pem

    def test_chain_is_optional(self, tmp_path):
        write_artifacts(tmp_path, "example.com")
        live = tmp_path / "live" / "example.com"

        value = build_secret_value(str(live / "cert.pem"), str(live / "privkey.pem"))

        assert set(json.loads(value)) == {"certificate", "private_key"}
