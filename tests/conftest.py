"""Pytest fixtures for stage script and CDK tests."""

import json
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from scripts.lib.state import DATA_DIR_ENV, STAGE_DIRS


@pytest.fixture(autouse=True)
def data_dir(tmp_path, monkeypatch):
    """Point every test at an empty data root."""
    root = tmp_path / "data"
    monkeypatch.setenv(DATA_DIR_ENV, str(root))
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    return root


@pytest.fixture
def write_stage_file(data_dir):
    """Write a JSON file into a stage directory."""

    def _write(stage, name, content):
        path = data_dir / STAGE_DIRS[stage] / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(content) if not isinstance(content, str) else content)
        return path

    return _write


@pytest.fixture
def clients():
    """One MagicMock per AWS service name, created on first use."""
    return {}


@pytest.fixture
def mock_session(clients):
    """boto3 session whose client() returns the per-service mocks."""
    session = MagicMock()

    def client(service, **kwargs):
        if service not in clients:
            clients[service] = MagicMock(name=f"{service}-client")
        return clients[service]

    session.client.side_effect = client
    return session


@pytest.fixture
def client_error():
    """Build a botocore ClientError with the given code."""

    def _error(code, operation="Operation", message="error"):
        return ClientError({"Error": {"Code": code, "Message": message}}, operation)

    return _error


@pytest.fixture
def distribution_config():
    """Minimal CloudFront distribution config with one S3 origin."""
    return {
        "CallerReference": "ref",
        "Comment": "my-site - Stage A CloudFront Distribution",
        "Enabled": True,
        "Aliases": {"Quantity": 0},
        "Origins": {
            "Quantity": 1,
            "Items": [{"Id": "s3-origin", "DomainName": "bucket.s3.us-east-1.amazonaws.com"}],
        },
        "DefaultCacheBehavior": {"TargetOriginId": "s3-origin"},
        "CacheBehaviors": {"Quantity": 0},
        "ViewerCertificate": {"CloudFrontDefaultCertificate": True},
    }
