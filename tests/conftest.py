"""
Test configuration and fixtures for the eventhorizon DynamoDB storage layer.

Provides mocked DynamoDB resources (moto), repositories and event stores bound
to them, and LocalStack fixtures for the integration suite.
"""

import sys
import time
import subprocess
import requests
from pathlib import Path
from typing import Generator

# Add parent directory to path so we can import eventhorizon_dynamodb
sys.path.insert(0, str(Path(__file__).parent.parent))

import boto3
import pytest
from moto import mock_aws

from eventhorizon_dynamodb import (
    EntityRepository,
    EventStore,
    IndexDefinition,
    StorageConfig,
)
from tests.helpers import SampleEntity


@pytest.fixture(autouse=True)
def aws_credentials(monkeypatch):
    """Keep tests away from real AWS credentials and endpoints."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    monkeypatch.delenv("DYNAMODB_ENDPOINT_URL", raising=False)
    monkeypatch.delenv("DYNAMODB_TABLE_PREFIX", raising=False)
    monkeypatch.delenv("EVENTSTORE_TABLE_PREFIX", raising=False)


@pytest.fixture
def storage_config():
    """Storage configuration for mocked testing."""
    return StorageConfig(
        aws_access_key_id="test_key",
        aws_secret_access_key="test_secret",
        region_name="us-east-1",
        endpoint_url=None,  # Use default AWS endpoint for moto
        table_prefix="test_"
    )


@pytest.fixture
def mock_dynamodb_resource():
    """Mock DynamoDB resource."""
    with mock_aws():
        yield boto3.resource('dynamodb', region_name='us-east-1')


@pytest.fixture
def partition_index():
    """Secondary index on (partition_num, sort_label)."""
    return IndexDefinition(
        name='PartitionIndex',
        partition_key='partition_num',
        partition_key_type='N',
        sort_key='sort_label',
    )


# Repository and Event Store Fixtures

@pytest.fixture
def entity_repository(storage_config, mock_dynamodb_resource, partition_index):
    """Entity repository over a fresh mocked table with a secondary index."""
    repo = EntityRepository(storage_config, "entities", dynamodb=mock_dynamodb_resource)
    repo.create_table(indexes=[partition_index])
    repo.set_entity_factory(SampleEntity)
    return repo


@pytest.fixture
def event_store(storage_config, mock_dynamodb_resource):
    """Event store with the default namespace's table created."""
    store = EventStore(storage_config, dynamodb=mock_dynamodb_resource)
    store.create_table()
    return store


# ===== LocalStack Integration Test Fixtures =====

LOCALSTACK_URL = "http://localhost:4566"


@pytest.fixture(scope="session")
def localstack_container() -> Generator[None, None, None]:
    """Start LocalStack container for integration tests."""
    try:
        # Check if LocalStack is already running
        response = requests.get(f"{LOCALSTACK_URL}/_localstack/health", timeout=2)
        if response.status_code == 200:
            yield
            return
    except requests.RequestException:
        pass  # LocalStack not running, start it

    compose_file = Path(__file__).parent.parent / "docker-compose.localstack.yml"
    if not compose_file.exists():
        pytest.skip("LocalStack is not running and no compose file is available")

    try:
        subprocess.run(
            ["docker-compose", "-f", str(compose_file), "up", "-d"],
            check=True, capture_output=True
        )
    except (OSError, subprocess.CalledProcessError) as e:
        pytest.skip(f"Could not start LocalStack: {e}")

    try:
        _wait_for_localstack()
        yield
    finally:
        try:
            subprocess.run(
                ["docker-compose", "-f", str(compose_file), "down"],
                check=True, capture_output=True
            )
        except subprocess.CalledProcessError as e:
            print(f"Warning: Failed to stop LocalStack container: {e}")


def _wait_for_localstack(max_retries: int = 30, delay: float = 1.0) -> None:
    """Wait for LocalStack DynamoDB to be ready."""
    for attempt in range(max_retries):
        try:
            response = requests.get(f"{LOCALSTACK_URL}/_localstack/health", timeout=2)
            if response.status_code == 200:
                if response.json().get("services", {}).get("dynamodb") in ("available", "running"):
                    return
        except requests.RequestException:
            pass
        time.sleep(delay)

    raise RuntimeError("LocalStack failed to start within the expected time")


@pytest.fixture
def localstack_config(localstack_container):
    """Storage configuration for LocalStack integration testing."""
    return StorageConfig(
        aws_access_key_id="test",
        aws_secret_access_key="test",
        region_name="us-east-1",
        endpoint_url=LOCALSTACK_URL,
        table_prefix="integration_",
        event_table_prefix="integrationEvents_",
    )
