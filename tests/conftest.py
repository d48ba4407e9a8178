"""
Shared fixtures.

Every app built here runs against MockStorageClient, so no test touches
a real bucket or needs AWS credentials.
"""

import asyncio

import pytest
from fastapi.testclient import TestClient

from files_gateway.config.settings import Settings
from files_gateway.infrastructure.storage.client import MockStorageClient, StorageError
from files_gateway.main import create_app


def make_settings(**overrides) -> Settings:
    values = {
        "s3_bucket": "test-bucket",
        "s3_prefix": "uploads",
        "aws_region": "us-west-1",
        "file_max_mb": 1,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class FailingStorageClient:
    """Storage client whose every call fails like a denied S3 request."""

    def __init__(self, message: str = "Access Denied", status_code=403) -> None:
        self.error = StorageError(message, status_code=status_code)

    async def list_objects(self, prefix, limit):
        raise self.error

    async def put_object(self, key, data, content_type):
        raise self.error

    async def get_object(self, key):
        raise self.error


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def storage() -> MockStorageClient:
    return MockStorageClient()


@pytest.fixture
def client(settings, storage) -> TestClient:
    return TestClient(create_app(settings=settings, storage_client=storage))


@pytest.fixture
def put():
    """Store an object directly in a mock client, bypassing the API."""
    def _put(storage, key: str, data: bytes = b"data", content_type: str = "application/octet-stream"):
        asyncio.run(storage.put_object(key, data, content_type))
    return _put


@pytest.fixture
def make_app():
    """Build an app with test settings; keyword arguments override settings fields."""
    def _make(storage_client=None, **overrides):
        return create_app(settings=make_settings(**overrides), storage_client=storage_client)
    return _make


@pytest.fixture
def unconfigured_client(make_app, storage) -> TestClient:
    return TestClient(make_app(storage_client=storage, s3_bucket=""))


@pytest.fixture
def failing_client(make_app) -> TestClient:
    return TestClient(make_app(storage_client=FailingStorageClient()))
