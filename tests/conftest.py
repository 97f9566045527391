import os
import tempfile
import pytest
from moto import mock_aws
from fastapi.testclient import TestClient

# Set test environment variables BEFORE importing app modules
os.environ["TESTING"] = "true"
os.environ["STORAGE_BACKEND"] = "local"
os.environ["DATA_DIR"] = tempfile.mkdtemp(prefix="image-gallery-test-")

# Dummy AWS credentials for moto
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
os.environ["AWS_SECURITY_TOKEN"] = "testing"
os.environ["AWS_SESSION_TOKEN"] = "testing"
os.environ["AWS_REGION"] = "us-east-1"
os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
os.environ["S3_BUCKET"] = "image-gallery-bucket"
os.environ["DYNAMODB_TABLE"] = "ImageGallery"
# Clear the AWS_ENDPOINT_URL so moto mocks are used instead of localstack
os.environ.pop("AWS_ENDPOINT_URL", None)

from image_gallery.main import app
from image_gallery.dependencies.dependencies import get_blob_store, get_metadata_store
from image_gallery.storage.s3 import S3Service
from image_gallery.storage.dynamodb import DynamoDBService
from image_gallery.storage.local import LocalBlobStore, JsonMetadataStore


@pytest.fixture(scope="function")
def aws_credentials():
    """Mocked AWS Credentials for moto."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"


@pytest.fixture(scope="function")
def local_stores(tmp_path):
    """(blobs, db) backed by a fresh directory."""
    return LocalBlobStore(str(tmp_path)), JsonMetadataStore(str(tmp_path))


@pytest.fixture(scope="function")
def aws_stores(aws_credentials):
    """(blobs, db) backed by moto; the services create their bucket and table."""
    with mock_aws():
        yield S3Service(), DynamoDBService()


@pytest.fixture(params=["local", "aws"])
def stores(request):
    """Runs a test once per storage backend."""
    return request.getfixturevalue(f"{request.param}_stores")


@pytest.fixture(scope="function")
def test_client(local_stores):
    blobs, db = local_stores
    app.dependency_overrides[get_blob_store] = lambda: blobs
    app.dependency_overrides[get_metadata_store] = lambda: db
    try:
        with TestClient(app) as client:
            yield client
    finally:
        app.dependency_overrides.clear()
