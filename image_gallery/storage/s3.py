import boto3
from typing import Optional
from botocore.exceptions import ClientError
from image_gallery.settings import settings
from image_gallery.storage.base import BlobExistsError
import logging

log = logging.getLogger(__name__)

MISSING_OBJECT_CODES = {"404", "NoSuchKey", "NotFound"}

# -------------------------
# S3 Service
# -------------------------
class S3Service:
    """Image payloads, one object per image ID under s3_prefix."""

    def __init__(self):
        session = boto3.session.Session(region_name=settings.aws_region)
        kwargs = {
            "aws_access_key_id": settings.aws_access_key_id,
            "aws_secret_access_key": settings.aws_secret_access_key,
        }
        if settings.aws_endpoint_url:
            kwargs["endpoint_url"] = settings.aws_endpoint_url

        self.bucket = settings.s3_bucket
        self.prefix = settings.s3_prefix.strip("/")
        self.client = session.client("s3", **kwargs)
        log.info("Initialized S3 client")

        # Ensure bucket exists at initialization
        self.ensure_bucket()

    def ensure_bucket(self):
        try:
            self.client.head_bucket(Bucket=self.bucket)
            log.debug("Bucket %s already exists", self.bucket)
        except ClientError as e:
            error_code = e.response["Error"]["Code"]
            if error_code in MISSING_OBJECT_CODES or error_code == "NoSuchBucket":
                self.client.create_bucket(Bucket=self.bucket)
                log.info("Created bucket %s", self.bucket)
            else:
                log.error("Failed to check/create bucket: %s", e)
                raise

    def object_key(self, key: str) -> str:
        return f"{self.prefix}/{key}" if self.prefix else key

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=self.object_key(key))
            return True
        except ClientError as e:
            if e.response["Error"]["Code"] in MISSING_OBJECT_CODES:
                return False
            raise

    def upload(self, fileobj, key: str, content_type: str):
        """Writes a new payload. Existing payloads are never replaced."""
        if self.exists(key):
            raise BlobExistsError(key)
        self.client.upload_fileobj(
            Fileobj=fileobj,
            Bucket=self.bucket,
            Key=self.object_key(key),
            ExtraArgs={"ContentType": content_type},
        )
        log.debug("Uploaded %s to s3://%s/%s", key, self.bucket, self.object_key(key))

    def download(self, key: str) -> Optional[bytes]:
        try:
            resp = self.client.get_object(Bucket=self.bucket, Key=self.object_key(key))
        except ClientError as e:
            if e.response["Error"]["Code"] in MISSING_OBJECT_CODES:
                log.debug("Object s3://%s/%s not found", self.bucket, self.object_key(key))
                return None
            raise
        return resp["Body"].read()

    def close(self):
        log.info("Closed S3 client")
