import boto3
from typing import Optional, Dict, Any, List
from botocore.exceptions import ClientError
from image_gallery.settings import settings
from image_gallery.storage.base import MetadataExistsError
import logging

log = logging.getLogger(__name__)

# -------------------------
# DynamoDB Service
# -------------------------
class DynamoDBService:
    """Image metadata, one item per image_id."""

    def __init__(self):
        session = boto3.session.Session(region_name=settings.aws_region)
        kwargs = {
            "aws_access_key_id": settings.aws_access_key_id,
            "aws_secret_access_key": settings.aws_secret_access_key,
        }
        if settings.aws_endpoint_url:
            kwargs["endpoint_url"] = settings.aws_endpoint_url

        self.table_name = settings.dynamodb_table
        self.resource = session.resource("dynamodb", **kwargs)
        log.info("Initialized DynamoDB resource")

        # Ensure table exists at initialization
        self.ensure_table()

    # Refer here: https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/dynamodb/client/create_table.html
    def ensure_table(self):
        try:
            table = self.resource.Table(self.table_name)
            table.load()
        except ClientError:
            table = self.resource.create_table(
                TableName=self.table_name,
                KeySchema=[{"AttributeName": "image_id", "KeyType": "HASH"}],
                AttributeDefinitions=[
                    {"AttributeName": "image_id", "AttributeType": "S"},
                ],
                BillingMode="PAY_PER_REQUEST",
            )
            table.wait_until_exists()
            log.info("Created table %s", self.table_name)

    def put_metadata(self, item: Dict[str, Any]):
        """Inserts a new item. The put is conditional so an ID is never overwritten."""
        table = self.resource.Table(self.table_name)
        try:
            table.put_item(
                Item=item,
                ConditionExpression="attribute_not_exists(image_id)",
            )
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                raise MetadataExistsError(item["image_id"])
            raise
        log.debug("Inserted metadata %s", item.get("image_id"))

    def get_metadata(self, image_id: str) -> Optional[Dict[str, Any]]:
        table = self.resource.Table(self.table_name)
        resp = table.get_item(Key={"image_id": image_id})
        return resp.get("Item")

    def scan_metadata(self) -> List[Dict[str, Any]]:
        """Returns every item, following LastEvaluatedKey until the scan is done."""
        table = self.resource.Table(self.table_name)
        scan_kwargs = {}
        items = []
        while True:
            resp = table.scan(**scan_kwargs)
            items.extend(resp.get("Items", []))
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                break
            scan_kwargs["ExclusiveStartKey"] = last_key
        # Scan order is arbitrary. Sorting by upload time approximates creation
        # order; entries sharing an uploaded_at fall back to image_id order,
        # which is random within the same millisecond, not insertion order.
        items.sort(key=lambda it: (it.get("uploaded_at", ""), it.get("image_id", "")))
        return items

    def close(self):
        log.info("Closed DynamoDB resource")
