from dataclasses import dataclass, field
from datetime import datetime

import boto3
from botocore.client import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from app.config import Settings
from app.errors import StorageError
from app.logger import logger


@dataclass(frozen=True)
class StoredObject:
    key: str
    size: int
    last_modified: datetime


@dataclass
class ObjectPage:
    objects: list[StoredObject] = field(default_factory=list)
    next_cursor: str | None = None


def build_s3_client(settings: Settings):
    """One client for both buckets; it is thread safe and reused across requests."""
    return boto3.client(
        "s3",
        endpoint_url=settings.endpoint_url,
        aws_access_key_id=settings.storage_access_key_id,
        aws_secret_access_key=settings.storage_secret_access_key,
        region_name=settings.storage_region,
        config=BotoConfig(signature_version="s3v4"),
    )


class ObjectStore:
    """Synchronous view of a single bucket."""

    def __init__(self, client, bucket_name: str, *, public_base_url: str | None = None):
        self.client = client
        self.bucket_name = bucket_name
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None

    def put_object(self, key: str, data: bytes, content_type: str, acl: str | None = None) -> None:
        params = {
            "Bucket": self.bucket_name,
            "Key": key,
            "Body": data,
            "ContentType": content_type,
        }
        if acl:
            params["ACL"] = acl
        try:
            self.client.put_object(**params)
        except (ClientError, BotoCoreError) as exc:
            logger.error(f"[store] put {self.bucket_name}/{key} failed: {exc}")
            raise StorageError("Upload to object storage failed.") from exc
        logger.info(f"[store] put {self.bucket_name}/{key} ({len(data)} bytes)")

    def list_objects(self, prefix: str, *, limit: int, cursor: str | None = None) -> ObjectPage:
        params = {"Bucket": self.bucket_name, "Prefix": prefix, "MaxKeys": limit}
        if cursor:
            params["ContinuationToken"] = cursor
        try:
            result = self.client.list_objects_v2(**params)
        except (ClientError, BotoCoreError) as exc:
            logger.error(f"[store] list {self.bucket_name}/{prefix} failed: {exc}")
            raise StorageError("Failed to list files") from exc

        objects = [
            StoredObject(key=item["Key"], size=item["Size"], last_modified=item["LastModified"])
            for item in result.get("Contents", [])
        ]
        next_cursor = result.get("NextContinuationToken") if result.get("IsTruncated") else None
        return ObjectPage(objects=objects, next_cursor=next_cursor)

    def delete_object(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket_name, Key=key)
        except (ClientError, BotoCoreError) as exc:
            logger.error(f"[store] delete {self.bucket_name}/{key} failed: {exc}")
            raise StorageError("Failed to delete file") from exc
        logger.info(f"[store] deleted {self.bucket_name}/{key}")

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket_name, Key=key)
        except ClientError as exc:
            status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
            if status == 404 or exc.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return False
            raise StorageError("Could not check file existence.") from exc
        except BotoCoreError as exc:
            raise StorageError("Could not check file existence.") from exc
        return True

    def presign_get(self, key: str, expires_in: int) -> str:
        try:
            return self.client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": self.bucket_name, "Key": key},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as exc:
            logger.error(f"[store] presign {self.bucket_name}/{key} failed: {exc}")
            raise StorageError("Failed to generate URL") from exc

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        endpoint = self.client.meta.endpoint_url.rstrip("/")
        return f"{endpoint}/{self.bucket_name}/{key}"
