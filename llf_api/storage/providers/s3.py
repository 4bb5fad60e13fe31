import os
from typing import Any, Dict

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from llf_api.engine.errors import StorageError

from .local import safe_key


class S3StorageProvider:
    provider_type = "s3"

    def __init__(self, config: Dict[str, Any]):
        self.config = config or {}
        self.bucket = str(self.config.get("bucket") or "").strip()
        self.region = str(self.config.get("region") or os.environ.get("AWS_DEFAULT_REGION") or os.environ.get("AWS_REGION") or "").strip()
        self.prefix = str(self.config.get("prefix") or "llf").strip().strip("/")
        self.kms_key_id = str(self.config.get("kms_key_id") or "").strip()
        self.acl = str(self.config.get("acl") or "private").strip() or "private"
        self.client = boto3.client("s3", region_name=self.region) if self.region else boto3.client("s3")

    def _object_key(self, key: str) -> str:
        return f"{self.prefix}/{key}" if self.prefix else key

    def put_bytes(self, *, path_hint: str, data: bytes, content_type: str) -> str:
        if not self.bucket:
            raise StorageError("s3 bucket is required")
        key = safe_key(path_hint)
        extra: Dict[str, Any] = {"ContentType": content_type}
        if self.kms_key_id:
            extra["ServerSideEncryption"] = "aws:kms"
            extra["SSEKMSKeyId"] = self.kms_key_id
        try:
            self.client.put_object(Bucket=self.bucket, Key=self._object_key(key), Body=data, ACL=self.acl, **extra)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"S3 upload failed for {key}: {exc}") from exc
        return key

    def build_download_reference(self, key: str, ttl_seconds: int = 86400) -> str:
        if not self.bucket or not key:
            return ""
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": self._object_key(key)},
                ExpiresIn=ttl_seconds,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"S3 presign failed for {key}: {exc}") from exc

    def delete_object(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=self._object_key(key))
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"S3 delete failed for {key}: {exc}") from exc
