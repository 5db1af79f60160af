"""
S3-compatible object store (Tigris, AWS S3, MinIO, R2, ...).

Credentials come from TIGRIS_ACCESS_KEY / TIGRIS_SECRET_KEY when both
are set, otherwise from boto3's normal credential chain. Path-style
addressing is forced because most S3-compatible services expect it.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import ObjectNotFoundError, PreconditionFailedError, StoreError, ValidationError
from .base import ObjectStore, StoredObject

logger = logging.getLogger("envlock.store.s3")

_NOT_FOUND_CODES = {"NoSuchKey", "NotFound", "NoSuchBucket", "404"}
_PRECONDITION_CODES = {"PreconditionFailed", "ConditionalRequestConflict", "412"}


class S3ObjectStore(ObjectStore):
    """Objects in a single bucket.

    Args:
        bucket: Bucket name.
        client: A boto3 S3 client. Built from the environment if omitted.
    """

    def __init__(self, bucket: str, client: Any = None) -> None:
        self.bucket = bucket.strip()
        if not self.bucket:
            raise ValidationError("project bucket is required")
        self.client = client

    @classmethod
    def from_environment(cls, bucket: str, endpoint: str = "") -> "S3ObjectStore":
        """Build a store using TIGRIS_* variables and the project endpoint."""
        endpoint_url = os.environ.get("TIGRIS_ENDPOINT", "").strip() or endpoint.strip()
        if not endpoint_url:
            raise ValidationError(
                "missing S3 endpoint (set TIGRIS_ENDPOINT or the project endpoint)"
            )
        region = os.environ.get("TIGRIS_REGION", "").strip() or "auto"

        kwargs: dict[str, Any] = {
            "endpoint_url": endpoint_url,
            "region_name": region,
            "config": Config(s3={"addressing_style": "path"}),
        }
        access_key = os.environ.get("TIGRIS_ACCESS_KEY", "").strip()
        secret_key = os.environ.get("TIGRIS_SECRET_KEY", "").strip()
        if access_key and secret_key:
            kwargs["aws_access_key_id"] = access_key
            kwargs["aws_secret_access_key"] = secret_key

        return cls(bucket, client=boto3.client("s3", **kwargs))

    @property
    def name(self) -> str:
        return f"s3:{self.bucket}"

    def get(self, key: str) -> StoredObject:
        try:
            out = self.client.get_object(Bucket=self.bucket, Key=key)
            data = out["Body"].read()
        except ClientError as exc:
            if _error_code(exc) in _NOT_FOUND_CODES:
                raise ObjectNotFoundError(key) from None
            raise StoreError(f"get {key}: {exc}") from exc
        except BotoCoreError as exc:
            raise StoreError(f"get {key}: {exc}") from exc
        return StoredObject(data, out.get("ETag", ""))

    def put(
        self,
        key: str,
        data: bytes,
        if_match: Optional[str] = None,
        if_none_match: bool = False,
    ) -> str:
        extra: dict[str, Any] = {}
        if if_match is not None:
            extra["IfMatch"] = if_match
        elif if_none_match:
            extra["IfNoneMatch"] = "*"
        try:
            out = self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType="application/json",
                **extra,
            )
        except ClientError as exc:
            if _error_code(exc) in _PRECONDITION_CODES:
                raise PreconditionFailedError(key) from exc
            raise StoreError(f"put {key}: {exc}") from exc
        except BotoCoreError as exc:
            raise StoreError(f"put {key}: {exc}") from exc
        logger.debug("Put s3://%s/%s", self.bucket, key)
        return out.get("ETag", "")

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise StoreError(f"delete {key}: {exc}") from exc

    def list_keys(self, prefix: str) -> list[str]:
        keys: list[str] = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for item in page.get("Contents", []):
                    if item.get("Key"):
                        keys.append(item["Key"])
        except (ClientError, BotoCoreError) as exc:
            raise StoreError(f"list {prefix}: {exc}") from exc
        return sorted(keys)


def _error_code(exc: ClientError) -> str:
    err = exc.response.get("Error", {})
    code = str(err.get("Code", "")).strip()
    if code:
        return code
    status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return str(status or "")
