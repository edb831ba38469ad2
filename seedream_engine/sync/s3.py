"""S3-backed gallery store: image blobs plus JSON records."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Mapping

import boto3
from botocore.exceptions import ClientError

from ..utils import drop_none, now_utc_iso

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "seedream"
DEFAULT_REGION = "us-east-1"


class S3GalleryStore:
    """Stores uploaded images under ``<prefix>/images/`` and records under ``<prefix>/records/``."""

    def __init__(
        self,
        bucket: str | None = None,
        region: str | None = None,
        prefix: str | None = None,
        client: Any | None = None,
    ) -> None:
        self.bucket = (bucket if bucket is not None else os.getenv("SEEDREAM_SYNC_BUCKET", "")).strip()
        self.region = (region or os.getenv("AWS_REGION", "") or DEFAULT_REGION).strip()
        self.prefix = (prefix if prefix is not None else os.getenv("SEEDREAM_SYNC_PREFIX", DEFAULT_PREFIX)).strip("/")
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = boto3.client("s3", region_name=self.region)
        return self._client

    def is_configured(self) -> bool:
        return bool(self.bucket)

    def _key(self, *parts: str) -> str:
        return "/".join(part for part in (self.prefix, *parts) if part)

    def _record_key(self, record_id: str) -> str:
        return self._key("records", f"{record_id}.json")

    def public_url(self, key: str) -> str:
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def upload_blob(self, data: bytes, filename: str) -> str:
        key = self._key("images", filename)
        self.client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType="image/jpeg",
            Metadata={"source": "engine", "uploaded-at": now_utc_iso()},
        )
        return self.public_url(key)

    def get_record(self, record_id: str) -> dict[str, Any] | None:
        try:
            obj = self.client.get_object(Bucket=self.bucket, Key=self._record_key(record_id))
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code in {"NoSuchKey", "404"}:
                return None
            raise
        raw = obj["Body"].read()
        payload = json.loads(raw.decode("utf-8"))
        return payload if isinstance(payload, dict) else None

    def _put_record(self, record_id: str, record: Mapping[str, Any]) -> None:
        self.client.put_object(
            Bucket=self.bucket,
            Key=self._record_key(record_id),
            Body=json.dumps(record, indent=2).encode("utf-8"),
            ContentType="application/json",
        )

    def create_record(self, record_id: str, fields: Mapping[str, Any]) -> None:
        record = drop_none(fields)
        record["id"] = record_id
        record.setdefault("created_at", now_utc_iso())
        self._put_record(record_id, record)
        logger.debug("Created record %s", record_id)

    def update_record_status(self, record_id: str, status: str, patch: Mapping[str, Any] | None = None) -> None:
        record = self.get_record(record_id) or {"id": record_id}
        record.update(drop_none(patch or {}))
        record["status"] = status
        record["updated_at"] = now_utc_iso()
        self._put_record(record_id, record)
        logger.debug("Record %s -> %s", record_id, status)
