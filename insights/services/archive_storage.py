"""Where finished export archives live: local disk by default, S3 when configured."""
from __future__ import annotations

import logging
import os
import shutil
from datetime import datetime, timezone
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)


def _safe_segment(name: str) -> str:
    cleaned = "".join(c for c in str(name) if c.isalnum() or c in ("-", "_", "."))[:100]
    # No "." or ".." segments
    return cleaned.lstrip(".") or "anon"


class LocalArchiveStorage:
    """Archives under ``<root>/exports/<caller>/<name>``; locations are absolute paths."""

    kind = "local"

    def __init__(self, root: str = "storage"):
        self.base_dir = os.path.abspath(os.path.join(root, "exports"))

    def save(self, src_path: str, owner: str, name: str) -> str:
        out_dir = os.path.join(self.base_dir, _safe_segment(owner))
        os.makedirs(out_dir, exist_ok=True)
        out_path = os.path.join(out_dir, _safe_segment(name))
        shutil.move(src_path, out_path)
        return out_path

    def _inside(self, location: Optional[str]) -> bool:
        if not location:
            return False
        path = os.path.abspath(location)
        return os.path.commonpath([path, self.base_dir]) == self.base_dir

    def exists(self, location: Optional[str]) -> bool:
        return self._inside(location) and os.path.isfile(location)

    def local_path(self, location: str) -> Optional[str]:
        return location if self.exists(location) else None

    def delete(self, location: Optional[str]) -> bool:
        if not self.exists(location):
            return False
        os.remove(location)
        logger.info("export.archive.deleted", extra={"location": location})
        return True

    def purge_older_than(self, cutoff: datetime) -> int:
        """Delete archives last modified before ``cutoff`` (aware or naive UTC)."""
        if cutoff.tzinfo is None:
            cutoff = cutoff.replace(tzinfo=timezone.utc)
        limit = cutoff.timestamp()
        removed = 0
        if not os.path.isdir(self.base_dir):
            return 0
        for dirpath, _dirnames, filenames in os.walk(self.base_dir):
            for fname in filenames:
                path = os.path.join(dirpath, fname)
                try:
                    if os.path.getmtime(path) < limit:
                        os.remove(path)
                        removed += 1
                except FileNotFoundError:
                    # Removed concurrently by a job delete
                    continue
        return removed


class S3ArchiveStorage:
    """Archives in an S3 bucket under ``exports/<caller>/<name>``; locations are keys."""

    kind = "s3"

    def __init__(
        self,
        region: str,
        bucket: str,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        presign_seconds: int = 3600,
        client=None,
    ):
        self.bucket = bucket
        self.presign_seconds = presign_seconds
        self.client = client or boto3.client(
            "s3",
            region_name=region or None,
            aws_access_key_id=access_key or None,
            aws_secret_access_key=secret_key or None,
        )
        logger.info(f"S3 archive storage initialized for bucket '{bucket}'")

    def save(self, src_path: str, owner: str, name: str) -> str:
        key = f"exports/{_safe_segment(owner)}/{_safe_segment(name)}"
        try:
            self.client.upload_file(
                src_path,
                self.bucket,
                key,
                ExtraArgs={"ContentType": "application/zip", "ServerSideEncryption": "AES256"},
            )
        finally:
            try:
                os.remove(src_path)
            except FileNotFoundError:
                pass
        logger.info(f"Uploaded export to S3: s3://{self.bucket}/{key}")
        return key

    def exists(self, location: Optional[str]) -> bool:
        if not location:
            return False
        try:
            self.client.head_object(Bucket=self.bucket, Key=location)
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return False
            raise

    def local_path(self, location: str) -> Optional[str]:
        return None

    def presigned_url(self, location: str, filename: str) -> str:
        return self.client.generate_presigned_url(
            "get_object",
            Params={
                "Bucket": self.bucket,
                "Key": location,
                "ResponseContentDisposition": f'attachment; filename="{filename}"',
            },
            ExpiresIn=self.presign_seconds,
        )

    def delete(self, location: Optional[str]) -> bool:
        if not location:
            return False
        try:
            self.client.delete_object(Bucket=self.bucket, Key=location)
            logger.info(f"Deleted from S3: s3://{self.bucket}/{location}")
            return True
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 delete failed for {location}: {e}")
            return False

    def purge_older_than(self, cutoff: datetime) -> int:
        if cutoff.tzinfo is None:
            cutoff = cutoff.replace(tzinfo=timezone.utc)
        removed = 0
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket, Prefix="exports/"):
            for obj in page.get("Contents", []):
                if obj["LastModified"] < cutoff and self.delete(obj["Key"]):
                    removed += 1
        return removed


def build_archive_storage(settings):
    if getattr(settings, "S3_EXPORTS_BUCKET", ""):
        return S3ArchiveStorage(
            region=settings.AWS_REGION,
            bucket=settings.S3_EXPORTS_BUCKET,
            access_key=settings.AWS_ACCESS_KEY_ID,
            secret_key=settings.AWS_SECRET_ACCESS_KEY,
            presign_seconds=settings.S3_PRESIGNED_URL_SECONDS,
        )
    return LocalArchiveStorage(settings.EXPORT_STORAGE_ROOT)
