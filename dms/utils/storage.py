"""
Object storage for uploaded invoice files and database backups.

STORAGE_VENDOR=local writes under STORAGE_ROOT; STORAGE_VENDOR=s3 uses any
S3-compatible bucket through boto3.
"""
import os
import uuid
from datetime import datetime
from typing import Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from dms.utils.logging_utils import logger


def build_object_key(prefix: str, filename: str) -> str:
    """``<prefix>/YYYY/MM/<uuid>_<filename>`` with path separators stripped."""
    safe_name = os.path.basename(filename).replace(" ", "_") or "document"
    now = datetime.utcnow()
    return f"{prefix}/{now:%Y}/{now:%m}/{uuid.uuid4().hex}_{safe_name}"


class LocalStorageBackend:
    def __init__(self, root: str):
        self.root = os.path.abspath(root)

    def _path(self, object_key: str) -> str:
        path = os.path.abspath(os.path.join(self.root, object_key))
        if not path.startswith(self.root + os.sep):
            raise ValueError("Invalid storage key")
        return path

    def save(self, object_key: str, data: bytes, content_type: Optional[str] = None) -> str:
        path = self._path(object_key)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as fh:
            fh.write(data)
        return object_key

    def read(self, object_key: str) -> bytes:
        with open(self._path(object_key), "rb") as fh:
            return fh.read()

    def delete(self, object_key: str) -> bool:
        path = self._path(object_key)
        if os.path.exists(path):
            os.remove(path)
            return True
        return False


class S3StorageBackend:
    def __init__(self, endpoint_url: str, access_key: str, secret_key: str,
                 bucket: str, region: Optional[str] = None, force_path_style: bool = True):
        cfg = BotoConfig(
            s3={"addressing_style": "path" if force_path_style else "auto"},
            signature_version="s3v4",
        )
        self.client = boto3.client(
            "s3",
            endpoint_url=endpoint_url or None,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region or None,
            config=cfg,
        )
        self.bucket = bucket

    def save(self, object_key: str, data: bytes, content_type: Optional[str] = None) -> str:
        self.client.put_object(
            Bucket=self.bucket,
            Key=object_key,
            Body=data,
            ContentType=content_type or "application/octet-stream",
        )
        return object_key

    def read(self, object_key: str) -> bytes:
        obj = self.client.get_object(Bucket=self.bucket, Key=object_key)
        return obj["Body"].read()

    def delete(self, object_key: str) -> bool:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=object_key)
            return True
        except (BotoCoreError, ClientError) as e:
            logger.warning(f"[Storage] Delete failed for {object_key}: {e}")
            return False


def get_storage():
    """Factory for the configured document storage backend."""
    from dms import config

    if config.STORAGE_VENDOR == "s3":
        return S3StorageBackend(
            endpoint_url=config.S3_ENDPOINT_URL,
            access_key=config.S3_ACCESS_KEY_ID,
            secret_key=config.S3_SECRET_ACCESS_KEY,
            bucket=config.S3_BUCKET,
            region=config.S3_REGION,
            force_path_style=config.S3_FORCE_PATH_STYLE,
        )
    return LocalStorageBackend(config.STORAGE_ROOT)


class BackupBucket(S3StorageBackend):
    """Bucket for compressed database dumps, kept apart from invoice documents."""

    def upload_file(self, local_path: str, object_key: str) -> bool:
        try:
            self.client.upload_file(local_path, self.bucket, object_key,
                                    ExtraArgs={"ContentType": "application/gzip"})
            return True
        except (BotoCoreError, ClientError) as e:
            logger.error(f"[Backups] Upload of {object_key} failed: {e}")
            return False

    def delete_file(self, object_key: str) -> bool:
        return self.delete(object_key)


def get_backup_storage() -> BackupBucket:
    from dms import config

    return BackupBucket(
        endpoint_url=config.BACKUP_S3_ENDPOINT_URL,
        access_key=config.BACKUP_S3_ACCESS_KEY_ID,
        secret_key=config.BACKUP_S3_SECRET_ACCESS_KEY,
        bucket=config.BACKUP_S3_BUCKET,
        region=config.BACKUP_S3_REGION,
    )
