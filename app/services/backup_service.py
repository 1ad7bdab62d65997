import hashlib
import json
import re
from typing import Any, Dict, List, Optional, Tuple

import boto3
from botocore.exceptions import ClientError
from loguru import logger

from app.core.config import settings
from app.core.errors import ApiError, ApiErrorCode, missing_parameters, not_configured

BACKUP_PREFIX = "backups"
BACKUP_FILENAME_RE = re.compile(r"^trade-marathon-backup-v\d+-\d{8}T\d{6}Z\.json$")
LIST_MAX_KEYS = 100
RETENTION_SCAN_MAX_KEYS = 200


def is_backup_configured() -> bool:
    return bool(settings.backup_bucket_name)


def validate_filename(filename: Any, strict: bool = False) -> Optional[str]:
    """Reject traversal; ``strict`` also enforces the backup naming scheme."""
    if not isinstance(filename, str):
        return None
    filename = filename.strip()
    if not filename or ".." in filename or "/" in filename:
        return None
    if strict and not BACKUP_FILENAME_RE.match(filename):
        return None
    return filename


def normalize_version(payload: Any) -> str:
    if isinstance(payload, dict) and "version" in payload:
        try:
            version = float(payload["version"])
        except (TypeError, ValueError):
            return "1"
        if version > 0 and version != float("inf"):
            return str(int(version)) if version.is_integer() else str(version)
    return "1"


def compute_checksum(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def _is_missing(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound")


class BackupService:
    """
    Per-user JSON backups in S3 under ``<user_id>/backups/<filename>``.

    Checksum (sha256) and payload version are stored as object metadata;
    only the newest ``backup_max_per_user`` objects are kept.
    """

    def __init__(self, s3_client=None, bucket_name: Optional[str] = None):
        self.bucket_name = bucket_name or settings.backup_bucket_name
        self._s3_client = s3_client

    @property
    def s3_client(self):
        if self._s3_client is None:
            if settings.aws_access_key_id and settings.aws_secret_access_key:
                self._s3_client = boto3.client(
                    "s3",
                    aws_access_key_id=settings.aws_access_key_id,
                    aws_secret_access_key=settings.aws_secret_access_key,
                    region_name=settings.aws_region,
                )
            else:
                # environment variables or IAM role
                self._s3_client = boto3.client("s3", region_name=settings.aws_region)
        return self._s3_client

    def ensure_configured(self):
        if not self.bucket_name:
            raise not_configured("Cloud backup not configured")

    @staticmethod
    def user_prefix(user_id: str) -> str:
        return f"{user_id}/{BACKUP_PREFIX}/"

    def _key(self, user_id: str, filename: str) -> str:
        return f"{self.user_prefix(user_id)}{filename}"

    def _list_objects(self, user_id: str, max_keys: int) -> List[Dict[str, Any]]:
        prefix = self.user_prefix(user_id)
        response = self.s3_client.list_objects_v2(Bucket=self.bucket_name, Prefix=prefix, MaxKeys=max_keys)
        return [obj for obj in response.get("Contents", []) if obj["Key"] != prefix and not obj["Key"].endswith("/")]

    def list_backups(self, user_id: str) -> Dict[str, List[Dict[str, Any]]]:
        self.ensure_configured()
        prefix = self.user_prefix(user_id)
        try:
            objects = self._list_objects(user_id, LIST_MAX_KEYS)
            files = []
            for obj in objects:
                metadata = self.s3_client.head_object(Bucket=self.bucket_name, Key=obj["Key"]).get("Metadata", {})
                files.append({
                    "name": obj["Key"][len(prefix):],
                    "createdAt": obj["LastModified"].isoformat() if obj.get("LastModified") else None,
                    "sizeBytes": int(obj.get("Size", 0)),
                    "checksum": metadata.get("checksum", ""),
                    "version": metadata.get("version", "1"),
                    "_sort": obj.get("LastModified"),
                })
        except ClientError as e:
            logger.error(f"[backup] list error: {e}")
            raise ApiError("Failed to list backups")

        files.sort(key=lambda f: f["_sort"].timestamp() if f["_sort"] else 0, reverse=True)
        for f in files:
            del f["_sort"]
        return {"files": files}

    def upload_backup(self, user_id: str, filename: Any, data: Any) -> Dict[str, Any]:
        self.ensure_configured()
        name = validate_filename(filename, strict=True)
        if not name:
            raise missing_parameters(
                "Invalid filename. Use trade-marathon-backup-v<version>-YYYYMMDDTHHmmssZ.json"
            )

        body = data if isinstance(data, str) else json.dumps(data if data is not None else {})
        checksum = compute_checksum(body)
        try:
            version = normalize_version(json.loads(body))
        except ValueError:
            version = "1"

        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=self._key(user_id, name),
                Body=body.encode("utf-8"),
                ContentType="application/json",
                Metadata={"checksum": checksum, "version": version},
            )
            self.trim_retention(user_id)
        except ClientError as e:
            logger.error(f"[backup] upload error: {e}")
            raise ApiError("Failed to upload backup")

        logger.info(f"Backup {name} stored for user {user_id}")
        return {
            "ok": True,
            "filename": name,
            "checksum": checksum,
            "sizeBytes": len(body.encode("utf-8")),
            "version": version,
        }

    def trim_retention(self, user_id: str):
        objects = self._list_objects(user_id, RETENTION_SCAN_MAX_KEYS)
        if len(objects) <= settings.backup_max_per_user:
            return
        objects.sort(key=lambda o: o["LastModified"], reverse=True)
        for stale in objects[settings.backup_max_per_user:]:
            try:
                self.s3_client.delete_object(Bucket=self.bucket_name, Key=stale["Key"])
            except ClientError as e:
                logger.warning(f"[backup] failed to trim {stale['Key']}: {e}")

    def download_backup(self, user_id: str, filename: Any) -> Tuple[bytes, str]:
        """Return the raw JSON and its stored checksum."""
        self.ensure_configured()
        name = validate_filename(filename)
        if not name:
            raise missing_parameters("Invalid filename")
        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=self._key(user_id, name))
        except ClientError as e:
            if _is_missing(e):
                raise ApiError("Backup not found", ApiErrorCode.NOT_FOUND)
            logger.error(f"[backup] download error: {e}")
            raise ApiError("Failed to download backup")
        return response["Body"].read(), str(response.get("Metadata", {}).get("checksum", ""))

    def delete_backup(self, user_id: str, filename: Any) -> Dict[str, bool]:
        self.ensure_configured()
        name = validate_filename(filename)
        if not name:
            raise missing_parameters("Invalid filename")
        key = self._key(user_id, name)
        try:
            self.s3_client.head_object(Bucket=self.bucket_name, Key=key)
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            if _is_missing(e):
                raise ApiError("Backup not found", ApiErrorCode.NOT_FOUND)
            logger.error(f"[backup] delete error: {e}")
            raise ApiError("Failed to delete backup")
        return {"ok": True}


def get_backup_service() -> BackupService:
    return BackupService()
