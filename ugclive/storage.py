"""Object storage for finished renders."""

import logging
import os
from typing import Optional

import boto3
import requests

from .render_engine.errors import UploadError

logger = logging.getLogger(__name__)


def _check_file(path: str) -> int:
    if not os.path.exists(path):
        raise UploadError(f"File does not exist: {path}")
    size = os.path.getsize(path)
    if size == 0:
        raise UploadError(f"File is empty, cannot upload: {path}")
    return size


class SupabaseStorage:
    """Supabase storage bucket with public URLs. Uploads overwrite existing keys."""

    def __init__(self, base_url: str, api_key: str, bucket: str = "generated-videos", timeout: int = 300):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.bucket = bucket
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> "SupabaseStorage":
        settings.require_store()
        return cls(settings.supabase_url, settings.supabase_key, settings.storage_bucket)

    def public_url(self, key: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{key}"

    def upload(self, path: str, key: str, content_type: str = "video/mp4") -> str:
        size = _check_file(path)
        logger.info("Uploading %s (%d bytes) to bucket %s as %s", path, size, self.bucket, key)
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": content_type,
            "x-upsert": "true",
        }
        url = f"{self.base_url}/storage/v1/object/{self.bucket}/{key}"
        try:
            with open(path, "rb") as f:
                r = requests.post(url, data=f, headers=headers, timeout=self.timeout)
            r.raise_for_status()
        except requests.RequestException as e:
            raise UploadError(f"upload of {key} failed: {e}") from e
        return self.public_url(key)


class S3Storage:
    def __init__(self, bucket: str, client=None, region: Optional[str] = None):
        self.bucket = bucket
        self.client = client or boto3.client("s3", region_name=region)

    def upload(self, path: str, key: str, content_type: str = "video/mp4") -> str:
        size = _check_file(path)
        logger.info("Uploading to S3 bucket: %s, key: %s (%d bytes)", self.bucket, key, size)
        try:
            self.client.upload_file(path, self.bucket, key, ExtraArgs={"ContentType": content_type})
        except Exception as e:
            raise UploadError(f"S3 upload of {key} failed: {e}") from e
        region = self.client.meta.region_name or "us-east-1"
        return f"https://{self.bucket}.s3.{region}.amazonaws.com/{key}"
