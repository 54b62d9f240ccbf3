from __future__ import annotations

import io
import time
import uuid
from typing import Optional
from urllib.parse import urlparse

import boto3
from PIL import Image, UnidentifiedImageError

from ..config import settings
from ..exceptions import StorageError
from ..logger import logger

ORIGINAL_PREFIX = "iffy-original"
GENERATED_PREFIX = "iffy-generated"


def normalize_image(image_bytes: bytes, content_type: Optional[str] = None) -> bytes:
    """Re-encode an uploaded image as PNG. PNG input passes through untouched."""
    if content_type == "image/png":
        return image_bytes
    try:
        img = Image.open(io.BytesIO(image_bytes))
        if img.mode not in ("RGB", "RGBA"):
            img = img.convert("RGBA" if "A" in img.getbands() else "RGB")
        buf = io.BytesIO()
        img.save(buf, format="PNG")
        return buf.getvalue()
    except (UnidentifiedImageError, OSError) as e:
        raise StorageError(f"Failed to convert image to PNG: {e}")


def original_key(now_ms: Optional[int] = None) -> str:
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{ORIGINAL_PREFIX}/{now_ms}-{uuid.uuid4()}.png"


def generated_key(iffy_id: str) -> str:
    return f"{GENERATED_PREFIX}/{iffy_id}.png"


class BlobStore:
    """Write-once PNG store on S3 that hands back URLs the browser can load."""

    def __init__(self, client=None, bucket: Optional[str] = None, public_base_url: Optional[str] = None):
        self._client = client
        self.bucket = bucket or settings.S3_BUCKET_NAME
        self.public_base_url = public_base_url if public_base_url is not None else settings.S3_PUBLIC_BASE_URL

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client(
                "s3",
                aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
                aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
                region_name=settings.AWS_REGION_NAME,
                endpoint_url=settings.AWS_ENDPOINT_URL,
            )
        return self._client

    def put_png(self, data: bytes, key: str) -> str:
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType="image/png")
        except Exception as e:
            logger.error(f"Failed to write image to S3: {key}, error: {e}")
            raise StorageError(f"Failed to upload image: {e}")
        logger.info(f"Uploaded image to S3: {key}", extra={"size_bytes": len(data)})
        return self.public_url(key)

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{key}"
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=settings.S3_PRESIGNED_EXPIRES,
            )
        except Exception as e:
            logger.error(f"Failed to build URL for S3 key {key}: {e}")
            raise StorageError(f"Failed to get public URL: {e}")

    def key_from_url(self, url: str) -> str:
        """Recover the object key from a URL this store produced."""
        if self.public_base_url and url.startswith(self.public_base_url.rstrip("/") + "/"):
            return url[len(self.public_base_url.rstrip("/")) + 1:]
        p = urlparse(url)
        if p.scheme == "s3":
            return p.path.lstrip("/")
        path = p.path.lstrip("/")
        # Path-style presigned URLs carry the bucket as the first segment.
        if path.startswith(self.bucket + "/"):
            return path[len(self.bucket) + 1:]
        return path

    def read(self, key: str) -> bytes:
        try:
            obj = self.client.get_object(Bucket=self.bucket, Key=key)
            return obj["Body"].read()
        except Exception as e:
            logger.error(f"Failed to read image from S3: {key}, error: {e}")
            raise StorageError(f"Failed to read image: {e}")

    def upload_original(self, image_bytes: bytes, content_type: Optional[str]) -> str:
        png = normalize_image(image_bytes, content_type)
        return self.put_png(png, original_key())
