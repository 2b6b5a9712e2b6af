import logging
import uuid
from traceback import format_exc

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from voiceover.errors import ProviderError, ValidationError

logger = logging.getLogger(__name__)

UPLOAD_URL_TTL = 900  # 15 minutes

ALLOWED_VIDEO_TYPES = {
    "video/mp4": "mp4",
    "video/quicktime": "mov",
    "video/x-msvideo": "avi",
    "video/x-ms-wmv": "wmv",
    "video/x-matroska": "mkv",
    "video/webm": "webm",
}


class S3Storage:
    """Presigned upload/download URLs for customer and final videos."""

    def __init__(self, bucket: str, region: str = "us-east-1", download_ttl: int = 900):
        self.bucket = bucket
        self.region = region
        self.download_ttl = download_ttl
        self._client = None

    def _get_client(self):
        if not self.bucket:
            raise ProviderError("configuration", "AWS_S3_BUCKET_NAME is not set")
        if self._client is None:
            self._client = boto3.client(
                "s3",
                region_name=self.region,
                config=Config(signature_version="s3v4"),
            )
        return self._client

    def generate_upload_url(self, file_name: str, content_type: str) -> dict:
        content_type = (content_type or "").lower()
        if content_type not in ALLOWED_VIDEO_TYPES:
            raise ValidationError(
                "Invalid file type. Supported types: " + ", ".join(sorted(ALLOWED_VIDEO_TYPES))
            )
        extension = file_name.rsplit(".", 1)[-1].lower() if "." in file_name else ALLOWED_VIDEO_TYPES[content_type]
        key = f"uploads/{uuid.uuid4()}.{extension}"
        try:
            url = self._get_client().generate_presigned_url(
                "put_object",
                Params={"Bucket": self.bucket, "Key": key, "ContentType": content_type},
                ExpiresIn=UPLOAD_URL_TTL,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to presign upload for {key}: {str(e)}\n{format_exc()}")
            raise ProviderError("unavailable", str(e))
        return {"upload_url": url, "key": key}

    def generate_download_url(self, key: str, expires_in: int = None) -> str:
        try:
            return self._get_client().generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in or self.download_ttl,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to presign download for {key}: {str(e)}\n{format_exc()}")
            raise ProviderError("unavailable", str(e))

    def object_exists(self, key: str) -> bool:
        try:
            self._get_client().head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in ("404", "NoSuchKey", "NotFound"):
                return False
            logger.error(f"Failed to check object {key}: {str(e)}")
            raise ProviderError("unavailable", str(e))
        except BotoCoreError as e:
            logger.error(f"Failed to check object {key}: {str(e)}")
            raise ProviderError("network_timeout", str(e))
