import boto3
from fastapi import HTTPException
from botocore.exceptions import ClientError
from opendots.config import settings
import logging

logger = logging.getLogger(__name__)


class R2Storage:
    """Cloudflare R2 through its S3-compatible endpoint."""

    def __init__(self):
        if not settings.r2_configured:
            raise ValueError("Cloudflare R2 credentials and account ID must be configured")

        self.s3_client = boto3.client(
            's3',
            endpoint_url=f"https://{settings.cloudflare_account_id}.r2.cloudflarestorage.com",
            aws_access_key_id=settings.r2_access_key_id,
            aws_secret_access_key=settings.r2_secret_access_key,
            region_name="auto"
        )
        self.bucket_name = settings.r2_bucket_name

    def upload_file(self, file_content: bytes, key: str, content_type: str = "application/octet-stream") -> str:
        """Upload file to R2 and return its key"""
        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=file_content,
                ContentType=content_type
            )
            return key
        except ClientError as e:
            logger.error(f"Failed to upload file to R2: {str(e)}")
            raise


def get_r2_storage() -> R2Storage:
    try:
        return R2Storage()
    except ValueError as e:
        logger.error(str(e))
        raise HTTPException(status_code=500, detail="Cloudflare R2 storage not configured")
