import logging

import boto3

from app.utils.config import Settings

settings = Settings()


def get_s3_client():
    """Initializes and returns an S3 client."""
    return boto3.client(
        "s3",
        aws_access_key_id=settings.s3_access_key or None,
        aws_secret_access_key=settings.s3_secret_key or None,
        endpoint_url=settings.s3_endpoint_url or None,
    )


def download_pdf(s3_client, bucket: str, key: str) -> bytes:
    try:
        response = s3_client.get_object(Bucket=bucket, Key=key)
        return response["Body"].read()
    except Exception as e:
        logging.error(f"Failed to download from S3: bucket={bucket}, key={key}, error={e}")
        raise
