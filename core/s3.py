"""
S3 client configuration
"""

import boto3
from core.config import get_settings
from core.logger import logger

client = None


def get_s3_client():
    """ Create the process-wide S3 client on first use """
    global client

    if client:
        return client

    settings = get_settings()
    logger.info(
        "Creating S3 client (region=%s, endpoint=%s)",
        settings.AWS_REGION,
        settings.S3_ENDPOINT_URL or "default",
    )
    client = boto3.client(
        "s3",
        region_name=settings.AWS_REGION,
        endpoint_url=settings.S3_ENDPOINT_URL,
        aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
        aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
    )
    return client
