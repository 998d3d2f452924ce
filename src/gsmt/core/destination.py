"""
S3 destination operations for GridFS S3 Migration Tool.
Computes object keys and content types, and uploads streams.
"""

import mimetypes
from typing import BinaryIO, Optional

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import BotoCoreError, ClientError

from gsmt.core.config import PoolConfig


class WriteError(Exception):
    """Raised when an upload to S3 fails"""

    pass


def destination_key(filename: str, folder: Optional[str] = None) -> str:
    """Build the S3 key for a file, prefixed by folder when one is given"""
    return f"{folder}/{filename}" if folder else filename


def content_type_for(filename: str) -> str:
    """Guess the MIME type from the file extension"""
    content_type, _ = mimetypes.guess_type(filename, strict=False)
    return content_type or PoolConfig.FALLBACK_CONTENT_TYPE


def make_s3_client(
    region: str,
    access_key_id: Optional[str] = None,
    secret_access_key: Optional[str] = None,
):
    """
    Create a boto3 S3 client

    Static credentials are only used when both are given; otherwise boto3
    resolves credentials from the environment.
    """
    if access_key_id and secret_access_key:
        return boto3.client(
            "s3",
            region_name=region,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
        )
    return boto3.client("s3", region_name=region)


class ObjectWriter:
    """Uploads streams to an S3 bucket as publicly readable objects"""

    ACL = "public-read"

    def __init__(self, s3_client, bucket: str):
        """
        Initialize object writer

        Args:
            s3_client: boto3 S3 client, shared between workers
            bucket: Destination bucket name
        """
        self._s3 = s3_client
        self.bucket = bucket

    def object_url(self, key: str) -> str:
        return f"https://{self.bucket}/{key}"

    def write(self, key: str, content_type: str, stream: BinaryIO) -> str:
        """
        Upload a stream to S3, creating or overwriting the object at key

        Args:
            key: Destination object key
            content_type: MIME type stored on the object
            stream: Readable byte stream

        Returns:
            str: The key that was written

        Raises:
            WriteError: If the upload fails
        """
        try:
            self._s3.upload_fileobj(
                stream,
                self.bucket,
                key,
                ExtraArgs={"ACL": self.ACL, "ContentType": content_type},
            )
        except (S3UploadFailedError, ClientError, BotoCoreError) as e:
            raise WriteError(f"Failed to upload s3://{self.bucket}/{key}: {e}") from e
        return key
