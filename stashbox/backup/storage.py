"""
Object storage upload for backup bundles.

Works against AWS S3 and S3-compatible providers (set ``endpoint_url``).
"""

import os
import logging
from typing import Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError, BotoCoreError

logger = logging.getLogger(__name__)


class UploadError(Exception):
    """Raised when an upload to object storage fails."""
    pass


class S3Storage:
    """
    Handler for uploading backup bundles to S3.

    Objects are keyed by the bundle's file name and stored with a private ACL.
    """

    def __init__(self, access_key: str, secret_key: str, bucket_name: str,
                 region: str = 'us-east-1', endpoint_url: Optional[str] = None,
                 timeout: Optional[float] = None):
        """
        Initialize S3 storage handler.

        Args:
            access_key: Access key ID
            secret_key: Secret access key
            bucket_name: Target bucket
            region: Region (default: us-east-1)
            endpoint_url: Custom endpoint for S3-compatible providers
            timeout: Connect/read timeout in seconds (None: botocore defaults)
        """
        self.bucket_name = bucket_name
        self.region = region
        self.endpoint_url = endpoint_url

        client_config = None
        if timeout:
            client_config = BotoConfig(connect_timeout=timeout, read_timeout=timeout)

        try:
            self.s3_client = boto3.client(
                's3',
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                region_name=region,
                endpoint_url=endpoint_url,
                config=client_config
            )
        except Exception as e:
            raise UploadError(f"Failed to initialize S3 client: {e}")

    @classmethod
    def from_settings(cls, aws, timeout: Optional[float] = None) -> 'S3Storage':
        """Build a handler from an AWSConfig."""
        return cls(
            access_key=aws.access_key,
            secret_key=aws.secret_key,
            bucket_name=aws.bucket,
            region=aws.region,
            endpoint_url=aws.endpoint,
            timeout=timeout
        )

    def upload(self, object_key: str, local_path: str) -> str:
        """
        Upload a file, streaming it from disk.

        Args:
            object_key: Key of the object to create
            local_path: Path to the local file

        Returns:
            object_key

        Raises:
            UploadError: If the file is missing or the upload fails
        """
        if not os.path.isfile(local_path):
            raise UploadError(f"Local file not found: {local_path}")

        try:
            with open(local_path, 'rb') as f:
                self.s3_client.put_object(
                    Bucket=self.bucket_name,
                    Key=object_key,
                    Body=f,
                    ACL='private'
                )
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            raise UploadError(f"S3 upload failed ({error_code}): {e}")
        except BotoCoreError as e:
            raise UploadError(f"S3 upload failed: {e}")
        except OSError as e:
            raise UploadError(f"Failed to read {local_path}: {e}")

        logger.info(f"Uploaded {object_key} to bucket {self.bucket_name}")
        return object_key
