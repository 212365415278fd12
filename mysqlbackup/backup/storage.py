"""
Object store gateways for backup artifacts.

Supports:
- S3Storage: AWS S3 or any S3-compatible endpoint (MinIO, Spaces, B2, ...)
- LocalStorage: a directory on the local filesystem, keyed like S3
"""

import os
import shutil
from pathlib import Path
from typing import BinaryIO, Iterator, Optional

import boto3
from boto3.exceptions import S3UploadFailedError
from boto3.s3.transfer import TransferConfig
from botocore.exceptions import ClientError, BotoCoreError


DEFAULT_S3_ENDPOINT = 'https://s3.amazonaws.com'

# Multipart above 100MB, 10MB parts
MULTIPART_THRESHOLD = 100 * 1024 * 1024
MULTIPART_CHUNKSIZE = 10 * 1024 * 1024


class StorageError(Exception):
    """Raised when storage operation fails."""
    pass


def resolve_endpoint(endpoint: Optional[str]) -> Optional[str]:
    """
    Endpoint URL to pass to the S3 client.

    Only an explicitly configured, non-default endpoint overrides the SDK's
    own region-based resolution.
    """
    if not endpoint:
        return None
    endpoint = endpoint.strip().rstrip('/')
    if not endpoint or endpoint == DEFAULT_S3_ENDPOINT:
        return None
    return endpoint


class ObjectStore:
    """
    Gateway interface over a remote object store.

    Keys are '/'-separated paths. ``list_objects`` yields keys starting with
    the given prefix in lexicographic order.
    """

    def put(self, key: str, stream: BinaryIO):
        raise NotImplementedError

    def list_objects(self, prefix: str) -> Iterator[str]:
        raise NotImplementedError

    def delete(self, key: str):
        raise NotImplementedError

    def describe(self, key: str) -> str:
        """Human readable location of a key, used in log lines."""
        return key


class S3Storage(ObjectStore):
    """
    Handler for storing backups in an S3 bucket.
    """

    def __init__(self, bucket_name: str, access_key: Optional[str] = None,
                 secret_key: Optional[str] = None, region: str = 'us-east-1',
                 endpoint_url: Optional[str] = None):
        """
        Initialize S3 storage handler.

        Args:
            bucket_name: S3 bucket name
            access_key: AWS access key ID (default credential chain if omitted)
            secret_key: AWS secret access key
            region: AWS region (default: us-east-1)
            endpoint_url: Custom endpoint for S3-compatible backends
        """
        self.bucket_name = bucket_name
        self.region = region
        self.endpoint_url = resolve_endpoint(endpoint_url)

        client_kwargs = {'region_name': region}
        if access_key and secret_key:
            client_kwargs['aws_access_key_id'] = access_key
            client_kwargs['aws_secret_access_key'] = secret_key
        if self.endpoint_url:
            client_kwargs['endpoint_url'] = self.endpoint_url

        try:
            self.s3_client = boto3.client('s3', **client_kwargs)
        except (BotoCoreError, ValueError) as e:
            raise StorageError(f"Failed to initialize S3 client: {e}")

        self.transfer_config = TransferConfig(
            multipart_threshold=MULTIPART_THRESHOLD,
            multipart_chunksize=MULTIPART_CHUNKSIZE
        )

    def describe(self, key: str) -> str:
        return f"s3://{self.bucket_name}/{key}"

    def put(self, key: str, stream: BinaryIO):
        """
        Upload a stream to S3 under ``key``.

        Large streams are sent as multipart uploads; a failed multipart
        upload is aborted by the transfer manager.

        Raises:
            StorageError: If upload fails
        """
        try:
            self.s3_client.upload_fileobj(
                stream,
                self.bucket_name,
                key,
                Config=self.transfer_config
            )
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            raise StorageError(f"S3 upload failed ({error_code}): {e}")
        except (BotoCoreError, S3UploadFailedError) as e:
            raise StorageError(f"S3 upload failed: {e}")

    def delete(self, key: str):
        """
        Delete an object from S3.

        Raises:
            StorageError: If deletion fails
        """
        try:
            self.s3_client.delete_object(
                Bucket=self.bucket_name,
                Key=key
            )
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            raise StorageError(f"S3 delete failed ({error_code}): {e}")
        except BotoCoreError as e:
            raise StorageError(f"Failed to delete from S3: {e}")

    def list_objects(self, prefix: str) -> Iterator[str]:
        """
        Lazily list keys under a prefix.

        Pages are fetched as the iterator is consumed; every call starts a
        fresh listing.

        Raises:
            StorageError: If listing fails
        """
        try:
            paginator = self.s3_client.get_paginator('list_objects_v2')

            for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
                for obj in page.get('Contents', []):
                    yield obj['Key']

        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            raise StorageError(f"S3 list failed ({error_code}): {e}")
        except BotoCoreError as e:
            raise StorageError(f"Failed to list S3 objects: {e}")

    def test_connection(self) -> bool:
        """
        Test S3 connection and bucket access.

        Raises:
            StorageError: If connection test fails
        """
        try:
            self.s3_client.head_bucket(Bucket=self.bucket_name)
            return True
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            if error_code == '404':
                raise StorageError(f"Bucket does not exist: {self.bucket_name}")
            elif error_code == '403':
                raise StorageError(f"Access denied to bucket: {self.bucket_name}")
            else:
                raise StorageError(f"S3 connection test failed ({error_code}): {e}")
        except BotoCoreError as e:
            raise StorageError(f"Failed to connect to S3: {e}")


class LocalStorage(ObjectStore):
    """
    Handler for storing backups in a local directory.

    Keys map to relative paths under base_path: {base_path}/{key}
    """

    def __init__(self, base_path: str):
        self.base_path = Path(base_path)

        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to create local storage directory: {e}")

    def describe(self, key: str) -> str:
        return str(self.base_path / key)

    def put(self, key: str, stream: BinaryIO):
        """
        Write a stream to {base_path}/{key}.

        Raises:
            StorageError: If the file cannot be written
        """
        dest_path = self.base_path / key

        try:
            dest_path.parent.mkdir(parents=True, exist_ok=True)
            with open(dest_path, 'wb') as f:
                shutil.copyfileobj(stream, f)
        except PermissionError as e:
            raise StorageError(f"Permission denied writing to {dest_path}: {e}")
        except OSError as e:
            raise StorageError(f"Failed to store locally: {e}")

    def delete(self, key: str):
        """
        Delete a file from local storage.

        Raises:
            StorageError: If deletion fails
        """
        full_path = self.base_path / key

        try:
            if full_path.exists():
                full_path.unlink()
        except PermissionError as e:
            raise StorageError(f"Permission denied deleting {full_path}: {e}")
        except OSError as e:
            raise StorageError(f"Failed to delete local file: {e}")

    def list_objects(self, prefix: str) -> Iterator[str]:
        """
        List keys starting with ``prefix``, sorted.

        Raises:
            StorageError: If listing fails
        """
        try:
            keys = sorted(
                file_path.relative_to(self.base_path).as_posix()
                for file_path in self.base_path.rglob('*')
                if file_path.is_file()
            )
        except OSError as e:
            raise StorageError(f"Failed to list local files: {e}")

        for key in keys:
            if key.startswith(prefix):
                yield key

    def test_connection(self) -> bool:
        """
        Check that the base directory is writable.

        Raises:
            StorageError: If it is not a writable directory
        """
        if not self.base_path.is_dir():
            raise StorageError(f"Not a directory: {self.base_path}")
        if not os.access(self.base_path, os.W_OK | os.X_OK):
            raise StorageError(f"Directory not writable: {self.base_path}")
        return True
