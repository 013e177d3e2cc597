"""
S3 client manager wrapping the object-store operations used by the sync engine.
"""
import time
from typing import Dict, Any, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from ..models.config import AwsConfig


DELETE_BATCH_SIZE = 1000

# Errors that describe a definite state, retrying will not change the answer
NON_RETRYABLE_CODES = {
    'AccessDenied', 'NoSuchBucket', 'NoSuchKey', 'NoSuchTagSet', 'InvalidArgument', '403', '404'
}


class S3Object:
    """Represents a remote object listed under a prefix."""

    def __init__(self, key: str, size: int, etag: str, last_modified=None):
        self.key = key
        self.size = size
        self.etag = etag
        self.last_modified = last_modified

    @property
    def is_multipart(self) -> bool:
        return '-' in self.etag

    def __repr__(self) -> str:
        return f"S3Object(key={self.key!r}, size={self.size}, etag={self.etag!r})"


def create_session(config: AwsConfig) -> boto3.Session:
    """Create a boto3 session honouring the configured profile and credentials."""
    return boto3.Session(
        profile_name=config.profile,
        aws_access_key_id=config.access_key,
        aws_secret_access_key=config.secret_key,
        region_name=config.region
    )


class S3Manager:
    """Object-store capability: put, delete, list, copy and bucket tagging."""

    def __init__(self, config: AwsConfig, session: Optional[boto3.Session] = None):
        """Initialize S3Manager with connection configuration."""
        self.config = config
        self.client = self._create_s3_client(config, session)

        logger.info("S3Manager initialized" + (f" against endpoint {config.endpoint}" if config.endpoint else ""))

    def _create_s3_client(self, config: AwsConfig, session: Optional[boto3.Session] = None):
        """Create an S3 client from configuration."""
        try:
            session = session or create_session(config)
            client_config = None
            if config.endpoint:
                # Emulators generally only understand path-style addressing
                client_config = Config(s3={'addressing_style': 'path'})
            client = session.client(
                's3',
                endpoint_url=config.endpoint,
                config=client_config
            )
            logger.debug(f"Created S3 client for endpoint: {config.endpoint or 'default'}")
            return client
        except Exception as e:
            logger.error(f"Failed to create S3 client for {config.endpoint or 'default'}: {e}")
            raise

    def _retry_operation(self, operation, max_retries: int = 3, backoff_factor: float = 1.0):
        """Execute an operation with exponential backoff retry logic."""
        for attempt in range(max_retries):
            try:
                return operation()
            except (ClientError, BotoCoreError) as e:
                if isinstance(e, ClientError) and e.response.get('Error', {}).get('Code') in NON_RETRYABLE_CODES:
                    raise
                if attempt == max_retries - 1:
                    logger.error(f"Operation failed after {max_retries} attempts: {e}")
                    raise

                wait_time = backoff_factor * (2 ** attempt)
                logger.warning(f"Operation failed (attempt {attempt + 1}/{max_retries}), retrying in {wait_time}s: {e}")
                time.sleep(wait_time)

    def list_objects(self, bucket: str, prefix: str = '') -> List[S3Object]:
        """
        List all objects in a bucket under a prefix.

        Args:
            bucket: Bucket name
            prefix: Key prefix, empty for the whole bucket

        Returns:
            List of S3Object entries
        """
        def _list_operation():
            objects = []
            paginator = self.client.get_paginator('list_objects_v2')
            for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                for obj in page.get('Contents', []):
                    objects.append(S3Object(
                        key=obj['Key'],
                        size=obj['Size'],
                        etag=obj.get('ETag', '').strip('"'),
                        last_modified=obj.get('LastModified')
                    ))
            return objects

        try:
            objects = self._retry_operation(_list_operation)
            logger.debug(f"Listed {len(objects)} objects in s3://{bucket}/{prefix}")
            return objects
        except Exception as e:
            logger.error(f"Failed to list objects in s3://{bucket}/{prefix}: {e}")
            raise

    def put_object(self, bucket: str, key: str, file_path: str, acl: str,
                   content_type: Optional[str] = None,
                   extra_params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Upload a local file as a single object.

        Args:
            bucket: Bucket name
            key: Destination key
            file_path: Local file to read the body from
            acl: Canned ACL
            content_type: MIME type, omitted when None
            extra_params: Rule-derived put_object parameters
        """
        params = dict(extra_params or {})
        params.update({'Bucket': bucket, 'Key': key, 'ACL': acl})
        if content_type:
            params['ContentType'] = content_type

        def _put_operation():
            with open(file_path, 'rb') as body:
                return self.client.put_object(Body=body, **params)

        try:
            response = self._retry_operation(_put_operation)
            logger.debug(f"Uploaded {file_path} to s3://{bucket}/{key}")
            return response
        except Exception as e:
            logger.error(f"Failed to upload {file_path} to s3://{bucket}/{key}: {e}")
            raise

    def delete_objects(self, bucket: str, keys: List[str]) -> List[str]:
        """
        Delete keys from a bucket, in batches of at most 1000.

        Returns:
            Keys reported as deleted

        Raises:
            ClientError: If the request fails or any key could not be deleted
        """
        deleted = []
        for start in range(0, len(keys), DELETE_BATCH_SIZE):
            batch = keys[start:start + DELETE_BATCH_SIZE]

            def _delete_operation():
                return self.client.delete_objects(
                    Bucket=bucket,
                    Delete={'Objects': [{'Key': key} for key in batch], 'Quiet': True}
                )

            try:
                response = self._retry_operation(_delete_operation)
            except Exception as e:
                logger.error(f"Failed to delete {len(batch)} objects from {bucket}: {e}")
                raise

            errors = response.get('Errors') or []
            if errors:
                first = errors[0]
                raise ClientError(
                    {'Error': {'Code': first.get('Code', 'DeleteFailed'), 'Message': first.get('Message', '')}},
                    'DeleteObjects'
                )
            deleted.extend(batch)
            logger.debug(f"Deleted {len(batch)} objects from {bucket}")
        return deleted

    def copy_object(self, bucket: str, key: str, acl: str,
                    content_type: Optional[str] = None,
                    extra_params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Copy an object onto itself, replacing its metadata.

        The content is left untouched; only headers and metadata are rewritten.
        """
        params = dict(extra_params or {})
        params.update({
            'Bucket': bucket,
            'Key': key,
            'CopySource': {'Bucket': bucket, 'Key': key},
            'MetadataDirective': 'REPLACE',
            'ACL': acl
        })
        if content_type:
            params['ContentType'] = content_type

        def _copy_operation():
            return self.client.copy_object(**params)

        try:
            response = self._retry_operation(_copy_operation)
            logger.debug(f"Replaced metadata on s3://{bucket}/{key}")
            return response
        except Exception as e:
            logger.error(f"Failed to replace metadata on s3://{bucket}/{key}: {e}")
            raise

    def get_bucket_tags(self, bucket: str) -> List[Dict[str, str]]:
        """
        Get the bucket tag set in its native [{'Key', 'Value'}] form.

        A bucket without tags yields an empty list.
        """
        def _get_operation():
            return self.client.get_bucket_tagging(Bucket=bucket)

        try:
            response = self._retry_operation(_get_operation)
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') == 'NoSuchTagSet':
                logger.debug(f"Bucket {bucket} has no tags")
                return []
            logger.error(f"Failed to get tags for bucket {bucket}: {e}")
            raise
        return list(response.get('TagSet', []))

    def put_bucket_tags(self, bucket: str, tag_set: List[Dict[str, str]]) -> None:
        """Write the complete tag set of a bucket."""
        def _put_operation():
            return self.client.put_bucket_tagging(Bucket=bucket, Tagging={'TagSet': tag_set})

        try:
            self._retry_operation(_put_operation)
            logger.debug(f"Wrote {len(tag_set)} tags to bucket {bucket}")
        except Exception as e:
            logger.error(f"Failed to put tags on bucket {bucket}: {e}")
            raise
