"""
Bucket tag merging.

The tagging API has no partial update, so the existing tag set is read, the
desired tags are merged over it and the full result is written back.
"""
import asyncio
from typing import Dict, List

from loguru import logger

from ..clients.s3_manager import S3Manager
from ..exceptions import TagOperationError
from ..models.config import SyncTarget
from ..models.data_models import TargetResult
from .bucket_resolver import BucketResolver


def merge_tags(existing: List[Dict[str, str]], desired: Dict[str, str]) -> List[Dict[str, str]]:
    """
    Merge desired tags into an existing tag set.

    Existing keys are overwritten in place, new keys are appended in the order
    given, keys absent from desired are left untouched.

    Args:
        existing: Tag set in native [{'Key': ..., 'Value': ...}] form
        desired: Mapping of tag key to value

    Returns:
        New merged tag set; the input is not modified
    """
    merged = [{'Key': tag['Key'], 'Value': tag['Value']} for tag in existing]
    index = {tag['Key']: position for position, tag in enumerate(merged)}
    for key, value in desired.items():
        if key in index:
            merged[index[key]]['Value'] = value
        else:
            index[key] = len(merged)
            merged.append({'Key': key, 'Value': value})
    return merged


class TagMerger:
    """Applies a target's bucketTags with a read-merge-write sequence."""

    def __init__(self, s3_manager: S3Manager, resolver: BucketResolver):
        self.s3_manager = s3_manager
        self.resolver = resolver

    async def apply(self, target: SyncTarget) -> TargetResult:
        """
        Merge the target's bucket tags into its bucket.

        Raises:
            TagOperationError: If reading or writing the tag set fails
        """
        bucket = await self.resolver.resolve(target)

        try:
            existing = await asyncio.to_thread(self.s3_manager.get_bucket_tags, bucket)
        except Exception as e:
            raise TagOperationError(f"Failed to read tags of bucket {bucket}: {e}") from e

        merged = merge_tags(existing, target.bucket_tags)
        logger.debug(f"Bucket {bucket}: {len(existing)} existing tags, {len(merged)} after merge")

        try:
            await asyncio.to_thread(self.s3_manager.put_bucket_tags, bucket, merged)
        except Exception as e:
            raise TagOperationError(f"Failed to write tags of bucket {bucket}: {e}") from e

        logger.info(f"Updated {len(target.bucket_tags)} tags on bucket {bucket}")
        return TargetResult(
            target=target.name,
            phase='tags',
            success=True,
            tags_written=len(target.bucket_tags)
        )
