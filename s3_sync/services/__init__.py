# Services package
from .sync_service import SyncService
from .target_set import SyncTargetSet
from .transfer import TransferOrchestrator
from .metadata_sync import MetadataSyncOrchestrator
from .tag_merger import TagMerger, merge_tags
from .bucket_resolver import BucketResolver

__all__ = [
    'SyncService',
    'SyncTargetSet',
    'TransferOrchestrator',
    'MetadataSyncOrchestrator',
    'TagMerger',
    'merge_tags',
    'BucketResolver'
]
