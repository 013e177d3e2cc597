"""
Metadata-only resync: rewrite object headers in place with a copy onto the
same key, without uploading content again.
"""
import asyncio
from typing import List, Optional

from loguru import logger

from ..clients.s3_manager import S3Manager
from ..exceptions import S3SyncError, TransferError
from ..models.config import SyncTarget
from ..models.data_models import LocalFile, TargetResult
from .bucket_resolver import BucketResolver
from .progress import ProgressSink, ProgressTracker
from .transfer import MAX_CONCURRENCY, collect_local_files, resolve_content_type, run_bounded


class MetadataSyncOrchestrator:
    """
    Re-applies rule-derived headers to every file matched by a target's rules.

    Runs over all matching files regardless of whether their content changed.
    Progress is counted in files since no bytes are transferred.
    """

    def __init__(self, s3_manager: S3Manager, resolver: BucketResolver,
                 current_env: Optional[str] = None,
                 progress: Optional[ProgressSink] = None,
                 concurrency: int = MAX_CONCURRENCY):
        self.s3_manager = s3_manager
        self.resolver = resolver
        self.current_env = current_env
        self.progress = progress or ProgressSink()
        self.concurrency = concurrency

    def files_to_update(self, target: SyncTarget) -> List[LocalFile]:
        """Local files matched by at least one rule and not excluded by OnlyForEnv."""
        return [
            local_file for local_file in collect_local_files(target, self.current_env)
            if local_file.matched and not local_file.excluded
        ]

    async def sync_target(self, target: SyncTarget) -> TargetResult:
        """Replace metadata on the target's matching objects and report the outcome."""
        try:
            result = await self._sync(target)
        except S3SyncError as e:
            result = TargetResult(target=target.name, phase='metadata', success=False, error=str(e))
        self.progress.finished(result)
        return result

    async def _sync(self, target: SyncTarget) -> TargetResult:
        bucket = await self.resolver.resolve(target)
        files = await asyncio.to_thread(self.files_to_update, target)
        logger.info(f"{target.name}: updating metadata of {len(files)} objects")

        tracker = ProgressTracker(len(files), target.name, 'metadata', self.progress.update)

        def _job(local_file: LocalFile):
            async def _copy() -> None:
                params = dict(local_file.params)
                content_type = resolve_content_type(local_file.rel_path, params, target.default_content_type)
                params.pop('ContentType', None)
                acl = params.pop('ACL', target.acl)
                key = target.key_for(local_file.rel_path)
                try:
                    await asyncio.to_thread(
                        self.s3_manager.copy_object, bucket, key, acl, content_type, params
                    )
                except Exception as e:
                    raise TransferError(f"Failed to update metadata of s3://{bucket}/{key}: {e}") from e
                tracker.advance()
            return _copy

        await run_bounded([_job(f) for f in files], self.concurrency)
        return TargetResult(target=target.name, phase='metadata', success=True, copied=len(files))
