"""
Run aggregator: drives every enabled target through the sync, metadata, tag
and clear phases concurrently and summarises the outcome per phase.
"""
import asyncio
from typing import Awaitable, Callable, List, Optional

from loguru import logger

from ..clients.s3_manager import S3Manager
from ..clients.stack_outputs import StackOutputResolver
from ..exceptions import S3SyncError
from ..models.config import RunConfig, SyncTarget
from ..models.data_models import PhaseSummary, TargetResult
from .bucket_resolver import BucketResolver
from .metadata_sync import MetadataSyncOrchestrator
from .progress import ProgressSink
from .tag_merger import TagMerger
from .target_set import SyncTargetSet
from .transfer import TransferOrchestrator


MESSAGE_PREFIX = 'S3 Sync: '


class SyncService:
    """
    Main synchronization service that resolves buckets and runs each phase
    over all enabled targets.

    Targets are processed concurrently; a failing target never stops the
    others, it only marks the phase as failed.
    """

    def __init__(self, config: RunConfig,
                 s3_manager: Optional[S3Manager] = None,
                 output_resolver: Optional[StackOutputResolver] = None,
                 progress: Optional[ProgressSink] = None):
        """
        Initialize sync service with configuration.

        Args:
            config: RunConfig holding targets and run-level switches
            s3_manager: Object-store client, created from config when omitted
            output_resolver: Stack output client, created on demand when a
                target references its bucket through bucketNameKey
            progress: Progress sink, logs through loguru when omitted
        """
        self.config = config
        self.target_set = SyncTargetSet.from_config(config.targets, config.service_path).select(config.bucket)

        aws = config.effective_aws
        self.s3_manager = s3_manager or S3Manager(aws)
        if output_resolver is None and any(t.bucket_name_key for t in self.target_set):
            output_resolver = StackOutputResolver(aws)
        self.resolver = BucketResolver(output_resolver)
        self.progress = progress or ProgressSink()

        self.transfer = TransferOrchestrator(
            self.s3_manager, self.resolver,
            current_env=config.env,
            progress=self.progress,
            service_path=config.service_path
        )
        self.metadata = MetadataSyncOrchestrator(
            self.s3_manager, self.resolver,
            current_env=config.env,
            progress=self.progress
        )
        self.tags = TagMerger(self.s3_manager, self.resolver)

        logger.info(f"SyncService initialized with {len(self.target_set)} enabled targets")

    async def _run_phase(self, phase: str, targets: List[SyncTarget],
                         runner: Callable[[SyncTarget], Awaitable[TargetResult]],
                         include_invalid: bool = True) -> PhaseSummary:
        summary = PhaseSummary(phase=phase)
        if include_invalid:
            for label, error in self.target_set.invalid:
                summary.results.append(TargetResult(target=label, phase=phase, success=False, error=str(error)))

        outcomes = await asyncio.gather(*(runner(target) for target in targets), return_exceptions=True)
        for target, outcome in zip(targets, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"{target.name} [{phase}] failed unexpectedly: {outcome!r}")
                outcome = TargetResult(target=target.name, phase=phase, success=False, error=str(outcome))
            summary.results.append(outcome)
        return summary

    def _skipped(self, phase: str) -> PhaseSummary:
        logger.info(f"{MESSAGE_PREFIX}noSync is set, skipping {phase}")
        return PhaseSummary(phase=phase, skipped=True)

    async def sync_files(self, targets: Optional[List[SyncTarget]] = None) -> PhaseSummary:
        """Upload changed files and remove orphans for every enabled target."""
        if self.config.no_sync:
            return self._skipped('sync')
        logger.info(f"{MESSAGE_PREFIX}Syncing directories and S3 prefixes...")
        summary = await self._run_phase(
            'sync', targets if targets is not None else self.target_set.enabled(), self.transfer.sync_target
        )
        logger.info(f"{MESSAGE_PREFIX}{'Synced.' if summary.success else 'Sync failed.'}")
        return summary

    async def sync_metadata(self, targets: Optional[List[SyncTarget]] = None,
                            include_invalid: bool = True) -> PhaseSummary:
        """Rewrite object metadata for targets that declare rules."""
        if self.config.no_sync:
            return self._skipped('metadata')
        candidates = targets if targets is not None else self.target_set.enabled()
        candidates = [target for target in candidates if target.rules]
        logger.info(f"{MESSAGE_PREFIX}Syncing metadata...")
        summary = await self._run_phase('metadata', candidates, self.metadata.sync_target, include_invalid)
        logger.info(f"{MESSAGE_PREFIX}{'Synced metadata.' if summary.success else 'Metadata sync failed.'}")
        return summary

    async def sync_bucket_tags(self, targets: Optional[List[SyncTarget]] = None,
                               include_invalid: bool = True) -> PhaseSummary:
        """Merge configured bucket tags for targets that declare them."""
        if self.config.no_sync:
            return self._skipped('tags')
        candidates = targets if targets is not None else self.target_set.enabled()
        candidates = [target for target in candidates if target.bucket_tags]
        logger.info(f"{MESSAGE_PREFIX}Updating bucket tags...")
        summary = await self._run_phase('tags', candidates, self._apply_tags, include_invalid)
        logger.info(f"{MESSAGE_PREFIX}{'Updated bucket tags.' if summary.success else 'Bucket tag update failed.'}")
        return summary

    async def _apply_tags(self, target: SyncTarget) -> TargetResult:
        try:
            result = await self.tags.apply(target)
        except S3SyncError as e:
            result = TargetResult(target=target.name, phase='tags', success=False, error=str(e))
        self.progress.finished(result)
        return result

    async def sync(self) -> List[PhaseSummary]:
        """
        Full run: file sync, then metadata and tags for the targets whose file
        sync succeeded.
        """
        files = await self.sync_files()
        if files.skipped:
            return [files]

        succeeded = {result.target for result in files.results if result.success}
        remaining = [target for target in self.target_set if target.name in succeeded]

        summaries = [files]
        if any(target.rules for target in remaining):
            summaries.append(await self.sync_metadata(remaining, include_invalid=False))
        if any(target.bucket_tags for target in remaining):
            summaries.append(await self.sync_bucket_tags(remaining, include_invalid=False))
        return summaries

    async def clear(self) -> PhaseSummary:
        """Remove every object under each enabled target's prefix."""
        if self.config.no_sync:
            return self._skipped('clear')
        logger.info(f"{MESSAGE_PREFIX}Removing S3 objects...")
        summary = await self._run_phase('clear', self.target_set.enabled(), self.transfer.clear_target)
        logger.info(f"{MESSAGE_PREFIX}{'Removed.' if summary.success else 'Removal failed.'}")
        return summary
