"""
Transfer orchestration: diff a local tree against a remote prefix, upload what
changed and delete orphaned objects, with bounded concurrency per target.
"""
import asyncio
import hashlib
import mimetypes
import os
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from loguru import logger

from ..clients.s3_manager import DELETE_BATCH_SIZE, S3Manager, S3Object
from ..exceptions import PreCommandError, S3SyncError, TransferError
from ..models.config import SyncTarget
from ..models.data_models import LocalFile, TargetResult
from .bucket_resolver import BucketResolver
from .progress import ProgressSink, ProgressTracker
from .rule_matcher import match, to_rel_path
from .tree_walker import list_files_recursive


MAX_CONCURRENCY = 5
HASH_CHUNK_SIZE = 1024 * 1024


class TargetState(Enum):
    IDLE = 'idle'
    PRE_COMMAND = 'pre_command'
    DIFFING = 'diffing'
    TRANSFERRING = 'transferring'
    DELETING = 'deleting'
    DONE = 'done'
    FAILED = 'failed'


@dataclass
class SyncPlan:
    """Result of diffing a local tree against a remote listing."""
    uploads: List[LocalFile] = field(default_factory=list)
    unchanged: List[LocalFile] = field(default_factory=list)
    orphans: List[str] = field(default_factory=list)


async def run_bounded(jobs: Sequence[Callable[[], Awaitable[Any]]],
                      limit: int = MAX_CONCURRENCY) -> None:
    """
    Run jobs with at most `limit` in flight, starting them in FIFO order.

    The first failure aborts the batch: queued jobs are dropped, running jobs
    are cancelled and awaited, then the failure is re-raised.
    """
    queue = deque(jobs)
    if not queue:
        return

    async def _worker() -> None:
        while queue:
            job = queue.popleft()
            await job()

    workers = [asyncio.ensure_future(_worker()) for _ in range(min(limit, len(queue)))]
    try:
        done, pending = await asyncio.wait(workers, return_when=asyncio.FIRST_EXCEPTION)
    finally:
        queue.clear()
        for worker in workers:
            if not worker.done():
                worker.cancel()
        await asyncio.gather(*workers, return_exceptions=True)

    for worker in done:
        if not worker.cancelled() and worker.exception() is not None:
            raise worker.exception()


def resolve_content_type(rel_path: str, params: Dict[str, Any],
                         default_content_type: Optional[str]) -> Optional[str]:
    """Rule ContentType, then the guessed MIME type, then the target default."""
    if params.get('ContentType'):
        return params['ContentType']
    guessed, _ = mimetypes.guess_type(rel_path)
    return guessed or default_content_type


def file_md5(path: str) -> str:
    digest = hashlib.md5()
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(HASH_CHUNK_SIZE), b''):
            digest.update(chunk)
    return digest.hexdigest()


def collect_local_files(target: SyncTarget, current_env: Optional[str]) -> List[LocalFile]:
    """
    Walk the target's localDir and attach the merged rule parameters to each file.

    Raises:
        TransferError: If localDir does not exist
    """
    try:
        paths = list_files_recursive(target.local_dir, target.follow_symlinks)
    except OSError as e:
        raise TransferError(f"Cannot read localDir of {target.name}: {e}") from e

    local_files = []
    for path in paths:
        bag, included = match(path, target.rules, current_env, target.local_dir)
        try:
            size = os.path.getsize(path)
        except OSError as e:
            logger.warning(f"Skipping {path}: {e}")
            continue
        local_files.append(LocalFile(
            path=path,
            rel_path=to_rel_path(path, target.local_dir),
            size=size,
            params=dict(bag.params),
            excluded=not included,
            matched=bag.matched
        ))
    return local_files


def is_unchanged(local_file: LocalFile, remote: S3Object) -> bool:
    """Same size and, for single-part uploads, the same MD5 as the remote ETag."""
    if local_file.size != remote.size:
        return False
    if remote.is_multipart:
        return True
    return file_md5(local_file.path) == remote.etag


def plan(target: SyncTarget, local_files: List[LocalFile], remote_objects: List[S3Object]) -> SyncPlan:
    """
    Classify local files as needing upload or unchanged and find orphan keys.

    Excluded files take no part in the diff, so their remote copies count as
    orphans.
    """
    remote_by_key = {obj.key: obj for obj in remote_objects}
    result = SyncPlan()
    local_keys = set()

    for local_file in local_files:
        if local_file.excluded:
            logger.debug(f"Excluded by OnlyForEnv: {local_file.rel_path}")
            continue
        key = target.key_for(local_file.rel_path)
        local_keys.add(key)
        remote = remote_by_key.get(key)
        if remote is not None and is_unchanged(local_file, remote):
            result.unchanged.append(local_file)
        else:
            result.uploads.append(local_file)

    result.orphans = sorted(key for key in remote_by_key if key not in local_keys)
    return result


class TransferOrchestrator:
    """
    Runs the upload/delete reconciliation for sync targets.

    Each call works on one target; targets share nothing but the S3 client and
    the bucket resolver cache, so several targets can run concurrently.
    """

    def __init__(self, s3_manager: S3Manager, resolver: BucketResolver,
                 current_env: Optional[str] = None,
                 progress: Optional[ProgressSink] = None,
                 service_path: str = '.',
                 concurrency: int = MAX_CONCURRENCY):
        self.s3_manager = s3_manager
        self.resolver = resolver
        self.current_env = current_env
        self.progress = progress or ProgressSink()
        self.service_path = service_path
        self.concurrency = concurrency
        self.states: Dict[str, TargetState] = {}

    def _set_state(self, target: SyncTarget, state: TargetState) -> None:
        self.states[target.name] = state
        logger.debug(f"{target.name}: {state.value}")

    async def sync_target(self, target: SyncTarget) -> TargetResult:
        """
        Reconcile one target and report the outcome.

        Returns:
            TargetResult, with success=False and the error message when any
            step failed
        """
        self._set_state(target, TargetState.IDLE)
        try:
            result = await self._sync(target)
            self._set_state(target, TargetState.DONE)
        except S3SyncError as e:
            self._set_state(target, TargetState.FAILED)
            result = TargetResult(target=target.name, phase='sync', success=False, error=str(e))
        self.progress.finished(result)
        return result

    async def _sync(self, target: SyncTarget) -> TargetResult:
        bucket = await self.resolver.resolve(target)

        if target.pre_command:
            self._set_state(target, TargetState.PRE_COMMAND)
            await self.run_pre_command(target)

        self._set_state(target, TargetState.DIFFING)
        local_files = await asyncio.to_thread(collect_local_files, target, self.current_env)
        try:
            remote_objects = await asyncio.to_thread(self.s3_manager.list_objects, bucket, target.list_prefix)
        except Exception as e:
            raise TransferError(f"Failed to list s3://{bucket}/{target.list_prefix}: {e}") from e
        sync_plan = await asyncio.to_thread(plan, target, local_files, remote_objects)
        logger.info(
            f"{target.name}: {len(sync_plan.uploads)} to upload, {len(sync_plan.unchanged)} unchanged, "
            f"{len(sync_plan.orphans)} orphaned"
        )

        self._set_state(target, TargetState.TRANSFERRING)
        await self._upload_all(bucket, target, sync_plan.uploads)

        deleted = 0
        if target.delete_removed and sync_plan.orphans:
            self._set_state(target, TargetState.DELETING)
            deleted = await self._delete_keys(bucket, target, sync_plan.orphans)

        return TargetResult(
            target=target.name,
            phase='sync',
            success=True,
            uploaded=len(sync_plan.uploads),
            unchanged=len(sync_plan.unchanged),
            deleted=deleted
        )

    async def run_pre_command(self, target: SyncTarget) -> None:
        """
        Run the target's pre-command in the service directory.

        Raises:
            PreCommandError: If the command exits with a non-zero status
        """
        logger.info(f"{target.name}: running pre-command: {target.pre_command}")
        try:
            process = await asyncio.create_subprocess_shell(target.pre_command, cwd=self.service_path)
        except OSError as e:
            raise PreCommandError(target.pre_command, -1) from e
        returncode = await process.wait()
        if returncode != 0:
            raise PreCommandError(target.pre_command, returncode)

    async def _upload_all(self, bucket: str, target: SyncTarget, uploads: List[LocalFile]) -> None:
        total_bytes = sum(f.size for f in uploads)
        by_bytes = total_bytes > 0
        tracker = ProgressTracker(
            total_bytes if by_bytes else len(uploads), target.name, 'upload', self.progress.update
        )

        def _job(local_file: LocalFile):
            async def _upload() -> None:
                params = dict(local_file.params)
                content_type = resolve_content_type(local_file.rel_path, params, target.default_content_type)
                params.pop('ContentType', None)
                acl = params.pop('ACL', target.acl)
                key = target.key_for(local_file.rel_path)
                try:
                    await asyncio.to_thread(
                        self.s3_manager.put_object, bucket, key, local_file.path, acl, content_type, params
                    )
                except Exception as e:
                    raise TransferError(f"Failed to upload {local_file.rel_path} to s3://{bucket}/{key}: {e}") from e
                tracker.advance(local_file.size if by_bytes else 1)
            return _upload

        await run_bounded([_job(f) for f in uploads], self.concurrency)

    async def _delete_keys(self, bucket: str, target: SyncTarget, keys: List[str]) -> int:
        tracker = ProgressTracker(len(keys), target.name, 'delete', self.progress.update)
        batches = [keys[i:i + DELETE_BATCH_SIZE] for i in range(0, len(keys), DELETE_BATCH_SIZE)]

        def _job(batch: List[str]):
            async def _delete() -> None:
                try:
                    await asyncio.to_thread(self.s3_manager.delete_objects, bucket, batch)
                except Exception as e:
                    raise TransferError(f"Failed to delete {len(batch)} objects from {bucket}: {e}") from e
                tracker.advance(len(batch))
            return _delete

        await run_bounded([_job(batch) for batch in batches], self.concurrency)
        logger.info(f"{target.name}: removed {len(keys)} objects")
        return len(keys)

    async def clear_target(self, target: SyncTarget) -> TargetResult:
        """Delete every object under the target's prefix."""
        try:
            bucket = await self.resolver.resolve(target)
            self._set_state(target, TargetState.DIFFING)
            try:
                remote_objects = await asyncio.to_thread(
                    self.s3_manager.list_objects, bucket, target.list_prefix
                )
            except Exception as e:
                raise TransferError(f"Failed to list s3://{bucket}/{target.list_prefix}: {e}") from e

            self._set_state(target, TargetState.DELETING)
            deleted = await self._delete_keys(bucket, target, [obj.key for obj in remote_objects])
            self._set_state(target, TargetState.DONE)
            result = TargetResult(target=target.name, phase='clear', success=True, deleted=deleted)
        except S3SyncError as e:
            self._set_state(target, TargetState.FAILED)
            result = TargetResult(target=target.name, phase='clear', success=False, error=str(e))
        self.progress.finished(result)
        return result
