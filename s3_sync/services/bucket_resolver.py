"""
Resolution of a sync target's bucket identity to a concrete bucket name.
"""
import asyncio
from typing import Dict, Optional

from loguru import logger

from ..clients.stack_outputs import StackOutputResolver
from ..exceptions import OutputNotFound, ResolutionError
from ..models.config import SyncTarget


class BucketResolver:
    """
    Resolves bucket names once per run.

    Literal names resolve without any external call. Output keys are looked up
    through the stack output client; concurrent callers for the same target
    share one in-flight lookup and the result is cached for the run.
    """

    def __init__(self, output_resolver: Optional[StackOutputResolver] = None):
        self.output_resolver = output_resolver
        self._lookups: Dict[str, 'asyncio.Future[str]'] = {}

    async def resolve(self, target: SyncTarget) -> str:
        """
        Resolve the bucket name of a target.

        Raises:
            ResolutionError: If the target has no bucket identity or the
                output key cannot be resolved
        """
        if target.bucket_name:
            return target.bucket_name
        if not target.bucket_name_key:
            raise ResolutionError("Target has neither bucketName nor bucketNameKey")

        key = target.bucket_name_key
        lookup = self._lookups.get(key)
        if lookup is None:
            lookup = asyncio.ensure_future(self._lookup(key))
            self._lookups[key] = lookup
        return await asyncio.shield(lookup)

    async def _lookup(self, output_key: str) -> str:
        if self.output_resolver is None:
            raise ResolutionError(f"Cannot resolve bucketNameKey '{output_key}': no stack output resolver")

        logger.debug(f"Resolving bucket name from stack output {output_key}")
        try:
            bucket = await asyncio.to_thread(self.output_resolver.resolve_output, output_key)
        except OutputNotFound as e:
            raise ResolutionError(str(e)) from e
        logger.info(f"Resolved bucket {bucket} from stack output {output_key}")
        return bucket
