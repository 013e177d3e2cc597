"""
The ordered set of configured sync targets.
"""
from typing import Any, Dict, Iterator, List, Optional, Tuple

from loguru import logger

from ..exceptions import ConfigurationError
from ..models.config import SyncTarget


class SyncTargetSet:
    """
    Ordered collection of sync targets.

    Disabled targets are dropped when the set is built, so they take part in
    no phase and appear in no result. Descriptors that fail validation are kept
    aside as `invalid` so the caller can report them as failed targets.
    """

    def __init__(self, targets: List[SyncTarget],
                 invalid: Optional[List[Tuple[str, ConfigurationError]]] = None):
        self.targets = [target for target in targets if target.enabled]
        self.invalid = list(invalid or [])

    @classmethod
    def from_config(cls, descriptors: List[Dict[str, Any]], service_path: str = '.') -> 'SyncTargetSet':
        targets = []
        invalid = []
        for position, descriptor in enumerate(descriptors):
            if isinstance(descriptor, dict) and descriptor.get('enabled', True) is False:
                logger.debug(f"Skipping disabled target #{position}")
                continue
            try:
                targets.append(SyncTarget.from_dict(descriptor, service_path))
            except ConfigurationError as e:
                label = _describe(descriptor, position)
                logger.error(f"Invalid sync target {label}: {e}")
                invalid.append((label, e))
        return cls(targets, invalid)

    def __iter__(self) -> Iterator[SyncTarget]:
        return iter(self.targets)

    def __len__(self) -> int:
        return len(self.targets)

    def enabled(self) -> List[SyncTarget]:
        return list(self.targets)

    def select(self, bucket: Optional[str]) -> 'SyncTargetSet':
        """
        Restrict the set to targets whose bucket identity equals `bucket`.

        None selects every target.
        """
        if bucket is None:
            return self
        return SyncTargetSet(
            [target for target in self.targets if target.identity == bucket],
            [entry for entry in self.invalid if entry[0] == bucket]
        )


def _describe(descriptor: Any, position: int) -> str:
    if isinstance(descriptor, dict):
        name = descriptor.get('bucketName') or descriptor.get('bucketNameKey')
        if name:
            return str(name)
    return f"#{position}"
