"""
S3 Sync - reconcile local directories with prefixes in S3 buckets.
"""

from .services.sync_service import SyncService
from .models.config import AwsConfig, RunConfig, SyncTarget
from .models.data_models import Rule, LocalFile, TargetResult, PhaseSummary
from .exceptions import (
    S3SyncError,
    ConfigurationError,
    ResolutionError,
    OutputNotFound,
    TransferError,
    TagOperationError,
    PreCommandError
)

__version__ = "1.0.0"
__all__ = [
    "SyncService",
    "AwsConfig",
    "RunConfig",
    "SyncTarget",
    "Rule",
    "LocalFile",
    "TargetResult",
    "PhaseSummary",
    "S3SyncError",
    "ConfigurationError",
    "ResolutionError",
    "OutputNotFound",
    "TransferError",
    "TagOperationError",
    "PreCommandError"
]
