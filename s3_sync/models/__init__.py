"""
Models package for the S3 sync engine.
"""
from .data_models import Rule, PropertyBag, LocalFile, TargetResult, PhaseSummary
from .config import AwsConfig, SyncTarget, RunConfig

__all__ = [
    'Rule',
    'PropertyBag',
    'LocalFile',
    'TargetResult',
    'PhaseSummary',
    'AwsConfig',
    'SyncTarget',
    'RunConfig'
]
