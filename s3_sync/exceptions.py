"""
Error taxonomy for the S3 sync engine.

Every error raised for a single sync target derives from S3SyncError so the
run aggregator can isolate failures per target.
"""


class S3SyncError(Exception):
    """Base class for all sync errors."""
    pass


class ConfigurationError(S3SyncError):
    """Missing localDir, missing bucket identity or malformed rule shape."""
    pass


class ResolutionError(S3SyncError):
    """Bucket identity could not be resolved to a bucket name."""
    pass


class OutputNotFound(S3SyncError):
    """Raised by the stack output client when no output matches the key."""

    def __init__(self, output_key: str, stack_name: str = ''):
        self.output_key = output_key
        self.stack_name = stack_name
        super().__init__(f"Failed to resolve stack output '{output_key}' in stack '{stack_name}'")


class TransferError(S3SyncError):
    """An upload, delete or copy operation failed."""
    pass


class TagOperationError(S3SyncError):
    """Reading or writing bucket tags failed."""
    pass


class PreCommandError(S3SyncError):
    """The configured pre-command exited with a non-zero status."""

    def __init__(self, command: str, returncode: int):
        self.command = command
        self.returncode = returncode
        super().__init__(f"Pre-command '{command}' failed with exit code {returncode}")
