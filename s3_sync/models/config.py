"""
Configuration classes for the S3 sync engine.
"""
import os
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

import yaml

from ..exceptions import ConfigurationError
from .data_models import Rule


DEFAULT_CONFIG_PATH = 's3sync.yml'
DEFAULT_ACL = 'private'


@dataclass
class AwsConfig:
    """Connection settings shared by the S3 and CloudFormation clients."""
    endpoint: Optional[str] = None
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    region: Optional[str] = None
    profile: Optional[str] = None
    stack_name: Optional[str] = None

    @classmethod
    def from_env(cls, prefix: str = 'S3SYNC') -> 'AwsConfig':
        """Create AwsConfig from environment variables with given prefix."""
        return cls(
            endpoint=os.getenv(f'{prefix}_ENDPOINT') or None,
            access_key=os.getenv(f'{prefix}_ACCESS_KEY') or None,
            secret_key=os.getenv(f'{prefix}_SECRET_KEY') or None,
            region=os.getenv(f'{prefix}_REGION') or None,
            profile=os.getenv(f'{prefix}_PROFILE') or None,
            stack_name=os.getenv(f'{prefix}_STACK_NAME') or None
        )


def normalize_prefix(prefix: Optional[str]) -> str:
    """Strip trailing slashes; a leading slash is kept as given."""
    if not prefix:
        return ''
    return str(prefix).rstrip('/')


def _flag(data: Dict[str, Any], key: str, default: bool) -> bool:
    value = data.get(key, default)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ConfigurationError(f"{key} must be true or false, got {value!r}")
    return value


def _parse_rules(raw: Any) -> Tuple[Rule, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ConfigurationError("params must be a list of {glob: properties} mappings")

    rules = []
    for entry in raw:
        if not isinstance(entry, dict) or len(entry) != 1:
            raise ConfigurationError(f"Invalid params entry {entry!r}: expected a single glob key")
        pattern, props = next(iter(entry.items()))
        if not isinstance(props, dict):
            raise ConfigurationError(f"Invalid params for '{pattern}': expected a mapping")
        rules.append(Rule.from_mapping(str(pattern), props))
    return tuple(rules)


@dataclass(frozen=True)
class SyncTarget:
    """One (local directory, bucket + prefix) pair to reconcile."""
    local_dir: str
    bucket_name: Optional[str] = None
    bucket_name_key: Optional[str] = None
    bucket_prefix: str = ''
    acl: str = DEFAULT_ACL
    follow_symlinks: bool = False
    delete_removed: bool = True
    default_content_type: Optional[str] = None
    enabled: bool = True
    pre_command: Optional[str] = None
    rules: Tuple[Rule, ...] = ()
    bucket_tags: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'bucket_prefix', normalize_prefix(self.bucket_prefix))

    @property
    def identity(self) -> str:
        """Literal bucket name or the output key it is resolved from."""
        return self.bucket_name or self.bucket_name_key or ''

    @property
    def name(self) -> str:
        if self.bucket_prefix:
            return f"{self.identity}/{self.bucket_prefix.lstrip('/')}"
        return self.identity

    @property
    def list_prefix(self) -> str:
        """Prefix used when listing remote objects owned by this target."""
        return f"{self.bucket_prefix}/" if self.bucket_prefix else ''

    def key_for(self, rel_path: str) -> str:
        return f"{self.list_prefix}{rel_path}"

    @classmethod
    def from_dict(cls, data: Dict[str, Any], service_path: str = '.') -> 'SyncTarget':
        """
        Build a target from its camelCase configuration descriptor.

        Args:
            data: Target descriptor as loaded from YAML
            service_path: Directory relative localDir values are resolved against

        Raises:
            ConfigurationError: If the descriptor is incomplete or malformed
        """
        if not isinstance(data, dict):
            raise ConfigurationError(f"Invalid target descriptor: {data!r}")

        bucket_name = data.get('bucketName')
        bucket_name_key = data.get('bucketNameKey')
        if not bucket_name and not bucket_name_key:
            raise ConfigurationError("Target requires either bucketName or bucketNameKey")
        if bucket_name and bucket_name_key:
            raise ConfigurationError("Target must set only one of bucketName and bucketNameKey")

        local_dir = data.get('localDir')
        if not local_dir:
            raise ConfigurationError(f"Target '{bucket_name or bucket_name_key}' requires localDir")

        tags = data.get('bucketTags') or {}
        if not isinstance(tags, dict):
            raise ConfigurationError("bucketTags must be a mapping of tag key to value")

        return cls(
            local_dir=os.path.abspath(os.path.join(service_path, str(local_dir))),
            bucket_name=str(bucket_name) if bucket_name else None,
            bucket_name_key=str(bucket_name_key) if bucket_name_key else None,
            bucket_prefix=str(data.get('bucketPrefix') or ''),
            acl=str(data.get('acl') or DEFAULT_ACL),
            follow_symlinks=_flag(data, 'followSymlinks', False),
            delete_removed=_flag(data, 'deleteRemoved', True),
            default_content_type=data.get('defaultContentType'),
            enabled=_flag(data, 'enabled', True),
            pre_command=data.get('preCommand'),
            rules=_parse_rules(data.get('params')),
            bucket_tags={str(k): str(v) for k, v in tags.items()}
        )


@dataclass
class RunConfig:
    """Run-level settings plus the raw target descriptors."""
    targets: List[Dict[str, Any]] = field(default_factory=list)
    no_sync: bool = False
    endpoint: Optional[str] = None
    env: Optional[str] = None
    bucket: Optional[str] = None
    service_path: str = '.'
    aws: AwsConfig = field(default_factory=AwsConfig)

    @property
    def effective_aws(self) -> AwsConfig:
        """AWS settings with the endpoint override applied."""
        if self.endpoint:
            return replace(self.aws, endpoint=self.endpoint)
        return self.aws

    @classmethod
    def from_dict(cls, data: Dict[str, Any], service_path: str = '.') -> 'RunConfig':
        """Create RunConfig from an already-parsed configuration document."""
        data = data or {}
        if 'custom' in data and isinstance(data['custom'], dict):
            data = data['custom']

        section = data.get('s3Sync')
        no_sync = False
        endpoint = None
        if section is None:
            targets = []
        elif isinstance(section, list):
            targets = section
        elif isinstance(section, dict):
            targets = section.get('buckets') or []
            no_sync = _flag(section, 'noSync', False)
            endpoint = section.get('endpoint')
        else:
            raise ConfigurationError("s3Sync must be a list of targets or a mapping with 'buckets'")

        if not isinstance(targets, list):
            raise ConfigurationError("s3Sync buckets must be a list")

        return cls(
            targets=targets,
            no_sync=no_sync,
            endpoint=endpoint,
            env=os.getenv('S3SYNC_ENV') or None,
            service_path=os.path.abspath(service_path),
            aws=AwsConfig.from_env()
        )

    @classmethod
    def load(cls, path: Optional[str] = None) -> 'RunConfig':
        """Load RunConfig from a YAML file (S3SYNC_CONFIG or s3sync.yml)."""
        path = path or os.getenv('S3SYNC_CONFIG', DEFAULT_CONFIG_PATH)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration file {path} must contain a mapping")

        return cls.from_dict(data, service_path=os.path.dirname(os.path.abspath(path)))
