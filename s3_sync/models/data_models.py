"""
Core data models for the S3 sync engine.
"""
import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, Any, List, Optional, Tuple

from ..exceptions import ConfigurationError


@lru_cache(maxsize=256)
def compile_glob(pattern: str) -> 're.Pattern[str]':
    """
    Translate a glob relative to the sync root into a regular expression.

    `*` and `?` never cross a directory separator, `**` spans any number of
    directories. A bracket expression with nothing inside is taken literally.

    Raises:
        ConfigurationError: If the pattern cannot be compiled
    """
    source = pattern.replace('\\', '/')
    while source.startswith('./'):
        source = source[2:]
    source = source.lstrip('/')

    regex = []
    i, n = 0, len(source)
    while i < n:
        c = source[i]
        if source.startswith('**/', i):
            regex.append('(?:.*/)?')
            i += 3
        elif source.startswith('**', i):
            regex.append('.*')
            i += 2
        elif c == '*':
            regex.append('[^/]*')
            i += 1
        elif c == '?':
            regex.append('[^/]')
            i += 1
        elif c == '[':
            end = source.find(']', i + 1)
            body = source[i + 1:end] if end != -1 else ''
            if end == -1 or body in ('', '!'):
                regex.append(re.escape(c))
                i += 1
            else:
                if body.startswith('!'):
                    body = '^' + body[1:]
                regex.append('[' + body.replace('\\', '\\\\') + ']')
                i = end + 1
        else:
            regex.append(re.escape(c))
            i += 1

    try:
        return re.compile(''.join(regex) + r'\Z')
    except re.error as e:
        raise ConfigurationError(f"Invalid glob pattern '{pattern}': {e}") from e


@dataclass(frozen=True)
class Rule:
    """
    A glob pattern relative to the sync root and the properties it applies.

    The reserved OnlyForEnv key is lifted out of the property mapping at parse
    time so it can never reach the transport layer.
    """
    pattern: str
    params: Tuple[Tuple[str, Any], ...] = ()
    only_for_env: Optional[str] = None

    @classmethod
    def from_mapping(cls, pattern: str, props: Dict[str, Any]) -> 'Rule':
        compile_glob(pattern)
        params = tuple((k, v) for k, v in props.items() if k != 'OnlyForEnv')
        only_for_env = props.get('OnlyForEnv')
        return cls(
            pattern=pattern,
            params=params,
            only_for_env=str(only_for_env) if only_for_env is not None else None
        )


@dataclass
class PropertyBag:
    """Merged per-object parameters produced by the rule matcher."""
    params: Dict[str, Any] = field(default_factory=dict)
    only_for_env: Optional[str] = None
    matched: bool = False

    def merge(self, rule: Rule) -> None:
        """Merge a rule over the bag; the rule wins on key collision."""
        self.params.update(rule.params)
        if rule.only_for_env is not None:
            self.only_for_env = rule.only_for_env
        self.matched = True


@dataclass
class LocalFile:
    """A local file resolved against the rules of its target."""
    path: str
    rel_path: str
    size: int
    params: Dict[str, Any] = field(default_factory=dict)
    excluded: bool = False
    matched: bool = False


@dataclass
class TargetResult:
    """Outcome of one phase for one sync target."""
    target: str
    phase: str
    success: bool
    uploaded: int = 0
    unchanged: int = 0
    deleted: int = 0
    copied: int = 0
    tags_written: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'target': self.target,
            'phase': self.phase,
            'success': self.success,
            'uploaded': self.uploaded,
            'unchanged': self.unchanged,
            'deleted': self.deleted,
            'copied': self.copied,
            'tags_written': self.tags_written,
            'error': self.error
        }


@dataclass
class PhaseSummary:
    """Aggregated results for one phase across all targets."""
    phase: str
    results: List[TargetResult] = field(default_factory=list)
    skipped: bool = False

    @property
    def success(self) -> bool:
        return all(result.success for result in self.results)

    @property
    def failed(self) -> List[TargetResult]:
        return [result for result in self.results if not result.success]
