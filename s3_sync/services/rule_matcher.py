"""
Per-file rule matching: glob pattern -> property overrides.

Patterns are relative to the target's localDir. `*` and `?` never cross a
directory separator, `**` spans any number of directories and a plain name
such as `index.html` only matches that file at the root.
"""
import os
from typing import Iterable, Optional, Tuple

from ..models.data_models import PropertyBag, Rule, compile_glob


def glob_matches(pattern: str, rel_path: str) -> bool:
    """Check a '/'-separated path relative to the sync root against a glob."""
    return compile_glob(pattern).match(rel_path.replace(os.sep, '/')) is not None


def to_rel_path(local_path: str, root: str) -> str:
    return os.path.relpath(local_path, root).replace(os.sep, '/')


def match(local_path: str, rules: Iterable[Rule], current_env: Optional[str],
          root: str) -> Tuple[PropertyBag, bool]:
    """
    Evaluate rules against one local file.

    Matching rules are merged in declaration order, later rules overwrite
    earlier ones on key collision. When the merged OnlyForEnv differs from the
    current environment the file is excluded.

    Args:
        local_path: Absolute path of the file
        rules: Ordered rules of the target
        current_env: Environment the run is for, None when unset
        root: The target's localDir

    Returns:
        (property bag, included)
    """
    rel_path = to_rel_path(local_path, root)
    bag = PropertyBag()
    for rule in rules:
        if glob_matches(rule.pattern, rel_path):
            bag.merge(rule)

    if bag.only_for_env is not None and bag.only_for_env != current_env:
        return bag, False
    return bag, True
