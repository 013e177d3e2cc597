"""
Recursive listing of the local files under a sync target's localDir.
"""
import os
from typing import List

from loguru import logger


def list_files_recursive(directory: str, follow_symlinks: bool = False) -> List[str]:
    """
    List every readable regular file under a directory.

    Unreadable entries are skipped with a warning. Symlinks are only traversed
    (files and directories alike) when follow_symlinks is set.

    Args:
        directory: Root directory to walk
        follow_symlinks: Whether symlinked files and directories are followed

    Returns:
        Sorted list of absolute file paths

    Raises:
        FileNotFoundError: If the root itself is not a directory
    """
    root = os.path.abspath(directory)
    if not os.path.isdir(root):
        raise FileNotFoundError(f"Local directory {root} does not exist")
    files = []

    def _on_error(error: OSError) -> None:
        logger.warning(f"Skipping unreadable directory {error.filename}: {error.strerror}")

    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error, followlinks=follow_symlinks):
        if follow_symlinks:
            # Guard against symlink loops by pruning directories already visited
            dirnames[:] = [
                d for d in dirnames
                if not _is_loop(os.path.join(dirpath, d))
            ]
        for name in filenames:
            path = os.path.join(dirpath, name)
            if not follow_symlinks and os.path.islink(path):
                logger.debug(f"Skipping symlink {path}")
                continue
            if not os.path.isfile(path):
                continue
            if not os.access(path, os.R_OK):
                logger.warning(f"Skipping unreadable file {path}")
                continue
            files.append(path)

    files.sort()
    return files


def _is_loop(path: str) -> bool:
    if not os.path.islink(path):
        return False
    real = os.path.realpath(path)
    parent = os.path.realpath(os.path.dirname(path))
    if parent == real or parent.startswith(real + os.sep):
        logger.warning(f"Skipping symlink loop at {path}")
        return True
    return False
