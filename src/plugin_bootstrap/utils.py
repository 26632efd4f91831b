"""Filesystem helpers shared by fetchers and the materializer."""

import logging
import os
import shutil
import stat
import uuid
from pathlib import Path

logger = logging.getLogger(__name__)

VCS_METADATA = (".git",)


def _make_writable_and_retry(func, path, _exc) -> None:
    # git marks pack files read-only, which blocks rmtree on Windows
    os.chmod(path, stat.S_IWRITE)
    func(path)


def remove_path(path: Path) -> bool:
    """Delete a file or directory tree, best effort.

    Returns:
        True if nothing remains at ``path`` afterwards

    Note:
        Failures are logged at debug level and swallowed; cleanup is never a
        source of user-visible errors.
    """
    try:
        if path.is_symlink() or path.is_file():
            path.unlink()
        elif path.is_dir():
            shutil.rmtree(path, onexc=_make_writable_and_retry)
    except OSError as e:
        logger.debug(f"Could not remove {path}: {e}")
    return not path.exists() and not path.is_symlink()


def replace_entry(target: Path) -> None:
    """Remove whatever currently sits at ``target`` so a new entry can take its place.

    Raises:
        OSError: If the existing entry cannot be removed
    """
    if target.is_symlink() or target.is_file():
        target.unlink()
    elif target.is_dir():
        shutil.rmtree(target, onexc=_make_writable_and_retry)


def copy_tree(source: Path, target: Path) -> None:
    """Copy a directory recursively, skipping version-control metadata.

    ``target`` is replaced if it exists.
    """
    replace_entry(target)
    shutil.copytree(source, target, ignore=shutil.ignore_patterns(*VCS_METADATA))


def overlay_tree(source: Path, target: Path) -> list[str]:
    """Merge the contents of ``source`` into ``target`` recursively.

    Directories are merged into existing ones and files overwrite files of the
    same path. An existing entry is only removed when its type conflicts
    (file where ``source`` has a directory, or the reverse). Everything else in
    ``target`` is left alone.

    Returns:
        Names of the top-level entries written
    """
    target.mkdir(parents=True, exist_ok=True)
    ignore = shutil.ignore_patterns(*VCS_METADATA)
    written = []
    for item in sorted(source.iterdir(), key=lambda p: p.name):
        if item.name in VCS_METADATA:
            continue
        destination = target / item.name
        if item.is_dir():
            _remove_conflicting_files(item, destination)
            shutil.copytree(item, destination, dirs_exist_ok=True, ignore=ignore)
        else:
            if destination.is_dir() and not destination.is_symlink():
                replace_entry(destination)
            shutil.copy2(item, destination)
        written.append(item.name)
    return written


def _remove_conflicting_files(source: Path, target: Path) -> None:
    """Clear entries under ``target`` whose type differs from the same path in ``source``."""
    if target.is_symlink() or target.is_file():
        target.unlink()
        return
    if not target.is_dir():
        return
    for item in source.iterdir():
        if item.name in VCS_METADATA:
            continue
        existing = target / item.name
        if item.is_dir():
            _remove_conflicting_files(item, existing)
        elif existing.is_dir() and not existing.is_symlink():
            replace_entry(existing)


def move_contents(source: Path, target: Path) -> None:
    """Move every entry of ``source`` into ``target`` (created if needed)."""
    target.mkdir(parents=True, exist_ok=True)
    for item in source.iterdir():
        shutil.move(str(item), str(target / item.name))


def is_empty_dir(path: Path) -> bool:
    return path.is_dir() and not any(path.iterdir())


def generated_name(prefix: str = "plugin", suffix: str = "") -> str:
    """Placeholder name for content whose source gives no usable name."""
    return f"{prefix}-{uuid.uuid4().hex[:8]}{suffix}"
