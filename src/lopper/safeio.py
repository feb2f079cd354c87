"""
Root-sandboxed file reads for config and pack documents.
"""

from __future__ import annotations

from pathlib import Path
from typing import Union

from .errors import ConfigReadError

PathLike = Union[str, Path]


def read_file_under(root: PathLike, target: PathLike) -> bytes:
    """Read ``target`` only if it resolves (symlinks included) inside ``root``."""
    root_abs = Path(root).resolve()
    target_abs = Path(target).resolve()
    try:
        target_abs.relative_to(root_abs)
    except ValueError:
        raise ConfigReadError(f"path escapes root: {target}") from None
    return _read_bytes(target_abs)


def read_file(target: PathLike) -> bytes:
    """Read exactly ``target`` without any root restriction."""
    return _read_bytes(Path(target).resolve())


def _read_bytes(path: Path) -> bytes:
    if path.is_dir():
        raise ConfigReadError(f"is a directory: {path}")
    try:
        return path.read_bytes()
    except OSError as err:
        raise ConfigReadError(f"{err.strerror or err}: {path}") from err


__all__ = ["read_file_under", "read_file"]
