"""Filesystem access used by the engine.

The engine never touches the disk directly: it goes through a
:class:`Filesystem`, so tests (or another storage medium) can swap in their
own implementation. :class:`LocalFilesystem` is the real one.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol, runtime_checkable

from slipbox.errors import FileSystemError
from slipbox.note import Note

log = logging.getLogger(__name__)


@runtime_checkable
class Filesystem(Protocol):
    """Operations the engine needs from the note tree."""

    def read(self, path: Path) -> str:
        """Return the UTF-8 text of *path*."""
        ...

    def write(self, path: Path, text: str) -> None:
        """Replace the whole content of *path* with *text*."""
        ...

    def rename(self, old: Path, new: Path) -> None:
        """Move *old* to *new*; refuses to overwrite an existing file."""
        ...

    def remove(self, path: Path) -> None: ...

    def mkdir(self, path: Path) -> None:
        """Create *path* (and parents); existing directories are fine."""
        ...

    def list_files(self, directory: Path, ext: str) -> list[Path]:
        """Files in *directory* (not recursive) whose name ends with *ext*."""
        ...

    def list_subdirs(self, directory: Path) -> list[Path]: ...

    def exists(self, path: Path) -> bool: ...


class LocalFilesystem:
    """:class:`Filesystem` backed by the local disk."""

    def read(self, path: Path) -> str:
        try:
            return Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise FileSystemError(path, _reason(exc)) from exc

    def write(self, path: Path, text: str) -> None:
        # Write next to the target, then swap it in: readers see either the
        # old or the new content, never half a file.
        path = Path(path)
        try:
            fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(text)
                os.replace(tmp, path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise FileSystemError(path, _reason(exc)) from exc

    def rename(self, old: Path, new: Path) -> None:
        old, new = Path(old), Path(new)
        if new.exists():
            raise FileSystemError(new, "already exists; refusing to overwrite")
        try:
            old.rename(new)
        except OSError as exc:
            raise FileSystemError(old, _reason(exc)) from exc

    def remove(self, path: Path) -> None:
        try:
            Path(path).unlink()
        except OSError as exc:
            raise FileSystemError(path, _reason(exc)) from exc

    def mkdir(self, path: Path) -> None:
        try:
            Path(path).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise FileSystemError(path, _reason(exc)) from exc

    def list_files(self, directory: Path, ext: str) -> list[Path]:
        try:
            return sorted(p for p in Path(directory).iterdir() if p.is_file() and p.name.endswith(ext))
        except OSError as exc:
            raise FileSystemError(directory, _reason(exc)) from exc

    def list_subdirs(self, directory: Path) -> list[Path]:
        try:
            return sorted(p for p in Path(directory).iterdir() if p.is_dir())
        except OSError as exc:
            raise FileSystemError(directory, _reason(exc)) from exc

    def exists(self, path: Path) -> bool:
        return Path(path).exists()


def match_filename(fs: Filesystem, path: Path, note: Note, root: Path) -> Path:
    """Rename the file at *path* to the name *note*'s title calls for.

    Returns the path the note now lives at. Refuses (through
    :meth:`Filesystem.rename`) to overwrite another note.
    """
    path = Path(path)
    target = note.filename(root)
    if path.name == target.name:
        return path
    fs.rename(path, target)
    log.warning("renamed %s to %s; titles can't contain runs of whitespace", path, target.name)
    return target


def _reason(exc: Exception) -> str:
    if isinstance(exc, OSError) and exc.strerror:
        return exc.strerror.lower()
    return str(exc)
