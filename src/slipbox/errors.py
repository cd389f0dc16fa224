"""Exception hierarchy for slipbox.

Every error the engine raises derives from :class:`SlipboxError`, so callers
(the CLI in particular) can catch one type and print ``error.message``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any


class SlipboxError(Exception):
    """Base class for all slipbox errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DuplicateTitle(SlipboxError):
    """A note with this title already exists somewhere in the collection."""

    def __init__(self, title: str, project: str = "", existing_project: str = "") -> None:
        self.title = title
        self.project = project
        self.existing_project = existing_project
        super().__init__(
            f"a note titled '{title}' already exists in the "
            f"{_describe(existing_project)}; titles must be unique",
            {"title": title, "project": project, "existing_project": existing_project},
        )


class NotFound(SlipboxError):
    """The note (or file) an operation targets does not exist."""

    def __init__(self, what: str) -> None:
        self.what = what
        super().__init__(f"no such note: {what}", {"what": what})


class StoreUnavailable(SlipboxError):
    """The index file cannot be opened, read or written."""

    def __init__(self, path: Path | str, reason: object) -> None:
        self.path = str(path)
        super().__init__(f"index store {self.path} is unavailable: {reason}", {"path": self.path})


class FileSystemError(SlipboxError):
    """Reading, writing or renaming a note file failed."""

    def __init__(self, path: Path | str, reason: object) -> None:
        self.path = str(path)
        super().__init__(f"{self.path}: {reason}", {"path": self.path})


class OutsideRoot(FileSystemError):
    """A path is not a note file of the managed tree."""


class InvalidTitle(SlipboxError):
    def __init__(self, title: str, reason: str) -> None:
        self.title = title
        super().__init__(f"invalid title '{title}': {reason}", {"title": title})


class InvalidProject(SlipboxError):
    def __init__(self, project: str, reason: str) -> None:
        self.project = project
        super().__init__(f"invalid project '{project}': {reason}", {"project": project})


class InvalidPattern(SlipboxError):
    def __init__(self, pattern: str, reason: object) -> None:
        self.pattern = pattern
        super().__init__(f"invalid pattern '{pattern}': {reason}", {"pattern": pattern})


class ConfigError(SlipboxError):
    """The configuration file exists but cannot be used."""


def _describe(project: str) -> str:
    return f"'{project}' project" if project else "main project"
