"""Core Note dataclass."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

from slipbox.errors import InvalidProject, InvalidTitle

#: Extension of every note file.
NOTE_EXT = ".md"
#: Name the CLI accepts for the default (root) project.
MAIN_PROJECT = "main"

_RUNS_OF_WHITESPACE = re.compile(r"[ \t\r\n]+")


@dataclass
class Note:
    """Metadata of a single note ("zettel").

    The file location is never stored: it is recomputed from ``title`` and
    ``project`` by :meth:`filename`.
    """

    title: str
    project: str = ""
    #: Titles this note references via [[WikiLinks]], in order of discovery
    links: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)

    def filename(self, root: Path | str) -> Path:
        """Absolute path of the note file inside *root*."""
        return Path(root) / self.project / f"{self.title}{NOTE_EXT}"

    @property
    def project_label(self) -> str:
        return self.project or MAIN_PROJECT


def normalize_project(project: str | None) -> str:
    """Map ``None`` and the ``main`` alias to the default project."""
    if not project or project == MAIN_PROJECT:
        return ""
    return project


def validate_title(title: str) -> str:
    """Return *title* with whitespace runs collapsed, or raise :class:`InvalidTitle`."""
    cleaned = _RUNS_OF_WHITESPACE.sub(" ", title).strip()
    if not cleaned:
        raise InvalidTitle(title, "title must not be empty")
    if cleaned.startswith("."):
        raise InvalidTitle(title, "title must not start with '.'")
    if "/" in cleaned or "\0" in cleaned:
        raise InvalidTitle(title, "title must not contain '/'")
    return cleaned


def validate_project(project: str | None) -> str:
    project = normalize_project(project)
    if not project:
        return ""
    if project.startswith("."):
        raise InvalidProject(project, "project must not start with '.'")
    if "/" in project or "\\" in project or "\0" in project:
        raise InvalidProject(project, "projects cannot be nested")
    return project
