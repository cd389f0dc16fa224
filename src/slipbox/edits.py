"""Structural edits that keep the note files and the index in step.

Creating, renaming, moving, re-indexing and deleting a note all touch both the
file tree and the :class:`IndexStore`. Renaming also rewrites the
``[[links]]`` in every note that points at the renamed one.

None of this is atomic across files: if a rename is interrupted while
backlinks are being repaired, the remaining notes keep a link to the old
title (a ghost) until they are edited again or the index is rebuilt.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from slipbox.confirm import Confirm, ask
from slipbox.db import IndexStore
from slipbox.errors import DuplicateTitle, FileSystemError, NotFound
from slipbox.fs import Filesystem, LocalFilesystem, match_filename
from slipbox.matcher import RegexMatcher
from slipbox.note import Note, validate_project, validate_title
from slipbox.parser import note_from_text, render_template, rewrite_links

log = logging.getLogger(__name__)


@dataclass
class CreateResult:
    note: Note
    #: False when the file already existed and was only indexed
    created: bool


@dataclass
class RenameResult:
    old_title: str
    new_title: str
    #: Titles of notes whose links were rewritten
    repaired: list[str] = field(default_factory=list)
    #: Titles of notes that still link to the old title, with the reason
    failed: dict[str, str] = field(default_factory=dict)


class NoteEditor:
    """Applies structural edits to the notes under *root* and to *store*."""

    def __init__(
        self,
        store: IndexStore,
        root: Path,
        fs: Filesystem | None = None,
        confirm: Confirm = ask,
    ) -> None:
        self.store = store
        self.root = Path(root)
        self.fs = fs or LocalFilesystem()
        self.confirm = confirm

    def _read_note(self, path: Path) -> Note:
        return note_from_text(self.fs.read(path), path, self.root)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(
        self,
        title: str,
        project: str = "",
        template: Path | None = None,
        *,
        today: datetime | None = None,
    ) -> CreateResult:
        """Create a note file (from *template* if given) and index it.

        A file that already exists but is missing from the index is indexed
        as it is.
        """
        title = validate_title(title)
        project = validate_project(project)
        note = Note(title, project)
        path = note.filename(self.root)

        existing = self.store.get(title)
        if existing is not None:
            raise DuplicateTitle(title, project, existing.project)

        if self.fs.exists(path):
            log.info("%s exists but was not indexed; indexing it", path)
            note = self._read_note(path)
            self.store.insert(note)
            return CreateResult(note, created=False)

        content = ""
        if template is not None and self.fs.exists(template):
            content = render_template(self.fs.read(template), title, today)
        elif template is not None:
            log.warning("template %s does not exist; creating an empty note", template)
        self.fs.mkdir(path.parent)
        self.fs.write(path, content)
        note = note_from_text(content, path, self.root)
        self.store.insert(note)
        return CreateResult(note, created=True)

    # ------------------------------------------------------------------
    # Rename
    # ------------------------------------------------------------------

    def rename(self, old_title: str, new_title: str) -> RenameResult | None:
        """Rename a note within its project and repair every link to it.

        Returns ``None`` if the confirmation was declined.
        """
        new_title = validate_title(new_title)
        note = self.store.get(old_title)
        if note is None:
            raise NotFound(old_title)
        clash = self.store.get(new_title)
        if clash is not None:
            raise DuplicateTitle(new_title, note.project, clash.project)

        if not self.confirm(f"{old_title} --> {new_title}"):
            return None

        renamed = Note(new_title, note.project, note.links, note.tags)
        self.fs.rename(note.filename(self.root), renamed.filename(self.root))
        self.store.change_title(old_title, new_title)

        result = RenameResult(old_title, new_title)
        for backlink in self.store.find_by_links_to(old_title, exact=True):
            try:
                self._repair_links(backlink, old_title, new_title)
            except FileSystemError as exc:
                log.warning(
                    "'%s' still links to '%s': %s", backlink.title, old_title, exc.message
                )
                result.failed[backlink.title] = exc.message
            else:
                result.repaired.append(backlink.title)
        return result

    def _repair_links(self, note: Note, old_title: str, new_title: str) -> None:
        path = note.filename(self.root)
        text, count = rewrite_links(self.fs.read(path), old_title, new_title)
        if count:
            self.fs.write(path, text)
        self.store.update(note_from_text(text, path, self.root))

    # ------------------------------------------------------------------
    # Move
    # ------------------------------------------------------------------

    def move(self, pattern: str, project: str) -> list[Note] | None:
        """Move every note whose title matches the regex *pattern* into *project*.

        Returns the moved notes, or ``None`` if the confirmation was declined.
        """
        project = validate_project(project)
        notes = self.store.find_by_title(RegexMatcher(pattern))
        if not notes:
            raise NotFound(pattern)

        listing = "\n".join(f"[{n.project}] {n.title}" for n in notes)
        where = f"'{project}' project" if project else "main zettelkasten"
        if not self.confirm(f"{listing}\n>> These notes will be transferred to the {where}. Proceed?"):
            return None

        self.fs.mkdir(self.root / project)
        moved: list[Note] = []
        for note in notes:
            if note.project == project:
                continue
            target = Note(note.title, project, note.links, note.tags)
            self.fs.rename(note.filename(self.root), target.filename(self.root))
            self.store.change_project(note, project)
            moved.append(target)
        return moved

    # ------------------------------------------------------------------
    # Update / delete
    # ------------------------------------------------------------------

    def update(self, path: Path) -> Note:
        """Re-read one note file and replace its row in the index.

        A file name with runs of whitespace is renamed to the collapsed title.
        """
        path = Path(path)
        if not self.fs.exists(path):
            raise NotFound(str(path))
        note = self._read_note(path)
        existing = self.store.get(note.title)
        if (
            existing is not None
            and existing.project != note.project
            and self.fs.exists(existing.filename(self.root))
        ):
            raise DuplicateTitle(note.title, note.project, existing.project)
        match_filename(self.fs, path, note, self.root)
        self.store.update(note)
        return note

    def delete(self, title: str) -> Note | None:
        """Delete a note file and its row; ``None`` if not confirmed."""
        note = self.store.get(title)
        if note is None:
            raise NotFound(title)
        if not self.confirm(f"delete [{note.project_label}] {note.title}?"):
            return None
        path = note.filename(self.root)
        if self.fs.exists(path):
            self.fs.remove(path)
        else:
            log.warning("%s was already gone from disk", path)
        self.store.delete(note)
        return note
