"""Query engine: filter notes by the conjunction of several predicates.

Each supplied predicate yields a set of titles; the result is their
intersection, so the order predicates are evaluated in never matters.
Predicates left as ``None`` (or ``False`` for ``isolated``) are ignored.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from slipbox.db import IndexStore
from slipbox.errors import FileSystemError
from slipbox.fs import Filesystem, LocalFilesystem
from slipbox.note import MAIN_PROJECT, Note
from slipbox.parser import compile_search, find_pattern

log = logging.getLogger(__name__)


@dataclass
class Query:
    """Optional predicates; every one that is set must hold."""

    title: str | None = None
    project: str | None = None
    tag: str | None = None
    #: Case-insensitive regex over the note's file content
    text: str | None = None
    #: Keep notes that a note with a matching title links to
    links_from: str | None = None
    #: Keep notes that link to a note with a matching title
    backlinks_to: str | None = None
    isolated: bool = False
    #: Match patterns literally instead of as globs (and ``text`` as a literal)
    exact: bool = False


@dataclass
class QueryResult:
    notes: list[Note] = field(default_factory=list)
    #: Title -> substring matched by the ``text`` predicate
    matches: dict[str, str] = field(default_factory=dict)

    @property
    def titles(self) -> list[str]:
        return [n.title for n in self.notes]


class QueryEngine:
    def __init__(self, store: IndexStore, root: Path, fs: Filesystem | None = None) -> None:
        self.store = store
        self.root = Path(root)
        self.fs = fs or LocalFilesystem()

    def run(self, query: Query) -> QueryResult:
        notes = {n.title: n for n in self.store.all()}
        selected = set(notes)
        matches: dict[str, str] = {}

        if query.title is not None:
            selected &= _titles(self.store.find_by_title(query.title, query.exact))
        if query.project is not None:
            selected &= self.by_project(query.project, query.exact)
        if query.tag is not None:
            selected &= self.by_tag(query.tag, query.exact)
        if query.links_from is not None:
            selected &= self.linked_from(query.links_from, query.exact)
        if query.backlinks_to is not None:
            selected &= _titles(self.store.find_by_links_to(query.backlinks_to, query.exact))
        if query.isolated:
            selected &= self.isolated(notes.values())
        if query.text is not None:
            matches = self.search_text(query.text, [notes[t] for t in selected], literal=query.exact)
            selected &= set(matches)

        result = [notes[t] for t in sorted(selected)]
        return QueryResult(result, {t: m for t, m in matches.items() if t in selected})

    # ------------------------------------------------------------------
    # Predicates
    # ------------------------------------------------------------------

    def by_project(self, pattern: str, exact: bool = False) -> set[str]:
        if pattern == MAIN_PROJECT:
            pattern = ""
        return _titles(self.store.find_by_project(pattern, exact))

    def by_tag(self, pattern: str, exact: bool = False) -> set[str]:
        """Notes tagged *pattern*; in pattern mode also its ``pattern/...`` children."""
        found = _titles(self.store.find_by_tag(pattern, exact))
        if not exact:
            found |= _titles(self.store.find_by_tag(f"{pattern}/*"))
        return found

    def linked_from(self, pattern: str, exact: bool = False) -> set[str]:
        """Titles that some note matching *pattern* links to."""
        targets: set[str] = set()
        for note in self.store.find_by_title(pattern, exact):
            targets.update(note.links)
        return targets

    def isolated(self, notes: Iterable[Note]) -> set[str]:
        """Notes with no forward links and no backlinks."""
        linked = self.store.link_targets()
        return {n.title for n in notes if not n.links and n.title not in linked}

    def search_text(self, pattern: str, notes: list[Note], literal: bool = False) -> dict[str, str]:
        """Map each note whose file content matches *pattern* to the matched text."""
        regex = compile_search(pattern, literal=literal)
        found: dict[str, str] = {}
        for note in notes:
            try:
                text = self.fs.read(note.filename(self.root))
            except FileSystemError as exc:
                log.warning("can't search '%s': %s", note.title, exc.message)
                continue
            matched = find_pattern(text, regex)
            if matched is not None:
                found[note.title] = matched
        return found

    # ------------------------------------------------------------------
    # Backlinks
    # ------------------------------------------------------------------

    def backlinks(self) -> dict[str, list[str]]:
        """Map every link target to the titles of the notes linking to it."""
        result: dict[str, list[str]] = {}
        for note in self.store.all():
            for target in note.links:
                result.setdefault(target, []).append(note.title)
        return result


def _titles(notes: list[Note]) -> set[str]:
    return {n.title for n in notes}

