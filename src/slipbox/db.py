"""IndexStore -- the persistent note-metadata index, backed by DuckDB.

One row per note in ``notes`` (title is the primary key, so titles are unique
across every project), with links and tags kept as one-to-many side tables.
The store is a cache: it can always be rebuilt from the note files.

Usage::

    with IndexStore(root / ".slipbox.db") as store:
        store.init()
        store.insert(Note("Alpha", links=["Beta"], tags=["proj/x"]))

        store.find_by_title("Al*")               # glob
        store.find_by_tag("proj/x", exact=True)
        store.find_by_links_to("Beta")           # backlinks of Beta
        store.notes_linked_but_missing()         # ["Beta"]
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import duckdb
import polars as pl

from slipbox.errors import DuplicateTitle, InvalidPattern, NotFound, StoreUnavailable
from slipbox.matcher import Matcher, as_matcher
from slipbox.note import Note

log = logging.getLogger(__name__)

#: Path value selecting a private in-memory database
MEMORY = ":memory:"

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS notes (
        title    VARCHAR PRIMARY KEY,
        project  VARCHAR NOT NULL DEFAULT ''
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS links (
        source   VARCHAR NOT NULL,
        target   VARCHAR NOT NULL,
        position INTEGER NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tags (
        note     VARCHAR NOT NULL,
        tag      VARCHAR NOT NULL,
        position INTEGER NOT NULL
    )
    """,
)


@dataclass
class RebuildStats:
    """What :meth:`IndexStore.rebuild_from` did."""

    inserted: int = 0
    #: Notes skipped because an earlier note already had their title
    duplicates: list[Note] = field(default_factory=list)


class IndexStore:
    """Note metadata index stored in a DuckDB database file."""

    def __init__(self, path: Path | str = MEMORY) -> None:
        self.path: Path | str = MEMORY if str(path) == MEMORY else Path(path)
        self._in_transaction = False
        self.conn: duckdb.DuckDBPyConnection = self._connect()

    @classmethod
    def open(cls, path: Path | str = MEMORY) -> "IndexStore":
        """Connect to *path* and create the tables if needed."""
        store = cls(path)
        try:
            store.init()
        except BaseException:
            store.close()
            raise
        return store

    @classmethod
    def open_for_rebuild(cls, path: Path | str) -> "IndexStore":
        """Like :meth:`open`, but an unusable index file is discarded.

        The index only caches what the note files say, so a corrupt one is
        replaced by an empty index for the rebuild to fill.
        """
        path = Path(path)
        try:
            return cls.open(path)
        except StoreUnavailable as exc:
            if not path.is_file():
                raise
            log.warning("%s; starting a new index", exc.message)
        try:
            _remove_database(path)
        except OSError as exc:
            raise StoreUnavailable(path, exc) from exc
        return cls.open(path)

    @property
    def in_memory(self) -> bool:
        return self.path == MEMORY

    def _connect(self) -> duckdb.DuckDBPyConnection:
        try:
            return duckdb.connect(str(self.path))
        except duckdb.Error as exc:
            raise StoreUnavailable(self.path, exc) from exc

    # ------------------------------------------------------------------
    # Low-level execution
    # ------------------------------------------------------------------

    def _execute(self, sql: str, params: Iterable[Any] = ()) -> duckdb.DuckDBPyConnection:
        try:
            return self.conn.execute(sql, list(params))
        except (duckdb.ConstraintException, duckdb.InvalidInputException):
            raise
        except duckdb.Error as exc:
            raise StoreUnavailable(self.path, exc) from exc

    def _executemany(self, sql: str, rows: list[tuple[Any, ...]]) -> None:
        if not rows:
            return
        try:
            self.conn.executemany(sql, rows)
        except duckdb.Error as exc:
            raise StoreUnavailable(self.path, exc) from exc

    @contextmanager
    def transaction(self) -> Iterator["IndexStore"]:
        """Group mutations; nested calls join the outer transaction."""
        if self._in_transaction:
            yield self
            return
        self._execute("BEGIN TRANSACTION")
        self._in_transaction = True
        try:
            yield self
        except BaseException:
            self._in_transaction = False
            try:
                self.conn.execute("ROLLBACK")
            except duckdb.Error as exc:
                log.error("rollback of %s failed: %s", self.path, exc)
            raise
        self._in_transaction = False
        self._execute("COMMIT")

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def init(self) -> None:
        """Create the tables if they do not exist yet."""
        with self.transaction():
            for statement in _SCHEMA:
                self._execute(statement)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def insert(self, note: Note) -> None:
        """Add *note*; raises :class:`DuplicateTitle` if the title is taken."""
        existing = self._project_of(note.title)
        if existing is not None:
            raise DuplicateTitle(note.title, note.project, existing)
        with self.transaction():
            try:
                self._execute(
                    "INSERT INTO notes (title, project) VALUES (?, ?)",
                    [note.title, note.project],
                )
            except duckdb.ConstraintException as exc:
                raise DuplicateTitle(note.title, note.project) from exc
            self._insert_fields(note)

    def update(self, note: Note) -> None:
        """Replace the stored row of *note* (inserting it if absent)."""
        with self.transaction():
            if self._project_of(note.title) is None:
                self.insert(note)
                return
            self._execute("UPDATE notes SET project = ? WHERE title = ?", [note.project, note.title])
            self._delete_fields(note.title)
            self._insert_fields(note)

    def delete(self, note: Note | str) -> None:
        """Remove a note's row; deleting an absent note is not an error."""
        title = note if isinstance(note, str) else note.title
        with self.transaction():
            self._delete_fields(title)
            self._execute("DELETE FROM notes WHERE title = ?", [title])

    def change_title(self, old: str, new: str) -> None:
        """Rename a row in place, keeping its project, links and tags."""
        if self._project_of(old) is None:
            raise NotFound(old)
        existing = self._project_of(new)
        if existing is not None:
            raise DuplicateTitle(new, existing_project=existing)
        with self.transaction():
            self._execute("UPDATE notes SET title = ? WHERE title = ?", [new, old])
            self._execute("UPDATE links SET source = ? WHERE source = ?", [new, old])
            self._execute("UPDATE tags SET note = ? WHERE note = ?", [new, old])

    def change_project(self, note: Note | str, new_project: str) -> None:
        title = note if isinstance(note, str) else note.title
        self._execute("UPDATE notes SET project = ? WHERE title = ?", [new_project, title])

    def _insert_fields(self, note: Note) -> None:
        self._executemany(
            "INSERT INTO links (source, target, position) VALUES (?, ?, ?)",
            [(note.title, target, i) for i, target in enumerate(note.links)],
        )
        self._executemany(
            "INSERT INTO tags (note, tag, position) VALUES (?, ?, ?)",
            [(note.title, tag, i) for i, tag in enumerate(note.tags)],
        )

    def _delete_fields(self, title: str) -> None:
        self._execute("DELETE FROM links WHERE source = ?", [title])
        self._execute("DELETE FROM tags WHERE note = ?", [title])

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def _project_of(self, title: str) -> str | None:
        row = self._execute("SELECT project FROM notes WHERE title = ?", [title]).fetchone()
        return None if row is None else row[0]

    def _select(self, where: str = "TRUE", params: list[Any] | None = None) -> list[Note]:
        """Load the notes whose ``notes`` row satisfies *where*, by title."""
        params = params or []
        rows = self._execute(
            f"SELECT title, project FROM notes WHERE {where} ORDER BY title", params
        ).fetchall()
        notes = {title: Note(title, project) for title, project in rows}
        if not notes:
            return []
        scope = f"(SELECT title FROM notes WHERE {where})"
        for source, target in self._execute(
            f"SELECT source, target FROM links WHERE source IN {scope} ORDER BY source, position",
            params,
        ).fetchall():
            notes[source].links.append(target)
        for title, tag in self._execute(
            f"SELECT note, tag FROM tags WHERE note IN {scope} ORDER BY note, position",
            params,
        ).fetchall():
            notes[title].tags.append(tag)
        return list(notes.values())

    def _find(self, where: str, matcher: Matcher, column: str) -> list[Note]:
        condition, params = matcher.sql(column)
        try:
            return self._select(where.replace("{cond}", condition), params)
        except duckdb.InvalidInputException as exc:
            raise InvalidPattern(matcher.pattern, exc) from exc

    def all(self) -> list[Note]:
        return self._select()

    def get(self, title: str) -> Note | None:
        found = self._select("title = ?", [title])
        return found[0] if found else None

    def exists(self, title: str) -> bool:
        return self._project_of(title) is not None

    def count(self) -> int:
        return self._execute("SELECT count(*) FROM notes").fetchone()[0]

    def find_by_title(self, pattern: str | Matcher, exact: bool = False) -> list[Note]:
        return self._find("{cond}", as_matcher(pattern, exact), "title")

    def find_by_project(self, pattern: str | Matcher, exact: bool = False) -> list[Note]:
        return self._find("{cond}", as_matcher(pattern, exact), "project")

    def find_by_tag(self, pattern: str | Matcher, exact: bool = False) -> list[Note]:
        return self._find(
            "title IN (SELECT note FROM tags WHERE {cond})", as_matcher(pattern, exact), "tag"
        )

    def find_by_links_to(self, pattern: str | Matcher, exact: bool = False) -> list[Note]:
        """Notes with at least one link whose target matches *pattern*."""
        return self._find(
            "title IN (SELECT source FROM links WHERE {cond})", as_matcher(pattern, exact), "target"
        )

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    def list_tags(self) -> list[str]:
        rows = self._execute("SELECT DISTINCT tag FROM tags ORDER BY tag").fetchall()
        return [r[0] for r in rows]

    def list_projects(self) -> list[str]:
        """Named projects, sorted; the default project is left out."""
        rows = self._execute(
            "SELECT DISTINCT project FROM notes WHERE project <> '' ORDER BY project"
        ).fetchall()
        return [r[0] for r in rows]

    def notes_linked_but_missing(self) -> list[str]:
        """Ghosts: link targets that no indexed note is titled after."""
        rows = self._execute(
            """
            SELECT DISTINCT target FROM links
            WHERE target NOT IN (SELECT title FROM notes)
            ORDER BY target
            """
        ).fetchall()
        return [r[0] for r in rows]

    def link_targets(self) -> set[str]:
        return {r[0] for r in self._execute("SELECT DISTINCT target FROM links").fetchall()}

    def tag_counts(self) -> pl.DataFrame:
        """Return a tag -> note count table sorted by frequency."""
        try:
            return self.conn.execute(
                """
                SELECT tag, COUNT(DISTINCT note) AS note_count
                FROM tags
                GROUP BY tag
                ORDER BY note_count DESC, tag
                """
            ).pl()
        except duckdb.Error as exc:
            raise StoreUnavailable(self.path, exc) from exc

    # ------------------------------------------------------------------
    # Rebuild
    # ------------------------------------------------------------------

    def rebuild_from(self, notes: Iterable[Note]) -> RebuildStats:
        """Replace the whole index with *notes*.

        The notes go into a fresh database inside one transaction; only once
        that has committed is it swapped in for this one, so readers never see
        a half-built index. A note whose title was already inserted is logged
        and skipped.
        """
        stats = RebuildStats()
        fresh = IndexStore(MEMORY if self.in_memory else self._rebuild_path())
        try:
            fresh.init()
            with fresh.transaction():
                for note in notes:
                    try:
                        fresh.insert(note)
                    except DuplicateTitle as exc:
                        log.warning(
                            "couldn't add note '%s' to the '%s' project; the '%s' project "
                            "already has a note with that title, and titles must be unique",
                            note.title,
                            note.project_label,
                            exc.existing_project or "main",
                        )
                        stats.duplicates.append(note)
                    else:
                        stats.inserted += 1
            if not fresh.in_memory:
                fresh._execute("CHECKPOINT")
        except BaseException:
            fresh.close()
            if not fresh.in_memory:
                _remove_database(Path(fresh.path))
            raise
        self._swap_in(fresh)
        return stats

    def _rebuild_path(self) -> Path:
        path = Path(self.path)
        tmp = path.with_name(path.name + ".rebuild")
        _remove_database(tmp)
        return tmp

    def _swap_in(self, fresh: "IndexStore") -> None:
        if self.in_memory:
            self.conn.close()
            self.conn = fresh.conn
            return
        fresh.close()
        self.close()
        try:
            _wal_path(Path(self.path)).unlink(missing_ok=True)
            os.replace(fresh.path, self.path)
        except OSError as exc:
            raise StoreUnavailable(self.path, exc) from exc
        finally:
            self.conn = self._connect()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        self.conn.close()

    def __enter__(self) -> "IndexStore":
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"IndexStore({str(self.path)!r})"


def _wal_path(path: Path) -> Path:
    return path.with_name(path.name + ".wal")


def _remove_database(path: Path) -> None:
    path.unlink(missing_ok=True)
    _wal_path(path).unlink(missing_ok=True)
