"""IndexBuilder: regenerate the :class:`IndexStore` from the note files.

Every directory directly under the root is a project; the root itself is the
default project. Listing directories and parsing files fan out over a thread
pool. Parsed notes are handed, in a stable order, through a bounded queue to
the single writer (the calling thread), which streams them into
:meth:`IndexStore.rebuild_from`.
"""

from __future__ import annotations

import logging
import os
import queue
import threading
import time
from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor
from contextlib import closing
from dataclasses import dataclass, field
from pathlib import Path

from slipbox.db import IndexStore
from slipbox.errors import FileSystemError
from slipbox.fs import Filesystem, LocalFilesystem, match_filename
from slipbox.note import NOTE_EXT, Note
from slipbox.parser import note_from_text

log = logging.getLogger(__name__)

_DONE = object()


@dataclass
class _Failure:
    path: Path | None
    error: BaseException


@dataclass
class BuildReport:
    """Outcome of a rebuild."""

    inserted: int = 0
    duplicates: list[Note] = field(default_factory=list)
    #: Files that could not be read, with the reason
    failed: dict[Path, str] = field(default_factory=dict)
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return not self.duplicates and not self.failed


class IndexBuilder:
    """Scans a note tree and rebuilds an index from it."""

    def __init__(
        self,
        root: Path,
        fs: Filesystem | None = None,
        *,
        workers: int | None = None,
        queue_size: int = 64,
    ) -> None:
        self.root = Path(root)
        self.fs = fs or LocalFilesystem()
        self.workers = workers or os.cpu_count() or 1
        self.queue_size = queue_size

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def directories(self) -> list[Path]:
        """The root followed by every non-hidden project directory."""
        subdirs = [d for d in self.fs.list_subdirs(self.root) if not d.name.startswith(".")]
        return [self.root, *sorted(subdirs)]

    def note_files(self, directory: Path) -> list[Path]:
        return sorted(
            p for p in self.fs.list_files(directory, NOTE_EXT) if not p.name.startswith(".")
        )

    def parse(self, path: Path) -> Note:
        return note_from_text(self.fs.read(path), path, self.root)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _list_safely(self, directory: Path) -> list[Path] | _Failure:
        try:
            return self.note_files(directory)
        except FileSystemError as exc:
            return _Failure(directory, exc)

    def _parse_safely(
        self, path: Path, cancel: threading.Event
    ) -> tuple[Path, Note] | _Failure | None:
        if cancel.is_set():
            return None
        try:
            return path, self.parse(path)
        except FileSystemError as exc:
            return _Failure(path, exc)

    def _produce(self, directories: list[Path], out: queue.Queue, cancel: threading.Event) -> None:
        try:
            with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="slipbox-parse") as pool:
                futures = []
                for listing in pool.map(self._list_safely, directories):
                    if isinstance(listing, _Failure):
                        out.put(listing)
                        continue
                    futures.extend(pool.submit(self._parse_safely, path, cancel) for path in listing)
                # Hand results over in submission order so the rebuild is deterministic
                for future in futures:
                    if cancel.is_set():
                        future.cancel()
                        continue
                    result = future.result()
                    if result is not None:
                        out.put(result)
        except BaseException as exc:  # noqa: BLE001
            out.put(_Failure(None, exc))
        finally:
            out.put(_DONE)

    def iter_notes(self, report: BuildReport, directories: list[Path] | None = None) -> Iterator[Note]:
        """Yield parsed notes; unreadable files are logged and recorded in *report*."""
        directories = self.directories() if directories is None else directories
        out: queue.Queue = queue.Queue(maxsize=self.queue_size)
        cancel = threading.Event()
        producer = threading.Thread(
            target=self._produce, args=(directories, out, cancel), name="slipbox-scan", daemon=True
        )
        producer.start()
        finished = False
        try:
            while True:
                item = out.get()
                if item is _DONE:
                    finished = True
                    break
                if isinstance(item, _Failure):
                    if item.path is None:
                        raise item.error
                    log.warning("skipping %s: %s", item.path, getattr(item.error, "message", item.error))
                    report.failed[item.path] = getattr(item.error, "message", str(item.error))
                    continue
                path, note = item
                # Renames stay on this thread; the workers only read
                try:
                    match_filename(self.fs, path, note, self.root)
                except FileSystemError as exc:
                    log.warning("skipping %s: %s", path, exc.message)
                    report.failed[path] = exc.message
                    continue
                yield note
        finally:
            if not finished:
                cancel.set()
                while out.get() is not _DONE:
                    pass
            producer.join()

    def rebuild(self, store: IndexStore) -> BuildReport:
        """Rebuild *store* from the note tree.

        Raises :class:`FileSystemError` if the root itself cannot be listed
        (before the store is touched) and :class:`StoreUnavailable` if the
        index cannot be written; anything wrong with a single file is only a
        warning.
        """
        start = time.perf_counter()
        report = BuildReport()
        directories = self.directories()
        with closing(self.iter_notes(report, directories)) as notes:
            stats = store.rebuild_from(notes)
        report.inserted = stats.inserted
        report.duplicates = stats.duplicates
        report.elapsed = time.perf_counter() - start
        log.info(
            "index rebuilt: %d notes, %d duplicates, %d unreadable files in %.0fms",
            report.inserted,
            len(report.duplicates),
            len(report.failed),
            report.elapsed * 1000,
        )
        return report


def rebuild(
    root: Path,
    store: IndexStore,
    fs: Filesystem | None = None,
    *,
    workers: int | None = None,
) -> BuildReport:
    """Rebuild *store* from the notes under *root*."""
    return IndexBuilder(root, fs, workers=workers).rebuild(store)
