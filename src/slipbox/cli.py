"""Command-line interface: ``slipbox sync``, ``slipbox query`` and ``slipbox ls``."""

from __future__ import annotations

import argparse
import logging
import sys
import time
from typing import Callable

from slipbox import __version__
from slipbox.config import Config, load_config
from slipbox.confirm import always_yes, ask
from slipbox.db import IndexStore
from slipbox.edits import NoteEditor
from slipbox.errors import SlipboxError, StoreUnavailable
from slipbox.formatter import DEFAULT_TEMPLATE, Formatter
from slipbox.fs import LocalFilesystem
from slipbox.graph import GRAPH_FORMATS, build_graph, export
from slipbox.index import IndexBuilder
from slipbox.note import Note
from slipbox.query import Query, QueryEngine

log = logging.getLogger(__name__)

LS_OBJECTS = ("tags", "projects", "ghosts", "path")


def _print_notes(notes: list[Note]) -> None:
    for note in notes:
        print(f"[{note.project}] {note.title}")


def _open_store(cfg: Config, *, create: bool = False) -> IndexStore:
    if not create and not cfg.db_file.exists():
        raise StoreUnavailable(cfg.db_file, "no index yet; run 'slipbox sync --generate'")
    return IndexStore.open(cfg.db_file)


# ---------------------------------------------------------------------------
# sync
# ---------------------------------------------------------------------------


def cmd_sync(args: argparse.Namespace, cfg: Config) -> int:
    """Create, update, rename, move or delete notes, or regenerate the index."""
    fs = LocalFilesystem()

    if args.generate:
        start = time.perf_counter()
        builder = IndexBuilder(cfg.root, fs, workers=cfg.workers)
        # An unlistable root is fatal before the index is touched
        builder.directories()
        with IndexStore.open_for_rebuild(cfg.db_file) as store:
            report = builder.rebuild(store)
            log.info("%d notes indexed", store.count())
        if not report.ok:
            log.warning(
                "skipped %d duplicate titles and %d unreadable files",
                len(report.duplicates),
                len(report.failed),
            )
        elapsed = int((time.perf_counter() - start) * 1000)
        print(f"database generated successfully, took {elapsed}ms")
        return 0

    if args.create is not None:
        fs.mkdir(cfg.root)

    with _open_store(cfg, create=args.create is not None) as store:
        editor = NoteEditor(store, cfg.root, fs, confirm=always_yes if args.yes else ask)

        if args.create is not None:
            result = editor.create(args.create, args.project or "", cfg.template)
            if result.created:
                _print_notes([result.note])
            else:
                print("file exists in the filesystem but not in the database; added entry")
            return 0

        if args.update is not None:
            editor.update(args.update)
            return 0

        if args.rename is not None:
            old, new = args.rename
            renamed = editor.rename(old, new)
            if renamed is None:
                return 0
            for title in renamed.repaired:
                log.info("updated links in '%s'", title)
            return 1 if renamed.failed else 0

        if args.move is not None:
            moved = editor.move(args.move, args.project)
            if moved:
                _print_notes(moved)
            return 0

        if args.delete is not None:
            deleted = editor.delete(args.delete)
            if deleted is not None:
                _print_notes([deleted])
            return 0

    return 0


# ---------------------------------------------------------------------------
# query
# ---------------------------------------------------------------------------


def cmd_query(args: argparse.Namespace, cfg: Config) -> int:
    """Print the notes matching every given predicate."""
    query = Query(
        title=args.title,
        project=args.project,
        tag=args.tag,
        text=args.text,
        links_from=args.backlinks,
        backlinks_to=args.links,
        isolated=args.loners,
        exact=args.exact,
    )
    with _open_store(cfg) as store:
        engine = QueryEngine(store, cfg.root)
        result = engine.run(query)

        if args.graph:
            existing = {n.title for n in store.all()}
            print(export(build_graph(result.notes, existing), args.graph), end="")
            return 0

        template = args.format or DEFAULT_TEMPLATE
        formatter = Formatter(
            cfg.root,
            template,
            args.link_sep if args.link_sep is not None else cfg.link_sep,
            backlinks=engine.backlinks() if "%b" in template else {},
            matches=result.matches,
        )
        for line in formatter.format_all(result.notes):
            print(line)
    return 0


# ---------------------------------------------------------------------------
# ls
# ---------------------------------------------------------------------------


def cmd_ls(args: argparse.Namespace, cfg: Config) -> int:
    """List tags, projects, ghosts or the root path."""
    if args.object == "path":
        print(cfg.root)
        return 0

    with _open_store(cfg) as store:
        if args.object == "tags" and args.counts:
            for tag, count in store.tag_counts().iter_rows():
                print(f"{count}\t{tag}")
        else:
            listing = {
                "tags": store.list_tags,
                "projects": store.list_projects,
                "ghosts": store.notes_linked_but_missing,
            }[args.object]
            for item in listing():
                print(item)
    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="slipbox", description="Manage the metadata index of a Zettelkasten"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", help="path to the configuration file")
    parser.add_argument(
        "-v", "--verbose", action="count", default=0, help="more log output (repeat for debug)"
    )
    parser.add_argument("-q", "--quiet", action="store_true", help="only log errors")
    parser.add_argument(
        "-y", "--yes", action="store_true", help="answer yes to every confirmation"
    )

    subparsers = parser.add_subparsers(dest="cmd", required=True)

    # sync
    parser_sync = subparsers.add_parser("sync", help="change notes and keep the index in step")
    action = parser_sync.add_mutually_exclusive_group(required=True)
    action.add_argument("-c", "--create", metavar="TITLE", help="create a new note")
    action.add_argument("-u", "--update", metavar="PATH", help="re-index one note file")
    action.add_argument("-g", "--generate", action="store_true", help="(re)generate the index")
    action.add_argument(
        "-m", "--move", metavar="REGEX", help="move matching notes to the project given by -p"
    )
    action.add_argument(
        "-n", "--rename", nargs=2, metavar=("OLD", "NEW"),
        help="rename a note, keeping its project and repairing links to it",
    )
    action.add_argument("-d", "--delete", metavar="TITLE", help="delete a note")
    parser_sync.add_argument(
        "-p", "--project", help="project for --create and --move ('main' is the root)"
    )

    # query
    parser_query = subparsers.add_parser("query", help="filter notes")
    parser_query.add_argument("-t", "--title", metavar="PATTERN", help="keep notes with a matching title")
    parser_query.add_argument("-p", "--project", metavar="PATTERN", help="keep notes in matching projects")
    parser_query.add_argument("-g", "--tag", metavar="PATTERN", help="keep notes with a matching tag")
    parser_query.add_argument("-x", "--text", metavar="REGEX", help="keep notes whose text matches")
    parser_query.add_argument(
        "-l", "--links", metavar="PATTERN", help="keep notes that link to a matching note"
    )
    parser_query.add_argument(
        "-b", "--backlinks", metavar="PATTERN", help="keep notes that a matching note links to"
    )
    parser_query.add_argument(
        "-o", "--loners", action="store_true", help="keep notes without links either way"
    )
    parser_query.add_argument(
        "-e", "--exact", action="store_true", help="match patterns literally"
    )
    parser_query.add_argument(
        "-f", "--format", help="output template (%%t %%p %%P %%l %%b %%a)"
    )
    parser_query.add_argument(
        "-s", "--link-sep", metavar="SEPARATOR", help="separator for %%l and %%b"
    )
    parser_query.add_argument("--graph", choices=GRAPH_FORMATS, help="print the link graph")

    # ls
    parser_ls = subparsers.add_parser("ls", help="list tags, projects, ghosts or the root path")
    parser_ls.add_argument("object", choices=LS_OBJECTS)
    parser_ls.add_argument(
        "--counts", action="store_true", help="with 'tags', prefix each tag with its note count"
    )

    return parser


def _configure_logging(verbose: int, quiet: bool) -> None:
    if quiet:
        level = logging.ERROR
    elif verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s", stream=sys.stderr)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "sync" and args.move is not None and args.project is None:
        parser.error("--move requires --project")
    if args.cmd == "sync" and args.project is not None and args.create is None and args.move is None:
        parser.error("--project only applies to --create and --move")
    if args.cmd == "query" and args.link_sep is not None and args.format is None:
        parser.error("--link-sep requires --format")
    if args.cmd == "query" and args.graph and args.format is not None:
        parser.error("--graph and --format are mutually exclusive")

    _configure_logging(args.verbose, args.quiet)

    handlers: dict[str, Callable[[argparse.Namespace, Config], int]] = {
        "sync": cmd_sync,
        "query": cmd_query,
        "ls": cmd_ls,
    }
    try:
        cfg = load_config(args.config)
        return handlers[args.cmd](args, cfg)
    except SlipboxError as exc:
        log.debug("%s %s", type(exc).__name__, exc.details)
        print(f"error: {exc.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
