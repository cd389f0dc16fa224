"""Slipbox: metadata index and consistency engine for a Zettelkasten."""

__version__ = "0.1.0"

from slipbox.db import IndexStore
from slipbox.edits import NoteEditor
from slipbox.index import IndexBuilder, rebuild
from slipbox.note import Note
from slipbox.parser import extract_links, extract_tags
from slipbox.query import Query, QueryEngine

__all__ = [
    "Note",
    "IndexStore",
    "IndexBuilder",
    "rebuild",
    "NoteEditor",
    "Query",
    "QueryEngine",
    "extract_links",
    "extract_tags",
]
