"""Per-note text output driven by a ``%``-token template.

Tokens
------
``%t``  title
``%p``  project (empty for the default project)
``%P``  full path of the note file
``%l``  forward links, joined by the link separator
``%b``  backlinks (titles of notes linking here), joined the same way
``%a``  text matched by the free-text predicate, if any

Substitution is a single pass, so a title containing ``%p`` is printed as is.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from slipbox.note import Note

DEFAULT_TEMPLATE = "[%p] %t"
DEFAULT_LINK_SEP = " | "

_TOKEN_RE = re.compile(r"%([tpPlba])")


@dataclass
class Formatter:
    root: Path
    template: str = DEFAULT_TEMPLATE
    link_sep: str = DEFAULT_LINK_SEP
    #: Link target -> titles of the notes linking to it
    backlinks: Mapping[str, list[str]] = field(default_factory=dict)
    #: Title -> matched substring of a text search
    matches: Mapping[str, str] = field(default_factory=dict)

    def format(self, note: Note) -> str:
        def substitute(m: re.Match[str]) -> str:
            token = m.group(1)
            if token == "t":
                return note.title
            if token == "p":
                return note.project
            if token == "P":
                return str(note.filename(self.root))
            if token == "l":
                return self.link_sep.join(note.links)
            if token == "b":
                return self.link_sep.join(self.backlinks.get(note.title, []))
            return self.matches.get(note.title, "")

        return _TOKEN_RE.sub(substitute, self.template)

    def format_all(self, notes: list[Note]) -> list[str]:
        """Format *notes* in title order."""
        return [self.format(n) for n in sorted(notes, key=lambda n: n.title)]
