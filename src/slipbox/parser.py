"""WikiLink and tag extraction, plus the text rewrites built on the same syntax.

Every function here is pure: no I/O and no shared mutable state, so the index
builder can call them from any number of worker threads.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from pathlib import Path

from slipbox.errors import InvalidPattern, OutsideRoot
from slipbox.note import NOTE_EXT, Note

# [[Target]]; the target may span several lines but not contain brackets
_WIKILINK_RE = re.compile(r"\[\[([^\[\]]*?)\]\]")
# #tag or #parent/child, delimited by whitespace (or the edges of the text)
_TAG_RE = re.compile(r"(?<!\S)#([\w-]+(?:/[\w-]+)*)(?!\S)")
_WHITESPACE_RUN = r"[ \t\r\n]+"
_WHITESPACE_RUN_RE = re.compile(_WHITESPACE_RUN)

_TITLE_PLACEHOLDER = "${TITLE}"
_DATE_PLACEHOLDER = "${DATE}"


def strip_multiple_whitespace(text: str) -> str:
    """Collapse every run of spaces, tabs and newlines into one space."""
    return _WHITESPACE_RUN_RE.sub(" ", text)


def extract_links(text: str) -> list[str]:
    """Return all ``[[WikiLink]]`` targets found in *text* (de-duped, ordered)."""
    seen: set[str] = set()
    result: list[str] = []
    for m in _WIKILINK_RE.finditer(text):
        target = strip_multiple_whitespace(m.group(1))
        if not target.strip() or target in seen:
            continue
        seen.add(target)
        result.append(target)
    return result


def extract_tags(text: str) -> list[str]:
    """Return all ``#tag`` values found in *text* (de-duped, ordered)."""
    return list(dict.fromkeys(m.group(1) for m in _TAG_RE.finditer(text)))


def link_pattern(title: str) -> re.Pattern[str]:
    """Regex matching ``[[title]]`` where any space may have been wrapped.

    Each space of *title* matches a run of spaces, tabs or newlines, so a link
    split across lines by the editor is still recognised.
    """
    words = (re.escape(word) for word in title.split(" "))
    return re.compile(r"\[\[" + _WHITESPACE_RUN.join(words) + r"\]\]")


def rewrite_links(text: str, old_title: str, new_title: str) -> tuple[str, int]:
    """Replace every link to *old_title* with ``[[new_title]]``.

    Returns ``(new_text, number_of_replacements)``.
    """
    replacement = f"[[{new_title}]]"
    return link_pattern(old_title).subn(lambda _m: replacement, text)


def compile_search(pattern: str, *, literal: bool = False) -> re.Pattern[str]:
    """Compile a case-insensitive free-text search pattern."""
    try:
        return re.compile(re.escape(pattern) if literal else pattern, re.IGNORECASE)
    except re.error as exc:
        raise InvalidPattern(pattern, exc) from exc


def find_pattern(text: str, pattern: re.Pattern[str] | str) -> str | None:
    """Return the first match of *pattern* in *text*, or ``None``."""
    if isinstance(pattern, str):
        pattern = compile_search(pattern)
    m = pattern.search(text)
    return m.group(0) if m else None


def render_template(template: str, title: str, today: datetime | None = None) -> str:
    """Substitute ``${TITLE}`` and ``${DATE}`` in a note-creation template."""
    today = today or datetime.now(timezone.utc)
    return template.replace(_TITLE_PLACEHOLDER, title).replace(
        _DATE_PLACEHOLDER, today.strftime("%Y-%m-%d")
    )


# ---------------------------------------------------------------------------
# Paths <-> notes
# ---------------------------------------------------------------------------


def project_of(path: Path, root: Path) -> str:
    """Return the project a note file at *path* belongs to.

    Notes live either directly in *root* (default project) or one directory
    below it; anything else is not part of the managed tree.
    """
    try:
        relative = Path(path).resolve().relative_to(Path(root).resolve())
    except ValueError:
        raise OutsideRoot(path, f"not inside {root}") from None
    if relative.suffix != NOTE_EXT or relative.name.startswith("."):
        raise OutsideRoot(path, f"not a {NOTE_EXT} note file")
    parts = relative.parts
    if len(parts) == 1:
        return ""
    if len(parts) == 2 and not parts[0].startswith("."):
        return parts[0]
    raise OutsideRoot(path, "notes may be at most one directory deep")


def note_from_text(text: str, path: Path, root: Path) -> Note:
    """Build a :class:`Note` for the file at *path* whose content is *text*.

    Whitespace runs in the file name are collapsed, as they are in link
    targets, so the title may not match the name on disk.
    """
    return Note(
        title=strip_multiple_whitespace(Path(path).stem),
        project=project_of(path, root),
        links=extract_links(text),
        tags=extract_tags(text),
    )
