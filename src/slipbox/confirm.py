"""Yes/no confirmation callbacks for destructive operations.

Rename, move and delete ask a ``Confirm`` callable before touching anything.
Scripts and tests pass :func:`always_yes` or :func:`always_no`; the CLI uses
:func:`ask` unless ``--yes`` was given.
"""

from __future__ import annotations

import sys
from typing import Callable, TextIO

Confirm = Callable[[str], bool]

_YES = {"y", "yes"}


def always_yes(message: str) -> bool:  # noqa: ARG001
    return True


def always_no(message: str) -> bool:  # noqa: ARG001
    return False


def ask(message: str, *, stdin: TextIO | None = None, stdout: TextIO | None = None) -> bool:
    """Prompt on the terminal; anything but ``y``/``yes`` (or EOF) means no."""
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    stdout.write(f"{message} [y/N] ")
    stdout.flush()
    answer = stdin.readline()
    if not answer:
        stdout.write("\n")
        return False
    return answer.strip().lower() in _YES
