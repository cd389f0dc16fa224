"""Unit tests for slipbox.confirm."""

import io

import pytest

from slipbox.confirm import always_no, always_yes, ask


def test_fixed_policies():
    assert always_yes("anything") is True
    assert always_no("anything") is False


@pytest.mark.parametrize(
    ("answer", "expected"),
    [
        ("y\n", True),
        ("YES\n", True),
        ("  yes  \n", True),
        ("n\n", False),
        ("\n", False),
        ("sure\n", False),
        ("", False),
    ],
)
def test_ask(answer: str, expected: bool):
    out = io.StringIO()
    assert ask("A --> B", stdin=io.StringIO(answer), stdout=out) is expected
    assert out.getvalue().startswith("A --> B [y/N] ")
