"""Unit tests for slipbox.query.QueryEngine."""

import textwrap
from pathlib import Path

import pytest

from slipbox.db import IndexStore
from slipbox.errors import InvalidPattern
from slipbox.index import rebuild
from slipbox.query import Query, QueryEngine


def _write_note(directory: Path, name: str, content: str) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{name}.md"
    path.write_text(textwrap.dedent(content), encoding="utf-8")
    return path


@pytest.fixture()
def engine(root: Path, store: IndexStore) -> QueryEngine:
    _write_note(root, "A", """\
        See [[B]].
        #proj/x
    """)
    _write_note(root, "B", """\
        #proj
        Body mentions a Zebra.
    """)
    _write_note(root / "work", "C", """\
        Links [[A]] and [[Ghost]].
        #a-extended
    """)
    _write_note(root, "Lonely", "Nothing here. #a\n")
    _write_note(root / "work", "Solo", "Just me.\n")
    rebuild(root, store)
    return QueryEngine(store, root)


def _titles(engine: QueryEngine, **predicates) -> list[str]:
    return engine.run(Query(**predicates)).titles


# ---------------------------------------------------------------------------
# Single predicates
# ---------------------------------------------------------------------------


class TestPredicates:
    def test_empty_query_returns_everything(self, engine: QueryEngine):
        assert _titles(engine) == ["A", "B", "C", "Lonely", "Solo"]

    def test_title_glob(self, engine: QueryEngine):
        assert _titles(engine, title="*o*") == ["Lonely", "Solo"]
        assert _titles(engine, title="*O*") == []

    def test_title_exact(self, engine: QueryEngine):
        assert _titles(engine, title="A", exact=True) == ["A"]
        assert _titles(engine, title="*", exact=True) == []

    def test_project(self, engine: QueryEngine):
        assert _titles(engine, project="work") == ["C", "Solo"]

    def test_main_project_alias(self, engine: QueryEngine):
        assert _titles(engine, project="main") == ["A", "B", "Lonely"]

    def test_tag_includes_children(self, engine: QueryEngine):
        assert _titles(engine, tag="proj") == ["A", "B"]

    def test_exact_tag_has_no_children_or_prefixes(self, engine: QueryEngine):
        assert _titles(engine, tag="proj", exact=True) == ["B"]
        assert _titles(engine, tag="a", exact=True) == ["Lonely"]

    def test_text(self, engine: QueryEngine):
        result = engine.run(Query(text="zebra"))
        assert result.titles == ["B"]
        assert result.matches == {"B": "Zebra"}

    def test_text_regex(self, engine: QueryEngine):
        assert _titles(engine, text=r"\[\[") == ["A", "C"]

    def test_text_literal(self, engine: QueryEngine):
        assert _titles(engine, text="[[", exact=True) == ["A", "C"]

    def test_text_invalid_regex(self, engine: QueryEngine):
        with pytest.raises(InvalidPattern):
            engine.run(Query(text="[["))

    def test_backlinks_to(self, engine: QueryEngine):
        assert _titles(engine, backlinks_to="A") == ["C"]
        assert _titles(engine, backlinks_to="Ghost") == ["C"]

    def test_links_from(self, engine: QueryEngine):
        # C links to A and to a ghost; only existing notes are returned
        assert _titles(engine, links_from="C") == ["A"]

    def test_isolated(self, engine: QueryEngine):
        assert _titles(engine, isolated=True) == ["Lonely", "Solo"]


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------


class TestComposition:
    def test_conjunction(self, engine: QueryEngine):
        assert _titles(engine, project="work", isolated=True) == ["Solo"]
        assert _titles(engine, tag="proj", backlinks_to="B") == ["A"]

    @pytest.mark.parametrize(
        ("first", "second"),
        [
            ({"project": "main"}, {"tag": "proj"}),
            ({"title": "*o*"}, {"isolated": True}),
            ({"text": "e"}, {"project": "work"}),
            ({"backlinks_to": "*"}, {"tag": "a*"}),
        ],
    )
    def test_conjunction_is_intersection(self, engine: QueryEngine, first: dict, second: dict):
        both = set(_titles(engine, **first, **second))
        assert both == set(_titles(engine, **first)) & set(_titles(engine, **second))

    def test_results_sorted_by_title(self, engine: QueryEngine):
        titles = _titles(engine, text=".")
        assert titles == sorted(titles)

    def test_unreadable_note_is_skipped_by_text_search(self, engine: QueryEngine, root: Path):
        (root / "Lonely.md").unlink()
        assert _titles(engine, text="nothing") == []
        assert "Lonely" in _titles(engine)


class TestBacklinks:
    def test_backlinks_map(self, engine: QueryEngine):
        assert engine.backlinks() == {"B": ["A"], "A": ["C"], "Ghost": ["C"]}
