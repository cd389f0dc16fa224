"""Link-graph export.

:func:`build_graph` turns notes into a :mod:`networkx` multigraph whose nodes
are note titles plus the ghost titles they link to. The graph can then be
written out as DOT text (:func:`to_dot`), a node-link JSON structure
(:func:`to_json`), or a Vega-Lite chart spec built with :mod:`altair`
(:func:`to_vega`) that any Vega renderer can draw.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

import networkx as nx

from slipbox.note import Note

if TYPE_CHECKING:
    import altair as alt

GRAPH_FORMATS = ("dot", "json", "vega")


# ---------------------------------------------------------------------------
# Graph model
# ---------------------------------------------------------------------------


def build_graph(notes: Iterable[Note], existing: Iterable[str] | None = None) -> nx.MultiDiGraph:
    """Return the link graph of *notes*.

    Parameters
    ----------
    notes:
        Notes whose outgoing links become edges.
    existing:
        Titles of every indexed note. A link target outside this set is a
        ghost; defaults to the titles of *notes*.
    """
    notes = list(notes)
    existing = {n.title for n in notes} if existing is None else set(existing)

    G: nx.MultiDiGraph = nx.MultiDiGraph()
    for note in notes:
        G.add_node(note.title, project=note.project, ghost=False)
    for note in notes:
        for target in note.links:
            ghost = target not in existing
            if target not in G:
                G.add_node(target, project=None, ghost=ghost)
            G.add_edge(note.title, target, ghost=ghost)
    return G


# ---------------------------------------------------------------------------
# Exporters
# ---------------------------------------------------------------------------


def _dot_id(name: str) -> str:
    return '"' + name.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n") + '"'


def to_dot(G: nx.MultiDiGraph, name: str = "slipbox") -> str:
    """Render *G* as a Graphviz digraph; ghosts are drawn dashed."""
    lines = [f"digraph {_dot_id(name)} {{"]
    for node, data in G.nodes(data=True):
        attrs = ' [style=dashed]' if data.get("ghost") else ""
        lines.append(f"    {_dot_id(node)}{attrs};")
    for source, target, data in G.edges(data=True):
        attrs = ' [style=dashed]' if data.get("ghost") else ""
        lines.append(f"    {_dot_id(source)} -> {_dot_id(target)}{attrs};")
    lines.append("}")
    return "\n".join(lines) + "\n"


def to_json(G: nx.MultiDiGraph) -> dict[str, Any]:
    """Node-link dictionary (``nodes`` / ``links``) ready for :func:`json.dumps`."""
    return nx.node_link_data(G, edges="links")


def build_chart(
    G: nx.MultiDiGraph,
    *,
    width: int = 640,
    height: int = 480,
    seed: int = 42,
) -> "alt.LayerChart":
    """Return an Altair chart of *G* laid out with a spring layout.

    Existing notes are blue circles; ghosts and the edges pointing at them
    are grey and dashed.
    """
    import altair as alt
    import polars as pl

    pos: dict[str, Any] = nx.spring_layout(G, seed=seed) if len(G) else {}

    nodes_df = pl.DataFrame(
        [
            {
                "title": node,
                "project": data.get("project") or "",
                "ghost": bool(data.get("ghost")),
                "x": float(pos[node][0]),
                "y": float(pos[node][1]),
                "degree": int(G.degree(node)),
            }
            for node, data in G.nodes(data=True)
        ]
        or [{"title": "", "project": "", "ghost": False, "x": 0.0, "y": 0.0, "degree": 0}]
    )

    edges_rows = [
        {
            "x": float(pos[src][0]),
            "y": float(pos[src][1]),
            "x2": float(pos[tgt][0]),
            "y2": float(pos[tgt][1]),
            "source": src,
            "target": tgt,
            "ghost": bool(data.get("ghost")),
        }
        for src, tgt, data in G.edges(data=True)
    ]
    edges_df = pl.DataFrame(
        edges_rows
        or [{"x": 0.0, "y": 0.0, "x2": 0.0, "y2": 0.0, "source": "", "target": "", "ghost": False}]
    )

    edge_layer = (
        alt.Chart(edges_df)
        .mark_rule(strokeWidth=1, opacity=0.55 if edges_rows else 0)
        .encode(
            x=alt.X("x:Q", axis=None),
            y=alt.Y("y:Q", axis=None),
            x2="x2:Q",
            y2="y2:Q",
            color=alt.condition(alt.datum["ghost"], alt.value("#BBBBBB"), alt.value("#888888")),
            strokeDash=alt.condition(alt.datum["ghost"], alt.value([4, 3]), alt.value([1, 0])),
            tooltip=[alt.Tooltip("source:N", title="from"), alt.Tooltip("target:N", title="to")],
        )
    )

    node_layer = (
        alt.Chart(nodes_df)
        .mark_circle(opacity=0.9 if len(G) else 0)
        .encode(
            x=alt.X("x:Q", axis=None),
            y=alt.Y("y:Q", axis=None),
            size=alt.Size("degree:Q", scale=alt.Scale(range=[80, 400]), legend=None),
            color=alt.condition(alt.datum["ghost"], alt.value("#BBBBBB"), alt.value("#4B90D9")),
            tooltip=[alt.Tooltip("title:N", title="note"), alt.Tooltip("project:N", title="project")],
        )
    )

    label_layer = (
        alt.Chart(nodes_df)
        .mark_text(dy=-12, fontSize=11)
        .encode(
            x=alt.X("x:Q", axis=None),
            y=alt.Y("y:Q", axis=None),
            text="title:N",
        )
    )

    return (
        (edge_layer + node_layer + label_layer)
        .properties(width=width, height=height)
        .configure_view(strokeWidth=0)
    )


def to_vega(G: nx.MultiDiGraph, **kwargs: Any) -> dict[str, Any]:
    """Vega-Lite spec of :func:`build_chart`, as a plain dictionary."""
    return build_chart(G, **kwargs).to_dict()


def export(G: nx.MultiDiGraph, fmt: str) -> str:
    """Serialise *G* in one of :data:`GRAPH_FORMATS`."""
    if fmt == "dot":
        return to_dot(G)
    if fmt == "json":
        return json.dumps(to_json(G), indent=2)
    if fmt == "vega":
        return json.dumps(to_vega(G), indent=2)
    raise ValueError(f"unknown graph format '{fmt}'; expected one of {', '.join(GRAPH_FORMATS)}")
