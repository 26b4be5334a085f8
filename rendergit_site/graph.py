"""
Classify `git rev-list --graph` output into decoration rows and commit rows.

    * 1f3a...          commit row, rank 1 (the branch head)
    |\\
    | * 9be0...        commit row, rank 2
    |/                 decoration row
"""
from __future__ import annotations

import re
from typing import Iterable, Iterator

from .errors import BackendError
from .models import GraphRow

# Applied in one pass, so a substituted entity is never translated again.
GLYPHS = str.maketrans({
    "*": "&#x25CF;",  # node
    "|": "&#x2503;",  # vertical edge
    "\\": "&#x2B0A;",  # merge coming up from the right
    "/": "&#x2B0B;",  # merge going down to the left
})

_ROW_RE = re.compile(r"^(?P<graph>[ |*\\/_.\-]*?)(?P<commit>[0-9a-f]{4,64})?\s*$")


def translate_glyphs(graph: str) -> str:
    return graph.rstrip().translate(GLYPHS)


def parse_row(line: str) -> GraphRow:
    m = _ROW_RE.match(line)
    if not m:
        raise BackendError(f"malformed graph row: {line!r}")
    return GraphRow(graph=translate_glyphs(m.group("graph")), commit_id=m.group("commit"))


def walk_graph(lines: Iterable[str]) -> Iterator[GraphRow]:
    """Yield a GraphRow per input line, in input order, ranking commit rows from 1."""
    rank = 0
    for line in lines:
        row = parse_row(line)
        if row.commit_id is None:
            yield row
            continue
        rank += 1
        yield GraphRow(graph=row.graph, commit_id=row.commit_id, rank=rank)
