"""Hierarchy views built from entry parent pointers."""

from typing import Any

import structlog

from synap.models import Entry, Found, resolve_id

logger = structlog.get_logger()

DEFAULT_MAX_DEPTH = 10


def children_index(entries: list[Entry]) -> dict[str, list[Entry]]:
    """Map each parent id to its children, in collection order."""
    index: dict[str, list[Entry]] = {}
    for entry in entries:
        if entry.parent:
            index.setdefault(entry.parent, []).append(entry)
    return index


def build_tree(
    entries: list[Entry],
    root_ids: list[str] | None = None,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> list[dict[str, Any]]:
    """Build a forest of entry nodes.

    Each node is the entry's stored fields plus a ``children`` list. Roots are
    the requested ids (exact id or unique prefix; unresolved ids are dropped)
    or, when none are requested, every entry without a parent. Nodes at depth
    ``max_depth`` or deeper are emitted with no children, which also bounds
    recursion when the data contains a parent cycle.

    Args:
        entries: Collection to build from
        root_ids: Optional ids or prefixes of the roots
        max_depth: Depth at which children stop being expanded (roots are depth 0)

    Returns:
        List of root node dictionaries
    """
    index = children_index(entries)

    def node(entry: Entry, depth: int) -> dict[str, Any]:
        data = entry.to_dict()
        if depth >= max_depth:
            data["children"] = []
        else:
            data["children"] = [node(child, depth + 1) for child in index.get(entry.id, [])]
        return data

    if root_ids:
        roots = []
        for root_id in root_ids:
            result = resolve_id(entries, root_id)
            if isinstance(result, Found):
                roots.append(result.entry)
            else:
                logger.debug("Tree root not resolved", root_id=root_id)
    else:
        roots = [e for e in entries if not e.parent]

    tree = [node(root, 0) for root in roots]
    logger.debug("Tree built", roots=len(tree), max_depth=max_depth)
    return tree


def find_cycles(entries: list[Entry]) -> list[list[str]]:
    """Find parent-pointer cycles; each cycle is reported once, starting at its first-seen member."""
    by_id = {e.id: e for e in entries}
    state: dict[str, str] = {}
    cycles: list[list[str]] = []

    for entry in entries:
        path: list[str] = []
        current: str | None = entry.id
        while current in by_id and current not in state:
            state[current] = "visiting"
            path.append(current)
            current = by_id[current].parent

        if current is not None and state.get(current) == "visiting":
            cycles.append(path[path.index(current) :])
        for entry_id in path:
            state[entry_id] = "done"

    if cycles:
        logger.warning("Parent cycles found", count=len(cycles))
    return cycles


def creates_cycle(entries: list[Entry], entry_id: str, parent_id: str) -> bool:
    """True if making ``parent_id`` the parent of ``entry_id`` would form a cycle."""
    by_id = {e.id: e for e in entries}
    current: str | None = parent_id
    seen: set[str] = set()
    while current is not None and current not in seen:
        if current == entry_id:
            return True
        seen.add(current)
        parent = by_id.get(current)
        current = parent.parent if parent else None
    return False
