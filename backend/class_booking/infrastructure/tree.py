"""Helpers for the `/`-addressed JSON tree shared by the store adapters."""

from __future__ import annotations

import copy
from typing import Any, Iterable, Iterator

from ..domain.paths import validate_key

Segments = tuple[str, ...]


def split_path(path: str) -> Segments:
    """`"/bookings/u1_c1/"` -> `("bookings", "u1_c1")`; `""` and `"/"` address the root."""
    if not isinstance(path, str):
        raise ValueError("path must be a string")
    parts = tuple(part for part in path.split("/") if part)
    for part in parts:
        validate_key(part)
    return parts


def join_path(segments: Iterable[str]) -> str:
    return "/".join(segments)


def is_related(a: Segments, b: Segments) -> bool:
    """True when one path equals or is an ancestor of the other."""
    shorter = min(len(a), len(b))
    return a[:shorter] == b[:shorter]


def check_disjoint(paths: Iterable[Segments]) -> None:
    seen: list[Segments] = []
    for segs in paths:
        for other in seen:
            if is_related(segs, other):
                raise ValueError(
                    f"paths {join_path(segs)!r} and {join_path(other)!r} overlap in a single update"
                )
        seen.append(segs)


def prune(value: Any) -> Any:
    """Drop None entries and empty containers; an empty result becomes None."""
    if isinstance(value, dict):
        cleaned = {}
        for key, child in value.items():
            validate_key(str(key))
            child = prune(child)
            if child is not None:
                cleaned[str(key)] = child
        return cleaned or None
    if isinstance(value, (list, tuple)):
        return prune({str(index): child for index, child in enumerate(value)})
    return value


def get_in(tree: Any, segments: Segments) -> Any:
    node = tree
    for key in segments:
        if not isinstance(node, dict) or key not in node:
            return None
        node = node[key]
    return copy.deepcopy(node)


def put_in(tree: dict[str, Any], segments: Segments, value: Any) -> dict[str, Any]:
    """
    Write `value` (already pruned) at `segments` and return the new root.
    Parents left empty by a delete are removed.
    """
    if not segments:
        return value if isinstance(value, dict) else {}
    head, rest = segments[0], segments[1:]
    child = tree.get(head)
    if rest:
        child = put_in(child if isinstance(child, dict) else {}, rest, value)
        if not child:
            child = None
    else:
        child = value
    if child is None:
        tree.pop(head, None)
    else:
        tree[head] = child
    return tree


def flatten(value: Any, prefix: Segments = ()) -> Iterator[tuple[Segments, Any]]:
    """Yield (segments, leaf) pairs for every scalar under `value`."""
    if isinstance(value, dict):
        for key, child in value.items():
            yield from flatten(child, prefix + (key,))
    elif value is not None:
        yield prefix, value


def nest(leaves: Iterable[tuple[Segments, Any]]) -> Any:
    """Inverse of `flatten` for leaves relative to a common base."""
    root: Any = None
    for segments, leaf in leaves:
        if not segments:
            return leaf
        if not isinstance(root, dict):
            root = {}
        node = root
        for key in segments[:-1]:
            child = node.get(key)
            if not isinstance(child, dict):
                child = {}
                node[key] = child
            node = child
        node[segments[-1]] = leaf
    return root
