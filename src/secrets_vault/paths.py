#!/usr/bin/env python3
"""Path Accessor - get/set/delete on the nested secrets tree.

A path is a sequence of keys, e.g. ["bitso", "prod", "key"]. All writers
return a new tree and leave their input untouched.
"""

from typing import Any, Dict, Mapping, Sequence

from .constants import MASK
from .errors import MalformedInputError

Tree = Dict[Any, Any]


def get_in(tree: Mapping, path: Sequence, default: Any = None) -> Any:
    """Look up a nested value; any missing segment yields `default`."""
    node: Any = tree
    for key in path:
        if not isinstance(node, Mapping) or key not in node:
            return default
        node = node[key]
    return node


def assoc_in(tree: Mapping, path: Sequence, value: Any) -> Tree:
    """Set the value at `path`, creating intermediate mappings as needed.

    A non-mapping value sitting on the way is replaced by a new mapping.
    """
    if not path:
        raise MalformedInputError("Cannot set a value at an empty path")

    key, rest = path[0], path[1:]
    updated = dict(tree)
    if rest:
        child = tree.get(key)
        updated[key] = assoc_in(child if isinstance(child, Mapping) else {}, rest, value)
    else:
        updated[key] = value
    return updated


def dissoc_in(tree: Mapping, path: Sequence) -> Tree:
    """Remove the entry at `path` and prune any mapping left empty by it.

    Pruning stops at the root: deleting the last secret yields ``{}``.
    Deleting a path that does not exist returns an unchanged copy.
    """
    if not path:
        raise MalformedInputError("Cannot delete an empty path")

    key, rest = path[0], path[1:]
    if key not in tree:
        return dict(tree)

    updated = dict(tree)
    if not rest:
        del updated[key]
        return updated

    child = tree[key]
    if not isinstance(child, Mapping):
        return updated

    pruned = dissoc_in(child, rest)
    if pruned:
        updated[key] = pruned
    elif child:
        # Only prune containers that this delete emptied
        del updated[key]
    return updated


def merge_in(tree: Mapping, path: Sequence, mapping: Mapping) -> Tree:
    """Shallow-merge `mapping` into the mapping at `path` (root if empty)."""
    if not isinstance(mapping, Mapping):
        raise MalformedInputError("Only a mapping can be merged into the tree")

    current = get_in(tree, path)
    merged = dict(current) if isinstance(current, Mapping) else {}
    merged.update(mapping)
    if not path:
        return merged
    return assoc_in(tree, path, merged)


def mask_leaves(tree: Mapping, mask: str = MASK) -> Tree:
    """Copy of the tree with every non-mapping value replaced by `mask`."""
    return {
        k: mask_leaves(v, mask) if isinstance(v, Mapping) else mask
        for k, v in tree.items()
    }
