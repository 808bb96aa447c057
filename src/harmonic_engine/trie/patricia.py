"""Compressed prefix (Patricia) trie over hexadecimal keys."""

from __future__ import annotations

import string
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

_HEX_DIGITS = frozenset(string.hexdigits.lower())


@dataclass
class TrieNode:
    """One compressed node: ``path`` is the key fragment consumed on entry.

    The branching nibble that leads to a child is consumed by the edge itself,
    so a child's ``path`` starts right after it.
    """

    path: str
    children: Dict[str, "TrieNode"] = field(default_factory=dict)
    values: List[Any] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "children": {nibble: child.as_dict() for nibble, child in self.children.items()},
            "values": list(self.values),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TrieNode":
        children = data.get("children") or {}
        return cls(
            path=str(data.get("path", "")),
            children={str(nibble): cls.from_dict(child) for nibble, child in children.items()},
            values=list(data.get("values") or []),
        )


def normalize_key(key: str) -> str:
    return "".join(ch for ch in key.lower() if ch in _HEX_DIGITS)


def _common_extension(items: List[Tuple[str, Any]], start: int) -> str:
    # ``items`` is sorted, so the shared prefix of all keys is that of the
    # first and last.
    first, last = items[0][0], items[-1][0]
    end = start
    limit = min(len(first), len(last))
    while end < limit and first[end] == last[end]:
        end += 1
    return first[start:end]


def build_patricia_trie(entries: Iterable[Tuple[str, Any]]) -> Optional[TrieNode]:
    """Build a trie from ``(key_hex, value)`` pairs; ``None`` when empty.

    Construction uses an explicit work stack, so depth is bounded by memory
    rather than the interpreter's recursion limit.
    """

    ordered = sorted(((normalize_key(key), value) for key, value in entries), key=lambda item: item[0])
    if not ordered:
        return None
    root: Optional[TrieNode] = None
    stack: List[Tuple[List[Tuple[str, Any]], str, Optional[TrieNode], str]] = [(ordered, "", None, "")]
    while stack:
        items, prefix, parent, nibble = stack.pop()
        if len(items) == 1:
            common = items[0][0][len(prefix) :]
        else:
            common = _common_extension(items, len(prefix))
        node = TrieNode(path=common)
        consumed = prefix + common
        groups: Dict[str, List[Tuple[str, Any]]] = {}
        for key, value in items:
            if len(key) == len(consumed):
                node.values.append(value)
            else:
                groups.setdefault(key[len(consumed)], []).append((key, value))
        if parent is None:
            root = node
        else:
            parent.children[nibble] = node
        for branch in reversed(list(groups)):
            stack.append((groups[branch], consumed + branch, node, branch))
    return root


def iter_nodes(root: Optional[TrieNode]) -> Iterator[Tuple[str, TrieNode]]:
    """Depth-first ``(key_prefix, node)`` pairs, children in nibble order."""

    if root is None:
        return
    stack: List[Tuple[str, TrieNode]] = [(root.path, root)]
    while stack:
        prefix, node = stack.pop()
        yield prefix, node
        for nibble in reversed(list(node.children)):
            child = node.children[nibble]
            stack.append((prefix + nibble + child.path, child))


def trie_values(root: Optional[TrieNode]) -> List[Any]:
    return [value for _, node in iter_nodes(root) for value in node.values]


def trie_keys(root: Optional[TrieNode]) -> List[str]:
    return [prefix for prefix, node in iter_nodes(root) if node.values]


def lookup(root: Optional[TrieNode], key: str) -> List[Any]:
    """Terminal values stored under ``key`` (empty when absent)."""

    target = normalize_key(key)
    node = root
    pos = 0
    while node is not None:
        if not target.startswith(node.path, pos):
            return []
        pos += len(node.path)
        if pos == len(target):
            return list(node.values)
        node = node.children.get(target[pos])
        pos += 1
    return []


__all__ = [
    "TrieNode",
    "build_patricia_trie",
    "iter_nodes",
    "lookup",
    "normalize_key",
    "trie_keys",
    "trie_values",
]
