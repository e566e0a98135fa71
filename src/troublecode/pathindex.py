from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Iterator, Protocol, Sequence

from .bundle import Bundle, NodeKind, kind_of, validate_bundle
from .compression import _debug_log
from .errors import PathSyntaxError

__all__ = [
    "TreeNode",
    "PathIndex",
    "RevealHost",
    "build_path_index",
    "activate_reference",
    "parse_path",
    "format_path",
    "join_key",
    "join_index",
]

ROOT_PATH = ""
_DEFAULT_ITEM_LABEL = "item"
_HEAD_RE = re.compile(r"[^.\[\]]+")
_SEGMENT_RE = re.compile(r"\.([^.\[\]]+)|\[(\d+)\]")


@dataclass(frozen=True, slots=True)
class TreeNode:
    """
    Read-only view of one bundle value and the path assigned to it.

    ``label`` is the display name: the mapping key, or ``"<owner> #n"`` with a
    1-based ``n`` for sequence items. ``children`` is empty for scalars and
    empty composites.
    """

    path: str
    kind: NodeKind
    value: Bundle
    label: str
    depth: int
    parent_path: str | None
    children: tuple["TreeNode", ...] = ()

    @property
    def is_leaf(self) -> bool:
        return not self.children

    @property
    def is_container(self) -> bool:
        return self.kind.is_composite


def join_key(parent: str, key: str) -> str:
    return f"{parent}.{key}" if parent else key


def join_index(parent: str, index: int) -> str:
    return f"{parent}[{index}]"


def parse_path(path: str) -> tuple[str | int, ...]:
    """
    Split a path into mapping keys (str) and sequence indexes (int).

    >>> parse_path("navigator.languages[0]")
    ('navigator', 'languages', 0)
    """
    if path == ROOT_PATH:
        return ()
    segments: list[str | int] = []
    pos = 0
    head = _HEAD_RE.match(path)
    if head is not None:
        segments.append(head.group(0))
        pos = head.end()
    while pos < len(path):
        match = _SEGMENT_RE.match(path, pos)
        if match is None:
            raise PathSyntaxError(f"Invalid path {path!r} at offset {pos}")
        key, index = match.groups()
        segments.append(key if key is not None else int(index))
        pos = match.end()
    return tuple(segments)


def format_path(segments: Iterable[str | int]) -> str:
    path = ROOT_PATH
    for segment in segments:
        if isinstance(segment, int) and not isinstance(segment, bool):
            if segment < 0:
                raise PathSyntaxError(f"Negative sequence index {segment}")
            path = join_index(path, segment)
        else:
            path = join_key(path, str(segment))
    return path


class PathIndex:
    """Mapping from every assigned path of one bundle to its TreeNode."""

    def __init__(self, root: TreeNode, nodes: dict[str, TreeNode], conflicts: Sequence[str] = ()) -> None:
        self._root = root
        self._nodes = nodes
        self._conflicts = tuple(conflicts)

    @property
    def root(self) -> TreeNode:
        return self._root

    @property
    def conflicts(self) -> tuple[str, ...]:
        """Paths produced by out-of-grammar keys that were already taken."""
        return self._conflicts

    def lookup(self, path: str) -> TreeNode | None:
        if not isinstance(path, str):
            return None
        return self._nodes.get(path)

    def ancestors(self, path: str) -> list[TreeNode]:
        """Containers enclosing *path*, outermost first. Empty for unknown paths."""
        node = self.lookup(path)
        if node is None:
            return []
        chain: list[TreeNode] = []
        parent_path = node.parent_path
        while parent_path is not None:
            parent = self._nodes.get(parent_path)
            if parent is None:
                break
            chain.append(parent)
            parent_path = parent.parent_path
        chain.reverse()
        return chain

    def nodes(self) -> list[TreeNode]:
        return list(self._nodes.values())

    def paths(self) -> list[str]:
        return list(self._nodes)

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and path in self._nodes

    def __iter__(self) -> Iterator[str]:
        return iter(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def __repr__(self) -> str:
        return f"PathIndex(nodes={len(self._nodes)}, conflicts={len(self._conflicts)})"


class _IndexBuilder:
    def __init__(self) -> None:
        self.nodes: dict[str, TreeNode] = {}
        self.conflicts: list[str] = []

    def build(
        self,
        value: Bundle,
        path: str,
        label: str,
        depth: int,
        parent_path: str | None,
        parent_kind: NodeKind | None,
    ) -> TreeNode:
        kind = kind_of(value)
        owns_path = path not in self.nodes
        if owns_path:
            # reserve the slot now so iteration follows pre-order
            self.nodes[path] = None  # type: ignore[assignment]
        else:
            self.conflicts.append(path)
            _debug_log(f"path {path!r} is already assigned; keeping the first node")

        if kind is NodeKind.MAPPING:
            children = tuple(
                self.build(child, join_key(path, key), key, depth + 1, path, kind)
                for key, child in value.items()  # type: ignore[union-attr]
            )
        elif kind is NodeKind.SEQUENCE:
            owner = label if parent_kind is NodeKind.MAPPING and label else _DEFAULT_ITEM_LABEL
            children = tuple(
                self.build(child, join_index(path, index), f"{owner} #{index + 1}", depth + 1, path, kind)
                for index, child in enumerate(value)  # type: ignore[arg-type]
            )
        else:
            children = ()

        node = TreeNode(
            path=path,
            kind=kind,
            value=value,
            label=label,
            depth=depth,
            parent_path=parent_path,
            children=children,
        )
        if owns_path:
            self.nodes[path] = node
        return node


def build_path_index(bundle: Bundle) -> PathIndex:
    """
    Walk *bundle* depth-first and assign every node its path.

    Mapping children follow insertion order and get ``.key`` (the bare key at
    the root); sequence items get ``[i]``. The same value always yields the
    same assignment. Values the codec would refuse (cycles, unsupported types,
    nesting past MAX_BUNDLE_DEPTH) raise NonSerializableError.
    """
    validate_bundle(bundle)
    builder = _IndexBuilder()
    root = builder.build(bundle, ROOT_PATH, "", 0, None, None)
    return PathIndex(root, builder.nodes, builder.conflicts)


class RevealHost(Protocol):
    """What a UI must provide to act on a reference binding."""

    def reveal(self, node: TreeNode) -> None: ...

    def highlight(self, node: TreeNode) -> None: ...


def activate_reference(index: PathIndex, path: str, host: RevealHost) -> bool:
    """
    Reveal every container around *path* and highlight it.

    Unresolved paths are ignored and report False.
    """
    node = index.lookup(path)
    if node is None:
        _debug_log(f"reference {path!r} does not resolve; ignoring activation")
        return False
    for ancestor in index.ancestors(node.path):
        host.reveal(ancestor)
    host.highlight(node)
    return True
