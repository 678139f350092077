"""Rebuild comment threads from a flat, oldest-first comment list."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Iterator, Protocol, Sequence

MAX_VISUAL_DEPTH = 8


class _CommentLike(Protocol):
    id: int
    parent_id: int | None


@dataclass
class CommentNode:
    comment: Any
    depth: int
    children: list["CommentNode"] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Nested dict form.  Iterative so deep threads don't hit the recursion limit."""
        root = self._node_dict()
        stack = [(self, root)]
        while stack:
            node, out = stack.pop()
            for child in node.children:
                child_out = child._node_dict()
                out["children"].append(child_out)
                stack.append((child, child_out))
        return root

    def _node_dict(self) -> dict[str, Any]:
        return {
            **_as_dict(self.comment),
            "depth": self.depth,
            "visual_depth": visual_depth(self.depth),
            "children": [],
        }


def _as_dict(comment: Any) -> dict[str, Any]:
    if hasattr(comment, "to_dict"):
        return comment.to_dict()
    return dict(comment)


def build_tree(comments: Sequence[_CommentLike]) -> list[CommentNode]:
    """Nest *comments* under their parents and assign depths (roots are 0).

    A comment whose parent is not in *comments* becomes a root: only part of a
    thread is ever fetched, so missing parents are expected.  Input order is
    kept among siblings.  The result depends only on the input.
    """
    known_ids = {c.id for c in comments}
    children_of: dict[int, list[_CommentLike]] = defaultdict(list)
    roots: list[_CommentLike] = []
    for comment in comments:
        parent = comment.parent_id
        if parent is None or parent not in known_ids or parent == comment.id:
            roots.append(comment)
        else:
            children_of[parent].append(comment)

    visited: set[int] = set()
    root_nodes = [_grow(c, children_of, visited) for c in roots]
    # Comments caught in a parent cycle are unreachable from any root.
    for comment in comments:
        if comment.id not in visited:
            root_nodes.append(_grow(comment, children_of, visited))
    return root_nodes


def _grow(
    root: _CommentLike,
    children_of: dict[int, list[_CommentLike]],
    visited: set[int],
) -> CommentNode:
    root_node = CommentNode(comment=root, depth=0)
    visited.add(root.id)
    stack = [root_node]
    while stack:
        node = stack.pop()
        for child in children_of.get(node.comment.id, ()):
            if child.id in visited:
                continue
            visited.add(child.id)
            child_node = CommentNode(comment=child, depth=node.depth + 1)
            node.children.append(child_node)
            stack.append(child_node)
    return root_node


def flatten(nodes: Sequence[CommentNode]) -> Iterator[CommentNode]:
    """Depth-first, siblings in order – the order a thread is displayed in."""
    stack = list(reversed(nodes))
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def visual_depth(depth: int, max_depth: int = MAX_VISUAL_DEPTH) -> int:
    """Indentation level for display; the logical depth is left alone."""
    return min(depth, max_depth)
