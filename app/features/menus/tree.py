"""
In-memory menu tree construction.

Nodes are kept in an id-indexed arena and the tree only stores ids, so
nothing here holds cyclic object references and cycle checks are plain
walks over a dict.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Iterable, Optional, TypeVar


T = TypeVar("T")


@dataclass
class TreeNode(Generic[T]):
    """A node of a built tree: the original item plus its sorted children."""
    item: T
    children: list["TreeNode[T]"] = field(default_factory=list)


class MenuArena(Generic[T]):
    """
    Id-indexed store of menu-like items.

    Items must expose `parent_id` and `sort_order`; the id attribute name is
    configurable because resolved permissions carry it as `menu_id`.
    """

    def __init__(self, items: Iterable[T], id_attr: str = "id"):
        self.id_attr = id_attr
        self.nodes: dict[int, T] = {}
        for item in items:
            self.nodes[getattr(item, id_attr)] = item

        # parent id -> child ids. Items whose parent is not in the arena are
        # attached to the root group.
        self.children: dict[Optional[int], list[int]] = {}
        for node_id, item in self.nodes.items():
            parent_id = getattr(item, "parent_id", None)
            if parent_id not in self.nodes:
                parent_id = None
            self.children.setdefault(parent_id, []).append(node_id)

        for ids in self.children.values():
            ids.sort(key=self._sort_key)

    def _sort_key(self, node_id: int) -> tuple[int, int]:
        return (getattr(self.nodes[node_id], "sort_order", 0) or 0, node_id)

    def child_ids(self, parent_id: Optional[int]) -> list[int]:
        return self.children.get(parent_id, [])

    def to_tree(self) -> list[TreeNode[T]]:
        visited: set[int] = set()

        def attach(node_id: int) -> TreeNode[T]:
            visited.add(node_id)
            node = TreeNode(item=self.nodes[node_id])
            for child_id in self.child_ids(node_id):
                if child_id not in visited:
                    node.children.append(attach(child_id))
            return node

        return [attach(root_id) for root_id in self.child_ids(None)]


def build_tree(items: Iterable[T], id_attr: str = "id") -> list[TreeNode[T]]:
    """
    Build a sorted forest from a flat list.

    Every sibling group is ordered by (sort_order, id), so the result does
    not depend on the input order. A node whose parent is absent from the
    list becomes a root rather than being dropped.
    """
    return MenuArena(items, id_attr=id_attr).to_tree()


def flatten(tree: list[TreeNode[T]]) -> list[T]:
    """Depth-first, pre-order flatten of a built tree."""
    out: list[T] = []
    stack = list(reversed(tree))
    while stack:
        node = stack.pop()
        out.append(node.item)
        stack.extend(reversed(node.children))
    return out


def render_tree(
    tree: list[TreeNode[T]],
    to_dict: Callable[[T], dict[str, Any]],
) -> list[dict[str, Any]]:
    """Turn a built tree into nested dicts with a `children` key."""
    return [
        {**to_dict(node.item), "children": render_tree(node.children, to_dict)}
        for node in tree
    ]


def would_create_cycle(parents: dict[int, Optional[int]], node_id: int, new_parent_id: Optional[int]) -> bool:
    """
    True if re-parenting node_id under new_parent_id makes node_id its own ancestor.

    `parents` maps every known id to its current parent id. The walk starts
    at the proposed parent and follows parent links upward.
    """
    if new_parent_id is None:
        return False
    if new_parent_id == node_id:
        return True
    seen: set[int] = set()
    current: Optional[int] = new_parent_id
    while current is not None and current not in seen:
        if current == node_id:
            return True
        seen.add(current)
        current = parents.get(current)
    # A pre-existing loop above the new parent also makes the move unsafe
    return current is not None
