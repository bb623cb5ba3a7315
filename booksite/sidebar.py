"""Number the navigation tree and render the sidebar structure.

The sidebar is rendered once per build. Pages only differ by which item is
marked active, so `Sidebar.for_page` copies just the chain of dicts leading
to the active item and shares everything else with the base rendering.
"""

from __future__ import annotations

from dataclasses import dataclass

from booksite.paths import PathResolver
from booksite.tree import TocNode, TocTree


@dataclass(frozen=True)
class NumberedNode:
    node: TocNode
    number: str

    @property
    def path(self) -> str:
        return self.node.path

    @property
    def title(self) -> str:
        return self.node.title

    @property
    def depth(self) -> int:
        """Sidebar depth: 0 for top-level items."""
        return self.node.depth - 1


def number_tree(tree: TocTree) -> list[NumberedNode]:
    """Assign `1`, `2`, `2.1`, ... in preorder. Depends only on tree shape."""
    out: list[NumberedNode] = []
    stack: list[tuple[str, str]] = [
        (path, str(i + 1)) for i, path in reversed(list(enumerate(tree.root.children)))
    ]
    while stack:
        path, number = stack.pop()
        node = tree.get(path)
        out.append(NumberedNode(node=node, number=number))
        stack.extend(
            (child, f"{number}.{i + 1}") for i, child in reversed(list(enumerate(node.children)))
        )
    return out


def is_expanded(depth: int, fold_level: int | None) -> bool:
    return fold_level is None or depth < fold_level


@dataclass(frozen=True)
class SidebarItem:
    number: str
    title: str
    url: str | None
    depth: int
    expanded: bool
    slug: str
    children: tuple["SidebarItem", ...] = ()

    @property
    def label(self) -> str:
        sep = ". " if self.depth == 0 else " "
        return f"{self.number}{sep}{self.title}"

    def to_dict(self) -> dict:
        return {
            "number": self.number,
            "title": self.title,
            "label": self.label,
            "url": self.url,
            "depth": self.depth,
            "expanded": self.expanded,
            "slug": self.slug,
            "active": False,
            "active_trail": False,
            "children": [c.to_dict() for c in self.children],
        }


class Sidebar:
    def __init__(self, items: tuple[SidebarItem, ...], fold_level: int | None = None) -> None:
        self.items = items
        self.fold_level = fold_level
        self._base = [item.to_dict() for item in items]
        # url -> index chain from the top level down to the item
        self._chains: dict[str, tuple[int, ...]] = {}
        self._index(items, ())

    def _index(self, items: tuple[SidebarItem, ...], prefix: tuple[int, ...]) -> None:
        for i, item in enumerate(items):
            chain = (*prefix, i)
            if item.url is not None:
                self._chains.setdefault(item.url, chain)
            self._index(item.children, chain)

    @classmethod
    def from_tree(
        cls,
        tree: TocTree,
        resolver: PathResolver,
        fold_level: int | None = None,
        numbered: list[NumberedNode] | None = None,
    ) -> "Sidebar":
        numbers = {n.path: n.number for n in (numbered or number_tree(tree))}

        def item(node: TocNode) -> SidebarItem:
            depth = node.depth - 1
            return SidebarItem(
                number=numbers[node.path],
                title=node.title,
                url=resolver.url(node.source) if node.source else None,
                depth=depth,
                expanded=is_expanded(depth, fold_level),
                slug=node.slug,
                children=tuple(item(c) for c in tree.children(node.path)),
            )

        return cls(tuple(item(n) for n in tree.children()), fold_level)

    def to_dicts(self) -> list[dict]:
        return list(self._base)

    def for_page(self, url: str | None) -> list[dict]:
        """Sidebar variant with the item linking to `url` marked active.

        Its ancestors get `active_trail` so a folded branch can still be opened.
        """
        chain = self._chains.get(url) if url else None
        top = list(self._base)
        if chain is None:
            return top
        container = top
        for level, idx in enumerate(chain):
            item = dict(container[idx])
            container[idx] = item
            if level == len(chain) - 1:
                item["active"] = True
            else:
                item["active_trail"] = True
                item["children"] = list(item["children"])
                container = item["children"]
        return top
