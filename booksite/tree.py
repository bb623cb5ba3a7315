"""Discover source documents and build the ordered navigation tree.

The tree is an arena: every `TocNode` lives in `TocTree.nodes`, keyed by
its source-relative posix path (the root is `""`). Parents refer to
children by path, so numbering and link resolution can each walk the tree
on their own.
"""

from __future__ import annotations

import fnmatch
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

from booksite.compilers import CompilerSet
from booksite.errors import BookError, ManifestConflict, ManifestError, StructuralWarning
from booksite.manifest import THEME_DIR, BookManifest, OrderEntry

SUMMARY_STEM = "index"


@dataclass
class TocNode:
    path: str
    title: str
    source: str | None
    is_dir: bool
    parent: str | None
    depth: int
    index: int
    slug: str
    children: list[str] = field(default_factory=list)


class TocTree:
    def __init__(self, title: str) -> None:
        self.nodes: dict[str, TocNode] = {
            "": TocNode(path="", title=title, source=None, is_dir=True,
                        parent=None, depth=0, index=0, slug="")
        }

    @property
    def root(self) -> TocNode:
        return self.nodes[""]

    def get(self, path: str) -> TocNode:
        return self.nodes[path]

    def __contains__(self, path: str) -> bool:
        return path in self.nodes

    def __len__(self) -> int:
        return len(self.nodes) - 1

    def children(self, path: str = "") -> list[TocNode]:
        return [self.nodes[c] for c in self.nodes[path].children]

    def add(self, parent: str, path: str, title: str, source: str | None, is_dir: bool, slug: str) -> TocNode:
        p = self.nodes[parent]
        node = TocNode(path=path, title=title, source=source, is_dir=is_dir, parent=parent,
                       depth=p.depth + 1, index=len(p.children), slug=slug)
        self.nodes[path] = node
        p.children.append(path)
        return node

    def walk(self) -> Iterator[TocNode]:
        """Preorder, root excluded."""
        stack = list(reversed(self.nodes[""].children))
        while stack:
            node = self.nodes[stack.pop()]
            yield node
            stack.extend(reversed(node.children))

    def documents(self) -> list[str]:
        """Source paths of every page in the tree, in preorder."""
        return [n.source for n in self.walk() if n.source is not None]


@dataclass(frozen=True)
class Classification:
    includes: tuple[str, ...] = ()
    converts: tuple[str, ...] = ()
    copies: tuple[tuple[str, str], ...] = ()

    def claimed(self) -> list[str]:
        return [*self.includes, *self.converts, *(src for src, _ in self.copies)]


@dataclass
class TreeBuild:
    tree: TocTree
    classification: Classification
    warnings: list[StructuralWarning] = field(default_factory=list)


@dataclass
class _Scanned:
    path: str
    title: str
    source: str | None
    is_dir: bool
    children: list["_Scanned"] = field(default_factory=list)


def _join(parent: str, name: str) -> str:
    return f"{parent}/{name}" if parent else name


def _within(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix + "/")


def slugify(text: str) -> str:
    s = re.sub(r"[^\w]+", "-", text.lower(), flags=re.UNICODE).strip("-_")
    return s or "untitled"


# ── Classification ────────────────────────────────────────────────

def classify(manifest: BookManifest, compilers: CompilerSet) -> Classification:
    """Validate includes/converts/copies against the source tree.

    Missing sources are `ManifestError`s; overlapping claims are a
    `ManifestConflict` naming every overlapping path.
    """
    src = manifest.src_path
    for rel in manifest.includes:
        if not (src / rel).exists():
            raise ManifestError(f"includes: not found in source directory: {rel}")
    for rel in manifest.converts:
        if not (src / rel).is_file():
            raise ManifestError(f"converts: not a file in source directory: {rel}")
        if not compilers.is_document(rel):
            raise ManifestError(f"converts: no compiler for file type: {rel}")
    for rel, _ in manifest.copies:
        if not (src / rel).exists():
            raise ManifestError(f"copies: not found in source directory: {rel}")

    groups = {
        "includes": manifest.includes,
        "converts": manifest.converts,
        "copies": [s for s, _ in manifest.copies],
    }
    names = list(groups)
    conflicts: dict[str, None] = {}
    for i, a_name in enumerate(names):
        for b_name in names[i + 1:]:
            for a in groups[a_name]:
                for b in groups[b_name]:
                    if _within(a, b) or _within(b, a):
                        conflicts.setdefault(a, None)
                        conflicts.setdefault(b, None)
    if conflicts:
        raise ManifestConflict(list(conflicts), "includes/converts/copies overlap")

    return Classification(
        includes=tuple(manifest.includes),
        converts=tuple(manifest.converts),
        copies=tuple(manifest.copies),
    )


def _check_order_claims(manifest: BookManifest, claimed: list[str]) -> None:
    bad: dict[str, None] = {}
    for directory, entries in manifest.order.items():
        for entry in entries:
            path = _join(directory, entry.name)
            if any(_within(path, c) for c in claimed):
                bad.setdefault(path, None)
    if bad:
        raise ManifestConflict(list(bad), "listed in `order` but also classified")


# ── Discovery ─────────────────────────────────────────────────────

class _Scanner:
    def __init__(self, manifest: BookManifest, compilers: CompilerSet, claimed: list[str]) -> None:
        self.manifest = manifest
        self.compilers = compilers
        self.claimed = claimed
        self.src = manifest.src_path
        self.warnings: list[StructuralWarning] = []
        self._seen_dirs: set[Path] = set()
        self._site = manifest.site_path.resolve()

    def warn(self, path: str, message: str) -> None:
        self.warnings.append(StructuralWarning(path, message))

    def ignored(self, rel: str, name: str) -> bool:
        if name.startswith("."):
            return True
        if rel == THEME_DIR or (self.src / rel).resolve() == self._site:
            return True
        if any(_within(rel, c) for c in self.claimed):
            return True
        return any(
            fnmatch.fnmatch(rel, pat) or fnmatch.fnmatch(name, pat)
            for pat in self.manifest.exclude
        )

    def title_of(self, rel: str) -> str:
        try:
            title = self.compilers.read_title(self.src / rel)
        except BookError as e:
            self.warn(rel, f"unable to read title: {e}")
            title = None
        return title or Path(rel).stem

    def candidates(self, rel: str) -> dict[str, Path]:
        out: dict[str, Path] = {}
        for p in (self.src / rel).iterdir():
            child = _join(rel, p.name)
            if self.ignored(child, p.name):
                continue
            if p.is_dir() or (p.is_file() and self.compilers.is_document(p)):
                out[p.name] = p
        return out

    def ordered(self, rel: str, entries: dict[str, Path]) -> list[tuple[str, str]]:
        """(name, title override) in navigation order."""
        listing: list[OrderEntry] | None = self.manifest.order.get(rel)
        if listing is None:
            return [(name, "") for name in sorted(entries)]
        out: list[tuple[str, str]] = []
        for entry in listing:
            if entry.name not in entries:
                self.warn(_join(rel, entry.name), "listed in `order` but not found")
                continue
            if any(entry.name == name for name, _ in out):
                self.warn(_join(rel, entry.name), "listed more than once in `order`")
                continue
            out.append((entry.name, entry.title))
        listed = {name for name, _ in out}
        unlisted = sorted(n for n in entries if n not in listed)
        if unlisted:
            msg = "not listed in `order`: " + ", ".join(unlisted)
            if self.manifest.unlisted == "error":
                raise ManifestError(f"{rel or '.'}: {msg}")
            self.warn(rel, msg + " (appended in sorted order)")
            out += [(name, "") for name in unlisted]
        return out

    def scan_dir(self, rel: str, title_override: str = "") -> _Scanned | None:
        real = (self.src / rel).resolve()
        if real in self._seen_dirs:
            self.warn(rel, "directory cycle, skipped")
            return None
        self._seen_dirs.add(real)

        entries = self.candidates(rel)
        summary = None
        if rel:
            index_files = sorted(
                n for n, p in entries.items() if p.is_file() and Path(n).stem == SUMMARY_STEM
            )
            if index_files:
                summary = _join(rel, index_files[0])
                for extra in index_files[1:]:
                    self.warn(_join(rel, extra), f"ignored, `{index_files[0]}` is the summary page")
                for n in index_files:
                    entries.pop(n)

        node = _Scanned(path=rel, title="", source=summary, is_dir=True)
        for name, title in self.ordered(rel, entries):
            child = _join(rel, name)
            if entries[name].is_dir():
                sub = self.scan_dir(child, title)
                if sub is not None:
                    node.children.append(sub)
            else:
                node.children.append(
                    _Scanned(path=child, title=title or self.title_of(child), source=child, is_dir=False)
                )

        if rel and summary is None and not node.children:
            self.warn(rel, "no documents in this directory, left out of navigation")
            return None
        if title_override:
            node.title = title_override
        elif summary is not None:
            node.title = self.title_of(summary)
        else:
            node.title = Path(rel).name
        return node


def _assign(tree: TocTree, parent: str, scanned: list[_Scanned], warnings: list[StructuralWarning]) -> None:
    slugs: set[str] = set()
    for s in scanned:
        slug = base = slugify(s.title)
        n = 2
        while slug in slugs:
            slug = f"{base}-{n}"
            n += 1
        if slug != base:
            warnings.append(StructuralWarning(s.path, f"duplicate sibling id `{base}`, using `{slug}`"))
        slugs.add(slug)
        tree.add(parent, s.path, s.title, s.source, s.is_dir, slug)
        _assign(tree, s.path, s.children, warnings)


def build_tree(manifest: BookManifest, compilers: CompilerSet) -> TreeBuild:
    """Scan the source directory into a `TocTree` plus validated classifications.

    Raises before touching anything if the manifest claims a path twice.
    """
    if not manifest.src_path.is_dir():
        raise ManifestError(f"source directory not found: {manifest.src_path}")

    classification = classify(manifest, compilers)
    claimed = classification.claimed()
    _check_order_claims(manifest, claimed)

    scanner = _Scanner(manifest, compilers, claimed)
    root = scanner.scan_dir("")
    tree = TocTree(manifest.title)
    warnings = scanner.warnings
    if root is not None:
        _assign(tree, "", root.children, warnings)
    if len(tree) == 0:
        warnings.append(StructuralWarning("", "no navigable documents found"))
    return TreeBuild(tree=tree, classification=classification, warnings=warnings)
