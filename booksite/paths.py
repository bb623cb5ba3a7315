"""Map source paths to site destinations and base-url-rooted links.

Every link handed to a page (stylesheets, images, favicon, sidebar entries)
is rooted at `base_url`, never relative to the page, so a page three
directories deep links to `{base_url}/theme/css/article.css` exactly like
a top-level one.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from booksite.errors import PathCollision
from booksite.manifest import BookManifest
from booksite.tree import Classification

STYLES_DIR = "theme/css"
IMAGES_DIR = "static/img"
FAVICON = "theme/favicon.svg"
DEFAULT_STYLESHEET = "article.css"


@dataclass(frozen=True)
class CopyTask:
    source: Path
    destination: Path
    origin: str


class PathResolver:
    def __init__(self, manifest: BookManifest) -> None:
        self.site = manifest.site_path
        self.base_url = manifest.base_url.rstrip("/")

    def page_rel(self, source_rel: str) -> str:
        return str(PurePosixPath(source_rel).with_suffix(".html"))

    def destination(self, source_rel: str) -> Path:
        return self.site / self.page_rel(source_rel)

    def asset_url(self, rel: str) -> str:
        return f"{self.base_url}/{rel.lstrip('/')}"

    def url(self, source_rel: str) -> str:
        return self.asset_url(self.page_rel(source_rel))

    def stylesheet_url(self, value: str | None) -> str:
        """Base-rooted stylesheet link; bare file names live in the styles directory."""
        if not value:
            return self.asset_url(f"{STYLES_DIR}/{DEFAULT_STYLESHEET}")
        if "://" in value or value.startswith("/") or value.startswith(self.base_url + "/"):
            return value
        if "/" in value:
            return self.asset_url(value)
        return self.asset_url(f"{STYLES_DIR}/{value}")

    def asset_roots(self) -> dict[str, str]:
        return {
            "base_url": self.base_url,
            "stylesdir": self.asset_url(STYLES_DIR),
            "imagesdir": self.asset_url(IMAGES_DIR),
            "favicon": self.asset_url(FAVICON),
            "home": self.asset_url(""),
        }


def _files_under(path: Path) -> list[Path]:
    if path.is_file():
        return [path]
    return sorted(
        p for p in path.rglob("*")
        if p.is_file() and not any(part.startswith(".") for part in p.relative_to(path).parts)
    )


def copy_plan(
    manifest: BookManifest,
    classification: Classification,
    theme_files: list[tuple[Path, str]] | None = None,
) -> list[CopyTask]:
    """Expand includes, copies and theme files into file-level copy tasks."""
    src = manifest.src_path
    site = manifest.site_path
    tasks: list[CopyTask] = []

    for rel in classification.includes:
        root = src / rel
        for f in _files_under(root):
            sub = f.relative_to(root) if root.is_dir() else Path()
            tasks.append(CopyTask(f, site / rel / sub, f"includes: {rel}"))

    for s, d in classification.copies:
        root = src / s
        for f in _files_under(root):
            if root.is_dir():
                dst = site / d / f.relative_to(root)
            elif not d:
                # a single file copied to the site root keeps its name
                dst = site / d / f.name
            else:
                dst = site / d
            tasks.append(CopyTask(f, dst, f"copies: {s} -> {d or '.'}"))

    for path, dst_rel in theme_files or []:
        tasks.append(CopyTask(path, site / dst_rel, "default theme"))
    return tasks


def check_collisions(pages: list[tuple[str, Path]], copies: list[CopyTask], site: Path) -> None:
    """Raise `PathCollision` if two distinct sources share a destination.

    `pages` is a list of (source label, destination). Runs before any write.
    """
    # destination -> {source identity: label}
    claims: dict[Path, dict[str, str]] = {}
    site_root = site.resolve()
    outside: list[str] = []

    def claim(dst: Path, key: str, label: str) -> None:
        resolved = dst.resolve()
        if site_root not in resolved.parents:
            outside.append(label)
        claims.setdefault(resolved, {}).setdefault(key, label)

    for label, dst in pages:
        claim(dst, f"page:{label}", label)
    for task in copies:
        claim(task.destination, f"file:{task.source.resolve()}", f"{task.origin} ({task.source.name})")

    collisions = {
        dst: list(labels.values()) for dst, labels in claims.items() if len(labels) > 1
    }
    if outside:
        collisions[site_root.parent] = [f"not a file inside the site directory: {o}" for o in outside]
    if collisions:
        raise PathCollision(collisions)
