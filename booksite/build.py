"""Assemble the site: tree, sidebar, conversions, copies, page shells.

Every fatal check (manifest, classification, collisions, theme) runs before
the site directory is touched. Once writing starts, per-page problems are
recorded in the `BuildReport` and the rest of the site is still written.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path

from booksite.compilers import CompilerSet, metadata_with_title
from booksite.convert import BuildReport, ConversionResult, plan_tasks, run_tasks
from booksite.errors import BookError, ManifestError
from booksite.manifest import BookManifest
from booksite.paths import PathResolver, check_collisions, copy_plan
from booksite.shell import ShellRenderer, theme_files
from booksite.sidebar import Sidebar, number_tree
from booksite.tree import build_tree


def check_site_location(manifest: BookManifest) -> Path:
    """The site directory may not be the book root, the source dir or one of its parents."""
    site = manifest.site_path.resolve()
    src = manifest.src_path.resolve()
    if site == manifest.root.resolve() or site == src or site in src.parents:
        raise ManifestError(f"site_dir would overwrite the book sources: {site}")
    return site


def prepare_site(site: Path, clean: bool) -> int:
    """Create `site`; with `clean`, empty it except for dot-entries (e.g. `.git`)."""
    site.mkdir(parents=True, exist_ok=True)
    removed = 0
    if not clean:
        return removed
    for entry in sorted(site.iterdir()):
        if entry.name.startswith("."):
            continue
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()
        removed += 1
    return removed


def clean_site(manifest: BookManifest) -> int:
    site = check_site_location(manifest)
    if not site.exists():
        return 0
    return prepare_site(site, clean=True)


def _rel(path: Path, root: Path) -> str:
    return os.path.relpath(path, root)


def build_book(
    manifest: BookManifest,
    compilers: CompilerSet | None = None,
    shell: ShellRenderer | None = None,
    *,
    verbose: bool = False,
    jobs: int | None = None,
    fail_fast: bool | None = None,
) -> BuildReport:
    """Build the whole site for `manifest` and return the report.

    Raises `BookError` subclasses for fatal problems; nothing is written then.
    """
    compilers = compilers or CompilerSet.from_manifest(manifest)
    shell = shell or ShellRenderer.from_manifest(manifest)
    site = check_site_location(manifest)

    built = build_tree(manifest, compilers)
    report = BuildReport(warnings=list(built.warnings))

    resolver = PathResolver(manifest)
    numbered = number_tree(built.tree)
    sidebar = Sidebar.from_tree(built.tree, resolver, manifest.fold_level, numbered)
    copies = copy_plan(manifest, built.classification, theme_files(manifest))

    with tempfile.TemporaryDirectory(prefix="booksite-") as tmp:
        tasks, warnings = plan_tasks(
            manifest, numbered, built.classification, resolver, compilers, Path(tmp)
        )
        report.warnings += warnings
        check_collisions([(t.source_rel, t.destination) for t in tasks], copies, site)

        if verbose:
            print(f"Found {len(tasks)} pages, {len(copies)} files to copy")
        results = run_tasks(
            tasks,
            compilers,
            jobs=jobs or manifest.jobs,
            fail_fast=manifest.fail_fast if fail_fast is None else fail_fast,
        )

    prepare_site(site, manifest.clean)

    for task in copies:
        try:
            task.destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(task.source, task.destination)
        except OSError as e:
            report.fail(task.origin, e)
            continue
        report.copied += 1

    roots = resolver.asset_roots()
    for result in results:
        if result is None:
            report.skipped += 1
            continue
        _write_page(result, manifest, sidebar, resolver, roots, shell, report, verbose)

    if verbose:
        print(f"\nDone. {report.summary()}.")
    return report


def _write_page(
    result: ConversionResult,
    manifest: BookManifest,
    sidebar: Sidebar,
    resolver: PathResolver,
    roots: dict[str, str],
    shell: ShellRenderer,
    report: BuildReport,
    verbose: bool,
) -> None:
    task = result.task
    if result.page is None:
        report.fail(task.source_rel, result.error or "conversion failed")
        if verbose:
            print(f"  ✗ {task.source_rel}: {report.failures[-1].error}")
        return

    meta = metadata_with_title(result.page.metadata, task.title)
    context = {
        "title": meta.title,
        "book_title": manifest.title,
        "author": meta.author or ", ".join(manifest.authors) or None,
        "email": meta.email,
        "revdate": meta.revdate,
        "number": task.number,
        "sidebar": sidebar.for_page(task.url),
        "base_url": roots["base_url"],
        "body": result.page.body,
        "stylesheet": resolver.stylesheet_url(meta.stylesheet),
        "favicon": roots["favicon"],
        "home": roots["home"],
        "template": meta.template,
    }
    try:
        html = shell.render_shell(context)
        task.destination.parent.mkdir(parents=True, exist_ok=True)
        task.destination.write_text(html, encoding="utf-8")
    except (BookError, OSError) as e:
        report.fail(task.source_rel, e)
        if verbose:
            print(f"  ✗ {task.source_rel}: {e}")
        return

    report.succeeded += 1
    report.written.append(task.destination)
    if verbose:
        print(f"  ✓ {task.source_rel} → {_rel(task.destination, manifest.root)}")
        if result.page.messages:
            print(f"    {result.page.messages}")
