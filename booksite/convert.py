"""Plan and run page conversions.

Each task reads one source and converts it in memory. Tasks go through a
bounded thread pool, and only the dispatching thread collects results. With
`fail_fast` the first failure stops further dispatch. Tasks already running
still finish, and the ones never dispatched are counted as skipped.
"""

from __future__ import annotations

import os
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from booksite.compilers import AggregateEntry, CompilerSet, RenderedPage
from booksite.errors import BookError, CompileError, StructuralWarning
from booksite.manifest import BookManifest
from booksite.paths import PathResolver
from booksite.sidebar import NumberedNode
from booksite.tree import Classification

AGGREGATE_STEM = "all"


@dataclass(frozen=True)
class ConversionTask:
    source: Path
    source_rel: str
    destination: Path
    url: str
    attributes: dict[str, str]
    kind: str = "page"  # page | convert | aggregate
    title: str = ""
    number: str | None = None


@dataclass(frozen=True)
class FailureRecord:
    source: str
    error: str

    def __str__(self) -> str:
        return f"{self.source}: {self.error}"


@dataclass
class ConversionResult:
    task: ConversionTask
    page: RenderedPage | None = None
    error: BookError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BuildReport:
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    copied: int = 0
    failures: list[FailureRecord] = field(default_factory=list)
    warnings: list[StructuralWarning] = field(default_factory=list)
    written: list[Path] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def fail(self, source: str, error: BaseException | str) -> None:
        self.failed += 1
        msg = error.message if isinstance(error, CompileError) else str(error)
        self.failures.append(FailureRecord(source=source, error=msg))

    def exit_code(self, strict: bool = False) -> int:
        return 1 if strict and not self.ok else 0

    def summary(self) -> str:
        parts = [f"{self.succeeded} converted", f"{self.failed} failed"]
        if self.skipped:
            parts.append(f"{self.skipped} skipped")
        parts.append(f"{self.copied} copied")
        if self.warnings:
            parts.append(f"{len(self.warnings)} warnings")
        return ", ".join(parts)


def page_attributes(
    resolver: PathResolver,
    source_rel: str,
    *,
    active_url: str = "",
    number: str | None = None,
) -> dict[str, str]:
    dst = resolver.destination(source_rel)
    attrs = dict(resolver.asset_roots())
    attrs.update({
        "outdir": str(dst.parent),
        "docname": Path(source_rel).stem,
        "sidebar-active": active_url,
    })
    if number:
        attrs["section-number"] = number
    return attrs


def plan_tasks(
    manifest: BookManifest,
    numbered: list[NumberedNode],
    classification: Classification,
    resolver: PathResolver,
    compilers: CompilerSet,
    workdir: Path,
) -> tuple[list[ConversionTask], list[StructuralWarning]]:
    """One task per navigable page and `converts` entry, plus the aggregate page.

    The aggregate source (`generate_all`) is written into `workdir`.
    """
    src = manifest.src_path
    tasks: list[ConversionTask] = []
    warnings: list[StructuralWarning] = []

    for n in numbered:
        rel = n.node.source
        if rel is None:
            continue
        url = resolver.url(rel)
        tasks.append(ConversionTask(
            source=src / rel,
            source_rel=rel,
            destination=resolver.destination(rel),
            url=url,
            attributes=page_attributes(resolver, rel, active_url=url, number=n.number),
            kind="page",
            title=n.title,
            number=n.number,
        ))

    for rel in classification.converts:
        tasks.append(ConversionTask(
            source=src / rel,
            source_rel=rel,
            destination=resolver.destination(rel),
            url=resolver.url(rel),
            attributes=page_attributes(resolver, rel),
            kind="convert",
            title=Path(rel).stem,
        ))

    if manifest.generate_all:
        task, more = _aggregate_task(manifest, numbered, resolver, compilers, workdir)
        warnings += more
        if task is not None:
            tasks.append(task)
    return tasks, warnings


def _aggregate_task(
    manifest: BookManifest,
    numbered: list[NumberedNode],
    resolver: PathResolver,
    compilers: CompilerSet,
    workdir: Path,
) -> tuple[ConversionTask | None, list[StructuralWarning]]:
    warnings: list[StructuralWarning] = []
    pages = [n for n in numbered if n.node.source]
    if not pages:
        warnings.append(StructuralWarning("", "generate_all: no documents to aggregate"))
        return None, warnings

    src = manifest.src_path
    compiler = compilers.for_path(pages[0].node.source)
    entries: list[AggregateEntry] = []
    for n in numbered:
        source = n.node.source
        if source and compilers.for_path(source) is not compiler:
            warnings.append(StructuralWarning(source, "generate_all: different format, left out"))
            source = None
            if not n.node.is_dir:
                continue
        entries.append(AggregateEntry(
            title=f"{n.number} {n.title}",
            source=(src / source).resolve() if source else None,
            depth=n.depth + 1,
        ))

    name = AGGREGATE_STEM + compiler.aggregate_suffix
    path = workdir / name
    try:
        text = compiler.aggregate(manifest.title, entries)
    except BookError as e:
        warnings.append(StructuralWarning(name, f"generate_all: {e}"))
        return None, warnings
    path.write_text(text, encoding="utf-8")
    page_rel = AGGREGATE_STEM + ".html"
    return ConversionTask(
        source=path,
        source_rel=f"{name} (generated)",
        destination=resolver.site / page_rel,
        url=resolver.asset_url(page_rel),
        attributes=page_attributes(resolver, name),
        kind="aggregate",
        title=manifest.title,
    ), warnings


def convert_one(task: ConversionTask, compilers: CompilerSet) -> ConversionResult:
    try:
        page = compilers.for_path(task.source).convert(task.source, dict(task.attributes))
    except BookError as e:
        return ConversionResult(task=task, error=e)
    except OSError as e:
        return ConversionResult(task=task, error=CompileError(task.source_rel, str(e)))
    except Exception as e:
        # a compiler bug fails its page, not the build
        return ConversionResult(
            task=task, error=CompileError(task.source_rel, f"{type(e).__name__}: {e}")
        )
    return ConversionResult(task=task, page=page)


def run_tasks(
    tasks: list[ConversionTask],
    compilers: CompilerSet,
    *,
    jobs: int | None = None,
    fail_fast: bool = False,
    progress: Callable[[ConversionResult], None] | None = None,
) -> list[ConversionResult | None]:
    """Convert every task; results keep task order, `None` marks a skipped task."""
    jobs = max(1, jobs or os.cpu_count() or 1)
    results: list[ConversionResult | None] = [None] * len(tasks)
    pending = iter(enumerate(tasks))
    aborted = False

    with ThreadPoolExecutor(max_workers=jobs) as pool:
        running: dict[Future[ConversionResult], int] = {}

        def dispatch() -> None:
            while not aborted and len(running) < jobs:
                nxt = next(pending, None)
                if nxt is None:
                    return
                i, task = nxt
                running[pool.submit(convert_one, task, compilers)] = i

        dispatch()
        while running:
            done, _ = wait(running, return_when=FIRST_COMPLETED)
            for fut in done:
                i = running.pop(fut)
                res = fut.result()
                results[i] = res
                if progress is not None:
                    progress(res)
                if not res.ok and fail_fast:
                    aborted = True
            dispatch()
    return results
