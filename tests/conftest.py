from __future__ import annotations

import threading
from pathlib import Path

import pytest
import yaml

from booksite.compilers import AggregateEntry, CompilerSet, PageMetadata, RenderedPage
from booksite.errors import CompileError
from booksite.manifest import load_manifest


class FakeCompiler:
    """In-process `.adoc` compiler: the first `= ` line is the title, the rest is the body."""

    extensions = (".adoc",)
    aggregate_suffix = ".adoc"

    def __init__(self, fail: set[str] | None = None) -> None:
        self.fail = set(fail or ())
        self.calls: list[tuple[Path, dict[str, str]]] = []
        self._lock = threading.Lock()

    def read_title(self, source: Path) -> str | None:
        for line in source.read_text(encoding="utf-8").splitlines():
            if line.startswith("= "):
                return line[2:].strip()
        return None

    def convert(self, source: Path, attributes: dict[str, str]) -> RenderedPage:
        with self._lock:
            self.calls.append((source, attributes))
        if source.name in self.fail:
            raise CompileError(source, "boom")
        lines = source.read_text(encoding="utf-8").splitlines()
        body = "\n".join(ln for ln in lines if not ln.startswith("= "))
        return RenderedPage(
            body=f"<p>{body}</p>",
            metadata=PageMetadata(title=self.read_title(source)),
        )

    def aggregate(self, title: str, entries: list[AggregateEntry]) -> str:
        out = [f"= {title}"]
        for e in entries:
            out.append(f"include::{e.source}[]" if e.source else f"== {e.title}")
        return "\n".join(out)


@pytest.fixture
def fake_compiler() -> FakeCompiler:
    return FakeCompiler()


@pytest.fixture
def compilers(fake_compiler: FakeCompiler) -> CompilerSet:
    return CompilerSet([fake_compiler])


@pytest.fixture
def make_book(tmp_path: Path):
    """Write `book.yaml` plus source files and return the loaded manifest."""

    def make(files: dict[str, str], **config):
        config.setdefault("title", "Test Book")
        (tmp_path / "book.yaml").write_text(yaml.safe_dump(config), encoding="utf-8")
        src = tmp_path / config.get("src_dir", "src")
        src.mkdir(parents=True, exist_ok=True)
        for rel, text in files.items():
            p = src / rel
            p.parent.mkdir(parents=True, exist_ok=True)
            p.write_text(text, encoding="utf-8")
        return load_manifest(tmp_path)

    return make


@pytest.fixture
def scenario_files() -> dict[str, str]:
    return {
        "intro.adoc": "= intro\nHello",
        "ch1/a.adoc": "= a\nA text",
        "ch1/b.adoc": "= b\nB text",
    }
