"""Tests for the AsciiDoc and Markdown compilers."""

import subprocess
from pathlib import Path
from types import SimpleNamespace

import pytest

from booksite.compilers import (
    AggregateEntry,
    AsciidoctorCompiler,
    CompilerSet,
    MarkdownCompiler,
    PageMetadata,
    attrs_from_options,
    metadata_with_title,
    parse_adoc_header,
    split_frontmatter,
)
from booksite.errors import CompileError

# =============================================================================
# AsciiDoc header
# =============================================================================

HEADER = """\
// leading comment

= The Title
Jane Doe <jane@example.com>
:revdate: 2024-05-01
:stylesheet: term.css
// a comment inside the header
:!sectanchors:

First paragraph.
:not-an-attribute: after the body started
"""


def test_parse_adoc_header():
    title, attrs = parse_adoc_header(HEADER)
    assert title == "The Title"
    assert attrs == {
        "author": "Jane Doe",
        "email": "jane@example.com",
        "revdate": "2024-05-01",
        "stylesheet": "term.css",
        "sectanchors": None,
    }


def test_paragraph_after_blank_line_is_not_an_author():
    title, attrs = parse_adoc_header("= Title\n\nSome text here.\n")
    assert title == "Title"
    assert attrs == {}


def test_no_title():
    assert parse_adoc_header("just text\n") == (None, {})


def test_attrs_from_options():
    attrs = attrs_from_options([
        ("-a", ("linkcss", "stylesdir=/b/css@", "!toc")),
        ("--attribute", ("imagesdir=img",)),
        ("-r", ("asciidoctor-diagram",)),
    ])
    assert attrs == {"linkcss": "", "stylesdir": "/b/css", "toc": None, "imagesdir": "img"}


# =============================================================================
# Asciidoctor
# =============================================================================

@pytest.fixture
def adoc(tmp_path):
    src = tmp_path / "src"
    src.mkdir()
    page = src / "a.adoc"
    page.write_text("= A page\n:stylesheet: term.css\n\nBody\n", encoding="utf-8")
    compiler = AsciidoctorCompiler(
        src, [("-a", ("stylesdir=/b/theme/css",)), ("--trace", ())], timeout=5
    )
    return compiler, page


def test_command_puts_user_options_last(adoc):
    compiler, page = adoc
    cmd = compiler.command(page, {"base_url": "/b"})
    assert cmd[:5] == ["asciidoctor", str(page), "-o", "-", "--embedded"]
    assert cmd.index("base_url=/b@") < cmd.index("stylesdir=/b/theme/css")
    assert cmd[-1] == "--trace"


def test_convert_runs_asciidoctor(adoc, monkeypatch):
    compiler, page = adoc
    seen = {}

    def fake_run(cmd, **kwargs):
        seen["cmd"] = cmd
        seen["kwargs"] = kwargs
        return SimpleNamespace(returncode=0, stdout="<p>Body</p>\n", stderr="")

    monkeypatch.setattr(subprocess, "run", fake_run)
    page_out = compiler.convert(page, {"docname": "a"})
    assert page_out.body == "<p>Body</p>\n"
    assert page_out.metadata.title == "A page"
    assert page_out.metadata.stylesheet == "/b/theme/css/term.css"
    assert seen["kwargs"]["timeout"] == 5
    assert seen["kwargs"]["cwd"] == str(compiler.src_dir)


def test_convert_failure_is_compile_error(adoc, monkeypatch):
    compiler, page = adoc
    monkeypatch.setattr(
        subprocess, "run",
        lambda cmd, **kw: SimpleNamespace(returncode=1, stdout="", stderr="asciidoctor: FAILED"),
    )
    with pytest.raises(CompileError, match="FAILED"):
        compiler.convert(page, {})


def test_convert_timeout_is_compile_error(adoc, monkeypatch):
    compiler, page = adoc

    def slow(cmd, **kw):
        raise subprocess.TimeoutExpired(cmd, kw["timeout"])

    monkeypatch.setattr(subprocess, "run", slow)
    with pytest.raises(CompileError, match="timed out"):
        compiler.convert(page, {})


def test_missing_executable(adoc):
    _, page = adoc
    compiler = AsciidoctorCompiler(page.parent, executable="definitely-not-asciidoctor-xyz")
    with pytest.raises(CompileError, match="not found"):
        compiler.convert(page, {})


def test_asciidoc_aggregate(tmp_path):
    out = AsciidoctorCompiler(tmp_path).aggregate("Book", [
        AggregateEntry("1 intro", tmp_path / "intro.adoc", 1),
        AggregateEntry("2 ch1", None, 1),
        AggregateEntry("2.1 a", tmp_path / "ch1" / "a.adoc", 2),
    ])
    assert out.splitlines()[0] == "= Book"
    assert f"include::{(tmp_path / 'intro.adoc').as_posix()}[leveloffset=+1]" in out
    assert "== 2 ch1" in out
    assert "[leveloffset=+2]" in out


# =============================================================================
# Markdown
# =============================================================================

MD = """\
---
title: From front matter
author: Ann
date: 2024-02-03
---
# Heading One

Images live at {imagesdir}.
"""


def test_split_frontmatter():
    meta, body = split_frontmatter(MD)
    assert meta["author"] == "Ann"
    assert body.startswith("# Heading One")
    assert split_frontmatter("no front matter") == ({}, "no front matter")


def test_markdown_convert(tmp_path):
    path = tmp_path / "a.md"
    path.write_text(MD, encoding="utf-8")
    page = MarkdownCompiler().convert(path, {"imagesdir": "/b/static/img"})
    assert page.metadata.title == "From front matter"
    assert page.metadata.author == "Ann"
    assert page.metadata.revdate == "2024-02-03"
    assert "Heading One" not in page.body
    assert "/b/static/img" in page.body


def test_markdown_title_from_heading(tmp_path):
    path = tmp_path / "b.md"
    path.write_text("# Only heading\n\ntext\n", encoding="utf-8")
    assert MarkdownCompiler().read_title(path) == "Only heading"


def test_markdown_aggregate_shifts_headings(tmp_path):
    path = tmp_path / "a.md"
    path.write_text("# A\n\n## Sub\n", encoding="utf-8")
    out = MarkdownCompiler().aggregate("Book", [AggregateEntry("1 A", path, 1)])
    assert "## A" in out
    assert "### Sub" in out


# =============================================================================
# Registry
# =============================================================================

def test_compiler_set_routes_by_extension(tmp_path):
    cs = CompilerSet([AsciidoctorCompiler(tmp_path), MarkdownCompiler()])
    assert cs.is_document("a.ADOC")
    assert cs.is_document(Path("x/b.md"))
    assert not cs.is_document("c.txt")
    assert isinstance(cs.for_path("a.markdown"), MarkdownCompiler)
    with pytest.raises(CompileError):
        cs.for_path("c.txt")


def test_metadata_with_title():
    assert metadata_with_title(PageMetadata(), "fallback").title == "fallback"
    assert metadata_with_title(PageMetadata(title="kept"), "fallback").title == "kept"
