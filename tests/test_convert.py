"""Tests for task planning and the bounded conversion pool."""

import pytest

from booksite.compilers import CompilerSet
from booksite.convert import BuildReport, plan_tasks, run_tasks
from booksite.paths import PathResolver
from booksite.sidebar import number_tree
from booksite.tree import build_tree

from conftest import FakeCompiler

ORDER = {".": ["intro.adoc", "ch1"]}


@pytest.fixture
def planned(make_book, compilers, scenario_files, tmp_path):
    def plan(files=None, **config):
        config.setdefault("order", ORDER)
        m = make_book({**scenario_files, **(files or {})}, **config)
        built = build_tree(m, compilers)
        work = tmp_path / "work"
        work.mkdir(exist_ok=True)
        tasks, warnings = plan_tasks(
            m, number_tree(built.tree), built.classification, PathResolver(m), compilers, work
        )
        return m, tasks, warnings

    return plan


def test_one_task_per_page_in_preorder(planned):
    m, tasks, warnings = planned(base_url="/b")
    assert [t.source_rel for t in tasks] == ["intro.adoc", "ch1/a.adoc", "ch1/b.adoc"]
    assert warnings == []
    a = tasks[1]
    assert a.destination == m.site_path / "ch1" / "a.html"
    assert a.url == "/b/ch1/a.html"
    assert a.number == "2.1"
    assert a.attributes["section-number"] == "2.1"
    assert a.attributes["sidebar-active"] == "/b/ch1/a.html"
    assert a.attributes["docname"] == "a"
    assert a.attributes["stylesdir"] == "/b/theme/css"
    assert a.attributes["outdir"] == str(m.site_path / "ch1")


def test_converts_get_a_task_but_no_number(planned):
    _, tasks, _ = planned({"404.adoc": "= Not found"}, converts=["404.adoc"])
    extra = tasks[-1]
    assert extra.kind == "convert"
    assert extra.number is None
    assert "section-number" not in extra.attributes
    assert extra.destination.name == "404.html"


def test_generate_all_writes_aggregate_source(planned, tmp_path):
    m, tasks, _ = planned(generate_all=True)
    agg = tasks[-1]
    assert agg.kind == "aggregate"
    assert agg.destination == m.site_path / "all.html"
    assert agg.source.parent == tmp_path / "work"
    text = agg.source.read_text(encoding="utf-8")
    assert text.splitlines()[0] == "= Test Book"
    assert "== 2 ch1" in text


def run(tasks, fail=(), **kwargs):
    compiler = FakeCompiler(fail=set(fail))
    return compiler, run_tasks(tasks, CompilerSet([compiler]), **kwargs)


def test_results_keep_task_order(planned):
    _, tasks, _ = planned()
    _, results = run(tasks, jobs=3)
    assert [r.task for r in results] == tasks
    assert all(r.ok for r in results)


def test_one_failure_does_not_stop_the_rest(planned):
    _, tasks, _ = planned()
    _, results = run(tasks, fail={"a.adoc"}, jobs=2)
    assert [r.ok for r in results] == [True, False, True]
    assert results[1].error.message == "boom"


def test_fail_fast_stops_dispatch(planned):
    _, tasks, _ = planned()
    compiler, results = run(tasks, fail={"intro.adoc"}, jobs=1, fail_fast=True)
    assert results[0] is not None and not results[0].ok
    assert results[1:] == [None, None]
    assert len(compiler.calls) == 1


def test_missing_source_becomes_failure(planned):
    _, tasks, _ = planned()
    tasks[0].source.unlink()
    _, results = run(tasks)
    assert not results[0].ok
    assert all(r.ok for r in results[1:])


def test_report_exit_code():
    report = BuildReport(succeeded=3)
    assert report.ok and report.exit_code(strict=True) == 0
    report.fail("a.adoc", "boom")
    assert not report.ok
    assert report.exit_code() == 0
    assert report.exit_code(strict=True) == 1
    assert str(report.failures[0]) == "a.adoc: boom"


class BrokenCompiler(FakeCompiler):
    def convert(self, source, attributes):
        if source.name == "a.adoc":
            raise ValueError("unexpected output")
        return super().convert(source, attributes)


def test_unexpected_compiler_error_fails_only_its_page(planned):
    _, tasks, _ = planned()
    results = run_tasks(tasks, CompilerSet([BrokenCompiler()]), jobs=2)
    assert [r.ok for r in results] == [True, False, True]
    assert results[1].error.message == "ValueError: unexpected output"
