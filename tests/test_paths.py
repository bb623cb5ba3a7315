"""Tests for destination mapping, link rooting and collision checks."""

import pytest

from booksite.errors import PathCollision
from booksite.manifest import parse_manifest
from booksite.paths import CopyTask, PathResolver, check_collisions, copy_plan
from booksite.tree import Classification


@pytest.fixture
def manifest(tmp_path):
    def make(**raw):
        raw.setdefault("title", "T")
        return parse_manifest(raw, tmp_path)

    return make


@pytest.mark.parametrize("base_url, expected", [
    ("", "/ch1/a.html"),
    ("/book", "/book/ch1/a.html"),
    ("/book/", "/book/ch1/a.html"),
    ("https://example.org/b", "https://example.org/b/ch1/a.html"),
])
def test_page_urls(manifest, base_url, expected):
    assert PathResolver(manifest(base_url=base_url)).url("ch1/a.adoc") == expected


def test_destination_mirrors_source(manifest, tmp_path):
    r = PathResolver(manifest())
    assert r.destination("ch1/sec/a.adoc") == tmp_path / "site" / "ch1" / "sec" / "a.html"


def test_asset_roots_do_not_depend_on_page_depth(manifest):
    r = PathResolver(manifest(base_url="/b"))
    roots = r.asset_roots()
    assert roots == {
        "base_url": "/b",
        "stylesdir": "/b/theme/css",
        "imagesdir": "/b/static/img",
        "favicon": "/b/theme/favicon.svg",
        "home": "/b/",
    }


@pytest.mark.parametrize("value, expected", [
    (None, "/b/theme/css/article.css"),
    ("term.css", "/b/theme/css/term.css"),
    ("static/extra.css", "/b/static/extra.css"),
    ("/b/theme/css/x.css", "/b/theme/css/x.css"),
    ("https://cdn.example/x.css", "https://cdn.example/x.css"),
])
def test_stylesheet_url(manifest, value, expected):
    assert PathResolver(manifest(base_url="/b")).stylesheet_url(value) == expected


def test_copy_plan_expands_directories(manifest, tmp_path):
    m = manifest(copies=[["assets", "static"]])
    src = m.src_path
    (src / "static" / "img").mkdir(parents=True)
    (src / "static" / "img" / "a.png").write_bytes(b"png")
    (src / "static" / ".hidden").write_text("x")
    (src / "assets").mkdir()
    (src / "assets" / "logo.svg").write_text("<svg/>")
    (src / "robots.txt").write_text("")

    plan = copy_plan(
        m,
        Classification(includes=("static", "robots.txt"), copies=(("assets", "static"),)),
        [(tmp_path / "fav.svg", "theme/favicon.svg")],
    )
    site = m.site_path
    assert [t.destination for t in plan] == [
        site / "static" / "img" / "a.png",
        site / "robots.txt",
        site / "static" / "logo.svg",
        site / "theme" / "favicon.svg",
    ]


def test_collision_between_page_and_include(tmp_path):
    site = tmp_path / "site"
    copy = CopyTask(tmp_path / "src" / "404.html", site / "404.html", "includes: 404.html")
    with pytest.raises(PathCollision) as exc:
        check_collisions([("404.adoc", site / "404.html")], [copy], site)
    assert (site / "404.html").resolve() in exc.value.collisions


def test_same_file_claimed_twice_is_not_a_collision(tmp_path):
    site = tmp_path / "site"
    f = tmp_path / "src" / "a.png"
    copies = [CopyTask(f, site / "a.png", "includes: a.png"), CopyTask(f, site / "a.png", "default theme")]
    check_collisions([], copies, site)


def test_destination_outside_site_is_rejected(tmp_path):
    site = tmp_path / "site"
    with pytest.raises(PathCollision, match="site directory"):
        check_collisions([("x.adoc", tmp_path / "x.html")], [], site)


def test_single_file_copy_to_root_keeps_name(manifest):
    m = manifest()
    m.src_path.mkdir()
    (m.src_path / "404.html").write_text("x")
    (m.src_path / "robots.txt").write_text("")
    plan = copy_plan(m, Classification(copies=(("404.html", ""), ("robots.txt", "meta/robots.txt"))))
    assert [t.destination for t in plan] == [
        m.site_path / "404.html",
        m.site_path / "meta" / "robots.txt",
    ]


def test_site_root_itself_is_not_a_valid_destination(tmp_path):
    site = tmp_path / "site"
    copy = CopyTask(tmp_path / "src" / "a.txt", site, "copies: a.txt -> .")
    with pytest.raises(PathCollision, match="site directory"):
        check_collisions([], [copy], site)
