"""Starter files for `booksite init` and `booksite preset`."""

from __future__ import annotations

from pathlib import Path

from booksite.errors import BookError
from booksite.manifest import MANIFEST_NAME

BOOK_YAML = """\
title: My Book
base_url: ""
authors: []

src_dir: src
site_dir: site

# Sidebar items deeper than this start collapsed (null: everything expanded).
fold_level: null

# Directory -> ordered entries. Unlisted entries are appended with a warning.
order:
  ".": [intro.adoc, ch1]
  ch1: [a.adoc]

includes: []
converts: []
copies: []
generate_all: false

compiler_options:
  -a:
    - linkcss
    - sectanchors
"""

ARTICLE_ADOC = """\
= Article title
Author Name <author@example.com>
:revdate: 2024-01-01

Write the article here.

== A section

See the link:{base_url}/[book index].
"""

GITIGNORE = "site/\n"

_FILES = {
    ".gitignore": GITIGNORE,
    MANIFEST_NAME: BOOK_YAML,
    "src/intro.adoc": "= Introduction\n\nWelcome to the book.\n",
    "src/ch1/index.adoc": "= Chapter one\n\nWhat this chapter covers.\n",
    "src/ch1/a.adoc": ARTICLE_ADOC,
}

PRESETS = {
    "book": BOOK_YAML,
    "article": ARTICLE_ADOC,
}


def preset(name: str) -> str:
    try:
        return PRESETS[name]
    except KeyError:
        raise BookError(f"unknown preset {name!r} (choose from: {', '.join(PRESETS)})") from None


def init_book(directory: Path) -> list[Path]:
    """Write a starter book into `directory`; returns the files written.

    Refuses to touch a directory that already has a `book.yaml`. Other
    existing files are left as they are.
    """
    directory = Path(directory)
    if (directory / MANIFEST_NAME).exists():
        raise BookError(f"{MANIFEST_NAME} already exists in {directory}")
    try:
        directory.mkdir(parents=True, exist_ok=True)
        (directory / "site").mkdir(exist_ok=True)
        written: list[Path] = []
        for rel, text in _FILES.items():
            path = directory / rel
            if path.exists():
                continue
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
            written.append(path)
    except OSError as e:
        raise BookError(f"unable to initialize {directory}: {e}") from e
    return written
