"""Command line interface: `booksite build|init|clean|preset`."""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

from booksite.build import build_book, clean_site
from booksite.convert import BuildReport
from booksite.errors import BookError
from booksite.init import PRESETS, init_book, preset
from booksite.manifest import load_manifest


def _print_report(report: BuildReport) -> None:
    for w in report.warnings:
        print(f"warning: {w}", file=sys.stderr)
    if report.failures:
        print(f"\n{len(report.failures)} page(s) failed:", file=sys.stderr)
        for f in report.failures:
            print(f"  {f}", file=sys.stderr)
    print(report.summary())


def cmd_build(args: argparse.Namespace) -> int:
    manifest = load_manifest(Path(args.dir))
    report = build_book(
        manifest,
        verbose=args.verbose,
        jobs=args.jobs,
        fail_fast=True if args.fail_fast else None,
    )
    _print_report(report)
    print(f"Built {manifest.title!r} -> {os.path.relpath(manifest.site_path)}")
    return report.exit_code(strict=args.strict)


def cmd_init(args: argparse.Namespace) -> int:
    root = Path(args.dir)
    for path in init_book(root):
        print(f"  ✓ {os.path.relpath(path, root)}")
    print(f"Initialized a book in {root}")
    return 0


def cmd_clean(args: argparse.Namespace) -> int:
    manifest = load_manifest(Path(args.dir))
    removed = clean_site(manifest)
    print(f"Removed {removed} entries from {os.path.relpath(manifest.site_path)}")
    return 0


def cmd_preset(args: argparse.Namespace) -> int:
    sys.stdout.write(preset(args.name))
    return 0


def _positive(value: str) -> int:
    n = int(value)
    if n < 1:
        raise argparse.ArgumentTypeError("must be >= 1")
    return n


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="booksite", description="Build a static book site from AsciiDoc/Markdown sources.")
    sub = p.add_subparsers(dest="command", required=True)

    b = sub.add_parser("build", aliases=["b"], help="Build the site")
    b.add_argument("dir", nargs="?", default=".", help="Book directory (default: current directory)")
    b.add_argument("-v", "--verbose", action="store_true", help="Print every page as it is written")
    b.add_argument("--fail-fast", action="store_true", help="Stop dispatching conversions after the first failure")
    b.add_argument("--jobs", type=_positive, default=None, help="Parallel conversions (default: CPU count)")
    b.add_argument("--strict", action="store_true", help="Exit 1 when any page failed")
    b.set_defaults(func=cmd_build)

    i = sub.add_parser("init", aliases=["i"], help="Create a starter book")
    i.add_argument("dir", help="Directory to initialize")
    i.set_defaults(func=cmd_init)

    c = sub.add_parser("clean", help="Empty the site directory")
    c.add_argument("dir", nargs="?", default=".", help="Book directory (default: current directory)")
    c.set_defaults(func=cmd_clean)

    pr = sub.add_parser("preset", aliases=["p"], help="Print a preset file")
    pr.add_argument("name", choices=sorted(PRESETS))
    pr.set_defaults(func=cmd_preset)
    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(sys.argv[1:] if argv is None else argv)
    try:
        return args.func(args)
    except (BookError, OSError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
