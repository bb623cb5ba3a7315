"""Load and validate `book.yaml`, the book manifest."""

from __future__ import annotations

import os
import posixpath
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from booksite.errors import ManifestError

MANIFEST_NAME = "book.yaml"
# source subdirectory holding a user theme; never part of the navigation
THEME_DIR = "theme"

# (option, values). An empty values tuple means a bare flag.
CompilerOption = tuple[str, tuple[str, ...]]


@dataclass(frozen=True)
class OrderEntry:
    name: str
    title: str = ""


@dataclass
class BookManifest:
    root: Path
    title: str
    base_url: str = ""
    src_dir: str = "src"
    site_dir: str = "site"
    authors: list[str] = field(default_factory=list)
    fold_level: int | None = None
    use_default_theme: bool = True
    includes: list[str] = field(default_factory=list)
    converts: list[str] = field(default_factory=list)
    copies: list[tuple[str, str]] = field(default_factory=list)
    generate_all: bool = False
    compiler_options: list[CompilerOption] = field(default_factory=list)
    order: dict[str, list[OrderEntry]] = field(default_factory=dict)
    exclude: list[str] = field(default_factory=list)
    unlisted: str = "warn"
    fail_fast: bool = False
    jobs: int | None = None
    timeout: float | None = None
    clean: bool = True

    @property
    def src_path(self) -> Path:
        return self.root / self.src_dir

    @property
    def site_path(self) -> Path:
        return self.root / self.site_dir

    def placeholders(self) -> dict[str, str]:
        return {
            "{base_url}": self.base_url,
            "{src_dir}": str(self.src_path),
            "{dst_dir}": str(self.site_path),
        }

    def substitute(self, text: str) -> str:
        """Replace `{base_url}`, `{src_dir}` and `{dst_dir}` in a compiler option value."""
        for key, value in self.placeholders().items():
            text = text.replace(key, value)
        return text


_KEYS = {
    "title", "base_url", "src_dir", "site_dir", "authors", "fold_level",
    "use_default_theme", "includes", "converts", "copies", "generate_all",
    "compiler_options", "order", "exclude", "unlisted", "fail_fast", "jobs",
    "timeout", "clean",
}


def normalize_rel(path: Any, *, what: str) -> str:
    """Normalize a source-relative path to posix form, rejecting escapes."""
    if not isinstance(path, str) or not path.strip():
        raise ManifestError(f"{what}: expected a non-empty relative path, got {path!r}")
    p = path.strip().replace("\\", "/")
    if p.startswith("/") or os.path.isabs(p):
        raise ManifestError(f"{what}: absolute path not allowed: {path!r}")
    p = posixpath.normpath(p)
    if p == ".." or p.startswith("../"):
        raise ManifestError(f"{what}: path escapes the source directory: {path!r}")
    return "" if p == "." else p


def _str_list(raw: dict, key: str) -> list[str]:
    value = raw.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ManifestError(f"{key}: expected a list of strings")
    return list(value)


def _unique(paths: list[str], key: str) -> list[str]:
    seen: dict[str, None] = {}
    for p in paths:
        seen.setdefault(normalize_rel(p, what=key), None)
    return list(seen)


def _parse_copies(raw: dict) -> list[tuple[str, str]]:
    value = raw.get("copies") or []
    if not isinstance(value, list):
        raise ManifestError("copies: expected a list of [src, dst] pairs")
    out: list[tuple[str, str]] = []
    for pair in value:
        if not isinstance(pair, (list, tuple)) or len(pair) != 2:
            raise ManifestError(f"copies: expected a [src, dst] pair, got {pair!r}")
        src = normalize_rel(pair[0], what="copies")
        dst = normalize_rel(pair[1], what="copies")
        if (src, dst) not in out:
            out.append((src, dst))
    return out


def _parse_option_values(name: str, values: Any) -> tuple[str, ...]:
    if values is None:
        return ()
    if isinstance(values, (str, int, float, bool)):
        return (str(values),)
    if isinstance(values, list) and all(isinstance(v, (str, int, float)) for v in values):
        return tuple(str(v) for v in values)
    raise ManifestError(f"compiler_options: bad values for {name!r}: {values!r}")


def _parse_compiler_options(raw: dict) -> list[CompilerOption]:
    value = raw.get("compiler_options")
    if value is None:
        return []
    out: list[CompilerOption] = []
    # YAML mappings keep declaration order, so both shapes stay ordered.
    if isinstance(value, dict):
        for name, values in value.items():
            out.append((str(name), _parse_option_values(str(name), values)))
        return out
    if isinstance(value, list):
        for item in value:
            if isinstance(item, str):
                out.append((item, ()))
            elif isinstance(item, list) and len(item) == 2 and isinstance(item[0], str):
                out.append((item[0], _parse_option_values(item[0], item[1])))
            else:
                raise ManifestError(f"compiler_options: expected [option, values], got {item!r}")
        return out
    raise ManifestError("compiler_options: expected a mapping or a list of pairs")


def _parse_order(raw: dict) -> dict[str, list[OrderEntry]]:
    value = raw.get("order")
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ManifestError("order: expected a mapping of directory -> entries")
    out: dict[str, list[OrderEntry]] = {}
    for directory, entries in value.items():
        d = "" if directory in (None, "", ".") else normalize_rel(str(directory), what="order")
        if not isinstance(entries, list):
            raise ManifestError(f"order[{directory!r}]: expected a list")
        parsed: list[OrderEntry] = []
        for entry in entries:
            if isinstance(entry, str):
                name, title = entry, ""
            elif isinstance(entry, dict) and isinstance(entry.get("path"), str):
                name, title = entry["path"], str(entry.get("title") or "")
            else:
                raise ManifestError(f"order[{directory!r}]: bad entry {entry!r}")
            name = normalize_rel(name, what="order")
            if "/" in name:
                raise ManifestError(
                    f"order[{directory!r}]: entries name direct children, got {name!r}"
                )
            parsed.append(OrderEntry(name=name, title=title))
        out[d] = parsed
    return out


def _opt_int(raw: dict, key: str, *, minimum: int) -> int | None:
    value = raw.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ManifestError(f"{key}: expected an integer >= {minimum} or null, got {value!r}")
    return value


def _bool(raw: dict, key: str, default: bool) -> bool:
    value = raw.get(key, default)
    if not isinstance(value, bool):
        raise ManifestError(f"{key}: expected true/false, got {value!r}")
    return value


def parse_manifest(raw: Any, root: Path) -> BookManifest:
    """Build a `BookManifest` from already-deserialized YAML data."""
    if not isinstance(raw, dict):
        raise ManifestError("book.yaml: expected a mapping at the top level")
    unknown = sorted(set(raw) - _KEYS)
    if unknown:
        raise ManifestError(f"book.yaml: unknown keys: {', '.join(map(str, unknown))}")

    title = raw.get("title")
    if not isinstance(title, str) or not title.strip():
        raise ManifestError("title: required")

    base_url = raw.get("base_url") or ""
    if not isinstance(base_url, str):
        raise ManifestError("base_url: expected a string")

    authors = raw.get("authors") or []
    if isinstance(authors, str):
        authors = [authors]
    if not isinstance(authors, list) or not all(isinstance(a, str) for a in authors):
        raise ManifestError("authors: expected a list of strings")

    unlisted = raw.get("unlisted", "warn")
    if unlisted not in ("warn", "error"):
        raise ManifestError(f"unlisted: expected 'warn' or 'error', got {unlisted!r}")

    timeout = raw.get("timeout")
    if timeout is not None and (
        isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0
    ):
        raise ManifestError(f"timeout: expected a positive number of seconds, got {timeout!r}")

    for key in ("src_dir", "site_dir"):
        if key in raw and not isinstance(raw[key], str):
            raise ManifestError(f"{key}: expected a string")

    return BookManifest(
        root=root,
        title=title.strip(),
        base_url=base_url.strip().rstrip("/"),
        src_dir=raw.get("src_dir") or "src",
        site_dir=raw.get("site_dir") or "site",
        authors=list(authors),
        fold_level=_opt_int(raw, "fold_level", minimum=0),
        use_default_theme=_bool(raw, "use_default_theme", True),
        includes=_unique(_str_list(raw, "includes"), "includes"),
        converts=_unique(_str_list(raw, "converts"), "converts"),
        copies=_parse_copies(raw),
        generate_all=_bool(raw, "generate_all", False),
        compiler_options=_parse_compiler_options(raw),
        order=_parse_order(raw),
        exclude=_str_list(raw, "exclude"),
        unlisted=unlisted,
        fail_fast=_bool(raw, "fail_fast", False),
        jobs=_opt_int(raw, "jobs", minimum=1),
        timeout=float(timeout) if timeout is not None else None,
        clean=_bool(raw, "clean", True),
    )


def find_manifest(start: Path) -> Path:
    """Return the `book.yaml` in `start` or the closest ancestor that has one."""
    start = Path(start).resolve()
    if not start.is_dir():
        raise ManifestError(f"not a directory: {start}")
    for directory in (start, *start.parents):
        candidate = directory / MANIFEST_NAME
        if candidate.is_file():
            return candidate
    raise ManifestError(f"no {MANIFEST_NAME} found in {start} or its parents")


def load_manifest(path: Path) -> BookManifest:
    """Load `book.yaml` from a file path or from a book directory (searching upwards)."""
    path = Path(path)
    manifest_path = find_manifest(path) if path.is_dir() else path
    try:
        text = manifest_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ManifestError(f"unable to read {manifest_path}: {e}") from e
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ManifestError(f"unable to parse {manifest_path}: {e}") from e
    return parse_manifest(raw, manifest_path.parent.resolve())
