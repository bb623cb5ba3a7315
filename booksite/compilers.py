"""Document compilers: turn one source file + attribute set into an HTML body.

Two compilers ship with booksite:

- `AsciidoctorCompiler` shells out to the `asciidoctor` executable in
  embedded mode (no header/footer; the page shell adds those).
- `MarkdownCompiler` uses the `markdown` package in-process.

Both read page metadata (title, author, revision date, ...) from the source
header themselves, because embedded output carries none of it.
"""

from __future__ import annotations

import re
import subprocess
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Protocol

import markdown
import yaml

from booksite.errors import CompileError
from booksite.manifest import BookManifest, CompilerOption


@dataclass(frozen=True)
class PageMetadata:
    title: str | None = None
    author: str | None = None
    email: str | None = None
    revdate: str | None = None
    stylesheet: str | None = None
    template: str | None = None


@dataclass(frozen=True)
class RenderedPage:
    body: str
    metadata: PageMetadata = field(default_factory=PageMetadata)
    messages: str = ""


@dataclass(frozen=True)
class AggregateEntry:
    """One section of the generated all-in-one document."""
    title: str
    source: Path | None
    depth: int


class Compiler(Protocol):
    extensions: tuple[str, ...]
    aggregate_suffix: str

    def convert(self, source: Path, attributes: dict[str, str]) -> RenderedPage: ...

    def read_title(self, source: Path) -> str | None: ...

    def aggregate(self, title: str, entries: list[AggregateEntry]) -> str: ...


def _read_text(source: Path) -> str:
    try:
        return source.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise CompileError(source, f"unable to read source: {e}") from e


# ── AsciiDoc ──────────────────────────────────────────────────────

AUTHOR_RE = re.compile(r"^(?P<name>[^<:]+?)\s*(?:<(?P<email>[^>]+)>)?\s*$")
ATTR_RE = re.compile(r"^:(?P<name>!?[\w-]+!?):\s*(?P<value>.*)$")


def _skip(line: str) -> bool:
    s = line.strip()
    return not s or s.startswith("//")


def parse_adoc_header(text: str) -> tuple[str | None, dict[str, str | None]]:
    """Return (title, attributes) from an AsciiDoc document header.

    `:!name:` yields `name -> None` (explicitly unset).
    """
    raw = [ln.rstrip() for ln in text.splitlines()]
    title = None
    attrs: dict[str, str | None] = {}
    i = 0
    while i < len(raw) and _skip(raw[i]):
        i += 1
    if i < len(raw) and raw[i].startswith("= "):
        title = raw[i][2:].strip()
        i += 1
        # author line sits directly below the title: `Name <email>`
        if i < len(raw) and raw[i].strip() and not raw[i].startswith((":", "//")):
            m = AUTHOR_RE.match(raw[i])
            if m:
                attrs["author"] = m.group("name").strip()
                if m.group("email"):
                    attrs["email"] = m.group("email").strip()
                i += 1
    for line in (ln for ln in raw[i:] if not _skip(ln)):
        m = ATTR_RE.match(line)
        if not m:
            break
        name = m.group("name")
        if name.startswith("!") or name.endswith("!"):
            attrs[name.strip("!")] = None
        else:
            attrs[name] = m.group("value").strip()
    return title, attrs


def attrs_from_options(options: list[CompilerOption]) -> dict[str, str | None]:
    """Document attributes declared as `-a name=value` compiler options."""
    attrs: dict[str, str | None] = {}
    for opt, values in options:
        if opt not in ("-a", "--attribute"):
            continue
        for v in values:
            name, eq, value = v.partition("=")
            # `name@=value` / `value@`: soft-set markers, always overridable here
            name = name.rstrip("@")
            value = value.rstrip("@")
            if name.startswith("!") or name.endswith("!"):
                attrs[name.strip("!")] = None
            else:
                attrs[name] = value if eq else ""
    return attrs


def _metadata(title: str | None, attrs: dict[str, str | None], base: dict[str, str | None]) -> PageMetadata:
    def get(name: str) -> str | None:
        if name in attrs:
            return attrs[name]
        return base.get(name)

    css = get("stylesheet")
    styles = get("stylesdir")
    if css and styles and "/" not in css:
        css = f"{styles.rstrip('/')}/{css}"
    return PageMetadata(
        title=title,
        author=get("author"),
        email=get("email"),
        revdate=get("revdate"),
        stylesheet=css,
        template=get("template"),
    )


class AsciidoctorCompiler:
    extensions = (".adoc", ".asciidoc")
    aggregate_suffix = ".adoc"

    def __init__(
        self,
        src_dir: Path,
        options: list[CompilerOption] | None = None,
        *,
        timeout: float | None = None,
        executable: str = "asciidoctor",
        requires: tuple[str, ...] = (),
    ) -> None:
        self.src_dir = Path(src_dir)
        self.options = list(options or [])
        self.timeout = timeout
        self.executable = executable
        self.requires = requires
        self._base_attrs = attrs_from_options(self.options)

    @classmethod
    def from_manifest(cls, manifest: BookManifest, **kwargs) -> "AsciidoctorCompiler":
        options = [
            (opt, tuple(manifest.substitute(v) for v in values))
            for opt, values in manifest.compiler_options
        ]
        return cls(manifest.src_path, options, timeout=manifest.timeout, **kwargs)

    def command(self, source: Path, attributes: dict[str, str]) -> list[str]:
        cmd = [self.executable, str(source), "-o", "-", "--embedded", "-B", str(self.src_dir)]
        for lib in self.requires:
            cmd += ["-r", lib]
        # soft-set (`@`) so document headers may still override them
        for name, value in attributes.items():
            cmd += ["-a", f"{name}={value}@"]
        # user options last so they win over computed attributes
        for opt, values in self.options:
            if not values:
                cmd.append(opt)
                continue
            for v in values:
                cmd += [opt, v]
        return cmd

    def read_title(self, source: Path) -> str | None:
        title, _ = parse_adoc_header(_read_text(source))
        return title

    def metadata(self, text: str) -> PageMetadata:
        title, attrs = parse_adoc_header(text)
        return _metadata(title, attrs, self._base_attrs)

    def convert(self, source: Path, attributes: dict[str, str]) -> RenderedPage:
        meta = self.metadata(_read_text(source))
        cmd = self.command(source, attributes)
        try:
            p = subprocess.run(
                cmd,
                cwd=str(self.src_dir),
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise CompileError(source, f"`{self.executable}` not found on PATH") from e
        except subprocess.TimeoutExpired as e:
            raise CompileError(source, f"`{self.executable}` timed out after {e.timeout}s") from e
        except OSError as e:
            raise CompileError(source, f"unable to run `{self.executable}`: {e}") from e
        if p.returncode != 0:
            detail = (p.stderr or "").strip() or f"exit status {p.returncode}"
            raise CompileError(source, detail)
        return RenderedPage(body=p.stdout, metadata=meta, messages=(p.stderr or "").strip())

    def aggregate(self, title: str, entries: list[AggregateEntry]) -> str:
        out = [f"= {title}", ":doctype: book", ""]
        for e in entries:
            if e.source is None:
                out.append(f"{'=' * (e.depth + 1)} {e.title}")
                out.append("")
                continue
            out.append(f"include::{e.source.as_posix()}[leveloffset=+{e.depth}]")
            out.append("")
        return "\n".join(out)


# ── Markdown ──────────────────────────────────────────────────────

FRONTMATTER_RE = re.compile(r"\A---\s*\n(.*?)\n---\s*(?:\n|\Z)", re.DOTALL)
H1_RE = re.compile(r"^#\s+(.+?)\s*#*\s*$", re.MULTILINE)


def split_frontmatter(text: str, source: Path | str = "<text>") -> tuple[dict, str]:
    """Split YAML front matter (--- delimited) from the body."""
    m = FRONTMATTER_RE.match(text)
    if not m:
        return {}, text
    try:
        meta = yaml.safe_load(m.group(1)) or {}
    except yaml.YAMLError as e:
        raise CompileError(source, f"invalid front matter: {e}") from e
    if not isinstance(meta, dict):
        return {}, text
    return meta, text[m.end():]


def _first_h1(body: str) -> re.Match[str] | None:
    for m in H1_RE.finditer(body):
        if body[: m.start()].strip() == "":
            return m
        break
    return None


class MarkdownCompiler:
    extensions = (".md", ".markdown")
    aggregate_suffix = ".md"

    def __init__(self, extensions: list[str] | None = None) -> None:
        self.md_extensions = extensions or ["extra", "toc", "sane_lists"]

    def read_title(self, source: Path) -> str | None:
        meta, body = split_frontmatter(_read_text(source), source)
        if meta.get("title"):
            return str(meta["title"]).strip()
        m = _first_h1(body)
        return m.group(1).strip() if m else None

    def convert(self, source: Path, attributes: dict[str, str]) -> RenderedPage:
        meta, body = split_frontmatter(_read_text(source), source)
        title = str(meta["title"]).strip() if meta.get("title") else None
        m = _first_h1(body)
        if m:
            title = title or m.group(1).strip()
            body = body[m.end():]
        for name, value in attributes.items():
            body = body.replace("{" + name + "}", value)
        try:
            html_body = markdown.markdown(body, extensions=self.md_extensions)
        except Exception as e:
            raise CompileError(source, f"markdown conversion failed: {e}") from e

        def get(key: str) -> str | None:
            v = meta.get(key)
            return str(v) if v is not None else None

        metadata = PageMetadata(
            title=title,
            author=get("author"),
            email=get("email"),
            revdate=get("date") or get("revdate"),
            stylesheet=get("stylesheet"),
            template=get("template"),
        )
        return RenderedPage(body=html_body, metadata=metadata)

    def aggregate(self, title: str, entries: list[AggregateEntry]) -> str:
        out = [f"# {title}", ""]
        for e in entries:
            if e.source is None:
                out += [f"{'#' * min(e.depth + 1, 6)} {e.title}", ""]
                continue
            _, body = split_frontmatter(_read_text(e.source), e.source)
            if not _first_h1(body):
                out += [f"{'#' * min(e.depth + 1, 6)} {e.title}", ""]
            shifted = re.sub(
                r"^(#{1,6})(\s)",
                lambda m: "#" * min(len(m.group(1)) + e.depth, 6) + m.group(2),
                body,
                flags=re.MULTILINE,
            )
            out += [shifted.strip(), ""]
        return "\n".join(out)


# ── Registry ──────────────────────────────────────────────────────

class CompilerSet:
    """Maps document extensions to the compiler that handles them."""

    def __init__(self, compilers: list[Compiler]) -> None:
        self._by_ext: dict[str, Compiler] = {}
        for c in compilers:
            for ext in c.extensions:
                self._by_ext[ext.lower()] = c

    @classmethod
    def from_manifest(cls, manifest: BookManifest) -> "CompilerSet":
        return cls([AsciidoctorCompiler.from_manifest(manifest), MarkdownCompiler()])

    @property
    def extensions(self) -> set[str]:
        return set(self._by_ext)

    def is_document(self, path: Path | str) -> bool:
        return Path(path).suffix.lower() in self._by_ext

    def for_path(self, path: Path | str) -> Compiler:
        try:
            return self._by_ext[Path(path).suffix.lower()]
        except KeyError:
            raise CompileError(path, "no compiler registered for this file type") from None

    def read_title(self, path: Path) -> str | None:
        return self.for_path(path).read_title(path)

    def with_compiler(self, compiler: Compiler) -> "CompilerSet":
        out = CompilerSet([])
        out._by_ext = dict(self._by_ext)
        for ext in compiler.extensions:
            out._by_ext[ext.lower()] = compiler
        return out


def metadata_with_title(meta: PageMetadata, fallback: str) -> PageMetadata:
    return meta if meta.title else replace(meta, title=fallback)
