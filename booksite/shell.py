"""Page shell: merge a rendered body with the sidebar and page chrome (Jinja2)."""

from __future__ import annotations

from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError, select_autoescape

from booksite.errors import BookError, ManifestError
from booksite.manifest import THEME_DIR, BookManifest

DEFAULT_THEME = Path(__file__).resolve().parent / "default_theme"
DEFAULT_TEMPLATE = "article.html"


class ShellError(BookError):
    """A page shell template failed to load or render."""


def _static_files(static: Path) -> list[tuple[Path, str]]:
    if not static.is_dir():
        return []
    return [
        (p, f"{THEME_DIR}/" + p.relative_to(static).as_posix())
        for p in sorted(static.rglob("*"))
        if p.is_file() and not any(part.startswith(".") for part in p.relative_to(static).parts)
    ]


def default_theme_files() -> list[tuple[Path, str]]:
    """(packaged file, site-relative destination) for the default theme's static files."""
    return _static_files(DEFAULT_THEME / "static")


def theme_files(manifest: BookManifest) -> list[tuple[Path, str]]:
    """Static theme files to publish under `<site>/theme/`."""
    if manifest.use_default_theme:
        return default_theme_files()
    return _static_files(manifest.src_path / THEME_DIR / "static")


class ShellRenderer:
    def __init__(self, template_dir: Path, default_template: str = DEFAULT_TEMPLATE) -> None:
        self.template_dir = Path(template_dir)
        self.default_template = default_template
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape(["html", "htm", "xml"]),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
        )

    @classmethod
    def from_manifest(cls, manifest: BookManifest) -> "ShellRenderer":
        if manifest.use_default_theme:
            return cls(DEFAULT_THEME / "templates")
        user = manifest.src_path / THEME_DIR / "templates"
        if not user.is_dir():
            raise ManifestError(
                f"use_default_theme is false but no templates directory at: {user}"
            )
        return cls(user)

    def render_shell(self, context: dict) -> str:
        name = context.get("template") or self.default_template
        try:
            template = self.env.get_template(name)
            return template.render(**context)
        except TemplateError as e:
            raise ShellError(f"template `{name}`: {e}") from e
