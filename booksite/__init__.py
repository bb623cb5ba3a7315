"""booksite: build a static, sidebar-navigated book site from a directory of documents."""

from booksite.build import build_book, clean_site
from booksite.convert import BuildReport
from booksite.errors import BookError, CompileError, ManifestConflict, ManifestError, PathCollision
from booksite.manifest import BookManifest, load_manifest

__all__ = [
    "BookError",
    "BookManifest",
    "BuildReport",
    "CompileError",
    "ManifestConflict",
    "ManifestError",
    "PathCollision",
    "build_book",
    "clean_site",
    "load_manifest",
]

__version__ = "0.1.0"
