"""Error kinds raised (or recorded) while building a book."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


class BookError(Exception):
    """Base class for every fatal booksite error."""


class ManifestError(BookError):
    """`book.yaml` could not be read, parsed or validated."""


class ManifestConflict(ManifestError):
    """A source path is claimed by more than one classification."""

    def __init__(self, paths: list[str], detail: str = "") -> None:
        self.paths = list(paths)
        msg = "path claimed by more than one classification: " + ", ".join(self.paths)
        if detail:
            msg = f"{msg} ({detail})"
        super().__init__(msg)


class PathCollision(BookError):
    """Two different sources resolve to one destination path."""

    def __init__(self, collisions: dict[Path, list[str]]) -> None:
        self.collisions = dict(collisions)
        lines = [
            f"{dst}: {', '.join(srcs)}" for dst, srcs in sorted(self.collisions.items())
        ]
        super().__init__("destination path collision:\n  " + "\n  ".join(lines))


class CompileError(BookError):
    """The document compiler failed for one source file."""

    def __init__(self, source: str | Path, message: str) -> None:
        self.source = str(source)
        self.message = message
        super().__init__(f"{self.source}: {message}")


@dataclass(frozen=True)
class StructuralWarning:
    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path or '.'}: {self.message}"
