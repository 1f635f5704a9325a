"""Document: one discovered Markdown file, frontmatter already parsed."""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path

from fm2schema.domain.path_model import PathModel


@dataclass(frozen=True)
class Document:
    """A loaded document.

    ``frontmatter`` is None when the file carries no frontmatter block,
    which is distinct from an empty block (an empty PathModel).
    """

    path: Path
    raw_content: str
    frontmatter: PathModel | None
    body: str

    @property
    def has_frontmatter(self) -> bool:
        return self.frontmatter is not None

    def with_frontmatter(self, frontmatter: PathModel) -> Document:
        """Return a copy carrying *frontmatter* (same instance if unchanged)."""
        if frontmatter is self.frontmatter:
            return self
        return replace(self, frontmatter=frontmatter)

    @classmethod
    def from_data(cls, data: dict, *, path: str | Path = "<memory>", body: str = "") -> Document:
        """Build an in-memory document from a frontmatter mapping."""
        return cls(path=Path(path), raw_content="", frontmatter=PathModel(data), body=body)
