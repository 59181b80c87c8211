"""Input document handle."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union


@dataclass(frozen=True)
class SourceDocument:
    """
    Immutable handle to the bytes of one input PDF.

    ``page_count`` is unknown until the document has been decoded once; the
    orchestrator returns a copy with it filled in.
    """
    name: str
    data: bytes = field(repr=False)
    content_type: Optional[str] = None
    page_count: Optional[int] = None

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "SourceDocument":
        """
        Read a document from disk.

        Args:
            path: Path to the input file

        Returns:
            SourceDocument named after the file
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"PDF file not found: {path}")
        return cls(name=path.name, data=path.read_bytes())
