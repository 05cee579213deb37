from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from rootshare.app.exceptions import ForbiddenError


@dataclass(frozen=True)
class ResolvedPath:
    """A request path canonicalized against the root."""

    path: Path
    root: Path

    @property
    def is_contained(self) -> bool:
        # Component-wise, /srv/root-other is not inside /srv/root
        return self.path.is_relative_to(self.root)

    @property
    def is_root(self) -> bool:
        return self.path == self.root

    @property
    def relative(self) -> str:
        """Root-relative form, safe to show to clients."""
        if self.is_root:
            return "/"
        return "/" + self.path.relative_to(self.root).as_posix()

    def require_contained(self) -> Path:
        if not self.is_contained:
            raise ForbiddenError("Path escapes the served root")
        return self.path


@dataclass(frozen=True)
class ByteRange:
    start: int
    end: int  # inclusive

    @property
    def length(self) -> int:
        return self.end - self.start + 1


class RangeKind(Enum):
    FULL = "full"
    PARTIAL = "partial"
    UNSATISFIABLE = "unsatisfiable"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class RangeOutcome:
    kind: RangeKind
    byte_range: Optional[ByteRange] = None


class TransportStrategy(Enum):
    MAPPED = "mapped"
    BUFFERED_FULL = "buffered_full"
    COMPRESSED_STREAM = "compressed_stream"
    BUFFERED_RANGE = "buffered_range"
    STREAMED_RANGE = "streamed_range"


@dataclass(frozen=True)
class ChunkSession:
    file_id: str
    filename: str
    chunk_index: int
    total_chunks: int
    total_size: int
    chunk_start: int

    @property
    def is_first(self) -> bool:
        return self.chunk_index == 0

    @property
    def is_last(self) -> bool:
        return self.chunk_index == self.total_chunks - 1

    @property
    def temp_name(self) -> str:
        return f".{self.file_id}.tmp"


@dataclass(frozen=True)
class DirectoryEntry:
    name: str
    is_directory: bool
    size_bytes: int
