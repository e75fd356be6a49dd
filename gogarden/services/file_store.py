"""
File-metadata provider for the image cache.

The cache talks to the filesystem only through this interface so tests (and
other hosts) can swap the backing store. A missing file is a normal result
(FileInfo.exists is False); every other failure surfaces as OSError and is
handled at the call site.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol


@dataclass(frozen=True)
class FileInfo:
    exists: bool
    size_bytes: int = 0
    modified_at: float = 0.0  # POSIX timestamp, seconds


MISSING = FileInfo(exists=False)


class FileStore(Protocol):
    async def stat(self, path: Path) -> FileInfo: ...

    async def list_directory(self, path: Path) -> list[str]: ...

    async def delete(self, path: Path) -> None: ...

    async def make_directory(self, path: Path) -> None: ...

    async def write_bytes(self, path: Path, data: bytes) -> None: ...

    async def read_bytes(self, path: Path) -> bytes: ...

    async def replace(self, source: Path, target: Path) -> None: ...


class LocalFileStore:
    """FileStore backed by the local disk via pathlib."""

    async def stat(self, path: Path) -> FileInfo:
        try:
            st = Path(path).stat()
        except FileNotFoundError:
            return MISSING
        return FileInfo(exists=True, size_bytes=st.st_size, modified_at=st.st_mtime)

    async def list_directory(self, path: Path) -> list[str]:
        """Names of regular files directly under path. Missing directory → []."""
        root = Path(path)
        if not root.exists():
            return []
        return sorted(entry.name for entry in root.iterdir() if entry.is_file())

    async def delete(self, path: Path) -> None:
        """Remove a file. Already gone is not an error."""
        Path(path).unlink(missing_ok=True)

    async def make_directory(self, path: Path) -> None:
        Path(path).mkdir(parents=True, exist_ok=True)

    async def write_bytes(self, path: Path, data: bytes) -> None:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    async def read_bytes(self, path: Path) -> bytes:
        return Path(path).read_bytes()

    async def replace(self, source: Path, target: Path) -> None:
        """Atomically move source onto target (same directory), overwriting target."""
        Path(source).replace(target)
