"""Local filesystem operations used by the sync engine."""

from pathlib import Path
from typing import Protocol, Union

PathLike = Union[str, Path]


class FileSystem(Protocol):
    """Filesystem operations the sync engine relies on."""

    def exists(self, path: PathLike) -> bool: ...

    def read_text(self, path: PathLike) -> str: ...

    def write_text(self, path: PathLike, content: str) -> None: ...

    def make_dirs(self, path: PathLike) -> None: ...

    def list_dir(self, path: PathLike) -> list[str]: ...


class LocalFileSystem:
    """FileSystem implementation backed by the local disk."""

    def __init__(self, encoding: str = "utf-8"):
        """Initialize local filesystem operations.

        Args:
            encoding: Text encoding for reading and writing script files
        """
        self.encoding = encoding

    def exists(self, path: PathLike) -> bool:
        """Return True if something exists at path."""
        return Path(path).exists()

    def read_text(self, path: PathLike) -> str:
        """Read a whole file, keeping its line endings.

        Raises:
            OSError: If the file is missing or unreadable
        """
        with open(path, encoding=self.encoding, newline="") as f:
            return f.read()

    def write_text(self, path: PathLike, content: str) -> None:
        """Write content to path, replacing any existing file.

        Line endings are written exactly as given.
        """
        with open(path, "w", encoding=self.encoding, newline="") as f:
            f.write(content)

    def make_dirs(self, path: PathLike) -> None:
        """Create path and any missing parents."""
        Path(path).mkdir(parents=True, exist_ok=True)

    def list_dir(self, path: PathLike) -> list[str]:
        """List entry names in a directory, sorted by name.

        Raises:
            OSError: If the directory cannot be read
        """
        return sorted(item.name for item in Path(path).iterdir())
