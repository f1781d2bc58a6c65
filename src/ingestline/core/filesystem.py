"""Local filesystem implementation of the FileSystem protocol.

Accepts plain paths and file:// URIs. Distributed filesystems plug in through
the same protocol from the framework side.
"""

from pathlib import Path
from typing import BinaryIO
from urllib.parse import unquote, urlparse


def _to_path(location: str) -> Path:
    if location.startswith("file:"):
        return Path(unquote(urlparse(location).path))
    return Path(location)


class LocalFileSystem:
    """FileSystem backed by the local disk.

    Example:
        fs = LocalFileSystem()
        if fs.exists("/data/a.txt"):
            with fs.open("/data/a.txt") as stream:
                ...
    """

    def __init__(self, root: Path | None = None) -> None:
        """
        Args:
            root: Optional directory that relative locations resolve against
        """
        self._root = root

    def _resolve(self, location: str) -> Path:
        path = _to_path(location)
        if self._root is not None and not path.is_absolute():
            return self._root / path
        return path

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def open(self, path: str) -> BinaryIO:
        return self._resolve(path).open("rb")

    def length(self, path: str) -> int:
        return self._resolve(path).stat().st_size
