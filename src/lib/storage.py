"""
Key-value persistence backends

The game store persists save slots through any object implementing the
Storage protocol: get/set/delete of byte values and prefix listing of keys.

MemoryStorage keeps everything in a dict (tests, embedding hosts);
FileStorage keeps one file per key inside a directory (the CLI).
"""

import os
import threading
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Union, runtime_checkable
from urllib.parse import quote, unquote

from .log import LOG


@runtime_checkable
class Storage(Protocol):
    """Byte oriented key-value store"""

    def get(self, key: str) -> Optional[bytes]:
        ...

    def set(self, key: str, value: bytes) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def list(self, prefix: str = "") -> List[str]:
        ...


class MemoryStorage:
    """
    In-process storage

    Example:
        >>> storage = MemoryStorage()
        >>> storage.set("campfire.save", b"{}")
        >>> storage.list("campfire")
        ['campfire.save']
    """

    def __init__(self, initial: Optional[Dict[str, bytes]] = None):
        self._items: Dict[str, bytes] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            return self._items.get(key)

    def set(self, key: str, value: bytes) -> None:
        if not isinstance(value, (bytes, bytearray)):
            raise TypeError(f"Storage values must be bytes, got {type(value).__name__}")
        with self._lock:
            self._items[key] = bytes(value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def list(self, prefix: str = "") -> List[str]:
        with self._lock:
            return sorted(key for key in self._items if key.startswith(prefix))


_TEMP_SUFFIX = '%tmp'


def fileName_encode(key: str) -> str:
    """Percent-encode a key into a single, reversible file name"""
    if not key:
        raise ValueError("Storage key must not be empty")
    name = quote(key, safe='')
    if name in ('.', '..'):
        name = name.replace('.', '%2E')
    return name


class FileStorage:
    """
    Directory backed storage, one file per key

    Keys are percent-encoded into file names ("a/b" is stored as "a%2Fb"),
    so distinct keys never share a file and list() returns the keys that
    were stored. Writes go through a temporary file and an atomic rename.
    """

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def path_make(self, key: str) -> Path:
        return self.directory / fileName_encode(key)

    def get(self, key: str) -> Optional[bytes]:
        path = self.path_make(key)
        if not path.is_file():
            return None
        return path.read_bytes()

    def set(self, key: str, value: bytes) -> None:
        path = self.path_make(key)
        temp = path.with_name(path.name + _TEMP_SUFFIX)
        temp.write_bytes(bytes(value))
        os.replace(temp, path)
        LOG(f"storage: wrote {len(value)} bytes to {path}", level=2)

    def delete(self, key: str) -> None:
        path = self.path_make(key)
        if path.is_file():
            path.unlink()

    def list(self, prefix: str = "") -> List[str]:
        keys = (
            unquote(entry.name) for entry in self.directory.iterdir()
            if entry.is_file() and not entry.name.endswith(_TEMP_SUFFIX)
        )
        return sorted(key for key in keys if key.startswith(prefix))
