"""Staging table for files to be pushed."""

from __future__ import annotations

import json
import os
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from .digest import blob_id

__all__ = ["FileEntry", "FileStage", "normalize_path"]


def normalize_path(path: str | os.PathLike[str]) -> str:
    """Normalize a path: strip leading/trailing slashes, reject bad segments."""
    path = os.fspath(path)
    if os.name == "nt":
        path = path.replace("\\", "/")
    path = path.strip("/")
    if not path:
        raise ValueError("Path must not be empty")
    segments = path.split("/")
    for seg in segments:
        if not seg:
            raise ValueError(f"Empty segment in path: {path!r}")
        if seg in (".", ".."):
            raise ValueError(f"Invalid path segment: {seg!r}")
    return "/".join(segments)


@dataclass
class FileEntry:
    """A staged file.

    Exactly one of *content* (inline text) or *buffer* (blob bytes) is
    set.  *digest* is the blob id of the logical bytes and never changes
    when content is promoted to a buffer.
    """

    path: str
    digest: str
    content: str | None = None
    buffer: bytes | None = None

    def promote(self) -> None:
        """Turn inline text content into blob bytes."""
        if self.content is not None:
            self.buffer = self.content.encode("utf-8")
            self.content = None

    @property
    def size(self) -> int:
        if self.content is not None:
            return len(self.content.encode("utf-8"))
        return len(self.buffer or b"")


class FileStage:
    """Accumulates files to push, keyed by path relative to the target folder.

    A path staged with ``None`` (see :meth:`ignore`) is left alone: it is
    neither written nor removed by a delete sweep.
    """

    def __init__(self):
        self._entries: dict[str, FileEntry | None] = {}

    def __repr__(self) -> str:
        return f"FileStage(len={len(self)})"

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: str) -> bool:
        return path in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __getitem__(self, path: str) -> FileEntry | None:
        return self._entries[path]

    def add(self, path: str | os.PathLike[str], value: Any) -> FileEntry:
        """Stage *value* at *path*, replacing anything staged there before.

        *value* may be ``str`` (inline text), ``bytes`` (blob) or any
        JSON-serializable object, which is staged as indented JSON text.
        """
        path = normalize_path(path)
        if isinstance(value, (bytes, bytearray, memoryview)):
            data = bytes(value)
            entry = FileEntry(path, blob_id(data), buffer=data)
        else:
            text = value if isinstance(value, str) else json.dumps(value, indent=2, ensure_ascii=False)
            entry = FileEntry(path, blob_id(text), content=text)
        # An existing key keeps its original position.
        self._entries[path] = entry
        return entry

    def add_map(self, files: Mapping[str, Any]) -> None:
        for path, value in files.items():
            self.add(path, value)

    def ignore(self, path: str | os.PathLike[str]) -> None:
        """Exclude *path* from both writes and the delete sweep."""
        self._entries[normalize_path(path)] = None

    def is_ignored(self, path: str) -> bool:
        return path in self._entries and self._entries[path] is None

    def entries(self) -> list[FileEntry]:
        """Staged (non-ignored) entries in insertion order."""
        return [e for e in self._entries.values() if e is not None]

    def clear(self) -> None:
        self._entries.clear()
