"""Content digests matching the remote store's blob ids.

Git blob id = SHA-1(``blob <size>\\0`` + content).  The remote computes
the same id for content sent inline in a tree, so a digest predicted
here can be looked up or referenced before anything is uploaded.
"""

from __future__ import annotations

from dulwich.objects import Blob


def blob_id(data: bytes | str) -> str:
    """Return the 40-char hex blob id for *data*.

    Strings are hashed as their UTF-8 bytes.
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    return Blob.from_string(bytes(data)).id.decode("ascii")
