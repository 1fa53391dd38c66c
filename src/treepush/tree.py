"""Remote tree snapshots and the row delta that moves them to the staged state.

A remote snapshot is the flat list of blob entries below the configured
folder.  :func:`compute_delta` turns the difference between that list
and a :class:`~treepush.stage.FileStage` into create-tree rows.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from urllib.parse import quote

from .exceptions import TreeTooLargeError

if TYPE_CHECKING:
    from .client import GitHubClient
    from .config import PushConfig
    from .stage import FileStage

__all__ = [
    "GIT_FILEMODE_BLOB", "RemoteEntry", "RemoteSnapshot", "TreeRow",
    "SyncPlan", "read_remote_tree", "compute_delta", "plan_delta", "serialized_size",
]

GIT_FILEMODE_BLOB = 0o100644

_MODE = f"{GIT_FILEMODE_BLOB:o}"


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RemoteEntry:
    """A blob in the remote tree, path relative to the configured folder."""
    path: str
    sha: str


@dataclass
class RemoteSnapshot:
    """Blob entries of the remote folder, in the order the remote listed them."""
    entries: list[RemoteEntry] = field(default_factory=list)
    tree_sha: str | None = None

    def __post_init__(self):
        self._by_path = {e.path: e.sha for e in self.entries}

    def __len__(self) -> int:
        return len(self.entries)

    def sha_for(self, path: str) -> str | None:
        return self._by_path.get(path)


@dataclass
class TreeRow:
    """One row of a create-tree request.

    *content* set means inline upload.  Otherwise *sha* points the path
    at an existing blob, and ``sha=None`` deletes the path.
    """
    path: str
    sha: str | None = None
    content: str | None = None
    mode: str = _MODE
    type: str = "blob"

    def __post_init__(self):
        if self.content is not None and self.sha is not None:
            raise ValueError(f"Tree row {self.path!r} cannot carry both content and sha")

    @property
    def is_delete(self) -> bool:
        return self.content is None and self.sha is None

    def to_json(self) -> dict:
        row = {"path": self.path, "mode": self.mode, "type": self.type}
        if self.content is not None:
            row["content"] = self.content
        else:
            row["sha"] = self.sha
        return row


@dataclass
class SyncPlan:
    """What a push would change, by repository path."""
    add: list[str] = field(default_factory=list)
    update: list[str] = field(default_factory=list)
    delete: list[str] = field(default_factory=list)

    @property
    def in_sync(self) -> bool:
        return not self.add and not self.update and not self.delete

    @property
    def total(self) -> int:
        return len(self.add) + len(self.update) + len(self.delete)


def serialized_size(rows: list[TreeRow]) -> int:
    """Byte length of *rows* as sent in a create-tree body."""
    return len(json.dumps([r.to_json() for r in rows]).encode("utf-8"))


# ---------------------------------------------------------------------------
# Remote tree
# ---------------------------------------------------------------------------

def _resolve_tree_ref(client: GitHubClient, base: str, path: str) -> str | None:
    """Return the tree-ish to list: *base* for the root, else the folder's tree sha.

    None means the folder does not exist on *base* yet.
    """
    if not path:
        return base
    parent = path.rsplit("/", 1)[0] if "/" in path else ""
    listing = client.get(f"/contents/{quote(parent)}?ref={quote(base, safe='')}", ok_statuses=(404,))
    if not isinstance(listing, list):
        return None
    for item in listing:
        if item.get("path") == path:
            return item["sha"]
    return None


def read_remote_tree(client: GitHubClient, config: PushConfig, known: set[str]) -> RemoteSnapshot:
    """Fetch the blob entries under ``config.path`` on ``config.base``.

    Every blob sha seen is added to *known*.

    Raises:
        TreeTooLargeError: The remote truncated the listing.
    """
    tree_ref = _resolve_tree_ref(client, config.base, config.path)
    if tree_ref is None:
        return RemoteSnapshot()

    suffix = "?recursive=true" if config.recursive else ""
    result = client.get(f"/git/trees/{quote(tree_ref, safe='')}{suffix}")
    if result.get("truncated"):
        raise TreeTooLargeError("Tree is too big to compare.  Use a sub-folder.")

    entries = [
        RemoteEntry(row["path"], row["sha"])
        for row in result.get("tree", [])
        if row.get("type") == "blob"
    ]
    known.update(e.sha for e in entries if e.sha)
    return RemoteSnapshot(entries, result.get("sha"))


# ---------------------------------------------------------------------------
# Delta
# ---------------------------------------------------------------------------

def compute_delta(
    stage: FileStage,
    snapshot: RemoteSnapshot,
    known: set[str],
    config: PushConfig,
) -> list[TreeRow]:
    """Rows that bring *snapshot* to the staged state.

    Staged rows come first in stage order, then deletions in snapshot
    order.  Content whose digest is already in *known* is referenced by
    sha instead of being sent inline.
    """
    rows: list[TreeRow] = []

    for entry in stage.entries():
        if snapshot.sha_for(entry.path) == entry.digest:
            continue
        path = config.repo_path(entry.path)
        if entry.content is not None and entry.digest not in known:
            rows.append(TreeRow(path, content=entry.content))
        else:
            rows.append(TreeRow(path, sha=entry.digest))

    if config.delete_other_files:
        for remote in snapshot.entries:
            if remote.path not in stage:
                rows.append(TreeRow(config.repo_path(remote.path), sha=None))

    return rows


def plan_delta(stage: FileStage, snapshot: RemoteSnapshot, config: PushConfig) -> SyncPlan:
    """Summarize what :func:`compute_delta` would change, without touching anything."""
    plan = SyncPlan()
    for entry in stage.entries():
        remote_sha = snapshot.sha_for(entry.path)
        if remote_sha is None:
            plan.add.append(config.repo_path(entry.path))
        elif remote_sha != entry.digest:
            plan.update.append(config.repo_path(entry.path))
    if config.delete_other_files:
        plan.delete = [
            config.repo_path(e.path) for e in snapshot.entries if e.path not in stage
        ]
    return plan
