"""Turn a row delta into one commit, and compare it against its parent."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from urllib.parse import quote

from .config import DEFAULT_MAX_TREE_BYTES
from .digest import blob_id
from .tree import TreeRow, serialized_size

if TYPE_CHECKING:
    from .client import GitHubClient
    from .stats import RunStats

__all__ = ["Commit", "Comparison", "CommitBuilder", "split_tree", "compare_commit"]

logger = logging.getLogger(__name__)


@dataclass
class Commit:
    """A commit created on the remote."""
    sha: str
    tree_sha: str
    parent_sha: str
    html_url: str | None = None
    message: str = ""


@dataclass
class Comparison:
    """Files that differ between a commit and its parent."""
    base_sha: str
    head_sha: str
    files: list[dict] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.files)

    @property
    def filenames(self) -> list[str]:
        return [f["filename"] for f in self.files]


def split_tree(rows: list[TreeRow], max_bytes: int = DEFAULT_MAX_TREE_BYTES) -> list[list[TreeRow]]:
    """Split *rows* into contiguous chunks whose serialized size is at most *max_bytes*.

    Oversized chunks are halved (first half rounded up) until they fit.
    A single row that is still too large is kept as its own chunk.
    Concatenating the result gives back *rows*.
    """
    if not rows:
        return []
    parts = [list(rows)]
    i = 0
    while i < len(parts):
        part = parts[i]
        if len(part) > 1 and serialized_size(part) > max_bytes:
            half = (len(part) + 1) // 2
            parts[i:i + 1] = [part[:half], part[half:]]
        else:
            i += 1
    return parts


class CommitBuilder:
    """Creates chained trees for a delta and a single commit on top of *base*.

    Args:
        client: Client for the target repository.
        stats: Run statistics to update.
        known: Known remote digests; inline content is added after the
            commit since the remote stores it as a blob.
        base: Branch whose head is the parent of the new commit.
        max_bytes: Payload ceiling for one create-tree request.
    """

    def __init__(
        self,
        client: GitHubClient,
        stats: RunStats,
        known: set[str],
        base: str,
        *,
        max_bytes: int = DEFAULT_MAX_TREE_BYTES,
    ):
        self._client = client
        self._stats = stats
        self._known = known
        self._base = base
        self._max_bytes = max_bytes

    def head(self) -> tuple[str, str]:
        """Return ``(commit_sha, tree_sha)`` of the base branch head."""
        ref = self._client.get(f"/git/refs/heads/{quote(self._base)}")
        commit_sha = ref["object"]["sha"]
        commit = self._client.get(f"/git/commits/{commit_sha}")
        return commit_sha, commit["tree"]["sha"]

    def build(self, rows: list[TreeRow], message: str | None = None) -> Commit | None:
        """Create trees for *rows* and a commit referencing the last one.

        Returns None when *rows* is empty.
        """
        if not rows:
            return None

        total = len(rows)
        logger.info("Total tree size is %d bytes", serialized_size(rows))
        self._stats.tree_operations = total

        parts = split_tree(rows, self._max_bytes)
        parent_sha, tree_sha = self.head()

        done = 0
        for part in parts:
            done += len(part)
            logger.info("Creating tree - %d/%d items", done, total)
            result = self._client.post("/git/trees", {
                "tree": [r.to_json() for r in part],
                "base_tree": tree_sha,
            })
            tree_sha = result["sha"]

        result = self._client.post("/git/commits", {
            "parents": [parent_sha],
            "tree": tree_sha,
            "message": message or "",
        })
        commit = Commit(
            sha=result["sha"],
            tree_sha=tree_sha,
            parent_sha=parent_sha,
            html_url=result.get("html_url"),
            message=message or "",
        )

        for row in rows:
            if row.content is not None:
                self._stats.incr("text_content_uploaded")
                self._known.add(blob_id(row.content))
            elif row.sha is None:
                self._stats.incr("files_deleted")
            else:
                self._stats.incr("files_referenced")

        self._stats.commit_url = commit.html_url
        return commit


def compare_commit(client: GitHubClient, commit: Commit | None) -> Comparison | None:
    """Compare *commit* with its parent.  None when there is no commit."""
    if commit is None:
        return None
    result = client.get(f"/compare/{commit.parent_sha}...{commit.sha}")
    return Comparison(commit.parent_sha, commit.sha, result.get("files") or [])
