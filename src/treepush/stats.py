"""Per-run statistics reported by :meth:`TreePush.push`."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field, fields
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .merge import MergeState

__all__ = ["RunStats"]

# Report keys used by as_dict(), in display order.
_REPORT_KEYS = {
    "name": "Name",
    "tree_operations": "Tree_Operations",
    "content_converted_to_blobs": "Content_Converted_To_Blobs",
    "blobs_uploaded": "Blobs_Uploaded",
    "text_content_uploaded": "Text_Content_Uploaded",
    "target_tree_size": "Target_Tree_Size",
    "files_deleted": "Files_Deleted",
    "files_referenced": "Files_Referenced",
    "commit_url": "Commit_URL",
    "pull_request_url": "Pull_Request_URL",
    "rate_limit_remaining": "GitHub_Rate_Limit_Remaining",
    "rate_limit_retry_after": "GitHub_Rate_Limit_Retry_After",
}


@dataclass
class RunStats:
    """Counters and URLs accumulated over one push.

    Counters only grow during a run; a fresh instance is created for
    every push.  :meth:`incr` is safe to call from blob upload threads.
    """

    name: str = ""
    tree_operations: int = 0
    content_converted_to_blobs: int = 0
    blobs_uploaded: int = 0
    text_content_uploaded: int = 0
    target_tree_size: int | None = None
    files_deleted: int = 0
    files_referenced: int = 0
    commit_url: str | None = None
    pull_request_url: str | None = None
    rate_limit_remaining: int | None = None
    rate_limit_retry_after: int | None = None
    state: MergeState | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @classmethod
    def for_message(cls, commit_message: str | None) -> RunStats:
        return cls(name=f"treePush - {commit_message or '(No commit message)'}")

    def incr(self, counter: str, amount: int = 1) -> None:
        with self._lock:
            setattr(self, counter, getattr(self, counter) + amount)

    def as_dict(self) -> dict:
        """Report form keyed like ``Tree_Operations``; zero counters and unset values omitted."""
        result: dict = {}
        for f in fields(self):
            key = _REPORT_KEYS.get(f.name)
            if key is None:
                continue
            value = getattr(self, f.name)
            if value is None or (value == 0 and f.name != "rate_limit_remaining"):
                continue
            result[key] = value
        if self.state is not None:
            result["State"] = self.state.value
        return result
