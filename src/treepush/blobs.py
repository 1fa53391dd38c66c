"""Upload staged content that should not travel inline in the tree."""

from __future__ import annotations

import base64
import logging
from collections import Counter
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .client import GitHubClient
    from .stage import FileEntry, FileStage
    from .stats import RunStats

__all__ = ["BlobSyncer"]

logger = logging.getLogger(__name__)


class BlobSyncer:
    """Promotes large or duplicated text to blobs and makes sure every blob exists remotely.

    Args:
        client: Client for the target repository.
        stats: Run statistics to update.
        known: Digests known to exist remotely.  Grown as blobs are
            probed; a digest in this set is never probed or uploaded.
        content_to_blob_bytes: Inline text above this size is promoted.
        max_workers: Concurrent probe/upload requests.
    """

    def __init__(
        self,
        client: GitHubClient,
        stats: RunStats,
        known: set[str],
        *,
        content_to_blob_bytes: int = 1000,
        max_workers: int = 8,
    ):
        self._client = client
        self._stats = stats
        self._known = known
        self._threshold = content_to_blob_bytes
        self._max_workers = max_workers

    def _should_promote(self, entry: FileEntry, counts: Counter) -> bool:
        return entry.size > self._threshold or counts[entry.digest] > 1

    def promote(self, stage: FileStage) -> list[FileEntry]:
        """Convert qualifying inline content to buffers; return the promoted entries."""
        entries = stage.entries()
        counts = Counter(e.digest for e in entries)
        promoted = []
        for entry in entries:
            if entry.digest in self._known or entry.content is None:
                continue
            if self._should_promote(entry, counts):
                entry.promote()
                promoted.append(entry)
                self._stats.incr("content_converted_to_blobs")
        return promoted

    def sync(self, stage: FileStage) -> int:
        """Promote, then probe and upload every unknown buffered digest.

        Returns the number of digests probed.  The first failed upload
        is re-raised once every started request has finished; digests
        not confirmed by then are removed from the known set again.
        """
        self.promote(stage)

        pending: dict[str, bytes] = {}
        for entry in stage.entries():
            if entry.buffer is None or entry.digest in self._known:
                continue
            pending[entry.digest] = entry.buffer
            # Claimed before the probe runs so a duplicate is never probed twice.
            self._known.add(entry.digest)

        if not pending:
            return 0

        logger.info("Syncing %d blobs", len(pending))
        paths = self._paths_by_digest(stage)
        pool = ThreadPoolExecutor(max_workers=self._max_workers)
        futures = {
            pool.submit(self._put_blob, sha, data, paths.get(sha, [])): sha
            for sha, data in pending.items()
        }
        done = False
        try:
            for future in as_completed(futures):
                future.result()
            done = True
        finally:
            # Queued requests are dropped on failure; running ones are awaited.
            pool.shutdown(wait=True, cancel_futures=True)
            if not done:
                self._release_unconfirmed(futures)
        return len(pending)

    def _release_unconfirmed(self, futures: dict[Future, str]) -> None:
        """Forget digests whose probe or upload did not succeed."""
        for future, sha in futures.items():
            if future.cancelled() or future.exception() is not None:
                self._known.discard(sha)

    @staticmethod
    def _paths_by_digest(stage: FileStage) -> dict[str, list[str]]:
        result: dict[str, list[str]] = {}
        for entry in stage.entries():
            result.setdefault(entry.digest, []).append(entry.path)
        return result

    def _put_blob(self, sha: str, data: bytes, paths: list[str]) -> None:
        """Upload *data* unless the remote already has blob *sha*."""
        note = "Found..."
        if not self._client.exists(f"/git/blobs/{sha}"):
            note = "Uploading..."
            result = self._client.post("/git/blobs", {
                "content": base64.b64encode(data).decode("ascii"),
                "encoding": "base64",
            })
            if result and result.get("sha") != sha:
                logger.warning("Uploaded blob id %s does not match predicted %s", result.get("sha"), sha)
            self._stats.incr("blobs_uploaded")
        for path in paths:
            logger.info("%s%s", note, path)
