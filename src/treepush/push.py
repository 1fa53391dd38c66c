"""TreePush: stage files locally, then land them on GitHub as one commit."""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable, Mapping
from typing import Any

import httpx

from .blobs import BlobSyncer
from .client import DEFAULT_API_URL, GitHubClient
from .commit import Comparison, CommitBuilder, compare_commit
from .config import PushConfig
from .merge import MergeOrchestrator, MergeState
from .stage import FileStage
from .stats import RunStats
from .tree import SyncPlan, compute_delta, plan_delta, read_remote_tree

__all__ = ["TreePush"]

logger = logging.getLogger(__name__)


class TreePush:
    """Synchronize a set of files with one folder of a GitHub repository.

    Usage::

        tp = TreePush(token, PushConfig(owner="me", repo="site", base="main", path="data"))
        tp.add("a.json", {"x": 1})
        tp.add("logo.png", png_bytes)
        stats = tp.push()

    Each :meth:`push` reads the remote folder, uploads whatever blobs are
    missing, and creates a single commit holding every change.  The
    commit either fast-forwards ``base`` or is proposed (and optionally
    merged) through a pull request.

    The staged files and the set of blob ids known to exist remotely
    persist across pushes on the same instance.
    """

    def __init__(
        self,
        token: str | None,
        config: PushConfig | Mapping[str, Any],
        *,
        api_url: str = DEFAULT_API_URL,
        transport: httpx.BaseTransport | None = None,
        client: GitHubClient | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not isinstance(config, PushConfig):
            config = PushConfig.from_dict(config)
        self.config = config
        self._client = client or GitHubClient(
            token, config.owner, config.repo, api_url=api_url, transport=transport, sleep=sleep,
        )
        self._sleep = sleep
        self.stage = FileStage()
        self._known: set[str] = set()
        self.last_run_stats: RunStats | None = None
        self.last_comparison: Comparison | None = None

    def __repr__(self) -> str:
        c = self.config
        return f"TreePush({c.owner}/{c.repo}@{c.base}:{c.path or '/'})"

    # -- staging -------------------------------------------------------------

    def add(self, path: str | os.PathLike[str], value: Any) -> None:
        self.stage.add(path, value)

    def add_map(self, files: Mapping[str, Any]) -> None:
        self.stage.add_map(files)

    def ignore(self, path: str | os.PathLike[str]) -> None:
        self.stage.ignore(path)

    @property
    def known_blob_shas(self) -> frozenset[str]:
        return frozenset(self._known)

    # -- remote --------------------------------------------------------------

    def plan(self) -> SyncPlan:
        """Report what :meth:`push` would change, without writing anything."""
        self._client.stats = RunStats.for_message(self.config.commit_message)
        snapshot = read_remote_tree(self._client, self.config, set())
        return plan_delta(self.stage, snapshot, self.config)

    def push(self) -> RunStats:
        """Push all staged files and return the run's statistics."""
        config = self.config
        stats = RunStats.for_message(config.commit_message)
        self._client.stats = stats
        self.last_run_stats = stats
        self.last_comparison = None

        snapshot = read_remote_tree(self._client, config, self._known)
        stats.target_tree_size = len(snapshot)

        BlobSyncer(
            self._client, stats, self._known,
            content_to_blob_bytes=config.content_to_blob_bytes,
            max_workers=config.max_workers,
        ).sync(self.stage)

        rows = compute_delta(self.stage, snapshot, self._known, config)

        commit = CommitBuilder(
            self._client, stats, self._known, config.base, max_bytes=config.max_tree_bytes,
        ).build(rows, config.commit_message)

        comparison = compare_commit(self._client, commit)
        self.last_comparison = comparison

        if comparison is None or not comparison.changed:
            stats.state = MergeState.NO_CHANGE
            logger.info("No changes to push")
            return stats

        MergeOrchestrator(self._client, stats, config, sleep=self._sleep).land(commit)
        return stats

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
