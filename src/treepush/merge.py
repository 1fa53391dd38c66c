"""Land a commit on the base branch, directly or through a pull request.

States a push moves through::

    NO_CHANGE
    COMMITTED -> DIRECT_UPDATE
    COMMITTED -> PR_CREATED [-> PR_LABELED] [-> PR_REVIEWERS_REQUESTED]
              [-> WAITING_FOR_CHECKS -> MERGED -> BRANCH_DELETED]

Auto-merge waits while GitHub still computes mergeability, or while the
PR is blocked/unstable with check runs in progress.  A failed check run
or too many polls aborts with an error; nothing is rolled back.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING
from urllib.parse import quote

from .client import PollState
from .exceptions import AutoMergeCheckFailedError, AutoMergeTimeoutError

if TYPE_CHECKING:
    from .client import GitHubClient
    from .commit import Commit
    from .config import PushConfig
    from .stats import RunStats

__all__ = ["MergeState", "MergeOrchestrator", "PullRequest", "PollState", "branch_name_for"]

logger = logging.getLogger(__name__)

_WAIT_STATES = ("blocked", "unstable")


class MergeState(Enum):
    NO_CHANGE = "no_change"
    COMMITTED = "committed"
    DIRECT_UPDATE = "direct_update"
    PR_CREATED = "pr_created"
    PR_LABELED = "pr_labeled"
    PR_REVIEWERS_REQUESTED = "pr_reviewers_requested"
    WAITING_FOR_CHECKS = "waiting_for_checks"
    MERGED = "merged"
    BRANCH_DELETED = "branch_deleted"


@dataclass
class PullRequest:
    number: int
    head_ref: str
    html_url: str | None = None


def branch_name_for(base: str, commit_sha: str) -> str:
    """Name of the pull-request branch for *commit_sha* on *base*."""
    return f"{base}-{commit_sha}"


def _check_runs(checks: PollState) -> list[dict]:
    return checks.get("check_runs") or []


def _should_wait(pr: PollState, checks: PollState) -> bool:
    state = pr.get("mergeable_state")
    if state == "unknown":
        return True
    return state in _WAIT_STATES and any(
        run.get("status") != "completed" for run in _check_runs(checks)
    )


def _raise_on_failed_check(checks: PollState) -> None:
    for run in _check_runs(checks):
        if run.get("conclusion") == "failure":
            raise AutoMergeCheckFailedError(run.get("html_url") or run.get("url") or "")


class MergeOrchestrator:
    """Drives a committed change to its terminal state.

    Args:
        client: Client for the target repository.
        stats: Run statistics; :attr:`RunStats.state` tracks progress.
        config: Push configuration.
        sleep: Delay function (seconds), injectable for tests.
    """

    def __init__(
        self,
        client: GitHubClient,
        stats: RunStats,
        config: PushConfig,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._client = client
        self._stats = stats
        self._config = config
        self._sleep = sleep

    def _enter(self, state: MergeState) -> None:
        logger.debug("merge state -> %s", state.value)
        self._stats.state = state

    def land(self, commit: Commit) -> MergeState:
        """Move *base* to *commit*, or open (and maybe merge) a pull request."""
        self._enter(MergeState.COMMITTED)
        if not self._config.pull_request:
            self.update_base(commit)
        else:
            pr = self.open_pull_request(commit)
            if self._config.pull_request_options.automatic_merge:
                self.auto_merge(pr, commit)
        return self._stats.state

    def update_base(self, commit: Commit) -> None:
        """Fast-forward the base branch to *commit*."""
        self._client.patch(f"/git/refs/heads/{quote(self._config.base)}", {"sha": commit.sha})
        self._enter(MergeState.DIRECT_UPDATE)

    def open_pull_request(self, commit: Commit) -> PullRequest:
        """Create the PR branch and pull request, then apply issue and review options."""
        options = self._config.pull_request_options
        branch = branch_name_for(self._config.base, commit.sha)

        self._client.post("/git/refs", {"sha": commit.sha, "ref": f"refs/heads/{branch}"})

        result = self._client.post("/pulls", options.create_payload(branch, self._config.base))
        pr = PullRequest(
            number=result["number"],
            head_ref=(result.get("head") or {}).get("ref", branch),
            html_url=result.get("html_url"),
        )
        self._stats.pull_request_url = pr.html_url
        self._enter(MergeState.PR_CREATED)

        if options.issue_options is not None:
            self._client.patch(f"/issues/{pr.number}", options.issue_options.payload())
            self._enter(MergeState.PR_LABELED)

        if options.review_options is not None:
            self._client.post(f"/pulls/{pr.number}/requested_reviewers", options.review_options.payload())
            self._enter(MergeState.PR_REVIEWERS_REQUESTED)

        return pr

    def poll_pull_request(self, pr: PullRequest, previous: PollState | None = None) -> PollState:
        return self._client.get_conditional(f"/pulls/{pr.number}", previous)

    def poll_checks(self, commit_sha: str, previous: PollState | None = None) -> PollState:
        return self._client.get_conditional(f"/commits/{commit_sha}/check-runs", previous)

    def wait_until_mergeable(self, pr: PullRequest, commit: Commit) -> tuple[PollState, PollState]:
        """Poll until the PR can be merged.

        Raises:
            AutoMergeCheckFailedError: A check run concluded ``failure``.
            AutoMergeTimeoutError: Still waiting after
                ``config.max_wait_attempts`` polls.
        """
        self._enter(MergeState.WAITING_FOR_CHECKS)
        delay = self._config.pull_request_options.automatic_merge_delay
        if delay:
            logger.info("Waiting %dms before merging PR...", delay)
            self._sleep(delay / 1000)

        checks = self.poll_checks(commit.sha)
        status = self.poll_pull_request(pr)
        _raise_on_failed_check(checks)

        attempts = 0
        while _should_wait(status, checks):
            logger.info(
                "Waiting for merge, checks = %d. mergeable = %s, prstatus = %s, "
                "checkstatus = %s, mergeable_state = %s",
                len(_check_runs(checks)), status.get("mergeable"), status.status,
                checks.status, status.get("mergeable_state"),
            )
            self._sleep(self._config.poll_interval)

            status = self.poll_pull_request(pr, status)
            checks = self.poll_checks(commit.sha, checks)
            _raise_on_failed_check(checks)

            attempts += 1
            if attempts > self._config.max_wait_attempts:
                raise AutoMergeTimeoutError(pr.html_url or f"#{pr.number}", attempts)

        logger.info(
            "Done waiting, checks = %d. mergeable = %s, mergeable_state = %s",
            len(_check_runs(checks)), status.get("mergeable"), status.get("mergeable_state"),
        )
        return status, checks

    def auto_merge(self, pr: PullRequest, commit: Commit) -> None:
        """Wait for checks, squash-merge *pr* and remove its branch."""
        self.wait_until_mergeable(pr, commit)
        self._client.put(f"/pulls/{pr.number}/merge", {"merge_method": "squash"})
        self._enter(MergeState.MERGED)
        self.delete_branch(pr.head_ref)

    def delete_branch(self, branch: str) -> bool:
        """Delete *branch* if it still exists.  Returns True if it was deleted.

        The remote may already have removed it (delete-branch-on-merge).
        """
        path = f"/git/refs/heads/{quote(branch)}"
        deleted = False
        if self._client.exists(path):
            # 422 means the ref vanished between the check and the delete.
            response = self._client.request("DELETE", path, ok_statuses=(404, 422))
            deleted = response.is_success
        self._enter(MergeState.BRANCH_DELETED)
        return deleted
