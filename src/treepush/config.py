"""Push configuration.

Optional pull-request sub-options are explicit dataclasses where
``None`` means "not supplied"; nothing is deleted from a dict at run time.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .exceptions import ConfigError

__all__ = [
    "PushConfig", "PullRequestOptions", "ReviewOptions", "IssueOptions",
    "DEFAULT_PULL_REQUEST_TITLE", "DEFAULT_MAX_TREE_BYTES",
]

DEFAULT_PULL_REQUEST_TITLE = "Tree Push Pull Request"

# Largest serialized tree payload sent in one create-tree request.
DEFAULT_MAX_TREE_BYTES = 9_000_000

# Alternate spellings accepted by from_dict().
_ALIASES = {
    "deleteOtherFiles": "delete_other_files",
    "contentToBlobBytes": "content_to_blob_bytes",
    "commitMessage": "commit_message",
    "pullRequest": "pull_request",
    "pullRequestOptions": "pull_request_options",
}


def _drop_none(d: dict) -> dict:
    return {k: v for k, v in d.items() if v is not None}


def _known_keys(cls, data: Mapping[str, Any], where: str) -> dict:
    allowed = set(cls.__dataclass_fields__)
    out = {}
    for key, value in data.items():
        key = _ALIASES.get(key, key)
        if key not in allowed:
            raise ConfigError(f"Unknown {where} option: {key!r}")
        out[key] = value
    return out


@dataclass
class ReviewOptions:
    """Reviewers to request on the pull request."""

    reviewers: list[str] | None = None
    team_reviewers: list[str] | None = None

    def payload(self) -> dict:
        return _drop_none({"reviewers": self.reviewers, "team_reviewers": self.team_reviewers})


@dataclass
class IssueOptions:
    """Issue fields patched onto the pull request after it is opened."""

    labels: list[str] | None = None
    assignees: list[str] | None = None
    milestone: int | None = None

    def payload(self) -> dict:
        return _drop_none({"labels": self.labels, "assignees": self.assignees, "milestone": self.milestone})


@dataclass
class PullRequestOptions:
    """Options used when pushing through a pull request.

    Attributes:
        title: PR title.  Falls back to ``DEFAULT_PULL_REQUEST_TITLE``
            when neither *title* nor *issue* is given.
        issue: Issue number the pull request replaces.
        body: PR description.
        draft: Open the PR as a draft.
        maintainer_can_modify: Let maintainers push to the PR branch.
        review_options: Reviewers to request.
        issue_options: Labels, assignees and milestone to set.
        automatic_merge: Wait for checks and squash-merge the PR.
        automatic_merge_delay: Milliseconds to wait before the first poll.
    """

    title: str | None = None
    issue: int | None = None
    body: str | None = None
    draft: bool | None = None
    maintainer_can_modify: bool | None = None
    review_options: ReviewOptions | None = None
    issue_options: IssueOptions | None = None
    automatic_merge: bool = False
    automatic_merge_delay: int | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PullRequestOptions:
        kw = _known_keys(cls, data, "pull_request_options")
        if isinstance(kw.get("review_options"), Mapping):
            kw["review_options"] = ReviewOptions(**_known_keys(ReviewOptions, kw["review_options"], "review_options"))
        if isinstance(kw.get("issue_options"), Mapping):
            kw["issue_options"] = IssueOptions(**_known_keys(IssueOptions, kw["issue_options"], "issue_options"))
        return cls(**kw)

    def create_payload(self, head: str, base: str) -> dict:
        """Body of the create-pull-request call."""
        payload = {"head": head, "base": base}
        payload.update(_drop_none({
            "title": self.title,
            "issue": self.issue,
            "body": self.body,
            "draft": self.draft,
            "maintainer_can_modify": self.maintainer_can_modify,
        }))
        if not self.title and not self.issue:
            payload["title"] = DEFAULT_PULL_REQUEST_TITLE
        return payload


@dataclass
class PushConfig:
    """Describes the push target and how changes reach the base branch.

    Attributes:
        owner: Repository owner.
        repo: Repository name.
        base: Branch the push is based on (and merged into).
        path: Folder in the repo that staged paths are relative to.
            Empty means the repository root.
        recursive: Compare sub-folders of *path* too.
        delete_other_files: Delete remote files under *path* that were
            not staged.
        content_to_blob_bytes: Inline text larger than this many bytes
            is uploaded as a separate blob.
        commit_message: Message for the commit.
        pull_request: Go through a pull request instead of moving *base*.
        pull_request_options: See :class:`PullRequestOptions`.
    """

    owner: str
    repo: str
    base: str
    path: str = ""
    recursive: bool = True
    delete_other_files: bool = False
    content_to_blob_bytes: int = 1000
    commit_message: str | None = None
    pull_request: bool = False
    pull_request_options: PullRequestOptions = field(default_factory=PullRequestOptions)
    max_tree_bytes: int = DEFAULT_MAX_TREE_BYTES
    poll_interval: float = 1.0
    max_wait_attempts: int = 100
    max_workers: int = 8

    def __post_init__(self):
        for name in ("owner", "repo", "base"):
            if not getattr(self, name):
                raise ConfigError(f"{name!r} is required")
        self.path = (self.path or "").strip("/")
        if self.content_to_blob_bytes < 0:
            raise ConfigError("content_to_blob_bytes must not be negative")
        if self.max_tree_bytes <= 0:
            raise ConfigError("max_tree_bytes must be positive")
        if self.pull_request_options is None:
            self.pull_request_options = PullRequestOptions()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PushConfig:
        """Build a config from a plain mapping (e.g. a parsed JSON file).

        Both ``delete_other_files`` and ``deleteOtherFiles`` style keys
        are accepted.
        """
        kw = _known_keys(cls, data, "push")
        pr = kw.get("pull_request_options")
        if isinstance(pr, Mapping):
            kw["pull_request_options"] = PullRequestOptions.from_dict(pr)
        for name in ("owner", "repo", "base"):
            if not kw.get(name):
                raise ConfigError(f"{name!r} is required")
        return cls(**kw)

    def repo_path(self, rel: str) -> str:
        """Map a path relative to :attr:`path` to a repository path."""
        return f"{self.path}/{rel}" if self.path else rel
