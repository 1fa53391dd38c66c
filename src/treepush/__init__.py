from .push import TreePush
from .config import PushConfig, PullRequestOptions, ReviewOptions, IssueOptions
from .stage import FileEntry, FileStage
from .stats import RunStats
from .tree import TreeRow, RemoteSnapshot, SyncPlan
from .merge import MergeState
from .digest import blob_id
from .exceptions import (
    TreePushError, ConfigError, AuthMissingError, RemoteRequestFailedError,
    UnexpectedContentTypeError, TreeTooLargeError, AutoMergeCheckFailedError,
    AutoMergeTimeoutError,
)

__all__ = [
    "TreePush", "PushConfig", "PullRequestOptions", "ReviewOptions", "IssueOptions",
    "FileEntry", "FileStage", "RunStats", "TreeRow", "RemoteSnapshot", "SyncPlan",
    "MergeState", "blob_id",
    "TreePushError", "ConfigError", "AuthMissingError", "RemoteRequestFailedError",
    "UnexpectedContentTypeError", "TreeTooLargeError", "AutoMergeCheckFailedError",
    "AutoMergeTimeoutError",
]
