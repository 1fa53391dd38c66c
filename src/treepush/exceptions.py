"""Exceptions for treepush."""


class TreePushError(Exception):
    """Base class for every error raised by treepush."""


class ConfigError(TreePushError, ValueError):
    """Raised when a push configuration is missing a required field or is malformed."""


class AuthMissingError(TreePushError):
    """Raised when a request would be sent without an Authorization header."""


class RemoteRequestFailedError(TreePushError):
    """Raised when the remote answers with a status the caller did not expect.

    Transient failures have already been retried by the client by the
    time this is raised.
    """

    def __init__(self, status: int, url: str, body: str, reason: str = ""):
        self.status = status
        self.url = url
        self.body = body
        self.reason = reason
        super().__init__(f"{status} - {reason} - {url} - {body}")


class UnexpectedContentTypeError(TreePushError):
    """Raised when a JSON answer was expected but something else came back."""

    def __init__(self, content_type: str | None, body: str):
        self.content_type = content_type
        self.body = body
        super().__init__(f"Non-JSON content type - {content_type}\n\nContent...\n\n{body}")


class TreeTooLargeError(TreePushError):
    """Raised when the remote truncates a tree listing.

    Narrow the push to a sub-path instead of retrying.
    """


class AutoMergeCheckFailedError(TreePushError):
    """Raised when a check run concludes with ``failure`` while waiting to merge."""

    def __init__(self, url: str):
        self.url = url
        super().__init__(f"Auto Merge Check run failed - {url}")


class AutoMergeTimeoutError(TreePushError):
    """Raised when a pull request is still not mergeable after the wait ceiling."""

    def __init__(self, url: str, attempts: int):
        self.url = url
        self.attempts = attempts
        super().__init__(f"Auto Merge waited too long ({attempts} attempts) - {url}")
