"""Locate a GitHub token for API calls."""

from __future__ import annotations

import os
import subprocess

__all__ = ["resolve_token"]


def resolve_token(token: str | None = None, *, hostname: str = "github.com") -> str | None:
    """Return a bearer token for the REST API, or None if none is available.

    Tries, in order: the explicit *token*, the ``GITHUB_TOKEN`` and
    ``GH_TOKEN`` environment variables, then ``gh auth token``.
    """
    if token:
        return token

    for var in ("GITHUB_TOKEN", "GH_TOKEN"):
        value = os.environ.get(var)
        if value:
            return value

    try:
        proc = subprocess.run(
            ["gh", "auth", "token", "--hostname", hostname],
            capture_output=True, text=True, timeout=5,
        )
        found = proc.stdout.strip()
        if proc.returncode == 0 and found:
            return found
    except (FileNotFoundError, subprocess.TimeoutExpired):
        pass

    return None
