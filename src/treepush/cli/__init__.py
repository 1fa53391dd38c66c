"""treepush CLI: push a local folder to GitHub as a single commit."""

from ._helpers import main  # noqa: F401  (entry point)

# Import command modules to register Click commands with the main group.
from . import _push  # noqa: F401
