"""Shared helpers and the main CLI group."""

from __future__ import annotations

import json
import logging
import os
from contextlib import contextmanager
from pathlib import Path

import click
from dulwich.ignore import IgnoreFilter

from ..config import _ALIASES, PushConfig
from ..exceptions import TreePushError


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _status(ctx, msg):
    """Emit a status message to stderr when verbose mode (-v) is on."""
    if ctx.obj.get("verbose"):
        click.echo(msg, err=True)


@contextmanager
def _library_errors():
    """Report library errors as a clean CLI failure."""
    try:
        yield
    except TreePushError as exc:
        raise click.ClickException(str(exc))


def _load_config_file(path: str | None) -> dict:
    """Read a JSON push configuration, returning {} when *path* is None.

    camelCase keys are renamed to their snake_case form so command-line
    values merge onto the same keys.
    """
    if path is None:
        return {}
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as exc:
        raise click.ClickException(f"Invalid JSON in {path}: {exc}")
    if not isinstance(data, dict):
        raise click.ClickException(f"{path} must contain a JSON object")
    return {_ALIASES.get(k, k): v for k, v in data.items()}


def _merge_options(base: dict, overrides: dict) -> dict:
    """Overlay command-line values (skipping unset ones) onto file values."""
    result = dict(base)
    for key, value in overrides.items():
        if value is None or value == () or value == []:
            continue
        if isinstance(value, dict):
            result[key] = _merge_options(result.get(key) or {}, value)
        else:
            result[key] = value
    return result


def _build_config(data: dict) -> PushConfig:
    with _library_errors():
        try:
            return PushConfig.from_dict(data)
        except TypeError as exc:
            raise click.ClickException(f"Invalid configuration: {exc}")


def _exclude_filter(patterns: tuple[str, ...]) -> IgnoreFilter | None:
    """Build a gitignore-syntax filter from ``--exclude`` patterns."""
    if not patterns:
        return None
    return IgnoreFilter([p.encode("utf-8") for p in patterns])


def _read_local_files(local_path: str, exclude: tuple[str, ...] = ()) -> dict[str, str | bytes]:
    """Return {relative_path: value} for every file under *local_path*.

    UTF-8 text is returned as ``str`` (eligible for inline upload);
    anything else as ``bytes``.  Symlinked directories are not followed.
    *exclude* patterns use gitignore syntax; an excluded directory is
    not descended into.
    """
    base = Path(local_path)
    if not base.is_dir():
        raise click.ClickException(f"Not a directory: {local_path}")
    filt = _exclude_filter(exclude)
    result: dict[str, str | bytes] = {}
    for dirpath, dirnames, filenames in os.walk(base):
        rel_dir = Path(dirpath).relative_to(base).as_posix()
        prefix = "" if rel_dir == "." else rel_dir + "/"
        dirnames[:] = sorted(
            d for d in dirnames
            if not (Path(dirpath) / d).is_symlink()
            and not (filt and filt.is_ignored(f"{prefix}{d}/") is True)
        )
        for fname in sorted(filenames):
            rel = prefix + fname
            if filt and filt.is_ignored(rel) is True:
                continue
            data = (Path(dirpath) / fname).read_bytes()
            try:
                result[rel] = data.decode("utf-8")
            except UnicodeDecodeError:
                result[rel] = data
    return result


def _configure_logging(verbose: int) -> None:
    if not verbose:
        return
    logging.basicConfig(
        level=logging.DEBUG if verbose > 1 else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# Main group
# ---------------------------------------------------------------------------

@click.group()
@click.option("-v", "--verbose", count=True, help="Verbose output on stderr (-vv for HTTP detail).")
@click.pass_context
def main(ctx, verbose):
    """treepush: push many files to GitHub as one commit.

    Compares a local folder with a folder in a GitHub repository and
    writes only the difference: missing blobs are uploaded once, the
    tree is rebuilt in as few requests as possible, and a single commit
    is created.  The commit either moves the base branch or is opened
    (and optionally auto-merged) as a pull request.

    \b
    Quick start:
      export GITHUB_TOKEN=...
      treepush push ./site --owner me --repo web --base main --path public
      treepush push ./site --config push.json --pull-request --auto-merge
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    _configure_logging(verbose)
