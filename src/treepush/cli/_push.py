"""The push command."""

from __future__ import annotations

import json

import click

from ..credentials import resolve_token
from ..merge import MergeState
from ..push import TreePush
from ._helpers import (
    main,
    _build_config,
    _library_errors,
    _load_config_file,
    _merge_options,
    _read_local_files,
    _status,
)


@main.command()
@click.argument("local_path", type=click.Path(exists=True, file_okay=False))
@click.option("--config", "config_file", type=click.Path(exists=True, dir_okay=False),
              help="JSON file with push options (command-line values win).")
@click.option("--token", envvar="GITHUB_TOKEN",
              help="GitHub token (or set GITHUB_TOKEN; falls back to 'gh auth token').")
@click.option("--owner", help="Repository owner.")
@click.option("--repo", help="Repository name.")
@click.option("--base", "-b", help="Base branch to push to.")
@click.option("--path", "path", help="Folder in the repository to sync (default: root).")
@click.option("--recursive/--no-recursive", default=None,
              help="Compare sub-folders too (default: recursive).")
@click.option("--delete-other-files/--keep-other-files", "delete_other_files", default=None,
              help="Delete remote files in the folder that are not staged.")
@click.option("--content-to-blob-bytes", type=int, default=None,
              help="Upload text larger than this many bytes as a separate blob (default: 1000).")
@click.option("-m", "--message", "commit_message", default=None, help="Commit message.")
@click.option("--exclude", multiple=True, help="Skip local files matching this glob (repeatable).")
@click.option("--ignore", "ignore_paths", multiple=True,
              help="Leave this remote path untouched, even with --delete-other-files (repeatable).")
@click.option("--pull-request/--direct", "pull_request", default=None,
              help="Open a pull request instead of moving the base branch.")
@click.option("--title", default=None, help="Pull request title.")
@click.option("--body", default=None, help="Pull request body.")
@click.option("--issue", type=int, default=None, help="Issue number the pull request replaces.")
@click.option("--draft/--no-draft", default=None, help="Open the pull request as a draft.")
@click.option("--label", "labels", multiple=True, help="Label to set on the pull request (repeatable).")
@click.option("--assignee", "assignees", multiple=True, help="Assignee login (repeatable).")
@click.option("--milestone", type=int, default=None, help="Milestone number.")
@click.option("--reviewer", "reviewers", multiple=True, help="Reviewer login (repeatable).")
@click.option("--team-reviewer", "team_reviewers", multiple=True, help="Reviewer team slug (repeatable).")
@click.option("--auto-merge/--no-auto-merge", "automatic_merge", default=None,
              help="Wait for checks, then squash-merge the pull request.")
@click.option("--auto-merge-delay", "automatic_merge_delay", type=int, default=None,
              help="Milliseconds to wait before polling for mergeability.")
@click.option("--dry-run", "-n", is_flag=True, default=False,
              help="Show what would change without writing anything.")
@click.option("--json", "as_json", is_flag=True, default=False,
              help="Print run statistics as JSON.")
@click.pass_context
def push(ctx, local_path, config_file, token, owner, repo, base, path, recursive,
         delete_other_files, content_to_blob_bytes, commit_message, exclude, ignore_paths,
         pull_request, title, body, issue, draft, labels, assignees, milestone,
         reviewers, team_reviewers, automatic_merge, automatic_merge_delay,
         dry_run, as_json):
    """Make a folder in a GitHub repository match LOCAL_PATH in one commit.

    \b
    Examples:
        treepush push ./out --owner me --repo data --base main --path daily
        treepush push ./out --config push.json --pull-request --label bot
        treepush push ./out --config push.json --dry-run
    """
    overrides = {
        "owner": owner,
        "repo": repo,
        "base": base,
        "path": path,
        "recursive": recursive,
        "delete_other_files": delete_other_files,
        "content_to_blob_bytes": content_to_blob_bytes,
        "commit_message": commit_message,
        "pull_request": pull_request,
        "pull_request_options": {
            "title": title,
            "body": body,
            "issue": issue,
            "draft": draft,
            "automatic_merge": automatic_merge,
            "automatic_merge_delay": automatic_merge_delay,
            "issue_options": {
                "labels": list(labels),
                "assignees": list(assignees),
                "milestone": milestone,
            },
            "review_options": {
                "reviewers": list(reviewers),
                "team_reviewers": list(team_reviewers),
            },
        },
    }
    data = _merge_options(_load_config_file(config_file), overrides)
    pr_options = data.get("pull_request_options") or {}
    for key in ("issue_options", "review_options"):
        if key in pr_options and not pr_options[key]:
            del pr_options[key]
    config = _build_config(data)

    token = resolve_token(token)
    if not token:
        raise click.ClickException(
            "No GitHub token found. Use --token, set GITHUB_TOKEN, or run 'gh auth login'."
        )

    files = _read_local_files(local_path, exclude)
    _status(ctx, f"Staged {len(files)} files from {local_path}")

    with TreePush(token, config) as tp:
        tp.add_map(files)
        for p in ignore_paths:
            tp.ignore(p)

        with _library_errors():
            if dry_run:
                plan = tp.plan()
                if as_json:
                    click.echo(json.dumps({"add": plan.add, "update": plan.update, "delete": plan.delete}, indent=2))
                    return
                for label, paths in (("+", plan.add), ("~", plan.update), ("-", plan.delete)):
                    for p in paths:
                        click.echo(f"{label} {p}")
                if plan.in_sync:
                    click.echo("Nothing to push.")
                return

            stats = tp.push()

    if as_json:
        click.echo(json.dumps(stats.as_dict(), indent=2))
        return
    if stats.state == MergeState.NO_CHANGE:
        click.echo("Nothing to push.")
        return
    if stats.pull_request_url:
        click.echo(stats.pull_request_url)
    elif stats.commit_url:
        click.echo(stats.commit_url)
    _status(ctx, f"{stats.tree_operations} tree operations, {stats.blobs_uploaded} blobs uploaded")
