"""Shared fixtures: an in-memory GitHub REST API behind httpx.MockTransport."""

import base64
import hashlib
import json

import httpx
import pytest

from treepush import PushConfig, TreePush
from treepush.client import GitHubClient

OWNER = "octo"
REPO = "site"
PREFIX = f"/repos/{OWNER}/{REPO}"


def git_sha(data: bytes) -> str:
    return hashlib.sha1(b"blob %d\x00" % len(data) + data).hexdigest()


def _subtree(mapping: dict[str, str], prefix: str) -> dict[str, str]:
    if not prefix:
        return dict(mapping)
    cut = len(prefix) + 1
    return {p[cut:]: s for p, s in mapping.items() if p.startswith(prefix + "/")}


class FakeGitHub:
    """Just enough of the git data, pulls and checks APIs for one repository.

    Trees are stored flat (``{path: blob_sha}``).  Pull request and check
    run answers follow scripts: each poll takes the next scripted value
    and the last one repeats.
    """

    def __init__(self):
        self.blobs: dict[str, bytes] = {}
        self.trees: dict[str, dict[str, str]] = {}
        self.commits: dict[str, dict] = {}
        self.refs: dict[str, str] = {}
        self.requests: list[tuple[str, str]] = []
        self.tree_posts: list[dict] = []
        self.pulls: dict[int, dict] = {}
        self.issue_patches: list[tuple[int, dict]] = []
        self.review_requests: list[tuple[int, dict]] = []
        self.merges: list[tuple[int, dict]] = []
        self.pr_states: list[str] = ["clean"]
        self.check_runs: list[list[dict]] = [[]]
        self.pr_polls = 0
        self.check_polls = 0
        self.truncate = False
        self.auto_delete_branch = False
        self.fail_blob_upload = False
        self.rate_remaining = 5000
        self._commit_counter = 0

    # -- helpers for tests ---------------------------------------------------

    def store_tree(self, mapping: dict[str, str]) -> str:
        sha = hashlib.sha1(json.dumps(sorted(mapping.items())).encode()).hexdigest()
        self.trees[sha] = dict(mapping)
        return sha

    def store_commit(self, tree_sha: str, parents: list[str], message: str = "") -> str:
        self._commit_counter += 1
        sha = hashlib.sha1(f"{tree_sha}{parents}{message}{self._commit_counter}".encode()).hexdigest()
        self.commits[sha] = {"tree": tree_sha, "parents": list(parents), "message": message}
        return sha

    def seed(self, branch: str = "main", files: dict | None = None) -> str:
        mapping = {}
        for path, value in (files or {}).items():
            data = value.encode() if isinstance(value, str) else value
            sha = git_sha(data)
            self.blobs[sha] = data
            mapping[path] = sha
        commit = self.store_commit(self.store_tree(mapping), [], "init")
        self.refs[branch] = commit
        return commit

    def tree_of(self, ref: str) -> dict[str, str]:
        commit = self.refs.get(ref, ref)
        return self.trees[self.commits[commit]["tree"]]

    def files(self, branch: str = "main") -> dict[str, bytes]:
        return {p: self.blobs[s] for p, s in self.tree_of(branch).items()}

    def count(self, method: str, path_start: str) -> int:
        return sum(1 for m, p in self.requests if m == method and p.startswith(path_start))

    # -- transport -----------------------------------------------------------

    def _json(self, status: int, data=None, headers=None) -> httpx.Response:
        self.rate_remaining -= 1
        h = {"x-ratelimit-remaining": str(self.rate_remaining)}
        h.update(headers or {})
        if data is None:
            return httpx.Response(status, headers=h)
        h["content-type"] = "application/json; charset=utf-8"
        return httpx.Response(status, headers=h, content=json.dumps(data).encode())

    def _not_found(self):
        return self._json(404, {"message": "Not Found"})

    def handle(self, request: httpx.Request) -> httpx.Response:
        method = request.method
        path = request.url.path
        assert path.startswith(PREFIX), path
        path = path[len(PREFIX):]
        self.requests.append((method, path))
        body = json.loads(request.content) if request.content else None

        if path.startswith("/contents/"):
            return self._contents(path[len("/contents/"):], request.url.params.get("ref"))
        if path.startswith("/git/trees"):
            if method == "POST":
                return self._create_tree(body)
            return self._get_tree(path[len("/git/trees/"):], request.url.params.get("recursive"))
        if path.startswith("/git/refs/heads/"):
            return self._ref(method, path[len("/git/refs/heads/"):], body)
        if path == "/git/refs" and method == "POST":
            branch = body["ref"][len("refs/heads/"):]
            if branch in self.refs:
                return self._json(422, {"message": "Reference already exists"})
            self.refs[branch] = body["sha"]
            return self._json(201, {"ref": body["ref"], "object": {"sha": body["sha"]}})
        if path.startswith("/git/commits"):
            if method == "POST":
                return self._create_commit(body)
            sha = path[len("/git/commits/"):]
            if sha not in self.commits:
                return self._not_found()
            return self._json(200, {"sha": sha, "tree": {"sha": self.commits[sha]["tree"]}})
        if path.startswith("/git/blobs"):
            return self._blob(method, path, body)
        if path.startswith("/compare/"):
            return self._compare(path[len("/compare/"):])
        if path.startswith("/pulls"):
            return self._pulls(method, path, body, request.headers.get("if-none-match"))
        if path.startswith("/issues/") and method == "PATCH":
            self.issue_patches.append((int(path.split("/")[2]), body))
            return self._json(200, {"number": int(path.split("/")[2])})
        if path.startswith("/commits/") and path.endswith("/check-runs"):
            return self._checks(request.headers.get("if-none-match"))
        raise AssertionError(f"unexpected request {method} {path}")

    def _contents(self, parent: str, ref: str):
        if ref not in self.refs:
            return self._not_found()
        root = self.tree_of(ref)
        sub = _subtree(root, parent)
        if parent and not sub:
            return self._not_found()
        listing, seen = [], set()
        for rel in sub:
            name = rel.split("/", 1)[0]
            if name in seen:
                continue
            seen.add(name)
            full = f"{parent}/{name}" if parent else name
            if name in sub:
                listing.append({"name": name, "path": full, "sha": sub[name], "type": "file"})
            else:
                listing.append({"name": name, "path": full, "sha": self.store_tree(_subtree(sub, name)), "type": "dir"})
        return self._json(200, listing)

    def _get_tree(self, ref: str, recursive):
        if ref in self.refs or ref in self.commits:
            tree_sha = self.commits[self.refs.get(ref, ref)]["tree"]
        elif ref in self.trees:
            tree_sha = ref
        else:
            return self._not_found()
        mapping = self.trees[tree_sha]
        rows, dirs = [], set()
        for p, s in mapping.items():
            parts = p.split("/")
            for i in range(1, len(parts)):
                dirs.add("/".join(parts[:i]))
            if recursive or len(parts) == 1:
                rows.append({"path": p, "mode": "100644", "type": "blob", "sha": s})
        for d in sorted(dirs):
            if recursive or "/" not in d:
                rows.append({"path": d, "mode": "040000", "type": "tree", "sha": self.store_tree(_subtree(mapping, d))})
        return self._json(200, {"sha": tree_sha, "tree": rows, "truncated": self.truncate})

    def _create_tree(self, body):
        self.tree_posts.append(body)
        mapping = dict(self.trees.get(body.get("base_tree"), {}))
        for row in body["tree"]:
            if "content" in row:
                data = row["content"].encode()
                sha = git_sha(data)
                self.blobs[sha] = data
                mapping[row["path"]] = sha
            elif row["sha"] is None:
                mapping.pop(row["path"], None)
            else:
                if row["sha"] not in self.blobs:
                    return self._json(422, {"message": f"Invalid sha {row['sha']}"})
                mapping[row["path"]] = row["sha"]
        return self._json(201, {"sha": self.store_tree(mapping)})

    def _create_commit(self, body):
        sha = self.store_commit(body["tree"], body["parents"], body["message"])
        return self._json(201, {
            "sha": sha,
            "html_url": f"https://github.com/{OWNER}/{REPO}/commit/{sha}",
            "tree": {"sha": body["tree"]},
            "parents": [{"sha": p} for p in body["parents"]],
        })

    def _ref(self, method, branch, body):
        if method == "HEAD":
            return self._json(200 if branch in self.refs else 404)
        if branch not in self.refs:
            if method == "DELETE":
                return self._json(422, {"message": "Reference does not exist"})
            return self._not_found()
        if method == "GET":
            return self._json(200, {"ref": f"refs/heads/{branch}", "object": {"sha": self.refs[branch]}})
        if method == "PATCH":
            if self.refs[branch] not in self.commits[body["sha"]]["parents"]:
                return self._json(422, {"message": "Update is not a fast forward"})
            self.refs[branch] = body["sha"]
            return self._json(200, {"ref": f"refs/heads/{branch}", "object": {"sha": body["sha"]}})
        if method == "DELETE":
            del self.refs[branch]
            return self._json(204)
        raise AssertionError(method)

    def _blob(self, method, path, body):
        if method == "HEAD":
            return self._json(200 if path[len("/git/blobs/"):] in self.blobs else 404)
        if self.fail_blob_upload:
            return self._json(422, {"message": "blob rejected"})
        data = base64.b64decode(body["content"])
        sha = git_sha(data)
        self.blobs[sha] = data
        return self._json(201, {"sha": sha})

    def _compare(self, span):
        a, b = span.split("...")
        ta, tb = self.tree_of(a), self.tree_of(b)
        files = []
        for p in sorted(set(ta) | set(tb)):
            if p not in ta:
                files.append({"filename": p, "status": "added"})
            elif p not in tb:
                files.append({"filename": p, "status": "removed"})
            elif ta[p] != tb[p]:
                files.append({"filename": p, "status": "modified"})
        return self._json(200, {"files": files})

    def _pulls(self, method, path, body, if_none_match):
        parts = path.split("/")
        if path == "/pulls" and method == "POST":
            number = len(self.pulls) + 1
            self.pulls[number] = body
            return self._json(201, {
                "number": number,
                "html_url": f"https://github.com/{OWNER}/{REPO}/pull/{number}",
                "head": {"ref": body["head"]},
            })
        number = int(parts[2])
        if len(parts) == 4 and parts[3] == "requested_reviewers":
            self.review_requests.append((number, body))
            return self._json(201, {"number": number})
        if len(parts) == 4 and parts[3] == "merge":
            self.merges.append((number, body))
            if self.auto_delete_branch:
                self.refs.pop(self.pulls[number]["head"], None)
            return self._json(200, {"merged": True})
        state = self.pr_states[min(self.pr_polls, len(self.pr_states) - 1)]
        self.pr_polls += 1
        etag = f'"pr-{state}"'
        if if_none_match == etag:
            return self._json(304, headers={"etag": etag})
        return self._json(200, {
            "number": number,
            "mergeable": state not in ("unknown", "dirty"),
            "mergeable_state": state,
        }, headers={"etag": etag})

    def _checks(self, if_none_match):
        runs = self.check_runs[min(self.check_polls, len(self.check_runs) - 1)]
        self.check_polls += 1
        etag = '"checks-%s"' % hashlib.sha1(json.dumps(runs, sort_keys=True).encode()).hexdigest()[:12]
        if if_none_match == etag:
            return self._json(304, headers={"etag": etag})
        return self._json(200, {"total_count": len(runs), "check_runs": runs}, headers={"etag": etag})


def run(status, conclusion=None, name="ci"):
    """A check run as the checks API reports it."""
    return {
        "name": name,
        "status": status,
        "conclusion": conclusion,
        "html_url": f"https://github.com/{OWNER}/{REPO}/runs/{name}",
    }


@pytest.fixture
def fake():
    return FakeGitHub()


@pytest.fixture
def sleeps():
    """Recorded sleep calls; the real delay is skipped."""
    return []


@pytest.fixture
def client(fake, sleeps):
    c = GitHubClient("tok", OWNER, REPO, transport=httpx.MockTransport(fake.handle), sleep=sleeps.append)
    yield c
    c.close()


@pytest.fixture
def make_push(fake, sleeps):
    """Factory: TreePush against *fake* with the given config overrides."""
    created = []

    def _make(**overrides):
        options = {"owner": OWNER, "repo": REPO, "base": "main"}
        options.update(overrides)
        tp = TreePush("tok", PushConfig(**options),
                      transport=httpx.MockTransport(fake.handle), sleep=sleeps.append)
        created.append(tp)
        return tp

    yield _make
    for tp in created:
        tp.close()
