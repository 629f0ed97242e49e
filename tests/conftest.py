# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Bareforge Contributors

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Any
from urllib.parse import parse_qs

import httpx
import pytest
from dulwich.objects import Blob, Commit, Tree
from dulwich.repo import Repo

from bareforge.services.forge import LocalForge
from bareforge.services.git_resolver import GitResolver
from bareforge.services.identity import OIDCIdentityBridge

BASE_URL = "https://ci.example.com/git"
ISSUER = "https://id.example.com/realms/ci"
CLIENT_ID = "bareforge-client"
CLIENT_SECRET = "s3cret"
REDIRECT_URL = "https://ci.example.com/authorize"
GOOD_CODE = "good-code"
ACCESS_TOKEN = "access-123"

# ---------------------------------------------------------------------------
# Bare repositories
# ---------------------------------------------------------------------------


def _write_tree(repo: Repo, node: dict[str, Any]) -> bytes:
    tree = Tree()
    for name, value in node.items():
        if isinstance(value, dict):
            tree.add(name.encode(), 0o040000, _write_tree(repo, value))
        else:
            blob = Blob.from_string(value)
            repo.object_store.add_object(blob)
            tree.add(name.encode(), 0o100644, blob.id)
    repo.object_store.add_object(tree)
    return tree.id


class BareRepoFactory:
    """Build bare repositories with dulwich objects, without a working tree."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self._clock = 1_700_000_000

    def init(self, name: str) -> Path:
        path = self.root / f"{name}.git"
        repo = Repo.init_bare(str(path), mkdir=True)
        repo.close()
        return path

    def commit(
        self,
        name: str,
        files: dict[str, bytes],
        *,
        branch: str = "main",
        message: str = "commit",
    ) -> str:
        """Commit ``files`` (path -> bytes) on ``branch`` and return the sha."""
        path = self.root / f"{name}.git"
        if not path.exists():
            self.init(name)

        nested: dict[str, Any] = {}
        for file_path, data in files.items():
            parts = file_path.split("/")
            node = nested
            for part in parts[:-1]:
                node = node.setdefault(part, {})
            node[parts[-1]] = data

        repo = Repo(str(path))
        try:
            ref = f"refs/heads/{branch}".encode()
            parents = [repo.refs[ref]] if ref in repo.refs else []

            commit = Commit()
            commit.tree = _write_tree(repo, nested)
            commit.parents = parents
            commit.author = commit.committer = b"Test Author <author@example.com>"
            self._clock += 60
            commit.author_time = commit.commit_time = self._clock
            commit.author_timezone = commit.commit_timezone = 0
            commit.encoding = b"UTF-8"
            commit.message = message.encode() + b"\n"
            repo.object_store.add_object(commit)
            repo.refs[ref] = commit.id
            return commit.id.decode("ascii")
        finally:
            repo.close()


def drop_loose_blob(repo_path: Path, data: bytes) -> str:
    """Delete the loose object holding ``data``, leaving trees that name it."""
    sha = Blob.from_string(data).id.decode("ascii")
    (repo_path / "objects" / sha[:2] / sha[2:]).unlink()
    return sha


PROJ_FILES = {
    "README.md": b"# proj\n\nA test project.\n",
    ".woodpecker/build.yml": b"steps:\n  build:\n    image: alpine\n",
    ".woodpecker/test.yml": b"steps:\n  test:\n    image: alpine\n",
    ".woodpecker/nested/deep.yml": b"steps: {}\n",
    "a/top.txt": b"top\n",
    "a/b/c.txt": b"deep\n",
    "logo.bin": bytes(range(256)),
}


@pytest.fixture
def repo_dir(tmp_path: Path) -> Path:
    path = tmp_path / "repos"
    path.mkdir()
    return path


@pytest.fixture
def bare_repos(repo_dir: Path) -> BareRepoFactory:
    return BareRepoFactory(repo_dir)


@pytest.fixture
def proj(bare_repos: BareRepoFactory) -> dict[str, str]:
    """Repository ``proj`` with ``main`` and ``feature/x``; returns branch -> sha."""
    main_sha = bare_repos.commit("proj", PROJ_FILES, message="initial")
    feature_files = dict(PROJ_FILES)
    feature_files["feature.txt"] = b"feature work\n"
    feature_sha = bare_repos.commit(
        "proj", feature_files, branch="feature/x", message="feature"
    )
    return {"main": main_sha, "feature/x": feature_sha}


@pytest.fixture
def resolver(repo_dir: Path) -> GitResolver:
    return GitResolver(repo_dir)


# ---------------------------------------------------------------------------
# OIDC provider
# ---------------------------------------------------------------------------


class FakeProvider:
    """In-process OIDC provider served through ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.claims: dict[str, Any] = {
            "sub": "1234",
            "profile": "jdoe",
            "email": "jdoe@example.com",
        }
        self.discovery: dict[str, Any] = {
            "issuer": ISSUER,
            "authorization_endpoint": f"{ISSUER}/protocol/openid-connect/auth",
            "token_endpoint": f"{ISSUER}/protocol/openid-connect/token",
            "userinfo_endpoint": f"{ISSUER}/protocol/openid-connect/userinfo",
        }
        self.discovery_status = 200
        self.token_response: dict[str, Any] = {
            "access_token": ACCESS_TOKEN,
            "refresh_token": "refresh-456",
            "token_type": "Bearer",
            "expires_in": 300,
        }
        self.requests: list[httpx.Request] = []

    def paths(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/realms/ci/.well-known/openid-configuration":
            return httpx.Response(self.discovery_status, json=self.discovery)
        if path == "/realms/ci/protocol/openid-connect/token":
            form = parse_qs(request.content.decode())
            if form.get("code") != [GOOD_CODE]:
                return httpx.Response(400, json={"error": "invalid_grant"})
            return httpx.Response(200, json=self.token_response)
        if path == "/realms/ci/protocol/openid-connect/userinfo":
            if request.headers.get("Authorization") != f"Bearer {ACCESS_TOKEN}":
                return httpx.Response(401, json={"error": "invalid_token"})
            return httpx.Response(
                200,
                content=json.dumps(self.claims).encode(),
                headers={"Content-Type": "application/json"},
            )
        return httpx.Response(404)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def identity(provider: FakeProvider) -> OIDCIdentityBridge:
    return OIDCIdentityBridge(
        client_id=CLIENT_ID,
        client_secret=CLIENT_SECRET,
        provider_url=ISSUER,
        redirect_url=REDIRECT_URL,
        timeout=5.0,
        transport=httpx.MockTransport(provider.handler),
    )


@pytest.fixture
def forge(resolver: GitResolver, identity: OIDCIdentityBridge) -> LocalForge:
    return LocalForge(base_url=BASE_URL, resolver=resolver, identity=identity)


@pytest.fixture
def restore_root_logger() -> Iterator[None]:
    """Undo ``setup_logging`` side effects on the root and httpx loggers."""
    root = logging.getLogger()
    httpx_logger = logging.getLogger("httpx")
    handlers = list(root.handlers)
    levels = (root.level, httpx_logger.level)
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(levels[0])
    httpx_logger.setLevel(levels[1])
