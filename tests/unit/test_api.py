# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Bareforge Contributors

from __future__ import annotations

import base64
from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from bareforge.main import create_app
from bareforge.schemas.forge import Org, User
from bareforge.services.forge import LocalForge, get_forge
from tests.conftest import (
    ACCESS_TOKEN,
    BASE_URL,
    GOOD_CODE,
    PROJ_FILES,
    drop_loose_blob,
)


class _ExplodingForge(LocalForge):
    async def org(self, user: User | None, org: str) -> Org:
        raise RuntimeError("disk on fire")


@pytest.fixture
def app(forge: LocalForge) -> FastAPI:
    application = create_app()
    application.dependency_overrides[get_forge] = lambda: forge
    return application


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    # Not entered as a context manager: the lifespan would load real settings.
    yield TestClient(app)


# -- Service -------------------------------------------------------------------


class TestServiceEndpoints:
    def test_health(self, client: TestClient) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "healthy"}

    def test_forge_info(self, client: TestClient) -> None:
        resp = client.get("/forge")
        assert resp.json() == {"name": "bareforge", "url": BASE_URL}


# -- Auth ----------------------------------------------------------------------


class TestAuthEndpoints:
    def test_login_redirect_phase(self, client: TestClient) -> None:
        resp = client.post("/auth/login", json={"state": "abc"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["user"] is None
        assert "state=abc" in body["redirect_url"]

    def test_login_callback_phase(self, client: TestClient) -> None:
        resp = client.post("/auth/login", json={"code": GOOD_CODE, "state": "abc"})
        assert resp.status_code == 200
        user = resp.json()["user"]
        assert user["login"] == "jdoe"
        assert user["forge_remote_id"] == "jdoe"
        assert user["access_token"] == ACCESS_TOKEN

    def test_login_upstream_failure_names_stage(self, client: TestClient) -> None:
        resp = client.post("/auth/login", json={"code": "stolen"})
        assert resp.status_code == 502
        body = resp.json()
        assert body["type"] == "TokenExchangeError"
        assert body["stage"] == "exchange"

    def test_verify_requires_bearer(self, client: TestClient) -> None:
        resp = client.post("/auth/verify")
        assert resp.status_code == 401

    def test_verify(self, client: TestClient) -> None:
        resp = client.post(
            "/auth/verify", headers={"Authorization": f"Bearer {ACCESS_TOKEN}"}
        )
        assert resp.status_code == 200
        assert resp.json() == {"login": "jdoe"}

    def test_verify_rejected_token(self, client: TestClient) -> None:
        resp = client.post("/auth/verify", headers={"Authorization": "Bearer forged"})
        assert resp.status_code == 502
        assert resp.json()["stage"] == "userinfo"


# -- Repositories --------------------------------------------------------------


class TestRepoEndpoints:
    def test_list_repos(self, client: TestClient, proj: dict[str, str]) -> None:
        resp = client.get("/repos")
        assert resp.status_code == 200
        (repo,) = resp.json()
        assert repo["name"] == "proj"
        assert repo["clone_url"] == f"{BASE_URL}/proj.git"
        assert client.get("/repos", params={"page": 2}).json() == []

    def test_get_repo(self, client: TestClient, proj: dict[str, str]) -> None:
        resp = client.get("/repos/proj")
        assert resp.status_code == 200
        assert resp.json()["forge_url"] == f"{BASE_URL}/proj"

    def test_missing_repo_is_404(self, client: TestClient) -> None:
        resp = client.get("/repos/ghost")
        assert resp.status_code == 404
        assert resp.json()["type"] == "RepositoryNotFoundError"

    def test_missing_repo_on_nested_route(self, client: TestClient) -> None:
        resp = client.get("/repos/ghost/branches")
        assert resp.status_code == 404

    def test_branches(self, client: TestClient, proj: dict[str, str]) -> None:
        resp = client.get("/repos/proj/branches")
        assert resp.json() == ["feature/x", "main"]

    def test_branch_head(self, client: TestClient, proj: dict[str, str]) -> None:
        resp = client.get("/repos/proj/head", params={"branch": "feature/x"})
        assert resp.status_code == 200
        assert resp.json() == {"sha": proj["feature/x"], "forge_url": f"{BASE_URL}/proj"}

    def test_unknown_branch_is_404(self, client: TestClient, proj: dict[str, str]) -> None:
        resp = client.get("/repos/proj/head", params={"branch": "nope"})
        assert resp.status_code == 404
        assert resp.json()["type"] == "BranchNotFoundError"

    def test_file_bytes(self, client: TestClient, proj: dict[str, str]) -> None:
        resp = client.get(
            "/repos/proj/file", params={"commit": proj["main"], "path": "logo.bin"}
        )
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/octet-stream"
        assert resp.content == PROJ_FILES["logo.bin"]

    def test_missing_file_is_404(self, client: TestClient, proj: dict[str, str]) -> None:
        resp = client.get(
            "/repos/proj/file", params={"commit": proj["main"], "path": "nope.txt"}
        )
        assert resp.status_code == 404
        assert resp.json()["type"] == "GitFileNotFoundError"

    def test_unknown_commit_is_404(self, client: TestClient, proj: dict[str, str]) -> None:
        resp = client.get(
            "/repos/proj/file", params={"commit": "deadbeef" * 5, "path": "README.md"}
        )
        assert resp.status_code == 404
        assert resp.json()["type"] == "CommitNotFoundError"

    def test_dir_contents_are_base64(
        self, client: TestClient, proj: dict[str, str]
    ) -> None:
        resp = client.get(
            "/repos/proj/dir", params={"commit": proj["main"], "path": "a"}
        )
        assert resp.status_code == 200
        assert resp.json() == [
            {
                "name": "a/top.txt",
                "data": base64.b64encode(PROJ_FILES["a/top.txt"]).decode(),
            }
        ]

    def test_dir_binary_contents_use_standard_base64(
        self, client: TestClient, proj: dict[str, str]
    ) -> None:
        resp = client.get("/repos/proj/dir", params={"commit": proj["main"], "path": ""})
        assert resp.status_code == 200
        files = {entry["name"]: entry["data"] for entry in resp.json()}
        assert set(files) == {"README.md", "logo.bin"}
        assert files["logo.bin"] == base64.b64encode(PROJ_FILES["logo.bin"]).decode()
        assert base64.b64decode(files["logo.bin"], validate=True) == PROJ_FILES["logo.bin"]

    def test_unreadable_blob_is_500(
        self, client: TestClient, proj: dict[str, str], repo_dir: Path
    ) -> None:
        drop_loose_blob(repo_dir / "proj.git", PROJ_FILES["README.md"])
        resp = client.get(
            "/repos/proj/file", params={"commit": proj["main"], "path": "README.md"}
        )
        assert resp.status_code == 500
        assert resp.json()["type"] == "BlobReadError"

    def test_pull_requests(self, client: TestClient, proj: dict[str, str]) -> None:
        assert client.get("/repos/proj/pulls").json() == []

    def test_netrc(self, client: TestClient, proj: dict[str, str]) -> None:
        resp = client.get("/repos/proj/netrc", params={"login": "jdoe"})
        assert resp.json() == {
            "machine": BASE_URL,
            "login": "jdoe",
            "password": "",
            "type": "addon",
        }

    @pytest.mark.parametrize(
        ("route", "params"),
        [
            ("status", {"commit": "abc123"}),
            ("activate", {"link": "https://ci.example.com/hook"}),
            ("deactivate", {"link": "https://ci.example.com/hook"}),
        ],
    )
    def test_no_op_routes(
        self,
        client: TestClient,
        proj: dict[str, str],
        route: str,
        params: dict[str, str],
    ) -> None:
        resp = client.post(f"/repos/proj/{route}", params=params)
        assert resp.status_code == 204
        assert resp.content == b""


# -- Organizations and hooks ---------------------------------------------------


class TestOrgAndHookEndpoints:
    def test_org(self, client: TestClient) -> None:
        assert client.get("/orgs/anything").json() == {
            "name": "bareforge",
            "is_user": True,
        }

    def test_org_membership(self, client: TestClient) -> None:
        assert client.get("/orgs/anything/membership").json() == {
            "member": True,
            "admin": True,
        }

    def test_teams(self, client: TestClient) -> None:
        assert client.get("/teams").json() == []

    def test_hook_is_ignored_not_failed(self, client: TestClient) -> None:
        resp = client.post(
            "/hook",
            content=b'{"ref": "refs/heads/main"}',
            headers={"X-Gitea-Event": "push"},
        )
        assert resp.status_code == 200
        assert resp.json() == {
            "status": "ignored",
            "kind": "ignore",
            "event": "all",
            "reason": "hooks unsupported",
        }


# -- Error boundary ------------------------------------------------------------


class TestSafetyNet:
    def test_unexpected_fault_becomes_500(
        self, app: FastAPI, forge: LocalForge
    ) -> None:
        exploding = _ExplodingForge(
            base_url=BASE_URL, resolver=forge._resolver, identity=forge._identity
        )
        app.dependency_overrides[get_forge] = lambda: exploding

        resp = TestClient(app, raise_server_exceptions=False).get("/orgs/anything")

        assert resp.status_code == 500
        assert resp.json() == {
            "message": "Internal server error",
            "type": "InternalError",
        }

    def test_service_keeps_answering_after_a_fault(
        self, app: FastAPI, forge: LocalForge
    ) -> None:
        exploding = _ExplodingForge(
            base_url=BASE_URL, resolver=forge._resolver, identity=forge._identity
        )
        app.dependency_overrides[get_forge] = lambda: exploding
        client = TestClient(app, raise_server_exceptions=False)

        assert client.get("/orgs/anything").status_code == 500
        assert client.get("/health").status_code == 200
        assert client.get("/orgs/anything/membership").status_code == 200
