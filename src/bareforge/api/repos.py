# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Bareforge Contributors

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response, status

from bareforge.schemas.forge import (
    Commit,
    FileMeta,
    ListOptions,
    Netrc,
    PullRequest,
    Repo,
    User,
)
from bareforge.services.forge import LocalForge, get_forge

router = APIRouter(prefix="/repos", tags=["repos"])


async def get_repo(name: str, forge: LocalForge = Depends(get_forge)) -> Repo:
    """Resolve the ``{name}`` path segment to an existing repository."""
    return await forge.repo(None, "", "", name)


@router.get("", response_model=list[Repo])
async def list_repos(
    page: int = Query(1),
    per_page: int = Query(0, ge=0),
    forge: LocalForge = Depends(get_forge),
) -> list[Repo]:
    return await forge.repos(None, ListOptions(page=page, per_page=per_page))


@router.get("/{name}", response_model=Repo)
async def get_repo_by_id(
    name: str,
    remote_id: str = Query(""),
    owner: str = Query(""),
    forge: LocalForge = Depends(get_forge),
) -> Repo:
    return await forge.repo(None, remote_id, owner, name)


@router.get("/{name}/branches", response_model=list[str])
async def list_branches(
    page: int = Query(1),
    per_page: int = Query(0, ge=0),
    repo: Repo = Depends(get_repo),
    forge: LocalForge = Depends(get_forge),
) -> list[str]:
    return await forge.branches(None, repo, ListOptions(page=page, per_page=per_page))


@router.get("/{name}/head", response_model=Commit)
async def branch_head(
    branch: str = Query(..., min_length=1),
    repo: Repo = Depends(get_repo),
    forge: LocalForge = Depends(get_forge),
) -> Commit:
    return await forge.branch_head(None, repo, branch)


@router.get("/{name}/file")
async def read_file(
    commit: str = Query(..., min_length=1),
    path: str = Query(..., min_length=1),
    repo: Repo = Depends(get_repo),
    forge: LocalForge = Depends(get_forge),
) -> Response:
    data = await forge.file(None, repo, commit, path)
    return Response(content=data, media_type="application/octet-stream")


@router.get("/{name}/dir", response_model=list[FileMeta])
async def list_dir(
    commit: str = Query(..., min_length=1),
    path: str = Query(""),
    repo: Repo = Depends(get_repo),
    forge: LocalForge = Depends(get_forge),
) -> list[FileMeta]:
    return await forge.dir(None, repo, commit, path)


@router.get("/{name}/pulls", response_model=list[PullRequest])
async def list_pull_requests(
    page: int = Query(1),
    repo: Repo = Depends(get_repo),
    forge: LocalForge = Depends(get_forge),
) -> list[PullRequest]:
    return await forge.pull_requests(None, repo, ListOptions(page=page))


@router.get("/{name}/netrc", response_model=Netrc)
async def netrc(
    login: str = Query(..., min_length=1),
    repo: Repo = Depends(get_repo),
    forge: LocalForge = Depends(get_forge),
) -> Netrc:
    user = User(
        forge_remote_id=login, login=login, email="", avatar="", access_token=""
    )
    return forge.netrc(user, repo)


@router.post("/{name}/status", status_code=status.HTTP_204_NO_CONTENT)
async def report_status(
    commit: str = Query(..., min_length=1),
    repo: Repo = Depends(get_repo),
    forge: LocalForge = Depends(get_forge),
) -> Response:
    await forge.status(None, repo, commit)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{name}/activate", status_code=status.HTTP_204_NO_CONTENT)
async def activate(
    link: str = Query(""),
    repo: Repo = Depends(get_repo),
    forge: LocalForge = Depends(get_forge),
) -> Response:
    await forge.activate(None, repo, link)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{name}/deactivate", status_code=status.HTTP_204_NO_CONTENT)
async def deactivate(
    link: str = Query(""),
    repo: Repo = Depends(get_repo),
    forge: LocalForge = Depends(get_forge),
) -> Response:
    await forge.deactivate(None, repo, link)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
