# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Bareforge Contributors

from __future__ import annotations

import base64

from pydantic import BaseModel, Field, field_serializer


class ListOptions(BaseModel):
    page: int = 1
    per_page: int = 0


class Perm(BaseModel):
    pull: bool = True
    push: bool = True
    admin: bool = True


class Repo(BaseModel):
    """Forge-facing view of a bare repository."""

    forge_remote_id: str
    owner: str
    name: str
    full_name: str
    forge_url: str
    clone_url: str
    default_branch: str = "main"
    perm: Perm = Field(default_factory=Perm)


class Commit(BaseModel):
    sha: str
    forge_url: str


class FileMeta(BaseModel):
    name: str
    data: bytes

    @field_serializer("data", when_used="json")
    def _encode_data(self, data: bytes) -> str:
        # Standard alphabet with padding, not the URL-safe one.
        return base64.b64encode(data).decode("ascii")


class User(BaseModel):
    forge_remote_id: str
    login: str
    email: str
    avatar: str
    access_token: str
    refresh_token: str = ""
    expiry: int = 0


class OAuthRequest(BaseModel):
    """Query values of the OAuth callback, forwarded by the host."""

    code: str = ""
    state: str = ""
    error: str = ""
    error_description: str = ""
    error_uri: str = ""


class LoginResponse(BaseModel):
    user: User | None
    redirect_url: str


class VerifyResponse(BaseModel):
    login: str


class Team(BaseModel):
    login: str
    avatar: str = ""


class PullRequest(BaseModel):
    index: str
    title: str


class Org(BaseModel):
    name: str
    is_user: bool


class OrgPerm(BaseModel):
    member: bool
    admin: bool


class Netrc(BaseModel):
    machine: str
    login: str
    password: str
    type: str


class ForgeInfo(BaseModel):
    name: str
    url: str


class IgnoredEvent(BaseModel):
    status: str = "ignored"
    kind: str = "ignore"
    event: str
    reason: str


class ErrorDetail(BaseModel):
    message: str
    type: str
    stage: str | None = None
