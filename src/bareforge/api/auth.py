# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Bareforge Contributors

from __future__ import annotations

from fastapi import APIRouter, Depends

from bareforge.auth.dependencies import get_bearer_token
from bareforge.schemas.forge import LoginResponse, OAuthRequest, VerifyResponse
from bareforge.services.forge import LocalForge, get_forge

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=LoginResponse)
async def login(
    body: OAuthRequest,
    forge: LocalForge = Depends(get_forge),
) -> LoginResponse:
    """First call (no code) returns the redirect URL; the callback returns the user."""
    user, redirect_url = await forge.login(body)
    return LoginResponse(user=user, redirect_url=redirect_url)


@router.post("/verify", response_model=VerifyResponse)
async def verify(
    token: str = Depends(get_bearer_token),
    forge: LocalForge = Depends(get_forge),
) -> VerifyResponse:
    login = await forge.auth(token)
    return VerifyResponse(login=login)
