# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Bareforge Contributors

from fastapi import APIRouter

from bareforge.api.auth import router as auth_router
from bareforge.api.orgs import router as orgs_router
from bareforge.api.repos import router as repos_router

forge_router = APIRouter()
forge_router.include_router(auth_router)
forge_router.include_router(repos_router)
forge_router.include_router(orgs_router)
