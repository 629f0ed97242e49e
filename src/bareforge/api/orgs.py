# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Bareforge Contributors

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from bareforge.schemas.forge import ListOptions, Org, OrgPerm, Team
from bareforge.services.forge import LocalForge, get_forge

router = APIRouter(tags=["orgs"])


@router.get("/orgs/{org}", response_model=Org)
async def get_org(org: str, forge: LocalForge = Depends(get_forge)) -> Org:
    return await forge.org(None, org)


@router.get("/orgs/{org}/membership", response_model=OrgPerm)
async def org_membership(org: str, forge: LocalForge = Depends(get_forge)) -> OrgPerm:
    return await forge.org_membership(None, org)


@router.get("/teams", response_model=list[Team])
async def list_teams(
    page: int = Query(1),
    forge: LocalForge = Depends(get_forge),
) -> list[Team]:
    return await forge.teams(None, ListOptions(page=page))
