# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Bareforge Contributors

"""Incoming webhook endpoint.

Bare repositories have no remote that could push events, so every hook is
answered with the "ignored" signal raised by ``LocalForge.hook``.  The signal
becomes an ``IgnoredEvent`` body with status 200 and is logged at debug level,
so the host skips the event instead of alerting on it.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from bareforge.schemas.forge import IgnoredEvent
from bareforge.services.errors import UnsupportedEventError
from bareforge.services.forge import LocalForge, get_forge

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


@router.post("/hook", response_model=IgnoredEvent)
async def handle_hook(
    request: Request,
    forge: LocalForge = Depends(get_forge),
) -> IgnoredEvent:
    body = await request.body()
    try:
        await forge.hook(dict(request.headers), body)
    except UnsupportedEventError as exc:
        logger.debug("Ignoring %s hook events: %s", exc.event, exc.reason)
        return IgnoredEvent(event=exc.event, reason=exc.reason)
    raise HTTPException(
        status_code=status.HTTP_501_NOT_IMPLEMENTED,
        detail="hook payloads are not processed by this forge",
    )
