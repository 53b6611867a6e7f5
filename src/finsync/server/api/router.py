"""Main API router that includes all sub-routers."""

from __future__ import annotations

from fastapi import APIRouter

from finsync.server.api import groups, health, invites, records

router = APIRouter()

# Include all API routers; records last, its paths are the most generic
router.include_router(health.router)
router.include_router(groups.router)
router.include_router(invites.router)
router.include_router(records.router)
