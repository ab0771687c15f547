"""V1 API router -- aggregates all v1 endpoint routers."""

from __future__ import annotations

from fastapi import APIRouter

from src.tenancy.api.v1 import audit, auth, health, store, tenants

router = APIRouter()

router.include_router(health.router)
router.include_router(auth.router)
router.include_router(tenants.router)
router.include_router(audit.router)
router.include_router(store.router)
