"""FastAPI route definitions for the panel link REST API.

API Endpoint Overview
=====================
::
    GET  /health
        └─ HealthResponse (200)

    POST /api/panels
        ├─ PanelCreate (request body)
        └─ PanelCreated (201) or 422/503

    PUT  /api/panels/:panel_id
        ├─ PanelUpdate (request body, carries the caller's user_id)
        └─ 200, 403, 404 or 422

    GET  /api/users/:user_id/panels
        └─ UserPanelsPage (200) or 422

    GET  /panel/:panel_id/info
        └─ PanelInfo (200) or 404

    GET  /panel/:panel_id
        └─ 307 Redirect to the locator or 404

Key Behaviours
===============
- Authentication happens upstream; ``user_id`` values are trusted as given.
- Ownership of an update is checked here, not in the engine.
- Expired and unknown panels both answer 404.
- StoreUnavailableError and IdGenerationError answer 503.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse

from panellink.config import Settings, get_settings
from panellink.dependencies import RequestContext, get_panel_service, get_request_context
from panellink.enums import HealthStatus, PanelStatusFilter
from panellink.exceptions import (
    IdGenerationError,
    PanelNotFoundError,
    PanelValidationError,
    StoreUnavailableError,
)
from panellink.panel_service import PanelLinkService
from panellink.schemas import HealthResponse, PanelCreate, PanelCreated, PanelInfo, PanelUpdate, UserPanelsPage

__all__ = ["router", "resolve_locator_url"]

router = APIRouter()


def resolve_locator_url(locator: str, storage_base_url: str) -> str:
    """Absolute locators are used as-is; bare object keys are joined to the storage host."""
    if locator.startswith(("http://", "https://")):
        return locator
    return f"{storage_base_url.rstrip('/')}/{locator.lstrip('/')}"


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(
    ctx: RequestContext = Depends(get_request_context),
    service: PanelLinkService = Depends(get_panel_service),
) -> HealthResponse:
    store_ok, cache_ok = await service.check_health()
    db_status = HealthStatus.HEALTHY if store_ok else HealthStatus.UNHEALTHY
    cache_status = HealthStatus.HEALTHY if cache_ok else HealthStatus.UNHEALTHY
    status = HealthStatus.HEALTHY if store_ok and cache_ok else HealthStatus.UNHEALTHY

    ctx.logger.info(f"Health check completed: {status.value}")
    return HealthResponse(status=status, database=db_status, cache=cache_status)


@router.post("/api/panels", response_model=PanelCreated, status_code=201, tags=["panels"])
async def create_panel(
    payload: PanelCreate,
    ctx: RequestContext = Depends(get_request_context),
    service: PanelLinkService = Depends(get_panel_service),
) -> PanelCreated:
    try:
        created = await service.create_panel(
            payload.locator,
            owner_id=payload.owner_id,
            title=payload.title,
            description=payload.description,
            is_public=payload.is_public,
            ttl_seconds=payload.ttl_seconds,
        )
    except PanelValidationError as exc:
        ctx.logger.warning(f"Panel creation rejected: {exc}")
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except (IdGenerationError, StoreUnavailableError) as exc:
        ctx.logger.error(f"Panel creation failed: {exc}")
        raise HTTPException(status_code=503, detail="Panel storage temporarily unavailable") from exc

    ctx.logger.info(f"Panel {created.id} created in {ctx.get_duration():.1f}ms")
    return created


@router.put("/api/panels/{panel_id}", tags=["panels"])
async def update_panel(
    panel_id: str,
    payload: PanelUpdate,
    ctx: RequestContext = Depends(get_request_context),
    service: PanelLinkService = Depends(get_panel_service),
) -> dict[str, str]:
    try:
        info = await service.get_panel_info(panel_id)
        if info is None:
            raise HTTPException(status_code=404, detail="Panel not found")
        if info.owner_id is None or payload.user_id is None or info.owner_id != payload.user_id:
            ctx.logger.warning(f"Update of panel {panel_id} refused for user {payload.user_id}")
            raise HTTPException(status_code=403, detail="Not allowed to modify this panel")

        await service.update_panel(
            panel_id,
            title=payload.title,
            description=payload.description,
            is_public=payload.is_public,
        )
    except PanelValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except PanelNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Panel not found") from exc
    except StoreUnavailableError as exc:
        ctx.logger.error(f"Panel update failed: {exc}")
        raise HTTPException(status_code=503, detail="Panel storage temporarily unavailable") from exc

    return {"message": "Panel updated"}


@router.get("/api/users/{user_id}/panels", response_model=UserPanelsPage, tags=["panels"])
async def list_user_panels(
    user_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: PanelStatusFilter = Query(PanelStatusFilter.ALL),
    is_public: bool | None = Query(None),
    service: PanelLinkService = Depends(get_panel_service),
) -> UserPanelsPage:
    try:
        return await service.list_user_panels(user_id, page=page, limit=limit, status=status, is_public=is_public)
    except PanelValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except StoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail="Panel storage temporarily unavailable") from exc


@router.get("/panel/{panel_id}/info", response_model=PanelInfo, tags=["panels"])
async def get_panel_info(
    panel_id: str,
    service: PanelLinkService = Depends(get_panel_service),
) -> PanelInfo:
    try:
        info = await service.get_panel_info(panel_id)
    except StoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail="Panel storage temporarily unavailable") from exc
    if info is None:
        raise HTTPException(status_code=404, detail="Panel not found")
    return info


@router.get("/panel/{panel_id}", tags=["redirect"])
async def open_panel(
    panel_id: str,
    ctx: RequestContext = Depends(get_request_context),
    service: PanelLinkService = Depends(get_panel_service),
    settings: Settings = Depends(get_settings),
) -> RedirectResponse:
    try:
        locator = await service.get_panel(panel_id)
    except StoreUnavailableError as exc:
        ctx.logger.error(f"Panel lookup failed: {exc}")
        raise HTTPException(status_code=503, detail="Panel storage temporarily unavailable") from exc

    if locator is None:
        ctx.logger.info(f"Panel not found: {panel_id}")
        raise HTTPException(status_code=404, detail="Panel not found")

    return RedirectResponse(url=resolve_locator_url(locator, settings.STORAGE_PUBLIC_BASE_URL), status_code=307)
