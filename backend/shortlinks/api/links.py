from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status

from ..config import Settings
from ..core.security import get_current_owner, get_optional_owner
from ..database import as_utc
from ..models import Link
from ..schemas.analytics import LinkAnalytics
from ..schemas.link import LinkCreate, LinkResponse, LinkUpdate
from ..services.analytics import get_link_analytics
from ..utils.validators import get_client_ip
from .deps import create_rate_limit, get_link_service, limiter, with_store_retry

router = APIRouter()


def build_short_url(link: Link, settings: Settings) -> str:
    """Public URL of a link on its own domain"""
    if not link.domain:
        return f"{settings.BASE_URL.rstrip('/')}/{link.short_code}"

    scheme = settings.BASE_URL.split("://", 1)[0] if "://" in settings.BASE_URL else "https"
    return f"{scheme}://{link.domain}/{link.short_code}"


def link_response(link: Link, settings: Settings) -> LinkResponse:
    return LinkResponse(
        short_code=link.short_code,
        domain=link.domain or None,
        short_url=build_short_url(link, settings),
        destination_url=link.destination_url,
        owner_id=link.owner_id,
        expires_at=as_utc(link.expires_at),
        max_clicks=link.max_clicks,
        click_count=link.click_count,
        unique_click_count=link.unique_clicks_count,
        is_one_time=link.is_one_time,
        is_active=link.is_active,
        is_password_protected=link.is_password_protected,
        created_at=as_utc(link.created_at),
        updated_at=as_utc(link.updated_at),
    )


@router.post("/links", response_model=LinkResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(create_rate_limit)
def create_link(
    request: Request,
    link_data: LinkCreate,
    owner_id: Optional[str] = Depends(get_optional_owner)
):
    """
    Create a short link.

    Anonymous callers are allowed; a bearer token makes the caller the owner.
    Rate limited per client IP.
    """
    service = get_link_service(request)
    client_ip = get_client_ip(request)

    link = with_store_retry(
        request,
        lambda: service.create_link(link_data, owner_id=owner_id, client_ip=client_ip)
    )

    return link_response(link, request.app.state.settings)


@router.get("/links", response_model=List[LinkResponse])
def list_links(
    request: Request,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    active_only: bool = Query(False, alias="activeOnly"),
    owner_id: str = Depends(get_current_owner)
):
    """List the caller's links, most recent first"""
    service = get_link_service(request)

    links = with_store_retry(
        request,
        lambda: service.list_links(owner_id, skip=skip, limit=limit, active_only=active_only)
    )

    return [link_response(link, request.app.state.settings) for link in links]


@router.get("/links/{short_code}", response_model=LinkResponse)
def get_link(
    short_code: str,
    request: Request,
    owner_id: str = Depends(get_current_owner)
):
    service = get_link_service(request)
    link = with_store_retry(request, lambda: service.get_link(owner_id, short_code))
    return link_response(link, request.app.state.settings)


@router.patch("/links/{short_code}", response_model=LinkResponse)
def update_link(
    short_code: str,
    link_update: LinkUpdate,
    request: Request,
    owner_id: str = Depends(get_current_owner)
):
    """Change destination, password, expiry or click limit of an active link"""
    service = get_link_service(request)

    link = with_store_retry(
        request,
        lambda: service.update_link(owner_id, short_code, link_update)
    )

    return link_response(link, request.app.state.settings)


@router.delete("/links/{short_code}", status_code=status.HTTP_204_NO_CONTENT)
def delete_link(
    short_code: str,
    request: Request,
    owner_id: str = Depends(get_current_owner)
):
    """Deactivate a link. Repeated calls succeed."""
    service = get_link_service(request)
    with_store_retry(request, lambda: service.deactivate_link(owner_id, short_code))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/links/{short_code}/stats", response_model=LinkAnalytics)
def get_link_stats(
    short_code: str,
    request: Request,
    period: Literal["24h", "7d", "30d", "90d"] = "7d",
    owner_id: str = Depends(get_current_owner)
):
    """Click analytics for one of the caller's links"""
    service = get_link_service(request)
    store = service.store

    def build_report() -> dict:
        link = service.get_link(owner_id, short_code)
        with store.read_session() as db:
            return get_link_analytics(db, link, period)

    return with_store_retry(request, build_report)
