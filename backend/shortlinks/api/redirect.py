import html
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from ..core.errors import PasswordRequired, ResolutionError
from ..services.click_recorder import ClickEvent
from ..utils.validators import get_client_ip, request_domain
from .deps import get_recorder, get_resolver, with_store_retry

router = APIRouter()

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}

PAGE_TEMPLATE = """<!DOCTYPE html>
<html><head><meta charset="UTF-8"><title>{title}</title></head>
<body style="font-family: Arial; text-align: center; padding: 50px;">
    <h1>{status} - {title}</h1>
    <p>{message}</p>
    {extra}
</body></html>
"""

PASSWORD_FORM = """<form method="get" action="{action}">
        <input type="password" name="password" placeholder="Password" autofocus>
        <button type="submit">Continue</button>
    </form>"""

PAGE_TITLES = {
    404: "Link not found",
    410: "Link no longer available",
    401: "Password required",
}


def get_error_page(error: ResolutionError, action: str, password_given: bool) -> str:
    """Render the page shown for a denied resolution"""
    title = PAGE_TITLES.get(error.status_code, "Link unavailable")
    message = error.message
    extra = ""

    if isinstance(error, PasswordRequired):
        if password_given:
            message = "The password is incorrect."
        extra = PASSWORD_FORM.format(action=html.escape(action, quote=True))

    return PAGE_TEMPLATE.format(
        status=error.status_code,
        title=html.escape(title),
        message=html.escape(message),
        extra=extra,
    )


def resolve_and_redirect(request: Request, short_code: str,
                         password: Optional[str], is_qr_click: bool):
    """Resolve a short code, hand the click to the recorder and redirect"""
    settings = request.app.state.settings
    resolver = get_resolver(request)
    domain = request_domain(request.headers.get("host"), settings.default_domain)

    try:
        resolution = with_store_retry(
            request,
            lambda: resolver.resolve(domain, short_code, password)
        )
    except ResolutionError as e:
        return HTMLResponse(
            content=get_error_page(e, request.url.path, password is not None),
            status_code=e.status_code,
            headers=NO_CACHE_HEADERS
        )

    get_recorder(request).record(ClickEvent(
        link_id=resolution.link.id,
        short_code=resolution.short_code,
        domain=resolution.domain,
        timestamp=resolution.granted_at,
        client_ip=get_client_ip(request),
        user_agent=request.headers.get('user-agent'),
        referrer=request.headers.get('referer'),
        is_qr_click=is_qr_click,
    ))

    return RedirectResponse(url=resolution.destination_url, status_code=302, headers=NO_CACHE_HEADERS)


@router.get("/q/{short_code}")
def qr_redirect(short_code: str, request: Request, password: Optional[str] = None):
    """
    Redirect from QR code scan. Marks the click as a QR click.
    """
    return resolve_and_redirect(request, short_code, password, is_qr_click=True)


@router.get("/{short_code}")
def redirect_to_url(short_code: str, request: Request, password: Optional[str] = None):
    """
    Redirect to the destination URL of a short code.

    The Host header selects the domain; codes missing on a custom domain
    fall back to the shared default domain.
    """
    return resolve_and_redirect(request, short_code, password, is_qr_click=False)
