# routers/pages.py
from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from config import TEMPLATES_DIR
from dependencies import ChatDep, LifecycleDep
from models import UserType
from .auth import OptionalUserDep, dashboard_url

router = APIRouter(tags=["pages"])
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))


@router.get("/", response_class=HTMLResponse)
def landing_page(request: Request, current: OptionalUserDep):
    # Logged-in users go straight to their dashboard.
    if current is not None:
        return RedirectResponse(url=dashboard_url(current), status_code=303)

    return templates.TemplateResponse(request, "index.html", {"current_user": None})


@router.get("/business", response_class=HTMLResponse)
def business_dashboard(
    request: Request,
    lifecycle: LifecycleDep,
    chat: ChatDep,
    current: OptionalUserDep,
):
    """Business dashboard: own listings and the requests filed against them."""
    if current is None:
        return RedirectResponse(url="/login", status_code=303)
    if current.user_type != UserType.BUSINESS:
        return RedirectResponse(url=dashboard_url(current), status_code=303)

    return templates.TemplateResponse(
        request,
        "business_dashboard.html",
        {
            "current_user": current,
            "listings": lifecycle.get_business_listings(current),
            "requests": lifecycle.get_business_requests(current),
            "unread_count": chat.get_unread_count(current),
        },
    )


@router.get("/shelter", response_class=HTMLResponse)
def shelter_dashboard(
    request: Request,
    lifecycle: LifecycleDep,
    chat: ChatDep,
    current: OptionalUserDep,
):
    """Shelter dashboard: available food and the shelter's own requests."""
    if current is None:
        return RedirectResponse(url="/login", status_code=303)
    if current.user_type != UserType.SHELTER:
        return RedirectResponse(url=dashboard_url(current), status_code=303)

    return templates.TemplateResponse(
        request,
        "shelter_dashboard.html",
        {
            "current_user": current,
            "listings": lifecycle.get_all_listings(current),
            "requests": lifecycle.get_shelter_requests(current),
            "unread_count": chat.get_unread_count(current),
        },
    )
