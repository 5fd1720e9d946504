"""
OAuth sign-in for Google, GitHub and LinkedIn via Supabase Auth.

The provider round-trip itself is Supabase's; these routes only start it,
turn the callback code into session cookies and end it.
"""
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse
from urllib.parse import urlencode
from opendots.config import settings
from opendots.core.dependencies import get_access_token, get_auth_service, get_oauth_service, get_profile_service
from opendots.core.middleware import set_session_cookies
from opendots.core.session_policy import (
    CODE_VERIFIER_COOKIE,
    CODE_VERIFIER_MAX_AGE,
    LANDING_PATH,
    ONBOARDING_PATH,
    encoded_redirect,
)
from opendots.modules.auth.schemas import OAuthProvider
from opendots.modules.auth.service import AuthService, describe_client
from opendots.modules.profiles.service import ProfileService
from typing import Optional
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _origin(request: Request) -> str:
    return f"{request.url.scheme}://{request.url.netloc}"


def _callback_error(origin: str, message: str) -> RedirectResponse:
    query = urlencode({"error": "true", "message": message, "type": "error"})
    return RedirectResponse(f"{origin}/?{query}", status_code=303)


def _final_redirect_base(request: Request) -> str:
    """Where the browser should land: the load balancer's host outside development."""
    forwarded_host = request.headers.get("x-forwarded-host")
    if not settings.is_development and forwarded_host:
        return f"https://{forwarded_host}"
    return _origin(request)


@router.get("/sign-in/{provider}")
async def sign_in_with_oauth(
    provider: OAuthProvider,
    request: Request,
    platform: Optional[str] = None,
    browser: Optional[str] = None,
    location: Optional[str] = None,
    service: AuthService = Depends(get_oauth_service)
):
    """Start the OAuth flow; device info rides along on the callback URL"""
    origin = request.headers.get("origin") or _origin(request)
    info = describe_client(request.headers.get("user-agent"), platform, browser, location)
    callback_url = f"{origin}/auth/callback?{urlencode(info.model_dump())}"
    try:
        url, verifier = service.oauth_sign_in_url(provider, callback_url)
    except Exception as e:
        logger.error(f"Error signing in with {provider}: {e}")
        return RedirectResponse(encoded_redirect("error", "/", getattr(e, "detail", None) or str(e)), status_code=303)
    response = RedirectResponse(url, status_code=303)
    if verifier:
        response.set_cookie(
            CODE_VERIFIER_COOKIE,
            verifier,
            max_age=CODE_VERIFIER_MAX_AGE,
            httponly=True,
            secure=settings.is_production,
            samesite="lax",
            path="/auth",
        )
    return response


@router.get("/callback")
async def oauth_callback(
    request: Request,
    code: Optional[str] = None,
    next_path: str = Query(LANDING_PATH, alias="next"),
    platform: Optional[str] = None,
    browser: Optional[str] = None,
    location: Optional[str] = None,
    service: AuthService = Depends(get_oauth_service),
    profiles: ProfileService = Depends(get_profile_service)
):
    """Exchange the OAuth code for a session and send the user onward"""
    origin = _origin(request)
    if not code:
        logger.error("No code provided in OAuth callback")
        return _callback_error(origin, "Missing authorization code")

    try:
        session = service.exchange_code(code, request.cookies.get(CODE_VERIFIER_COOKIE))
    except Exception as e:
        message = getattr(e, "detail", None) or str(e)
        logger.error(f"Error exchanging code for session: {message}")
        return _callback_error(origin, message)

    user_id = session.user["id"]
    info = describe_client(None, platform or "unknown", browser or "unknown", location)
    try:
        profiles.primary.record_sign_in(user_id, info.platform, info.browser, info.location)
        service.update_user_metadata(info)
    except Exception as e:
        logger.error(f"Error updating profile metadata for user {user_id}: {e}")

    target = next_path if next_path.startswith("/") and not next_path.startswith("//") else LANDING_PATH
    if not profiles.has_completed_onboarding(user_id):
        target = ONBOARDING_PATH

    response = RedirectResponse(f"{_final_redirect_base(request)}{target}", status_code=303)
    set_session_cookies(response, session)
    response.delete_cookie(CODE_VERIFIER_COOKIE, path="/auth")
    return response


@router.post("/sign-out")
async def sign_out(
    token: Optional[str] = Depends(get_access_token),
    service: AuthService = Depends(get_auth_service)
):
    """Revoke the caller's sessions, then let the middleware clear the cookies"""
    if token:
        service.sign_out(token)
    return RedirectResponse("/?signout=true", status_code=303)
