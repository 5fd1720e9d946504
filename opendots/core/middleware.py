import logging
from typing import Callable, Dict, Optional, Tuple

from fastapi import HTTPException, Request
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import RedirectResponse, Response

from opendots.config import settings
from opendots.core import session_policy
from opendots.core.dependencies import build_profile_service
from opendots.database.d1_client import get_d1
from opendots.database.supabase_client import get_service_supabase, get_supabase
from opendots.modules.auth.schemas import AuthSession
from opendots.modules.auth.service import AuthService
from opendots.modules.profiles.service import ProfileService

logger = logging.getLogger(__name__)

# Never gated by the session policy
PASS_THROUGH_PREFIXES = ("/api", "/static", "/favicon.ico", "/docs", "/redoc", "/openapi.json", "/health", "/ready")


def set_session_cookies(response: Response, session: AuthSession) -> None:
    for name, value in (
        (session_policy.ACCESS_TOKEN_COOKIE, session.access_token),
        (session_policy.REFRESH_TOKEN_COOKIE, session.refresh_token),
    ):
        response.set_cookie(
            name,
            value,
            httponly=True,
            secure=settings.is_production,
            samesite="lax",
            path="/",
        )


def clear_auth_cookies(response: Response) -> None:
    for name in session_policy.cookies_to_clear():
        response.delete_cookie(name, path="/")


def _default_auth_service() -> AuthService:
    return AuthService(get_supabase())


def _default_profile_service() -> ProfileService:
    return build_profile_service(get_service_supabase(), get_d1())


class AuthRedirectMiddleware(BaseHTTPMiddleware):
    """Applies the session/redirect policy to every page request."""

    def __init__(
        self,
        app,
        auth_service_factory: Callable[[], AuthService] = _default_auth_service,
        profile_service_factory: Callable[[], ProfileService] = _default_profile_service,
        d1_available: Optional[bool] = None,
    ):
        super().__init__(app)
        self.auth_service_factory = auth_service_factory
        self.profile_service_factory = profile_service_factory
        self.d1_available = settings.d1_configured if d1_available is None else d1_available

    async def dispatch(self, request: Request, call_next) -> Response:
        if session_policy.is_sign_out_request(request.query_params):
            response = RedirectResponse(session_policy.SIGN_IN_PATH)
            clear_auth_cookies(response)
            return response

        path = request.url.path
        if path.startswith(PASS_THROUGH_PREFIXES):
            return self._tag(await call_next(request))

        refreshed: Optional[AuthSession] = None
        try:
            target, refreshed = await run_in_threadpool(self._decide, request)
        except Exception as e:
            # Misconfigured or unreachable auth backend: serve the page as-is
            logger.error(f"Error in session middleware: {e}")
            target = None

        if target is not None:
            response = RedirectResponse(target)
        else:
            response = await call_next(request)

        if refreshed is not None:
            set_session_cookies(response, refreshed)
        return self._tag(response)

    def _decide(self, request: Request) -> Tuple[Optional[str], Optional[AuthSession]]:
        path = request.url.path
        user, refreshed = self._resolve_user(request)

        if settings.is_development:
            logger.debug(f"Path: {path}, User: {'Authenticated' if user else 'Not authenticated'}")

        onboarding_complete = None
        if user is not None and session_policy.requires_onboarding_check(path):
            onboarding_complete = self.profile_service_factory().onboarding_state(user["id"])

        target = session_policy.decide_redirect(path, user is not None, onboarding_complete)
        if user is None and target is not None:
            logger.warning(f"Unauthorized access attempt to {path}")
        return target, refreshed

    def _resolve_user(self, request: Request) -> Tuple[Optional[Dict], Optional[AuthSession]]:
        access_token = request.cookies.get(session_policy.ACCESS_TOKEN_COOKIE)
        refresh_token = request.cookies.get(session_policy.REFRESH_TOKEN_COOKIE)
        if not access_token and not refresh_token:
            return None, None

        auth_service = self.auth_service_factory()
        if access_token:
            try:
                return auth_service.get_current_user(access_token), None
            except HTTPException:
                pass
        if refresh_token:
            session = auth_service.refresh_session(refresh_token)
            if session is not None:
                return session.user, session
        return None, None

    def _tag(self, response: Response) -> Response:
        response.headers["X-D1-Available"] = "true" if self.d1_available else "false"
        return response
