"""
Core dependencies for route protection and service wiring
"""

from fastapi import BackgroundTasks, Depends, HTTPException, Request, Security, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from opendots.core.session_policy import ACCESS_TOKEN_COOKIE
from opendots.database.d1_client import D1Client, get_d1
from opendots.database.supabase_client import create_request_client, get_service_supabase, get_supabase
from opendots.modules.auth.service import AuthService
from opendots.modules.profiles.service import Defer, ProfileService
from opendots.modules.profiles.stores import PrimaryProfileStore, SecondaryProfileStore
from supabase import Client
from typing import Dict, Optional
import logging

logger = logging.getLogger(__name__)

# Browsers authenticate with the session cookie, API clients with a bearer token
security = HTTPBearer(auto_error=False)


def get_auth_service(
    supabase: Client = Depends(get_supabase),
    admin: Client = Depends(get_service_supabase),
) -> AuthService:
    return AuthService(supabase, admin)


def get_oauth_service() -> AuthService:
    """Auth service on a client of its own, for the OAuth start and code exchange"""
    return AuthService(create_request_client())


def build_profile_service(
    supabase: Client,
    d1: Optional[D1Client],
    defer: Optional[Defer] = None,
) -> ProfileService:
    """D1 participates only when a client was configured for it."""
    secondary = SecondaryProfileStore(d1) if d1 is not None else None
    return ProfileService(PrimaryProfileStore(supabase), secondary, defer=defer)


def get_profile_service(
    background_tasks: BackgroundTasks,
    supabase: Client = Depends(get_service_supabase),
    d1: Optional[D1Client] = Depends(get_d1),
) -> ProfileService:
    return build_profile_service(supabase, d1, defer=background_tasks.add_task)


def get_access_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
) -> Optional[str]:
    if credentials is not None:
        return credentials.credentials
    return request.cookies.get(ACCESS_TOKEN_COOKIE)


def require_access_token(token: Optional[str] = Depends(get_access_token)) -> str:
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not authenticated"
        )
    return token


def get_current_user(
    token: str = Depends(require_access_token),
    auth_service: AuthService = Depends(get_auth_service)
) -> Dict:
    """Resolve the signed-in user or reject the request with 401"""
    return auth_service.get_current_user(token)
