import hashlib
import logging
import time
from datetime import datetime, timezone
from supabase import Client
from opendots.modules.auth.schemas import AuthSession, ClientInfo, OAuthProvider
from fastapi import HTTPException
from typing import Dict, Any, List, Optional, Tuple

logger = logging.getLogger(__name__)

# In-memory cache for get_current_user so every page load does not hit Supabase Auth
_AUTH_USER_CACHE: Dict[str, tuple] = {}
_AUTH_CACHE_TTL_SEC = 60
_AUTH_CACHE_MAX_SIZE = 500

# Where supabase-py keeps the PKCE verifier in a client's auth storage
PKCE_VERIFIER_STORAGE_KEY = "supabase.auth.token-code-verifier"

PROVIDER_SCOPES: Dict[str, List[str]] = {
    "google": ["profile", "email"],
    "github": ["user:email", "read:user"],
    "linkedin": ["r_liteprofile", "r_emailaddress"],
}


def _user_to_dict(user) -> Dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "user_metadata": user.user_metadata or {},
        "app_metadata": user.app_metadata or {},
        "created_at": user.created_at,
        "updated_at": user.updated_at
    }


def describe_client(
    user_agent: Optional[str],
    platform: Optional[str] = None,
    browser: Optional[str] = None,
    location: Optional[str] = None,
) -> ClientInfo:
    """Fill in platform/browser from the User-Agent when the caller did not send them."""
    ua = user_agent or ""
    if not platform:
        platform = "Mobile" if any(m in ua for m in ("Mobile", "Android", "iPhone")) else "Desktop"
    if not browser:
        if "Chrome" in ua:
            browser = "Chrome"
        elif "Firefox" in ua:
            browser = "Firefox"
        elif "Safari" in ua:
            browser = "Safari"
        elif "Edge" in ua:
            browser = "Edge"
        else:
            browser = "Other Browser"
    return ClientInfo(platform=platform, browser=browser, location=location or "unknown")


class AuthService:
    def __init__(self, supabase: Client, admin: Optional[Client] = None):
        self.supabase = supabase
        self.admin = admin or supabase

    def oauth_sign_in_url(self, provider: OAuthProvider, redirect_to: str) -> Tuple[str, Optional[str]]:
        """Ask Supabase for the provider's consent URL.

        Returns the URL and the PKCE verifier the callback must present.
        """
        response = self.supabase.auth.sign_in_with_oauth({
            "provider": provider,
            "options": {
                "redirect_to": redirect_to,
                "scopes": " ".join(PROVIDER_SCOPES[provider]),
                "query_params": {
                    "access_type": "offline",
                    "prompt": "consent",
                },
            },
        })
        if not response.url:
            raise HTTPException(status_code=500, detail="OAuth configuration error")
        verifier = self.supabase.options.storage.get_item(PKCE_VERIFIER_STORAGE_KEY)
        return response.url, verifier

    def exchange_code(self, code: str, code_verifier: Optional[str] = None) -> AuthSession:
        """Exchange the OAuth callback code for a session. SDK errors propagate."""
        params = {"auth_code": code}
        if code_verifier:
            params["code_verifier"] = code_verifier
        auth_response = self.supabase.auth.exchange_code_for_session(params)
        if not auth_response.user or not auth_response.session:
            raise HTTPException(status_code=401, detail="No session returned for authorization code")
        return AuthSession(
            access_token=auth_response.session.access_token,
            refresh_token=auth_response.session.refresh_token,
            user=_user_to_dict(auth_response.user),
        )

    def refresh_session(self, refresh_token: str) -> Optional[AuthSession]:
        """Trade a refresh token for a new session; None when Supabase refuses."""
        try:
            auth_response = self.supabase.auth.refresh_session(refresh_token)
        except Exception as e:
            logger.info(f"Session refresh rejected: {e}")
            return None
        if not auth_response.user or not auth_response.session:
            return None
        return AuthSession(
            access_token=auth_response.session.access_token,
            refresh_token=auth_response.session.refresh_token,
            user=_user_to_dict(auth_response.user),
        )

    def update_user_metadata(self, info: ClientInfo) -> None:
        """Store the latest sign-in device info on the auth user"""
        self.supabase.auth.update_user({
            "data": {
                **info.model_dump(),
                "last_sign_in": datetime.now(timezone.utc).isoformat(),
            }
        })

    def get_current_user(self, token: str) -> Dict[str, Any]:
        """Get current user details from Supabase Auth token. Uses short TTL cache to reduce auth API calls."""
        try:
            cache_key = hashlib.sha256(token.encode()).hexdigest()
            now = time.monotonic()
            if cache_key in _AUTH_USER_CACHE:
                user_data, expiry = _AUTH_USER_CACHE[cache_key]
                if now < expiry:
                    return user_data
                del _AUTH_USER_CACHE[cache_key]
            user_response = self.supabase.auth.get_user(jwt=token)
            if not user_response or not user_response.user:
                raise HTTPException(status_code=401, detail="Invalid or expired token")
            user_data = _user_to_dict(user_response.user)
            if len(_AUTH_USER_CACHE) < _AUTH_CACHE_MAX_SIZE:
                _AUTH_USER_CACHE[cache_key] = (user_data, now + _AUTH_CACHE_TTL_SEC)
            return user_data
        except HTTPException:
            raise
        except Exception as e:
            error_msg = str(e)
            if "JWT" in error_msg or "expired" in error_msg.lower() or "invalid" in error_msg.lower():
                raise HTTPException(status_code=401, detail="Invalid or expired token")
            raise HTTPException(status_code=401, detail="Authentication failed")

    def sign_out(self, access_token: str) -> bool:
        """Revoke every session of the token's user with Supabase Auth"""
        try:
            self.admin.auth.admin.sign_out(access_token, "global")
            return True
        except Exception as e:
            logger.error(f"Error signing out: {e}")
            return False
