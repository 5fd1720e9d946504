"""
Request routing decisions driven by auth and onboarding state.

Everything here is a pure function of the path, query string and what the
middleware already learned about the session, so each request is decided
from scratch.
"""

from typing import List, Mapping, Optional
from urllib.parse import urlencode

SIGN_IN_PATH = "/sign-in"
ONBOARDING_PATH = "/onboarding"
LANDING_PATH = "/protected"
ROOT_PATH = "/"

SIGN_OUT_PARAM = "signout"

ACCESS_TOKEN_COOKIE = "sb-access-token"
REFRESH_TOKEN_COOKIE = "sb-refresh-token"
# Lives only between the OAuth start and the callback
CODE_VERIFIER_COOKIE = "sb-code-verifier"
CODE_VERIFIER_MAX_AGE = 600

AUTH_COOKIE_NAMES = (
    ACCESS_TOKEN_COOKIE,
    REFRESH_TOKEN_COOKIE,
    "supabase-auth-token",
    "__client-auth-token",
)
COOKIE_CHUNKS = 10  # name.0 .. name.9

PROTECTED_PREFIXES = ("/protected", "/edit-profile")
ONBOARDING_EXEMPT_PREFIXES = ("/onboarding", "/auth", "/api")
ONBOARDING_EXEMPT_PATHS = ("/sign-in", "/sign-out")


def _under(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix.rstrip("/") + "/")


def is_protected(path: str) -> bool:
    return any(_under(path, prefix) for prefix in PROTECTED_PREFIXES)


def requires_onboarding_check(path: str) -> bool:
    if path in ONBOARDING_EXEMPT_PATHS:
        return False
    return not any(_under(path, prefix) for prefix in ONBOARDING_EXEMPT_PREFIXES)


def is_sign_out_request(query_params: Mapping[str, str]) -> bool:
    return SIGN_OUT_PARAM in query_params


def cookies_to_clear() -> List[str]:
    names = []
    for name in AUTH_COOKIE_NAMES:
        names.append(name)
        names.extend(f"{name}.{i}" for i in range(COOKIE_CHUNKS))
    return names


def sign_in_redirect(path: str) -> str:
    return f"{SIGN_IN_PATH}?{urlencode({'next': path})}"


def decide_redirect(
    path: str,
    authenticated: bool,
    onboarding_complete: Optional[bool] = None,
) -> Optional[str]:
    """Return where to send the request, or None to let it through.

    onboarding_complete=None means the lookup failed; that never forces the
    user into onboarding.
    """
    if not authenticated:
        if is_protected(path):
            return sign_in_redirect(path)
        return None

    if onboarding_complete is False and requires_onboarding_check(path):
        return ONBOARDING_PATH

    if path == ROOT_PATH:
        return LANDING_PATH

    return None


def encoded_redirect(kind: str, path: str, message: str) -> str:
    """Redirect target carrying a user-facing message in the query string."""
    return f"{path}?{urlencode({kind: message})}"
