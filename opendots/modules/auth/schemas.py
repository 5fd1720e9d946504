from pydantic import BaseModel
from typing import Any, Dict, Literal

OAuthProvider = Literal["google", "github", "linkedin"]


class ClientInfo(BaseModel):
    platform: str = "unknown"
    browser: str = "unknown"
    location: str = "unknown"


class AuthSession(BaseModel):
    access_token: str
    refresh_token: str
    user: Dict[str, Any]
