from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime

USERNAME_PATTERN = r"^[a-zA-Z0-9_]+$"


class OnboardingRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=50, pattern=USERNAME_PATTERN)
    display_name: str = Field(..., min_length=1)
    age: Optional[int] = None
    gender: Optional[str] = None


class ProfileUpdate(BaseModel):
    """Everything onboarding collects except username, which never changes."""
    model_config = ConfigDict(extra="ignore")

    display_name: str = Field(..., min_length=1)
    age: Optional[int] = None
    gender: Optional[str] = None


class ProfileResponse(BaseModel):
    id: str
    user_id: str
    username: str
    display_name: str
    age: Optional[int] = None
    gender: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ProfileResult(BaseModel):
    data: ProfileResponse
    warning: Optional[str] = None


class UsernameAvailability(BaseModel):
    username: str
    available: bool


class OnboardingStatus(BaseModel):
    completed: bool
