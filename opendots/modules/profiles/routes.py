from fastapi import APIRouter, Depends, HTTPException, Query
from opendots.core.dependencies import get_current_user, get_profile_service
from opendots.modules.profiles.schemas import (
    OnboardingRequest, OnboardingStatus, ProfileResponse, ProfileResult,
    ProfileUpdate, UsernameAvailability, USERNAME_PATTERN
)
from opendots.modules.profiles.service import ProfileService
from typing import Dict

router = APIRouter(prefix="/profile", tags=["profile"])


@router.get("/username-available", response_model=UsernameAvailability)
async def check_username_available(
    username: str = Query(..., min_length=1, max_length=50, pattern=USERNAME_PATTERN),
    user_data: Dict = Depends(get_current_user),
    service: ProfileService = Depends(get_profile_service)
):
    """Check whether a username can still be claimed"""
    return UsernameAvailability(
        username=username,
        available=service.check_username_available(username)
    )


@router.get("/onboarding-status", response_model=OnboardingStatus)
async def get_onboarding_status(
    user_data: Dict = Depends(get_current_user),
    service: ProfileService = Depends(get_profile_service)
):
    """Has the current user finished onboarding"""
    return OnboardingStatus(completed=service.has_completed_onboarding(user_data["id"]))


@router.get("/me", response_model=ProfileResponse)
async def get_my_profile(
    user_data: Dict = Depends(get_current_user),
    service: ProfileService = Depends(get_profile_service)
):
    """Get the current user's onboarding profile"""
    profile = service.get_profile(user_data["id"])
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile


@router.post("", response_model=ProfileResult, status_code=201)
async def complete_onboarding(
    onboarding_data: OnboardingRequest,
    user_data: Dict = Depends(get_current_user),
    service: ProfileService = Depends(get_profile_service)
):
    """Create the user's profile; only allowed once"""
    return service.create_profile(user_data["id"], onboarding_data)


@router.patch("", response_model=ProfileResult)
async def update_profile(
    profile_data: ProfileUpdate,
    user_data: Dict = Depends(get_current_user),
    service: ProfileService = Depends(get_profile_service)
):
    """Update the user's profile (username cannot be changed)"""
    return service.update_profile(user_data["id"], profile_data)
