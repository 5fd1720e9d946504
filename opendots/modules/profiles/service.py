"""
Profile reconciliation across the primary store (Supabase) and the optional
secondary store (D1).

Reads go to D1 first and fall back to Supabase; a Supabase hit is copied into
D1 afterwards. Writes go to D1 best-effort and always to Supabase. When only
D1 accepted a write the caller gets a synthesized profile plus a warning.

D1 is treated as a disposable cache: nothing here detects or repairs two
populated rows that disagree.
"""

import logging
from typing import Any, Callable, Dict, Optional
from uuid import uuid4

from fastapi import HTTPException

from opendots.modules.profiles.schemas import (
    OnboardingRequest,
    ProfileResponse,
    ProfileResult,
    ProfileUpdate,
)
from opendots.modules.profiles.stores import PrimaryProfileStore, SecondaryProfileStore

logger = logging.getLogger(__name__)

CREATE_PARTIAL_WARNING = "Profile created in D1 only, Supabase sync failed"
UPDATE_PARTIAL_WARNING = "Profile updated in D1 only, Supabase sync failed"

Defer = Callable[..., Any]


def _run_now(fn: Callable[..., Any], *args: Any) -> None:
    fn(*args)


class ProfileService:
    def __init__(
        self,
        primary: PrimaryProfileStore,
        secondary: Optional[SecondaryProfileStore] = None,
        defer: Optional[Defer] = None,
    ):
        self.primary = primary
        self.secondary = secondary
        self.defer = defer or _run_now

    # Generic dual-store routines

    def _read_through(
        self,
        read_secondary: Callable[[SecondaryProfileStore], Any],
        read_primary: Callable[[PrimaryProfileStore], Any],
        backfill: bool = False,
    ) -> Any:
        """Ask D1 first; None from D1 (or a D1 failure) means ask Supabase.

        Supabase errors propagate. With backfill=True a Supabase hit is copied
        into D1 through self.defer.
        """
        if self.secondary is not None:
            try:
                found = read_secondary(self.secondary)
                if found is not None:
                    return found
            except Exception as e:
                logger.warning(f"D1 read failed, falling back to Supabase: {e}")

        found = read_primary(self.primary)
        if found is not None and backfill and self.secondary is not None:
            self.defer(self._backfill, found)
        return found

    def _backfill(self, row: Dict[str, Any]) -> None:
        try:
            self.secondary.upsert(row)
            logger.info(f"Backfilled profile {row.get('id')} into D1")
        except Exception as e:
            logger.warning(f"D1 backfill failed for profile {row.get('id')}: {e}")

    def _dual_write(
        self,
        action: str,
        write_secondary: Callable[[SecondaryProfileStore], Dict[str, Any]],
        write_primary: Callable[[PrimaryProfileStore], Dict[str, Any]],
        synthesize: Callable[[Dict[str, Any]], ProfileResponse],
        warning: str,
    ) -> ProfileResult:
        secondary_row: Optional[Dict[str, Any]] = None
        secondary_error: Optional[str] = None
        if self.secondary is not None:
            try:
                secondary_row = write_secondary(self.secondary)
            except Exception as e:
                secondary_error = str(e)
                logger.warning(f"D1 {action} failed: {e}")

        try:
            row = write_primary(self.primary)
            return ProfileResult(data=ProfileResponse(**row))
        except Exception as e:
            primary_error = str(e)
            logger.error(f"Supabase {action} failed: {e}")

        if secondary_row is not None:
            logger.warning(warning)
            return ProfileResult(data=synthesize(secondary_row), warning=warning)

        detail = f"Failed to {action} profile: {primary_error}"
        if secondary_error:
            detail += f"; D1: {secondary_error}"
        raise HTTPException(status_code=502, detail=detail)

    # Reads

    def check_username_available(self, username: str) -> bool:
        """D1 can veto a username; only Supabase can approve one."""
        def taken_in_secondary(store: SecondaryProfileStore) -> Optional[bool]:
            return None if store.is_username_available(username) else False

        try:
            return bool(self._read_through(
                taken_in_secondary,
                lambda store: store.is_username_available(username),
            ))
        except Exception as e:
            logger.error(f"Error checking username availability: {e}")
            return False

    def _find_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self._read_through(
            lambda store: store.get(user_id),
            lambda store: store.get(user_id),
            backfill=True,
        )

    def get_profile(self, user_id: str) -> Optional[ProfileResponse]:
        try:
            row = self._find_profile(user_id)
        except Exception as e:
            logger.error(f"Error getting profile for user {user_id}: {e}")
            return None
        return ProfileResponse(**row) if row else None

    def has_completed_onboarding(self, user_id: str) -> bool:
        return self.get_profile(user_id) is not None

    def onboarding_state(self, user_id: str) -> Optional[bool]:
        """Like has_completed_onboarding, but None when Supabase could not answer."""
        try:
            return self._find_profile(user_id) is not None
        except Exception as e:
            logger.error(f"Error checking onboarding status for user {user_id}: {e}")
            return None

    # Writes

    def create_profile(self, user_id: str, data: OnboardingRequest) -> ProfileResult:
        if self.get_profile(user_id) is not None:
            raise HTTPException(status_code=409, detail="Onboarding already completed")

        if not self.check_username_available(data.username):
            raise HTTPException(status_code=409, detail="Username is already taken")

        row = {
            "id": str(uuid4()),
            "user_id": user_id,
            "username": data.username,
            "display_name": data.display_name,
            "age": data.age,
            "gender": data.gender,
        }
        return self._dual_write(
            "create",
            lambda store: store.insert(row),
            lambda store: store.insert(row),
            lambda stored: ProfileResponse(**stored),
            CREATE_PARTIAL_WARNING,
        )

    def update_profile(self, user_id: str, data: ProfileUpdate) -> ProfileResult:
        try:
            row = self._find_profile(user_id)
        except Exception as e:
            logger.error(f"Error loading profile for update, user {user_id}: {e}")
            raise HTTPException(status_code=502, detail="Failed to load profile")
        if row is None:
            raise HTTPException(status_code=404, detail="Profile not found")
        existing = ProfileResponse(**row)

        fields = data.model_dump()
        return self._dual_write(
            "update",
            lambda store: store.update(user_id, fields),
            lambda store: store.update(user_id, fields),
            lambda changes: ProfileResponse(**{**existing.model_dump(), **changes}),
            UPDATE_PARTIAL_WARNING,
        )
