"""
Per-backend access to user profiles.

Both stores expose the same shape (is_username_available, get, insert, update)
and let backend errors propagate; ProfileService decides what a failure means.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from supabase import Client

from opendots.database.d1_client import D1Client, D1Error
from opendots.modules.profiles.models import (
    PROFILE_COLUMNS,
    SIGN_IN_METADATA_RPC,
    UPDATABLE_COLUMNS,
    USER_PROFILES_TABLE,
    USERNAME_AVAILABLE_RPC,
)

logger = logging.getLogger(__name__)


class PrimaryProfileStore:
    """Supabase (Postgres) user_profiles table."""

    name = "Supabase"

    def __init__(self, supabase: Client):
        self.supabase = supabase

    def is_username_available(self, username: str) -> bool:
        result = self.supabase.rpc(
            USERNAME_AVAILABLE_RPC, {"username_to_check": username}
        ).execute()
        return bool(result.data)

    def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        result = self.supabase.table(USER_PROFILES_TABLE)\
            .select("*")\
            .eq("user_id", user_id)\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def insert(self, row: Dict[str, Any]) -> Dict[str, Any]:
        result = self.supabase.table(USER_PROFILES_TABLE).insert(row).execute()
        if not result.data:
            raise RuntimeError("Insert returned no row")
        return result.data[0]

    def update(self, user_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        update_data = {k: v for k, v in fields.items() if k in UPDATABLE_COLUMNS}
        update_data["updated_at"] = _now()
        result = self.supabase.table(USER_PROFILES_TABLE)\
            .update(update_data)\
            .eq("user_id", user_id)\
            .execute()
        if not result.data:
            raise RuntimeError("Profile not found")
        return result.data[0]

    def record_sign_in(self, user_id: str, platform: str, browser: str, location: str) -> bool:
        """Refresh device metadata on the legacy profiles row."""
        result = self.supabase.rpc(
            SIGN_IN_METADATA_RPC,
            {
                "user_id": user_id,
                "p_platform": platform,
                "p_browser": browser,
                "p_location": location,
            },
        ).execute()
        return bool(result.data)


class SecondaryProfileStore:
    """Cloudflare D1 mirror of user_profiles."""

    name = "D1"

    def __init__(self, d1: D1Client):
        self.d1 = d1

    def is_username_available(self, username: str) -> bool:
        row = self.d1.first(
            f"SELECT id FROM {USER_PROFILES_TABLE} WHERE username = ?", [username]
        )
        return row is None

    def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        row = self.d1.first(
            f"SELECT * FROM {USER_PROFILES_TABLE} WHERE user_id = ?", [user_id]
        )
        if not row:
            return None
        profile = {column: row.get(column) for column in PROFILE_COLUMNS}
        # D1 hands numbers back as REAL or TEXT depending on how they were bound
        profile["age"] = int(row["age"]) if row.get("age") not in (None, "") else None
        return profile

    def insert(self, row: Dict[str, Any]) -> Dict[str, Any]:
        now = _now()
        stored = {**row, "created_at": now, "updated_at": now}
        self.d1.execute(
            f"""
            INSERT INTO {USER_PROFILES_TABLE} (id, user_id, username, display_name, age, gender, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                stored["id"],
                stored["user_id"],
                stored["username"],
                stored["display_name"],
                stored.get("age"),
                stored.get("gender"),
                stored["created_at"],
                stored["updated_at"],
            ],
        )
        return stored

    def upsert(self, row: Dict[str, Any]) -> None:
        """Copy a full row as-is, keeping the source store's timestamps."""
        self.d1.execute(
            f"""
            INSERT OR REPLACE INTO {USER_PROFILES_TABLE} (id, user_id, username, display_name, age, gender, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [_as_param(row.get(column)) for column in PROFILE_COLUMNS],
        )

    def update(self, user_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        now = _now()
        assignments = ["updated_at = ?"]
        params: List[Any] = [now]
        for column in UPDATABLE_COLUMNS:
            if column in fields:
                assignments.append(f"{column} = ?")
                params.append(fields[column])
        params.append(user_id)
        meta = self.d1.execute(
            f"UPDATE {USER_PROFILES_TABLE} SET {', '.join(assignments)} WHERE user_id = ?",
            params,
        )
        if meta.get("changes") == 0:
            raise D1Error(f"No D1 profile row for user {user_id}")
        return {**{k: v for k, v in fields.items() if k in UPDATABLE_COLUMNS}, "updated_at": now}

    def status(self) -> Dict[str, Any]:
        tables = self.d1.query("SELECT name FROM sqlite_master WHERE type='table'")
        count = self.d1.first(f"SELECT COUNT(*) as count FROM {USER_PROFILES_TABLE}")
        return {
            "tables": [t["name"] for t in tables],
            "profile_count": int(count["count"]) if count else 0,
        }


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _as_param(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value
