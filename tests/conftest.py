from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import pytest
from fastapi import HTTPException

from opendots.modules.auth.schemas import AuthSession
from opendots.modules.profiles.models import UPDATABLE_COLUMNS
from opendots.modules.profiles.service import ProfileService


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def make_row(user_id: str = "user-1", username: str = "john_doe", **overrides: Any) -> dict[str, Any]:
    row = {
        "id": f"profile-{user_id}",
        "user_id": user_id,
        "username": username,
        "display_name": "John Doe",
        "age": 30,
        "gender": "male",
        "created_at": "2024-05-01T12:00:00+00:00",
        "updated_at": "2024-05-01T12:00:00+00:00",
    }
    row.update(overrides)
    return row


class FakePrimaryStore:
    """In-memory stand-in for PrimaryProfileStore that records every call."""

    name = "Supabase"

    def __init__(self, rows: list[dict[str, Any]] | None = None) -> None:
        self.rows = {r["user_id"]: dict(r) for r in rows or []}
        self.calls: list[str] = []
        self.failing: set[str] = set()
        self.sign_ins: list[tuple[str, str, str, str]] = []

    def fail(self, *operations: str) -> "FakePrimaryStore":
        self.failing.update(operations)
        return self

    def _call(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.failing:
            raise RuntimeError(f"{self.name} {operation} unavailable")

    def is_username_available(self, username: str) -> bool:
        self._call("is_username_available")
        return all(r["username"] != username for r in self.rows.values())

    def get(self, user_id: str) -> dict[str, Any] | None:
        self._call("get")
        row = self.rows.get(user_id)
        return dict(row) if row else None

    def insert(self, row: dict[str, Any]) -> dict[str, Any]:
        self._call("insert")
        now = _now()
        stored = {**row, "created_at": now, "updated_at": now}
        self.rows[row["user_id"]] = stored
        return dict(stored)

    def update(self, user_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        self._call("update")
        if user_id not in self.rows:
            raise RuntimeError("Profile not found")
        changes = {k: v for k, v in fields.items() if k in UPDATABLE_COLUMNS}
        self.rows[user_id].update(changes, updated_at=_now())
        return dict(self.rows[user_id])

    def record_sign_in(self, user_id: str, platform: str, browser: str, location: str) -> bool:
        self._call("record_sign_in")
        self.sign_ins.append((user_id, platform, browser, location))
        return True


class FakeSecondaryStore(FakePrimaryStore):
    """In-memory stand-in for SecondaryProfileStore (update returns only the changes)."""

    name = "D1"

    def update(self, user_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        self._call("update")
        if user_id not in self.rows:
            raise RuntimeError(f"No D1 profile row for user {user_id}")
        changes = {k: v for k, v in fields.items() if k in UPDATABLE_COLUMNS}
        changes["updated_at"] = _now()
        self.rows[user_id].update(changes)
        return changes

    def upsert(self, row: dict[str, Any]) -> None:
        self._call("upsert")
        self.rows[row["user_id"]] = dict(row)


class DeferredCalls:
    """Collects backfills instead of running them, like BackgroundTasks."""

    def __init__(self) -> None:
        self.tasks: list[tuple[Any, tuple[Any, ...]]] = []

    def __call__(self, fn, *args) -> None:
        self.tasks.append((fn, args))

    def run_all(self) -> None:
        for fn, args in self.tasks:
            fn(*args)


class FakeAuthService:
    def __init__(self, users: dict[str, dict[str, Any]] | None = None, refreshable: dict[str, AuthSession] | None = None) -> None:
        self.users = users or {}
        self.refreshable = refreshable or {}
        self.token_lookups: list[str] = []
        self.refreshes: list[str] = []

    def get_current_user(self, token: str) -> dict[str, Any]:
        self.token_lookups.append(token)
        if token not in self.users:
            raise HTTPException(status_code=401, detail="Invalid or expired token")
        return self.users[token]

    def refresh_session(self, refresh_token: str) -> AuthSession | None:
        self.refreshes.append(refresh_token)
        return self.refreshable.get(refresh_token)


@pytest.fixture
def primary() -> FakePrimaryStore:
    return FakePrimaryStore()


@pytest.fixture
def secondary() -> FakeSecondaryStore:
    return FakeSecondaryStore()


@pytest.fixture
def deferred() -> DeferredCalls:
    return DeferredCalls()


@pytest.fixture
def service(primary, secondary, deferred) -> ProfileService:
    return ProfileService(primary, secondary, defer=deferred)
