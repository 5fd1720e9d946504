from __future__ import annotations

import pytest
from fastapi import HTTPException

from opendots.modules.profiles.schemas import OnboardingRequest, ProfileUpdate
from opendots.modules.profiles.service import (
    CREATE_PARTIAL_WARNING,
    UPDATE_PARTIAL_WARNING,
    ProfileService,
)

from conftest import FakePrimaryStore, make_row


def _onboarding(**overrides) -> OnboardingRequest:
    payload = {"username": "john_doe", "display_name": "John Doe", "age": 30, "gender": "male"}
    payload.update(overrides)
    return OnboardingRequest(**payload)


# Username availability


def test_username_taken_in_secondary_skips_primary(service, primary, secondary) -> None:
    secondary.rows["other"] = make_row("other", "john_doe")

    assert service.check_username_available("john_doe") is False
    assert primary.calls == []


def test_username_free_in_secondary_asks_primary(service, primary, secondary) -> None:
    primary.rows["other"] = make_row("other", "john_doe")

    assert service.check_username_available("john_doe") is False
    assert secondary.calls == ["is_username_available"]
    assert primary.calls == ["is_username_available"]


def test_username_available_only_when_both_agree(service, primary, secondary) -> None:
    assert service.check_username_available("fresh_name") is True
    assert primary.calls == ["is_username_available"]


def test_unreachable_secondary_falls_through_to_primary(service, primary, secondary) -> None:
    secondary.fail("is_username_available")

    assert service.check_username_available("fresh_name") is True
    assert primary.calls == ["is_username_available"]


def test_primary_failure_reports_username_unavailable(service, primary) -> None:
    primary.fail("is_username_available")

    assert service.check_username_available("fresh_name") is False


def test_username_check_without_secondary_store(primary) -> None:
    service = ProfileService(primary)

    assert service.check_username_available("fresh_name") is True


# Reads


def test_get_profile_secondary_hit_returns_immediately(service, primary, secondary, deferred) -> None:
    secondary.rows["user-1"] = make_row()

    profile = service.get_profile("user-1")

    assert profile is not None
    assert profile.username == "john_doe"
    assert primary.calls == []
    assert deferred.tasks == []


def test_get_profile_absent_everywhere_issues_no_write(service, primary, secondary, deferred) -> None:
    assert service.get_profile("user-1") is None
    assert deferred.tasks == []
    assert "upsert" not in secondary.calls
    assert primary.calls == ["get"]


def test_get_profile_primary_only_schedules_one_backfill(service, primary, secondary, deferred) -> None:
    primary.rows["user-1"] = make_row()

    profile = service.get_profile("user-1")

    assert profile is not None and profile.id == "profile-user-1"
    assert len(deferred.tasks) == 1
    assert "user-1" not in secondary.rows

    deferred.run_all()
    assert secondary.calls.count("upsert") == 1
    assert secondary.rows["user-1"]["username"] == "john_doe"


def test_backfill_failure_is_swallowed(service, primary, secondary, deferred) -> None:
    primary.rows["user-1"] = make_row()
    secondary.fail("upsert")

    assert service.get_profile("user-1") is not None
    deferred.run_all()
    assert secondary.calls.count("upsert") == 1


def test_backfill_runs_inline_by_default(primary, secondary) -> None:
    primary.rows["user-1"] = make_row()
    service = ProfileService(primary, secondary)

    service.get_profile("user-1")

    assert "user-1" in secondary.rows


def test_secondary_unreachable_and_primary_empty_returns_none(service, primary, secondary, deferred) -> None:
    secondary.fail("get")

    assert service.get_profile("U") is None
    assert deferred.tasks == []


def test_primary_error_on_read_returns_none(service, primary) -> None:
    primary.fail("get")

    assert service.get_profile("user-1") is None


def test_onboarding_state_is_unknown_when_primary_fails(service, primary) -> None:
    primary.fail("get")

    assert service.onboarding_state("user-1") is None
    assert service.has_completed_onboarding("user-1") is False


def test_onboarding_state_true_from_secondary(service, secondary) -> None:
    secondary.rows["user-1"] = make_row()

    assert service.onboarding_state("user-1") is True


# Create


def test_create_profile_writes_both_stores_with_shared_id(service, primary, secondary) -> None:
    result = service.create_profile("user-1", _onboarding())

    assert result.warning is None
    assert result.data.username == "john_doe"
    assert primary.rows["user-1"]["id"] == secondary.rows["user-1"]["id"] == result.data.id


def test_second_create_is_rejected_as_already_completed(service, primary) -> None:
    service.create_profile("user-1", _onboarding())

    with pytest.raises(HTTPException) as exc:
        service.create_profile("user-1", _onboarding(username="another_name"))

    assert exc.value.status_code == 409
    assert exc.value.detail == "Onboarding already completed"
    assert primary.calls.count("insert") == 1


def test_create_with_taken_username_is_rejected(service, primary) -> None:
    primary.rows["other"] = make_row("other", "john_doe")

    with pytest.raises(HTTPException) as exc:
        service.create_profile("user-1", _onboarding())

    assert exc.value.status_code == 409
    assert exc.value.detail == "Username is already taken"


def test_create_primary_fails_after_secondary_succeeds(service, primary, secondary) -> None:
    primary.fail("insert")

    result = service.create_profile("user-1", _onboarding(username="john_doe"))

    assert result.warning == "Profile created in D1 only, Supabase sync failed"
    assert result.warning == CREATE_PARTIAL_WARNING
    assert result.data.user_id == "user-1"
    assert result.data.username == "john_doe"
    assert result.data.display_name == "John Doe"
    assert result.data.id == secondary.rows["user-1"]["id"]


def test_create_both_stores_fail_raises_combined_error(service, primary, secondary) -> None:
    primary.fail("insert")
    secondary.fail("insert")

    with pytest.raises(HTTPException) as exc:
        service.create_profile("user-1", _onboarding())

    assert exc.value.status_code == 502
    assert "Supabase insert unavailable" in exc.value.detail
    assert "D1 insert unavailable" in exc.value.detail


def test_create_secondary_failure_is_not_surfaced(service, primary, secondary) -> None:
    secondary.fail("insert")

    result = service.create_profile("user-1", _onboarding())

    assert result.warning is None
    assert "user-1" in primary.rows


def test_create_without_secondary_raises_on_primary_failure() -> None:
    primary = FakePrimaryStore().fail("insert")
    service = ProfileService(primary)

    with pytest.raises(HTTPException) as exc:
        service.create_profile("user-1", _onboarding())

    assert exc.value.status_code == 502


# Update


def test_update_never_touches_username(service, primary, secondary) -> None:
    primary.rows["user-1"] = make_row()
    secondary.rows["user-1"] = make_row()
    update = ProfileUpdate(**{"username": "hijacked", "display_name": "Johnny", "age": 31, "gender": None})

    result = service.update_profile("user-1", update)

    assert not hasattr(update, "username")
    assert result.data.username == "john_doe"
    assert result.data.display_name == "Johnny"
    assert primary.rows["user-1"]["username"] == "john_doe"
    assert secondary.rows["user-1"]["username"] == "john_doe"


def test_update_missing_profile_is_404(service) -> None:
    with pytest.raises(HTTPException) as exc:
        service.update_profile("user-1", ProfileUpdate(display_name="Johnny"))

    assert exc.value.status_code == 404


def test_update_primary_fails_returns_synthesized_profile_with_warning(service, primary, secondary) -> None:
    secondary.rows["user-1"] = make_row()
    primary.fail("update")

    result = service.update_profile("user-1", ProfileUpdate(display_name="Johnny", age=40))

    assert result.warning == UPDATE_PARTIAL_WARNING
    assert result.data.display_name == "Johnny"
    assert result.data.age == 40
    assert result.data.username == "john_doe"
    assert result.data.id == "profile-user-1"


def test_update_both_fail_raises(service, primary, secondary) -> None:
    secondary.rows["user-1"] = make_row()
    primary.fail("update")
    secondary.fail("update")

    with pytest.raises(HTTPException) as exc:
        service.update_profile("user-1", ProfileUpdate(display_name="Johnny"))

    assert exc.value.status_code == 502


def test_update_missing_from_secondary_and_primary_failing_is_502(service, primary, secondary) -> None:
    primary.rows["user-1"] = make_row()
    primary.fail("update")

    with pytest.raises(HTTPException) as exc:
        service.update_profile("user-1", ProfileUpdate(display_name="Johnny"))

    assert exc.value.status_code == 502
    assert "No D1 profile row" in exc.value.detail
    assert primary.rows["user-1"]["display_name"] == "John Doe"


def test_update_when_primary_unreadable_is_502_not_404(service, primary) -> None:
    primary.fail("get")

    with pytest.raises(HTTPException) as exc:
        service.update_profile("user-1", ProfileUpdate(display_name="Johnny"))

    assert exc.value.status_code == 502
    assert exc.value.detail == "Failed to load profile"
    assert "update" not in primary.calls
