"""本地 SQLite 存储测试。"""
import tempfile
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

import pytest

from pet_reminders.care.models import AlertStatus, MemberRole
from pet_reminders.care.store import AlertClaimConflict, SqliteCareStore, StoreError


def test_store_persists_to_file() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "care.db"
        store = SqliteCareStore(path)
        pet = store.add_pet("Zeus")
        store.add_member(pet.id, "user1", MemberRole.OWNER)
        store.close()

        reopened = SqliteCareStore(path)
        assert reopened.get_pet(pet.id).name == "Zeus"
        assert reopened.get_member_role(pet.id, "user1") == "owner"
        reopened.close()


def test_list_owner_pets_excludes_viewer_only() -> None:
    store = SqliteCareStore(":memory:")
    owned = store.add_pet("Zeus")
    shared = store.add_pet("Luna")
    store.add_member(owned.id, "user1", MemberRole.OWNER)
    store.add_member(owned.id, "user2", MemberRole.VIEWER)
    store.add_member(shared.id, "user2", MemberRole.VIEWER)
    assert [p.name for p in store.list_owner_pets()] == ["Zeus"]
    assert store.get_member_role(owned.id, "user3") is None


def test_member_unique_per_pet() -> None:
    store = SqliteCareStore(":memory:")
    pet = store.add_pet("Zeus")
    store.add_member(pet.id, "user1", MemberRole.OWNER)
    with pytest.raises(StoreError):
        store.add_member(pet.id, "user1", MemberRole.VIEWER)


def test_treatments_ordered_and_deleted() -> None:
    store = SqliteCareStore(":memory:")
    pet = store.add_pet("Zeus")
    store.add_treatment(pet.id, "vaccine", "V10", 12, "months", [30, 15, 5])
    store.add_treatment(pet.id, "medicine", "Apoquel", 30, "days", [])
    store.add_treatment(pet.id, "vaccine", "Antirrábica", 12, "months", [7])
    treatments = store.list_treatments(pet.id)
    assert [t.name for t in treatments] == ["Apoquel", "Antirrábica", "V10"]
    assert treatments[0].alerts_days == []
    assert treatments[0].effective_alert_days == [30, 15, 5]

    assert store.delete_treatment(treatments[0].id) is True
    assert store.delete_treatment(treatments[0].id) is False
    assert store.get_treatment(treatments[0].id) is None


def test_last_application_date_is_most_recent() -> None:
    store = SqliteCareStore(":memory:")
    pet = store.add_pet("Zeus")
    t = store.add_treatment(pet.id, "vaccine", "V10", 12, "months", [])
    assert store.last_application_date(t.id) is None
    store.add_application(t.id, date(2024, 3, 1))
    store.add_application(t.id, date(2024, 5, 10))
    store.add_application(t.id, date(2023, 12, 25))
    assert store.last_application_date(t.id) == date(2024, 5, 10)


def test_alert_claim_unique_conflict() -> None:
    store = SqliteCareStore(":memory:")
    pet = store.add_pet("Zeus")
    t = store.add_treatment(pet.id, "vaccine", "V10", 12, "months", [])
    now = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)
    store.insert_alert_claim(t.id, "upcoming_30", date(2024, 6, 1), now)
    with pytest.raises(AlertClaimConflict):
        store.insert_alert_claim(t.id, "upcoming_30", date(2024, 6, 1), now)
    # 日期或类型不同则互不影响
    store.insert_alert_claim(t.id, "upcoming_30", date(2024, 6, 2), now)
    store.insert_alert_claim(t.id, "overdue_daily", date(2024, 6, 1), now)

    entry = store.get_alert_entry(t.id, "upcoming_30", date(2024, 6, 1))
    assert entry.status == AlertStatus.PENDING.value
    assert entry.claimed_at == now


def test_alert_claim_other_integrity_error_is_not_conflict() -> None:
    store = SqliteCareStore(":memory:")
    now = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)
    with pytest.raises(StoreError) as excinfo:
        store.insert_alert_claim("missing", "upcoming_30", date(2024, 6, 1), now)
    assert not isinstance(excinfo.value, AlertClaimConflict)


def test_alert_lifecycle_updates() -> None:
    store = SqliteCareStore(":memory:")
    pet = store.add_pet("Zeus")
    t = store.add_treatment(pet.id, "vaccine", "V10", 12, "months", [])
    day = date(2024, 6, 1)
    t0 = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)
    store.insert_alert_claim(t.id, "overdue_daily", day, t0)

    assert store.refresh_stale_claim(t.id, "overdue_daily", day, stale_before=t0, claimed_at=t0) is False
    later = t0 + timedelta(hours=2)
    assert store.refresh_stale_claim(
        t.id, "overdue_daily", day, stale_before=later - timedelta(hours=1), claimed_at=later
    ) is True
    assert store.get_alert_entry(t.id, "overdue_daily", day).claimed_at == later

    store.mark_alert_sent(t.id, "overdue_daily", day, later)
    store.delete_alert_claim(t.id, "overdue_daily", day)
    entry = store.get_alert_entry(t.id, "overdue_daily", day)
    assert entry.status == AlertStatus.SENT.value
    assert entry.sent_at == later


def test_invalid_treatment_rows_raise_store_error() -> None:
    store = SqliteCareStore(":memory:")
    pet = store.add_pet("Zeus")
    t = store.add_treatment(pet.id, "vaccine", "V10", 12, "months", [])
    store.conn.execute("UPDATE treatments SET category = 'bogus' WHERE id = ?", (t.id,))
    store.conn.commit()
    with pytest.raises(StoreError, match=t.id):
        store.list_treatments(pet.id)

    store.conn.execute("UPDATE treatments SET category = 'vaccine', alerts_days = 'x' WHERE id = ?", (t.id,))
    store.conn.commit()
    with pytest.raises(StoreError, match="alerts_days"):
        store.get_treatment(t.id)
