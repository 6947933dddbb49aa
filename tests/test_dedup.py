"""提醒去重测试：占位、重复、过期接管、释放。"""
import tempfile
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

from pet_reminders.alerts.dedup import AlertDeduplicator
from pet_reminders.care.models import AlertStatus
from pet_reminders.care.store import SqliteCareStore, StoreError

DAY = date(2024, 6, 1)
T0 = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)


def _seed(store: SqliteCareStore) -> str:
    pet = store.add_pet("Zeus")
    return store.add_treatment(pet.id, "vaccine", "V10", 12, "months", []).id


def test_second_claim_same_day_is_rejected() -> None:
    store = SqliteCareStore(":memory:")
    tid = _seed(store)
    dedup = AlertDeduplicator(store)
    assert dedup.try_claim(tid, "upcoming_30", DAY, now=T0) is True
    assert dedup.try_claim(tid, "upcoming_30", DAY, now=T0 + timedelta(minutes=5)) is False
    assert dedup.try_claim(tid, "upcoming_30", DAY + timedelta(days=1), now=T0) is True


def test_confirmed_claim_is_never_taken_over() -> None:
    store = SqliteCareStore(":memory:")
    tid = _seed(store)
    dedup = AlertDeduplicator(store, stale_after=timedelta(minutes=60))
    assert dedup.try_claim(tid, "overdue_daily", DAY, now=T0) is True
    dedup.confirm(tid, "overdue_daily", DAY, now=T0)
    assert store.get_alert_entry(tid, "overdue_daily", DAY).status == AlertStatus.SENT.value
    assert dedup.try_claim(tid, "overdue_daily", DAY, now=T0 + timedelta(hours=5)) is False


def test_stale_pending_claim_is_taken_over() -> None:
    store = SqliteCareStore(":memory:")
    tid = _seed(store)
    dedup = AlertDeduplicator(store, stale_after=timedelta(minutes=60))
    assert dedup.try_claim(tid, "overdue_daily", DAY, now=T0) is True
    assert dedup.try_claim(tid, "overdue_daily", DAY, now=T0 + timedelta(minutes=30)) is False
    assert dedup.try_claim(tid, "overdue_daily", DAY, now=T0 + timedelta(minutes=90)) is True
    # 刚被接管，不能再被接管
    assert dedup.try_claim(tid, "overdue_daily", DAY, now=T0 + timedelta(minutes=91)) is False


def test_release_allows_retry() -> None:
    store = SqliteCareStore(":memory:")
    tid = _seed(store)
    dedup = AlertDeduplicator(store)
    assert dedup.try_claim(tid, "upcoming_5", DAY, now=T0) is True
    dedup.release(tid, "upcoming_5", DAY)
    assert store.get_alert_entry(tid, "upcoming_5", DAY) is None
    assert dedup.try_claim(tid, "upcoming_5", DAY, now=T0) is True


def test_release_failure_is_logged_not_raised(capsys) -> None:
    class BrokenDeleteStore(SqliteCareStore):
        def delete_alert_claim(self, treatment_id, alert_type, alert_date):
            raise StoreError("offline")

    store = BrokenDeleteStore(":memory:")
    tid = _seed(store)
    dedup = AlertDeduplicator(store)
    dedup.try_claim(tid, "upcoming_5", DAY, now=T0)
    dedup.release(tid, "upcoming_5", DAY)
    assert "释放占位失败" in capsys.readouterr().err


def test_store_errors_other_than_conflict_propagate() -> None:
    dedup = AlertDeduplicator(SqliteCareStore(":memory:"))
    with pytest.raises(StoreError):
        dedup.try_claim("no-such-treatment", "upcoming_5", DAY, now=T0)


def test_concurrent_claims_single_winner() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        store = SqliteCareStore(Path(tmp) / "care.db")
        tid = _seed(store)
        dedup = AlertDeduplicator(store)
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: dedup.try_claim(tid, "overdue_daily", DAY, now=T0), range(16)))
        assert results.count(True) == 1
        store.close()


def test_stale_takeover_with_non_utc_clock() -> None:
    store = SqliteCareStore(":memory:")
    tid = _seed(store)
    dedup = AlertDeduplicator(store, stale_after=timedelta(minutes=60))
    assert dedup.try_claim(tid, "overdue_daily", DAY, now=T0) is True
    later_local = (T0 + timedelta(hours=3)).astimezone(ZoneInfo("America/Sao_Paulo"))
    assert dedup.try_claim(tid, "overdue_daily", DAY, now=later_local) is True
    assert store.get_alert_entry(tid, "overdue_daily", DAY).claimed_at == T0 + timedelta(hours=3)
