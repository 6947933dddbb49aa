"""到期日计算测试。"""
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from pet_reminders.schedule.calculator import (
    DueStatus,
    add_interval,
    adjust_weekend,
    calc_next_date,
    days_to_next,
    parse_alert_days,
    resolve_alert_days,
    status_from_days,
    today_in,
)


def test_add_interval_days_and_months() -> None:
    assert add_interval(date(2024, 1, 1), 10, "days") == date(2024, 1, 11)
    assert add_interval(date(2024, 1, 1), 6, "months") == date(2024, 7, 1)
    assert add_interval(date(2024, 1, 1), 0, "months") == date(2024, 1, 1)


def test_add_interval_clamps_month_end() -> None:
    assert add_interval(date(2024, 1, 31), 1, "months") == date(2024, 2, 29)
    assert add_interval(date(2023, 1, 31), 1, "months") == date(2023, 2, 28)
    assert add_interval(date(2024, 3, 31), 1, "months") == date(2024, 4, 30)


def test_add_interval_rejects_negative() -> None:
    with pytest.raises(ValueError):
        add_interval(date(2024, 1, 1), -1, "days")


def test_adjust_weekend() -> None:
    assert adjust_weekend(date(2024, 6, 1)) == date(2024, 6, 3)   # 周六
    assert adjust_weekend(date(2024, 6, 2)) == date(2024, 6, 3)   # 周日
    assert adjust_weekend(date(2024, 6, 5)) == date(2024, 6, 5)   # 周三


def test_adjust_weekend_never_lands_on_weekend() -> None:
    start = date(2024, 1, 1)
    for offset in range(28):
        day = start + timedelta(days=offset)
        adjusted = adjust_weekend(day)
        assert adjusted.weekday() < 5
        assert 0 <= (adjusted - day).days <= 2


def test_calc_next_date() -> None:
    # 2024-07-01 为周一，无需顺延
    assert calc_next_date(date(2024, 1, 1), 6, "months") == date(2024, 7, 1)
    # 2024-06-01 为周六，顺延到周一
    assert calc_next_date(date(2024, 5, 2), 30, "days") == date(2024, 6, 3)
    assert calc_next_date(date(2024, 5, 2), 30, "days") == calc_next_date(date(2024, 5, 2), 30, "days")


def test_days_to_next() -> None:
    d = date(2024, 6, 1)
    assert days_to_next(d, d) == 0
    assert days_to_next(date(2024, 7, 1), date(2024, 6, 1)) == 30
    assert days_to_next(date(2024, 7, 1), date(2024, 7, 6)) == -5


def test_days_to_next_ignores_time_of_day() -> None:
    late = datetime(2024, 6, 1, 23, 59)
    early = datetime(2024, 6, 2, 0, 1)
    assert days_to_next(early, late) == 1
    assert days_to_next(date(2024, 6, 2), late) == 1


def test_status_from_days_boundaries() -> None:
    assert status_from_days(-1) == DueStatus.OVERDUE
    assert status_from_days(0) == DueStatus.UPCOMING
    assert status_from_days(60) == DueStatus.UPCOMING
    assert status_from_days(61) == DueStatus.LATER


def test_today_in_uses_timezone() -> None:
    tz = ZoneInfo("America/Sao_Paulo")
    assert today_in(tz) == datetime.now(tz).date()


def test_resolve_alert_days_default() -> None:
    assert resolve_alert_days(None) == [30, 15, 5]
    assert resolve_alert_days([]) == [30, 15, 5]
    assert resolve_alert_days([7, 1]) == [7, 1]


def test_parse_alert_days() -> None:
    assert parse_alert_days("30,15,5") == [30, 15, 5]
    assert parse_alert_days(" 5, 30 ,,15,5, abc, -2") == [30, 15, 5]
    assert parse_alert_days("0") == [0]
    assert parse_alert_days("") == []
