"""到期日计算（纯函数，不读系统时钟；today_in 除外）。"""
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Iterable, List, Optional, Union
from zoneinfo import ZoneInfo

from dateutil.relativedelta import relativedelta

from pet_reminders.config import DEFAULT_ALERT_DAYS, UPCOMING_WINDOW_DAYS

SATURDAY = 5
SUNDAY = 6


class DueStatus(str, Enum):
    """到期状态。"""
    OVERDUE = "overdue"     # 已逾期
    UPCOMING = "upcoming"   # 60 天内到期
    LATER = "later"         # 更晚


def _as_date(value: Union[date, datetime]) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def add_interval(start: date, value: int, unit: str) -> date:
    """按间隔推算日期：unit 为 months 时按自然月（月末截断），否则按天。"""
    if value < 0:
        raise ValueError(f"间隔不能为负数: {value}")
    start = _as_date(start)
    if unit == "months":
        # relativedelta 会把 1 月 31 日 + 1 个月截断到 2 月最后一天
        return start + relativedelta(months=value)
    return start + timedelta(days=value)


def adjust_weekend(day: date) -> date:
    """周六顺延 2 天、周日顺延 1 天到周一，其余不变。"""
    day = _as_date(day)
    weekday = day.weekday()
    if weekday == SATURDAY:
        return day + timedelta(days=2)
    if weekday == SUNDAY:
        return day + timedelta(days=1)
    return day


def calc_next_date(last_applied: date, value: int, unit: str) -> date:
    """下次到期日 = 上次使用日期 + 间隔，再做周末顺延。"""
    return adjust_weekend(add_interval(last_applied, value, unit))


def days_to_next(next_date: date, today: date) -> int:
    """从 today 到 next_date 的日历天数差（正数为未来，负数为已过）。"""
    return (_as_date(next_date) - _as_date(today)).days


def status_from_days(days: int) -> DueStatus:
    if days < 0:
        return DueStatus.OVERDUE
    if days <= UPCOMING_WINDOW_DAYS:
        return DueStatus.UPCOMING
    return DueStatus.LATER


def today_in(tz: ZoneInfo) -> date:
    """参考时区下的「今天」。"""
    return datetime.now(tz).date()


def resolve_alert_days(alerts_days: Optional[Iterable[int]]) -> List[int]:
    """治疗项的提醒天数；未配置或为空时使用默认 [30, 15, 5]。"""
    configured = list(alerts_days or [])
    if not configured:
        return list(DEFAULT_ALERT_DAYS)
    return configured


def parse_alert_days(text: str) -> List[int]:
    """把 "30,15,5" 解析为 [30, 15, 5]：忽略空项、非数字与负数，去重并降序。"""
    values = set()
    for part in (text or "").split(","):
        part = part.strip()
        if not part:
            continue
        try:
            number = int(part)
        except ValueError:
            continue
        if number >= 0:
            values.add(number)
    return sorted(values, reverse=True)
