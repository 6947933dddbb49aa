"""到期日计算：间隔推算、周末顺延、剩余天数与状态。"""
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

__all__ = [
    "DueStatus",
    "add_interval",
    "adjust_weekend",
    "calc_next_date",
    "days_to_next",
    "parse_alert_days",
    "resolve_alert_days",
    "status_from_days",
    "today_in",
]
