"""到期提醒：去重、消息发送与每日任务。"""
from pet_reminders.alerts.dedup import AlertDeduplicator
from pet_reminders.alerts.notifier import (
    DeliveryError,
    Notifier,
    RecordingNotifier,
    TelegramNotifier,
    format_overdue,
    format_upcoming,
)
from pet_reminders.alerts.runner import AlertRunner, RunSummary, TreatmentOutcome, due_alert_types

__all__ = [
    "AlertDeduplicator",
    "DeliveryError",
    "Notifier",
    "RecordingNotifier",
    "TelegramNotifier",
    "format_overdue",
    "format_upcoming",
    "AlertRunner",
    "RunSummary",
    "TreatmentOutcome",
    "due_alert_types",
]
