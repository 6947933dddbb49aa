"""宠物、治疗项与使用记录：模型、存储、权限与日程。"""
from pet_reminders.care.agenda import AgendaItem, AgendaService, AgendaSummary, DayEntry
from pet_reminders.care.models import (
    OVERDUE_DAILY,
    AlertLogEntry,
    AlertStatus,
    Application,
    IntervalUnit,
    MemberRole,
    Pet,
    PetMember,
    Treatment,
    TreatmentCategory,
    upcoming_alert_type,
)
from pet_reminders.care.permission import PermissionChecker, PermissionDenied, require_capability
from pet_reminders.care.store import AlertClaimConflict, CareStore, SqliteCareStore, StoreError
from pet_reminders.care.supabase import SupabaseCareStore

__all__ = [
    "AgendaItem",
    "AgendaService",
    "AgendaSummary",
    "DayEntry",
    "OVERDUE_DAILY",
    "AlertLogEntry",
    "AlertStatus",
    "Application",
    "IntervalUnit",
    "MemberRole",
    "Pet",
    "PetMember",
    "Treatment",
    "TreatmentCategory",
    "upcoming_alert_type",
    "PermissionChecker",
    "PermissionDenied",
    "require_capability",
    "AlertClaimConflict",
    "CareStore",
    "SqliteCareStore",
    "StoreError",
    "SupabaseCareStore",
]
