"""日程服务：计算每个治疗项的下次日期与状态，并处理主人的新增/记录操作。"""
from datetime import date
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field

from pet_reminders.care.models import Application, IntervalUnit, Treatment, TreatmentCategory
from pet_reminders.care.permission import PermissionChecker, require_capability
from pet_reminders.care.store import CareStore
from pet_reminders.schedule.calculator import (
    DueStatus,
    calc_next_date,
    days_to_next,
    parse_alert_days,
    status_from_days,
)


class AgendaItem(BaseModel):
    """日程中的一项。无使用记录时下次日期与状态为空。"""
    treatment_id: str
    treatment_name: str
    category: str
    last_applied_on: Optional[date] = None
    next_date: Optional[date] = None
    days_to_next: Optional[int] = None
    status: Optional[DueStatus] = None


class AgendaSummary(BaseModel):
    """按状态分组：无记录、已逾期、60 天内到期。"""
    no_history: List[AgendaItem] = Field(default_factory=list)
    overdue: List[AgendaItem] = Field(default_factory=list)
    upcoming: List[AgendaItem] = Field(default_factory=list)


class DayEntry(BaseModel):
    """日历上某一天的条目与计数。"""
    items: List[AgendaItem] = Field(default_factory=list)
    overdue_count: int = 0
    upcoming_count: int = 0
    total: int = 0


def agenda_item(treatment: Treatment, last_applied_on: Optional[date], today: date) -> AgendaItem:
    item = AgendaItem(
        treatment_id=treatment.id,
        treatment_name=treatment.name,
        category=treatment.category,
        last_applied_on=last_applied_on,
    )
    if last_applied_on is None:
        return item
    item.next_date = calc_next_date(last_applied_on, treatment.interval_value, treatment.interval_unit)
    item.days_to_next = days_to_next(item.next_date, today)
    item.status = status_from_days(item.days_to_next)
    return item


class AgendaService:
    """供界面使用的读写操作；写操作只允许主人。"""

    def __init__(self, store: CareStore):
        self.store = store

    def role_for(self, pet_id: str, user_id: str) -> Optional[str]:
        return self.store.get_member_role(pet_id, user_id)

    def build_agenda(self, pet_id: str, today: date) -> List[AgendaItem]:
        """每个治疗项一条，按剩余天数升序，无记录的排最后。"""
        items = [
            agenda_item(t, self.store.last_application_date(t.id), today)
            for t in self.store.list_treatments(pet_id)
        ]
        items.sort(key=lambda x: (x.days_to_next is None, x.days_to_next or 0))
        return items

    @staticmethod
    def summarize(items: List[AgendaItem]) -> AgendaSummary:
        summary = AgendaSummary()
        for item in items:
            if item.last_applied_on is None:
                summary.no_history.append(item)
            elif item.status == DueStatus.OVERDUE:
                summary.overdue.append(item)
            elif item.status == DueStatus.UPCOMING:
                summary.upcoming.append(item)
        return summary

    @staticmethod
    def group_by_day(items: List[AgendaItem]) -> Dict[date, DayEntry]:
        """按下次日期分组，供日历格子显示数量；同一天内按名称排序。"""
        days: Dict[date, DayEntry] = {}
        for item in items:
            if item.next_date is None:
                continue
            entry = days.setdefault(item.next_date, DayEntry())
            entry.items.append(item)
            entry.total += 1
            if item.status == DueStatus.OVERDUE:
                entry.overdue_count += 1
            elif item.status == DueStatus.UPCOMING:
                entry.upcoming_count += 1
        for entry in days.values():
            entry.items.sort(key=lambda x: x.treatment_name)
        return days

    def create_treatment(
        self,
        pet_id: str,
        user_id: str,
        name: str,
        interval_value: int,
        interval_unit: Union[IntervalUnit, str] = IntervalUnit.MONTHS,
        category: Union[TreatmentCategory, str] = TreatmentCategory.VACCINE,
        alerts_text: str = "30,15,5",
    ) -> Treatment:
        """新增治疗项。alerts_text 形如 "30,15,5"。"""
        role = self.role_for(pet_id, user_id)
        require_capability(role, PermissionChecker.can_manage_treatments(role), "新增治疗项")
        if not name.strip():
            raise ValueError("请填写治疗项名称")
        if interval_value <= 0:
            raise ValueError("间隔无效")
        alerts_days = parse_alert_days(alerts_text)
        if not alerts_days:
            raise ValueError('提醒天数无效，请使用类似 "30,15,5" 的格式')
        return self.store.add_treatment(
            pet_id=pet_id,
            category=TreatmentCategory(category).value,
            name=name.strip(),
            interval_value=interval_value,
            interval_unit=IntervalUnit(interval_unit).value,
            alerts_days=alerts_days,
        )

    def delete_treatment(self, pet_id: str, user_id: str, treatment_id: str) -> bool:
        role = self.role_for(pet_id, user_id)
        require_capability(role, PermissionChecker.can_manage_treatments(role), "删除治疗项")
        self._ensure_treatment_of_pet(pet_id, treatment_id)
        return self.store.delete_treatment(treatment_id)

    def record_application(
        self, pet_id: str, user_id: str, treatment_id: str, applied_on: date
    ) -> Application:
        """记录一次使用（「今天已完成」）。"""
        role = self.role_for(pet_id, user_id)
        require_capability(role, PermissionChecker.can_record_application(role), "记录使用")
        self._ensure_treatment_of_pet(pet_id, treatment_id)
        return self.store.add_application(treatment_id, applied_on)

    def _ensure_treatment_of_pet(self, pet_id: str, treatment_id: str) -> Treatment:
        treatment = self.store.get_treatment(treatment_id)
        if treatment is None or treatment.pet_id != pet_id:
            raise ValueError(f"治疗项不存在: {treatment_id}")
        return treatment
