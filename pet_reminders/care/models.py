"""宠物、成员、治疗项、使用记录与提醒日志数据模型。"""
from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pet_reminders.schedule.calculator import resolve_alert_days

OVERDUE_DAILY = "overdue_daily"


def upcoming_alert_type(days: int) -> str:
    """到期前 N 天提醒的类型名，如 upcoming_30。"""
    return f"upcoming_{days}"


class TreatmentCategory(str, Enum):
    """治疗类别。"""
    VACCINE = "vaccine"       # 疫苗
    DEWORMER = "vermifuge"    # 驱虫
    FLEA_TICK = "flea_tick"   # 跳蚤/蜱虫
    MEDICINE = "medicine"     # 药物
    OTHER = "other"           # 其他


CATEGORY_LABELS = {
    TreatmentCategory.VACCINE.value: "疫苗",
    TreatmentCategory.DEWORMER.value: "驱虫",
    TreatmentCategory.FLEA_TICK.value: "跳蚤/蜱虫",
    TreatmentCategory.MEDICINE.value: "药物",
    TreatmentCategory.OTHER.value: "其他",
}


class IntervalUnit(str, Enum):
    """间隔单位。"""
    DAYS = "days"
    MONTHS = "months"


class MemberRole(str, Enum):
    """成员角色：主人可修改治疗项与记录使用，观察者只读。"""
    OWNER = "owner"
    VIEWER = "viewer"


class AlertStatus(str, Enum):
    """提醒日志状态：先占位（pending），确认送达后为 sent。"""
    PENDING = "pending"
    SENT = "sent"


class Pet(BaseModel):
    """宠物。"""
    id: str = Field(..., description="宠物唯一 ID")
    name: str = Field(..., description="宠物名字")


class PetMember(BaseModel):
    """宠物成员（同一宠物下每人最多一条）。"""
    pet_id: str
    user_id: str
    role: MemberRole

    model_config = ConfigDict(use_enum_values=True)


class Treatment(BaseModel):
    """周期性治疗项：疫苗、驱虫、药物等。"""
    id: str = Field(..., description="治疗项 ID")
    pet_id: str = Field(..., description="所属宠物 ID")
    category: TreatmentCategory = Field(TreatmentCategory.OTHER, description="类别")
    name: str = Field(..., min_length=1, description="显示名称")
    interval_value: int = Field(..., gt=0, description="间隔数值")
    interval_unit: IntervalUnit = Field(IntervalUnit.MONTHS, description="间隔单位")
    alerts_days: List[int] = Field(default_factory=list, description="到期前提醒天数")

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    @field_validator("alerts_days", mode="before")
    @classmethod
    def _normalize_alerts_days(cls, value):
        if value is None:
            return []
        return value

    @field_validator("alerts_days")
    @classmethod
    def _distinct_alerts_days(cls, value: List[int]) -> List[int]:
        if any(v < 0 for v in value):
            raise ValueError("提醒天数不能为负数")
        return sorted(set(value), reverse=True)

    @property
    def effective_alert_days(self) -> List[int]:
        return resolve_alert_days(self.alerts_days)

    @property
    def category_label(self) -> str:
        return CATEGORY_LABELS.get(self.category, self.category)


class Application(BaseModel):
    """一次实际使用记录（只追加，不修改）。"""
    id: str
    treatment_id: str
    applied_on: date

    model_config = ConfigDict(frozen=True)


class AlertLogEntry(BaseModel):
    """已发出（或正在发出）的提醒：每个 (治疗项, 类型, 日期) 至多一条。"""
    id: str
    treatment_id: str
    alert_type: str
    alert_date: date
    status: AlertStatus = AlertStatus.SENT
    claimed_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None

    model_config = ConfigDict(use_enum_values=True, validate_default=True)
