"""每日提醒任务：宠物 → 治疗项 → 上次使用 → 下次日期与剩余天数 → 去重 → 发送。"""
import sys
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime
from typing import List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field

from pet_reminders.alerts.dedup import AlertDeduplicator
from pet_reminders.alerts.notifier import DeliveryError, Notifier, format_overdue, format_upcoming
from pet_reminders.care.models import OVERDUE_DAILY, Pet, Treatment, upcoming_alert_type
from pet_reminders.care.store import CareStore, StoreError
from pet_reminders.config import DEFAULT_TIMEZONE
from pet_reminders.schedule.calculator import calc_next_date, days_to_next, today_in


def _log(msg: str) -> None:
    print(f"[宠物提醒] {msg}", file=sys.stderr, flush=True)


def due_alert_types(days: int, alert_days: Sequence[int]) -> List[str]:
    """今天应触发的提醒类型。到期前提醒与逾期提醒分别判断。"""
    types = []
    if days in alert_days:
        types.append(upcoming_alert_type(days))
    if days < 0:
        types.append(OVERDUE_DAILY)
    return types


class TreatmentOutcome(BaseModel):
    """单个治疗项的评估结果。"""
    pet_id: str
    treatment_id: str
    treatment_name: str
    last_applied_on: Optional[date] = None
    next_date: Optional[date] = None
    days_to_next: Optional[int] = None
    sent: List[str] = Field(default_factory=list, description="本次发送的提醒类型")
    already_sent: List[str] = Field(default_factory=list, description="今天已发送而跳过的类型")


class RunSummary(BaseModel):
    """一次运行的汇总。"""
    today: date
    evaluated: int = 0
    no_history: int = 0
    sent: int = 0
    already_sent: int = 0
    failures: List[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


class AlertRunner:
    """对每只有主人的宠物的每个治疗项判断今天是否要提醒，且每种提醒每天只发一次。"""

    def __init__(
        self,
        store: CareStore,
        notifier: Notifier,
        deduplicator: Optional[AlertDeduplicator] = None,
        tz: Optional[ZoneInfo] = None,
        workers: int = 1,
    ):
        self.store = store
        self.notifier = notifier
        self.dedup = deduplicator or AlertDeduplicator(store)
        self.tz = tz or ZoneInfo(DEFAULT_TIMEZONE)
        self.workers = max(1, workers)

    def evaluate(self, pet: Pet, treatment: Treatment, today: date) -> TreatmentOutcome:
        outcome = TreatmentOutcome(pet_id=pet.id, treatment_id=treatment.id, treatment_name=treatment.name)
        last_applied = self.store.last_application_date(treatment.id)
        if last_applied is None:
            # 没有使用记录就无法推算下次日期
            return outcome
        next_date = calc_next_date(last_applied, treatment.interval_value, treatment.interval_unit)
        days = days_to_next(next_date, today)
        outcome.last_applied_on = last_applied
        outcome.next_date = next_date
        outcome.days_to_next = days

        for alert_type in due_alert_types(days, treatment.effective_alert_days):
            formatter = format_overdue if alert_type == OVERDUE_DAILY else format_upcoming
            text = formatter(pet, treatment, next_date, last_applied, days)
            if self._fire(treatment.id, alert_type, today, text):
                outcome.sent.append(alert_type)
                _log(f"已发送 {alert_type}: {pet.name} / {treatment.name} -> {next_date.isoformat()}")
            else:
                outcome.already_sent.append(alert_type)
                _log(f"跳过（今天已发送）{alert_type}: {pet.name} / {treatment.name}")
        return outcome

    def _fire(self, treatment_id: str, alert_type: str, today: date, text: str) -> bool:
        """占位 → 发送 → 确认；发送失败时释放占位并抛出。"""
        if not self.dedup.try_claim(treatment_id, alert_type, today):
            return False
        try:
            self.notifier.send(text)
        except DeliveryError:
            self.dedup.release(treatment_id, alert_type, today)
            raise
        self.dedup.confirm(treatment_id, alert_type, today)
        return True

    def _evaluate_isolated(
        self, job: Tuple[Pet, Treatment], today: date
    ) -> Tuple[Optional[TreatmentOutcome], Optional[str]]:
        pet, treatment = job
        try:
            return self.evaluate(pet, treatment, today), None
        except (StoreError, DeliveryError) as e:
            err = f"{pet.name} / {treatment.name}: {e}"
            _log(f"处理失败 {err}")
            return None, err

    def run(self, today: Optional[date] = None) -> RunSummary:
        today = today or today_in(self.tz)
        _log(f"开始运行，{self.tz.key} 时间 {datetime.now(self.tz):%Y-%m-%d %H:%M:%S%z}，今天 {today.isoformat()}")
        summary = RunSummary(today=today)

        pets = self.store.list_owner_pets()
        if not pets:
            _log("没有找到有主人的宠物，结束。")
            return summary

        jobs: List[Tuple[Pet, Treatment]] = []
        for pet in pets:
            try:
                treatments = self.store.list_treatments(pet.id)
            except StoreError as e:
                err = f"{pet.name}: 读取治疗项失败: {e}"
                _log(f"处理失败 {err}")
                summary.failures.append(err)
                continue
            jobs.extend((pet, t) for t in treatments)

        if self.workers > 1 and len(jobs) > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                results = list(pool.map(lambda job: self._evaluate_isolated(job, today), jobs))
        else:
            results = [self._evaluate_isolated(job, today) for job in jobs]

        for outcome, err in results:
            if err:
                summary.failures.append(err)
                continue
            summary.evaluated += 1
            if outcome.last_applied_on is None:
                summary.no_history += 1
            summary.sent += len(outcome.sent)
            summary.already_sent += len(outcome.already_sent)

        _log(
            f"完成。已发送={summary.sent} 已跳过={summary.already_sent} "
            f"无记录={summary.no_history} 失败={len(summary.failures)}"
        )
        return summary
