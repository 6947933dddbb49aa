"""提醒去重：每个 (治疗项, 类型, 日期) 至多发送一次。

以 alert_log 的唯一约束插入作为原子占位：插入成功即拿到发送权，
冲突即表示今天已处理。占位先记为 pending，送达后改为 sent；
送达失败则删除占位，下次运行重试。遗留的 pending（进程中途退出）
在超过 stale_after 后可被接管。
"""
import sys
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from pet_reminders.care.store import AlertClaimConflict, CareStore, StoreError
from pet_reminders.config import STALE_CLAIM_MINUTES


def _now() -> datetime:
    return datetime.now(timezone.utc)


class AlertDeduplicator:
    """提醒占位、确认与释放。"""

    def __init__(self, store: CareStore, stale_after: Optional[timedelta] = None):
        self.store = store
        self.stale_after = stale_after or timedelta(minutes=STALE_CLAIM_MINUTES)

    def try_claim(
        self,
        treatment_id: str,
        alert_type: str,
        alert_date: date,
        now: Optional[datetime] = None,
    ) -> bool:
        """尝试占位。True 表示应当发送；False 表示今天已发送或正在发送。"""
        now = (now or _now()).astimezone(timezone.utc)
        try:
            self.store.insert_alert_claim(treatment_id, alert_type, alert_date, now)
            return True
        except AlertClaimConflict:
            pass
        if self.store.refresh_stale_claim(
            treatment_id, alert_type, alert_date, stale_before=now - self.stale_after, claimed_at=now
        ):
            print(
                f"[宠物提醒-去重] 接管遗留的待发送记录: {treatment_id} {alert_type} {alert_date.isoformat()}",
                file=sys.stderr,
                flush=True,
            )
            return True
        return False

    def confirm(
        self,
        treatment_id: str,
        alert_type: str,
        alert_date: date,
        now: Optional[datetime] = None,
    ) -> None:
        """送达后标记为 sent。"""
        self.store.mark_alert_sent(treatment_id, alert_type, alert_date, now or _now())

    def release(self, treatment_id: str, alert_type: str, alert_date: date) -> None:
        """送达失败后删除 pending 占位，以便下次运行重试。"""
        try:
            self.store.delete_alert_claim(treatment_id, alert_type, alert_date)
        except StoreError as e:
            # 删除失败时占位会在过期后被接管
            print(f"[宠物提醒-去重] 释放占位失败: {e}", file=sys.stderr, flush=True)
