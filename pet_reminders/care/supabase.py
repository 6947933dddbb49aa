"""托管库（Supabase / PostgREST）存储实现。

表结构见 CareStore；alert_log 需带 UNIQUE(treatment_id, alert_type, alert_date)，
并有 status / claimed_at / sent_at 三列。使用 service role key，绕过行级策略。
"""
import sys
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

import requests

from pet_reminders.care.models import (
    AlertLogEntry,
    AlertStatus,
    Application,
    MemberRole,
    Pet,
    Treatment,
)
from pet_reminders.care.store import AlertClaimConflict, CareStore, StoreError, treatment_from_record
from pet_reminders.config import STORE_TIMEOUT

TREATMENT_COLUMNS = "id,pet_id,category,name,interval_value,interval_unit,alerts_days"
ALERT_COLUMNS = "id,treatment_id,alert_type,alert_date,status,claimed_at,sent_at"
UNIQUE_VIOLATION = "23505"


def _ts(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="seconds")


class SupabaseCareStore(CareStore):
    """通过 REST 接口访问托管库。"""

    def __init__(
        self,
        url: str,
        service_key: str,
        session: Optional[requests.Session] = None,
        timeout: float = STORE_TIMEOUT,
    ):
        self.base_url = url.rstrip("/") + "/rest/v1"
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "apikey": service_key,
                "Authorization": f"Bearer {service_key}",
                "Content-Type": "application/json",
            }
        )

    def _request(
        self,
        method: str,
        table: str,
        params: Optional[Dict[str, str]] = None,
        json_body: Any = None,
        prefer: Optional[str] = None,
    ) -> Any:
        headers = {"Prefer": prefer} if prefer else {}
        try:
            r = self.session.request(
                method,
                f"{self.base_url}/{table}",
                params=params,
                json=json_body,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            err = f"请求失败 {method} {table}: {e}"
            print(f"[宠物提醒-存储] {err}", file=sys.stderr, flush=True)
            raise StoreError(err) from e
        if r.status_code >= 300:
            try:
                data = r.json()
            except ValueError:
                data = {}
            code = str(data.get("code", "")) if isinstance(data, dict) else ""
            msg = (data.get("message") if isinstance(data, dict) else None) or r.text[:200]
            if table == "alert_log" and (code == UNIQUE_VIOLATION or (r.status_code == 409 and not code)):
                raise AlertClaimConflict(f"提醒已存在: {msg}")
            raise StoreError(f"HTTP {r.status_code} {method} {table}: {msg}")
        if not r.content:
            return None
        try:
            return r.json()
        except ValueError as e:
            raise StoreError(f"响应非 JSON: {r.text[:200]}") from e

    # ------------------------------------------------------------------
    # 宠物与成员
    # ------------------------------------------------------------------
    def list_owner_pets(self) -> List[Pet]:
        members = self._request(
            "GET", "pet_members", params={"select": "pet_id,user_id,role", "role": "eq.owner"}
        ) or []
        pet_ids = sorted({m["pet_id"] for m in members})
        if not pet_ids:
            return []
        rows = self._request(
            "GET",
            "pets",
            params={"select": "id,name", "id": f"in.({','.join(pet_ids)})", "order": "name.asc"},
        ) or []
        return [Pet.model_validate(row) for row in rows]

    def get_pet(self, pet_id: str) -> Optional[Pet]:
        rows = self._request("GET", "pets", params={"select": "id,name", "id": f"eq.{pet_id}"}) or []
        return Pet.model_validate(rows[0]) if rows else None

    def add_pet(self, name: str) -> Pet:
        rows = self._request("POST", "pets", json_body=[{"name": name}], prefer="return=representation")
        return Pet.model_validate(rows[0])

    def add_member(self, pet_id: str, user_id: str, role: MemberRole) -> None:
        self._request(
            "POST",
            "pet_members",
            json_body=[{"pet_id": pet_id, "user_id": user_id, "role": MemberRole(role).value}],
            prefer="return=minimal",
        )

    def get_member_role(self, pet_id: str, user_id: str) -> Optional[str]:
        rows = self._request(
            "GET",
            "pet_members",
            params={"select": "role", "pet_id": f"eq.{pet_id}", "user_id": f"eq.{user_id}", "limit": "1"},
        ) or []
        return rows[0]["role"] if rows else None

    # ------------------------------------------------------------------
    # 治疗项与使用记录
    # ------------------------------------------------------------------
    def list_treatments(self, pet_id: str) -> List[Treatment]:
        rows = self._request(
            "GET",
            "treatments",
            params={"select": TREATMENT_COLUMNS, "pet_id": f"eq.{pet_id}", "order": "category.asc,name.asc"},
        ) or []
        return [treatment_from_record(row) for row in rows]

    def get_treatment(self, treatment_id: str) -> Optional[Treatment]:
        rows = self._request(
            "GET", "treatments", params={"select": TREATMENT_COLUMNS, "id": f"eq.{treatment_id}"}
        ) or []
        return treatment_from_record(rows[0]) if rows else None

    def add_treatment(
        self,
        pet_id: str,
        category: str,
        name: str,
        interval_value: int,
        interval_unit: str,
        alerts_days: List[int],
    ) -> Treatment:
        # 本地先校验
        draft = Treatment(
            id="new",
            pet_id=pet_id,
            category=category,
            name=name,
            interval_value=interval_value,
            interval_unit=interval_unit,
            alerts_days=alerts_days,
        )
        rows = self._request(
            "POST",
            "treatments",
            json_body=[draft.model_dump(mode="json", exclude={"id"})],
            prefer="return=representation",
        )
        return treatment_from_record(rows[0])

    def delete_treatment(self, treatment_id: str) -> bool:
        rows = self._request(
            "DELETE", "treatments", params={"id": f"eq.{treatment_id}"}, prefer="return=representation"
        ) or []
        return len(rows) > 0

    def add_application(self, treatment_id: str, applied_on: date) -> Application:
        rows = self._request(
            "POST",
            "applications",
            json_body=[{"treatment_id": treatment_id, "applied_on": applied_on.isoformat()}],
            prefer="return=representation",
        )
        return Application.model_validate(rows[0])

    def last_application_date(self, treatment_id: str) -> Optional[date]:
        rows = self._request(
            "GET",
            "applications",
            params={
                "select": "applied_on",
                "treatment_id": f"eq.{treatment_id}",
                "order": "applied_on.desc",
                "limit": "1",
            },
        ) or []
        if not rows:
            return None
        return date.fromisoformat(rows[0]["applied_on"])

    # ------------------------------------------------------------------
    # 提醒日志
    # ------------------------------------------------------------------
    @staticmethod
    def _alert_filter(treatment_id: str, alert_type: str, alert_date: date) -> Dict[str, str]:
        return {
            "treatment_id": f"eq.{treatment_id}",
            "alert_type": f"eq.{alert_type}",
            "alert_date": f"eq.{alert_date.isoformat()}",
        }

    def insert_alert_claim(
        self, treatment_id: str, alert_type: str, alert_date: date, claimed_at: datetime
    ) -> None:
        self._request(
            "POST",
            "alert_log",
            json_body=[
                {
                    "treatment_id": treatment_id,
                    "alert_type": alert_type,
                    "alert_date": alert_date.isoformat(),
                    "status": AlertStatus.PENDING.value,
                    "claimed_at": _ts(claimed_at),
                }
            ],
            prefer="return=minimal",
        )

    def get_alert_entry(
        self, treatment_id: str, alert_type: str, alert_date: date
    ) -> Optional[AlertLogEntry]:
        params = {"select": ALERT_COLUMNS, **self._alert_filter(treatment_id, alert_type, alert_date)}
        rows = self._request("GET", "alert_log", params=params) or []
        return AlertLogEntry.model_validate(rows[0]) if rows else None

    def refresh_stale_claim(
        self,
        treatment_id: str,
        alert_type: str,
        alert_date: date,
        stale_before: datetime,
        claimed_at: datetime,
    ) -> bool:
        params = {
            **self._alert_filter(treatment_id, alert_type, alert_date),
            "status": f"eq.{AlertStatus.PENDING.value}",
            "claimed_at": f"lt.{_ts(stale_before)}",
        }
        rows = self._request(
            "PATCH",
            "alert_log",
            params=params,
            json_body={"claimed_at": _ts(claimed_at)},
            prefer="return=representation",
        ) or []
        return len(rows) > 0

    def mark_alert_sent(
        self, treatment_id: str, alert_type: str, alert_date: date, sent_at: datetime
    ) -> None:
        self._request(
            "PATCH",
            "alert_log",
            params=self._alert_filter(treatment_id, alert_type, alert_date),
            json_body={"status": AlertStatus.SENT.value, "sent_at": _ts(sent_at)},
            prefer="return=minimal",
        )

    def delete_alert_claim(self, treatment_id: str, alert_type: str, alert_date: date) -> None:
        params = {
            **self._alert_filter(treatment_id, alert_type, alert_date),
            "status": f"eq.{AlertStatus.PENDING.value}",
        }
        self._request("DELETE", "alert_log", params=params, prefer="return=minimal")
