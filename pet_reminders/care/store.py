"""护理数据存储：接口约定与本地 SQLite 实现。"""
import json
import sqlite3
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, List, Mapping, Optional, Union

from pydantic import ValidationError

from pet_reminders.care.models import (
    AlertLogEntry,
    AlertStatus,
    Application,
    MemberRole,
    Pet,
    Treatment,
)
from pet_reminders.config import DB_PATH, ensure_dirs


class StoreError(Exception):
    """存储访问失败（连接、查询、非预期约束）。"""


class AlertClaimConflict(StoreError):
    """alert_log 唯一约束冲突：该提醒今天已被占用。"""


def _new_id() -> str:
    return uuid.uuid4().hex


def _ts(value: datetime) -> str:
    # 统一为 UTC，库里按字符串比较先后
    return value.astimezone(timezone.utc).isoformat(timespec="seconds")


def treatment_from_record(record: Mapping[str, Any]) -> Treatment:
    """由库中一行构造 Treatment；数据不合法时抛出 StoreError。"""
    try:
        return Treatment.model_validate(dict(record))
    except ValidationError as e:
        raise StoreError(f"治疗项数据无效 {record.get('id')}: {e.errors()[0].get('msg')}") from e


class CareStore(ABC):
    """提醒任务与日程所需的存储约定。"""

    # ------------------------------------------------------------------
    # 宠物与成员
    # ------------------------------------------------------------------
    @abstractmethod
    def list_owner_pets(self) -> List[Pet]:
        """至少有一名 owner 成员的宠物。"""

    @abstractmethod
    def get_pet(self, pet_id: str) -> Optional[Pet]:
        ...

    @abstractmethod
    def add_pet(self, name: str) -> Pet:
        ...

    @abstractmethod
    def add_member(self, pet_id: str, user_id: str, role: MemberRole) -> None:
        ...

    @abstractmethod
    def get_member_role(self, pet_id: str, user_id: str) -> Optional[str]:
        ...

    # ------------------------------------------------------------------
    # 治疗项与使用记录
    # ------------------------------------------------------------------
    @abstractmethod
    def list_treatments(self, pet_id: str) -> List[Treatment]:
        """按类别、名称排序。"""

    @abstractmethod
    def get_treatment(self, treatment_id: str) -> Optional[Treatment]:
        ...

    @abstractmethod
    def add_treatment(
        self,
        pet_id: str,
        category: str,
        name: str,
        interval_value: int,
        interval_unit: str,
        alerts_days: List[int],
    ) -> Treatment:
        ...

    @abstractmethod
    def delete_treatment(self, treatment_id: str) -> bool:
        ...

    @abstractmethod
    def add_application(self, treatment_id: str, applied_on: date) -> Application:
        ...

    @abstractmethod
    def last_application_date(self, treatment_id: str) -> Optional[date]:
        """最近一次使用日期，无记录返回 None。"""

    # ------------------------------------------------------------------
    # 提醒日志
    # ------------------------------------------------------------------
    @abstractmethod
    def insert_alert_claim(
        self, treatment_id: str, alert_type: str, alert_date: date, claimed_at: datetime
    ) -> None:
        """插入 pending 记录；唯一约束冲突时抛出 AlertClaimConflict。"""

    @abstractmethod
    def get_alert_entry(
        self, treatment_id: str, alert_type: str, alert_date: date
    ) -> Optional[AlertLogEntry]:
        ...

    @abstractmethod
    def refresh_stale_claim(
        self,
        treatment_id: str,
        alert_type: str,
        alert_date: date,
        stale_before: datetime,
        claimed_at: datetime,
    ) -> bool:
        """接管早于 stale_before 的 pending 记录；成功接管返回 True。"""

    @abstractmethod
    def mark_alert_sent(
        self, treatment_id: str, alert_type: str, alert_date: date, sent_at: datetime
    ) -> None:
        ...

    @abstractmethod
    def delete_alert_claim(self, treatment_id: str, alert_type: str, alert_date: date) -> None:
        """只删除 pending 记录。"""


class SqliteCareStore(CareStore):
    """SQLite 实现（本地运行与测试）；内部加锁，可被多线程共用。"""

    def __init__(self, db_path: Union[str, Path, None] = None):
        if db_path is None:
            ensure_dirs()
            path = DB_PATH
        else:
            path = db_path
            if str(path) != ":memory:":
                Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self.conn = sqlite3.connect(str(path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._init_db()

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    def _init_db(self) -> None:
        with self._lock:
            self.conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS pets (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS pet_members (
                    pet_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    role TEXT NOT NULL CHECK (role IN ('owner', 'viewer')),
                    UNIQUE (pet_id, user_id),
                    FOREIGN KEY (pet_id) REFERENCES pets(id) ON DELETE CASCADE
                );

                CREATE TABLE IF NOT EXISTS treatments (
                    id TEXT PRIMARY KEY,
                    pet_id TEXT NOT NULL,
                    category TEXT NOT NULL,
                    name TEXT NOT NULL,
                    interval_value INTEGER NOT NULL CHECK (interval_value > 0),
                    interval_unit TEXT NOT NULL CHECK (interval_unit IN ('days', 'months')),
                    alerts_days TEXT NOT NULL DEFAULT '[]',
                    FOREIGN KEY (pet_id) REFERENCES pets(id) ON DELETE CASCADE
                );

                CREATE TABLE IF NOT EXISTS applications (
                    id TEXT PRIMARY KEY,
                    treatment_id TEXT NOT NULL,
                    applied_on TEXT NOT NULL,
                    FOREIGN KEY (treatment_id) REFERENCES treatments(id) ON DELETE CASCADE
                );

                CREATE TABLE IF NOT EXISTS alert_log (
                    id TEXT PRIMARY KEY,
                    treatment_id TEXT NOT NULL,
                    alert_type TEXT NOT NULL,
                    alert_date TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'sent' CHECK (status IN ('pending', 'sent')),
                    claimed_at TEXT,
                    sent_at TEXT,
                    UNIQUE (treatment_id, alert_type, alert_date),
                    FOREIGN KEY (treatment_id) REFERENCES treatments(id) ON DELETE CASCADE
                );
                """
            )
            self.conn.commit()

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        with self._lock:
            try:
                cur = self.conn.execute(sql, params)
                self.conn.commit()
                return cur
            except sqlite3.Error as exc:
                self.conn.rollback()
                raise StoreError(f"SQLite 执行失败: {exc}") from exc

    def _query(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        with self._lock:
            try:
                return self.conn.execute(sql, params).fetchall()
            except sqlite3.Error as exc:
                raise StoreError(f"SQLite 查询失败: {exc}") from exc

    # ------------------------------------------------------------------
    # 宠物与成员
    # ------------------------------------------------------------------
    def list_owner_pets(self) -> List[Pet]:
        rows = self._query(
            """
            SELECT id, name FROM pets
            WHERE id IN (SELECT pet_id FROM pet_members WHERE role = 'owner')
            ORDER BY name
            """
        )
        return [Pet(id=row["id"], name=row["name"]) for row in rows]

    def get_pet(self, pet_id: str) -> Optional[Pet]:
        rows = self._query("SELECT id, name FROM pets WHERE id = ?", (pet_id,))
        if not rows:
            return None
        return Pet(id=rows[0]["id"], name=rows[0]["name"])

    def add_pet(self, name: str) -> Pet:
        pet = Pet(id=_new_id(), name=name)
        self._execute("INSERT INTO pets (id, name) VALUES (?, ?)", (pet.id, pet.name))
        return pet

    def add_member(self, pet_id: str, user_id: str, role: MemberRole) -> None:
        role = MemberRole(role).value
        self._execute(
            "INSERT INTO pet_members (pet_id, user_id, role) VALUES (?, ?, ?)",
            (pet_id, user_id, role),
        )

    def get_member_role(self, pet_id: str, user_id: str) -> Optional[str]:
        rows = self._query(
            "SELECT role FROM pet_members WHERE pet_id = ? AND user_id = ? LIMIT 1",
            (pet_id, user_id),
        )
        return rows[0]["role"] if rows else None

    # ------------------------------------------------------------------
    # 治疗项与使用记录
    # ------------------------------------------------------------------
    @staticmethod
    def _treatment_from_row(row: sqlite3.Row) -> Treatment:
        record = dict(row)
        try:
            record["alerts_days"] = json.loads(record["alerts_days"] or "[]")
        except ValueError as e:
            raise StoreError(f"治疗项数据无效 {record['id']}: alerts_days 不是 JSON") from e
        return treatment_from_record(record)

    def list_treatments(self, pet_id: str) -> List[Treatment]:
        rows = self._query(
            """
            SELECT id, pet_id, category, name, interval_value, interval_unit, alerts_days
            FROM treatments
            WHERE pet_id = ?
            ORDER BY category, name
            """,
            (pet_id,),
        )
        return [self._treatment_from_row(row) for row in rows]

    def get_treatment(self, treatment_id: str) -> Optional[Treatment]:
        rows = self._query(
            """
            SELECT id, pet_id, category, name, interval_value, interval_unit, alerts_days
            FROM treatments WHERE id = ?
            """,
            (treatment_id,),
        )
        return self._treatment_from_row(rows[0]) if rows else None

    def add_treatment(
        self,
        pet_id: str,
        category: str,
        name: str,
        interval_value: int,
        interval_unit: str,
        alerts_days: List[int],
    ) -> Treatment:
        treatment = Treatment(
            id=_new_id(),
            pet_id=pet_id,
            category=category,
            name=name,
            interval_value=interval_value,
            interval_unit=interval_unit,
            alerts_days=alerts_days,
        )
        self._execute(
            """
            INSERT INTO treatments (id, pet_id, category, name, interval_value, interval_unit, alerts_days)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                treatment.id,
                treatment.pet_id,
                treatment.category,
                treatment.name,
                treatment.interval_value,
                treatment.interval_unit,
                json.dumps(treatment.alerts_days),
            ),
        )
        return treatment

    def delete_treatment(self, treatment_id: str) -> bool:
        cur = self._execute("DELETE FROM treatments WHERE id = ?", (treatment_id,))
        return cur.rowcount > 0

    def add_application(self, treatment_id: str, applied_on: date) -> Application:
        application = Application(id=_new_id(), treatment_id=treatment_id, applied_on=applied_on)
        self._execute(
            "INSERT INTO applications (id, treatment_id, applied_on) VALUES (?, ?, ?)",
            (application.id, treatment_id, application.applied_on.isoformat()),
        )
        return application

    def last_application_date(self, treatment_id: str) -> Optional[date]:
        rows = self._query(
            """
            SELECT applied_on FROM applications
            WHERE treatment_id = ?
            ORDER BY applied_on DESC
            LIMIT 1
            """,
            (treatment_id,),
        )
        if not rows:
            return None
        return date.fromisoformat(rows[0]["applied_on"])

    # ------------------------------------------------------------------
    # 提醒日志
    # ------------------------------------------------------------------
    def insert_alert_claim(
        self, treatment_id: str, alert_type: str, alert_date: date, claimed_at: datetime
    ) -> None:
        with self._lock:
            try:
                self.conn.execute(
                    """
                    INSERT INTO alert_log (id, treatment_id, alert_type, alert_date, status, claimed_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        _new_id(),
                        treatment_id,
                        alert_type,
                        alert_date.isoformat(),
                        AlertStatus.PENDING.value,
                        _ts(claimed_at),
                    ),
                )
                self.conn.commit()
            except sqlite3.IntegrityError as exc:
                self.conn.rollback()
                if "UNIQUE constraint failed: alert_log" in str(exc):
                    raise AlertClaimConflict(
                        f"提醒已存在: {treatment_id} {alert_type} {alert_date.isoformat()}"
                    ) from exc
                raise StoreError(f"SQLite 执行失败: {exc}") from exc
            except sqlite3.Error as exc:
                self.conn.rollback()
                raise StoreError(f"SQLite 执行失败: {exc}") from exc

    def get_alert_entry(
        self, treatment_id: str, alert_type: str, alert_date: date
    ) -> Optional[AlertLogEntry]:
        rows = self._query(
            """
            SELECT id, treatment_id, alert_type, alert_date, status, claimed_at, sent_at
            FROM alert_log
            WHERE treatment_id = ? AND alert_type = ? AND alert_date = ?
            """,
            (treatment_id, alert_type, alert_date.isoformat()),
        )
        if not rows:
            return None
        return AlertLogEntry.model_validate(dict(rows[0]))

    def refresh_stale_claim(
        self,
        treatment_id: str,
        alert_type: str,
        alert_date: date,
        stale_before: datetime,
        claimed_at: datetime,
    ) -> bool:
        cur = self._execute(
            """
            UPDATE alert_log SET claimed_at = ?
            WHERE treatment_id = ? AND alert_type = ? AND alert_date = ?
              AND status = 'pending' AND claimed_at < ?
            """,
            (_ts(claimed_at), treatment_id, alert_type, alert_date.isoformat(), _ts(stale_before)),
        )
        return cur.rowcount > 0

    def mark_alert_sent(
        self, treatment_id: str, alert_type: str, alert_date: date, sent_at: datetime
    ) -> None:
        self._execute(
            """
            UPDATE alert_log SET status = 'sent', sent_at = ?
            WHERE treatment_id = ? AND alert_type = ? AND alert_date = ?
            """,
            (_ts(sent_at), treatment_id, alert_type, alert_date.isoformat()),
        )

    def delete_alert_claim(self, treatment_id: str, alert_type: str, alert_date: date) -> None:
        self._execute(
            """
            DELETE FROM alert_log
            WHERE treatment_id = ? AND alert_type = ? AND alert_date = ? AND status = 'pending'
            """,
            (treatment_id, alert_type, alert_date.isoformat()),
        )
