"""宠物护理提醒全局配置与路径。"""
import os
from pathlib import Path
from typing import Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field

# 项目根目录（pet_reminders 包所在目录的上一级）
ROOT_DIR = Path(__file__).resolve().parent.parent
# 数据目录：本地 SQLite 库等
DATA_DIR = ROOT_DIR / "data"
DB_PATH = DATA_DIR / "pet_reminders.db"

# 提醒默认（到期前天数）
DEFAULT_ALERT_DAYS = (30, 15, 5)
# 「即将到期」窗口（天）
UPCOMING_WINDOW_DAYS = 60
# 参考时区：「今天」按该时区的日历日期计算
DEFAULT_TIMEZONE = "America/Sao_Paulo"

# 外部调用超时（秒）
TELEGRAM_API_BASE = "https://api.telegram.org"
TELEGRAM_TIMEOUT = 15
STORE_TIMEOUT = 20

# 待发送记录超过该时长视为遗留，可被下次运行接管（分钟）
STALE_CLAIM_MINUTES = 60
DEFAULT_WORKERS = 1

STORE_SUPABASE = "supabase"
STORE_SQLITE = "sqlite"


class ConfigError(Exception):
    """启动配置缺失或无效。"""


def ensure_dirs() -> None:
    """确保数据目录存在。"""
    DATA_DIR.mkdir(parents=True, exist_ok=True)


class AlertSettings(BaseModel):
    """提醒任务运行配置（由环境变量解析）。"""
    store: str = Field(STORE_SUPABASE, description="存储后端：supabase / sqlite")
    supabase_url: Optional[str] = Field(None, description="托管库地址")
    supabase_key: Optional[str] = Field(None, description="托管库 service role key")
    db_path: Path = Field(DB_PATH, description="本地 SQLite 文件")
    telegram_token: str = Field(..., description="机器人 token")
    telegram_chat_id: str = Field(..., description="接收消息的会话 ID")
    timezone: str = Field(DEFAULT_TIMEZONE, description="参考时区")
    workers: int = Field(DEFAULT_WORKERS, gt=0, description="并行评估的线程数")
    stale_minutes: int = Field(STALE_CLAIM_MINUTES, gt=0, description="待发送记录过期分钟数")

    model_config = ConfigDict(frozen=True)

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


def _positive_int(raw: str) -> Optional[int]:
    try:
        value = int(raw)
    except ValueError:
        return None
    return value if value > 0 else None


def load_settings(environ: Optional[Mapping[str, str]] = None) -> AlertSettings:
    """从环境变量读取配置；任何缺失或无效的值都在开始工作前报错。"""
    env = os.environ if environ is None else environ

    def get(key: str) -> str:
        return (env.get(key) or "").strip()

    missing = []
    invalid = []

    store = get("PET_REMINDERS_STORE").lower() or STORE_SUPABASE
    if store not in (STORE_SUPABASE, STORE_SQLITE):
        invalid.append(f"PET_REMINDERS_STORE={store}")

    supabase_url = get("SUPABASE_URL").rstrip("/") or None
    supabase_key = get("SUPABASE_SERVICE_ROLE_KEY") or None
    if store == STORE_SUPABASE:
        if not supabase_url:
            missing.append("SUPABASE_URL")
        if not supabase_key:
            missing.append("SUPABASE_SERVICE_ROLE_KEY")

    token = get("TELEGRAM_BOT_TOKEN")
    chat_id = get("TELEGRAM_CHAT_ID")
    if not token:
        missing.append("TELEGRAM_BOT_TOKEN")
    if not chat_id:
        missing.append("TELEGRAM_CHAT_ID")

    timezone = get("PET_REMINDERS_TZ") or DEFAULT_TIMEZONE
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        invalid.append(f"PET_REMINDERS_TZ={timezone}")

    workers = DEFAULT_WORKERS
    if get("PET_REMINDERS_WORKERS"):
        workers = _positive_int(get("PET_REMINDERS_WORKERS"))
        if workers is None:
            invalid.append(f"PET_REMINDERS_WORKERS={get('PET_REMINDERS_WORKERS')}")

    stale_minutes = STALE_CLAIM_MINUTES
    if get("PET_REMINDERS_STALE_MINUTES"):
        stale_minutes = _positive_int(get("PET_REMINDERS_STALE_MINUTES"))
        if stale_minutes is None:
            invalid.append(f"PET_REMINDERS_STALE_MINUTES={get('PET_REMINDERS_STALE_MINUTES')}")

    problems = []
    if missing:
        problems.append("缺少配置: " + ", ".join(missing))
    if invalid:
        problems.append("无效配置: " + ", ".join(invalid))
    if problems:
        raise ConfigError("；".join(problems))

    return AlertSettings(
        store=store,
        supabase_url=supabase_url,
        supabase_key=supabase_key,
        db_path=Path(get("PET_REMINDERS_DB")) if get("PET_REMINDERS_DB") else DB_PATH,
        telegram_token=token,
        telegram_chat_id=chat_id,
        timezone=timezone,
        workers=workers,
        stale_minutes=stale_minutes,
    )
