"""提醒任务入口：读取配置 → 连接存储与通知通道 → 运行一次后退出。

由外部定时器（如每日 cron）调用。退出码：0 成功；1 有失败或未处理的错误；2 配置错误。
"""
import sys
import traceback
from datetime import timedelta

from pet_reminders import __version__
from pet_reminders.alerts.dedup import AlertDeduplicator
from pet_reminders.alerts.notifier import TelegramNotifier
from pet_reminders.alerts.runner import AlertRunner
from pet_reminders.care.store import CareStore, SqliteCareStore
from pet_reminders.care.supabase import SupabaseCareStore
from pet_reminders.config import STORE_SQLITE, AlertSettings, ConfigError, load_settings


def build_store(settings: AlertSettings) -> CareStore:
    if settings.store == STORE_SQLITE:
        return SqliteCareStore(settings.db_path)
    return SupabaseCareStore(settings.supabase_url, settings.supabase_key)


def build_runner(settings: AlertSettings) -> AlertRunner:
    store = build_store(settings)
    return AlertRunner(
        store=store,
        notifier=TelegramNotifier(settings.telegram_token, settings.telegram_chat_id),
        deduplicator=AlertDeduplicator(store, stale_after=timedelta(minutes=settings.stale_minutes)),
        tz=settings.tz,
        workers=settings.workers,
    )


def main() -> None:
    try:
        settings = load_settings()
    except ConfigError as e:
        print(f"[宠物提醒] 配置错误: {e}", file=sys.stderr, flush=True)
        sys.exit(2)

    print(f"[宠物提醒] 版本 {__version__}，存储 {settings.store}", file=sys.stderr, flush=True)
    try:
        summary = build_runner(settings).run()
    except Exception as e:
        traceback.print_exc(file=sys.stderr)
        print(f"[宠物提醒] 运行失败: {e}", file=sys.stderr, flush=True)
        sys.exit(1)

    if not summary.ok:
        for err in summary.failures:
            print(f"[宠物提醒] 失败: {err}", file=sys.stderr, flush=True)
        sys.exit(1)
    sys.exit(0)


if __name__ == "__main__":
    main()
