"""提醒消息模板与发送通道（Telegram 机器人）。"""
import html
import sys
from datetime import date
from typing import List, Optional

import requests

from pet_reminders.care.models import Pet, Treatment
from pet_reminders.config import TELEGRAM_API_BASE, TELEGRAM_TIMEOUT

DATE_FORMAT = "%Y-%m-%d"


class DeliveryError(Exception):
    """消息未送达（非成功响应、网络错误或超时）。"""


def _fmt(day: date) -> str:
    return day.strftime(DATE_FORMAT)


def _title(treatment: Treatment) -> str:
    return f"{html.escape(treatment.name)}（{html.escape(treatment.category_label)}）"


def format_upcoming(pet: Pet, treatment: Treatment, next_date: date, last_applied: date, days: int) -> str:
    """即将到期提醒。"""
    return (
        f"🐶 <b>{html.escape(pet.name)}</b>\n"
        f"⏳ <b>即将到期</b>：{_title(treatment)}\n"
        f"📌 下次日期：<b>{_fmt(next_date)}</b>\n"
        f"🗓️ 上次使用：{_fmt(last_applied)}\n"
        f"⏱️ 还剩 <b>{days}</b> 天。"
    )


def format_overdue(pet: Pet, treatment: Treatment, next_date: date, last_applied: date, days: int) -> str:
    """逾期提醒，days 为负数。"""
    return (
        f"🐶 <b>{html.escape(pet.name)}</b>\n"
        f"🚨 <b>已逾期</b>：{_title(treatment)}\n"
        f"📌 应在：<b>{_fmt(next_date)}</b>\n"
        f"🗓️ 上次使用：{_fmt(last_applied)}\n"
        f"⏱️ 已逾期 <b>{abs(days)}</b> 天。\n\n"
        f"✅ 完成后请在应用中记录。"
    )


class Notifier:
    """发送通道基类。"""

    def send(self, text: str) -> None:
        raise NotImplementedError


class TelegramNotifier(Notifier):
    """通过 Telegram 机器人 sendMessage 推送。"""

    def __init__(self, token: str, chat_id: str, timeout: float = TELEGRAM_TIMEOUT):
        self.token = token
        self.chat_id = chat_id
        self.timeout = timeout

    def send(self, text: str) -> None:
        url = f"{TELEGRAM_API_BASE}/bot{self.token}/sendMessage"
        payload = {
            "chat_id": self.chat_id,
            "text": text,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        try:
            r = requests.post(url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            err = f"请求失败: {e}"
            print(f"[宠物提醒-通知] {err}", file=sys.stderr, flush=True)
            raise DeliveryError(err) from e
        if not r.ok:
            err = f"HTTP {r.status_code}: {r.text[:200]}"
            print(f"[宠物提醒-通知] 发送失败 {err}", file=sys.stderr, flush=True)
            raise DeliveryError(err)


class RecordingNotifier(Notifier):
    """只记录不发送（测试用）。fail_with 非空时每次发送都失败。"""

    def __init__(self, fail_with: Optional[str] = None):
        self.messages: List[str] = []
        self.fail_with = fail_with

    def send(self, text: str) -> None:
        if self.fail_with:
            raise DeliveryError(self.fail_with)
        self.messages.append(text)
