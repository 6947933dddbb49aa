"""权限管控：主人可管理治疗项与记录使用，观察者只读。"""
from typing import Optional

from pet_reminders.care.models import MemberRole


class PermissionDenied(Exception):
    """当前角色无权执行该操作。"""


class PermissionChecker:
    """功能权限检查。"""

    @staticmethod
    def can_view(role: Optional[str]) -> bool:
        """是否允许查看日程。所有成员均可。"""
        return role in (MemberRole.OWNER.value, MemberRole.VIEWER.value)

    @staticmethod
    def can_manage_treatments(role: Optional[str]) -> bool:
        """是否允许新增/删除治疗项。"""
        return role == MemberRole.OWNER.value

    @staticmethod
    def can_record_application(role: Optional[str]) -> bool:
        """是否允许记录一次使用。"""
        return role == MemberRole.OWNER.value


def require_capability(role: Optional[str], allowed: bool, action: str) -> None:
    """不允许时抛出 PermissionDenied。"""
    if not allowed:
        raise PermissionDenied(f"角色 {role or '非成员'} 无权{action}")
