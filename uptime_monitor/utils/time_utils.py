"""时间工具函数"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """当前UTC时间（带时区）"""
    return datetime.now(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """datetime 转 ISO8601 字符串，UTC 时间以 Z 结尾"""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace('+00:00', 'Z')


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """解析 ISO8601 字符串，缺少时区时按 UTC 处理"""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
