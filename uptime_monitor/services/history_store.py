"""历史记录存储模块

按目标名称保存检查记录，按保留天数清理，每次变更后写入磁盘。
多个目标的检查周期会并发写入，所有变更和落盘都在同一把锁内完成。
"""

import json
import math
import os
import tempfile
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Dict, List, Optional

from ..models.uptime import CheckOutcome, StoredCheck, HourlyAverage
from ..utils.exceptions import PersistenceError, ErrorCode
from ..utils.log_manager import get_logger
from ..utils.time_utils import utc_now


def _round_half_up(value: float) -> int:
    """四舍五入到整数，.5 一律进位"""
    return math.floor(value + 0.5)


class HistoryStore:
    """检查历史存储

    内存视图始终可读；落盘失败只记录日志，不影响调度。
    """

    def __init__(self, path: Optional[str] = './data.json', retention_days: float = 5,
                 clock: Callable[[], datetime] = utc_now):
        """初始化历史存储

        Args:
            path: JSON 文件路径，为 None 时只保存在内存中
            retention_days: 保留天数
            clock: 时间来源
        """
        self.path = path
        self.retention_days = retention_days
        self._clock = clock
        self._checks: Dict[str, List[StoredCheck]] = {}
        self._lock = threading.RLock()
        self.logger = get_logger('history_store')

        if self.path:
            self._load()

    def set_retention_days(self, retention_days: float):
        """更新保留天数，下一次清理时生效"""
        with self._lock:
            self.retention_days = retention_days

    def record(self, name: str, outcome: CheckOutcome) -> StoredCheck:
        """追加一条检查记录并落盘

        Args:
            name: 目标名称
            outcome: 检查结果

        Returns:
            StoredCheck: 保存的记录
        """
        stored = StoredCheck.from_outcome(outcome)

        with self._lock:
            self._checks.setdefault(name, []).append(stored)
            self.prune()
            try:
                self._save()
            except PersistenceError as e:
                self.logger.error(f"保存历史记录失败: {e.format_error()}")

        return stored

    def prune(self, retention_days: Optional[float] = None) -> int:
        """清理过期记录

        时间戳不晚于 now - retention_days 的记录会被删除（截止时刻本身不保留），
        清理后为空的目标整体移除。

        Args:
            retention_days: 保留天数，默认使用当前设置

        Returns:
            int: 删除的记录数
        """
        days = self.retention_days if retention_days is None else retention_days
        cutoff = self._clock() - timedelta(days=days)
        removed = 0

        with self._lock:
            for name in list(self._checks):
                kept = [c for c in self._checks[name] if c.timestamp > cutoff]
                removed += len(self._checks[name]) - len(kept)
                if kept:
                    self._checks[name] = kept
                else:
                    del self._checks[name]

        if removed:
            self.logger.debug(f"清理了 {removed} 条过期检查记录")
        return removed

    def checks(self, name: str) -> List[StoredCheck]:
        """获取目标的全部记录（按时间顺序）"""
        with self._lock:
            return list(self._checks.get(name, []))

    def all_checks(self) -> Dict[str, List[StoredCheck]]:
        """获取所有目标的记录副本"""
        with self._lock:
            return {name: list(checks) for name, checks in self._checks.items()}

    def recent(self, name: str, limit: int = 50) -> List[StoredCheck]:
        """获取最近 limit 条记录，按时间正序"""
        if limit <= 0:
            return []
        with self._lock:
            return list(self._checks.get(name, [])[-limit:])

    def hourly_averages(self, name: str, hours: int = 120) -> List[HourlyAverage]:
        """按小时聚合响应时间和可用率

        桶按整点对齐，最后一个桶是当前所在小时。没有数据的小时也会返回，
        其 avg_response_time 和 uptime 为 None；目标没有任何记录时返回空列表。

        Args:
            name: 目标名称
            hours: 统计的小时数

        Returns:
            List[HourlyAverage]: 按时间正序的小时统计
        """
        checks = self.checks(name)
        if not checks or hours <= 0:
            return []

        current_hour = self._floor_hour(self._clock())
        buckets = {}
        for i in range(hours):
            buckets[current_hour - timedelta(hours=i)] = {
                'count': 0, 'up': 0, 'total_time': 0, 'timed': 0
            }

        for check in checks:
            bucket = buckets.get(self._floor_hour(check.timestamp))
            if bucket is None:
                continue
            bucket['count'] += 1
            if check.success:
                bucket['up'] += 1
            if check.response_time is not None:
                bucket['total_time'] += check.response_time
                bucket['timed'] += 1

        result = []
        for hour in sorted(buckets):
            bucket = buckets[hour]
            result.append(HourlyAverage(
                hour=hour,
                avg_response_time=(_round_half_up(bucket['total_time'] / bucket['timed'])
                                   if bucket['timed'] else None),
                uptime=(_round_half_up(bucket['up'] / bucket['count'] * 100)
                        if bucket['count'] else None),
                check_count=bucket['count'],
            ))
        return result

    @staticmethod
    def _floor_hour(value: datetime) -> datetime:
        return value.replace(minute=0, second=0, microsecond=0)

    def flush(self):
        """立即落盘

        Raises:
            PersistenceError: 写入失败
        """
        with self._lock:
            self._save()

    def _save(self):
        """原子写入 JSON 文件（临时文件 + 替换）"""
        if not self.path:
            return

        data = {
            'checks': {
                name: [c.to_dict() for c in checks]
                for name, checks in self._checks.items()
            }
        }

        try:
            directory = Path(self.path).resolve().parent
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix='.history-', suffix='.tmp')
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    json.dump(data, f, ensure_ascii=False, indent=2)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise PersistenceError(f"写入历史文件失败: {e}", path=self.path, cause=e)

    def _load(self):
        """从文件加载历史记录，失败时以空数据启动"""
        if not self.path or not os.path.exists(self.path):
            return

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)

            checks = {}
            for name, entries in (data.get('checks') or {}).items():
                checks[name] = [StoredCheck.from_dict(entry) for entry in entries]

            with self._lock:
                self._checks = checks
            self.logger.info(f"从 {self.path} 加载了 {len(checks)} 个目标的历史记录")

        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            error = PersistenceError(
                f"加载历史文件失败: {e}",
                ErrorCode.PERSISTENCE_READ_ERROR,
                path=self.path,
                cause=e
            )
            self.logger.error(error.format_error())
            self._checks = {}
