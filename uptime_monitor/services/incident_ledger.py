"""故障事件台账模块"""

import dataclasses
import json
import os
import tempfile
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, List, Optional

from ..models.uptime import Incident
from ..utils.exceptions import PersistenceError, ErrorCode
from ..utils.log_manager import get_logger
from ..utils.time_utils import utc_now


class IncidentLedger:
    """故障事件台账

    记录每个目标的打开/已恢复事件，最新的排在最前。
    对外只返回副本，调用方无法修改台账内的记录。
    """

    def __init__(self, retention_days: float = 90, path: Optional[str] = None,
                 clock: Callable[[], datetime] = utc_now):
        """初始化事件台账

        Args:
            retention_days: 事件保留天数，按打开时间计算
            path: 持久化文件路径，为 None 时只保存在内存中
            clock: 时间来源
        """
        self.retention_days = retention_days
        self.path = path
        self._clock = clock
        self._incidents: List[Incident] = []
        self._lock = threading.RLock()
        self.logger = get_logger('incident_ledger')

        if self.path:
            self._load()

    def set_retention_days(self, retention_days: float):
        with self._lock:
            self.retention_days = retention_days

    def open(self, target: str, error: str, timestamp: Optional[datetime] = None) -> Incident:
        """打开新事件，随后清理过期事件

        Args:
            target: 目标名称
            error: 错误描述
            timestamp: 打开时间，默认当前时间

        Returns:
            Incident: 新事件的副本
        """
        incident = Incident(
            service=target,
            error=error or 'Unknown error',
            timestamp=timestamp or self._clock(),
        )

        with self._lock:
            self._incidents.insert(0, incident)
            self.prune()
            self._persist()

        self.logger.info(f"目标 {target} 新增故障事件: {incident.error}")
        return dataclasses.replace(incident)

    def resolve(self, target: str, timestamp: Optional[datetime] = None) -> Optional[Incident]:
        """将目标最近一条未恢复事件标记为已恢复

        没有未恢复事件时不做任何事。

        Returns:
            被恢复事件的副本，没有可恢复的事件时返回 None
        """
        with self._lock:
            incident = next(
                (i for i in self._incidents if i.service == target and not i.resolved),
                None
            )
            if incident is None:
                self.logger.debug(f"目标 {target} 没有未恢复的故障事件")
                return None

            incident.resolved = True
            incident.resolved_at = timestamp or self._clock()
            self._persist()
            resolved = dataclasses.replace(incident)

        self.logger.info(f"目标 {target} 故障事件已恢复")
        return resolved

    def prune(self, retention_days: Optional[float] = None) -> int:
        """删除打开时间早于保留期的事件（与是否恢复无关）

        Returns:
            int: 删除的事件数
        """
        days = self.retention_days if retention_days is None else retention_days
        cutoff = self._clock() - timedelta(days=days)

        with self._lock:
            before = len(self._incidents)
            self._incidents = [i for i in self._incidents if i.timestamp > cutoff]
            removed = before - len(self._incidents)

        if removed:
            self.logger.debug(f"清理了 {removed} 条过期故障事件")
        return removed

    def incidents(self, target: Optional[str] = None) -> List[Incident]:
        """获取事件列表副本，最新的在前

        Args:
            target: 只返回指定目标的事件
        """
        with self._lock:
            return [
                dataclasses.replace(i) for i in self._incidents
                if target is None or i.service == target
            ]

    def open_incident(self, target: str) -> Optional[Incident]:
        """获取目标当前未恢复的事件"""
        with self._lock:
            for incident in self._incidents:
                if incident.service == target and not incident.resolved:
                    return dataclasses.replace(incident)
        return None

    def _persist(self):
        try:
            self._save()
        except PersistenceError as e:
            self.logger.error(f"保存故障事件失败: {e.format_error()}")

    def _save(self):
        if not self.path:
            return

        try:
            directory = Path(self.path).resolve().parent
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix='.incidents-', suffix='.tmp')
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    json.dump([i.to_dict() for i in self._incidents], f,
                              ensure_ascii=False, indent=2)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise PersistenceError(f"写入事件文件失败: {e}", path=self.path, cause=e)

    def _load(self):
        if not self.path or not os.path.exists(self.path):
            return

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            incidents = [Incident.from_dict(entry) for entry in data]
            incidents.sort(key=lambda i: i.timestamp, reverse=True)
            with self._lock:
                self._incidents = incidents
            self.logger.info(f"从 {self.path} 加载了 {len(incidents)} 条故障事件")

        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            error = PersistenceError(
                f"加载事件文件失败: {e}",
                ErrorCode.PERSISTENCE_READ_ERROR,
                path=self.path,
                cause=e
            )
            self.logger.error(error.format_error())
            self._incidents = []
