"""状态投影

保存最近一次刷新的状态快照供只读 API 和状态页使用。
"""

import threading
from datetime import datetime
from typing import Callable, Dict, Any, Iterable

from ..models.uptime import Incident, StatusSnapshot, TargetState
from ..utils.time_utils import utc_now


class StatusProjection:
    """状态投影，快照整体替换，读者永远拿到一致的视图"""

    def __init__(self, title: str = 'System Status',
                 clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self._lock = threading.Lock()
        self._snapshot = StatusSnapshot(title=title)

    def update(self, title: str, services: Iterable[TargetState],
               incidents: Iterable[Incident]) -> StatusSnapshot:
        """刷新快照

        Args:
            title: 状态页标题
            services: 按配置顺序排列的目标状态
            incidents: 最新在前的事件列表

        Returns:
            StatusSnapshot: 新快照
        """
        snapshot = StatusSnapshot(
            title=title,
            last_update=self._clock(),
            services=tuple(services),
            incidents=tuple(incidents),
        )
        with self._lock:
            self._snapshot = snapshot
        return snapshot

    def snapshot(self) -> StatusSnapshot:
        with self._lock:
            return self._snapshot

    def to_dict(self) -> Dict[str, Any]:
        return self.snapshot().to_dict()
