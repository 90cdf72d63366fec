"""服务模块"""

from .config_manager import ConfigManager
from .config_watcher import ConfigWatcher
from .history_store import HistoryStore
from .incident_ledger import IncidentLedger
from .monitor_scheduler import MonitorScheduler
from .state_manager import StateManager
from .status_projection import StatusProjection

__all__ = [
    'ConfigManager',
    'ConfigWatcher',
    'HistoryStore',
    'IncidentLedger',
    'MonitorScheduler',
    'StateManager',
    'StatusProjection'
]
