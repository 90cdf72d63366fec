"""HTTP 可用性监控系统"""

__version__ = "1.0.0"
