"""
Runtime Configuration Manager

运行时配置管理：版本快照与回滚、只追加的审计日志、输入清洗与敏感值掩码、
热重载通知。
"""

from .api_response import OperationResult
from .logging_config import configure_logging, get_logger
from .management import ConfigurationManagementService, RequestContext
from .settings import ManagementSettings, load_settings

__version__ = "1.0.0"

__all__ = [
    "ConfigurationManagementService",
    "RequestContext",
    "OperationResult",
    "ManagementSettings",
    "load_settings",
    "configure_logging",
    "get_logger",
]
