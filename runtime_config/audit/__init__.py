"""
配置审计：只追加的事件流、查询、统计与导出
"""

from .audit_log import AuditLog
from .exporters import CsvAuditExporter, JsonAuditExporter, get_exporter
from .models import (
    ALL_CONFIG_KEY,
    FORCE_RELOAD_KEY,
    AuditAction,
    AuditEntry,
    AuditQuery,
    AuditStatistics,
    ExportResult,
    rollback_key,
)
from .storage import AuditStorage, InMemoryAuditStorage, JsonlAuditStorage

__all__ = [
    "AuditLog",
    "AuditAction",
    "AuditEntry",
    "AuditQuery",
    "AuditStatistics",
    "ExportResult",
    "ALL_CONFIG_KEY",
    "FORCE_RELOAD_KEY",
    "rollback_key",
    "AuditStorage",
    "InMemoryAuditStorage",
    "JsonlAuditStorage",
    "JsonAuditExporter",
    "CsvAuditExporter",
    "get_exporter",
]
