"""
审计数据模型
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple


class AuditAction(Enum):
    """审计动作"""
    ACCESS = "access"
    UPDATE = "update"
    DELETE = "delete"
    ROLLBACK = "rollback"


ALL_CONFIG_KEY = "all_config"
FORCE_RELOAD_KEY = "force_reload"


def rollback_key(version_id: str) -> str:
    return f"version:{version_id}"


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """无时区的时间按 UTC 处理"""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class AuditEntry:
    """审计事件

    old_value / new_value 在写入前已经完成掩码。
    """
    sequence: int
    timestamp: datetime
    action: AuditAction
    key: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    user_id: Optional[str] = None
    source_ip: Optional[str] = None
    user_agent: Optional[str] = None
    version_id: Optional[str] = None
    description: str = ""
    metadata: Mapping[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self):
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata or {})))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence": self.sequence,
            "timestamp": self.timestamp.isoformat(),
            "action": self.action.value,
            "key": self.key,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "user_id": self.user_id,
            "source_ip": self.source_ip,
            "user_agent": self.user_agent,
            "version_id": self.version_id,
            "description": self.description,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AuditEntry":
        return cls(
            sequence=int(data["sequence"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            action=AuditAction(data["action"]),
            key=data["key"],
            old_value=data.get("old_value"),
            new_value=data.get("new_value"),
            user_id=data.get("user_id"),
            source_ip=data.get("source_ip"),
            user_agent=data.get("user_agent"),
            version_id=data.get("version_id"),
            description=data.get("description", ""),
            metadata=data.get("metadata") or {},
        )


@dataclass
class AuditQuery:
    """审计查询条件，起止时间均为闭区间"""
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    action: Optional[AuditAction] = None
    key: Optional[str] = None
    user_id: Optional[str] = None
    limit: Optional[int] = None
    offset: int = 0

    def __post_init__(self):
        if isinstance(self.action, str):
            self.action = AuditAction(self.action)
        self.start_date = as_utc(self.start_date)
        self.end_date = as_utc(self.end_date)
        if self.offset < 0:
            raise ValueError("offset must be non-negative")
        if self.limit is not None and self.limit < 0:
            raise ValueError("limit must be non-negative")

    def matches(self, entry: AuditEntry) -> bool:
        if self.start_date and entry.timestamp < self.start_date:
            return False
        if self.end_date and entry.timestamp > self.end_date:
            return False
        if self.action and entry.action != self.action:
            return False
        if self.key and entry.key != self.key:
            return False
        if self.user_id and entry.user_id != self.user_id:
            return False
        return True


@dataclass
class AuditStatistics:
    """审计统计"""
    total_entries: int = 0
    by_action: Dict[str, int] = field(default_factory=dict)
    by_key: Dict[str, int] = field(default_factory=dict)
    by_user: Dict[str, int] = field(default_factory=dict)
    by_day: Dict[str, int] = field(default_factory=dict)
    top_keys: List[Tuple[str, int]] = field(default_factory=list)
    first_timestamp: Optional[datetime] = None
    last_timestamp: Optional[datetime] = None
    recent_activity: List[AuditEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_entries": self.total_entries,
            "by_action": dict(self.by_action),
            "by_key": dict(self.by_key),
            "by_user": dict(self.by_user),
            "by_day": dict(self.by_day),
            "top_keys": [{"key": key, "count": count} for key, count in self.top_keys],
            "first_timestamp": self.first_timestamp.isoformat() if self.first_timestamp else None,
            "last_timestamp": self.last_timestamp.isoformat() if self.last_timestamp else None,
            "recent_activity": [entry.to_dict() for entry in self.recent_activity],
        }


@dataclass
class ExportResult:
    """导出结果"""
    format: str
    entry_count: int
    destination: Optional[str] = None
    bytes_written: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "format": self.format,
            "entry_count": self.entry_count,
            "destination": self.destination,
            "bytes_written": self.bytes_written,
        }
