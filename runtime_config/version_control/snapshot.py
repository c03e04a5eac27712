"""
配置快照与差异模型

ConfigSnapshot 是创建时刻实时存储的值拷贝，创建后不可修改。
"""

import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, List, Mapping, Optional


ID_TIMESTAMP_FORMAT = "%Y%m%dT%H%M%S%fZ"


class ChangeType(Enum):
    """配置变更类型"""
    ADDED = "added"
    REMOVED = "removed"
    CHANGED = "changed"
    UNCHANGED = "unchanged"


def compute_config_hash(config: Mapping[str, str]) -> str:
    """对排序后的 key=value 行计算 SHA-256"""
    lines = "\n".join(f"{key}={config[key]}" for key in sorted(config))
    return hashlib.sha256(lines.encode("utf-8")).hexdigest()


def make_version_id(created_at: datetime, sequence: int) -> str:
    return f"v-{created_at.strftime(ID_TIMESTAMP_FORMAT)}-{sequence:06d}"


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


def history_order(snapshot: "ConfigSnapshot"):
    """版本历史排序键；导入的版本可能与本地版本序号相同"""
    return (snapshot.sequence, snapshot.created_at, snapshot.id)


@dataclass(frozen=True)
class ConfigSnapshot:
    """配置快照"""
    id: str
    sequence: int
    created_at: datetime
    description: str
    config: Mapping[str, str] = field(hash=False)
    author: Optional[str] = None
    tags: FrozenSet[str] = frozenset()
    config_hash: str = ""

    def __post_init__(self):
        # 冻结 dataclass 只能通过 object.__setattr__ 完成规范化
        object.__setattr__(self, "config", MappingProxyType(dict(self.config)))
        object.__setattr__(self, "tags", frozenset(self.tags or ()))
        if not self.config_hash:
            object.__setattr__(self, "config_hash", compute_config_hash(self.config))

    @classmethod
    def capture(cls, config: Mapping[str, str], sequence: int, description: str,
                author: Optional[str] = None, tags=None,
                created_at: Optional[datetime] = None) -> "ConfigSnapshot":
        created_at = created_at or datetime.now(timezone.utc)
        return cls(
            id=make_version_id(created_at, sequence),
            sequence=sequence,
            created_at=created_at,
            description=description,
            config=config,
            author=author,
            tags=frozenset(tags or ()),
        )

    @property
    def key_count(self) -> int:
        return len(self.config)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sequence": self.sequence,
            "created_at": self.created_at.isoformat(),
            "description": self.description,
            "author": self.author,
            "tags": sorted(self.tags),
            "config_hash": self.config_hash,
            "config": dict(self.config),
        }

    def metadata(self) -> Dict[str, Any]:
        """不含配置内容的元数据视图"""
        data = self.to_dict()
        data.pop("config")
        data["key_count"] = self.key_count
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ConfigSnapshot":
        return cls(
            id=data["id"],
            sequence=int(data["sequence"]),
            created_at=_parse_timestamp(data["created_at"]),
            description=data.get("description", ""),
            config={str(k): str(v) for k, v in data["config"].items()},
            author=data.get("author"),
            tags=frozenset(data.get("tags") or ()),
            config_hash=data.get("config_hash", ""),
        )


@dataclass(frozen=True)
class VersionDiffEntry:
    """单个键的差异"""
    key: str
    value1: Optional[str]
    value2: Optional[str]
    change_type: ChangeType

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "value1": self.value1,
            "value2": self.value2,
            "change_type": self.change_type.value,
        }


def diff_configs(config1: Mapping[str, str], config2: Mapping[str, str],
                 include_unchanged: bool = True) -> List[VersionDiffEntry]:
    """按键名排序比较两份配置"""
    entries = []
    for key in sorted(set(config1) | set(config2)):
        in1 = key in config1
        in2 = key in config2
        value1 = config1.get(key)
        value2 = config2.get(key)

        if in1 and in2:
            change_type = ChangeType.UNCHANGED if value1 == value2 else ChangeType.CHANGED
        elif in1:
            change_type = ChangeType.REMOVED
        else:
            change_type = ChangeType.ADDED

        if change_type == ChangeType.UNCHANGED and not include_unchanged:
            continue
        entries.append(VersionDiffEntry(key, value1, value2, change_type))
    return entries


@dataclass
class RollbackResult:
    """回滚结果"""
    success: bool
    version_id: str
    changed_keys: List[str] = field(default_factory=list)
    changes: List[VersionDiffEntry] = field(default_factory=list)
    new_version: Optional[ConfigSnapshot] = None


@dataclass
class ImportResult:
    """版本导入结果"""
    imported: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "imported": list(self.imported),
            "skipped": list(self.skipped),
            "imported_count": len(self.imported),
            "skipped_count": len(self.skipped),
        }
