"""
配置版本控制

快照、差异比较、回滚以及版本存储后端。
"""

from .snapshot import (
    ChangeType,
    ConfigSnapshot,
    ImportResult,
    RollbackResult,
    VersionDiffEntry,
    compute_config_hash,
    diff_configs,
)
from .storage import FileVersionStorage, InMemoryVersionStorage, VersionStorage
from .version_store import VersionStore

__all__ = [
    "ChangeType",
    "ConfigSnapshot",
    "ImportResult",
    "RollbackResult",
    "VersionDiffEntry",
    "compute_config_hash",
    "diff_configs",
    "VersionStorage",
    "InMemoryVersionStorage",
    "FileVersionStorage",
    "VersionStore",
]
