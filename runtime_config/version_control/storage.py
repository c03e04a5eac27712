"""
配置版本存储后端
"""

import json
import os
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Union

from ..errors import StorageCorruptionError, StorageError
from ..logging_config import get_logger
from .snapshot import ConfigSnapshot, history_order


class VersionStorage(ABC):
    """版本存储后端接口

    后端只负责追加与读取；快照一旦保存就不会被修改或删除。
    """

    @abstractmethod
    def save(self, snapshot: ConfigSnapshot) -> None:
        """持久化一个快照，失败时抛出 StorageError"""

    @abstractmethod
    def load_all(self) -> List[ConfigSnapshot]:
        """按序号升序返回全部快照"""


class InMemoryVersionStorage(VersionStorage):
    """内存版本存储"""

    def __init__(self):
        self._snapshots: Dict[str, ConfigSnapshot] = {}
        self._lock = threading.Lock()

    def save(self, snapshot: ConfigSnapshot) -> None:
        with self._lock:
            self._snapshots[snapshot.id] = snapshot

    def load_all(self) -> List[ConfigSnapshot]:
        with self._lock:
            return sorted(self._snapshots.values(), key=history_order)


class FileVersionStorage(VersionStorage):
    """文件版本存储：每个版本一个 JSON 文档"""

    def __init__(self, versions_dir: Union[str, Path]):
        self.versions_dir = Path(versions_dir)
        self.versions_dir.mkdir(parents=True, exist_ok=True)
        self.logger = get_logger(__name__)

    def save(self, snapshot: ConfigSnapshot) -> None:
        version_file = self.versions_dir / f"{snapshot.id}.json"
        temp_file = version_file.with_suffix(".json.tmp")
        try:
            with open(temp_file, 'w', encoding='utf-8') as f:
                json.dump(snapshot.to_dict(), f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_file, version_file)
        except OSError as e:
            if temp_file.exists():
                temp_file.unlink()
            self.logger.error("failed to persist version", version_id=snapshot.id, error=str(e))
            raise StorageError(
                f"Failed to persist version {snapshot.id}: {e}",
                context={"version_id": snapshot.id},
                cause=e
            )

    def load_all(self) -> List[ConfigSnapshot]:
        snapshots = []
        for version_file in sorted(self.versions_dir.glob("v-*.json")):
            snapshots.append(self._load_file(version_file))
        snapshots.sort(key=history_order)
        self.logger.info("versions loaded", count=len(snapshots), versions_dir=str(self.versions_dir))
        return snapshots

    def _load_file(self, version_file: Path) -> ConfigSnapshot:
        try:
            with open(version_file, 'r', encoding='utf-8') as f:
                return ConfigSnapshot.from_dict(json.load(f))
        except OSError as e:
            raise StorageError(f"Failed to read version file {version_file}: {e}", cause=e)
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise StorageCorruptionError(
                f"Corrupted version file {version_file}: {e}",
                context={"path": str(version_file)},
                cause=e
            )
