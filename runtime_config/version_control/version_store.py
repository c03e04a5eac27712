"""
配置版本存储

负责快照创建、版本查询、版本比较与原子回滚。版本历史只追加，
按序号全序排列；快照内容是创建时刻实时存储的值拷贝。
"""

import json
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Any, Dict, Iterable, List, Optional, Union

from ..errors import ExportError, NotFoundError, StorageError, ValidationError
from ..logging_config import get_logger
from ..security import Sanitizer
from ..store import LiveConfigStore
from .snapshot import (
    ChangeType,
    ConfigSnapshot,
    ImportResult,
    RollbackResult,
    VersionDiffEntry,
    compute_config_hash,
    diff_configs,
    history_order,
)
from .storage import InMemoryVersionStorage, VersionStorage


ROLLBACK_TAG = "rollback"


class VersionStore:
    """配置版本存储"""

    def __init__(self, live_store: LiveConfigStore,
                 storage: Optional[VersionStorage] = None,
                 sanitizer: Optional[Sanitizer] = None,
                 metrics=None):
        self.live_store = live_store
        self.storage = storage or InMemoryVersionStorage()
        self.sanitizer = sanitizer or Sanitizer()
        self.metrics = metrics
        self.logger = get_logger(__name__)

        # 历史列表只在持有 _history_lock 时修改；读取方拿到的是列表拷贝
        self._history_lock = threading.Lock()
        self._history: List[ConfigSnapshot] = list(self.storage.load_all())
        self._by_id: Dict[str, ConfigSnapshot] = {s.id: s for s in self._history}
        self._next_sequence = self._history[-1].sequence + 1 if self._history else 1
        self._update_gauge()

    @property
    def version_count(self) -> int:
        with self._history_lock:
            return len(self._history)

    def create_version(self, description: str, author_id: Optional[str] = None,
                       tags: Optional[Iterable[str]] = None) -> ConfigSnapshot:
        """在变更锁内捕获实时存储并持久化为新版本"""
        with self.live_store.exclusive():
            return self._capture(self.live_store.snapshot(), description, author_id, tags)

    def get_versions(self, limit: Optional[int] = None) -> List[ConfigSnapshot]:
        """最新的版本在前"""
        with self._history_lock:
            versions = list(reversed(self._history))
        if limit is not None:
            versions = versions[:max(limit, 0)]
        return versions

    def get_version(self, version_id: str) -> ConfigSnapshot:
        with self._history_lock:
            snapshot = self._by_id.get(version_id)
        if snapshot is None:
            raise NotFoundError(f"Version {version_id} not found", resource="version", identifier=version_id)
        return snapshot

    def compare_versions(self, version_id1: str, version_id2: str,
                         include_unchanged: bool = True) -> List[VersionDiffEntry]:
        version1 = self.get_version(version_id1)
        version2 = self.get_version(version_id2)
        return diff_configs(version1.config, version2.config, include_unchanged=include_unchanged)

    def rollback_to_version(self, version_id: str, author_id: Optional[str] = None) -> RollbackResult:
        """整体替换实时存储为目标快照内容，并记录一个新版本

        目标不存在时实时存储保持不变；记录新版本失败时恢复替换前的内容。
        """
        with self.live_store.exclusive():
            target = self.get_version(version_id)
            changes = diff_configs(self.live_store.snapshot(), target.config, include_unchanged=False)

            previous = self.live_store.replace(target.config)
            try:
                new_version = self._capture(
                    target.config,
                    f"Rollback to version {version_id}",
                    author_id,
                    [ROLLBACK_TAG]
                )
            except Exception:
                self.live_store.replace(previous)
                self.logger.error("rollback reverted, snapshot capture failed", version_id=version_id)
                raise

        changed_keys = [entry.key for entry in changes if entry.change_type != ChangeType.UNCHANGED]
        self.logger.info(
            "rolled back configuration",
            version_id=version_id,
            new_version_id=new_version.id,
            changed_keys=len(changed_keys)
        )
        return RollbackResult(
            success=True,
            version_id=version_id,
            changed_keys=changed_keys,
            changes=changes,
            new_version=new_version,
        )

    def export_versions(self, destination: Union[str, Path, IO[str]],
                        include_sensitive: bool = False) -> int:
        """导出版本历史，返回导出的版本数

        默认对敏感值掩码；include_sensitive=True 生成可重新导入的完整备份。
        """
        versions = self.get_versions()
        payload = {
            "exported_at": datetime.now(timezone.utc).isoformat(),
            "masked": not include_sensitive,
            "versions": [v.to_dict() if include_sensitive else self._masked_dict(v) for v in versions],
        }

        if hasattr(destination, "write"):
            json.dump(payload, destination, indent=2, ensure_ascii=False)
            destination.flush()
        else:
            self._write_file(Path(destination), payload)

        self.logger.info("exported versions", count=len(versions), masked=not include_sensitive)
        return len(versions)

    def import_versions(self, source: Union[str, Path, IO[str]]) -> ImportResult:
        """导入版本归档；已存在的版本 ID 被跳过

        内容哈希与配置不一致的条目（例如掩码导出）使整个归档被拒绝，
        校验通过前不会写入任何版本。
        """
        snapshots = self._read_archive(source)

        result = ImportResult()
        with self._history_lock:
            try:
                for snapshot in snapshots:
                    if snapshot.id in self._by_id:
                        result.skipped.append(snapshot.id)
                        continue
                    self.storage.save(snapshot)
                    self._history.append(snapshot)
                    self._by_id[snapshot.id] = snapshot
                    self._next_sequence = max(self._next_sequence, snapshot.sequence + 1)
                    result.imported.append(snapshot.id)
            finally:
                # 持久化中途失败时，已保存的版本仍保留在有序历史中
                self._history.sort(key=history_order)
                self._update_gauge()

        self.logger.info("imported versions", imported=len(result.imported), skipped=len(result.skipped))
        return result

    def masked_config(self, snapshot: ConfigSnapshot) -> Dict[str, str]:
        return self.sanitizer.mask_sensitive_values(snapshot.config)

    def _masked_dict(self, snapshot: ConfigSnapshot) -> Dict[str, Any]:
        data = snapshot.to_dict()
        data["config"] = self.masked_config(snapshot)
        return data

    def _read_archive(self, source: Union[str, Path, IO[str]]) -> List[ConfigSnapshot]:
        try:
            if hasattr(source, "read"):
                payload = json.load(source)
            else:
                with open(source, 'r', encoding='utf-8') as f:
                    payload = json.load(f)
        except OSError as e:
            raise StorageError(f"Failed to read version archive {source}: {e}", cause=e)
        except ValueError as e:
            raise ValidationError(f"Invalid version archive: {e}")

        if not isinstance(payload, dict) or not isinstance(payload.get("versions"), list):
            raise ValidationError("Invalid version archive: missing versions list")
        if payload.get("masked"):
            raise ValidationError("Cannot import a masked version export")

        snapshots = []
        seen = set()
        for data in payload["versions"]:
            try:
                snapshot = ConfigSnapshot.from_dict(data)
            except (ValueError, KeyError, TypeError, AttributeError) as e:
                raise ValidationError(f"Invalid version entry in archive: {e}")
            if snapshot.config_hash != compute_config_hash(snapshot.config):
                raise ValidationError(f"Content hash mismatch for version {snapshot.id}")
            if snapshot.id not in seen:
                seen.add(snapshot.id)
                snapshots.append(snapshot)
        return sorted(snapshots, key=history_order)

    def _capture(self, config, description, author_id, tags) -> ConfigSnapshot:
        with self._history_lock:
            sequence = self._next_sequence
            created_at = datetime.now(timezone.utc)
            if self._history and created_at < self._history[-1].created_at:
                # 时钟回拨时保持 created_at 单调
                created_at = self._history[-1].created_at

            snapshot = ConfigSnapshot.capture(
                config, sequence, description,
                author=author_id, tags=tags, created_at=created_at
            )
            # 持久化失败不消耗序号
            self.storage.save(snapshot)

            self._next_sequence = sequence + 1
            self._history.append(snapshot)
            self._by_id[snapshot.id] = snapshot

        self._update_gauge()
        self.logger.info(
            "created version",
            version_id=snapshot.id,
            description=description,
            keys=snapshot.key_count
        )
        return snapshot

    def _write_file(self, path: Path, payload: Dict[str, Any]):
        temp_path = path.with_name(f".{path.name}.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, 'w', encoding='utf-8') as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
            os.replace(temp_path, path)
        except OSError as e:
            if temp_path.exists():
                temp_path.unlink()
            raise ExportError(f"Failed to export versions to {path}: {e}", cause=e)

    def _update_gauge(self):
        if self.metrics is not None:
            self.metrics.set_version_count(len(self._history))
