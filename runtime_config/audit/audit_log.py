"""
配置审计日志

记录每一次配置读取、更新、删除与回滚。记录只追加、不可修改；
写入前完成敏感值掩码，真实值不会进入审计存储。
"""

import os
import threading
from collections import Counter
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import IO, Iterable, List, Optional, Union

from ..errors import ExportError, LoggingFailure, OperationCancelledError, StorageError
from ..logging_config import get_logger
from ..security import Sanitizer
from .exporters import check_cancelled, get_exporter
from .models import (
    AuditAction,
    AuditEntry,
    AuditQuery,
    AuditStatistics,
    ExportResult,
    rollback_key,
)
from .storage import AuditStorage, InMemoryAuditStorage


TOP_KEYS_LIMIT = 10
RECENT_ACTIVITY_LIMIT = 50
RECENT_ACTIVITY_WINDOW = timedelta(hours=24)


class AuditLog:
    """配置审计日志"""

    def __init__(self, storage: Optional[AuditStorage] = None,
                 sanitizer: Optional[Sanitizer] = None,
                 default_limit: int = 100,
                 metrics=None):
        self.storage = storage or InMemoryAuditStorage()
        self.sanitizer = sanitizer or Sanitizer()
        self.default_limit = default_limit
        self.metrics = metrics
        self.logger = get_logger(__name__)

        self._lock = threading.Lock()
        self._entries: List[AuditEntry] = list(self.storage.load_all())
        self._next_sequence = self._entries[-1].sequence + 1 if self._entries else 1

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # 写入

    def log_access(self, key: str, user_id: Optional[str] = None,
                   source_ip: Optional[str] = None, user_agent: Optional[str] = None) -> AuditEntry:
        return self._append(
            AuditAction.ACCESS, key,
            user_id=user_id, source_ip=source_ip, user_agent=user_agent,
            description=f"Configuration key {key} was accessed"
        )

    def log_update(self, key: str, old_value: Optional[str], new_value: Optional[str],
                   user_id: Optional[str] = None, source_ip: Optional[str] = None,
                   user_agent: Optional[str] = None, version_id: Optional[str] = None) -> AuditEntry:
        return self._append(
            AuditAction.UPDATE, key,
            old_value=self.sanitizer.mask_sensitive_value(key, old_value),
            new_value=self.sanitizer.mask_sensitive_value(key, new_value),
            user_id=user_id, source_ip=source_ip, user_agent=user_agent,
            version_id=version_id,
            description=f"Configuration key {key} was updated"
        )

    def log_delete(self, key: str, old_value: Optional[str],
                   user_id: Optional[str] = None, source_ip: Optional[str] = None,
                   user_agent: Optional[str] = None, version_id: Optional[str] = None) -> AuditEntry:
        return self._append(
            AuditAction.DELETE, key,
            old_value=self.sanitizer.mask_sensitive_value(key, old_value),
            user_id=user_id, source_ip=source_ip, user_agent=user_agent,
            version_id=version_id,
            description=f"Configuration key {key} was deleted"
        )

    def log_rollback(self, version_id: str, changes: Iterable, user_id: Optional[str] = None,
                     source_ip: Optional[str] = None, user_agent: Optional[str] = None) -> AuditEntry:
        """changes 为 VersionDiffEntry 序列：value1 为回滚前的值，value2 为回滚后的值"""
        masked_changes = [
            {
                "key": change.key,
                "old_value": self.sanitizer.mask_sensitive_value(change.key, change.value1),
                "new_value": self.sanitizer.mask_sensitive_value(change.key, change.value2),
                "change_type": change.change_type.value,
            }
            for change in changes
        ]
        return self._append(
            AuditAction.ROLLBACK, rollback_key(version_id),
            user_id=user_id, source_ip=source_ip, user_agent=user_agent,
            version_id=version_id,
            description=f"Configuration rolled back to version {version_id}",
            metadata={"changes_count": len(masked_changes), "changes": masked_changes}
        )

    def _append(self, action: AuditAction, key: str, **fields) -> AuditEntry:
        with self._lock:
            entry = AuditEntry(
                sequence=self._next_sequence,
                timestamp=datetime.now(timezone.utc),
                action=action,
                key=key,
                **fields
            )
            try:
                self.storage.append(entry)
            except StorageError as e:
                # 失败的写入不消耗序号
                if self.metrics is not None:
                    self.metrics.record_audit_failure()
                self.logger.error("audit append failed", action=action.value, key=key, error=str(e))
                raise LoggingFailure(
                    f"Failed to record {action.value} audit entry for {key}: {e.message}",
                    context={"action": action.value, "key": key},
                    cause=e
                )
            self._entries.append(entry)
            self._next_sequence += 1

        if self.metrics is not None:
            self.metrics.record_audit_entry(action.value)
        self.logger.debug("audit entry recorded", sequence=entry.sequence, action=action.value, key=key)
        return entry

    # 查询

    def get_audit_logs(self, query: Optional[AuditQuery] = None, **filters) -> List[AuditEntry]:
        """按序号升序过滤后分页"""
        if query is not None and filters:
            raise TypeError("Pass either an AuditQuery or keyword filters, not both")
        query = query or AuditQuery(**filters)
        limit = self.default_limit if query.limit is None else query.limit
        matched = [entry for entry in self._copy_entries() if query.matches(entry)]
        return matched[query.offset:query.offset + limit]

    def get_audit_statistics(self, cancel_event: Optional[threading.Event] = None) -> AuditStatistics:
        entries = self._copy_entries()
        by_action = Counter()
        by_key = Counter()
        by_user = Counter()
        by_day = Counter()

        for entry in entries:
            check_cancelled(cancel_event, "audit statistics")
            by_action[entry.action.value] += 1
            by_key[entry.key] += 1
            by_user[entry.user_id or "anonymous"] += 1
            by_day[entry.timestamp.date().isoformat()] += 1

        recent_cutoff = datetime.now(timezone.utc) - RECENT_ACTIVITY_WINDOW
        recent = [entry for entry in reversed(entries) if entry.timestamp > recent_cutoff]

        return AuditStatistics(
            total_entries=len(entries),
            by_action=dict(by_action),
            by_key=dict(by_key),
            by_user=dict(by_user),
            by_day=dict(sorted(by_day.items())),
            top_keys=sorted(by_key.items(), key=lambda item: (-item[1], item[0]))[:TOP_KEYS_LIMIT],
            first_timestamp=entries[0].timestamp if entries else None,
            last_timestamp=entries[-1].timestamp if entries else None,
            recent_activity=recent[:RECENT_ACTIVITY_LIMIT],
        )

    # 导出

    def export_audit_logs(self, destination: Union[str, Path, IO[str]], format: str = "json",
                          start_date: Optional[datetime] = None,
                          end_date: Optional[datetime] = None,
                          cancel_event: Optional[threading.Event] = None) -> ExportResult:
        """导出审计记录

        destination 为路径时先写临时文件，成功后重命名；失败或取消时删除临时文件。
        destination 为文件对象时只 flush，不关闭。
        """
        exporter = get_exporter(format)
        query = AuditQuery(start_date=start_date, end_date=end_date)
        entries = [entry for entry in self._copy_entries() if query.matches(entry)]

        if hasattr(destination, "write"):
            try:
                try:
                    count = exporter.write(entries, destination, cancel_event)
                finally:
                    # 取消或失败时同样 flush 已写入部分
                    destination.flush()
            except OSError as e:
                raise ExportError(f"Failed to write audit export to stream: {e}", cause=e)
            result = ExportResult(format=exporter.format, entry_count=count)
        else:
            result = self._export_to_path(Path(destination), exporter, entries, cancel_event)

        self.logger.info(
            "exported audit logs",
            format=exporter.format,
            entries=result.entry_count,
            destination=result.destination
        )
        return result

    def _export_to_path(self, path: Path, exporter, entries, cancel_event) -> ExportResult:
        temp_path = path.with_name(f".{path.name}.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, 'w', encoding='utf-8', newline='') as f:
                count = exporter.write(entries, f, cancel_event)
            os.replace(temp_path, path)
        except OperationCancelledError:
            self._remove_quietly(temp_path)
            self.logger.info("audit export cancelled", destination=str(path))
            raise
        except OSError as e:
            self._remove_quietly(temp_path)
            raise ExportError(
                f"Failed to export audit logs to {path}: {e}",
                context={"destination": str(path)},
                cause=e
            )

        return ExportResult(
            format=exporter.format,
            entry_count=count,
            destination=str(path),
            bytes_written=path.stat().st_size,
        )

    def _remove_quietly(self, path: Path):
        try:
            if path.exists():
                path.unlink()
        except OSError as e:
            self.logger.warning("failed to remove temporary export file", path=str(path), error=str(e))

    def _copy_entries(self) -> List[AuditEntry]:
        with self._lock:
            return list(self._entries)
