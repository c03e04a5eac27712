"""
审计存储后端

JsonlAuditStorage 以 JSON Lines 格式按天写入 audit-YYYY-MM-DD.log，
单个文件超过大小上限时重命名为 audit-<时间戳>.log 后继续写新文件。
"""

import json
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Union

from ..errors import StorageError
from ..logging_config import get_logger
from .models import AuditEntry


class AuditStorage(ABC):
    """审计存储后端接口"""

    @abstractmethod
    def append(self, entry: AuditEntry) -> None:
        """追加一条审计记录，失败时抛出 StorageError"""

    @abstractmethod
    def load_all(self) -> List[AuditEntry]:
        """按序号升序返回全部记录"""


class InMemoryAuditStorage(AuditStorage):
    """内存审计存储"""

    def __init__(self):
        self._entries: List[AuditEntry] = []
        self._lock = threading.Lock()

    def append(self, entry: AuditEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def load_all(self) -> List[AuditEntry]:
        with self._lock:
            return list(self._entries)


class JsonlAuditStorage(AuditStorage):
    """JSON Lines 文件审计存储"""

    def __init__(self, audit_dir: Union[str, Path], max_file_bytes: int = 10 * 1024 * 1024):
        self.audit_dir = Path(audit_dir)
        self.audit_dir.mkdir(parents=True, exist_ok=True)
        self.max_file_bytes = max_file_bytes
        self.logger = get_logger(__name__)
        self._lock = threading.Lock()

    def current_file(self, now: datetime = None) -> Path:
        now = now or datetime.now(timezone.utc)
        return self.audit_dir / f"audit-{now.strftime('%Y-%m-%d')}.log"

    def append(self, entry: AuditEntry) -> None:
        line = json.dumps(entry.to_dict(), ensure_ascii=False) + "\n"
        with self._lock:
            log_file = self.current_file(entry.timestamp)
            try:
                with open(log_file, 'a', encoding='utf-8') as f:
                    f.write(line)
                    f.flush()
            except OSError as e:
                raise StorageError(
                    f"Failed to append audit entry to {log_file}: {e}",
                    context={"path": str(log_file)},
                    cause=e
                )
            self._rotate_if_needed(log_file)

    def load_all(self) -> List[AuditEntry]:
        entries = []
        for log_file in self.audit_files():
            entries.extend(self._read_file(log_file))
        entries.sort(key=lambda e: e.sequence)
        self.logger.info("audit entries loaded", count=len(entries), audit_dir=str(self.audit_dir))
        return entries

    def audit_files(self) -> List[Path]:
        return sorted(self.audit_dir.glob("audit-*.log"))

    def _read_file(self, log_file: Path) -> List[AuditEntry]:
        entries = []
        try:
            with open(log_file, 'r', encoding='utf-8') as f:
                lines = f.readlines()
        except OSError as e:
            raise StorageError(f"Failed to read audit file {log_file}: {e}", cause=e)

        for line_number, line in enumerate(lines, 1):
            if not line.strip():
                continue
            try:
                entries.append(AuditEntry.from_dict(json.loads(line)))
            except (ValueError, KeyError, TypeError) as e:
                # 进程崩溃可能留下半行
                self.logger.warning(
                    "skipping unreadable audit line",
                    path=str(log_file),
                    line=line_number,
                    error=str(e)
                )
        return entries

    def _rotate_if_needed(self, log_file: Path):
        try:
            if log_file.stat().st_size <= self.max_file_bytes:
                return
            timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
            rotated = self.audit_dir / f"audit-{timestamp}.log"
            log_file.rename(rotated)
            self.logger.info("rotated audit file", rotated=str(rotated))
        except OSError as e:
            # 记录已写入成功，轮转失败只影响文件大小
            self.logger.warning("failed to rotate audit file", path=str(log_file), error=str(e))
