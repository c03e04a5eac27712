"""
审计导出与文件存储测试
"""

import csv
import io
import json
import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from runtime_config.audit import AuditAction, AuditEntry, AuditLog, JsonlAuditStorage
from runtime_config.audit.exporters import CSV_COLUMNS
from runtime_config.errors import ExportError, OperationCancelledError, ValidationError


SECRET = "api-key-value-0123456789-abcdefghij"


@pytest.fixture
def populated_log(audit_log):
    audit_log.log_update("API_KEY", None, SECRET, user_id="alice")
    audit_log.log_access("PORT", user_id="bob")
    return audit_log


class TestAuditExport:
    """审计导出测试"""

    def test_json_export_to_path(self, populated_log, tmp_path):
        destination = tmp_path / "audit.json"
        result = populated_log.export_audit_logs(destination, format="json")

        data = json.loads(destination.read_text(encoding="utf-8"))
        assert result.entry_count == 2
        assert result.bytes_written == destination.stat().st_size
        assert [row["sequence"] for row in data] == [1, 2]
        assert SECRET not in destination.read_text(encoding="utf-8")
        assert not list(tmp_path.glob(".*.tmp"))

    def test_csv_export_to_stream(self, populated_log):
        buffer = io.StringIO()
        result = populated_log.export_audit_logs(buffer, format="csv")

        rows = list(csv.reader(io.StringIO(buffer.getvalue())))
        assert rows[0] == CSV_COLUMNS
        assert len(rows) == 3
        assert result.entry_count == 2
        assert SECRET not in buffer.getvalue()
        assert not buffer.closed

    def test_empty_json_export(self, audit_log):
        buffer = io.StringIO()
        audit_log.export_audit_logs(buffer)
        assert json.loads(buffer.getvalue()) == []

    def test_date_filter(self, populated_log):
        buffer = io.StringIO()
        future = datetime.now(timezone.utc) + timedelta(hours=1)
        result = populated_log.export_audit_logs(buffer, start_date=future)
        assert result.entry_count == 0

    def test_unsupported_format(self, populated_log, tmp_path):
        with pytest.raises(ValidationError):
            populated_log.export_audit_logs(tmp_path / "audit.xml", format="xml")

    def test_cancellation_removes_temp_file(self, populated_log, tmp_path):
        """测试取消导出后不留下目标文件与临时文件"""
        cancel = threading.Event()
        cancel.set()
        destination = tmp_path / "audit.json"

        with pytest.raises(OperationCancelledError):
            populated_log.export_audit_logs(destination, cancel_event=cancel)

        assert not destination.exists()
        assert list(tmp_path.iterdir()) == []

    def test_write_failure_raises_export_error(self, populated_log, tmp_path):
        destination = tmp_path / "audit.json"
        with patch("runtime_config.audit.audit_log.os.replace", side_effect=OSError("read-only")):
            with pytest.raises(ExportError):
                populated_log.export_audit_logs(destination)
        assert list(tmp_path.iterdir()) == []

    def test_stream_write_failure_raises_export_error(self, populated_log):
        class BrokenSink(io.StringIO):
            flushed = False

            def write(self, data):
                raise OSError("sink gone")

            def flush(self):
                self.flushed = True

        sink = BrokenSink()
        with pytest.raises(ExportError):
            populated_log.export_audit_logs(sink, "json")
        assert sink.flushed


class TestJsonlAuditStorage:
    """JSON Lines 审计存储测试"""

    def test_daily_file_and_reload(self, tmp_path, sanitizer):
        log = AuditLog(storage=JsonlAuditStorage(tmp_path), sanitizer=sanitizer)
        log.log_access("A")
        log.log_update("API_KEY", None, SECRET)

        today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        log_file = tmp_path / f"audit-{today}.log"
        assert log_file.exists()
        assert SECRET not in log_file.read_text(encoding="utf-8")

        reopened = AuditLog(storage=JsonlAuditStorage(tmp_path), sanitizer=sanitizer)
        assert len(reopened) == 2
        assert reopened.log_access("B").sequence == 3

    def test_rotation_by_size(self, tmp_path):
        storage = JsonlAuditStorage(tmp_path, max_file_bytes=10)
        entry = AuditEntry(
            sequence=1,
            timestamp=datetime.now(timezone.utc),
            action=AuditAction.ACCESS,
            key="A",
        )
        storage.append(entry)
        files = storage.audit_files()
        assert len(files) == 1
        assert "T" in files[0].name
        assert [e.sequence for e in storage.load_all()] == [1]

    def test_unreadable_line_skipped(self, tmp_path):
        today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        entry = AuditEntry(sequence=1, timestamp=datetime.now(timezone.utc), action=AuditAction.ACCESS, key="A")
        (tmp_path / f"audit-{today}.log").write_text(
            json.dumps(entry.to_dict()) + "\n{truncated",
            encoding="utf-8"
        )
        assert [e.sequence for e in JsonlAuditStorage(tmp_path).load_all()] == [1]
