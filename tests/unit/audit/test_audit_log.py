"""
配置审计日志测试
"""

import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from runtime_config.audit import (
    AuditAction,
    AuditEntry,
    AuditLog,
    AuditQuery,
    InMemoryAuditStorage,
)
from runtime_config.errors import LoggingFailure, OperationCancelledError, StorageError
from runtime_config.version_control import diff_configs


SECRET = "super-long-jwt-secret-value-0123456789"


class TestAuditWrites:
    """审计写入测试"""

    def test_sequences_start_at_one_and_increase(self, audit_log):
        entries = [audit_log.log_access(f"KEY_{i}") for i in range(3)]
        assert [e.sequence for e in entries] == [1, 2, 3]

    def test_update_values_are_masked(self, audit_log):
        """测试敏感值在写入前完成掩码"""
        entry = audit_log.log_update("JWT_SECRET", SECRET, SECRET[::-1], user_id="alice")
        assert entry.old_value == "supe" + "*" * (len(SECRET) - 8) + "6789"
        assert SECRET not in (entry.old_value, entry.new_value)
        assert entry.action == AuditAction.UPDATE
        assert entry.user_id == "alice"

    def test_storage_never_sees_raw_secret(self, sanitizer):
        storage = InMemoryAuditStorage()
        log = AuditLog(storage=storage, sanitizer=sanitizer)
        log.log_delete("JWT_SECRET", SECRET)
        stored = storage.load_all()[0]
        assert SECRET not in str(stored.to_dict())

    def test_rollback_entry_uses_synthetic_key_and_masks_changes(self, audit_log):
        changes = diff_configs({"JWT_SECRET": SECRET, "PORT": "1"}, {"JWT_SECRET": "x" * 40, "PORT": "1"},
                               include_unchanged=False)
        entry = audit_log.log_rollback("v-abc", changes, user_id="alice")
        assert entry.key == "version:v-abc"
        assert entry.version_id == "v-abc"
        assert entry.metadata["changes_count"] == 1
        assert entry.metadata["changes"][0]["old_value"] != SECRET

    def test_failed_append_raises_logging_failure_without_consuming_sequence(self, audit_log):
        audit_log.log_access("A")
        with patch.object(audit_log.storage, "append", side_effect=StorageError("disk full")):
            with pytest.raises(LoggingFailure):
                audit_log.log_access("B")
        assert audit_log.log_access("C").sequence == 2
        assert len(audit_log) == 2

    def test_entries_are_immutable(self, audit_log):
        entry = audit_log.log_access("A")
        with pytest.raises(AttributeError):
            entry.key = "B"

    def test_concurrent_appends_have_contiguous_sequences(self, audit_log):
        def worker(n):
            for _ in range(25):
                audit_log.log_access(f"KEY_{n}")

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        sequences = [e.sequence for e in audit_log.get_audit_logs(limit=1000)]
        assert sequences == list(range(1, 201))


class TestAuditQueries:
    """审计查询测试"""

    def _populate(self, audit_log):
        audit_log.log_access("A", user_id="alice")
        audit_log.log_update("B", "1", "2", user_id="bob")
        audit_log.log_delete("B", "2", user_id="alice")
        audit_log.log_access("A", user_id="bob")

    def test_filters(self, audit_log):
        self._populate(audit_log)
        assert [e.sequence for e in audit_log.get_audit_logs(action="access")] == [1, 4]
        assert [e.sequence for e in audit_log.get_audit_logs(key="B")] == [2, 3]
        assert [e.sequence for e in audit_log.get_audit_logs(user_id="alice")] == [1, 3]
        query = AuditQuery(action=AuditAction.DELETE, user_id="alice")
        assert [e.sequence for e in audit_log.get_audit_logs(query)] == [3]

    def test_date_range_is_inclusive(self, audit_log):
        self._populate(audit_log)
        entries = audit_log.get_audit_logs()
        start, end = entries[1].timestamp, entries[2].timestamp
        selected = audit_log.get_audit_logs(start_date=start, end_date=end)
        assert [e.sequence for e in selected] == [e.sequence for e in entries if start <= e.timestamp <= end]
        assert audit_log.get_audit_logs(start_date=datetime.now(timezone.utc) + timedelta(days=1)) == []

    def test_pagination_has_no_overlap_or_gap(self, audit_log):
        """测试分页无重叠、无遗漏"""
        for i in range(23):
            audit_log.log_access(f"KEY_{i}")

        pages = []
        offset = 0
        while True:
            page = audit_log.get_audit_logs(limit=5, offset=offset)
            if not page:
                break
            pages.extend(e.sequence for e in page)
            offset += 5

        assert pages == list(range(1, 24))

    def test_default_limit(self, sanitizer):
        log = AuditLog(sanitizer=sanitizer, default_limit=3)
        for i in range(5):
            log.log_access(str(i))
        assert len(log.get_audit_logs()) == 3

    def test_invalid_action_rejected(self, audit_log):
        with pytest.raises(ValueError):
            audit_log.get_audit_logs(action="explode")


class TestAuditStatistics:
    """审计统计测试"""

    def test_statistics(self, audit_log):
        audit_log.log_access("A", user_id="alice")
        audit_log.log_access("A", user_id="alice")
        audit_log.log_update("B", "1", "2", user_id="bob")
        audit_log.log_access("C")

        stats = audit_log.get_audit_statistics()

        assert stats.total_entries == 4
        assert stats.by_action == {"access": 3, "update": 1}
        assert stats.by_user == {"alice": 2, "bob": 1, "anonymous": 1}
        assert stats.top_keys[0] == ("A", 2)
        assert sum(stats.by_day.values()) == 4
        assert stats.first_timestamp <= stats.last_timestamp

    def test_empty_statistics(self, audit_log):
        stats = audit_log.get_audit_statistics()
        assert stats.total_entries == 0
        assert stats.first_timestamp is None

    def test_statistics_cancellation(self, audit_log):
        audit_log.log_access("A")
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(OperationCancelledError):
            audit_log.get_audit_statistics(cancel_event=cancel)

    def test_query_and_filters_are_exclusive(self, audit_log):
        with pytest.raises(TypeError):
            audit_log.get_audit_logs(AuditQuery(key="A"), user_id="alice")


class TestRecentActivity:
    """最近活动统计测试"""

    def _preloaded_log(self, sanitizer, ages_in_hours):
        storage = InMemoryAuditStorage()
        now = datetime.now(timezone.utc)
        for sequence, hours in enumerate(ages_in_hours, start=1):
            storage.append(AuditEntry(
                sequence=sequence,
                timestamp=now - timedelta(hours=hours),
                action=AuditAction.ACCESS,
                key=f"KEY_{sequence}",
            ))
        return AuditLog(storage=storage, sanitizer=sanitizer)

    def test_only_last_day_newest_first(self, sanitizer):
        log = self._preloaded_log(sanitizer, [48, 30, 2])
        log.log_access("FRESH")

        recent = log.get_audit_statistics().recent_activity

        assert [entry.key for entry in recent] == ["FRESH", "KEY_3"]

    def test_capped_at_fifty(self, audit_log):
        for i in range(60):
            audit_log.log_access(f"KEY_{i}")

        stats = audit_log.get_audit_statistics()

        assert len(stats.recent_activity) == 50
        assert stats.recent_activity[0].sequence == 60
        assert len(stats.to_dict()["recent_activity"]) == 50
