"""
配置管理指标测试
"""

from runtime_config.metrics import ConfigMetrics


class TestConfigMetrics:
    """Prometheus 指标测试"""

    def test_registries_are_isolated(self):
        first, second = ConfigMetrics(), ConfigMetrics()
        first.record_mutation("update", "success")
        name = "runtime_config_mutations_total"
        assert first.get_sample_value(name, {"operation": "update", "outcome": "success"}) == 1.0
        assert second.get_sample_value(name, {"operation": "update", "outcome": "success"}) is None

    def test_version_gauge_follows_store(self, version_store, metrics):
        version_store.create_version("one")
        version_store.create_version("two")
        assert metrics.get_sample_value("runtime_config_versions") == 2.0

    def test_audit_entries_counted(self, audit_log, metrics):
        audit_log.log_access("PORT")
        audit_log.log_update("PORT", "1", "2")
        name = "runtime_config_audit_entries_total"
        assert metrics.get_sample_value(name, {"action": "access"}) == 1.0
        assert metrics.get_sample_value(name, {"action": "update"}) == 1.0

    def test_operation_timer_and_export(self):
        metrics = ConfigMetrics()
        with metrics.time_operation("get_config_value"):
            pass
        count = metrics.get_sample_value(
            "runtime_config_operation_duration_seconds_count", {"operation": "get_config_value"}
        )
        assert count == 1.0
        assert b"runtime_config_operation_duration_seconds" in metrics.export()
