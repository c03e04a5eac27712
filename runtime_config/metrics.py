"""
配置管理 Prometheus 指标

每个 ConfigMetrics 实例持有独立的 CollectorRegistry，避免在同一进程中
创建多个服务（例如测试）时出现指标重复注册。
"""

import time
from contextlib import contextmanager
from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest


class ConfigMetrics:
    """配置管理指标集合"""

    def __init__(self, registry: Optional[CollectorRegistry] = None, namespace: str = "runtime_config"):
        self.registry = registry or CollectorRegistry()

        self.mutations_total = Counter(
            f"{namespace}_mutations_total",
            "Configuration mutations by operation and outcome",
            ["operation", "outcome"],
            registry=self.registry
        )
        self.audit_entries_total = Counter(
            f"{namespace}_audit_entries_total",
            "Audit entries appended by action",
            ["action"],
            registry=self.registry
        )
        self.audit_failures_total = Counter(
            f"{namespace}_audit_failures_total",
            "Audit appends that failed after a committed mutation",
            registry=self.registry
        )
        self.reload_listener_results_total = Counter(
            f"{namespace}_reload_listener_results_total",
            "Reload listener outcomes",
            ["outcome"],
            registry=self.registry
        )
        self.versions = Gauge(
            f"{namespace}_versions",
            "Number of stored configuration versions",
            registry=self.registry
        )
        self.operation_duration_seconds = Histogram(
            f"{namespace}_operation_duration_seconds",
            "Latency of configuration management operations",
            ["operation"],
            buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
            registry=self.registry
        )

    def record_mutation(self, operation: str, outcome: str):
        self.mutations_total.labels(operation=operation, outcome=outcome).inc()

    def record_audit_entry(self, action: str):
        self.audit_entries_total.labels(action=action).inc()

    def record_audit_failure(self):
        self.audit_failures_total.inc()

    def record_reload(self, succeeded: int, failed: int, timed_out: int):
        self.reload_listener_results_total.labels(outcome="succeeded").inc(succeeded)
        self.reload_listener_results_total.labels(outcome="failed").inc(failed)
        self.reload_listener_results_total.labels(outcome="timed_out").inc(timed_out)

    def set_version_count(self, count: int):
        self.versions.set(count)

    @contextmanager
    def time_operation(self, operation: str):
        start = time.perf_counter()
        try:
            yield
        finally:
            self.operation_duration_seconds.labels(operation=operation).observe(time.perf_counter() - start)

    def get_sample_value(self, name: str, labels: Optional[dict] = None) -> Optional[float]:
        return self.registry.get_sample_value(name, labels or {})

    def export(self) -> bytes:
        """Prometheus 文本格式输出"""
        return generate_latest(self.registry)
