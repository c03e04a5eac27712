"""
配置热重载测试
"""

import threading
import time
from unittest.mock import Mock

import pytest

from runtime_config.reload import HotReloadCoordinator, ReloadEvent
from runtime_config.store import LiveConfigStore


@pytest.fixture
def coordinator(metrics):
    coordinator = HotReloadCoordinator(
        LiveConfigStore({"KEY": "A"}),
        listener_timeout=0.5,
        metrics=metrics
    )
    yield coordinator
    coordinator.shutdown()


class TestHotReloadCoordinator:
    """热重载协调器测试"""

    def test_no_listeners_is_safe(self, coordinator):
        result = coordinator.force_reload()
        assert result.success
        assert result.succeeded == []

    def test_listener_receives_event_with_config_copy(self, coordinator):
        callback = Mock()
        coordinator.register_listener("cache", callback)

        result = coordinator.force_reload(reason="update:KEY", changed_keys=["KEY"])

        assert result.succeeded == ["cache"]
        event = callback.call_args[0][0]
        assert isinstance(event, ReloadEvent)
        assert event.reason == "update:KEY"
        assert event.changed_keys == ("KEY",)
        assert dict(event.config) == {"KEY": "A"}
        with pytest.raises(TypeError):
            event.config["KEY"] = "B"

    def test_failing_listener_does_not_affect_others(self, coordinator):
        """测试单个监听器失败不影响其他监听器"""
        healthy = Mock()
        coordinator.register_listener("healthy", healthy)
        coordinator.register_listener("broken", Mock(side_effect=RuntimeError("boom")))

        result = coordinator.force_reload()

        assert result.succeeded == ["healthy"]
        assert "RuntimeError: boom" == result.failed["broken"]
        assert not result.success
        healthy.assert_called_once()

    def test_slow_listener_times_out(self, coordinator):
        release = threading.Event()
        coordinator.register_listener("slow", lambda event: release.wait(5))
        coordinator.register_listener("fast", lambda event: None)

        try:
            result = coordinator.force_reload()
        finally:
            release.set()

        assert result.timed_out == ["slow"]
        assert result.succeeded == ["fast"]

    def test_reload_is_idempotent(self, coordinator):
        callback = Mock()
        coordinator.register_listener("cache", callback)
        first = coordinator.force_reload()
        second = coordinator.force_reload()
        assert first.succeeded == second.succeeded == ["cache"]
        assert callback.call_count == 2
        assert coordinator.get_status()["reload_count"] == 2

    def test_unregister_listener(self, coordinator):
        callback = Mock()
        coordinator.register_listener("cache", callback)
        assert coordinator.unregister_listener("cache")
        assert not coordinator.unregister_listener("cache")
        coordinator.force_reload()
        callback.assert_not_called()

    def test_listeners_run_concurrently(self, coordinator):
        barrier = threading.Barrier(3, timeout=2)
        for name in ("a", "b", "c"):
            coordinator.register_listener(name, lambda event: barrier.wait())

        start = time.perf_counter()
        result = coordinator.force_reload()

        assert result.succeeded == ["a", "b", "c"]
        assert time.perf_counter() - start < 2

    def test_metrics_recorded(self, coordinator, metrics):
        coordinator.register_listener("ok", lambda event: None)
        coordinator.register_listener("bad", Mock(side_effect=ValueError("x")))
        coordinator.force_reload()
        name = "runtime_config_reload_listener_results_total"
        assert metrics.get_sample_value(name, {"outcome": "succeeded"}) == 1.0
        assert metrics.get_sample_value(name, {"outcome": "failed"}) == 1.0

    def test_slow_listeners_do_not_starve_fast_listener(self, coordinator):
        """测试慢监听器数量再多，快监听器也能在超时内完成"""
        release = threading.Event()
        for index in range(6):
            coordinator.register_listener(f"slow{index}", lambda event: release.wait(5))
        fast = Mock()
        coordinator.register_listener("zfast", fast)

        try:
            first = coordinator.force_reload()
            second = coordinator.force_reload()
        finally:
            release.set()

        for result in (first, second):
            assert result.succeeded == ["zfast"]
            assert result.timed_out == [f"slow{index}" for index in range(6)]
        assert fast.call_count == 2

    def test_shutdown_waits_for_stragglers(self, coordinator):
        release = threading.Event()
        threads = []

        def slow(event):
            threads.append(threading.current_thread())
            release.wait(5)

        coordinator.register_listener("slow", slow)
        result = coordinator.force_reload()
        assert result.timed_out == ["slow"]

        release.set()
        coordinator.shutdown(wait_for_listeners=True)
        assert threads and not threads[0].is_alive()
