"""
配置热重载协调器

配置变更提交后通知所有已注册的监听器。每个监听器在独立的守护线程中并发执行，
超时从监听器开始运行时计时；每个监听器的成功、失败与超时单独统计，一个监听器出错不影响其他监听器。
"""

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from ..logging_config import get_logger
from ..store import LiveConfigStore


@dataclass(frozen=True)
class ReloadEvent:
    """传递给监听器的重载事件，config 为实时存储的时点拷贝"""
    reason: str
    changed_keys: Tuple[str, ...]
    timestamp: datetime
    config: Mapping[str, str] = field(hash=False)


@dataclass
class ReloadResult:
    """一次重载的汇总结果"""
    reason: str
    changed_keys: List[str] = field(default_factory=list)
    succeeded: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    timed_out: List[str] = field(default_factory=list)
    duration: float = 0.0

    @property
    def success(self) -> bool:
        return not self.failed and not self.timed_out

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reason": self.reason,
            "changed_keys": list(self.changed_keys),
            "succeeded": list(self.succeeded),
            "failed": dict(self.failed),
            "timed_out": list(self.timed_out),
            "duration": round(self.duration, 6),
            "success": self.success,
        }


ReloadListener = Callable[[ReloadEvent], Any]


class HotReloadCoordinator:
    """热重载协调器"""

    def __init__(self, live_store: LiveConfigStore,
                 listener_timeout: float = 5.0, metrics=None):
        self.live_store = live_store
        self.listener_timeout = listener_timeout
        self.metrics = metrics
        self.logger = get_logger(__name__)

        self.lock = threading.Lock()
        self.listeners: Dict[str, ReloadListener] = {}
        self.reload_count = 0
        self.last_result: Optional[ReloadResult] = None

        # 超时后仍在运行的监听器线程，shutdown 时等待
        self._stragglers: List[threading.Thread] = []

    def register_listener(self, name: str, callback: ReloadListener):
        """注册监听器；同名监听器会被替换"""
        with self.lock:
            replaced = name in self.listeners
            self.listeners[name] = callback
        self.logger.info("reload listener registered", listener=name, replaced=replaced)

    def unregister_listener(self, name: str) -> bool:
        with self.lock:
            removed = self.listeners.pop(name, None) is not None
        if removed:
            self.logger.info("reload listener unregistered", listener=name)
        return removed

    def force_reload(self, reason: str = "manual", changed_keys: Iterable[str] = ()) -> ReloadResult:
        """通知全部监听器，等待每个监听器完成或超时"""
        start = time.perf_counter()
        with self.lock:
            listeners = dict(self.listeners)

        event = ReloadEvent(
            reason=reason,
            changed_keys=tuple(changed_keys),
            timestamp=datetime.now(timezone.utc),
            config=MappingProxyType(self.live_store.snapshot()),
        )
        result = ReloadResult(reason=reason, changed_keys=list(event.changed_keys))

        outcomes: Dict[str, Optional[BaseException]] = {}
        outcome_lock = threading.Lock()
        running = []
        for name, callback in listeners.items():
            thread = threading.Thread(
                target=self._notify,
                args=(name, callback, event, outcomes, outcome_lock),
                name=f"config-reload-{name}",
                daemon=True
            )
            # start() 在线程开始运行后返回，截止时间从此刻起算
            thread.start()
            running.append((name, thread, time.monotonic() + self.listener_timeout))

        stragglers = []
        for name, thread, deadline in running:
            thread.join(max(deadline - time.monotonic(), 0))
            with outcome_lock:
                finished = name in outcomes
                error = outcomes.get(name)
            if not finished:
                stragglers.append(thread)
                result.timed_out.append(name)
                self.logger.warning("reload listener timed out", listener=name, timeout=self.listener_timeout)
            elif error is None:
                result.succeeded.append(name)
            else:
                result.failed[name] = f"{type(error).__name__}: {error}"
                self.logger.warning("reload listener failed", listener=name, error=str(error))

        result.succeeded.sort()
        result.timed_out.sort()
        result.duration = time.perf_counter() - start

        with self.lock:
            self.reload_count += 1
            self.last_result = result
            self._stragglers = [t for t in self._stragglers if t.is_alive()] + stragglers

        if self.metrics is not None:
            self.metrics.record_reload(len(result.succeeded), len(result.failed), len(result.timed_out))

        self.logger.info(
            "configuration reload completed",
            reason=reason,
            listeners=len(listeners),
            succeeded=len(result.succeeded),
            failed=len(result.failed),
            timed_out=len(result.timed_out)
        )
        return result

    def get_status(self) -> Dict[str, Any]:
        """获取热重载状态"""
        with self.lock:
            return {
                "listeners": sorted(self.listeners),
                "listener_timeout": self.listener_timeout,
                "reload_count": self.reload_count,
                "last_result": self.last_result.to_dict() if self.last_result else None,
            }

    def shutdown(self, wait_for_listeners: bool = False):
        """停止协调器；wait_for_listeners 时最多再等待一个超时周期"""
        with self.lock:
            stragglers, self._stragglers = self._stragglers, []
        if wait_for_listeners:
            for thread in stragglers:
                thread.join(self.listener_timeout)

    def _notify(self, name: str, callback: ReloadListener, event: ReloadEvent,
                outcomes: Dict[str, Optional[BaseException]], outcome_lock: threading.Lock):
        error = None
        try:
            callback(event)
        except Exception as e:
            error = e
        with outcome_lock:
            outcomes[name] = error
