"""
实时配置存储

进程内唯一的可变 key -> value 配置表。所有写操作由服务层在
exclusive() 互斥区内完成；读操作返回拷贝，调用方拿到的字典与存储
本身互不影响。
"""

import os
import threading
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Mapping, Optional

from ..errors import ConflictError
from ..logging_config import get_logger


class LiveConfigStore:
    """实时配置存储"""

    def __init__(self, initial: Optional[Mapping[str, str]] = None, lock_timeout: float = 10.0):
        self._data: Dict[str, str] = {k: str(v) for k, v in (initial or {}).items()}
        self._lock = threading.RLock()
        self.lock_timeout = lock_timeout
        self.logger = get_logger(__name__)

    @classmethod
    def from_environ(cls, environ: Optional[Mapping[str, str]] = None,
                     exclude_prefixes: Iterable[str] = (),
                     lock_timeout: float = 10.0) -> "LiveConfigStore":
        """用进程环境变量初始化存储（只读取，不回写 os.environ）"""
        environ = os.environ if environ is None else environ
        prefixes = tuple(exclude_prefixes)
        initial = {
            key: value for key, value in environ.items()
            if not (prefixes and key.startswith(prefixes))
        }
        return cls(initial, lock_timeout=lock_timeout)

    @contextmanager
    def exclusive(self, timeout: Optional[float] = None) -> Iterator["LiveConfigStore"]:
        """获取变更互斥锁；超时抛出可重试的 ConflictError"""
        wait = self.lock_timeout if timeout is None else timeout
        if not self._lock.acquire(timeout=wait):
            self.logger.warning("mutation lock busy", timeout=wait)
            raise ConflictError(
                f"Could not acquire configuration lock within {wait}s",
                context={"timeout": wait}
            )
        try:
            yield self
        finally:
            self._lock.release()

    # 读操作

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def contains(self, key: str) -> bool:
        with self._lock:
            return key in self._data

    def snapshot(self) -> Dict[str, str]:
        """当前内容的值拷贝"""
        with self._lock:
            return dict(self._data)

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._data)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def __contains__(self, key: str) -> bool:
        return self.contains(key)

    # 写操作，调用方应已持有 exclusive()

    def set(self, key: str, value: str) -> Optional[str]:
        """写入一个键，返回旧值"""
        with self._lock:
            old_value = self._data.get(key)
            self._data[key] = value
            return old_value

    def delete(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.pop(key, None)

    def restore(self, key: str, old_value: Optional[str]) -> None:
        """撤销单键变更：old_value 为 None 表示该键原本不存在"""
        with self._lock:
            if old_value is None:
                self._data.pop(key, None)
            else:
                self._data[key] = old_value

    def replace(self, values: Mapping[str, str]) -> Dict[str, str]:
        """整体替换存储内容，返回替换前的拷贝"""
        with self._lock:
            previous = dict(self._data)
            self._data = dict(values)
            return previous
