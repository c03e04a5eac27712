"""
.env 配置文件监控

监控 KEY=VALUE 形式的配置文件，检测到键变化时触发热重载。
监控器只负责通知，不会修改实时配置存储。
"""

import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from ..logging_config import get_logger
from .hot_reload_manager import HotReloadCoordinator, ReloadResult


@dataclass(frozen=True)
class FileChange:
    """配置文件中单个键的变化"""
    key: str
    change_type: str  # added / modified / deleted


def parse_env_file(file_path: Union[str, Path]) -> Dict[str, str]:
    """解析 KEY=VALUE 行；忽略空行与 # 注释，去掉值两端的引号"""
    config = {}
    with open(file_path, 'r', encoding='utf-8') as f:
        for line in f:
            stripped = line.strip()
            if not stripped or stripped.startswith('#'):
                continue
            key, sep, value = stripped.partition('=')
            key = key.strip()
            if not sep or not key:
                continue
            value = value.strip()
            if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
                value = value[1:-1]
            config[key] = value
    return config


def detect_changes(old_config: Dict[str, str], new_config: Dict[str, str]) -> List[FileChange]:
    changes = []
    for key in sorted(set(old_config) | set(new_config)):
        if key not in old_config:
            changes.append(FileChange(key, "added"))
        elif key not in new_config:
            changes.append(FileChange(key, "deleted"))
        elif old_config[key] != new_config[key]:
            changes.append(FileChange(key, "modified"))
    return changes


class ConfigFileHandler(FileSystemEventHandler):
    """配置文件变更处理器"""

    def __init__(self, watcher: "ConfigFileWatcher"):
        super().__init__()
        self.watcher = watcher

    def on_modified(self, event):
        if not event.is_directory:
            self.watcher.on_file_event(event.src_path)

    def on_created(self, event):
        if not event.is_directory:
            self.watcher.on_file_event(event.src_path)


class ConfigFileWatcher:
    """配置文件监控器"""

    def __init__(self, coordinator: HotReloadCoordinator,
                 files: Iterable[Union[str, Path]],
                 debounce_seconds: float = 1.0):
        self.coordinator = coordinator
        self.files = [Path(f).resolve() for f in files]
        self.debounce_seconds = debounce_seconds
        self.logger = get_logger(__name__)

        self.lock = threading.Lock()
        self.observer = None
        self.is_running = False
        self.last_event_time: Dict[Path, float] = {}
        self.file_cache: Dict[Path, Dict[str, str]] = {}

    def start(self):
        """启动文件监控"""
        with self.lock:
            if self.is_running:
                self.logger.warning("file watcher already running")
                return

            for file_path in self.files:
                if file_path.exists():
                    self.file_cache[file_path] = parse_env_file(file_path)

            self.observer = Observer()
            handler = ConfigFileHandler(self)
            for directory in sorted({f.parent for f in self.files}):
                if directory.exists():
                    self.observer.schedule(handler, str(directory), recursive=False)
                else:
                    self.logger.warning("watch directory does not exist", directory=str(directory))
            self.observer.start()
            self.is_running = True

        self.logger.info("file watcher started", files=[str(f) for f in self.files])

    def stop(self):
        """停止文件监控"""
        with self.lock:
            if not self.is_running:
                return
            self.observer.stop()
            self.observer.join()
            self.observer = None
            self.is_running = False
        self.logger.info("file watcher stopped")

    def on_file_event(self, src_path: str):
        file_path = Path(src_path).resolve()
        if file_path not in self.files:
            return

        # 防抖处理
        now = time.monotonic()
        with self.lock:
            last = self.last_event_time.get(file_path)
            if last is not None and now - last < self.debounce_seconds:
                return
            self.last_event_time[file_path] = now

        self.check_file(file_path)

    def check_file(self, file_path: Union[str, Path]) -> Optional[ReloadResult]:
        """重新解析文件；有键变化时触发重载并返回重载结果"""
        file_path = Path(file_path).resolve()
        try:
            new_config = parse_env_file(file_path) if file_path.exists() else {}
        except (OSError, UnicodeDecodeError) as e:
            self.logger.error("failed to read watched file", path=str(file_path), error=str(e))
            return None

        with self.lock:
            old_config = self.file_cache.get(file_path, {})
            self.file_cache[file_path] = new_config

        changes = detect_changes(old_config, new_config)
        if not changes:
            return None

        # 只记录键名与变化类型，不记录值
        self.logger.info(
            "configuration file changed",
            path=str(file_path),
            changes=[f"{c.key}:{c.change_type}" for c in changes]
        )
        return self.coordinator.force_reload(
            reason=f"file_changed:{file_path}",
            changed_keys=[c.key for c in changes]
        )

    def get_status(self):
        with self.lock:
            return {
                "is_running": self.is_running,
                "files": [str(f) for f in self.files],
                "debounce_seconds": self.debounce_seconds,
            }
