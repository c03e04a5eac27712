"""
配置热重载
"""

from .file_watcher import ConfigFileWatcher, FileChange, detect_changes, parse_env_file
from .hot_reload_manager import HotReloadCoordinator, ReloadEvent, ReloadResult

__all__ = [
    "HotReloadCoordinator",
    "ReloadEvent",
    "ReloadResult",
    "ConfigFileWatcher",
    "FileChange",
    "detect_changes",
    "parse_env_file",
]
