"""
配置管理服务自身的设置

设置来源（后者覆盖前者）：
1. ManagementSettings 的默认值
2. YAML 设置文件（支持 ${VAR} / ${VAR:default} 环境变量替换）
3. RUNTIME_CONFIG_<FIELD> 形式的环境变量覆盖
"""

import dataclasses
import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml

from .errors import SettingsError
from .logging_config import get_logger


DEFAULT_SENSITIVE_KEYS = [
    "JWT_SECRET",
    "JWT_REFRESH_SECRET",
    "ENCRYPTION_KEY",
    "PRIVATE_KEY",
    "REDIS_PASSWORD",
    "SESSION_SECRET",
    "SMTP_PASS",
    "API_KEY",
    "ETHERSCAN_API_KEY",
    "WEB3_STORAGE_TOKEN",
    "IPFS_PROJECT_SECRET",
    "S3_SECRET_ACCESS_KEY",
]

DEFAULT_REQUIRED_KEYS = [
    "DATABASE_URL",
    "JWT_SECRET",
    "JWT_REFRESH_SECRET",
    "ENCRYPTION_KEY",
    "SESSION_SECRET",
]

ENV_PREFIX = "RUNTIME_CONFIG_"

_VARIABLE_PATTERN = re.compile(r'\$\{([^}]+)\}')


@dataclass
class ManagementSettings:
    """配置管理设置"""

    service_name: str = "runtime-config"
    environment: str = "development"

    # 存储位置；None 表示仅使用内存存储
    versions_dir: Optional[str] = None
    audit_dir: Optional[str] = None
    export_dir: Optional[str] = None

    # 变更策略
    snapshot_before_mutation: bool = True
    reload_on_mutation: bool = True
    lock_timeout: float = 10.0

    # 掩码与保护
    sensitive_keys: List[str] = field(default_factory=lambda: list(DEFAULT_SENSITIVE_KEYS))
    required_keys: List[str] = field(default_factory=lambda: list(DEFAULT_REQUIRED_KEYS))

    # 审计
    audit_default_limit: int = 100
    audit_max_file_bytes: int = 10 * 1024 * 1024

    # 热重载
    reload_listener_timeout: float = 5.0
    watch_files: List[str] = field(default_factory=list)
    watch_debounce_seconds: float = 1.0

    # 日志
    log_level: str = "INFO"
    json_logs: bool = False

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ManagementSettings":
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise SettingsError(
                f"Unknown settings: {', '.join(unknown)}",
                context={"unknown": unknown}
            )
        settings = cls()
        for name, value in data.items():
            setattr(settings, name, _coerce(name, value, _field_type(name)))
        return settings


def load_settings(path: Optional[Union[str, Path]] = None,
                  environ: Optional[Mapping[str, str]] = None) -> ManagementSettings:
    """加载设置：YAML 文件 + 环境变量覆盖"""
    logger = get_logger(__name__)
    environ = os.environ if environ is None else environ

    data: Dict[str, Any] = {}
    if path is not None:
        data = _load_yaml_file(Path(path), environ)

    settings = ManagementSettings.from_dict(data)
    overrides = _environment_overrides(environ)
    for name, value in overrides.items():
        setattr(settings, name, value)

    logger.debug(
        "settings loaded",
        source=str(path) if path else None,
        overrides=sorted(overrides)
    )
    return settings


def _load_yaml_file(file_path: Path, environ: Mapping[str, str]) -> Dict[str, Any]:
    """加载单个YAML文件"""
    if not file_path.exists():
        raise SettingsError(f"Settings file not found: {file_path}", context={"path": str(file_path)})

    with open(file_path, 'r', encoding='utf-8') as f:
        content = f.read()

    content = _substitute_variables(content, environ)

    try:
        loaded = yaml.safe_load(content) or {}
    except yaml.YAMLError as e:
        raise SettingsError(f"Invalid YAML in {file_path}: {e}", cause=e)

    if not isinstance(loaded, dict):
        raise SettingsError(f"Settings file must contain a mapping: {file_path}")

    # 允许把设置放在顶层 runtime_config 节点下
    return loaded.get("runtime_config", loaded)


def _substitute_variables(content: str, environ: Mapping[str, str]) -> str:
    """替换 ${VAR_NAME} 或 ${VAR_NAME:default_value}"""
    def replace_env_var(match):
        var_expr = match.group(1)
        if ':' in var_expr:
            var_name, default_value = var_expr.split(':', 1)
            return environ.get(var_name.strip(), default_value.strip())
        value = environ.get(var_expr.strip())
        if value is None:
            return match.group(0)  # 保持原样
        return value

    return _VARIABLE_PATTERN.sub(replace_env_var, content)


def _environment_overrides(environ: Mapping[str, str]) -> Dict[str, Any]:
    overrides = {}
    for f in dataclasses.fields(ManagementSettings):
        env_var = f"{ENV_PREFIX}{f.name.upper()}"
        if env_var in environ:
            overrides[f.name] = _coerce(f.name, environ[env_var], _field_type(f.name))
    return overrides


def _field_type(name: str) -> str:
    default = getattr(ManagementSettings(), name)
    if isinstance(default, bool):
        return "bool"
    if isinstance(default, int):
        return "int"
    if isinstance(default, float):
        return "float"
    if isinstance(default, list):
        return "list"
    return "str"


def _coerce(name: str, value: Any, kind: str) -> Any:
    """把 YAML 或环境变量中的原始值转换为字段类型"""
    if value is None:
        return None
    try:
        if kind == "bool":
            if isinstance(value, bool):
                return value
            text = str(value).strip().lower()
            if text in ("true", "1", "yes", "on"):
                return True
            if text in ("false", "0", "no", "off"):
                return False
            raise ValueError(f"not a boolean: {value!r}")
        if kind == "int":
            return int(value)
        if kind == "float":
            return float(value)
        if kind == "list":
            if isinstance(value, (list, tuple)):
                return [str(item) for item in value]
            text = str(value).strip()
            if text.startswith('['):
                return [str(item) for item in json.loads(text)]
            return [item.strip() for item in text.split(',') if item.strip()]
        return str(value)
    except (TypeError, ValueError) as e:
        raise SettingsError(f"Invalid value for setting '{name}': {e}", context={"setting": name}, cause=e)
