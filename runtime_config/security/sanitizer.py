"""
配置输入清洗与敏感值掩码

所有进入实时配置存储的值都先经过 sanitize()；所有离开系统的值
（展示、审计、导出）都经过 mask_sensitive_value()。
"""

import re
from typing import Dict, Iterable, Mapping, Optional
from urllib.parse import urlsplit, urlunsplit

from ..errors import SanitizationError
from ..settings import DEFAULT_SENSITIVE_KEYS


CONTROL_CHARS = re.compile(r'[\x00-\x1f\x7f]')
DATABASE_URL_PATTERN = re.compile(r'^(postgresql|mysql|mongodb)://[^;]+$')

SHORT_MASK = "****"
VISIBLE_EDGE = 4

# 特殊 scheme 的默认端口；序列化时省略，空路径写成 "/"
SPECIAL_SCHEME_PORTS = {"http": 80, "https": 443, "ws": 80, "wss": 443, "ftp": 21}


class Sanitizer:
    """配置清洗器"""

    def __init__(self, sensitive_keys: Optional[Iterable[str]] = None):
        keys = DEFAULT_SENSITIVE_KEYS if sensitive_keys is None else sensitive_keys
        # 敏感键按大写子串匹配
        self.sensitive_patterns = [k.upper() for k in keys if k]

    def sanitize(self, values: Mapping[str, str]) -> Dict[str, str]:
        """清洗一组配置值，任何一项非法都会抛出 SanitizationError"""
        sanitized = {}
        for key, value in values.items():
            sanitized[key] = self.sanitize_value(key, value)
        return sanitized

    def sanitize_value(self, key: str, value: str) -> str:
        cleaned = CONTROL_CHARS.sub('', str(value)).strip()
        key_lower = key.lower()

        if 'database' in key_lower or 'db' in key_lower:
            cleaned = self._sanitize_database_url(key, cleaned)

        if 'url' in key_lower:
            cleaned = self._sanitize_url(key, cleaned)

        return cleaned

    def is_sensitive_key(self, key: str) -> bool:
        """检查字段名是否敏感"""
        key_upper = key.upper()
        return any(pattern in key_upper for pattern in self.sensitive_patterns)

    def mask_sensitive_value(self, key: str, value: Optional[str]) -> Optional[str]:
        """对单个键值执行掩码；非敏感键原样返回"""
        if not value or not self.is_sensitive_key(key):
            return value
        if len(value) > 2 * VISIBLE_EDGE:
            hidden = len(value) - 2 * VISIBLE_EDGE
            return f"{value[:VISIBLE_EDGE]}{'*' * hidden}{value[-VISIBLE_EDGE:]}"
        return SHORT_MASK

    def mask_sensitive_values(self, values: Mapping[str, str]) -> Dict[str, str]:
        return {key: self.mask_sensitive_value(key, value) for key, value in values.items()}

    def _sanitize_database_url(self, key: str, value: str) -> str:
        if not DATABASE_URL_PATTERN.match(value):
            raise SanitizationError(
                f"Invalid database URL format for {key}: {self.mask_sensitive_value(key, value)}",
                key=key,
                value=value
            )
        return value

    def _sanitize_url(self, key: str, value: str) -> str:
        """去掉片段与用户信息后重新序列化 URL"""
        try:
            parts = urlsplit(value)
            hostname = parts.hostname
            port = parts.port
        except ValueError as e:
            raise SanitizationError(
                f"Invalid URL format for {key}: {self.mask_sensitive_value(key, value)}",
                key=key,
                value=value,
                cause=e
            )

        if not parts.scheme or not hostname:
            raise SanitizationError(
                f"Invalid URL format for {key}: {self.mask_sensitive_value(key, value)}",
                key=key,
                value=value
            )

        scheme = parts.scheme.lower()
        path = parts.path
        default_port = SPECIAL_SCHEME_PORTS.get(scheme)
        if default_port is not None:
            if port == default_port:
                port = None
            path = path or "/"

        netloc = f"[{hostname}]" if ':' in hostname else hostname
        if port is not None:
            netloc = f"{netloc}:{port}"

        return urlunsplit((scheme, netloc, path, parts.query, ''))
