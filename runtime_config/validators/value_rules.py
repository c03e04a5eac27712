"""
配置值校验规则

规则按键名子串匹配（不区分大小写）。空值与没有匹配规则的键总是合法。
"""

import threading
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

from ..settings import DEFAULT_REQUIRED_KEYS


MIN_SECRET_LENGTH = 32


@dataclass(frozen=True)
class ValidationResult:
    """校验结果"""
    valid: bool
    error: Optional[str] = None

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(True)

    @classmethod
    def invalid(cls, error: str) -> "ValidationResult":
        return cls(False, error)


@dataclass(frozen=True)
class ValueRule:
    """单条校验规则"""
    name: str
    key_pattern: str
    check: Callable[[str], bool]
    error: str
    exempt: Optional[Callable[[str], bool]] = None

    def applies_to(self, key: str) -> bool:
        if self.key_pattern.lower() not in key.lower():
            return False
        return not (self.exempt and self.exempt(key))


def is_database_key(key: str) -> bool:
    key_lower = key.lower()
    return 'database' in key_lower or 'db' in key_lower


DEFAULT_RULES = [
    # 数据库连接串的协议由清洗器的白名单约束
    ValueRule("url", "URL", lambda v: v.startswith("http"), "Invalid URL format", exempt=is_database_key),
    ValueRule("port", "PORT", lambda v: v.isascii() and v.isdigit(), "Port must be a number"),
    ValueRule("email", "EMAIL", lambda v: "@" in v, "Invalid email format"),
    ValueRule(
        "secret", "SECRET", lambda v: len(v) >= MIN_SECRET_LENGTH,
        f"Secret must be at least {MIN_SECRET_LENGTH} characters long"
    ),
]


class ValueRuleSet:
    """可扩展的规则表"""

    def __init__(self, rules: Optional[Iterable[ValueRule]] = None):
        self._rules: List[ValueRule] = list(DEFAULT_RULES if rules is None else rules)
        self._lock = threading.Lock()

    @property
    def rules(self) -> List[ValueRule]:
        with self._lock:
            return list(self._rules)

    def register(self, rule: ValueRule):
        """注册规则；同名规则会被替换"""
        with self._lock:
            self._rules = [r for r in self._rules if r.name != rule.name]
            self._rules.append(rule)

    def validate(self, key: str, value: Optional[str]) -> ValidationResult:
        if not value:
            return ValidationResult.ok()
        for rule in self.rules:
            if rule.applies_to(key) and not rule.check(value):
                return ValidationResult.invalid(rule.error)
        return ValidationResult.ok()


def validate_config_value(key: str, value: Optional[str],
                          rules: Optional[ValueRuleSet] = None) -> ValidationResult:
    return (rules or ValueRuleSet()).validate(key, value)


def is_required_key(key: str, required_keys: Optional[Iterable[str]] = None) -> bool:
    keys = DEFAULT_REQUIRED_KEYS if required_keys is None else required_keys
    return key in set(keys)
