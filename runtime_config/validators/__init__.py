"""
配置校验：运行时值规则与启动校验
"""

from .startup_validator import StartupValidationReport, StartupValidator, VariableSpec
from .value_rules import (
    DEFAULT_RULES,
    ValidationResult,
    ValueRule,
    ValueRuleSet,
    is_required_key,
    validate_config_value,
)

__all__ = [
    "DEFAULT_RULES",
    "ValidationResult",
    "ValueRule",
    "ValueRuleSet",
    "is_required_key",
    "validate_config_value",
    "StartupValidator",
    "StartupValidationReport",
    "VariableSpec",
]
