"""
配置管理统一错误体系
"""

from .exceptions import (
    ConfigManagementError,
    ValidationError,
    SanitizationError,
    NotFoundError,
    RequiredKeyError,
    ConflictError,
    ExportError,
    LoggingFailure,
    OperationCancelledError,
    StorageError,
    StorageCorruptionError,
    SettingsError,
)
from .error_categories import ErrorCategory, ErrorSeverity


__all__ = [
    # Core Exceptions
    "ConfigManagementError",
    "ValidationError",
    "SanitizationError",
    "NotFoundError",
    "RequiredKeyError",
    "ConflictError",
    "ExportError",
    "LoggingFailure",
    "OperationCancelledError",
    "StorageError",
    "StorageCorruptionError",
    "SettingsError",

    # Enums and Categories
    "ErrorCategory",
    "ErrorSeverity",
]
