"""
配置管理统一异常定义

所有异常都继承自 ConfigManagementError 基类，携带错误码、分类与严重程度，
服务层据此把异常转换为结构化的操作结果。
"""

from datetime import datetime, timezone
from typing import Dict, Any, Optional

from .error_categories import ErrorCategory, ErrorSeverity


class ConfigManagementError(Exception):
    """配置管理基础异常类

    提供统一的异常信息结构：错误码、分类、严重程度、上下文。
    """

    error_code = "CONFIG_MANAGEMENT_ERROR"
    category = ErrorCategory.UNKNOWN
    severity = ErrorSeverity.MEDIUM
    retryable = False

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """将异常信息转换为字典格式"""
        return {
            "message": self.message,
            "error_code": self.error_code,
            "category": self.category.value,
            "severity": self.severity.value,
            "retryable": self.retryable,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }

    def add_context(self, key: str, value: Any):
        """添加上下文信息"""
        self.context[key] = value

    def is_retryable(self) -> bool:
        return self.retryable

    def is_critical(self) -> bool:
        """判断是否为严重错误"""
        return self.severity == ErrorSeverity.CRITICAL


class ValidationError(ConfigManagementError):
    """配置值未通过规则校验"""

    error_code = "VALIDATION_ERROR"
    category = ErrorCategory.VALIDATION

    def __init__(self, message: str, key: Optional[str] = None, **kwargs):
        self.key = key
        super().__init__(message, context={"key": key}, **kwargs)


class SanitizationError(ConfigManagementError):
    """URL 或数据库连接串格式非法

    value 保存原始的问题值，仅供调用方内部使用；message 中只出现掩码后的形式。
    """

    error_code = "SANITIZATION_ERROR"
    category = ErrorCategory.SANITIZATION

    def __init__(self, message: str, key: str, value: str, **kwargs):
        self.key = key
        self.value = value
        super().__init__(message, context={"key": key}, **kwargs)


class NotFoundError(ConfigManagementError):
    """配置键或版本不存在"""

    error_code = "NOT_FOUND"
    category = ErrorCategory.NOT_FOUND
    severity = ErrorSeverity.LOW

    def __init__(self, message: str, resource: str, identifier: str, **kwargs):
        self.resource = resource
        self.identifier = identifier
        super().__init__(
            message,
            context={"resource": resource, "identifier": identifier},
            **kwargs
        )


class RequiredKeyError(ConfigManagementError):
    """试图删除受保护的必需配置键"""

    error_code = "REQUIRED_KEY"
    category = ErrorCategory.PROTECTION

    def __init__(self, key: str, **kwargs):
        self.key = key
        super().__init__(
            f"Cannot delete required configuration key '{key}'",
            context={"key": key},
            **kwargs
        )


class ConflictError(ConfigManagementError):
    """在限定时间内未能获得互斥锁，可重试"""

    error_code = "CONFLICT"
    category = ErrorCategory.CONCURRENCY
    retryable = True


class ExportError(ConfigManagementError):
    """导出目标写入失败"""

    error_code = "EXPORT_ERROR"
    category = ErrorCategory.EXPORT
    severity = ErrorSeverity.HIGH


class LoggingFailure(ConfigManagementError):
    """变更已提交，但审计日志追加失败"""

    error_code = "LOGGING_FAILURE"
    category = ErrorCategory.AUDIT
    severity = ErrorSeverity.HIGH


class OperationCancelledError(ConfigManagementError):
    """长时间运行的只读操作被调用方取消"""

    error_code = "CANCELLED"
    category = ErrorCategory.CANCELLED
    severity = ErrorSeverity.INFO


class StorageError(ConfigManagementError):
    """存储后端读写失败"""

    error_code = "STORAGE_ERROR"
    category = ErrorCategory.STORAGE
    severity = ErrorSeverity.HIGH


class StorageCorruptionError(StorageError):
    """持久化数据无法解析，视为进程级致命错误"""

    error_code = "STORAGE_CORRUPTION"
    severity = ErrorSeverity.CRITICAL


class SettingsError(ConfigManagementError):
    """服务设置文件或环境变量覆盖非法"""

    error_code = "SETTINGS_ERROR"
    category = ErrorCategory.CONFIGURATION
    severity = ErrorSeverity.HIGH
