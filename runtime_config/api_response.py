"""
统一的操作结果封装。

- OperationResult.ok(data, message="Success", warnings=None)
- OperationResult.fail(message, error_code="INTERNAL_ERROR", details=None)

与传输层无关：任何 HTTP/RPC 绑定都可以直接序列化 to_dict() 的结果。
字段保持一致：success/message/data/error/error_code/warnings/timestamp
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .errors import ConfigManagementError


@dataclass
class OperationResult:
    """标准化操作结果"""

    success: bool
    data: Any = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    message: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    details: Optional[Any] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def ok(cls, data: Any = None, message: str = "Success",
           warnings: Optional[List[str]] = None) -> "OperationResult":
        return cls(success=True, data=data, message=message, warnings=list(warnings or []))

    @classmethod
    def fail(cls, message: str, error_code: str = "INTERNAL_ERROR",
             details: Optional[Any] = None) -> "OperationResult":
        return cls(success=False, error=message, error_code=error_code, details=details)

    @classmethod
    def from_error(cls, error: ConfigManagementError) -> "OperationResult":
        return cls.fail(error.message, error_code=error.error_code, details=error.context or None)

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": self.success,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.success:
            payload["data"] = self.data
            payload["message"] = self.message
        else:
            payload["error"] = self.error
            payload["error_code"] = self.error_code
            if self.details is not None:
                payload["details"] = self.details
        if self.warnings:
            payload["warnings"] = list(self.warnings)
        return payload
