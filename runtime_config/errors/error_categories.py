"""
错误分类和严重程度定义

定义配置管理系统中的错误分类与严重程度，便于错误统计、分析和处理。
"""

from enum import Enum


class ErrorCategory(Enum):
    """错误分类枚举

    按照配置管理的职责边界对错误进行分类。
    """
    VALIDATION = "validation"                # 配置值规则校验失败
    SANITIZATION = "sanitization"            # 输入清洗失败
    NOT_FOUND = "not_found"                  # 键或版本不存在
    PROTECTION = "protection"                # 受保护键操作
    CONCURRENCY = "concurrency"              # 锁竞争
    EXPORT = "export"                        # 导出失败
    AUDIT = "audit"                          # 审计日志写入失败
    STORAGE = "storage"                      # 存储读写错误
    CONFIGURATION = "configuration"          # 服务自身配置错误
    CANCELLED = "cancelled"                  # 操作被取消
    UNKNOWN = "unknown"                      # 未分类错误


class ErrorSeverity(Enum):
    """错误严重程度枚举"""
    CRITICAL = "critical"        # 严重错误：进程无法继续运行
    HIGH = "high"                # 高级错误：功能严重受损
    MEDIUM = "medium"            # 中级错误：请求失败
    LOW = "low"                  # 低级错误：轻微影响
    INFO = "info"                # 信息级别

    @property
    def priority(self) -> int:
        """获取严重程度对应的优先级数值"""
        priorities = {
            ErrorSeverity.CRITICAL: 5,
            ErrorSeverity.HIGH: 4,
            ErrorSeverity.MEDIUM: 3,
            ErrorSeverity.LOW: 2,
            ErrorSeverity.INFO: 1
        }
        return priorities[self]
