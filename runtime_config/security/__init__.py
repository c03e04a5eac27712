"""
配置安全：输入清洗与敏感值掩码
"""

from .sanitizer import Sanitizer

__all__ = ["Sanitizer"]
