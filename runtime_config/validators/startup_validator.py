"""
启动配置校验

在服务启动时检查必需配置项是否存在、格式是否正确，检测占位符
或默认密钥，并在生产环境下对开发用值给出警告。错误信息中的配置值
都经过掩码处理。
"""

import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional
from urllib.parse import urlsplit

from ..logging_config import get_logger
from ..security import Sanitizer


EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
PRIVATE_KEY_PATTERN = re.compile(r'^0x[a-fA-F0-9]{64}$')

INSECURE_PATTERNS = [
    re.compile(r'your.*secret.*here', re.IGNORECASE),
    re.compile(r'your.*key.*here', re.IGNORECASE),
    re.compile(r'your.*password.*here', re.IGNORECASE),
    re.compile(r'change.*this.*in.*production', re.IGNORECASE),
    re.compile(r'super.*secret', re.IGNORECASE),
    re.compile(r'default', re.IGNORECASE),
    re.compile(r'test', re.IGNORECASE),
    re.compile(r'demo', re.IGNORECASE),
]

SECURITY_KEYS = ["JWT_SECRET", "JWT_REFRESH_SECRET", "ENCRYPTION_KEY", "PRIVATE_KEY", "SESSION_SECRET"]
DEVELOPMENT_VALUES = ["development", "test", "localhost", "password", "secret"]

TYPE_EXAMPLES = {
    "url": "https://example.com",
    "email": "noreply@example.com",
    "number": "3000",
    "private_key": "0x" + "0123456789abcdef" * 4,
    "string": "your-secret-value",
}


def _is_url(value: str) -> bool:
    try:
        parts = urlsplit(value)
        return bool(parts.scheme and parts.netloc)
    except ValueError:
        return False


def _is_number(value: str) -> bool:
    try:
        float(value)
        return True
    except ValueError:
        return False


TYPE_CHECKS: Dict[str, Callable[[str], bool]] = {
    "url": _is_url,
    "email": lambda v: bool(EMAIL_PATTERN.match(v)),
    "number": _is_number,
    "private_key": lambda v: bool(PRIVATE_KEY_PATTERN.match(v)),
    "string": lambda v: True,
}


@dataclass(frozen=True)
class VariableSpec:
    """单个配置项的启动校验要求"""
    key: str
    type: str
    description: str
    required: bool = True
    min_length: Optional[int] = None
    exact_length: Optional[int] = None

    def __post_init__(self):
        if self.type not in TYPE_CHECKS:
            raise ValueError(f"Unknown variable type: {self.type}")


DEFAULT_VARIABLE_SPECS = [
    VariableSpec("DATABASE_URL", "url", "Database connection string"),
    VariableSpec("JWT_SECRET", "string", "JWT secret key (minimum 32 characters)", min_length=32),
    VariableSpec("JWT_REFRESH_SECRET", "string", "JWT refresh secret key (minimum 32 characters)", min_length=32),
    VariableSpec("ENCRYPTION_KEY", "string", "32-character encryption key for AES-256", exact_length=32),
    VariableSpec("SESSION_SECRET", "string", "Session secret key (minimum 32 characters)", min_length=32),
    VariableSpec("RPC_URL", "url", "Blockchain RPC endpoint URL", required=False),
    VariableSpec("PRIVATE_KEY", "private_key", "Private key (0x followed by 64 hex characters)", required=False),
    VariableSpec("EMAIL_FROM", "email", "Default sender email address", required=False),
]


@dataclass
class StartupValidationReport:
    """启动校验报告"""
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    checked_keys: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def to_dict(self):
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "checked_keys": list(self.checked_keys),
        }


class StartupValidator:
    """启动配置校验器"""

    def __init__(self, specs: Optional[List[VariableSpec]] = None,
                 sanitizer: Optional[Sanitizer] = None,
                 environment: str = "development"):
        self.specs = list(DEFAULT_VARIABLE_SPECS if specs is None else specs)
        self.sanitizer = sanitizer or Sanitizer()
        self.environment = environment
        self.logger = get_logger(__name__)

    def validate(self, config: Mapping[str, str]) -> StartupValidationReport:
        report = StartupValidationReport()

        for spec in self.specs:
            value = config.get(spec.key)
            if not value:
                if spec.required:
                    report.errors.append(f"Missing required configuration key: {spec.key}")
                continue
            report.checked_keys.append(spec.key)
            self._check_spec(spec, value, report)

        self._check_insecure_values(config, report)
        if self.environment.lower() == "production":
            self._check_development_values(config, report)

        self.logger.info(
            "startup validation finished",
            valid=report.valid,
            errors=len(report.errors),
            warnings=len(report.warnings)
        )
        return report

    def _check_spec(self, spec: VariableSpec, value: str, report: StartupValidationReport):
        shown = self.sanitizer.mask_sensitive_value(spec.key, value)
        if not TYPE_CHECKS[spec.type](value):
            if self.sanitizer.is_sensitive_key(spec.key) or spec.type == "private_key":
                report.errors.append(f"Invalid {spec.type} format for {spec.key}")
            else:
                report.errors.append(f"Invalid {spec.type} format for {spec.key}: {shown}")
            return
        if spec.min_length is not None and len(value) < spec.min_length:
            report.errors.append(f"{spec.key} must be at least {spec.min_length} characters long")
        if spec.exact_length is not None and len(value) != spec.exact_length:
            report.errors.append(f"{spec.key} must be exactly {spec.exact_length} characters long")

    def _check_insecure_values(self, config: Mapping[str, str], report: StartupValidationReport):
        for key in SECURITY_KEYS:
            value = config.get(key)
            if value and any(pattern.search(value) for pattern in INSECURE_PATTERNS):
                report.errors.append(f"Security risk: {key} appears to be using a default or insecure value")

    def _check_development_values(self, config: Mapping[str, str], report: StartupValidationReport):
        for spec in self.specs:
            value = (config.get(spec.key) or "").lower()
            if value and any(dev_value in value for dev_value in DEVELOPMENT_VALUES):
                report.warnings.append(f"Production security warning: {spec.key} contains development value")

    def generate_documentation(self) -> str:
        """生成 Markdown 格式的配置项说明"""
        lines = ["# Configuration Variables", ""]
        for spec in self.specs:
            lines.append(f"## {spec.key}")
            lines.append("")
            lines.append(f"**Description:** {spec.description}")
            lines.append("")
            lines.append(f"**Type:** {spec.type}")
            lines.append("")
            lines.append(f"**Required:** {'Yes' if spec.required else 'No'}")
            lines.append("")
            lines.append(f"**Example:** `{TYPE_EXAMPLES[spec.type]}`")
            lines.append("")
            if spec.min_length is not None:
                lines.append(f"**Minimum length:** {spec.min_length}")
                lines.append("")
            if spec.exact_length is not None:
                lines.append(f"**Exact length:** {spec.exact_length}")
                lines.append("")
        return "\n".join(lines)
