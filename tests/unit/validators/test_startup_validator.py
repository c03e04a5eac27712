"""
启动配置校验测试
"""

import pytest

from runtime_config.validators import StartupValidator, VariableSpec


VALID_CONFIG = {
    "DATABASE_URL": "postgresql://db.internal:5432/app",
    "JWT_SECRET": "a1b2c3d4e5f6a7b8c9d0e1f2a3b4c5d6e7",
    "JWT_REFRESH_SECRET": "f1e2d3c4b5a6f7e8d9c0b1a2f3e4d5c6b7",
    "ENCRYPTION_KEY": "0123456789abcdef0123456789abcdef",
    "SESSION_SECRET": "9a8b7c6d5e4f3a2b1c0d9e8f7a6b5c4d3e",
}


class TestStartupValidator:
    """启动校验测试"""

    def test_valid_configuration(self):
        report = StartupValidator().validate(VALID_CONFIG)
        assert report.valid, report.errors
        assert "DATABASE_URL" in report.checked_keys

    def test_missing_required_key(self):
        config = dict(VALID_CONFIG)
        del config["SESSION_SECRET"]
        report = StartupValidator().validate(config)
        assert "Missing required configuration key: SESSION_SECRET" in report.errors

    def test_optional_key_checked_only_when_present(self):
        config = dict(VALID_CONFIG, EMAIL_FROM="not-an-email")
        report = StartupValidator().validate(config)
        assert any("EMAIL_FROM" in error for error in report.errors)
        assert StartupValidator().validate(VALID_CONFIG).valid

    def test_length_checks(self):
        config = dict(VALID_CONFIG, JWT_SECRET="a1b2c3", ENCRYPTION_KEY="0123")
        report = StartupValidator().validate(config)
        assert "JWT_SECRET must be at least 32 characters long" in report.errors
        assert "ENCRYPTION_KEY must be exactly 32 characters long" in report.errors

    def test_invalid_private_key_message_has_no_value(self):
        raw = "0xnot-a-private-key"
        report = StartupValidator().validate(dict(VALID_CONFIG, PRIVATE_KEY=raw))
        assert "Invalid private_key format for PRIVATE_KEY" in report.errors
        assert all(raw not in error for error in report.errors)

    def test_insecure_placeholder_detected(self):
        """测试默认或占位密钥被识别为安全风险"""
        config = dict(VALID_CONFIG, JWT_SECRET="your-jwt-secret-here-change-it-now-123")
        report = StartupValidator().validate(config)
        assert "Security risk: JWT_SECRET appears to be using a default or insecure value" in report.errors

    def test_development_values_warned_in_production(self):
        config = dict(VALID_CONFIG, DATABASE_URL="postgresql://localhost:5432/app")
        production = StartupValidator(environment="production").validate(config)
        development = StartupValidator(environment="development").validate(config)
        assert "Production security warning: DATABASE_URL contains development value" in production.warnings
        assert development.warnings == []

    def test_unknown_spec_type_rejected(self):
        with pytest.raises(ValueError):
            VariableSpec("X", "uuid", "unsupported")

    def test_generate_documentation(self):
        docs = StartupValidator().generate_documentation()
        assert docs.startswith("# Configuration Variables")
        assert "## DATABASE_URL" in docs
        assert "**Required:** No" in docs
