"""
配置值规则测试
"""

import pytest

from runtime_config.validators import (
    ValueRule,
    ValueRuleSet,
    is_required_key,
    validate_config_value,
)


class TestValueRules:
    """规则校验测试"""

    @pytest.mark.parametrize("key,value,valid", [
        ("SERVICE_URL", "https://example.com", True),
        ("SERVICE_URL", "ftp://example.com", False),
        ("service_url", "ftp://example.com", False),
        ("DATABASE_URL", "postgresql://db/app", True),
        ("PORT", "8080", True),
        ("PORT", "80a", False),
        ("PORT", "-1", False),
        ("ADMIN_EMAIL", "ops@example.com", True),
        ("ADMIN_EMAIL", "ops.example.com", False),
        ("SESSION_SECRET", "x" * 32, True),
        ("SESSION_SECRET", "x" * 31, False),
        ("LOG_LEVEL", "anything", True),
    ])
    def test_default_rules(self, key, value, valid):
        assert validate_config_value(key, value).valid is valid

    def test_empty_value_is_valid(self):
        """测试空值总是合法"""
        assert validate_config_value("PORT", "").valid
        assert validate_config_value("SESSION_SECRET", "").valid

    def test_error_message(self):
        result = validate_config_value("PORT", "abc")
        assert not result.valid
        assert result.error == "Port must be a number"

    def test_register_extends_table(self):
        rules = ValueRuleSet()
        rules.register(ValueRule("timeout", "TIMEOUT", lambda v: v.endswith("s"), "Timeout needs a unit"))
        assert not validate_config_value("HTTP_TIMEOUT", "30", rules).valid
        assert validate_config_value("HTTP_TIMEOUT", "30s", rules).valid

    def test_register_replaces_rule_with_same_name(self):
        rules = ValueRuleSet()
        rules.register(ValueRule("port", "PORT", lambda v: True, "never"))
        assert validate_config_value("PORT", "abc", rules).valid


class TestRequiredKeys:
    """必需键测试"""

    def test_default_required_keys(self):
        assert is_required_key("DATABASE_URL")
        assert is_required_key("SESSION_SECRET")
        assert not is_required_key("PORT")

    def test_exact_match_only(self):
        assert not is_required_key("database_url")
        assert not is_required_key("DATABASE_URL_REPLICA")

    def test_custom_required_keys(self):
        assert is_required_key("PORT", required_keys=["PORT"])
