"""
运行时配置管理测试配置和全局Fixtures
"""

import sys
from pathlib import Path
from typing import Dict

import pytest

# 添加项目路径到Python路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from runtime_config.audit import AuditLog, InMemoryAuditStorage
from runtime_config.management import ConfigurationManagementService, RequestContext
from runtime_config.metrics import ConfigMetrics
from runtime_config.security import Sanitizer
from runtime_config.settings import ManagementSettings
from runtime_config.store import LiveConfigStore
from runtime_config.version_control import InMemoryVersionStorage, VersionStore


JWT_SECRET_VALUE = "jwt-secret-value-0123456789-abcdefghij"


@pytest.fixture
def base_config() -> Dict[str, str]:
    """提供一份合法的示例配置"""
    return {
        "DATABASE_URL": "postgresql://db.internal:5432/app",
        "JWT_SECRET": JWT_SECRET_VALUE,
        "JWT_REFRESH_SECRET": "refresh-secret-value-0123456789-abcdef",
        "ENCRYPTION_KEY": "0123456789abcdef0123456789abcdef",
        "SESSION_SECRET": "session-secret-value-0123456789-abcdef",
        "LOG_LEVEL": "info",
        "PORT": "3000",
    }


@pytest.fixture
def settings(tmp_path) -> ManagementSettings:
    return ManagementSettings(
        service_name="runtime-config-test",
        export_dir=str(tmp_path / "exports"),
        reload_listener_timeout=1.0,
        lock_timeout=5.0,
    )


@pytest.fixture
def sanitizer() -> Sanitizer:
    return Sanitizer()


@pytest.fixture
def metrics() -> ConfigMetrics:
    return ConfigMetrics()


@pytest.fixture
def live_store(base_config) -> LiveConfigStore:
    return LiveConfigStore(base_config, lock_timeout=5.0)


@pytest.fixture
def version_store(live_store, sanitizer, metrics) -> VersionStore:
    return VersionStore(live_store, storage=InMemoryVersionStorage(), sanitizer=sanitizer, metrics=metrics)


@pytest.fixture
def audit_log(sanitizer, metrics) -> AuditLog:
    return AuditLog(storage=InMemoryAuditStorage(), sanitizer=sanitizer, metrics=metrics)


@pytest.fixture
def service(live_store, settings, metrics):
    service = ConfigurationManagementService(live_store=live_store, settings=settings, metrics=metrics)
    yield service
    service.close()


@pytest.fixture
def ctx() -> RequestContext:
    return RequestContext(user_id="admin-1", source_ip="10.0.0.5", user_agent="pytest")
