"""
配置管理服务

对外暴露统一的配置管理操作，每个操作都返回 OperationResult。
变更流程：加锁 -> 清洗 -> 规则校验 -> 变更前快照 -> 写入实时存储 ->
记录审计 -> 释放锁 -> 热重载通知。

返回给调用方的所有配置值都经过掩码处理。
"""

import tempfile
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from ..api_response import OperationResult
from ..audit import (
    ALL_CONFIG_KEY,
    FORCE_RELOAD_KEY,
    AuditLog,
    AuditQuery,
    InMemoryAuditStorage,
    JsonlAuditStorage,
)
from ..errors import (
    ConfigManagementError,
    ExportError,
    LoggingFailure,
    NotFoundError,
    RequiredKeyError,
    ValidationError,
)
from ..logging_config import get_logger
from ..metrics import ConfigMetrics
from ..reload import ConfigFileWatcher, HotReloadCoordinator, ReloadResult
from ..security import Sanitizer
from ..settings import ManagementSettings
from ..store import LiveConfigStore
from ..validators import StartupValidator, ValueRuleSet, is_required_key
from ..version_control import (
    FileVersionStorage,
    InMemoryVersionStorage,
    VersionDiffEntry,
    VersionStore,
)


@dataclass
class RequestContext:
    """调用方身份信息，只用于审计"""
    user_id: Optional[str] = None
    source_ip: Optional[str] = None
    user_agent: Optional[str] = None

    def audit_fields(self) -> Dict[str, Optional[str]]:
        return {
            "user_id": self.user_id,
            "source_ip": self.source_ip,
            "user_agent": self.user_agent,
        }


class ConfigurationManagementService:
    """配置管理服务"""

    def __init__(self, live_store: Optional[LiveConfigStore] = None,
                 settings: Optional[ManagementSettings] = None,
                 sanitizer: Optional[Sanitizer] = None,
                 version_store: Optional[VersionStore] = None,
                 audit_log: Optional[AuditLog] = None,
                 reload_coordinator: Optional[HotReloadCoordinator] = None,
                 rules: Optional[ValueRuleSet] = None,
                 metrics: Optional[ConfigMetrics] = None,
                 startup_validator: Optional[StartupValidator] = None):
        self.settings = settings or ManagementSettings()
        self.logger = get_logger(__name__)
        self.metrics = metrics or ConfigMetrics()
        self.sanitizer = sanitizer or Sanitizer(self.settings.sensitive_keys)
        self.live_store = live_store or LiveConfigStore(lock_timeout=self.settings.lock_timeout)
        self.rules = rules or ValueRuleSet()

        self.version_store = version_store or VersionStore(
            self.live_store,
            storage=InMemoryVersionStorage(),
            sanitizer=self.sanitizer,
            metrics=self.metrics
        )
        self.audit_log = audit_log or AuditLog(
            storage=InMemoryAuditStorage(),
            sanitizer=self.sanitizer,
            default_limit=self.settings.audit_default_limit,
            metrics=self.metrics
        )
        self.reload_coordinator = reload_coordinator or HotReloadCoordinator(
            self.live_store,
            listener_timeout=self.settings.reload_listener_timeout,
            metrics=self.metrics
        )
        self.startup_validator = startup_validator or StartupValidator(
            sanitizer=self.sanitizer,
            environment=self.settings.environment
        )
        self.file_watcher: Optional[ConfigFileWatcher] = None

    @classmethod
    def from_settings(cls, settings: ManagementSettings,
                      initial: Optional[Mapping[str, str]] = None) -> "ConfigurationManagementService":
        """按设置装配文件存储后端；未配置目录时使用内存存储"""
        metrics = ConfigMetrics()
        sanitizer = Sanitizer(settings.sensitive_keys)
        live_store = LiveConfigStore(initial, lock_timeout=settings.lock_timeout)

        version_storage = (
            FileVersionStorage(settings.versions_dir) if settings.versions_dir else InMemoryVersionStorage()
        )
        audit_storage = (
            JsonlAuditStorage(settings.audit_dir, max_file_bytes=settings.audit_max_file_bytes)
            if settings.audit_dir else InMemoryAuditStorage()
        )

        service = cls(
            live_store=live_store,
            settings=settings,
            sanitizer=sanitizer,
            version_store=VersionStore(live_store, storage=version_storage, sanitizer=sanitizer, metrics=metrics),
            audit_log=AuditLog(
                storage=audit_storage,
                sanitizer=sanitizer,
                default_limit=settings.audit_default_limit,
                metrics=metrics
            ),
            metrics=metrics,
        )
        if settings.watch_files:
            service.file_watcher = ConfigFileWatcher(
                service.reload_coordinator,
                settings.watch_files,
                debounce_seconds=settings.watch_debounce_seconds
            )
        return service

    def start(self):
        if self.file_watcher is not None:
            self.file_watcher.start()

    def close(self):
        if self.file_watcher is not None:
            self.file_watcher.stop()
        self.reload_coordinator.shutdown()

    # 读取

    def get_current_config(self, ctx: Optional[RequestContext] = None) -> OperationResult:
        def operation():
            ctx_ = ctx or RequestContext()
            config = self.sanitizer.mask_sensitive_values(self.live_store.snapshot())
            warnings = self._audit(self.audit_log.log_access, ALL_CONFIG_KEY, **ctx_.audit_fields())
            return OperationResult.ok(dict(sorted(config.items())), warnings=warnings)

        return self._run("get_current_config", operation)

    def get_config_value(self, key: str, ctx: Optional[RequestContext] = None) -> OperationResult:
        def operation():
            ctx_ = ctx or RequestContext()
            value = self.live_store.get(key)
            if value is None:
                raise NotFoundError(f"Configuration key '{key}' not found", resource="config_key", identifier=key)
            warnings = self._audit(self.audit_log.log_access, key, **ctx_.audit_fields())
            return OperationResult.ok(
                {"key": key, "value": self.sanitizer.mask_sensitive_value(key, value)},
                warnings=warnings
            )

        return self._run("get_config_value", operation)

    # 变更

    def update_config_value(self, key: str, value: str, ctx: Optional[RequestContext] = None,
                            reload: Optional[bool] = None) -> OperationResult:
        return self._run("update", lambda: self._update(key, value, ctx or RequestContext(), reload), mutation=True)

    def _update(self, key: str, value: str, ctx: RequestContext, reload: Optional[bool]) -> OperationResult:
        if not key or not key.strip():
            raise ValidationError("Configuration key must not be empty", key=key)
        if value is None:
            raise ValidationError(f"Value for {key} must not be None", key=key)

        with self.live_store.exclusive():
            sanitized = self.sanitizer.sanitize({key: value})[key]
            validation = self.rules.validate(key, sanitized)
            if not validation.valid:
                raise ValidationError(f"Invalid value for {key}: {validation.error}", key=key)

            pre_version = self._pre_mutation_snapshot(f"Before update of {key}", ctx, "update")
            old_value = self.live_store.set(key, sanitized)
            try:
                warnings = self._audit(
                    self.audit_log.log_update, key, old_value, sanitized,
                    version_id=pre_version.id if pre_version else None,
                    **ctx.audit_fields()
                )
            except Exception:
                self.live_store.restore(key, old_value)
                raise

        self.logger.info("configuration updated", key=key, user_id=ctx.user_id)
        data = {
            "key": key,
            "old_value": self.sanitizer.mask_sensitive_value(key, old_value),
            "new_value": self.sanitizer.mask_sensitive_value(key, sanitized),
            "version_id": pre_version.id if pre_version else None,
        }
        data["reload"] = self._maybe_reload(reload, f"update:{key}", [key], warnings)
        return OperationResult.ok(data, message=f"Configuration key {key} updated", warnings=warnings)

    def delete_config_value(self, key: str, ctx: Optional[RequestContext] = None,
                            reload: Optional[bool] = None) -> OperationResult:
        return self._run("delete", lambda: self._delete(key, ctx or RequestContext(), reload), mutation=True)

    def _delete(self, key: str, ctx: RequestContext, reload: Optional[bool]) -> OperationResult:
        # 必需键的检查先于存在性检查
        if is_required_key(key, self.settings.required_keys):
            raise RequiredKeyError(key)

        with self.live_store.exclusive():
            if not self.live_store.contains(key):
                raise NotFoundError(f"Configuration key '{key}' not found", resource="config_key", identifier=key)

            pre_version = self._pre_mutation_snapshot(f"Before delete of {key}", ctx, "delete")
            old_value = self.live_store.delete(key)
            try:
                warnings = self._audit(
                    self.audit_log.log_delete, key, old_value,
                    version_id=pre_version.id if pre_version else None,
                    **ctx.audit_fields()
                )
            except Exception:
                self.live_store.restore(key, old_value)
                raise

        self.logger.info("configuration deleted", key=key, user_id=ctx.user_id)
        data = {
            "key": key,
            "old_value": self.sanitizer.mask_sensitive_value(key, old_value),
            "version_id": pre_version.id if pre_version else None,
        }
        data["reload"] = self._maybe_reload(reload, f"delete:{key}", [key], warnings)
        return OperationResult.ok(data, message=f"Configuration key {key} deleted", warnings=warnings)

    # 版本

    def list_versions(self, limit: Optional[int] = None) -> OperationResult:
        return self._run(
            "list_versions",
            lambda: OperationResult.ok([v.metadata() for v in self.version_store.get_versions(limit)])
        )

    def get_version(self, version_id: str) -> OperationResult:
        def operation():
            snapshot = self.version_store.get_version(version_id)
            data = snapshot.to_dict()
            data["config"] = self.version_store.masked_config(snapshot)
            return OperationResult.ok(data)

        return self._run("get_version", operation)

    def create_version(self, description: str, ctx: Optional[RequestContext] = None,
                       tags: Optional[Iterable[str]] = None) -> OperationResult:
        def operation():
            ctx_ = ctx or RequestContext()
            snapshot = self.version_store.create_version(description, author_id=ctx_.user_id, tags=tags)
            return OperationResult.ok(snapshot.metadata(), message=f"Version {snapshot.id} created")

        return self._run("create_version", operation, mutation=True)

    def rollback_to_version(self, version_id: str, ctx: Optional[RequestContext] = None,
                            reload: Optional[bool] = None) -> OperationResult:
        return self._run(
            "rollback",
            lambda: self._rollback(version_id, ctx or RequestContext(), reload),
            mutation=True
        )

    def _rollback(self, version_id: str, ctx: RequestContext, reload: Optional[bool]) -> OperationResult:
        with self.live_store.exclusive():
            previous = self.live_store.snapshot()
            result = self.version_store.rollback_to_version(version_id, author_id=ctx.user_id)
            try:
                warnings = self._audit(
                    self.audit_log.log_rollback, version_id, result.changes, **ctx.audit_fields()
                )
            except Exception:
                # 回滚版本仍留在只追加的历史中，实时存储恢复为回滚前内容
                self.live_store.replace(previous)
                self.logger.error("rollback reverted, audit failed", version_id=version_id)
                raise

        self.logger.info(
            "configuration rolled back",
            version_id=version_id,
            changed_keys=len(result.changed_keys),
            user_id=ctx.user_id
        )
        data = {
            "version_id": version_id,
            "new_version_id": result.new_version.id,
            "changed_keys": list(result.changed_keys),
            "changes": self._masked_diff(result.changes),
        }
        data["reload"] = self._maybe_reload(reload, f"rollback:{version_id}", result.changed_keys, warnings)
        return OperationResult.ok(data, message=f"Rolled back to version {version_id}", warnings=warnings)

    def compare_versions(self, version_id1: str, version_id2: str,
                         include_unchanged: bool = False) -> OperationResult:
        def operation():
            diff = self.version_store.compare_versions(version_id1, version_id2, include_unchanged)
            return OperationResult.ok(self._masked_diff(diff))

        return self._run("compare_versions", operation)

    def export_versions(self, destination: Union[str, Path, IO[str]],
                        include_sensitive: bool = False) -> OperationResult:
        def operation():
            count = self.version_store.export_versions(destination, include_sensitive=include_sensitive)
            return OperationResult.ok({"version_count": count, "masked": not include_sensitive})

        return self._run("export_versions", operation)

    def import_versions(self, source: Union[str, Path, IO[str]]) -> OperationResult:
        def operation():
            result = self.version_store.import_versions(source)
            return OperationResult.ok(
                result.to_dict(),
                message=f"Imported {len(result.imported)} versions, skipped {len(result.skipped)}"
            )

        return self._run("import_versions", operation, mutation=True)

    # 审计

    def get_audit_logs(self, **filters) -> OperationResult:
        def operation():
            try:
                query = AuditQuery(**filters)
            except (TypeError, ValueError) as e:
                raise ValidationError(f"Invalid audit filter: {e}")
            return OperationResult.ok([entry.to_dict() for entry in self.audit_log.get_audit_logs(query)])

        return self._run("get_audit_logs", operation)

    def get_audit_statistics(self, cancel_event: Optional[threading.Event] = None) -> OperationResult:
        return self._run(
            "get_audit_statistics",
            lambda: OperationResult.ok(self.audit_log.get_audit_statistics(cancel_event).to_dict())
        )

    def export_audit_logs(self, format: str = "json",
                          start_date: Optional[datetime] = None,
                          end_date: Optional[datetime] = None,
                          sink: Optional[IO[bytes]] = None,
                          cancel_event: Optional[threading.Event] = None) -> OperationResult:
        """导出到临时目录后复制给调用方；未提供 sink 时在 data["content"] 中返回字节内容"""
        def operation():
            fmt = (format or "").lower()
            filename = f"audit-logs-{datetime.now(timezone.utc).strftime('%Y-%m-%d')}.{fmt}"
            export_root = self.settings.export_dir
            if export_root:
                Path(export_root).mkdir(parents=True, exist_ok=True)

            with tempfile.TemporaryDirectory(prefix="audit-export-", dir=export_root) as temp_dir:
                temp_path = Path(temp_dir) / filename
                result = self.audit_log.export_audit_logs(
                    temp_path, fmt, start_date=start_date, end_date=end_date, cancel_event=cancel_event
                )
                content = temp_path.read_bytes()

            data: Dict[str, Any] = {
                "filename": filename,
                "format": result.format,
                "entry_count": result.entry_count,
                "size": len(content),
            }
            if sink is None:
                data["content"] = content
            else:
                try:
                    sink.write(content)
                    sink.flush()
                except OSError as e:
                    raise ExportError(f"Failed to write audit export to sink: {e}", cause=e)
            return OperationResult.ok(data)

        return self._run("export_audit_logs", operation)

    # 重载与启动校验

    def force_reload(self, ctx: Optional[RequestContext] = None) -> OperationResult:
        def operation():
            ctx_ = ctx or RequestContext()
            result = self.reload_coordinator.force_reload(reason="manual")
            warnings = self._audit(self.audit_log.log_access, FORCE_RELOAD_KEY, **ctx_.audit_fields())
            warnings.extend(self._reload_warnings(result))
            return OperationResult.ok(result.to_dict(), message="Configuration reloaded", warnings=warnings)

        return self._run("force_reload", operation)

    def validate_startup(self) -> OperationResult:
        def operation():
            report = self.startup_validator.validate(self.live_store.snapshot())
            if not report.valid:
                return OperationResult.fail(
                    "Startup configuration validation failed",
                    error_code=ValidationError.error_code,
                    details=report.to_dict()
                )
            return OperationResult.ok(report.to_dict(), warnings=report.warnings)

        return self._run("validate_startup", operation)

    # 内部工具

    def _run(self, operation: str, func: Callable[[], OperationResult], mutation: bool = False) -> OperationResult:
        """统一的异常边界：业务异常转换为失败结果，严重错误继续抛出"""
        with self.metrics.time_operation(operation):
            try:
                result = func()
            except ConfigManagementError as e:
                if e.is_critical():
                    self.logger.critical("critical failure", operation=operation, error_code=e.error_code)
                    raise
                self.logger.warning(
                    "operation failed",
                    operation=operation,
                    error_code=e.error_code,
                    error=e.message
                )
                result = OperationResult.from_error(e)
            except Exception:
                self.logger.exception("unexpected error", operation=operation)
                result = OperationResult.fail(f"Internal error during {operation}", error_code="INTERNAL_ERROR")

        if mutation:
            outcome = "success" if result.success else (result.error_code or "error").lower()
            self.metrics.record_mutation(operation, outcome)
        return result

    def _audit(self, log_method, *args, **kwargs) -> List[str]:
        """记录审计；失败时不回滚已提交的变更，改为返回警告"""
        try:
            log_method(*args, **kwargs)
        except LoggingFailure as e:
            return [f"{LoggingFailure.error_code}: {e.message}"]
        return []

    def _pre_mutation_snapshot(self, description: str, ctx: RequestContext, tag: str):
        if not self.settings.snapshot_before_mutation:
            return None
        return self.version_store.create_version(description, author_id=ctx.user_id, tags=[tag])

    def _maybe_reload(self, reload: Optional[bool], reason: str, changed_keys: Iterable[str],
                      warnings: List[str]) -> Optional[Dict[str, Any]]:
        should_reload = self.settings.reload_on_mutation if reload is None else reload
        if not should_reload:
            return None
        result = self.reload_coordinator.force_reload(reason=reason, changed_keys=changed_keys)
        warnings.extend(self._reload_warnings(result))
        return result.to_dict()

    def _reload_warnings(self, result: ReloadResult) -> List[str]:
        warnings = [f"RELOAD_FAILED: listener {name}" for name in sorted(result.failed)]
        warnings.extend(f"RELOAD_TIMEOUT: listener {name}" for name in result.timed_out)
        return warnings

    def _masked_diff(self, entries: Iterable[VersionDiffEntry]) -> List[Dict[str, Any]]:
        masked = []
        for entry in entries:
            data = entry.to_dict()
            data["value1"] = self.sanitizer.mask_sensitive_value(entry.key, entry.value1)
            data["value2"] = self.sanitizer.mask_sensitive_value(entry.key, entry.value2)
            masked.append(data)
        return masked
