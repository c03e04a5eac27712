"""
运行时配置管理命令行工具

用法：
    runtime-config --config config/runtime_config.yaml validate
    runtime-config docs
    runtime-config show

配置值取自当前进程环境变量（排除 RUNTIME_CONFIG_ 前缀的服务设置），
所有输出都经过掩码处理。
"""

import argparse
import json
import sys
from typing import List, Mapping, Optional

from .errors import SettingsError
from .logging_config import configure_logging, get_logger
from .management import ConfigurationManagementService
from .settings import ENV_PREFIX, load_settings
from .store import LiveConfigStore


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="runtime-config", description="Runtime configuration manager")
    parser.add_argument("--config", "-c", type=str, default=None, help="Settings file path (YAML)")

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("validate", help="Validate the current environment against startup requirements")
    subparsers.add_parser("docs", help="Print Markdown documentation of configuration variables")
    subparsers.add_parser("show", help="Print the masked current configuration as JSON")
    return parser


def main(argv: Optional[List[str]] = None, environ: Optional[Mapping[str, str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(args.config, environ=environ)
    except SettingsError as e:
        print(f"settings error: {e.message}", file=sys.stderr)
        return 2

    configure_logging(settings.service_name, settings.log_level, settings.json_logs)
    logger = get_logger(__name__)

    live_store = LiveConfigStore.from_environ(
        environ,
        exclude_prefixes=(ENV_PREFIX,),
        lock_timeout=settings.lock_timeout
    )
    service = ConfigurationManagementService(live_store=live_store, settings=settings)
    try:
        if args.command == "docs":
            print(service.startup_validator.generate_documentation())
            return 0

        if args.command == "show":
            result = service.get_current_config()
            if not result.success:
                print(f"ERROR: {result.error}", file=sys.stderr)
                return 1
            print(json.dumps(result.data, indent=2, ensure_ascii=False))
            return 0

        result = service.validate_startup()
        report = result.data if result.success else result.details
        if report is None:
            # 校验过程本身失败，没有报告可输出
            print(f"ERROR: {result.error}", file=sys.stderr)
            logger.error("startup validation could not run", error_code=result.error_code)
            return 1
        for error in report["errors"]:
            print(f"ERROR: {error}")
        for warning in report["warnings"]:
            print(f"WARNING: {warning}")
        logger.info("startup validation finished", valid=result.success, keys=len(report["checked_keys"]))
        return 0 if result.success else 1
    finally:
        service.close()


if __name__ == "__main__":
    sys.exit(main())
