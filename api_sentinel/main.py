"""
API Sentinel 调度服务主程序

集成配置、目标存储、探测执行器、通知渠道、调度协调器与控制接口，
实现启动、信号处理与优雅关闭。
"""

import argparse
import asyncio
import signal
import sys
from typing import Optional, Dict, Any

from . import __version__
from .api.control import ControlServer
from .notifications.dispatcher import NotificationDispatcher
from .probes.http_probe import HTTPProbe
from .services.config_manager import ConfigManager
from .services.coordinator import SchedulerCoordinator
from .services.target_watcher import TargetFileWatcher
from .stores.base import TargetStore
from .stores.file_store import FileTargetStore
from .stores.memory_store import InMemoryTargetStore
from .utils.exceptions import SentinelError, ConfigError
from .utils.log_manager import log_manager, get_logger


class SentinelApp:
    """调度服务应用程序"""

    def __init__(self, config_path: str, overrides: Optional[Dict[str, Any]] = None):
        """
        Args:
            config_path: 配置文件路径
            overrides: 覆盖 global 段的配置（来自命令行）
        """
        self.config_path = config_path
        self.overrides = overrides or {}
        self.logger = get_logger('main')
        self.shutdown_event: Optional[asyncio.Event] = None

        self.config_manager: Optional[ConfigManager] = None
        self.store: Optional[TargetStore] = None
        self.dispatcher: Optional[NotificationDispatcher] = None
        self.coordinator: Optional[SchedulerCoordinator] = None
        self.control_server: Optional[ControlServer] = None
        self.target_watcher: Optional[TargetFileWatcher] = None

    def initialize(self):
        """加载配置并创建各组件

        Raises:
            ConfigError: 配置无效
        """
        self.config_manager = ConfigManager(self.config_path)
        self.config_manager.load_config()

        global_config = dict(self.config_manager.get_global_config())
        global_config.update(self.overrides)
        self._configure_logging(global_config)

        self.store = self._create_store(self.config_manager.get_store_config())
        self.dispatcher = NotificationDispatcher.from_config(
            self.config_manager.get_notifications_config())

        scheduler_config = self.config_manager.get_scheduler_config()
        probe = HTTPProbe(timeout=scheduler_config['probe_timeout'])
        self.coordinator = SchedulerCoordinator(
            store=self.store,
            probe=probe,
            sink=self.dispatcher,
            worker_count=scheduler_config['worker_count'],
            queue_size=scheduler_config['queue_size'],
            reconcile_interval=scheduler_config['reconcile_interval'],
            settle_delay=scheduler_config['settle_delay'],
            notification_timeout=scheduler_config['notification_timeout'],
            notify_initial_transition=scheduler_config['notify_initial_transition']
        )

        control_config = self.config_manager.get_control_config()
        if control_config['enabled']:
            self.control_server = ControlServer(
                self.coordinator, control_config['host'], control_config['port'])

        self.logger.info("应用程序组件初始化完成")

    def _configure_logging(self, global_config: Dict[str, Any]):
        log_config = {'log_level': global_config.get('log_level', 'INFO')}
        if global_config.get('log_file'):
            log_config['log_file'] = global_config['log_file']
            log_config['max_file_size'] = global_config.get('max_log_size', 10 * 1024 * 1024)
            log_config['backup_count'] = global_config.get('log_backup_count', 5)
        log_manager.configure(log_config)

    def _create_store(self, store_config: Dict[str, Any]) -> TargetStore:
        if store_config['type'] == 'file':
            return FileTargetStore(
                targets_file=store_config['targets_file'],
                state_file=store_config['state_file'],
                check_log_file=store_config.get('check_log_file')
            )
        return InMemoryTargetStore.from_config(self.config_manager.get_targets_config())

    async def run(self):
        """启动全部组件并等待关闭信号"""
        self.shutdown_event = asyncio.Event()
        self._install_signal_handlers()

        try:
            if self.control_server:
                await self.control_server.start()

            await self.coordinator.start()

            if isinstance(self.store, FileTargetStore):
                self.target_watcher = TargetFileWatcher(
                    self.store.targets_file, self.coordinator.request_reload)
                self.target_watcher.start_watching()

            self.logger.info("API Sentinel 调度服务启动完成")
            await self.shutdown_event.wait()
        finally:
            await self.stop()

    async def stop(self):
        """按依赖逆序停止组件"""
        self.logger.info("正在停止 API Sentinel 调度服务...")

        if self.target_watcher:
            self.target_watcher.stop_watching()
            self.target_watcher = None

        if self.coordinator:
            await self.coordinator.stop()

        if self.control_server:
            await self.control_server.stop()

        if self.dispatcher:
            await self.dispatcher.close()

        if self.store:
            await self.store.close()

        self.logger.info("API Sentinel 调度服务已停止")
        log_manager.cleanup()

    def shutdown(self):
        """触发应用程序关闭"""
        self.logger.info("收到关闭信号")
        if self.shutdown_event:
            self.shutdown_event.set()

    def _install_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.shutdown)
            except NotImplementedError:
                # Windows事件循环不支持 add_signal_handler
                signal.signal(sig, lambda signum, frame: self.shutdown())


def create_argument_parser() -> argparse.ArgumentParser:
    """创建命令行参数解析器"""
    parser = argparse.ArgumentParser(
        prog='api-sentinel',
        description='API Sentinel 调度服务 - 周期性探测HTTP端点并在状态变化时发送通知',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
示例用法:
  %(prog)s config.yaml                  # 使用指定配置文件启动调度服务
  %(prog)s --validate config.yaml       # 验证配置文件格式
  %(prog)s --check-once config.yaml     # 探测所有目标一次后退出
        """
    )

    parser.add_argument('config_file', nargs='?', help='YAML配置文件路径')
    parser.add_argument('--version', '-v', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('--validate', action='store_true', help='验证配置文件格式并退出')
    parser.add_argument('--check-once', action='store_true',
                        help='探测所有目标一次后退出（不写入状态，不发送通知）')
    parser.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        help='设置日志级别（覆盖配置文件设置）')
    parser.add_argument('--log-file', help='日志文件路径（覆盖配置文件设置）')

    return parser


def validate_config_file(config_path: str) -> bool:
    """验证配置文件并打印摘要"""
    try:
        config_manager = ConfigManager(config_path)
        config_manager.load_config()
    except ConfigError as e:
        print(f"❌ 配置文件验证失败: {e.format_error()}")
        return False

    store_config = config_manager.get_store_config()
    print("✅ 配置文件验证成功!")
    print(f"   - 存储类型: {store_config['type']}")
    print(f"   - 内置目标数量: {len(config_manager.get_targets_config())}")
    print(f"   - 通知渠道数量: {len(config_manager.get_notifications_config())}")
    return True


async def check_once(app: SentinelApp) -> bool:
    """探测所有目标一次并打印结果

    Returns:
        bool: 所有目标都在线时返回True
    """
    results = await app.coordinator.check_all_now()
    print(f"探测完成，共 {len(results)} 个目标:")

    all_online = True
    for target_id, result in results.items():
        if result.is_online:
            print(f"   ✅ {target_id}: {result.status_code} ({result.latency_ms:.0f}ms)")
        else:
            all_online = False
            print(f"   ❌ {target_id}: {result.status_code} - {result.error_message}")
    return all_online


async def main(argv=None) -> int:
    """主函数，返回进程退出码"""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    if not args.config_file:
        parser.print_help()
        return 1

    if args.validate:
        return 0 if validate_config_file(args.config_file) else 1

    overrides = {}
    if args.log_level:
        overrides['log_level'] = args.log_level
    if args.log_file:
        overrides['log_file'] = args.log_file

    app = SentinelApp(args.config_file, overrides)
    try:
        app.initialize()
        if args.check_once:
            return 0 if await check_once(app) else 1
        await app.run()
    except ConfigError as e:
        print(f"配置错误: {e.format_error()}", file=sys.stderr)
        return 1
    except SentinelError as e:
        print(f"调度服务错误: {e.format_error()}", file=sys.stderr)
        return 1

    return 0


def run():
    """命令行入口"""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\n用户中断程序")
        sys.exit(130)


if __name__ == "__main__":
    run()
