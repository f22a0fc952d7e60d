"""控制接口：存活探针与重载"""

from typing import Optional

from aiohttp import web

from ..services.coordinator import SchedulerCoordinator
from ..utils.exceptions import StoreError, SchedulerError
from ..utils.log_manager import get_logger
from ..utils.process_metrics import collect_process_metrics

COORDINATOR_KEY = web.AppKey('coordinator', SchedulerCoordinator)

logger = get_logger('control')


async def handle_health(request: web.Request) -> web.Response:
    """GET /health"""
    coordinator = request.app[COORDINATOR_KEY]
    stats = coordinator.get_stats()

    body = {
        'status': 'OK' if coordinator.is_running else stats['state'],
        'service': 'scheduler',
        **stats
    }
    metrics = collect_process_metrics()
    if metrics:
        body['process'] = metrics.to_dict()

    return web.json_response(body, status=200 if coordinator.is_running else 503)


async def handle_reload(request: web.Request) -> web.Response:
    """POST /reload"""
    coordinator = request.app[COORDINATOR_KEY]

    try:
        report = await coordinator.reload()
    except SchedulerError as e:
        return web.json_response({'status': 'unavailable', 'error': e.message}, status=503)
    except StoreError as e:
        logger.error(f"重载失败: {e.format_error()}")
        return web.json_response({'status': 'error', 'error': e.message}, status=500)
    except Exception as e:
        logger.error(f"重载时发生未知异常: {e}", exc_info=True)
        return web.json_response({'status': 'error', 'error': str(e)}, status=500)

    return web.json_response({'status': 'reloaded', **report.to_dict()})


def create_control_app(coordinator: SchedulerCoordinator) -> web.Application:
    """创建控制接口应用"""
    app = web.Application()
    app[COORDINATOR_KEY] = coordinator
    app.router.add_get('/health', handle_health)
    app.router.add_post('/reload', handle_reload)
    return app


class ControlServer:
    """控制接口HTTP服务"""

    def __init__(self, coordinator: SchedulerCoordinator, host: str = '0.0.0.0', port: int = 3003):
        self.coordinator = coordinator
        self.host = host
        self.port = port
        self.runner: Optional[web.AppRunner] = None

    async def start(self):
        self.runner = web.AppRunner(create_control_app(self.coordinator), access_log=None)
        await self.runner.setup()
        site = web.TCPSite(self.runner, self.host, self.port)
        await site.start()
        logger.info(f"控制接口已启动: http://{self.host}:{self.port}")

    async def stop(self):
        if self.runner:
            await self.runner.cleanup()
            self.runner = None
            logger.info("控制接口已停止")
